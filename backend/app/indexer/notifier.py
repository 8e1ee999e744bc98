"""Notification channels used by the process supervisor."""

from __future__ import annotations

import logging
import subprocess
from abc import ABC, abstractmethod
from enum import Enum

logger = logging.getLogger(__name__)


class Severity(Enum):
    INFO = logging.INFO
    WARNING = logging.WARNING
    ERROR = logging.ERROR
    CRITICAL = logging.CRITICAL


class Notifier(ABC):
    """Delivers supervisor events. Delivery failures are logged, never raised."""

    @abstractmethod
    def notify(self, message: str, severity: Severity) -> None:
        """Send one message."""


class ConsoleNotifier(Notifier):
    """Writes notifications to the log at the matching level."""

    def notify(self, message: str, severity: Severity) -> None:
        logger.log(severity.value, "%s", message)


class ScriptNotifier(Notifier):
    """Runs an external program with "SEVERITY: message" as its only argument.

    The notification is also logged, so nothing is lost when the script
    cannot be started or fails.
    """

    def __init__(self, script: str, timeout: float = 30.0) -> None:
        self.script = script
        self._timeout = timeout

    def notify(self, message: str, severity: Severity) -> None:
        logger.log(severity.value, "%s", message)
        argument = f"{severity.name}: {message}"
        try:
            completed = subprocess.run([self.script, argument], timeout=self._timeout, check=False)
        except (OSError, subprocess.SubprocessError) as e:
            logger.error("Failed to run notification script %s: %s", self.script, e)
            return
        if completed.returncode != 0:
            logger.warning(
                "Notification script %s exited with code %d", self.script, completed.returncode
            )
