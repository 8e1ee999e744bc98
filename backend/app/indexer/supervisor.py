"""Process supervisor: restarts the collector with backoff and a restart budget."""

from __future__ import annotations

import logging
import subprocess
import time
from typing import Callable, Sequence

from .backoff import backoff_delay
from .notifier import ConsoleNotifier, Notifier, Severity

logger = logging.getLogger(__name__)

DEFAULT_COMMAND = ("index-collector",)


class Supervisor:
    """Runs a child command in the foreground and restarts it when it fails.

    A clean exit (code 0) ends supervision. A non-zero exit or a launch
    failure counts as a restart within the current monitoring window; once
    the window elapses the count starts over. When max_restarts is reached
    inside one window the supervisor gives up.

    runner, sleep and clock are injectable so the restart policy can be
    exercised without spawning processes or waiting.
    """

    def __init__(
        self,
        command: Sequence[str] = DEFAULT_COMMAND,
        max_restarts: int = 5,
        monitoring_period: float = 600.0,
        initial_delay: float = 5.0,
        max_delay: float = 60.0,
        notifier: Notifier | None = None,
        runner: Callable[[Sequence[str]], int] = subprocess.call,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.command = list(command)
        self.max_restarts = max_restarts
        self.monitoring_period = monitoring_period
        self.initial_delay = initial_delay
        self.max_delay = max_delay
        self.notifier = notifier or ConsoleNotifier()
        self._runner = runner
        self._sleep = sleep
        self._clock = clock
        self.restart_count = 0

    def run(self) -> int:
        """Supervise until the child exits cleanly (0) or the budget is spent (1)."""
        name = " ".join(self.command)
        logger.info("Supervising: %s", name)
        window_start = self._clock()

        while True:
            now = self._clock()
            if now - window_start > self.monitoring_period:
                if self.restart_count > 0:
                    logger.info("Monitoring period elapsed, resetting restart counter")
                self.restart_count = 0
                window_start = now

            if self.restart_count >= self.max_restarts:
                logger.error(
                    "Exceeded maximum number of restarts (%d) within monitoring period, giving up",
                    self.max_restarts,
                )
                self.notifier.notify(
                    f"{name} failed to start after {self.restart_count} attempts", Severity.CRITICAL
                )
                return 1

            logger.info("Starting %s", name)
            try:
                exit_code = self._runner(self.command)
            except OSError as e:
                self.restart_count += 1
                delay = self._delay()
                self.notifier.notify(
                    f"Failed to start {name}: {e}. Retrying in {delay:g} seconds "
                    f"(attempt {self.restart_count}/{self.max_restarts})",
                    Severity.ERROR,
                )
                self._sleep(delay)
                continue

            if exit_code == 0:
                logger.info("%s exited normally", name)
                return 0

            self.restart_count += 1
            delay = self._delay()
            self.notifier.notify(
                f"{name} crashed with exit code {exit_code}. Restarting in {delay:g} seconds "
                f"(attempt {self.restart_count}/{self.max_restarts})",
                Severity.WARNING,
            )
            self._sleep(delay)

    def _delay(self) -> float:
        return backoff_delay(self.restart_count, self.initial_delay, self.max_delay)
