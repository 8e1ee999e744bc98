"""Tests for backoff, notifiers and the process supervisor."""

import logging
import subprocess
import sys
from unittest.mock import MagicMock, patch

import pytest

from app.indexer.backoff import backoff_delay
from app.indexer.notifier import ConsoleNotifier, ScriptNotifier, Severity
from app.indexer.supervisor import Supervisor


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def make_supervisor(exit_codes, clock=None, **kwargs):
    """Supervisor whose child exits with the given codes in order."""
    codes = iter(exit_codes)
    clock = clock or FakeClock()

    def runner(command):
        code = next(codes)
        if isinstance(code, Exception):
            raise code
        if isinstance(code, tuple):
            code, runtime = code
            clock.now += runtime
        return code

    notifier = MagicMock()
    sleeps = []

    def sleep(delay):
        sleeps.append(delay)
        clock.now += delay

    supervisor = Supervisor(
        ["index-collector"],
        notifier=notifier,
        runner=runner,
        sleep=sleep,
        clock=clock,
        **kwargs,
    )
    return supervisor, notifier, sleeps


class TestBackoff:
    """Unit tests for backoff_delay()."""

    def test_sequence(self):
        """Test 5, 10, 20, 40, 60, 60 for initial 5 and max 60."""
        assert [backoff_delay(n, 5, 60) for n in range(1, 7)] == [5, 10, 20, 40, 60, 60]

    def test_large_attempt_stays_capped(self):
        """Test that a huge attempt number does not overflow."""
        assert backoff_delay(10_000, 5, 60) == 60

    def test_attempt_zero(self):
        """Test that no attempt means no delay."""
        assert backoff_delay(0, 5, 60) == 0


class TestSupervisor:
    """Restart policy of the supervisor."""

    def test_clean_exit(self):
        """Test that a zero exit ends supervision successfully."""
        supervisor, notifier, sleeps = make_supervisor([0])
        assert supervisor.run() == 0
        assert sleeps == []
        notifier.notify.assert_not_called()

    def test_restart_after_crash(self):
        """Test a crash, a backoff sleep, then a clean exit."""
        supervisor, notifier, sleeps = make_supervisor([3, 0])
        assert supervisor.run() == 0
        assert sleeps == [5]

        message, severity = notifier.notify.call_args.args
        assert severity is Severity.WARNING
        assert "exit code 3" in message
        assert "Restarting in 5 seconds (attempt 1/5)" in message

    def test_gives_up_after_max_restarts(self):
        """Test the circuit breaker: critical notification and exit 1."""
        supervisor, notifier, sleeps = make_supervisor([1] * 10, monitoring_period=10_000)
        assert supervisor.run() == 1
        assert sleeps == [5, 10, 20, 40, 60]
        assert notifier.notify.call_args.args[1] is Severity.CRITICAL
        assert supervisor.restart_count == 5

    def test_launch_failure(self):
        """Test that a command that cannot start counts as a restart."""
        supervisor, notifier, sleeps = make_supervisor([FileNotFoundError("no such file"), 0])
        assert supervisor.run() == 0
        message, severity = notifier.notify.call_args.args
        assert severity is Severity.ERROR
        assert "Failed to start" in message

    def test_window_reset(self):
        """Test that the restart count resets once the monitoring period elapsed."""
        clock = FakeClock()
        supervisor, notifier, sleeps = make_supervisor(
            [1, 1, 1, 0], clock=clock, max_restarts=2, monitoring_period=12, initial_delay=5, max_delay=60
        )
        # crash (sleep 5), crash (sleep 10): t=15 > 12 so the window resets before the third launch
        assert supervisor.run() == 0
        assert sleeps == [5, 10, 5]

    def test_new_window_can_trip_the_breaker(self):
        """Test that a fresh window starts at the reset, so a later burst still gives up."""
        supervisor, notifier, sleeps = make_supervisor(
            [(1, 20.0), 1, 1, 1, 0],
            max_restarts=3,
            monitoring_period=12,
            initial_delay=1,
            max_delay=1,
        )
        # first child ran 20s, so the window resets at t=21; three quick crashes follow
        assert supervisor.run() == 1
        assert sleeps == [1, 1, 1, 1]
        assert notifier.notify.call_args.args[1] is Severity.CRITICAL


class TestNotifiers:
    """Console and script notification channels."""

    def test_console_logs_at_severity(self, caplog):
        """Test that the console notifier logs at the matching level."""
        with caplog.at_level(logging.INFO, logger="app.indexer.notifier"):
            ConsoleNotifier().notify("collector crashed", Severity.WARNING)
            ConsoleNotifier().notify("giving up", Severity.CRITICAL)
        assert [(r.levelno, r.getMessage()) for r in caplog.records] == [
            (logging.WARNING, "collector crashed"),
            (logging.CRITICAL, "giving up"),
        ]

    def test_script_receives_severity_prefix(self):
        """Test that the script gets 'SEVERITY: message' as its argument."""
        with patch("app.indexer.notifier.subprocess.run") as run:
            run.return_value = subprocess.CompletedProcess([], 0)
            ScriptNotifier("/usr/local/bin/notify.sh").notify("disk full", Severity.ERROR)
        assert run.call_args.args[0] == ["/usr/local/bin/notify.sh", "ERROR: disk full"]

    def test_script_missing_is_logged(self, caplog, tmp_path):
        """Test that a missing script is logged, not raised."""
        with caplog.at_level(logging.ERROR, logger="app.indexer.notifier"):
            ScriptNotifier(str(tmp_path / "missing.sh")).notify("hello", Severity.INFO)
        assert "Failed to run notification script" in caplog.text

    @pytest.mark.skipif(sys.platform == "win32", reason="needs a POSIX shell script")
    def test_script_runs(self, tmp_path):
        """Test a real script invocation."""
        out = tmp_path / "out.txt"
        script = tmp_path / "notify.sh"
        script.write_text(f'#!/bin/sh\necho "$1" > {out}\n')
        script.chmod(0o755)

        ScriptNotifier(str(script)).notify("collector restarted", Severity.WARNING)

        assert out.read_text().strip() == "WARNING: collector restarted"
