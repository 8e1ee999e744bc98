"""Console entry points: index-collector, index-client, index-supervisor."""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys

from .client import DEFAULT_SERVER, RECONNECT_DELAY, IndexSubscriber
from .collector import run_collector
from .config import load_config
from .errors import ConfigError, IndexerError, ListenerBindError
from .logging_config import configure_logging
from .notifier import ConsoleNotifier, ScriptNotifier
from .supervisor import DEFAULT_COMMAND, Supervisor

logger = logging.getLogger(__name__)

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CONFIG = 2


def collector_main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="index-collector",
        description="Poll market-data sources and stream weighted price indices over websocket.",
    )
    parser.add_argument("--config", help="TOML configuration file (default: $INDEXER_CONFIG or config.toml)")
    parser.add_argument("--log-level", type=str.upper, choices=LOG_LEVELS)
    args = parser.parse_args(argv)
    configure_logging(args.log_level)

    logger.info("Starting index collector")
    try:
        config = load_config(args.config)
    except ConfigError as e:
        logger.error("Configuration error: %s", e)
        return EXIT_CONFIG

    try:
        asyncio.run(run_collector(config))
    except ListenerBindError as e:
        logger.error("Cannot start broadcast listener: %s", e)
        return EXIT_FAILURE
    except IndexerError as e:
        logger.error("Collector failed: %s", e)
        return EXIT_FAILURE
    except KeyboardInterrupt:
        logger.info("Interrupted")
    return EXIT_OK


def client_main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="index-client", description="Print live index updates.")
    parser.add_argument("-s", "--server", default=DEFAULT_SERVER, help=f"stream URL (default: {DEFAULT_SERVER})")
    parser.add_argument(
        "--no-reconnect",
        dest="reconnect",
        action="store_false",
        help="exit when the connection closes or fails",
    )
    parser.add_argument("--reconnect-delay", type=float, default=RECONNECT_DELAY, metavar="SECONDS")
    parser.add_argument("--log-level", type=str.upper, choices=LOG_LEVELS)
    args = parser.parse_args(argv)
    configure_logging(args.log_level)

    subscriber = IndexSubscriber(args.server, reconnect=args.reconnect, reconnect_delay=args.reconnect_delay)

    async def main() -> None:
        stop = asyncio.Event()
        loop = asyncio.get_running_loop()
        try:
            loop.add_signal_handler(signal.SIGINT, stop.set)
            loop.add_signal_handler(signal.SIGTERM, stop.set)
        except NotImplementedError:
            pass  # Windows: Ctrl+C arrives as KeyboardInterrupt
        await subscriber.run(stop)

    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Interrupted")
    except Exception as e:
        logger.error("Subscriber failed: %s", e)
        return EXIT_FAILURE
    return EXIT_OK


def supervisor_main(argv: list[str] | None = None) -> int:
    argv = list(sys.argv[1:] if argv is None else argv)
    command = list(DEFAULT_COMMAND)
    if "--" in argv:
        split = argv.index("--")
        argv, command = argv[:split], argv[split + 1 :] or command

    parser = argparse.ArgumentParser(
        prog="index-supervisor",
        description="Run the collector and restart it on failure. Pass a custom command after '--'.",
    )
    parser.add_argument("--max-restarts", type=int, default=5, help="restarts allowed per monitoring period")
    parser.add_argument("--monitoring-period-minutes", type=float, default=10)
    parser.add_argument("--initial-restart-delay", type=float, default=5, metavar="SECONDS")
    parser.add_argument("--max-restart-delay", type=float, default=60, metavar="SECONDS")
    parser.add_argument("--notification-script", help="executable called with 'SEVERITY: message'")
    parser.add_argument("--log-level", type=str.upper, choices=LOG_LEVELS)
    args = parser.parse_args(argv)
    configure_logging(args.log_level)

    notifier = ScriptNotifier(args.notification_script) if args.notification_script else ConsoleNotifier()
    supervisor = Supervisor(
        command,
        max_restarts=args.max_restarts,
        monitoring_period=args.monitoring_period_minutes * 60,
        initial_delay=args.initial_restart_delay,
        max_delay=args.max_restart_delay,
        notifier=notifier,
    )
    try:
        return supervisor.run()
    except KeyboardInterrupt:
        logger.info("Supervisor interrupted")
        return EXIT_FAILURE


if __name__ == "__main__":
    sys.exit(collector_main())
