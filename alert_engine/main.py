"""Main entry point for the Listing Alert Engine service."""

from dotenv import load_dotenv
load_dotenv()

import argparse
import signal
import sys
import time
from pathlib import Path
from typing import List, Optional, Tuple

from alert_engine.config.environment import EnvironmentConfig
from alert_engine.config.exceptions import ConfigurationError
from alert_engine.config.loader import load_config
from alert_engine.config.models import AppConfig
from alert_engine.engine import AlertEngineService
from alert_engine.logging import get_logger
from alert_engine.logging.config import configure_logging
from alert_engine.persistence import close_database, init_database

logger = get_logger(__name__, component="cli")


def load_runtime_config(
    config_path: Path, log_level_override: Optional[str]
) -> Tuple[AppConfig, EnvironmentConfig]:
    """
    Load configuration and resolve the effective log level.

    Log level priority: CLI > LOG_LEVEL environment variable > config file.

    Raises:
        ConfigurationError: If configuration is invalid
    """
    app_config, env_config = load_config(config_path)

    if log_level_override:
        env_config.log_level = log_level_override
    elif not env_config.log_level:
        env_config.log_level = app_config.logging.level or "INFO"

    return app_config, env_config


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Listing Alert Engine - matches new listings against saved criteria and notifies owners"
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=Path("config.yaml"),
        help="Path to configuration file (default: config.yaml)",
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--manual-run",
        action="store_true",
        help="Poll the listing feed once, process the batch and exit",
    )
    mode.add_argument(
        "--rescan-now",
        action="store_true",
        help="Run one re-scan of recent listings and exit",
    )
    mode.add_argument(
        "--redrive-dead-letters",
        action="store_true",
        help="Re-process pending dead-lettered events and exit",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Log level (overrides config and environment)",
    )
    return parser


def run_manual(service: AlertEngineService) -> int:
    outcomes = service.run_once()
    failed = [o for o in outcomes if o.error]
    logger.info(
        f"Manual run completed: {len(outcomes)} events, "
        f"{sum(len(o.claimed) for o in outcomes)} notified, {len(failed)} failed",
        extra={
            "event": "service.manual_run.completed",
            "events": len(outcomes),
            "notified": sum(len(o.claimed) for o in outcomes),
            "failed": len(failed),
        },
    )
    return 1 if failed else 0


def run_rescan(service: AlertEngineService) -> int:
    result = service.rescan_now()
    return 1 if result.errors else 0


def run_redrive(service: AlertEngineService) -> int:
    redriven = service.redrive_dead_letters()
    outcomes = service.drain_queue()
    failed = [o for o in outcomes if o.error]
    logger.info(
        f"Re-drive completed: {redriven} events, {len(failed)} failed again",
        extra={
            "event": "service.redrive.completed",
            "redriven": redriven,
            "failed": len(failed),
        },
    )
    return 1 if failed else 0


def run_daemon(service: AlertEngineService) -> int:
    def signal_handler(signum, frame):
        logger.info(
            f"Received signal {signum}, shutting down",
            extra={"event": "service.signal_received", "signal": signum},
        )
        service.shutdown_event.set()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    service.start()
    logger.info(
        "Engine running. Press Ctrl+C to stop",
        extra={"event": "service.daemon_mode.started"},
    )
    try:
        service.shutdown_event.wait()
    except KeyboardInterrupt:
        logger.info(
            "Keyboard interrupt received, shutting down",
            extra={"event": "service.keyboard_interrupt"},
        )
    service.stop()
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point for the Listing Alert Engine.

    Returns:
        Exit code (0 for success, non-zero for failure).
    """
    start_time = time.time()
    args = build_parser().parse_args(argv)

    try:
        app_config, env_config = load_runtime_config(args.config, args.log_level)
        configure_logging(
            level=env_config.log_level,
            format_type=app_config.logging.format,
            environment=env_config.environment,
        )

        mode = (
            "manual-run" if args.manual_run
            else "rescan-now" if args.rescan_now
            else "redrive-dead-letters" if args.redrive_dead_letters
            else "daemon"
        )
        logger.info(
            "Listing Alert Engine starting",
            extra={
                "event": "service.starting",
                "config_path": str(args.config),
                "log_level": env_config.log_level,
                "mode": mode,
            },
        )

        init_database(
            env_config.database_url,
            busy_timeout_seconds=app_config.engine.claim_timeout_seconds,
        )
        service = AlertEngineService(app_config, env_config)

        try:
            if args.manual_run:
                return run_manual(service)
            if args.rescan_now:
                return run_rescan(service)
            if args.redrive_dead_letters:
                return run_redrive(service)
            return run_daemon(service)
        finally:
            service.stop()
            close_database()
            logger.info(
                "Listing Alert Engine stopped",
                extra={
                    "event": "service.stopping",
                    "uptime_seconds": round(time.time() - start_time, 2),
                },
            )

    except ConfigurationError as e:
        print(f"Configuration Error: {e}", file=sys.stderr)
        logger.error(
            f"Configuration error: {e}",
            extra={"event": "config.error", "error_type": "ConfigurationError"},
        )
        return 1
    except KeyboardInterrupt:
        print("\nShutdown requested by user", file=sys.stderr)
        return 0
    except Exception as e:
        print(f"Fatal error: {e}", file=sys.stderr)
        logger.critical(
            "Fatal error",
            extra={
                "event": "service.startup.failed",
                "error_type": type(e).__name__,
                "error": str(e),
            },
            exc_info=True,
        )
        return 1


if __name__ == "__main__":
    sys.exit(main())
