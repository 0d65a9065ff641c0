"""Main entry point for the seed operator.

The remote API client is not built here: SEEDER_API_FACTORY names an
importable ``module:callable`` that receives the Config and returns a
RemoteAPI implementation (authentication and transport live there).
"""

from __future__ import annotations

import asyncio
import json
import logging
import signal
import sys
from datetime import UTC, datetime

from .config import Config, ConfigurationError
from .reconciler import SeedReconciler
from .remote import RemoteAPI, load_api_factory
from .store import SeedStore

_RECORD_ATTRIBUTES = frozenset(
    {
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "exc_info",
        "exc_text",
        "thread",
        "threadName",
        "taskName",
        "message",
    }
)


class JsonFormatter(logging.Formatter):
    """Format logs as JSON for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
        }

        # Add extra fields from the record
        for key, value in record.__dict__.items():
            if key not in _RECORD_ATTRIBUTES:
                log_data[key] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def setup_logging(json_output: bool = True) -> None:
    """Configure logging on stdout, JSON for production or plain text."""
    handler = logging.StreamHandler(sys.stdout)
    if json_output:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(logging.INFO)

    logging.getLogger("urllib3").setLevel(logging.WARNING)


def build_api(config: Config) -> RemoteAPI:
    """Build the remote API client through the configured factory.

    Raises:
        ConfigurationError: If no factory is configured or it returns the wrong type.
    """
    if not config.api_factory:
        raise ConfigurationError("SEEDER_API_FACTORY is required to reach the remote API")

    factory = load_api_factory(config.api_factory)
    api = factory(config)
    if not isinstance(api, RemoteAPI):
        raise ConfigurationError(
            f"API factory '{config.api_factory}' returned {type(api).__name__}, "
            "which does not implement list/get/create/update/assign_role"
        )
    return api


async def main() -> int:
    """Run the operator.

    Returns:
        Exit code (0 for success, non-zero for failure).
    """
    logger = logging.getLogger(__name__)

    try:
        config = Config.from_env()
    except ConfigurationError as e:
        setup_logging()
        logger.error("Configuration error", extra={"error": str(e)})
        return 1

    setup_logging(json_output=config.json_logging)

    try:
        api = build_api(config)
    except ConfigurationError as e:
        logger.error("Configuration error", extra={"error": str(e)})
        return 1
    except Exception as e:
        logger.error(
            "Failed to initialize remote API client",
            extra={"error": str(e), "error_type": type(e).__name__},
        )
        return 1

    logger.info(
        "Starting seed operator",
        extra={
            "specs_dir": str(config.specs_dir),
            "status_dir": str(config.status_dir),
            "region_name": config.region_name,
        },
    )

    reconciler = SeedReconciler(config, SeedStore(config.specs_dir, config.status_dir), api)

    # Set up signal handlers for graceful shutdown
    loop = asyncio.get_running_loop()

    def signal_handler(sig: signal.Signals) -> None:
        logger.info("Received signal", extra={"signal": sig.name})
        reconciler.shutdown()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, lambda s=sig: signal_handler(s))

    try:
        await reconciler.run()
    except Exception as e:
        logger.exception("Unhandled exception", extra={"error": str(e)})
        return 1

    logger.info("Operator stopped")
    return 0


def run() -> None:
    """Entry point for the operator CLI."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
