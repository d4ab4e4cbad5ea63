"""Logging channels for sync runs, the integration log mirror and errors."""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, List, Optional

from .config import get_config


class IntegrationFormatter(logging.Formatter):
    """Appends integration log metadata to the line as ``key=value`` pairs.

    Records without ``integration_metadata`` format as usual.
    """

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        metadata: Optional[Dict[str, Any]] = getattr(record, "integration_metadata", None)
        if not metadata:
            return line
        pairs = " ".join(f"{key}={value}" for key, value in sorted(metadata.items()))
        return f"{line} | {pairs}"


def _handlers(log_file: Optional[str], formatter: logging.Formatter) -> List[logging.Handler]:
    config = get_config()

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(logging.INFO)
    handlers: List[logging.Handler] = [console]

    # Containers log to stdout only; files are for local runs.
    if log_file and not config.is_production:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        rotating = RotatingFileHandler(
            log_file,
            maxBytes=config.logging.max_bytes,
            backupCount=config.logging.backup_count
        )
        rotating.setLevel(logging.DEBUG)
        handlers.append(rotating)

    for handler in handlers:
        handler.setFormatter(formatter)
    return handlers


def setup_logger(
    name: str,
    log_file: Optional[str] = None,
    level: Optional[str] = None,
    formatter_class: type = logging.Formatter,
) -> logging.Logger:
    """
    Configure a named channel once: stdout, plus a rotating file outside production.

    Args:
        name: Logger name
        log_file: Optional log file path
        level: Optional log level (overrides config)
        formatter_class: Formatter built from the configured format string

    Returns:
        Configured logger instance
    """
    config = get_config()

    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, (level or config.logging.level).upper()))

    if logger.handlers:
        return logger

    for handler in _handlers(log_file, formatter_class(config.logging.format)):
        logger.addHandler(handler)
    return logger


def get_sync_logger() -> logging.Logger:
    """Get logger for sync runs, the CLI and the server."""
    config = get_config()
    return setup_logger("sync", config.logging.files.sync)


def get_integration_logger() -> logging.Logger:
    """Get logger mirroring the integration log sink, metadata included."""
    config = get_config()
    return setup_logger("integration", config.logging.files.integration, "DEBUG", IntegrationFormatter)


def get_error_logger() -> logging.Logger:
    """Get logger for error tracking.

    Also the fallback channel when the integration log sink cannot be written.
    """
    config = get_config()
    return setup_logger("error", config.logging.files.error, "ERROR")


def get_api_logger() -> logging.Logger:
    return setup_logger("api")


def get_scheduler_logger() -> logging.Logger:
    """APScheduler's own channel, so job exceptions are not lost."""
    return setup_logger("apscheduler")
