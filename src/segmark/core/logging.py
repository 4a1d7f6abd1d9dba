"""Structured logging setup."""

import logging
import logging.handlers
from pathlib import Path
from typing import Optional

import structlog

from segmark.core.config import Settings, settings as default_settings

_ROTATION_MAP = {
    "daily": "D",
    "weekly": "W0",
    "hourly": "H",
}


def parse_size(size_str: str) -> int:
    """Parse size string like '100MB' to bytes."""
    size_str = size_str.strip().upper()
    if size_str.endswith('KB'):
        return int(size_str[:-2]) * 1024
    elif size_str.endswith('MB'):
        return int(size_str[:-2]) * 1024 * 1024
    elif size_str.endswith('GB'):
        return int(size_str[:-2]) * 1024 * 1024 * 1024
    else:
        return int(size_str)


def _build_file_handler(config: Settings) -> Optional[logging.Handler]:
    if not config.log_file:
        return None

    log_path = Path(config.log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    if config.log_rotation == "size":
        return logging.handlers.RotatingFileHandler(
            log_path,
            maxBytes=parse_size(config.log_max_size),
            backupCount=config.log_backup_count,
        )

    when = _ROTATION_MAP.get(config.log_rotation.lower(), "D")
    return logging.handlers.TimedRotatingFileHandler(
        log_path,
        when=when,
        backupCount=config.log_backup_count,
    )


def configure_logging(config: Optional[Settings] = None) -> None:
    """Configure structlog on top of the stdlib logging module.

    Args:
        config: Settings to read log level, format and file rotation from.
            Defaults to the process-wide settings.
    """
    config = config or default_settings

    processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if config.log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, config.log_level.upper(), logging.INFO))

    if not any(getattr(handler, "_segmark", False) for handler in root_logger.handlers):
        console_handler = logging.StreamHandler()
        console_handler._segmark = True
        root_logger.addHandler(console_handler)

        file_handler = _build_file_handler(config)
        if file_handler is not None:
            file_handler._segmark = True
            root_logger.addHandler(file_handler)
