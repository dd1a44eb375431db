"""Logging setup for the EcoSpatial agent.

Provider endpoints take their credentials as query parameters, and httpx and
the agent log full request URLs at DEBUG level. Every handler installed here
carries a filter that masks those parameters before records are written.
"""

from __future__ import annotations

import logging
import logging.handlers
import os
import re
from pathlib import Path

__all__ = ["setup_logging", "get_log_path", "mask_query_secrets", "SecretQueryFilter"]

_DEFAULT_LOG_DIR = Path.home() / ".ecospatial" / "logs"
_LOG_FILENAME = "ecospatial.log"
_NOISY_LOGGERS: tuple[str, ...] = ("asyncio", "httpx", "httpcore", "openai")
_SECRET_PARAMS = ("serviceKey", "KEY", "apiKey", "consumer_key", "consumer_secret", "accessToken")
_SECRET_PATTERN = re.compile(r"(?P<name>\b(?:%s))=(?P<value>[^&\s'\"]+)" % "|".join(_SECRET_PARAMS))
_CONFIGURED = False
_LOG_PATH: Path | None = None


def mask_query_secrets(text: str) -> str:
    """Replace credential query-parameter values in ``text`` with ``***``."""

    return _SECRET_PATTERN.sub(lambda match: f"{match.group('name')}=***", text)


class SecretQueryFilter(logging.Filter):
    """Masks provider credentials embedded in formatted log messages."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        masked = mask_query_secrets(message)
        if masked != message:
            record.msg = masked
            record.args = None
        return True


def setup_logging(
    level: int = logging.INFO,
    *,
    log_dir: Path | str | None = None,
    console: bool = False,
    max_bytes: int = 1_000_000,
    backup_count: int = 3,
    force: bool = False,
) -> Path:
    """Install a rotating file handler and an optional stderr handler.

    The console handler is off by default because the REPL owns stdout.
    """

    global _CONFIGURED, _LOG_PATH
    if _CONFIGURED and not force and _LOG_PATH is not None:
        return _LOG_PATH

    target_dir = Path(log_dir or os.environ.get("ECOSPATIAL_LOG_DIR") or _DEFAULT_LOG_DIR).expanduser()
    target_dir.mkdir(parents=True, exist_ok=True)
    log_path = target_dir / _LOG_FILENAME

    formatter = logging.Formatter(
        fmt="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    redactor = SecretQueryFilter()

    file_handler = logging.handlers.RotatingFileHandler(
        log_path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
    )
    handlers: list[logging.Handler] = [file_handler]
    if console:
        handlers.append(logging.StreamHandler())
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        handler.addFilter(redactor)

    logging.basicConfig(level=level, handlers=handlers, force=True)
    logging.captureWarnings(True)

    quiet_level = max(level, logging.WARNING)
    for logger_name in _NOISY_LOGGERS:
        logging.getLogger(logger_name).setLevel(quiet_level)

    _CONFIGURED = True
    _LOG_PATH = log_path
    return log_path


def get_log_path() -> Path | None:
    """Return the currently configured log file if available."""

    return _LOG_PATH
