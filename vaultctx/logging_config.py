"""
Logging setup for vaultctx.

Everything in the package logs through module-level loggers; this module only
decides where records go. Console output goes to stderr so stdout stays free
for whatever process embeds the engine. A vault can additionally log to a
rotating file under its data directory, as text or as one JSON object per
line.
"""

import json
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Iterable, Optional

from .config import Config, LoggingSettings

TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_STANDARD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}


class JsonFormatter(logging.Formatter):
    """One JSON object per record, for log shippers and `jq`."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        # logger.info(..., extra={"path": ...}) and extra={"extra": {...}} both land here
        for key, value in vars(record).items():
            if key in _STANDARD_ATTRS or key.startswith("_"):
                continue
            if key == "extra" and isinstance(value, dict):
                entry.update(value)
            else:
                entry[key] = value
        return json.dumps(entry, default=str)


def _formatter(json_format: bool) -> logging.Formatter:
    if json_format:
        return JsonFormatter()
    return logging.Formatter(fmt=TEXT_FORMAT, datefmt=DATE_FORMAT)


def _level(name: str) -> int:
    level = logging.getLevelName(name.upper())
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {name!r}")
    return level


def setup_logging(
    level: str = "INFO",
    log_file: Optional[Path] = None,
    json_format: bool = False,
    max_log_size_mb: int = 10,
    log_backups: int = 5,
    quiet_loggers: Iterable[str] = (),
) -> None:
    """
    Configure the root logger.

    Replaces any handlers already installed on the root logger.
    If the log file cannot be opened, logging continues on stderr only.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional rotating log file
        json_format: Emit JSON lines instead of text
        max_log_size_mb: Size at which the log file rotates
        log_backups: Rotated files to keep
        quiet_loggers: Third-party loggers capped at WARNING

    Raises:
        ValueError: If level is not a known level name
    """
    numeric_level = _level(level)
    formatter = _formatter(json_format)

    root = logging.getLogger()
    root.setLevel(numeric_level)
    for handler in root.handlers[:]:
        root.removeHandler(handler)

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(formatter)
    console.setLevel(numeric_level)
    root.addHandler(console)

    file_status = "disabled"
    if log_file is not None:
        try:
            log_file.parent.mkdir(parents=True, exist_ok=True)
            rotating = RotatingFileHandler(
                filename=str(log_file),
                maxBytes=max_log_size_mb * 1024 * 1024,
                backupCount=log_backups,
                encoding="utf-8",
            )
        except OSError as e:
            root.warning(f"Cannot log to {log_file} ({e}); logging to stderr only")
        else:
            rotating.setFormatter(formatter)
            rotating.setLevel(numeric_level)
            root.addHandler(rotating)
            file_status = str(log_file)

    for name in quiet_loggers:
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))

    root.debug(
        f"Logging configured: level={level.upper()}, file={file_status}, "
        f"format={'json' if json_format else 'text'}"
    )


def configure_from_settings(settings: LoggingSettings, log_file: Optional[Path] = None) -> None:
    """Apply typed logging settings."""
    setup_logging(
        level=settings.level,
        log_file=log_file,
        json_format=settings.json_format,
        max_log_size_mb=settings.max_size_mb,
        log_backups=settings.backups,
        quiet_loggers=settings.quiet_loggers,
    )


def setup_logging_from_config(config: Config) -> None:
    """Configure logging from the [logging] section of a vault config."""
    configure_from_settings(config.log_settings, config.log_file)


def set_log_level(level: str) -> None:
    """Change the level of the root logger and all of its handlers."""
    numeric_level = _level(level)
    root = logging.getLogger()
    root.setLevel(numeric_level)
    for handler in root.handlers:
        handler.setLevel(numeric_level)
