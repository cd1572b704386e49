import logging
import sys
import json
from typing import Dict, Any, Set, Union

import colorlog

USE_JSON_LOGGING = False

_COLOR_FORMAT = "%(log_color)s[%(levelname)-8s] %(name)s: %(message)s%(reset)s"
_LOG_COLORS = {
    "DEBUG": "cyan",
    "INFO": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "red,bg_white",
}

# names of every logger handed out by setup_logging()
_configured: Set[str] = set()


class JsonFormatter(logging.Formatter):
    """Formats log records as JSON strings."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry: Dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "name": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)
        if record.stack_info:
            log_entry["stack_info"] = self.formatStack(record.stack_info)

        standard_attrs = logging.LogRecord(
            "", "", "", "", "", "", "", ""
        ).__dict__.keys()
        extra_data = {
            k: v
            for k, v in record.__dict__.items()
            if k not in standard_attrs and not k.startswith("_")
        }
        if extra_data:
            log_entry.update(extra_data)

        log_entry["component"] = getattr(
            record, "component", None) or extra_data.get(
            "component", "N/A")
        log_entry["tx_hash"] = getattr(
            record, "tx_hash", None) or extra_data.get(
            "tx_hash", None)

        if log_entry["component"] == "N/A" and "component" in log_entry:
            del log_entry["component"]
        if log_entry["tx_hash"] is None and "tx_hash" in log_entry:
            del log_entry["tx_hash"]

        return json.dumps(log_entry, default=str)


def _to_level(level: Union[int, str]) -> int:
    if isinstance(level, str):
        resolved = logging.getLevelName(level.upper())
        if not isinstance(resolved, int):
            raise ValueError(f"Unknown log level '{level}'")
        return resolved
    return level


def _make_formatter(use_json: bool) -> logging.Formatter:
    if use_json:
        return JsonFormatter(datefmt="%Y-%m-%dT%H:%M:%S%z")
    return colorlog.ColoredFormatter(
        _COLOR_FORMAT,
        log_colors=_LOG_COLORS,
        secondary_log_colors={},
        style="%",  # Use %-style formatting
    )


def setup_logging(
    name: str,
    level: Union[int, str] = logging.INFO,
) -> logging.Logger:
    """
    Configures and returns a logger instance. Supports color or JSON format.

    Args:
        name (str): The name for the logger.
        level (int | str): The logging level (e.g. logging.DEBUG or "DEBUG").

    Returns:
        logging.Logger: The configured logger instance.
    """
    level = _to_level(level)
    logger = logging.getLogger(name)

    if not logger.handlers or level < logger.level:
        logger.setLevel(level)

    if not logger.handlers:
        if USE_JSON_LOGGING:
            handler = logging.StreamHandler(sys.stdout)
        else:
            handler = colorlog.StreamHandler(sys.stdout)
        handler.setFormatter(_make_formatter(USE_JSON_LOGGING))
        logger.addHandler(handler)

    _configured.add(name)
    return logger


def configure_logging(level: Union[int, str] = logging.INFO, use_json: bool = False) -> None:
    """
    Re-applies level and output format to every logger created by
    setup_logging(). Called once at startup, after the configuration is loaded.
    """
    global USE_JSON_LOGGING
    USE_JSON_LOGGING = use_json
    level = _to_level(level)

    for name in _configured:
        logger = logging.getLogger(name)
        logger.setLevel(level)
        for handler in logger.handlers:
            handler.setFormatter(_make_formatter(use_json))
