import json
import logging
from typing import Optional

from config import settings

_LEVELS = {
    "CRITICAL": logging.CRITICAL,
    "ERROR": logging.ERROR,
    "WARNING": logging.WARNING,
    "INFO": logging.INFO,
    "DEBUG": logging.DEBUG,
    "NOTSET": logging.NOTSET,
}


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload)


def _make_console_formatter() -> logging.Formatter:
    return logging.Formatter(
        fmt="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def setup_logging(level: Optional[str] = None, fmt: Optional[str] = None) -> None:
    """
    Initialize root logging once.
    Falls back to settings.log_level / settings.log_format (LOG_LEVEL, LOG_FORMAT).
    """
    level = (level or settings.log_level or "INFO").upper()
    fmt = (fmt or settings.log_format or "text").lower()

    log_level = _LEVELS.get(level, logging.INFO)
    formatter = JsonFormatter() if fmt == "json" else _make_console_formatter()

    root = logging.getLogger()
    # uvicorn installs its own handlers; replace them with ours
    for h in list(root.handlers):
        root.removeHandler(h)

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)
    root.addHandler(handler)
    root.setLevel(log_level)

    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        lg = logging.getLogger(name)
        lg.handlers = [handler]
        lg.setLevel(log_level)
