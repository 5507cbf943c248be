import inspect
import json
import logging
import os
import sys
import threading
from typing import Any

from loguru import logger

# Bound context keys copied into the JSON file sink
_CONTEXT_KEYS = ("review_id", "task_id", "platform", "provider_id")


class InterceptHandler(logging.Handler):

    def emit(self, record: logging.LogRecord) -> None:
        # Get corresponding Loguru level if it exists.
        level: str | int
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno
        # Find caller from where originated the logged message.
        frame, depth = inspect.currentframe(), 0
        while frame and (depth == 0 or frame.f_code.co_filename == logging.__file__):
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )


def structured_formatter(record: dict[str, Any]) -> str:
    """
    Render a log record as one JSON line.

    Pipeline context bound with ``logger.bind(review_id=..., task_id=...)``
    is carried into the output, together with ``latency_ms`` and ``status``
    for timed external calls.
    """
    log_data = {
        "timestamp": record["time"].isoformat(),
        "level": record["level"].name,
        "message": record["message"],
        "file": record["file"].name,
        "line": record["line"],
    }

    extra = record.get("extra", {})
    for key in _CONTEXT_KEYS:
        if key in extra:
            log_data[key] = str(extra[key])
    if "latency_ms" in extra:
        log_data["latency_ms"] = int(extra["latency_ms"])
    if "status" in extra:
        log_data["status"] = extra["status"]

    # loguru treats the return value as a format string
    return json.dumps(log_data).replace("{", "{{").replace("}", "}}") + "\n"



# Third-party loggers that are too chatty at DEBUG for the JSON sink
NOISY_LOGGERS = ("httpcore", "httpx", "urllib3", "openai", "sqlalchemy", "kombu")

_lock = threading.Lock()
_configured = False


def setup_logging(level: str | None = None, log_file: str | None = None, force: bool = False) -> None:
    """
    Route stdlib logging through loguru and install the console and file sinks.

    The API (main.py) and the worker (celery_app.py) both call this at import
    time; only the first call installs sinks unless ``force`` is set.

    Args:
        level: Minimum console level (defaults to ``LOG_LEVEL`` or INFO)
        log_file: Path of the JSON log file (defaults to ``LOG_FILE``)
        force: Reinstall sinks even if logging is already configured
    """
    global _configured
    level = level or os.getenv("LOG_LEVEL", "INFO").upper()
    log_file = log_file or os.getenv("LOG_FILE", "./logs/app.log")

    with _lock:
        if _configured and not force:
            return

        logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
        for name in list(logging.root.manager.loggerDict):
            std_logger = logging.getLogger(name)
            std_logger.handlers = []
            std_logger.propagate = True

        logger.remove()
        for name in NOISY_LOGGERS:
            logger.disable(name)

        logger.add(
            sink=sys.stdout,
            level=level,
            format="<white>{time:YYYY-MM-DD HH:mm:ss}</white>"
            " | <level>{level: <8}</level>"
            " | <cyan>{name}:{line}</cyan>"
            " - <white><b>{message}</b></white>",
        )

        # One JSON object per line; enqueue keeps worker threads from interleaving writes
        logger.add(
            sink=log_file,
            format=structured_formatter,
            level="DEBUG",
            rotation="10 MB",
            retention="10 days",
            compression="zip",
            enqueue=True,
        )
        _configured = True
