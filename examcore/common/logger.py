"""
Application Logger

Logging setup for the engine: a console or JSON formatter, an optional log
file, an adapter that stamps session context on records, and a timing
decorator for grading passes.
"""

import os
import sys
import json
import time
import logging
import datetime
import functools
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar, Union

DEFAULT_LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)-30s | %(message)s"
DEFAULT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

F = TypeVar('F', bound=Callable[..., Awaitable[Any]])

__all__ = [
    'configure_logger',
    'LoggerAdapter',
    'JsonFormatter',
    'app_logger',
    'log_execution_time'
]


class JsonFormatter(logging.Formatter):
    """
    Formatter that outputs one JSON object per log record.

    Extra fields passed as ``extra={"data": {...}}`` are merged into the
    emitted object, which is how session and user identifiers reach the
    log aggregator.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.datetime.fromtimestamp(record.created).isoformat(),
            "name": record.name,
            "level": record.levelname,
            "message": record.getMessage(),
            "module": record.module,
            "line": record.lineno
        }

        if record.exc_info:
            exc_type, exc_value, _ = record.exc_info
            entry["exception"] = {
                "type": exc_type.__name__,
                "message": str(exc_value),
                "traceback": self.formatException(record.exc_info)
            }

        data = getattr(record, "data", None)
        if isinstance(data, dict):
            entry.update(data)

        return json.dumps(entry, default=str)


def configure_logger(
    name: str = "examcore",
    level: Union[str, int] = logging.INFO,
    use_json: bool = False,
    log_file: Optional[str] = None
) -> logging.Logger:
    """
    Replace the handlers of the named logger.

    Args:
        name: Logger name
        level: Log level name or number
        use_json: Emit one JSON object per line instead of the text format
        log_file: Also write to this file when set

    Returns:
        The configured logger
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper())

    logger = logging.getLogger(name)
    logger.setLevel(level)
    logger.handlers = []

    if use_json:
        formatter = JsonFormatter()
    else:
        formatter = logging.Formatter(DEFAULT_LOG_FORMAT, DEFAULT_DATE_FORMAT)

    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        try:
            directory = os.path.dirname(log_file)
            if directory:
                os.makedirs(directory, exist_ok=True)
            handlers.append(logging.FileHandler(log_file))
        except OSError as e:
            logging.getLogger("fallback").warning(f"Could not open log file {log_file}: {e}")

    for handler in handlers:
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    return logger


class LoggerAdapter(logging.LoggerAdapter):
    """
    Logger adapter that copies its context into ``extra["data"]``.

    Used to stamp every message from a session-scoped operation with the
    session and user identifiers.
    """

    def __init__(self, logger: logging.Logger, context: Dict[str, Any] = None):
        super().__init__(logger, context or {})

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple:
        kwargs = dict(kwargs)
        extra = dict(kwargs.get('extra') or {})
        data = dict(extra.get('data') or {})
        data.update(self.extra)
        extra['data'] = data
        kwargs['extra'] = extra
        return msg, kwargs

    def with_context(self, **context) -> 'LoggerAdapter':
        """Return a new adapter with ``context`` added to this one's."""
        return LoggerAdapter(self.logger, {**self.extra, **context})


def _default_logger() -> logging.Logger:
    logger = logging.getLogger("examcore")
    if logger.handlers:
        return logger
    return configure_logger(
        name="examcore",
        level=os.environ.get("LOG_LEVEL", "INFO"),
        use_json=os.environ.get("LOG_JSON", "false").lower() == "true",
        log_file=os.environ.get("LOG_FILE")
    )


app_logger = _default_logger()


def log_execution_time(logger: Optional[logging.Logger] = None) -> Callable[[F], F]:
    """
    Log how long a coroutine function takes, at debug level on success.

    Args:
        logger: Logger to use; defaults to ``app_logger``
    """
    target = logger or app_logger

    def decorator(func: F) -> F:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            started = time.perf_counter()
            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                target.error(f"{func.__name__} failed after {time.perf_counter() - started:.3f}s: {e}")
                raise
            target.debug(f"{func.__name__} took {time.perf_counter() - started:.3f}s")
            return result

        return wrapper
    return decorator
