"""
Application Logger

Logging setup for the placement test backend. Every module logs through a
child of the "placement" logger; records emitted through LoggerAdapter carry
the session and user they concern, rendered as key=value pairs in text mode
and as top-level fields in JSON mode.
"""

import os
import sys
import json
import time
import logging
import datetime
import functools
import asyncio
from typing import Dict, Any, Optional, Union, Callable, TypeVar

DEFAULT_LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)-40s | %(message)s%(context)s"
DEFAULT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

APP_LOGGER_NAME = "placement"

F = TypeVar('F', bound=Callable[..., Any])

__all__ = [
    'configure_logger',
    'get_logger',
    'LoggerAdapter',
    'JsonFormatter',
    'ContextFormatter',
    'app_logger',
    'log_execution_time'
]


def _record_context(record: logging.LogRecord) -> Dict[str, Any]:
    context = getattr(record, 'context', None)
    return context if isinstance(context, dict) else {}


class ContextFormatter(logging.Formatter):
    """Plain-text formatter that appends the record's context as key=value pairs."""

    def format(self, record: logging.LogRecord) -> str:
        context = _record_context(record)
        record.context = "".join(f" {key}={value}" for key, value in context.items()) if context else ""
        try:
            return super().format(record)
        finally:
            record.context = context


class JsonFormatter(logging.Formatter):
    """
    Formatter that renders each record as a single JSON object.

    Context fields (session_id, user_id, level, ...) are merged into the
    top-level object so log aggregators can filter on them.
    """

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.datetime.fromtimestamp(record.created).isoformat(),
            "logger": record.name,
            "level": record.levelname,
            "message": record.getMessage(),
            "module": record.module,
            "line": record.lineno
        }
        payload.update(_record_context(record))

        if record.exc_info:
            payload["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": self.formatException(record.exc_info)
            }

        return json.dumps(payload, default=str)


def configure_logger(
    name: str = APP_LOGGER_NAME,
    level: Union[str, int] = logging.INFO,
    use_json: bool = False,
    log_file: Optional[str] = None,
    console_output: bool = True
) -> logging.Logger:
    """
    Configure a logger with console and optional file handlers.

    Calling this again replaces the handlers installed by a previous call.

    Args:
        name: Logger name
        level: Log level name or number
        use_json: Whether to emit JSON instead of text
        log_file: Path of a log file to append to, None for no file output
        console_output: Whether to log to stdout

    Returns:
        Configured logger
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper())

    logger = logging.getLogger(name)
    logger.setLevel(level)
    logger.handlers = []

    if use_json:
        formatter = JsonFormatter()
    else:
        formatter = ContextFormatter(DEFAULT_LOG_FORMAT, DEFAULT_DATE_FORMAT)

    if console_output:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    if log_file:
        try:
            directory = os.path.dirname(log_file)
            if directory:
                os.makedirs(directory, exist_ok=True)
            file_handler = logging.FileHandler(log_file)
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)
        except (FileNotFoundError, PermissionError) as e:
            logger.warning(f"Could not open log file {log_file}: {e}")

    return logger


def get_logger(name: str, parent: Optional[logging.Logger] = None) -> logging.Logger:
    """
    Get a logger by name, optionally as a child of another logger.

    Module names outside the placement package are nested under the
    application logger so they share its handlers.
    """
    if parent:
        return parent.getChild(name)
    if name == APP_LOGGER_NAME or name.startswith(APP_LOGGER_NAME + "."):
        return logging.getLogger(name)
    return logging.getLogger(APP_LOGGER_NAME).getChild(name)


class LoggerAdapter(logging.LoggerAdapter):
    """
    Logger adapter that stamps records with contextual fields.

    Example:
        log = LoggerAdapter(logger).with_context(session_id=sid, user_id=uid)
        log.info("Session started")
    """

    def __init__(self, logger: logging.Logger, context: Optional[Dict[str, Any]] = None):
        super().__init__(logger, context or {})

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple:
        extra = dict(kwargs.get('extra') or {})
        context = dict(self.extra)
        context.update(extra.get('context') or {})
        extra['context'] = context
        kwargs['extra'] = extra
        return msg, kwargs

    def with_context(self, **context) -> 'LoggerAdapter':
        """Return a new adapter whose context adds the given fields."""
        merged = dict(self.extra)
        merged.update(context)
        return LoggerAdapter(self.logger, merged)


def _init_app_logger() -> logging.Logger:
    logger = logging.getLogger(APP_LOGGER_NAME)
    if logger.handlers:
        return logger
    return configure_logger(
        name=APP_LOGGER_NAME,
        level=os.environ.get("LOG_LEVEL", "INFO"),
        use_json=os.environ.get("LOG_JSON", "false").lower() == "true",
        log_file=os.environ.get("LOG_FILE")
    )


app_logger = _init_app_logger()


def log_execution_time(logger: Optional[logging.Logger] = None) -> Callable[[F], F]:
    """
    Decorator that logs how long a function or coroutine took.

    Successful calls are logged at DEBUG, failures at WARNING before the
    exception propagates.

    Args:
        logger: Logger to use, defaults to app_logger
    """
    target = logger or app_logger

    def report(func: F, started: float, error: Optional[Exception] = None) -> None:
        elapsed = time.perf_counter() - started
        if error is None:
            target.debug(f"{func.__name__} executed in {elapsed:.3f} seconds")
        else:
            target.warning(f"{func.__name__} failed after {elapsed:.3f} seconds: {error}")

    def decorator(func: F) -> F:
        if asyncio.iscoroutinefunction(func):
            @functools.wraps(func)
            async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
                started = time.perf_counter()
                try:
                    result = await func(*args, **kwargs)
                except Exception as e:
                    report(func, started, e)
                    raise
                report(func, started)
                return result
            return async_wrapper

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            started = time.perf_counter()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                report(func, started, e)
                raise
            report(func, started)
            return result
        return wrapper
    return decorator
