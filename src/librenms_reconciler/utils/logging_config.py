"""Logging setup for the reconciler.

Two channels:
- ``librenms_reconciler``: console plus a rotating log file
- ``librenms_reconciler.perf``: one line per lifecycle operation with its
  duration and outcome, written to its own rotating file

Environment Variables:
    LIBRENMS_RECONCILER_LOG_LEVEL: DEBUG, INFO, WARNING, ERROR (default: INFO)
    LIBRENMS_RECONCILER_LOG_FILE: Path to log file
        (default: ~/.librenms-reconciler/reconciler.log)
    LIBRENMS_RECONCILER_LOG_MAX_SIZE: Max log file size in MB (default: 10)
    LIBRENMS_RECONCILER_LOG_BACKUPS: Number of backup files to keep (default: 5)

Usage:
    from librenms_reconciler.utils.logging_config import setup_logging, timed

    setup_logging()

    @timed("create")
    async def create(self, kind, desired):
        ...
"""
import asyncio
import functools
import logging
import os
import time
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Callable, Optional

ENV_PREFIX = "LIBRENMS_RECONCILER"

package_logger = logging.getLogger("librenms_reconciler")
perf_logger = logging.getLogger("librenms_reconciler.perf")

LOG_FORMAT = "%(asctime)s.%(msecs)03d | %(name)-40s | %(levelname)-7s | %(message)s"
PERF_FORMAT = "%(asctime)s.%(msecs)03d | PERF | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _env(name: str, default: str) -> str:
    return os.environ.get(f"{ENV_PREFIX}_{name}", default)


def get_log_level() -> int:
    """Console log level from the environment."""
    return getattr(logging, _env("LOG_LEVEL", "INFO").upper(), logging.INFO)


def get_log_file() -> Path:
    """Log file path from the environment."""
    default_path = Path.home() / ".librenms-reconciler" / "reconciler.log"
    return Path(_env("LOG_FILE", str(default_path)))


def _rotating_handler(path: Path, fmt: str) -> RotatingFileHandler:
    handler = RotatingFileHandler(
        path,
        maxBytes=int(_env("LOG_MAX_SIZE", "10")) * 1024 * 1024,
        backupCount=int(_env("LOG_BACKUPS", "5")),
        encoding="utf-8",
    )
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(fmt, datefmt=DATE_FORMAT))
    return handler


def setup_logging() -> None:
    """Attach console and file handlers. Calling it again is a no-op."""
    if package_logger.handlers:
        return

    log_level = get_log_level()
    log_file = get_log_file()
    log_file.parent.mkdir(parents=True, exist_ok=True)
    perf_log_file = log_file.parent / "reconciler-perf.log"

    console = logging.StreamHandler()
    console.setLevel(log_level)
    console.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))

    package_logger.setLevel(logging.DEBUG)
    package_logger.addHandler(console)
    package_logger.addHandler(_rotating_handler(log_file, LOG_FORMAT))

    # perf lines go to their own file and the console, not the main log
    perf_logger.setLevel(logging.DEBUG)
    perf_logger.propagate = False
    perf_logger.addHandler(_rotating_handler(perf_log_file, PERF_FORMAT))
    perf_logger.addHandler(console)

    package_logger.info(
        f"Logging initialized: level={logging.getLevelName(log_level)}, "
        f"file={log_file}, perf={perf_log_file}"
    )


def entity_label(args: tuple, kwargs: dict) -> str:
    """Label for a perf line: ``kind#id`` from the first EntityState or kind argument."""
    for value in list(args[1:]) + list(kwargs.values()):
        kind = getattr(value, "kind", value)
        name = getattr(kind, "value", None)
        if isinstance(name, str):
            entity_id = getattr(value, "id", None)
            return f"{name}#{entity_id}" if entity_id is not None else name
        if isinstance(value, str):
            return value
    return "N/A"


def _record(operation: str, label: str, started: float, error: Optional[BaseException] = None) -> None:
    elapsed = (time.perf_counter() - started) * 1000
    line = f"{operation:8s} | {label:24s} | {elapsed:8.2f}ms"
    if error is None:
        perf_logger.info(f"{line} | OK")
    else:
        perf_logger.warning(f"{line} | FAIL: {type(error).__name__}: {error}")


def timed(operation: str, entity: Optional[str] = None):
    """Decorator logging the duration and outcome of an engine operation.

    Args:
        operation: Lifecycle operation name ("create", "read", ...)
        entity: Fixed label; inferred from the call arguments when omitted
    """
    def decorator(func: Callable) -> Callable:
        if asyncio.iscoroutinefunction(func):
            @functools.wraps(func)
            async def async_wrapper(*args, **kwargs) -> Any:
                label = entity or entity_label(args, kwargs)
                started = time.perf_counter()
                try:
                    result = await func(*args, **kwargs)
                except Exception as e:
                    _record(operation, label, started, e)
                    raise
                _record(operation, label, started)
                return result
            return async_wrapper

        @functools.wraps(func)
        def sync_wrapper(*args, **kwargs) -> Any:
            label = entity or entity_label(args, kwargs)
            started = time.perf_counter()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                _record(operation, label, started, e)
                raise
            _record(operation, label, started)
            return result
        return sync_wrapper

    return decorator
