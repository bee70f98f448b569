"""Logging and transport retry helpers."""
from .connection import RETRYABLE_EXCEPTIONS, UNSENT_EXCEPTIONS, with_retry
from .logging_config import perf_logger, setup_logging, timed

__all__ = ["RETRYABLE_EXCEPTIONS", "UNSENT_EXCEPTIONS", "perf_logger", "setup_logging", "timed", "with_retry"]
