"""Utility modules for fetch runs.

Includes:
- Logging configuration
- Structured fetch logging
- Operation timing
"""

from .logging_config import setup_logging
from .fetch_logger import FetchLogger, OperationTimer, timed_operation

__all__ = [
    "setup_logging",
    "FetchLogger",
    "OperationTimer",
    "timed_operation",
]
