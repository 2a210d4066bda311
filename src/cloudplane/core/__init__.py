"""
Infrastructure shared by the runtime: structured logging and the session.
"""

from .logging import StructuredLogFormatter, configure_logging, get_logger, log_event, log_progress
from .session import Session

__all__ = [
    "Session",
    "StructuredLogFormatter",
    "configure_logging",
    "get_logger",
    "log_event",
    "log_progress",
]
