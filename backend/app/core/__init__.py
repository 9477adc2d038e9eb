"""
Core module exports
"""
from app.core.config import settings
from app.core.logging import logger, get_logger, log_audit_event

__all__ = [
    "settings",
    "logger",
    "get_logger",
    "log_audit_event",
]
