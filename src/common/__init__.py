# src/common/__init__.py
"""
Общие утилиты, константы, исключения и логгер.
"""

from src.common.logger import get_logger, log_info, log_error, log_warning, log_debug
from src.common.constants import TypeMsg, RealtimeEvent, LoadsUpdatedAction
from src.common.exceptions import (
    LoadTrackerError,
    ValidationError,
    NotFoundError,
    ConflictError,
    AuthenticationError,
    AccessDeniedError,
    UpstreamError,
    AddressNotFoundError,
)

__all__ = [
    "get_logger",
    "log_info",
    "log_error",
    "log_warning",
    "log_debug",
    "TypeMsg",
    "RealtimeEvent",
    "LoadsUpdatedAction",
    "LoadTrackerError",
    "ValidationError",
    "NotFoundError",
    "ConflictError",
    "AuthenticationError",
    "AccessDeniedError",
    "UpstreamError",
    "AddressNotFoundError",
]
