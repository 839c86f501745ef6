# src/common/constants.py
"""
Общие константы и перечисления.
"""

from enum import Enum


class TypeMsg(str, Enum):
    """Типы сообщений для логирования."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class RealtimeEvent(str, Enum):
    """Имена событий realtime-канала."""
    # Исходящие
    LOAD_DETAILS = "load_details"
    LOCATION_UPDATE = "location_update"
    LOADS_UPDATED = "loadsUpdated"
    SUCCESS = "success"
    ERROR = "error"
    LEFT = "left"
    PONG = "pong"

    # Входящие
    JOIN_LOAD = "join_load"
    LEAVE_LOAD = "leave_load"
    DRIVER_LOCATION_UPDATE = "driver_location_update"
    PING = "ping"

    def __str__(self) -> str:
        return self.value


class LoadsUpdatedAction(str, Enum):
    """Действие в глобальном событии loadsUpdated."""
    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"

    def __str__(self) -> str:
        return self.value
