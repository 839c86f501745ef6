# src/core/loads/__init__.py
"""
Домен грузов: модели, автомат статусов, хранилища и сервис.
"""

from src.core.loads.models import (
    CreateLoadRequest,
    DriverLocation,
    Load,
    LoadEvent,
    LoadEventType,
    LoadStatus,
    LocationUpdateRequest,
    Stop,
)
from src.core.loads.repository import InMemoryLoadStore, LoadStore, RedisLoadStore
from src.core.loads.service import LoadService
from src.core.loads.state_machine import LoadOperation, LoadStateMachine

__all__ = [
    "CreateLoadRequest",
    "DriverLocation",
    "Load",
    "LoadEvent",
    "LoadEventType",
    "LoadStatus",
    "LocationUpdateRequest",
    "Stop",
    "InMemoryLoadStore",
    "LoadStore",
    "RedisLoadStore",
    "LoadService",
    "LoadOperation",
    "LoadStateMachine",
]
