# src/shared/models/common.py
"""
Общие модели ответов сервиса.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Стандартный ответ с ошибкой."""

    error: str
    error_code: str


class HealthStatus(BaseModel):
    """Статус здоровья сервиса."""

    service: str
    status: str = "healthy"  # healthy, degraded, unhealthy
    version: str | None = None
    uptime_seconds: float | None = None
    dependencies: dict[str, str] = Field(default_factory=dict)
    # dependencies: {"store": "memory", "redis": "healthy"}


class StatsResponse(BaseModel):
    """Статистика realtime-соединений."""

    active_connections: int
    total_topics: int
    total_connections_ever: int
    total_messages_sent: int
    failed_sends: int
    authenticated_connections: int
    store_backend: str
    realtime_backend: str
