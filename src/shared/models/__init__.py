# src/shared/models/__init__.py
"""
Общие Pydantic-модели ответов.
"""

from src.shared.models.common import (
    ErrorResponse,
    HealthStatus,
    StatsResponse,
)

__all__ = [
    "ErrorResponse",
    "HealthStatus",
    "StatsResponse",
]
