# src/core/__init__.py
"""
Доменный слой (Core Domain).
Бизнес-логика грузов и геокодирование, независимые от HTTP.
"""

from src.core.geo import GeoService
from src.core.loads import Load, LoadService, LoadStore

__all__ = [
    "GeoService",
    "Load",
    "LoadService",
    "LoadStore",
]
