# src/core/geo/__init__.py
"""
Geo-сервис.
Работа с Google Geocoding API.
"""

from src.core.geo.service import GeoService, Location, is_valid_coordinate

__all__ = [
    "GeoService",
    "Location",
    "is_valid_coordinate",
]
