# src/core/geo/service.py
"""
Geo-сервис для работы с Google Geocoding API.
Прямое геокодирование адресов остановок и обратное геокодирование позиции водителя.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

import httpx

from src.common.constants import TypeMsg
from src.common.exceptions import AddressNotFoundError, UpstreamError
from src.common.logger import log_info, log_error


@dataclass
class Location:
    """Геолокация."""
    latitude: float
    longitude: float
    address: str = ""


def is_valid_coordinate(lat: float | None, lng: float | None) -> bool:
    """
    Проверяет, что пара координат пригодна как реальная точка.

    (0, 0) считается маркером «нет данных», а не точкой в Гвинейском заливе.
    """
    if lat is None or lng is None:
        return False
    if isinstance(lat, bool) or isinstance(lng, bool):
        return False
    if not (math.isfinite(lat) and math.isfinite(lng)):
        return False
    if not (-90 <= lat <= 90 and -180 <= lng <= 180):
        return False
    return not (lat == 0 and lng == 0)


def format_coordinates(lat: float, lng: float) -> str:
    """Строка "lat, lng" для случаев, когда адрес не удалось получить."""
    return f"{lat}, {lng}"


class GeoService:
    """
    Шлюз к внешнему геокодеру.

    Контракт:
    - geocode: адрес -> Location, иначе AddressNotFoundError / UpstreamError
    - reverse_geocode: координаты -> адрес, при любой ошибке "lat, lng"
    """

    GEOCODING_URL = "https://maps.googleapis.com/maps/api/geocode/json"

    def __init__(
        self,
        api_key: str | None = None,
        language: str = "en",
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """
        Инициализация сервиса.

        Args:
            api_key: API ключ Google Maps (берётся из конфига если None)
            language: Язык для ответов
            timeout: Таймаут запроса к геокодеру в секундах
            client: Готовый HTTP клиент (для тестов)
        """
        if api_key is None:
            from src.config import settings
            api_key = settings.google_maps.GOOGLE_MAPS_API_KEY
            language = settings.google_maps.GEOCODING_LANGUAGE
            timeout = settings.google_maps.GEOCODING_TIMEOUT

        self._api_key = api_key
        self._language = language
        self._timeout = timeout
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def close(self) -> None:
        """Закрывает HTTP клиент."""
        await self._client.aclose()

    async def geocode(self, address: str) -> Location:
        """
        Прямое геокодирование: адрес -> координаты.

        Args:
            address: Адрес для геокодирования

        Returns:
            Локация с координатами

        Raises:
            AddressNotFoundError: геокодер не вернул пригодных координат
            UpstreamError: сетевая ошибка, таймаут или не настроен ключ
        """
        if not address or not address.strip():
            raise AddressNotFoundError(address)

        if not self._api_key:
            await log_error("Google Maps API key не настроен")
            raise UpstreamError("Geocoding is not configured")

        try:
            response = await self._client.get(
                self.GEOCODING_URL,
                params={
                    "address": address,
                    "key": self._api_key,
                    "language": self._language,
                },
            )
            data = response.json()
        except httpx.TimeoutException as e:
            await log_error(f"Таймаут геокодирования '{address}': {e}")
            raise UpstreamError(f"Geocoding timed out for: {address}") from e
        except (httpx.HTTPError, ValueError) as e:
            await log_error(f"Ошибка геокодирования '{address}': {e}")
            raise UpstreamError(f"Geocoding failed for: {address}") from e

        if data.get("status") != "OK" or not data.get("results"):
            await log_info(
                f"Геокодирование не дало результатов для: {address} (status={data.get('status')})",
                type_msg=TypeMsg.WARNING,
            )
            raise AddressNotFoundError(address)

        result = data["results"][0]
        location = result.get("geometry", {}).get("location", {})
        lat = location.get("lat")
        lng = location.get("lng")

        if not is_valid_coordinate(lat, lng):
            await log_info(
                f"Геокодер вернул непригодные координаты для: {address} ({lat}, {lng})",
                type_msg=TypeMsg.WARNING,
            )
            raise AddressNotFoundError(address)

        return Location(
            latitude=lat,
            longitude=lng,
            address=result.get("formatted_address", address),
        )

    async def reverse_geocode(self, latitude: float, longitude: float) -> str:
        """
        Обратное геокодирование: координаты -> адрес.

        Название города косметическое, поэтому ошибки не пробрасываются.

        Args:
            latitude: Широта
            longitude: Долгота

        Returns:
            Адрес или "lat, lng"
        """
        fallback = format_coordinates(latitude, longitude)

        if not self._api_key:
            await log_info("Google Maps API key не настроен, адрес не определён", type_msg=TypeMsg.DEBUG)
            return fallback

        try:
            response = await self._client.get(
                self.GEOCODING_URL,
                params={
                    "latlng": f"{latitude},{longitude}",
                    "key": self._api_key,
                    "language": self._language,
                },
            )
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            await log_error(f"Ошибка обратного геокодирования: {e}")
            return fallback

        if data.get("status") != "OK" or not data.get("results"):
            return fallback

        return data["results"][0].get("formatted_address") or fallback
