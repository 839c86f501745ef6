# src/core/loads/models.py
"""
Модели данных грузов.
На проводе поля в camelCase (ownerId, driverPhone, ...), в коде snake_case.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class LoadStatus(str, Enum):
    """Статусы груза."""
    CREATED = "Created"
    CONFIRMED = "Confirmed"
    CANCELED = "Canceled"
    COMPLETED = "Completed"

    def __str__(self) -> str:
        return self.value


class LoadEventType(str, Enum):
    """Типы записей журнала событий груза."""
    CREATED = "Created"
    CONFIRMED = "Confirmed"
    CANCELED = "Canceled"
    COMPLETED = "Completed"
    LOCATION_UPDATE = "LocationUpdate"

    def __str__(self) -> str:
        return self.value


def now_ms() -> int:
    """Текущее время в миллисекундах эпохи (UTC)."""
    return int(datetime.now(timezone.utc).timestamp() * 1000)


class CamelModel(BaseModel):
    """База для моделей с camelCase алиасами."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class Stop(CamelModel):
    """Остановка маршрута с разрешёнными координатами."""

    type: str | None = Field(None, description="Тип остановки (pickup, dropoff, ...)")
    address: str = Field(..., min_length=1, description="Адрес")
    lat: float = Field(..., ge=-90, le=90, description="Широта")
    lng: float = Field(..., ge=-180, le=180, description="Долгота")


class DriverLocation(CamelModel):
    """Зафиксированная позиция водителя."""

    lat: float
    lng: float
    city: str
    timestamp: int = Field(..., description="Время фиксации, мс эпохи")


class LoadEvent(CamelModel):
    """Запись журнала событий."""

    type: LoadEventType
    ts: int = Field(..., description="Время события, мс эпохи")
    meta: DriverLocation | None = None


class Load(CamelModel):
    """Модель груза."""

    id: str = Field(..., description="Идентификатор груза")
    owner_id: str | None = Field(None, description="Владелец (None при отключённой авторизации)")

    stops: list[Stop] = Field(..., min_length=1)
    driver_phone: str = Field(..., min_length=1)
    geofence: float = Field(..., ge=0)

    status: LoadStatus = LoadStatus.CREATED
    events: list[LoadEvent] = Field(default_factory=list)

    locations: list[DriverLocation] = Field(default_factory=list)
    driver_location: DriverLocation | None = None

    tracking_url: str
    created_at: int
    updated_at: int

    @property
    def last_event_ts(self) -> int:
        """Время последнего события журнала (0, если журнал пуст)."""
        return self.events[-1].ts if self.events else 0

    def to_public(self) -> dict[str, Any]:
        """JSON-представление для HTTP и realtime-канала."""
        return self.model_dump(mode="json", by_alias=True)


# =============================================================================
# DTO ЗАПРОСОВ
# =============================================================================

class StopInput(CamelModel):
    """Остановка во входящем запросе (до геокодирования)."""

    type: str | None = None
    address: str | None = None


class CreateLoadRequest(CamelModel):
    """Запрос на создание груза."""

    stops: list[StopInput] = Field(default_factory=list)
    driver_phone: str | None = None
    geofence: float | None = None


class LocationUpdateRequest(CamelModel):
    """Запрос на обновление позиции водителя."""

    lat: float | None = None
    lng: float | None = None


class DriverLocationUpdateMessage(CamelModel):
    """Входящее realtime-сообщение driver_location_update."""

    load_id: str
    location: LocationUpdateRequest = Field(default_factory=LocationUpdateRequest)


# =============================================================================
# DTO ОТВЕТОВ
# =============================================================================

class TrackingUrlResponse(CamelModel):
    """Ответ на подтверждение груза."""

    tracking_url: str


class MessageResponse(BaseModel):
    """Ответ с текстовым сообщением."""

    message: str


class EmptyDriverLocation(CamelModel):
    """Позиция водителя, когда она ещё не известна."""

    lat: float | None = None
    lng: float | None = None
    city: str | None = None
