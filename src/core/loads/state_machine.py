# src/core/loads/state_machine.py
"""
Конечный автомат статусов груза.
Переходы применяются чистыми функциями: на вход запись, на выход новая запись.
"""

from __future__ import annotations

from enum import Enum

from src.common.exceptions import ConflictError
from src.core.loads.models import (
    DriverLocation,
    Load,
    LoadEvent,
    LoadEventType,
    LoadStatus,
)


class LoadOperation(str, Enum):
    """Операции над существующим грузом."""
    CONFIRM = "confirm"
    CANCEL = "cancel"
    COMPLETE = "complete"
    LOCATION_UPDATE = "location_update"

    def __str__(self) -> str:
        return self.value


# Запись журнала, которую добавляет каждая операция
OPERATION_EVENTS: dict[LoadOperation, LoadEventType] = {
    LoadOperation.CONFIRM: LoadEventType.CONFIRMED,
    LoadOperation.CANCEL: LoadEventType.CANCELED,
    LoadOperation.COMPLETE: LoadEventType.COMPLETED,
    LoadOperation.LOCATION_UPDATE: LoadEventType.LOCATION_UPDATE,
}

# Сообщения об ошибке перехода
CONFLICT_MESSAGES: dict[LoadOperation, str] = {
    LoadOperation.CONFIRM: "Load already confirmed or canceled",
    LoadOperation.CANCEL: "Load already confirmed or canceled",
    LoadOperation.COMPLETE: "Load not confirmed or already completed",
    LoadOperation.LOCATION_UPDATE: "Load not confirmed",
}


class LoadStateMachine:
    ALLOWED_TRANSITIONS: dict[LoadStatus, dict[LoadOperation, LoadStatus]] = {
        LoadStatus.CREATED: {
            LoadOperation.CONFIRM: LoadStatus.CONFIRMED,
            LoadOperation.CANCEL: LoadStatus.CANCELED,
        },
        LoadStatus.CONFIRMED: {
            LoadOperation.COMPLETE: LoadStatus.COMPLETED,
            LoadOperation.LOCATION_UPDATE: LoadStatus.CONFIRMED,
        },
        LoadStatus.CANCELED: {},
        LoadStatus.COMPLETED: {},
    }

    @staticmethod
    def ensure_can_apply(load: Load, operation: LoadOperation) -> LoadStatus:
        """Возвращает целевой статус или выбрасывает ConflictError."""
        target = LoadStateMachine.ALLOWED_TRANSITIONS.get(load.status, {}).get(operation)
        if target is None:
            raise ConflictError(
                f"{CONFLICT_MESSAGES[operation]} (status: {load.status.value})",
                current_status=load.status.value,
            )
        return target

    @staticmethod
    def apply(
        load: Load,
        operation: LoadOperation,
        now: int,
        location: DriverLocation | None = None,
    ) -> Load:
        """
        Применяет операцию к грузу.

        Статус, запись журнала и updatedAt меняются в одной новой записи.
        Время события не меньше времени предыдущего события.
        """
        target = LoadStateMachine.ensure_can_apply(load, operation)
        ts = max(now, load.last_event_ts)

        update: dict = {
            "status": target,
            "updated_at": ts,
        }

        if operation == LoadOperation.LOCATION_UPDATE:
            if location is None:
                raise ValueError("location is required for location_update")
            location = location.model_copy(update={"timestamp": ts})
            update["driver_location"] = location
            update["locations"] = [*load.locations, location]
            update["events"] = [
                *load.events,
                LoadEvent(type=OPERATION_EVENTS[operation], ts=ts, meta=location),
            ]
        else:
            update["events"] = [
                *load.events,
                LoadEvent(type=OPERATION_EVENTS[operation], ts=ts),
            ]

        return load.model_copy(update=update)
