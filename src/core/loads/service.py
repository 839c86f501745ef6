# src/core/loads/service.py
"""
Сервис жизненного цикла грузов.
Проверяет переходы, изменяет грузы через хранилище и публикует события.
"""

from __future__ import annotations

import math
import uuid
from typing import TYPE_CHECKING, Callable

from src.common.constants import LoadsUpdatedAction, RealtimeEvent, TypeMsg
from src.common.exceptions import (
    AccessDeniedError,
    NotFoundError,
    UpstreamError,
    ValidationError,
)
from src.common.logger import log_info
from src.core.geo.service import GeoService, is_valid_coordinate
from src.core.loads.models import (
    CreateLoadRequest,
    DriverLocation,
    Load,
    LoadEvent,
    LoadEventType,
    LoadStatus,
    Stop,
    now_ms,
)
from src.core.loads.repository import LoadStore
from src.core.loads.state_machine import LoadOperation, LoadStateMachine

if TYPE_CHECKING:
    from src.services.realtime_ws.fanout import LoadFanout


def build_tracking_url(origin: str, load_id: str) -> str:
    return f"{origin.rstrip('/')}/tracking/{load_id}"


class LoadService:
    """
    Сервис грузов.

    Все изменения существующего груза проходят через LoadStore.update_atomic,
    поэтому предусловия перехода проверяются на самой свежей версии записи.
    """

    def __init__(
        self,
        store: LoadStore,
        geo: GeoService,
        fanout: "LoadFanout",
        public_origin: str = "",
        enforce_ownership: bool = True,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        """
        Args:
            store: Хранилище грузов
            geo: Геокодер
            fanout: Доставка realtime-событий
            public_origin: Базовый URL для trackingUrl (если пусто, используется origin запроса)
            enforce_ownership: Ограничивать complete/delete владельцем
            clock: Источник времени в мс эпохи
        """
        self._store = store
        self._geo = geo
        self._fanout = fanout
        self._public_origin = public_origin
        self._enforce_ownership = enforce_ownership
        self._clock = clock

    # =========================================================================
    # СОЗДАНИЕ
    # =========================================================================

    async def create_load(
        self,
        request: CreateLoadRequest,
        owner_id: str | None = None,
        request_origin: str = "",
    ) -> Load:
        """
        Создаёт груз.

        Все остановки геокодируются до записи, поэтому при ошибке
        любой из них в хранилище ничего не попадает.

        Raises:
            ValidationError: некорректные остановки, телефон, геозона или адрес
        """
        if not request.stops:
            raise ValidationError("At least one stop is required")

        if not request.driver_phone or not request.driver_phone.strip():
            raise ValidationError("Driver phone is required")

        geofence = request.geofence
        if geofence is None or not math.isfinite(geofence) or geofence < 0:
            raise ValidationError("Valid geofence is required")

        if any(not stop.address or not stop.address.strip() for stop in request.stops):
            raise ValidationError("All stops must have an address")

        stops: list[Stop] = []
        for stop in request.stops:
            try:
                location = await self._geo.geocode(stop.address)
            except UpstreamError as e:
                await log_info(f"Не удалось геокодировать остановку '{stop.address}': {e.message}", type_msg=TypeMsg.WARNING)
                raise ValidationError(f"Invalid address: {stop.address}") from e

            stops.append(Stop(
                type=stop.type,
                address=stop.address,
                lat=location.latitude,
                lng=location.longitude,
            ))

        load_id = uuid.uuid4().hex
        created_at = self._clock()
        origin = self._public_origin or request_origin

        load = Load(
            id=load_id,
            owner_id=owner_id,
            stops=stops,
            driver_phone=request.driver_phone.strip(),
            geofence=geofence,
            status=LoadStatus.CREATED,
            events=[LoadEvent(type=LoadEventType.CREATED, ts=created_at)],
            tracking_url=build_tracking_url(origin, load_id),
            created_at=created_at,
            updated_at=created_at,
        )

        await self._store.put(load)
        await log_info(f"Груз {load_id} создан ({len(stops)} остановок)", type_msg=TypeMsg.INFO)

        await self._notify_loads_updated(LoadsUpdatedAction.CREATED, load)
        return load

    # =========================================================================
    # ЧТЕНИЕ
    # =========================================================================

    async def get_load(self, load_id: str) -> Load:
        """Груз по id (любой статус)."""
        load = await self._store.get(load_id)
        if load is None:
            raise NotFoundError("Load not found")
        return load

    async def list_loads(self, owner_id: str | None) -> list[Load]:
        """Грузы владельца, новые первыми."""
        return await self._store.list_by_owner(owner_id)

    async def get_driver_location(self, load_id: str) -> DriverLocation | None:
        """Последняя позиция водителя или None."""
        load = await self.get_load(load_id)
        return load.driver_location

    async def join(self, load_id: str, requester_id: str | None) -> Load:
        """
        Проверяет право подписки на груз и возвращает снимок для догоняющей доставки.

        Груз с владельцем доступен только владельцу, груз без владельца доступен всем.

        Raises:
            NotFoundError: груз не найден
            AccessDeniedError: груз принадлежит другому владельцу
        """
        load = await self.get_load(load_id)
        if load.owner_id is not None and load.owner_id != requester_id:
            raise AccessDeniedError("Access denied to this load")
        return load

    # =========================================================================
    # ПЕРЕХОДЫ
    # =========================================================================

    async def confirm(self, load_id: str) -> Load:
        """Created → Confirmed."""
        return await self._transition(load_id, LoadOperation.CONFIRM)

    async def cancel(self, load_id: str) -> Load:
        """Created → Canceled."""
        return await self._transition(load_id, LoadOperation.CANCEL)

    async def complete(self, load_id: str, owner_id: str | None = None) -> Load:
        """
        Confirmed → Completed.

        При включённой авторизации чужой груз считается ненайденным.
        """
        return await self._transition(load_id, LoadOperation.COMPLETE, owner_id=owner_id, owner_scoped=True)

    async def update_location(self, load_id: str, lat: float | None, lng: float | None) -> Load:
        """
        Фиксирует позицию водителя (только в статусе Confirmed).

        Обратное геокодирование выполняется вне атомарной секции,
        статус повторно проверяется внутри неё.

        Raises:
            ValidationError: координаты отсутствуют или некорректны
            NotFoundError: груз не найден
            ConflictError: груз не в статусе Confirmed
        """
        if not is_valid_coordinate(lat, lng):
            raise ValidationError("Valid coordinates required")

        # Быстрая проверка до обращения к геокодеру
        current = await self.get_load(load_id)
        LoadStateMachine.ensure_can_apply(current, LoadOperation.LOCATION_UPDATE)

        city = await self._geo.reverse_geocode(lat, lng)
        location = DriverLocation(lat=lat, lng=lng, city=city, timestamp=self._clock())

        updated = await self._store.update_atomic(
            load_id,
            lambda load: LoadStateMachine.apply(
                load, LoadOperation.LOCATION_UPDATE, self._clock(), location=location
            ),
        )

        await log_info(
            f"Позиция водителя груза {load_id}: {lat}, {lng} ({city})",
            type_msg=TypeMsg.DEBUG,
        )

        await self._fanout.publish(
            load_id,
            RealtimeEvent.LOCATION_UPDATE,
            updated.driver_location.model_dump(mode="json", by_alias=True),
        )
        await self._notify_loads_updated(LoadsUpdatedAction.UPDATED, updated)
        return updated

    async def _transition(
        self,
        load_id: str,
        operation: LoadOperation,
        owner_id: str | None = None,
        owner_scoped: bool = False,
    ) -> Load:
        check_owner = owner_scoped and self._enforce_ownership

        def mutate(load: Load) -> Load:
            if check_owner and load.owner_id != owner_id:
                raise NotFoundError("Load not found")
            return LoadStateMachine.apply(load, operation, self._clock())

        updated = await self._store.update_atomic(load_id, mutate)

        await log_info(f"Груз {load_id}: {operation} → {updated.status}", type_msg=TypeMsg.INFO)
        await self._notify_loads_updated(LoadsUpdatedAction.UPDATED, updated)
        return updated

    # =========================================================================
    # УДАЛЕНИЕ
    # =========================================================================

    async def delete_load(self, load_id: str, owner_id: str | None = None) -> bool:
        """
        Удаляет груз.

        При включённой авторизации чужой груз не удаляется.

        Returns:
            True, если запись была удалена
        """
        if self._enforce_ownership:
            load = await self._store.get(load_id)
            if load is None or load.owner_id != owner_id:
                return False

        removed = await self._store.remove(load_id)
        if removed:
            await log_info(f"Груз {load_id} удалён", type_msg=TypeMsg.INFO)
            await self._fanout.broadcast_all(
                RealtimeEvent.LOADS_UPDATED,
                {
                    "action": LoadsUpdatedAction.DELETED.value,
                    "ownerId": owner_id,
                    "loadId": load_id,
                },
            )
        return removed

    # =========================================================================
    # СОБЫТИЯ
    # =========================================================================

    async def _notify_loads_updated(self, action: LoadsUpdatedAction, load: Load) -> None:
        await self._fanout.broadcast_all(
            RealtimeEvent.LOADS_UPDATED,
            {
                "action": action.value,
                "ownerId": load.owner_id,
                "load": load.to_public(),
            },
        )
