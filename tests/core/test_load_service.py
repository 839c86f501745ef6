# tests/core/test_load_service.py
"""
Тесты сервиса жизненного цикла грузов.
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.common.constants import RealtimeEvent
from src.common.exceptions import (
    AccessDeniedError,
    ConflictError,
    NotFoundError,
    UpstreamError,
    ValidationError,
)
from src.core.loads.models import (
    CreateLoadRequest,
    LoadEventType,
    LoadStatus,
    StopInput,
)
from src.core.loads.repository import InMemoryLoadStore
from src.core.loads.service import LoadService, build_tracking_url


def test_build_tracking_url() -> None:
    assert build_tracking_url("https://x.io/", "abc") == "https://x.io/tracking/abc"
    assert build_tracking_url("http://localhost:4000", "abc") == "http://localhost:4000/tracking/abc"


class TestCreateLoad:
    """Тесты создания груза."""

    @pytest.mark.asyncio
    async def test_create(self, load_service: LoadService, create_request: CreateLoadRequest, clock) -> None:
        load = await load_service.create_load(create_request, owner_id="owner1")

        assert load.status == LoadStatus.CREATED
        assert load.owner_id == "owner1"
        assert load.stops[0].lat == 10.0
        assert load.stops[0].lng == 20.0
        assert load.stops[0].type == "pickup"
        assert load.created_at == load.updated_at == clock.now
        assert [e.type for e in load.events] == [LoadEventType.CREATED]
        assert load.tracking_url == f"https://track.example.com/tracking/{load.id}"

    @pytest.mark.asyncio
    async def test_create_uses_request_origin_without_public_origin(
        self, memory_store: InMemoryLoadStore, mock_geo: MagicMock, mock_fanout: AsyncMock,
        create_request: CreateLoadRequest,
    ) -> None:
        service = LoadService(memory_store, mock_geo, mock_fanout)

        load = await service.create_load(create_request, request_origin="http://localhost:4000")

        assert load.tracking_url == f"http://localhost:4000/tracking/{load.id}"

    @pytest.mark.asyncio
    async def test_create_broadcasts(
        self, load_service: LoadService, create_request: CreateLoadRequest, mock_fanout: AsyncMock,
    ) -> None:
        load = await load_service.create_load(create_request, owner_id="owner1")

        mock_fanout.broadcast_all.assert_awaited_once()
        event, data = mock_fanout.broadcast_all.call_args.args
        assert event == RealtimeEvent.LOADS_UPDATED
        assert data["action"] == "created"
        assert data["ownerId"] == "owner1"
        assert data["load"]["id"] == load.id
        assert data["load"]["driverPhone"] == "+49 151 000000"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "request_kwargs,message",
        [
            ({"stops": [], "driver_phone": "1", "geofence": 1}, "At least one stop is required"),
            ({"stops": [StopInput(address="A")], "driver_phone": "", "geofence": 1}, "Driver phone is required"),
            ({"stops": [StopInput(address="A")], "driver_phone": "1"}, "Valid geofence is required"),
            ({"stops": [StopInput(address="A")], "driver_phone": "1", "geofence": -5}, "Valid geofence is required"),
            (
                {"stops": [StopInput(address="A")], "driver_phone": "1", "geofence": float("nan")},
                "Valid geofence is required",
            ),
            (
                {"stops": [StopInput(address="A"), StopInput(type="dropoff")], "driver_phone": "1", "geofence": 1},
                "All stops must have an address",
            ),
        ],
    )
    async def test_validation(
        self, load_service: LoadService, memory_store: InMemoryLoadStore, request_kwargs: dict, message: str,
    ) -> None:
        with pytest.raises(ValidationError) as exc_info:
            await load_service.create_load(CreateLoadRequest(**request_kwargs), owner_id="owner1")

        assert exc_info.value.message == message
        assert await memory_store.list_by_owner("owner1") == []

    @pytest.mark.asyncio
    async def test_zero_geofence_allowed(self, load_service: LoadService) -> None:
        request = CreateLoadRequest(stops=[StopInput(address="A")], driver_phone="1", geofence=0)

        load = await load_service.create_load(request)

        assert load.geofence == 0

    @pytest.mark.asyncio
    async def test_no_partial_create(
        self, load_service: LoadService, memory_store: InMemoryLoadStore,
        mock_fanout: AsyncMock, mock_geo: MagicMock,
    ) -> None:
        """Ошибка геокодирования второй остановки не оставляет записи."""
        request = CreateLoadRequest(
            stops=[StopInput(address="A"), StopInput(address="nowhere xyz")],
            driver_phone="1",
            geofence=100,
        )

        with pytest.raises(ValidationError) as exc_info:
            await load_service.create_load(request, owner_id="owner1")

        assert exc_info.value.message == "Invalid address: nowhere xyz"
        assert mock_geo.geocode.await_count == 2
        assert await memory_store.list_by_owner("owner1") == []
        mock_fanout.broadcast_all.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_geocoder_outage(self, load_service: LoadService, mock_geo: MagicMock, create_request) -> None:
        mock_geo.geocode.side_effect = UpstreamError("Geocoding timed out for: A")

        with pytest.raises(ValidationError) as exc_info:
            await load_service.create_load(create_request)

        assert exc_info.value.message == "Invalid address: A"


class TestReads:
    """Тесты чтения."""

    @pytest.mark.asyncio
    async def test_get_load(self, load_service: LoadService, create_request) -> None:
        load = await load_service.create_load(create_request)
        assert await load_service.get_load(load.id) == load

    @pytest.mark.asyncio
    async def test_get_load_not_found(self, load_service: LoadService) -> None:
        with pytest.raises(NotFoundError):
            await load_service.get_load("missing")

    @pytest.mark.asyncio
    async def test_list_loads_per_owner(self, load_service: LoadService, create_request, clock) -> None:
        first = await load_service.create_load(create_request, owner_id="owner1")
        clock.advance(10)
        second = await load_service.create_load(create_request, owner_id="owner1")
        await load_service.create_load(create_request, owner_id="owner2")

        loads = await load_service.list_loads("owner1")

        assert [l.id for l in loads] == [second.id, first.id]

    @pytest.mark.asyncio
    async def test_driver_location_unknown(self, load_service: LoadService, create_request) -> None:
        load = await load_service.create_load(create_request)
        assert await load_service.get_driver_location(load.id) is None

    @pytest.mark.asyncio
    async def test_join_access(self, load_service: LoadService, create_request) -> None:
        owned = await load_service.create_load(create_request, owner_id="owner1")
        anonymous = await load_service.create_load(create_request)

        assert (await load_service.join(owned.id, "owner1")).id == owned.id
        assert (await load_service.join(anonymous.id, None)).id == anonymous.id
        assert (await load_service.join(anonymous.id, "owner2")).id == anonymous.id

        with pytest.raises(AccessDeniedError):
            await load_service.join(owned.id, "owner2")
        with pytest.raises(AccessDeniedError):
            await load_service.join(owned.id, None)
        with pytest.raises(NotFoundError):
            await load_service.join("missing", "owner1")


class TestTransitions:
    """Тесты переходов статусов."""

    @pytest.mark.asyncio
    async def test_full_lifecycle(self, load_service: LoadService, create_request, clock, mock_fanout) -> None:
        """Создание, подтверждение, позиция водителя и завершение."""
        load = await load_service.create_load(create_request, owner_id="owner1")

        clock.advance(1000)
        confirmed = await load_service.confirm(load.id)
        assert confirmed.status == LoadStatus.CONFIRMED

        clock.advance(1000)
        updated = await load_service.update_location(load.id, 11.0, 21.0)
        assert updated.driver_location.lat == 11.0
        assert updated.driver_location.city == "City X"

        mock_fanout.publish.assert_awaited_once()
        load_id, event, data = mock_fanout.publish.call_args.args
        assert load_id == load.id
        assert event == RealtimeEvent.LOCATION_UPDATE
        assert data == {"lat": 11.0, "lng": 21.0, "city": "City X", "timestamp": clock.now}

        clock.advance(1000)
        completed = await load_service.complete(load.id, owner_id="owner1")
        assert completed.status == LoadStatus.COMPLETED
        assert [e.type for e in completed.events] == [
            LoadEventType.CREATED,
            LoadEventType.CONFIRMED,
            LoadEventType.LOCATION_UPDATE,
            LoadEventType.COMPLETED,
        ]

        with pytest.raises(ConflictError):
            await load_service.update_location(load.id, 12.0, 22.0)

    @pytest.mark.asyncio
    async def test_cancel_after_confirm(self, load_service: LoadService, create_request) -> None:
        load = await load_service.create_load(create_request)
        await load_service.confirm(load.id)

        with pytest.raises(ConflictError) as exc_info:
            await load_service.cancel(load.id)

        assert exc_info.value.current_status == "Confirmed"
        assert (await load_service.get_load(load.id)).status == LoadStatus.CONFIRMED

    @pytest.mark.asyncio
    async def test_confirm_not_found(self, load_service: LoadService) -> None:
        with pytest.raises(NotFoundError):
            await load_service.confirm("missing")

    @pytest.mark.asyncio
    async def test_concurrent_confirms(self, load_service: LoadService, create_request) -> None:
        """Из N параллельных подтверждений проходит ровно одно."""
        load = await load_service.create_load(create_request)

        results = await asyncio.gather(
            *(load_service.confirm(load.id) for _ in range(10)),
            return_exceptions=True,
        )

        successes = [r for r in results if not isinstance(r, Exception)]
        conflicts = [r for r in results if isinstance(r, ConflictError)]
        assert len(successes) == 1
        assert len(conflicts) == 9

        stored = await load_service.get_load(load.id)
        assert [e.type for e in stored.events].count(LoadEventType.CONFIRMED) == 1

    @pytest.mark.asyncio
    async def test_concurrent_confirm_and_cancel(self, load_service: LoadService, create_request) -> None:
        load = await load_service.create_load(create_request)

        results = await asyncio.gather(
            load_service.confirm(load.id),
            load_service.cancel(load.id),
            return_exceptions=True,
        )

        assert sum(isinstance(r, ConflictError) for r in results) == 1
        stored = await load_service.get_load(load.id)
        assert len(stored.events) == 2

    @pytest.mark.asyncio
    async def test_complete_other_owner(self, load_service: LoadService, create_request) -> None:
        load = await load_service.create_load(create_request, owner_id="owner1")
        await load_service.confirm(load.id)

        with pytest.raises(NotFoundError):
            await load_service.complete(load.id, owner_id="owner2")

        assert (await load_service.get_load(load.id)).status == LoadStatus.CONFIRMED

    @pytest.mark.asyncio
    async def test_complete_without_ownership_enforcement(
        self, memory_store, mock_geo, mock_fanout, create_request,
    ) -> None:
        service = LoadService(memory_store, mock_geo, mock_fanout, enforce_ownership=False)
        load = await service.create_load(create_request)
        await service.confirm(load.id)

        completed = await service.complete(load.id, owner_id=None)

        assert completed.status == LoadStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_timestamps_monotonic_with_clock_skew(
        self, load_service: LoadService, create_request, clock,
    ) -> None:
        """Отставшие часы не делают журнал немонотонным."""
        load = await load_service.create_load(create_request)

        clock.advance(-60_000)
        confirmed = await load_service.confirm(load.id)

        clock.advance(-1_000)
        updated = await load_service.update_location(load.id, 11.0, 21.0)

        timestamps = [e.ts for e in updated.events]
        assert timestamps == sorted(timestamps)
        assert confirmed.events[-1].ts == load.created_at
        assert updated.driver_location.timestamp == updated.events[-1].ts


class TestUpdateLocation:
    """Тесты обновления позиции водителя."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("lat,lng", [(None, 21.0), (11.0, None), (0, 0), (95.0, 21.0)])
    async def test_invalid_coordinates(self, load_service: LoadService, create_request, lat, lng) -> None:
        load = await load_service.create_load(create_request)
        await load_service.confirm(load.id)

        with pytest.raises(ValidationError) as exc_info:
            await load_service.update_location(load.id, lat, lng)

        assert exc_info.value.message == "Valid coordinates required"

    @pytest.mark.asyncio
    async def test_rejected_on_created(
        self, load_service: LoadService, create_request, mock_geo, mock_fanout,
    ) -> None:
        load = await load_service.create_load(create_request)

        with pytest.raises(ConflictError) as exc_info:
            await load_service.update_location(load.id, 11.0, 21.0)

        assert exc_info.value.message.startswith("Load not confirmed")
        stored = await load_service.get_load(load.id)
        assert stored.locations == []
        assert len(stored.events) == 1
        mock_geo.reverse_geocode.assert_not_awaited()
        mock_fanout.publish.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_not_found(self, load_service: LoadService) -> None:
        with pytest.raises(NotFoundError):
            await load_service.update_location("missing", 11.0, 21.0)

    @pytest.mark.asyncio
    async def test_status_rechecked_inside_update(
        self, load_service: LoadService, create_request, mock_geo,
    ) -> None:
        """Груз завершён, пока шло обратное геокодирование."""
        load = await load_service.create_load(create_request)
        await load_service.confirm(load.id)

        async def complete_meanwhile(lat: float, lng: float) -> str:
            await load_service.complete(load.id)
            return "City X"

        mock_geo.reverse_geocode.side_effect = complete_meanwhile

        with pytest.raises(ConflictError):
            await load_service.update_location(load.id, 11.0, 21.0)

        stored = await load_service.get_load(load.id)
        assert stored.status == LoadStatus.COMPLETED
        assert stored.locations == []

    @pytest.mark.asyncio
    async def test_broadcasts_loads_updated(
        self, load_service: LoadService, create_request, mock_fanout,
    ) -> None:
        load = await load_service.create_load(create_request)
        await load_service.confirm(load.id)
        mock_fanout.broadcast_all.reset_mock()

        await load_service.update_location(load.id, 11.0, 21.0)

        event, data = mock_fanout.broadcast_all.call_args.args
        assert event == RealtimeEvent.LOADS_UPDATED
        assert data["action"] == "updated"
        assert data["load"]["driverLocation"]["city"] == "City X"


class TestDeleteLoad:
    """Тесты удаления."""

    @pytest.mark.asyncio
    async def test_delete(self, load_service: LoadService, create_request, mock_fanout) -> None:
        load = await load_service.create_load(create_request, owner_id="owner1")

        assert await load_service.delete_load(load.id, owner_id="owner1") is True

        with pytest.raises(NotFoundError):
            await load_service.get_load(load.id)

        event, data = mock_fanout.broadcast_all.call_args.args
        assert event == RealtimeEvent.LOADS_UPDATED
        assert data == {"action": "deleted", "ownerId": "owner1", "loadId": load.id}

    @pytest.mark.asyncio
    async def test_delete_other_owner(self, load_service: LoadService, create_request) -> None:
        load = await load_service.create_load(create_request, owner_id="owner1")

        assert await load_service.delete_load(load.id, owner_id="owner2") is False
        assert (await load_service.get_load(load.id)).id == load.id

    @pytest.mark.asyncio
    async def test_delete_missing(self, load_service: LoadService, mock_fanout) -> None:
        assert await load_service.delete_load("missing", owner_id="owner1") is False
        mock_fanout.broadcast_all.assert_not_awaited()
