# src/services/realtime_ws/routes.py
"""
WebSocket endpoint realtime-канала грузов.

Кадры в обе стороны: {"event": <name>, "data": <payload>}.

Входящие события:
- join_load (data: id груза) → load_details [+ location_update] или error
- leave_load (data: id груза) → left
- driver_location_update (data: {loadId, location: {lat, lng}}) → success или error
- ping → pong
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect, status
from pydantic import ValidationError as PydanticValidationError

from src.common.constants import RealtimeEvent, TypeMsg
from src.common.exceptions import LoadTrackerError
from src.common.logger import log_error, log_info
from src.core.loads.models import DriverLocationUpdateMessage
from src.core.loads.service import LoadService
from src.services.load_service.auth import resolve_owner
from src.services.load_service.dependencies import (
    get_auth_config,
    get_connection_manager,
    get_fanout,
    get_load_service,
)
from src.services.realtime_ws.connection_manager import ConnectionManager
from src.services.realtime_ws.fanout import LoadFanout

router = APIRouter(tags=["Realtime"])


@router.websocket("/ws")
async def websocket_endpoint(
    websocket: WebSocket,
    token: str | None = Query(default=None),
) -> None:
    """
    WebSocket для клиентов отслеживания.

    Токен необязателен: анонимное соединение может подписаться
    только на грузы без владельца.
    """
    try:
        owner_id = resolve_owner(token, get_auth_config(), required=False)
    except LoadTrackerError as e:
        await log_info(f"WebSocket отклонён: {e.message}", type_msg=TypeMsg.DEBUG)
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    manager = get_connection_manager()
    connection_id = await manager.connect(websocket, owner_id)

    try:
        while True:
            data = await websocket.receive_json()
            await handle_client_message(
                connection_id,
                data,
                service=get_load_service(),
                manager=manager,
                fanout=get_fanout(),
            )

    except WebSocketDisconnect:
        await manager.disconnect(connection_id)
    except Exception as e:
        await log_error(f"Ошибка WebSocket соединения {connection_id}: {e}")
        await manager.disconnect(connection_id)


async def handle_client_message(
    connection_id: str,
    message: Any,
    service: LoadService,
    manager: ConnectionManager,
    fanout: LoadFanout,
) -> None:
    """Обработать сообщение от клиента."""
    if not isinstance(message, dict) or "event" not in message:
        await fanout.send(connection_id, RealtimeEvent.ERROR, "Invalid message")
        return

    event = message.get("event")
    data = message.get("data")

    if event == RealtimeEvent.JOIN_LOAD.value:
        await _join_load(connection_id, data, service, manager, fanout)

    elif event == RealtimeEvent.LEAVE_LOAD.value:
        load_id = str(data) if data is not None else ""
        await fanout.unsubscribe(load_id, connection_id)
        await fanout.send(connection_id, RealtimeEvent.LEFT, {"loadId": load_id})

    elif event == RealtimeEvent.DRIVER_LOCATION_UPDATE.value:
        await _driver_location_update(connection_id, data, service, fanout)

    elif event == RealtimeEvent.PING.value:
        await fanout.send(connection_id, RealtimeEvent.PONG, None)

    else:
        await fanout.send(connection_id, RealtimeEvent.ERROR, f"Unknown event: {event}")


async def _join_load(
    connection_id: str,
    data: Any,
    service: LoadService,
    manager: ConnectionManager,
    fanout: LoadFanout,
) -> None:
    if not data:
        await fanout.send(connection_id, RealtimeEvent.ERROR, "Load not found")
        return

    load_id = str(data)
    try:
        await service.join(load_id, manager.get_owner(connection_id))
    except LoadTrackerError as e:
        await fanout.send(connection_id, RealtimeEvent.ERROR, e.message)
        return

    # Снимок читается после подписки: изменение между проверкой и подпиской
    # попадёт либо в снимок, либо в события комнаты
    await fanout.subscribe(load_id, connection_id)
    try:
        load = await service.get_load(load_id)
    except LoadTrackerError as e:
        await fanout.unsubscribe(load_id, connection_id)
        await fanout.send(connection_id, RealtimeEvent.ERROR, e.message)
        return

    # Догоняющая доставка только подключившемуся
    await fanout.send(connection_id, RealtimeEvent.LOAD_DETAILS, load.to_public())
    if load.driver_location is not None:
        await fanout.send(
            connection_id,
            RealtimeEvent.LOCATION_UPDATE,
            load.driver_location.model_dump(mode="json", by_alias=True),
        )


async def _driver_location_update(
    connection_id: str,
    data: Any,
    service: LoadService,
    fanout: LoadFanout,
) -> None:
    try:
        payload = DriverLocationUpdateMessage.model_validate(data)
    except PydanticValidationError:
        await fanout.send(connection_id, RealtimeEvent.ERROR, "Valid coordinates required")
        return

    try:
        await service.update_location(payload.load_id, payload.location.lat, payload.location.lng)
    except LoadTrackerError as e:
        await fanout.send(connection_id, RealtimeEvent.ERROR, e.message)
        return

    await fanout.send(connection_id, RealtimeEvent.SUCCESS, "Location updated")
