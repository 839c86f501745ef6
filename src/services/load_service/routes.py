# src/services/load_service/routes.py
"""
HTTP API грузов.

Создание, список, завершение и удаление привязаны к владельцу из токена.
Чтение груза, позиция водителя, подтверждение, отмена и обновление позиции
публичны: ими пользуются страница отслеживания и водитель без токена.

Ошибки домена (ValidationError, NotFoundError, ConflictError, ...)
переводятся в ответы обработчиками исключений приложения.
"""

from __future__ import annotations

from typing import Annotated, Any

from fastapi import APIRouter, Depends

from src.core.loads.models import (
    CreateLoadRequest,
    EmptyDriverLocation,
    Load,
    LocationUpdateRequest,
    MessageResponse,
    TrackingUrlResponse,
)
from src.core.loads.service import LoadService
from src.services.load_service.dependencies import (
    get_current_owner,
    get_load_service,
    get_request_origin,
)
from src.shared.models.common import ErrorResponse

router = APIRouter(
    prefix="/loads",
    tags=["Loads"],
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
    },
)

Owner = Annotated[str | None, Depends(get_current_owner)]
Service = Annotated[LoadService, Depends(get_load_service)]


@router.post("", response_model=Load)
async def create_load(
    request: CreateLoadRequest,
    owner_id: Owner,
    service: Service,
    origin: Annotated[str, Depends(get_request_origin)],
) -> Load:
    """Создать груз. Все адреса остановок геокодируются до сохранения."""
    return await service.create_load(request, owner_id=owner_id, request_origin=origin)


@router.get("", response_model=list[Load])
async def list_loads(owner_id: Owner, service: Service) -> list[Load]:
    """Грузы текущего владельца, новые первыми."""
    return await service.list_loads(owner_id)


@router.get("/{load_id}", response_model=Load)
async def get_load(load_id: str, service: Service) -> Load:
    return await service.get_load(load_id)


@router.get("/{load_id}/driver-location")
async def get_driver_location(load_id: str, service: Service) -> dict[str, Any]:
    """Последняя позиция водителя или {lat: null, lng: null, city: null}."""
    location = await service.get_driver_location(load_id)
    if location is None:
        return EmptyDriverLocation().model_dump(by_alias=True)
    return location.model_dump(mode="json", by_alias=True)


@router.post("/{load_id}/confirm", response_model=TrackingUrlResponse)
async def confirm_load(load_id: str, service: Service) -> TrackingUrlResponse:
    load = await service.confirm(load_id)
    return TrackingUrlResponse(tracking_url=load.tracking_url)


@router.post("/{load_id}/cancel", response_model=MessageResponse)
async def cancel_load(load_id: str, service: Service) -> MessageResponse:
    await service.cancel(load_id)
    return MessageResponse(message="Load canceled")


@router.post("/{load_id}/complete", response_model=MessageResponse)
async def complete_load(load_id: str, owner_id: Owner, service: Service) -> MessageResponse:
    await service.complete(load_id, owner_id=owner_id)
    return MessageResponse(message="Load completed")


@router.post("/{load_id}/location", response_model=MessageResponse)
async def update_driver_location(
    load_id: str,
    request: LocationUpdateRequest,
    service: Service,
) -> MessageResponse:
    """Зафиксировать позицию водителя (только для подтверждённого груза)."""
    await service.update_location(load_id, request.lat, request.lng)
    return MessageResponse(message="Driver location updated")


@router.delete("/{load_id}", response_model=MessageResponse)
async def delete_load(load_id: str, owner_id: Owner, service: Service) -> MessageResponse:
    # Ответ одинаковый, даже если удалять было нечего
    await service.delete_load(load_id, owner_id=owner_id)
    return MessageResponse(message="Load deleted successfully")
