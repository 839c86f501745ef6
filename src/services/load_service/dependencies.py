# src/services/load_service/dependencies.py
"""
Dependency Injection для Load Service.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Annotated

from fastapi import Header, Request

from src.services.load_service.auth import AuthConfig, extract_bearer, resolve_owner

if TYPE_CHECKING:
    from src.core.loads.service import LoadService
    from src.services.realtime_ws.connection_manager import ConnectionManager
    from src.services.realtime_ws.fanout import LoadFanout


# Синглтоны
_load_service: "LoadService | None" = None
_manager: "ConnectionManager | None" = None
_fanout: "LoadFanout | None" = None
_auth: AuthConfig = AuthConfig()


def init_dependencies(
    load_service: "LoadService",
    manager: "ConnectionManager",
    fanout: "LoadFanout",
    auth: AuthConfig,
) -> None:
    """Инициализировать зависимости при старте приложения."""
    global _load_service, _manager, _fanout, _auth
    _load_service = load_service
    _manager = manager
    _fanout = fanout
    _auth = auth


def is_initialized() -> bool:
    return _load_service is not None


def get_load_service() -> "LoadService":
    """Получить сервис грузов."""
    if _load_service is None:
        raise RuntimeError("LoadService не инициализирован. Вызовите init_dependencies()")
    return _load_service


def get_connection_manager() -> "ConnectionManager":
    """Получить менеджер WebSocket соединений."""
    if _manager is None:
        raise RuntimeError("ConnectionManager не инициализирован. Вызовите init_dependencies()")
    return _manager


def get_fanout() -> "LoadFanout":
    """Получить доставку realtime-событий."""
    if _fanout is None:
        raise RuntimeError("LoadFanout не инициализирован. Вызовите init_dependencies()")
    return _fanout


def get_auth_config() -> AuthConfig:
    return _auth


async def get_current_owner(
    authorization: Annotated[str | None, Header()] = None,
) -> str | None:
    """
    Владелец запроса из заголовка Authorization: Bearer <token>.

    401 без токена, 403 при невалидном токене, None при отключённой авторизации.
    """
    return resolve_owner(extract_bearer(authorization), _auth, required=True)


def get_request_origin(request: Request) -> str:
    """
    Origin запроса с учётом X-Forwarded-Proto / X-Forwarded-Host.
    Используется для trackingUrl, если PUBLIC_ORIGIN не задан.
    """
    proto = request.headers.get("x-forwarded-proto") or request.url.scheme
    host = request.headers.get("x-forwarded-host") or request.headers.get("host") or request.url.netloc
    return f"{proto.split(',')[0].strip()}://{host.split(',')[0].strip()}"


def reset_dependencies() -> None:
    """Сбросить синглтоны (при остановке приложения и в тестах)."""
    global _load_service, _manager, _fanout, _auth
    _load_service = None
    _manager = None
    _fanout = None
    _auth = AuthConfig()
