# tests/conftest.py
"""
Общие фикстуры и настройки для тестов.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

# Устанавливаем переменные окружения перед импортом модулей
os.environ.setdefault("GOOGLE_MAPS_API_KEY", "test_api_key")
os.environ.setdefault("JWT_SECRET", "test_jwt_secret")
os.environ.setdefault("REDIS_PASSWORD", "")
os.environ.setdefault("STORE_BACKEND", "memory")
os.environ.setdefault("REALTIME_BACKEND", "local")

from src.core.geo.service import GeoService, Location
from src.core.loads.models import CreateLoadRequest, StopInput
from src.core.loads.repository import InMemoryLoadStore
from src.core.loads.service import LoadService
from src.services.realtime_ws.connection_manager import ConnectionManager
from src.services.realtime_ws.fanout import LocalLoadFanout

TEST_JWT_SECRET = "test_jwt_secret"

# Адреса, которые знает фейковый геокодер
KNOWN_ADDRESSES: dict[str, tuple[float, float]] = {
    "A": (10.0, 20.0),
    "B": (12.5, 22.5),
    "Hamburg Hbf": (53.5526, 10.0067),
}


# =============================================================================
# ФИКСТУРЫ КОНФИГУРАЦИИ
# =============================================================================

@pytest.fixture(scope="session")
def project_root() -> Path:
    """Корневая директория проекта."""
    return Path(__file__).parent.parent


@pytest.fixture(scope="session")
def config_path(project_root: Path) -> Path:
    """Путь к файлу конфигурации."""
    return project_root / "config" / "config.json"


@pytest.fixture
def mock_config() -> dict[str, Any]:
    """Мок конфигурации для тестов."""
    return {
        "_comment_system": "Системные настройки",
        "PROJECT_NAME": "load_tracker_test",
        "VERSION": "1.0.0-test",
        "DEBUG": True,
        "LOG_LEVEL": "DEBUG",
        "ENVIRONMENT": "test",
        "LOAD_SERVICE_HOST": "127.0.0.1",
        "LOAD_SERVICE_PORT": 4100,
        "PUBLIC_ORIGIN": "https://track.example.com",
        "CORS_ORIGINS": ["https://app.example.com"],
        "LOG_TO_FILE": False,
        "LOG_FILE_PATH": "logs/test.log",
        "LOG_FORMAT": "colored",
        "GOOGLE_MAPS_API_KEY": "",
        "GEOCODING_LANGUAGE": "de",
        "GEOCODING_TIMEOUT": 5.0,
        "REDIS_HOST": "localhost",
        "REDIS_PORT": 6379,
        "REDIS_DB": 1,
        "REDIS_PASSWORD": "",
        "REDIS_NAMESPACE": "loads_test",
        "REDIS_MAX_CONNECTIONS": 10,
        "STORE_BACKEND": "memory",
        "STORE_UPDATE_MAX_RETRIES": 7,
        "REALTIME_BACKEND": "local",
        "AUTH_ENABLED": True,
        "JWT_SECRET": "",
        "JWT_ALGORITHM": "HS256",
    }


@pytest.fixture
def temp_config_file(tmp_path: Path, mock_config: dict[str, Any]) -> Path:
    """Создаёт временный файл конфигурации."""
    config_file = tmp_path / "config.json"
    config_file.write_text(json.dumps(mock_config, ensure_ascii=False, indent=2))
    return config_file


# =============================================================================
# ФИКСТУРЫ ДОМЕНА
# =============================================================================

class FakeClock:
    """Управляемые часы (мс эпохи)."""

    def __init__(self, start: int = 1_700_000_000_000) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def mock_geo() -> MagicMock:
    """Мок геокодера: знает адреса из KNOWN_ADDRESSES, город всегда "City X"."""
    from src.common.exceptions import AddressNotFoundError

    async def geocode(address: str) -> Location:
        if address not in KNOWN_ADDRESSES:
            raise AddressNotFoundError(address)
        lat, lng = KNOWN_ADDRESSES[address]
        return Location(latitude=lat, longitude=lng, address=address)

    geo = MagicMock(spec=GeoService)
    geo.geocode = AsyncMock(side_effect=geocode)
    geo.reverse_geocode = AsyncMock(return_value="City X")
    geo.close = AsyncMock(return_value=None)
    return geo


@pytest.fixture
def mock_fanout() -> AsyncMock:
    """Мок доставки realtime-событий."""
    fanout = AsyncMock()
    fanout.publish = AsyncMock(return_value=None)
    fanout.broadcast_all = AsyncMock(return_value=None)
    fanout.send = AsyncMock(return_value=True)
    fanout.subscribe = AsyncMock(return_value=None)
    fanout.unsubscribe = AsyncMock(return_value=None)
    return fanout


@pytest.fixture
def memory_store() -> InMemoryLoadStore:
    return InMemoryLoadStore()


@pytest.fixture
def load_service(
    memory_store: InMemoryLoadStore,
    mock_geo: MagicMock,
    mock_fanout: AsyncMock,
    clock: FakeClock,
) -> LoadService:
    """Сервис грузов с хранилищем в памяти и моками внешних зависимостей."""
    return LoadService(
        store=memory_store,
        geo=mock_geo,
        fanout=mock_fanout,
        public_origin="https://track.example.com",
        enforce_ownership=True,
        clock=clock,
    )


@pytest.fixture
def connection_manager() -> ConnectionManager:
    return ConnectionManager()


@pytest.fixture
def local_fanout(connection_manager: ConnectionManager) -> LocalLoadFanout:
    return LocalLoadFanout(connection_manager)


@pytest.fixture
def create_request() -> CreateLoadRequest:
    """Запрос на создание груза с одной остановкой."""
    return CreateLoadRequest(
        stops=[StopInput(type="pickup", address="A")],
        driver_phone="+49 151 000000",
        geofence=500,
    )


@pytest.fixture
def sample_load_payload() -> dict[str, Any]:
    """Тело POST /api/loads."""
    return {
        "stops": [
            {"type": "pickup", "address": "A"},
            {"type": "dropoff", "address": "B"},
        ],
        "driverPhone": "+49 151 000000",
        "geofence": 300,
    }


def make_token(sub: str, secret: str = TEST_JWT_SECRET, **claims: Any) -> str:
    """Выпускает тестовый JWT владельца."""
    import jwt

    return jwt.encode({"sub": sub, **claims}, secret, algorithm="HS256")


@pytest.fixture
def token_factory():
    """Фабрика тестовых JWT."""
    return make_token


# =============================================================================
# ФИКСТУРЫ ПРИЛОЖЕНИЯ
# =============================================================================

@pytest.fixture
def auth_config():
    from src.services.load_service.auth import AuthConfig

    return AuthConfig(enabled=True, secret=TEST_JWT_SECRET, algorithm="HS256")


@pytest.fixture
def api_service(
    memory_store: InMemoryLoadStore,
    mock_geo: MagicMock,
    local_fanout: LocalLoadFanout,
    clock: FakeClock,
) -> LoadService:
    """Сервис для HTTP/WebSocket тестов: реальная локальная доставка событий."""
    return LoadService(
        store=memory_store,
        geo=mock_geo,
        fanout=local_fanout,
        public_origin="https://track.example.com",
        enforce_ownership=True,
        clock=clock,
    )


@pytest.fixture
def api_client(
    api_service: LoadService,
    connection_manager: ConnectionManager,
    local_fanout: LocalLoadFanout,
    auth_config,
):
    """
    TestClient с заранее инициализированными зависимостями.
    Lifespan видит готовые зависимости и не подключает внешние сервисы.
    """
    from fastapi.testclient import TestClient

    from src.infra.redis_client import RedisClient
    from src.services.load_service.app import app
    from src.services.load_service.dependencies import init_dependencies, reset_dependencies

    RedisClient._instance = None
    RedisClient._client = None
    init_dependencies(api_service, connection_manager, local_fanout, auth_config)

    with TestClient(app) as client:
        yield client

    reset_dependencies()


@pytest.fixture
def auth_headers(token_factory):
    """Заголовки Authorization для владельца."""
    def _headers(owner_id: str = "owner1") -> dict[str, str]:
        return {"Authorization": f"Bearer {token_factory(owner_id)}"}

    return _headers
