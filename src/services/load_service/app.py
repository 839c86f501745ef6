# src/services/load_service/app.py
"""
FastAPI приложение Load Service.

REST endpoints (под /api):
- POST /api/loads: создать груз
- GET /api/loads: грузы владельца
- GET /api/loads/{id}: груз
- GET /api/loads/{id}/driver-location: позиция водителя
- POST /api/loads/{id}/confirm | cancel | complete: переходы статуса
- POST /api/loads/{id}/location: позиция водителя
- DELETE /api/loads/{id}: удалить груз

WebSocket:
- /ws?token=<bearer>: realtime-канал

Служебные:
- GET /health: проверка здоровья
- GET /stats: статистика соединений
"""

from __future__ import annotations

import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from src.common.constants import TypeMsg
from src.common.exceptions import LoadTrackerError
from src.common.logger import log_error, log_info, log_warning, setup_logging
from src.config import settings
from src.core.geo.service import GeoService
from src.core.loads.repository import InMemoryLoadStore, LoadStore, RedisLoadStore
from src.core.loads.service import LoadService
from src.infra.redis_client import RedisClient, close_redis, init_redis
from src.services.load_service import dependencies
from src.services.load_service.auth import AuthConfig
from src.services.load_service.routes import router as loads_router
from src.services.realtime_ws.connection_manager import ConnectionManager
from src.services.realtime_ws.fanout import (
    BROADCAST_CHANNEL,
    LOAD_CHANNEL_PREFIX,
    LoadFanout,
    LocalLoadFanout,
    RedisLoadFanout,
    relay_redis_message,
)
from src.services.realtime_ws.redis_subscriber import RedisSubscriber
from src.services.realtime_ws.routes import router as ws_router
from src.shared.models.common import ErrorResponse, HealthStatus, StatsResponse

SERVICE_NAME = "load_service"

_started_at: float = time.monotonic()


# === LIFESPAN ===

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Жизненный цикл приложения.

    Если зависимости уже инициализированы (тесты), приложение их не пересоздаёт
    и не закрывает.
    """
    global _started_at
    _started_at = time.monotonic()
    setup_logging()

    if dependencies.is_initialized():
        yield
        return

    redis_client: RedisClient | None = None
    subscriber: RedisSubscriber | None = None

    if settings.store.STORE_BACKEND == "redis" or settings.store.REALTIME_BACKEND == "redis":
        redis_client = await init_redis()

    store: LoadStore
    if settings.store.STORE_BACKEND == "redis":
        store = RedisLoadStore(redis_client, max_retries=settings.store.STORE_UPDATE_MAX_RETRIES)
    else:
        store = InMemoryLoadStore()

    manager = ConnectionManager()
    fanout: LoadFanout
    if settings.store.REALTIME_BACKEND == "redis":
        fanout = RedisLoadFanout(manager, redis_client)
        namespace = settings.redis.REDIS_NAMESPACE

        async def handle_redis_message(channel: str, frame: dict) -> None:
            await relay_redis_message(manager, namespace, channel, frame)

        subscriber = RedisSubscriber(
            redis_client.client,
            handle_redis_message,
            patterns=[redis_client.make_key(f"{LOAD_CHANNEL_PREFIX}*")],
            channels=[redis_client.make_key(BROADCAST_CHANNEL)],
        )
        await subscriber.start()
    else:
        fanout = LocalLoadFanout(manager)

    geo = GeoService()

    auth = AuthConfig(
        enabled=settings.auth.AUTH_ENABLED,
        secret=settings.auth.JWT_SECRET,
        algorithm=settings.auth.JWT_ALGORITHM,
    )
    if auth.enabled and not auth.secret:
        await log_warning("AUTH_ENABLED, но JWT_SECRET не задан: все токены будут отклонены")

    service = LoadService(
        store=store,
        geo=geo,
        fanout=fanout,
        public_origin=settings.deployment.PUBLIC_ORIGIN,
        enforce_ownership=auth.enabled,
    )
    dependencies.init_dependencies(service, manager, fanout, auth)

    await log_info(
        f"Load Service запущен: store={settings.store.STORE_BACKEND}, "
        f"realtime={settings.store.REALTIME_BACKEND}, auth={'on' if auth.enabled else 'off'}",
        type_msg=TypeMsg.INFO,
    )

    yield

    # Shutdown
    if subscriber:
        await subscriber.stop()
    await geo.close()
    await store.close()
    if redis_client:
        await close_redis()
    dependencies.reset_dependencies()
    await log_info("Load Service остановлен", type_msg=TypeMsg.INFO)


# === APP ===

app = FastAPI(
    title="Load Tracker",
    description="Отслеживание грузов: жизненный цикл, геокодирование и realtime-обновления.",
    version=settings.system.VERSION,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.deployment.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(loads_router, prefix="/api")
app.include_router(ws_router)


# === ERROR HANDLERS ===

@app.exception_handler(LoadTrackerError)
async def load_tracker_error_handler(request: Request, exc: LoadTrackerError) -> JSONResponse:
    """Ошибки домена → {error, error_code}."""
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(error=exc.message, error_code=exc.error_code).model_dump(),
    )


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Тело запроса не соответствует схеме."""
    await log_info(f"Некорректный запрос {request.method} {request.url.path}: {exc.errors()}", type_msg=TypeMsg.DEBUG)
    return JSONResponse(
        status_code=400,
        content=ErrorResponse(error="Invalid request body", error_code="validation_error").model_dump(),
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    await log_error(f"Необработанная ошибка {request.method} {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(error="Internal server error", error_code="internal_error").model_dump(),
    )


# === HEALTH CHECK ===

@app.get("/health", response_model=HealthStatus, tags=["Health"])
async def health_check() -> HealthStatus:
    """Проверка здоровья сервиса."""
    deps = {"store": settings.store.STORE_BACKEND}
    status = "healthy"

    redis_client = RedisClient()
    if redis_client.is_connected:
        healthy = await redis_client.health_check()
        deps["redis"] = "healthy" if healthy else "unhealthy"
        if not healthy:
            status = "degraded"

    return HealthStatus(
        status=status,
        service=SERVICE_NAME,
        version=settings.system.VERSION,
        uptime_seconds=round(time.monotonic() - _started_at, 3),
        dependencies=deps,
    )


# === STATS ===

@app.get("/stats", response_model=StatsResponse, tags=["Stats"])
async def get_stats() -> StatsResponse:
    """Получить статистику соединений."""
    stats = dependencies.get_connection_manager().get_stats()
    return StatsResponse(
        **stats,
        store_backend=settings.store.STORE_BACKEND,
        realtime_backend=settings.store.REALTIME_BACKEND,
    )


# === STARTUP ===

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        app,
        host=settings.deployment.LOAD_SERVICE_HOST,
        port=settings.deployment.LOAD_SERVICE_PORT,
    )
