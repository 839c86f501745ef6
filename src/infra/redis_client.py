# src/infra/redis_client.py
"""
Клиент Redis для хранилища грузов и Pub/Sub.
Поддерживает типизированные операции с Pydantic моделями.
"""

from __future__ import annotations

import json
from typing import Any, TypeVar, Type

import redis.asyncio as redis
from pydantic import BaseModel, ValidationError as PydanticValidationError

from src.common.logger import log_error, log_info
from src.common.constants import TypeMsg

T = TypeVar("T", bound=BaseModel)


class RedisClient:
    """
    Асинхронный клиент Redis.
    Поддерживает:
    - Типизированные get/set с Pydantic моделями
    - Транзакционные пайплайны (WATCH/MULTI/EXEC)
    - Sorted set операции для индексов
    - Pub/Sub публикацию
    """

    _instance: RedisClient | None = None
    _client: redis.Redis | None = None

    def __new__(cls) -> RedisClient:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self) -> None:
        """Инициализация (вызывается только один раз благодаря Singleton)."""
        if hasattr(self, "_initialized"):
            return
        self._initialized = True
        self._client = None
        self._namespace = "loads"

    @property
    def client(self) -> redis.Redis:
        """Возвращает клиент Redis."""
        if self._client is None:
            raise RuntimeError("Redis клиент не инициализирован. Вызовите connect() сначала.")
        return self._client

    @property
    def is_connected(self) -> bool:
        return self._client is not None

    def make_key(self, key: str) -> str:
        """Добавляет namespace к ключу."""
        return f"{self._namespace}:{key}"

    async def connect(
        self,
        url: str | None = None,
        max_connections: int = 50,
        namespace: str | None = None,
    ) -> None:
        """
        Подключается к Redis.

        Args:
            url: URL Redis (если None, берётся из конфига)
            max_connections: Максимальное количество соединений
            namespace: Префикс ключей (если None, берётся из конфига)
        """
        if self._client is not None:
            return

        if url is None or namespace is None:
            from src.config import settings
            url = url or settings.redis.url
            max_connections = settings.redis.REDIS_MAX_CONNECTIONS
            namespace = namespace or settings.redis.REDIS_NAMESPACE

        self._namespace = namespace

        await log_info("Подключение к Redis...", type_msg=TypeMsg.INFO)

        self._client = redis.from_url(
            url,
            max_connections=max_connections,
            decode_responses=True,
        )

        # Проверяем подключение
        await self._client.ping()

        await log_info("Подключение к Redis установлено", type_msg=TypeMsg.INFO)

    async def disconnect(self) -> None:
        """Закрывает соединение с Redis."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            await log_info("Соединение с Redis закрыто", type_msg=TypeMsg.INFO)

    # =========================================================================
    # БАЗОВЫЕ ОПЕРАЦИИ
    # =========================================================================

    async def get(self, key: str) -> str | None:
        """Получает значение по ключу."""
        return await self.client.get(self.make_key(key))

    async def mget(self, keys: list[str]) -> list[str | None]:
        """Получает значения по списку ключей."""
        if not keys:
            return []
        return await self.client.mget([self.make_key(k) for k in keys])

    # =========================================================================
    # ТИПИЗИРОВАННЫЕ ОПЕРАЦИИ (PYDANTIC)
    # =========================================================================

    async def get_model(self, key: str, model_class: Type[T]) -> T | None:
        """
        Получает и десериализует Pydantic модель.

        Args:
            key: Ключ
            model_class: Класс модели Pydantic

        Returns:
            Экземпляр модели или None
        """
        data = await self.get(key)
        if data is None:
            return None

        try:
            return model_class.model_validate_json(data)
        except PydanticValidationError as e:
            await log_error(f"Ошибка десериализации модели {model_class.__name__}: {e}")
            return None

    # =========================================================================
    # SORTED SET ОПЕРАЦИИ (индексы)
    # =========================================================================

    async def zrevrange(self, key: str, start: int = 0, end: int = -1) -> list[str]:
        """Элементы sorted set по убыванию score."""
        return await self.client.zrevrange(self.make_key(key), start, end)

    # =========================================================================
    # ТРАНЗАКЦИИ
    # =========================================================================

    def pipeline(self, transaction: bool = True) -> Any:
        """
        Создаёт пайплайн.

        Ключи внутри пайплайна передаются уже с namespace (make_key).
        """
        return self.client.pipeline(transaction=transaction)

    # =========================================================================
    # PUB/SUB
    # =========================================================================

    async def publish(self, channel: str, message: dict[str, Any]) -> int:
        """
        Публикует JSON сообщение в канал.

        Returns:
            Количество получателей
        """
        return await self.client.publish(
            self.make_key(channel),
            json.dumps(message, ensure_ascii=False),
        )

    # =========================================================================
    # HEALTH CHECK
    # =========================================================================

    async def health_check(self) -> bool:
        """
        Проверяет здоровье подключения к Redis.

        Returns:
            True если подключение работает
        """
        try:
            return await self.client.ping()
        except (redis.RedisError, RuntimeError) as e:
            await log_error(f"Health check Redis failed: {e}")
            return False


def get_redis() -> RedisClient:
    """
    Возвращает глобальный экземпляр RedisClient.

    Returns:
        RedisClient
    """
    return RedisClient()


async def init_redis() -> RedisClient:
    """
    Инициализирует подключение к Redis.
    Использует настройки из конфигурации.
    """
    from src.config import settings

    redis_client = get_redis()
    await redis_client.connect(
        url=settings.redis.url,
        max_connections=settings.redis.REDIS_MAX_CONNECTIONS,
        namespace=settings.redis.REDIS_NAMESPACE,
    )
    await log_info(
        f"Redis подключён: {settings.redis.REDIS_HOST}:{settings.redis.REDIS_PORT}/{settings.redis.REDIS_DB}",
        type_msg=TypeMsg.INFO,
    )
    return redis_client


async def close_redis() -> None:
    """
    Закрывает подключение к Redis.
    """
    redis_client = get_redis()
    await redis_client.disconnect()
    await log_info("Redis отключён", type_msg=TypeMsg.INFO)
