# src/services/realtime_ws/fanout.py
"""
Доставка событий грузов подписчикам.

LocalLoadFanout: доставка внутри процесса через ConnectionManager.
RedisLoadFanout: комнаты и глобальная рассылка через Redis Pub/Sub,
чтобы события доходили до клиентов всех процессов.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from src.common.constants import TypeMsg
from src.common.logger import log_info
from src.infra.redis_client import RedisClient
from src.services.realtime_ws.connection_manager import (
    ConnectionManager,
    build_frame,
    load_topic,
)

# Каналы Redis (без namespace)
LOAD_CHANNEL_PREFIX = "load:"
BROADCAST_CHANNEL = "loads:broadcast"


class LoadFanout(ABC):
    """Контракт доставки событий грузов."""

    @abstractmethod
    async def subscribe(self, load_id: str, connection_id: str) -> None:
        ...

    @abstractmethod
    async def unsubscribe(self, load_id: str, connection_id: str) -> None:
        ...

    @abstractmethod
    async def publish(self, load_id: str, event: str, data: Any) -> None:
        """Событие только подписчикам груза."""

    @abstractmethod
    async def broadcast_all(self, event: str, data: Any) -> None:
        """Событие всем подключённым клиентам."""

    @abstractmethod
    async def send(self, connection_id: str, event: str, data: Any) -> bool:
        """Событие одному соединению."""


class LocalLoadFanout(LoadFanout):
    """Доставка в пределах процесса."""

    def __init__(self, manager: ConnectionManager) -> None:
        self._manager = manager

    @property
    def manager(self) -> ConnectionManager:
        return self._manager

    async def subscribe(self, load_id: str, connection_id: str) -> None:
        await self._manager.subscribe(connection_id, load_topic(load_id))

    async def unsubscribe(self, load_id: str, connection_id: str) -> None:
        await self._manager.unsubscribe(connection_id, load_topic(load_id))

    async def publish(self, load_id: str, event: str, data: Any) -> None:
        await self._manager.broadcast_to_topic(load_topic(load_id), build_frame(event, data))

    async def broadcast_all(self, event: str, data: Any) -> None:
        await self._manager.broadcast_all(build_frame(event, data))

    async def send(self, connection_id: str, event: str, data: Any) -> bool:
        return await self._manager.send_personal(connection_id, build_frame(event, data))


class RedisLoadFanout(LocalLoadFanout):
    """
    Доставка через Redis Pub/Sub.

    Подписки и персональные сообщения остаются локальными,
    комнаты и глобальная рассылка идут через каналы load:{id} и loads:broadcast.
    Локальным клиентам кадры доставляет RedisSubscriber этого же процесса.
    """

    def __init__(self, manager: ConnectionManager, redis_client: RedisClient) -> None:
        super().__init__(manager)
        self._redis = redis_client

    async def publish(self, load_id: str, event: str, data: Any) -> None:
        await self._redis.publish(f"{LOAD_CHANNEL_PREFIX}{load_id}", build_frame(event, data))

    async def broadcast_all(self, event: str, data: Any) -> None:
        await self._redis.publish(BROADCAST_CHANNEL, build_frame(event, data))


async def relay_redis_message(manager: ConnectionManager, namespace: str, channel: str, frame: dict[str, Any]) -> None:
    """
    Переслать кадр из Redis локальным соединениям.

    Каналы:
    - {ns}:load:{id} → подписчикам топика load:{id}
    - {ns}:loads:broadcast → всем
    """
    prefix = f"{namespace}:"
    if channel.startswith(prefix):
        channel = channel[len(prefix):]

    if channel == BROADCAST_CHANNEL:
        await manager.broadcast_all(frame)
        return

    if channel.startswith(LOAD_CHANNEL_PREFIX):
        load_id = channel[len(LOAD_CHANNEL_PREFIX):]
        await manager.broadcast_to_topic(load_topic(load_id), frame)
        return

    # Неизвестный канал
    await log_info(f"Сообщение из неизвестного канала Redis: {channel}", type_msg=TypeMsg.DEBUG)
