# src/services/realtime_ws/redis_subscriber.py
"""
Фоновый слушатель Redis Pub/Sub.

Принимает кадры, опубликованные RedisLoadFanout любым инстансом, и передаёт
их обработчику (обычно relay_redis_message) для доставки локальным клиентам.
"""

from __future__ import annotations

import asyncio
import json
from typing import TYPE_CHECKING, Any, Awaitable, Callable

from redis.exceptions import RedisError

from src.common.logger import log_error, log_warning

if TYPE_CHECKING:
    from redis.asyncio import Redis
    from redis.asyncio.client import PubSub

FrameHandler = Callable[[str, dict[str, Any]], Awaitable[None]]

_DATA_MESSAGE_TYPES = ("message", "pmessage")
_POLL_TIMEOUT = 1.0
_RETRY_DELAY = 1.0


def _as_text(value: Any) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return str(value) if value is not None else ""


class RedisSubscriber:
    """Подписка на каналы и паттерны с передачей JSON-кадров в обработчик."""

    def __init__(
        self,
        redis: "Redis",
        message_handler: FrameHandler,
        patterns: list[str] | None = None,
        channels: list[str] | None = None,
    ) -> None:
        self._redis = redis
        self._handler = message_handler
        self._wanted_patterns = tuple(patterns or ())
        self._wanted_channels = tuple(channels or ())

        self._pubsub: PubSub | None = None
        self._task: asyncio.Task | None = None

    async def start(self) -> None:
        """Открывает pubsub, подписывается и запускает цикл чтения."""
        if self._task is not None:
            return

        self._pubsub = self._redis.pubsub()
        if self._wanted_patterns:
            await self._pubsub.psubscribe(*self._wanted_patterns)
        if self._wanted_channels:
            await self._pubsub.subscribe(*self._wanted_channels)

        self._task = asyncio.create_task(self._listen(), name="redis-subscriber")

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        pubsub, self._pubsub = self._pubsub, None
        if pubsub is not None:
            await pubsub.unsubscribe()
            await pubsub.punsubscribe()
            await pubsub.aclose()

    async def _listen(self) -> None:
        while True:
            try:
                message = await self._pubsub.get_message(
                    ignore_subscribe_messages=True,
                    timeout=_POLL_TIMEOUT,
                )
            except RedisError as e:
                await log_error(f"Ошибка чтения Redis Pub/Sub: {e}")
                await asyncio.sleep(_RETRY_DELAY)
                continue

            if message is not None:
                await self._process_message(message)

    async def _process_message(self, message: dict[str, Any]) -> None:
        """
        Разбирает сообщение Pub/Sub.

        Служебные сообщения (subscribe/psubscribe) и невалидный JSON пропускаются.
        Ошибка обработчика логируется и не останавливает цикл чтения.
        """
        if message.get("type") not in _DATA_MESSAGE_TYPES:
            return

        channel = _as_text(message.get("channel"))

        try:
            frame = json.loads(_as_text(message.get("data")))
        except json.JSONDecodeError:
            await log_warning(f"Некорректный JSON в канале {channel}")
            return

        if not isinstance(frame, dict):
            await log_warning(f"Кадр в канале {channel} не является объектом")
            return

        try:
            await self._handler(channel, frame)
        except Exception as e:
            await log_error(
                f"Ошибка доставки кадра из {channel}: {e}",
                extra={"channel": channel},
                exc_info=True,
            )
