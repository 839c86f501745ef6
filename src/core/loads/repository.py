# src/core/loads/repository.py
"""
Хранилища грузов.

Плоское пространство ключей id -> груз плюс индекс владельца.
Единственный примитив изменения: update_atomic: чтение, функция перехода
и запись выполняются как одна операция относительно других изменений того же груза.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import Callable

from redis.exceptions import WatchError

from src.common.constants import TypeMsg
from src.common.exceptions import ConflictError, NotFoundError
from src.common.logger import log_info, log_warning
from src.core.loads.models import Load
from src.infra.redis_client import RedisClient

# Ключ индекса для грузов без владельца (авторизация отключена)
ANONYMOUS_OWNER = "_anonymous"

LoadMutation = Callable[[Load], Load]


class LoadStore(ABC):
    """Контракт хранилища грузов."""

    @abstractmethod
    async def get(self, load_id: str) -> Load | None:
        """Груз по id или None."""

    @abstractmethod
    async def put(self, load: Load) -> None:
        """Создаёт или перезаписывает груз и индекс владельца."""

    @abstractmethod
    async def update_atomic(self, load_id: str, fn: LoadMutation) -> Load:
        """
        Атомарно применяет fn к актуальной версии груза.

        Raises:
            NotFoundError: груз не найден
            ConflictError: выброшено fn (ничего не записывается)
        """

    @abstractmethod
    async def remove(self, load_id: str) -> bool:
        """Удаляет груз. True, если запись была."""

    @abstractmethod
    async def list_by_owner(self, owner_id: str | None) -> list[Load]:
        """Грузы владельца, новые первыми."""

    async def close(self) -> None:
        """Освобождает ресурсы."""


def _owner_key(owner_id: str | None) -> str:
    return owner_id or ANONYMOUS_OWNER


class InMemoryLoadStore(LoadStore):
    """
    Хранилище в памяти процесса.
    Изменения одного груза сериализуются через asyncio.Lock на id.
    """

    def __init__(self) -> None:
        self._loads: dict[str, Load] = {}
        self._owners: dict[str, set[str]] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock_for(self, load_id: str) -> asyncio.Lock:
        lock = self._locks.get(load_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[load_id] = lock
        return lock

    async def get(self, load_id: str) -> Load | None:
        return self._loads.get(load_id)

    async def put(self, load: Load) -> None:
        self._loads[load.id] = load
        self._owners.setdefault(_owner_key(load.owner_id), set()).add(load.id)

    async def update_atomic(self, load_id: str, fn: LoadMutation) -> Load:
        if load_id not in self._loads:
            raise NotFoundError("Load not found")

        async with self._lock_for(load_id):
            current = self._loads.get(load_id)
            if current is None:
                raise NotFoundError("Load not found")

            updated = fn(current)
            self._loads[load_id] = updated
            return updated

    async def remove(self, load_id: str) -> bool:
        if load_id not in self._loads:
            return False

        async with self._lock_for(load_id):
            load = self._loads.pop(load_id, None)
            if load is None:
                self._locks.pop(load_id, None)
                return False

            owner_ids = self._owners.get(_owner_key(load.owner_id))
            if owner_ids is not None:
                owner_ids.discard(load_id)
                if not owner_ids:
                    del self._owners[_owner_key(load.owner_id)]

        self._locks.pop(load_id, None)
        return True

    async def list_by_owner(self, owner_id: str | None) -> list[Load]:
        ids = self._owners.get(_owner_key(owner_id), set())
        loads = [self._loads[i] for i in ids if i in self._loads]
        return sorted(loads, key=lambda l: l.created_at, reverse=True)


class RedisLoadStore(LoadStore):
    """
    Хранилище в Redis.

    Ключи:
    - load:{id}: JSON документ груза
    - owner:{owner}:loads: sorted set id грузов со score = createdAt

    update_atomic использует оптимистичную блокировку WATCH/MULTI/EXEC.
    """

    def __init__(self, redis_client: RedisClient, max_retries: int = 50) -> None:
        """
        Args:
            redis_client: Подключённый RedisClient
            max_retries: Сколько раз повторять транзакцию при WatchError
        """
        self._redis = redis_client
        self._max_retries = max_retries

    @staticmethod
    def load_key(load_id: str) -> str:
        return f"load:{load_id}"

    @staticmethod
    def owner_index_key(owner_id: str | None) -> str:
        return f"owner:{_owner_key(owner_id)}:loads"

    @staticmethod
    def _dump(load: Load) -> str:
        return load.model_dump_json(by_alias=True)

    async def get(self, load_id: str) -> Load | None:
        return await self._redis.get_model(self.load_key(load_id), Load)

    async def put(self, load: Load) -> None:
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.set(self._redis.make_key(self.load_key(load.id)), self._dump(load))
            pipe.zadd(
                self._redis.make_key(self.owner_index_key(load.owner_id)),
                {load.id: load.created_at},
            )
            await pipe.execute()

    async def update_atomic(self, load_id: str, fn: LoadMutation) -> Load:
        key = self._redis.make_key(self.load_key(load_id))

        async with self._redis.pipeline(transaction=True) as pipe:
            for attempt in range(1, self._max_retries + 1):
                try:
                    await pipe.watch(key)
                    raw = await pipe.get(key)
                    if raw is None:
                        raise NotFoundError("Load not found")

                    updated = fn(Load.model_validate_json(raw))

                    pipe.multi()
                    pipe.set(key, self._dump(updated))
                    await pipe.execute()
                    return updated
                except WatchError:
                    await log_info(
                        f"Конкурентное изменение груза {load_id}, попытка {attempt}/{self._max_retries}",
                        type_msg=TypeMsg.DEBUG,
                    )
                    continue

        await log_warning(f"Не удалось применить изменение груза {load_id} после {self._max_retries} попыток")
        raise ConflictError("Load is being modified concurrently, try again")

    async def remove(self, load_id: str) -> bool:
        key = self._redis.make_key(self.load_key(load_id))

        async with self._redis.pipeline(transaction=True) as pipe:
            for _ in range(self._max_retries):
                try:
                    await pipe.watch(key)
                    raw = await pipe.get(key)
                    if raw is None:
                        return False

                    load = Load.model_validate_json(raw)

                    pipe.multi()
                    pipe.delete(key)
                    pipe.zrem(self._redis.make_key(self.owner_index_key(load.owner_id)), load_id)
                    await pipe.execute()
                    return True
                except WatchError:
                    continue

        raise ConflictError("Load is being modified concurrently, try again")

    async def list_by_owner(self, owner_id: str | None) -> list[Load]:
        ids = await self._redis.zrevrange(self.owner_index_key(owner_id))
        if not ids:
            return []

        raws = await self._redis.mget([self.load_key(i) for i in ids])
        return [Load.model_validate_json(raw) for raw in raws if raw is not None]
