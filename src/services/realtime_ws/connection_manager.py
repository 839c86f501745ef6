# src/services/realtime_ws/connection_manager.py
"""
Менеджер WebSocket соединений.
Управляет подписками и рассылкой сообщений.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from fastapi import WebSocket


def load_topic(load_id: str) -> str:
    """Топик (комната) груза."""
    return f"load:{load_id}"


def build_frame(event: str, data: Any) -> dict[str, Any]:
    """Кадр realtime-канала."""
    return {"event": str(event), "data": data}


@dataclass
class ConnectionInfo:
    """Информация о соединении."""
    websocket: WebSocket
    connection_id: str
    owner_id: str | None = None  # None: анонимное соединение
    connected_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    subscriptions: set[str] = field(default_factory=set)  # load:{id}


class ConnectionManager:
    """
    Менеджер WebSocket соединений.

    Поддерживает:
    - Подключение/отключение клиентов
    - Подписка на топики (load:{id})
    - Broadcast сообщений по топикам
    - Персональные сообщения
    """

    def __init__(self) -> None:
        # connection_id -> ConnectionInfo
        self._connections: dict[str, ConnectionInfo] = {}

        # topic -> set of connection_ids
        self._subscriptions: dict[str, set[str]] = {}

        # Для статистики
        self._total_connections: int = 0
        self._total_messages_sent: int = 0
        self._failed_sends: int = 0

    @property
    def active_connections(self) -> int:
        """Количество активных соединений."""
        return len(self._connections)

    async def connect(
        self,
        websocket: WebSocket,
        owner_id: str | None = None,
    ) -> str:
        """
        Подключить клиента.

        Returns:
            Идентификатор соединения
        """
        await websocket.accept()

        connection_id = uuid.uuid4().hex
        self._connections[connection_id] = ConnectionInfo(
            websocket=websocket,
            connection_id=connection_id,
            owner_id=owner_id,
        )
        self._total_connections += 1
        return connection_id

    async def disconnect(self, connection_id: str) -> None:
        """Отключить клиента."""
        if connection_id in self._connections:
            conn = self._connections[connection_id]

            # Отписываемся от всех топиков
            for topic in list(conn.subscriptions):
                self._unsubscribe_from_topic(connection_id, topic)

            del self._connections[connection_id]

    def get_owner(self, connection_id: str) -> str | None:
        """Владелец, от имени которого открыто соединение."""
        conn = self._connections.get(connection_id)
        return conn.owner_id if conn else None

    async def subscribe(self, connection_id: str, topic: str) -> None:
        """Подписать соединение на топик."""
        if connection_id not in self._connections:
            return

        self._connections[connection_id].subscriptions.add(topic)

        if topic not in self._subscriptions:
            self._subscriptions[topic] = set()
        self._subscriptions[topic].add(connection_id)

    async def unsubscribe(self, connection_id: str, topic: str) -> None:
        """Отписать соединение от топика."""
        self._unsubscribe_from_topic(connection_id, topic)

    def _unsubscribe_from_topic(self, connection_id: str, topic: str) -> None:
        """Внутренний метод отписки."""
        if connection_id in self._connections:
            self._connections[connection_id].subscriptions.discard(topic)

        if topic in self._subscriptions:
            self._subscriptions[topic].discard(connection_id)
            if not self._subscriptions[topic]:
                del self._subscriptions[topic]

    async def send_personal(self, connection_id: str, message: dict[str, Any]) -> bool:
        """
        Отправить сообщение конкретному соединению.

        Returns:
            True если сообщение отправлено, False если соединения нет
        """
        if connection_id not in self._connections:
            return False

        try:
            await self._connections[connection_id].websocket.send_json(message)
            self._total_messages_sent += 1
            return True
        except Exception:
            # Соединение разорвано
            self._failed_sends += 1
            await self.disconnect(connection_id)
            return False

    async def broadcast_to_topic(self, topic: str, message: dict[str, Any]) -> int:
        """
        Отправить сообщение всем подписчикам топика.

        Returns:
            Количество успешно отправленных сообщений
        """
        if topic not in self._subscriptions:
            return 0

        return await self._send_many(list(self._subscriptions[topic]), message)

    async def broadcast_all(self, message: dict[str, Any]) -> int:
        """Отправить сообщение всем подключенным клиентам."""
        return await self._send_many(list(self._connections), message)

    async def _send_many(self, connection_ids: list[str], message: dict[str, Any]) -> int:
        sent_count = 0
        failed: list[str] = []

        for connection_id in connection_ids:
            conn = self._connections.get(connection_id)
            if conn is None:
                continue
            try:
                await conn.websocket.send_json(message)
                sent_count += 1
                self._total_messages_sent += 1
            except Exception:
                failed.append(connection_id)

        # Отключаем failed соединения
        self._failed_sends += len(failed)
        for connection_id in failed:
            await self.disconnect(connection_id)

        return sent_count

    def get_subscriptions(self, connection_id: str) -> set[str]:
        """Получить все подписки соединения."""
        if connection_id in self._connections:
            return self._connections[connection_id].subscriptions.copy()
        return set()

    def get_topic_subscribers(self, topic: str) -> set[str]:
        """Получить всех подписчиков топика."""
        return self._subscriptions.get(topic, set()).copy()

    def get_stats(self) -> dict[str, Any]:
        """Получить статистику."""
        return {
            "active_connections": len(self._connections),
            "total_topics": len(self._subscriptions),
            "total_connections_ever": self._total_connections,
            "total_messages_sent": self._total_messages_sent,
            "failed_sends": self._failed_sends,
            "authenticated_connections": sum(
                1 for conn in self._connections.values() if conn.owner_id is not None
            ),
        }
