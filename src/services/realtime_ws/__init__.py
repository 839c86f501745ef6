# src/services/realtime_ws/__init__.py
"""
Realtime WebSocket: доставка событий грузов.

Обеспечивает:
- WebSocket соединения для клиентов отслеживания
- Комнаты грузов load:{id} и глобальное событие loadsUpdated
- Межпроцессную доставку через Redis Pub/Sub
"""
