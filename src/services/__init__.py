# src/services/__init__.py
"""
Сервисы приложения.

Сервисы:
- load_service: HTTP API грузов (FastAPI)
- realtime_ws: WebSocket доставка событий грузов
"""

__all__: list[str] = []
