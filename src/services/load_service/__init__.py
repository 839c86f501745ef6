# src/services/load_service/__init__.py
"""
Load Service: HTTP API грузов и realtime-канал.

Обеспечивает:
- Создание грузов с геокодированием остановок
- Переходы статуса (confirm, cancel, complete)
- Приём позиции водителя
- WebSocket /ws для отслеживания
"""
