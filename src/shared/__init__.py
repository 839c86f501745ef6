# src/shared/__init__.py
"""
Общий код между HTTP и realtime слоями.

Модули:
- models: общие модели ответов
"""

__all__: list[str] = []
