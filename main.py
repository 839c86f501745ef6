#!/usr/bin/env python3
# main.py
"""
Главная точка входа приложения Load Tracker.
Запускает Load Service (HTTP API + WebSocket) через uvicorn.
"""

from __future__ import annotations

import asyncio
import signal
import sys

from src.config import settings
from src.common.logger import setup_logging, log_info, log_error
from src.common.constants import TypeMsg


# Глобальный флаг для graceful shutdown
_shutdown_event: asyncio.Event | None = None
_running_tasks: list[asyncio.Task] = []


def setup_signal_handlers() -> None:
    """Настраивает обработчики сигналов для graceful shutdown."""
    global _shutdown_event
    _shutdown_event = asyncio.Event()

    def signal_handler(sig: int) -> None:
        """Обработчик сигналов SIGINT и SIGTERM."""
        if _shutdown_event and not _shutdown_event.is_set():
            print(f"\nПолучен сигнал остановки (sig={sig}), завершаем работу...")
            _shutdown_event.set()
            for task in _running_tasks:
                if not task.done():
                    task.cancel()

    try:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, lambda s=sig: signal_handler(s))
    except NotImplementedError:
        # Windows не поддерживает add_signal_handler
        signal.signal(signal.SIGINT, lambda s, f: signal_handler(s))
        signal.signal(signal.SIGTERM, lambda s, f: signal_handler(s))


async def run_load_service() -> None:
    """Запускает Load Service (REST API грузов + /ws)."""
    import uvicorn

    await log_info(
        f"Запуск Load Service на {settings.deployment.LOAD_SERVICE_HOST}:{settings.deployment.LOAD_SERVICE_PORT}...",
        type_msg=TypeMsg.INFO,
    )

    config = uvicorn.Config(
        "src.services.load_service.app:app",
        host=settings.deployment.LOAD_SERVICE_HOST,
        port=settings.deployment.LOAD_SERVICE_PORT,
        log_level="debug" if settings.system.DEBUG else "info",
    )

    server = uvicorn.Server(config)
    try:
        await server.serve()
    except asyncio.CancelledError:
        await log_info("Load Service: graceful shutdown", type_msg=TypeMsg.DEBUG)
        await server.shutdown()


async def main() -> None:
    """Главная функция запуска."""
    global _running_tasks

    setup_logging()
    setup_signal_handlers()

    await log_info(
        f"Load Tracker v{settings.system.VERSION} (окружение '{settings.system.ENVIRONMENT}')",
        type_msg=TypeMsg.INFO,
    )

    _running_tasks = [asyncio.create_task(run_load_service())]

    try:
        await asyncio.gather(*_running_tasks)
    except asyncio.CancelledError:
        await log_info("Отмена задач...", type_msg=TypeMsg.INFO)
        for task in _running_tasks:
            if not task.done():
                task.cancel()
        await asyncio.gather(*_running_tasks, return_exceptions=True)


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\nОстановлено пользователем")
    except Exception as e:
        asyncio.run(log_error(f"Критическая ошибка: {e}", exc_info=True))
        sys.exit(1)
