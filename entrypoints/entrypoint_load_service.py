#!/usr/bin/env python3
# entrypoint_load_service.py
"""
Точка входа для Load Service.
Порт: 4000 (LOAD_SERVICE_PORT или PORT)
"""

import asyncio
import sys
from pathlib import Path

# Добавляем корневую директорию проекта в путь
project_root = Path(__file__).parent.parent.resolve()
sys.path.insert(0, str(project_root))

import uvicorn

from src.config import settings
from src.common.logger import log_info
from src.common.constants import TypeMsg


async def main() -> None:
    """Запуск Load Service."""
    await log_info(
        f"Запуск Load Service на порту {settings.deployment.LOAD_SERVICE_PORT}",
        type_msg=TypeMsg.INFO,
    )

    config = uvicorn.Config(
        "src.services.load_service.app:app",
        host=settings.deployment.LOAD_SERVICE_HOST,
        port=settings.deployment.LOAD_SERVICE_PORT,
        reload=settings.system.DEBUG,
        log_level="debug" if settings.system.DEBUG else "info",
    )

    server = uvicorn.Server(config)
    await server.serve()


if __name__ == "__main__":
    asyncio.run(main())
