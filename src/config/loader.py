# src/config/loader.py
"""
Загрузчик конфигурации проекта.
Настройки читаются из config/config.json.
Секретные данные и адреса сервисов переопределяются из переменных окружения.
"""

from __future__ import annotations

import json
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings


# =============================================================================
# ОПРЕДЕЛЕНИЕ ПУТЕЙ
# =============================================================================

def get_project_root() -> Path:
    """Возвращает корневую директорию проекта."""
    return Path(__file__).parent.parent.parent


def get_config_path() -> Path:
    """Возвращает путь к файлу конфигурации."""
    return get_project_root() / "config" / "config.json"


def load_config_json() -> dict[str, Any]:
    """Загружает config.json и возвращает словарь."""
    config_path = get_config_path()
    if not config_path.exists():
        raise FileNotFoundError(f"Файл конфигурации не найден: {config_path}")

    with open(config_path, "r", encoding="utf-8") as f:
        return json.load(f)


# =============================================================================
# PYDANTIC МОДЕЛИ КОНФИГУРАЦИИ
# =============================================================================

class SystemSettings(BaseModel):
    """Системные настройки."""
    PROJECT_NAME: str = "load_tracker"
    VERSION: str = "1.0.0"
    DEBUG: bool = True
    LOG_LEVEL: str = "DEBUG"
    ENVIRONMENT: str = "development"


class DeploymentSettings(BaseModel):
    """Настройки развертывания сервиса."""
    LOAD_SERVICE_HOST: str = "0.0.0.0"
    LOAD_SERVICE_PORT: int = 4000
    # Origin, от которого строятся trackingUrl. Если пусто, берётся из запроса.
    PUBLIC_ORIGIN: str = ""
    CORS_ORIGINS: list[str] = Field(default_factory=lambda: ["*"])


class LoggingSettings(BaseModel):
    """Настройки логирования."""
    LOG_LEVEL: str = "DEBUG"
    LOG_TO_FILE: bool = True
    LOG_FILE_PATH: str = "logs/app.log"
    LOG_FORMAT: str = "colored"
    LOG_MAX_BYTES: int = 10485760
    LOG_BACKUP_COUNT: int = 5


class GoogleMapsSettings(BaseModel):
    """Настройки Google Maps API."""
    GOOGLE_MAPS_API_KEY: str = ""
    GEOCODING_LANGUAGE: str = "en"
    GEOCODING_TIMEOUT: float = 10.0

    @field_validator("GOOGLE_MAPS_API_KEY", mode="before")
    @classmethod
    def get_from_env(cls, v: str) -> str:
        """Получает API ключ из переменных окружения."""
        if not v:
            return os.getenv("GOOGLE_MAPS_API_KEY", "")
        return v


class RedisSettings(BaseModel):
    """Настройки Redis."""
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_PASSWORD: str = ""
    REDIS_NAMESPACE: str = "loads"
    REDIS_MAX_CONNECTIONS: int = 50

    @field_validator("REDIS_PASSWORD", mode="before")
    @classmethod
    def get_from_env(cls, v: str) -> str:
        """Получает пароль из переменных окружения."""
        if not v:
            return os.getenv("REDIS_PASSWORD", "")
        return v

    @property
    def url(self) -> str:
        """Возвращает URL для подключения к Redis."""
        auth = f":{self.REDIS_PASSWORD}@" if self.REDIS_PASSWORD else ""
        return f"redis://{auth}{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"


class StoreSettings(BaseModel):
    """Настройки хранилища грузов и канала realtime-рассылки."""
    STORE_BACKEND: Literal["memory", "redis"] = "memory"
    STORE_UPDATE_MAX_RETRIES: int = Field(default=50, ge=1)
    REALTIME_BACKEND: Literal["local", "redis"] = "local"


class AuthSettings(BaseModel):
    """Настройки проверки токенов владельца."""
    AUTH_ENABLED: bool = True
    JWT_SECRET: str = ""
    JWT_ALGORITHM: str = "HS256"

    @field_validator("JWT_SECRET", mode="before")
    @classmethod
    def get_from_env(cls, v: str) -> str:
        """Получает секрет из переменных окружения."""
        if not v:
            return os.getenv("JWT_SECRET", "")
        return v


# =============================================================================
# ГЛАВНЫЙ КЛАСС НАСТРОЕК
# =============================================================================

class Settings(BaseSettings):
    """
    Главный класс настроек приложения.
    Агрегирует все секции конфигурации.
    """
    system: SystemSettings = Field(default_factory=SystemSettings)
    deployment: DeploymentSettings = Field(default_factory=DeploymentSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    google_maps: GoogleMapsSettings = Field(default_factory=GoogleMapsSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    store: StoreSettings = Field(default_factory=StoreSettings)
    auth: AuthSettings = Field(default_factory=AuthSettings)

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @classmethod
    def from_config_json(cls) -> "Settings":
        """
        Создаёт объект Settings из config.json.
        Секреты переопределяются из переменных окружения.
        """
        config_data = load_config_json()

        # Фильтруем комментарии (ключи, начинающиеся с _comment_)
        filtered_data = {k: v for k, v in config_data.items() if not k.startswith("_comment_")}

        return cls(
            system=SystemSettings(
                PROJECT_NAME=filtered_data.get("PROJECT_NAME", "load_tracker"),
                VERSION=filtered_data.get("VERSION", "1.0.0"),
                DEBUG=filtered_data.get("DEBUG", True),
                LOG_LEVEL=filtered_data.get("LOG_LEVEL", "DEBUG"),
                ENVIRONMENT=os.getenv("ENVIRONMENT", filtered_data.get("ENVIRONMENT", "development")),
            ),
            deployment=DeploymentSettings(
                LOAD_SERVICE_HOST=os.getenv("LOAD_SERVICE_HOST", filtered_data.get("LOAD_SERVICE_HOST", "0.0.0.0")),
                LOAD_SERVICE_PORT=int(os.getenv("PORT", filtered_data.get("LOAD_SERVICE_PORT", 4000))),
                PUBLIC_ORIGIN=os.getenv("PUBLIC_ORIGIN", filtered_data.get("PUBLIC_ORIGIN", "")),
                CORS_ORIGINS=filtered_data.get("CORS_ORIGINS", ["*"]),
            ),
            logging=LoggingSettings(
                LOG_LEVEL=filtered_data.get("LOG_LEVEL", "DEBUG"),
                LOG_TO_FILE=filtered_data.get("LOG_TO_FILE", True),
                LOG_FILE_PATH=filtered_data.get("LOG_FILE_PATH", "logs/app.log"),
                LOG_FORMAT=filtered_data.get("LOG_FORMAT", "json"),
                LOG_MAX_BYTES=filtered_data.get("LOG_MAX_BYTES", 10485760),
                LOG_BACKUP_COUNT=filtered_data.get("LOG_BACKUP_COUNT", 5),
            ),
            google_maps=GoogleMapsSettings(
                GOOGLE_MAPS_API_KEY=os.getenv("GOOGLE_MAPS_API_KEY", filtered_data.get("GOOGLE_MAPS_API_KEY", "")),
                GEOCODING_LANGUAGE=filtered_data.get("GEOCODING_LANGUAGE", "en"),
                GEOCODING_TIMEOUT=filtered_data.get("GEOCODING_TIMEOUT", 10.0),
            ),
            redis=RedisSettings(
                REDIS_HOST=os.getenv("REDIS_HOST", filtered_data.get("REDIS_HOST", "localhost")),
                REDIS_PORT=int(os.getenv("REDIS_PORT", filtered_data.get("REDIS_PORT", 6379))),
                REDIS_DB=filtered_data.get("REDIS_DB", 0),
                REDIS_PASSWORD=os.getenv("REDIS_PASSWORD", filtered_data.get("REDIS_PASSWORD", "")),
                REDIS_NAMESPACE=filtered_data.get("REDIS_NAMESPACE", "loads"),
                REDIS_MAX_CONNECTIONS=filtered_data.get("REDIS_MAX_CONNECTIONS", 50),
            ),
            store=StoreSettings(
                STORE_BACKEND=os.getenv("STORE_BACKEND", filtered_data.get("STORE_BACKEND", "memory")),
                STORE_UPDATE_MAX_RETRIES=filtered_data.get("STORE_UPDATE_MAX_RETRIES", 50),
                REALTIME_BACKEND=os.getenv("REALTIME_BACKEND", filtered_data.get("REALTIME_BACKEND", "local")),
            ),
            auth=AuthSettings(
                AUTH_ENABLED=_env_bool("AUTH_ENABLED", filtered_data.get("AUTH_ENABLED", True)),
                JWT_SECRET=os.getenv("JWT_SECRET", filtered_data.get("JWT_SECRET", "")),
                JWT_ALGORITHM=filtered_data.get("JWT_ALGORITHM", "HS256"),
            ),
        )


def _env_bool(name: str, default: bool) -> bool:
    """Читает булев флаг из окружения (истина: "1", "true", "yes", "on")."""
    raw = os.getenv(name)
    if raw is None:
        return bool(default)
    return raw.strip().lower() in ("1", "true", "yes", "on")


@lru_cache()
def get_settings() -> Settings:
    """
    Возвращает синглтон настроек приложения.
    Использует кэширование для производительности.
    """
    from dotenv import load_dotenv

    # Загружаем .env файл
    env_path = get_project_root() / ".env"
    if env_path.exists():
        load_dotenv(env_path)

    return Settings.from_config_json()


# Экспорт синглтона для удобного импорта
settings = get_settings()
