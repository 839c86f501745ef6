# src/services/load_service/auth.py
"""
Проверка bearer-токенов владельцев грузов (JWT).
Токены выпускает внешний провайдер; сервис только проверяет подпись и берёт id владельца.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import jwt

from src.common.exceptions import AccessDeniedError, AuthenticationError

# Claims, в которых провайдеры передают id пользователя
OWNER_CLAIMS = ("sub", "uid", "user_id")


@dataclass(frozen=True)
class AuthConfig:
    """Настройки авторизации."""
    enabled: bool = True
    secret: str = ""
    algorithm: str = "HS256"


def extract_bearer(authorization: str | None) -> str | None:
    """
    Достаёт токен из заголовка Authorization.

    Returns:
        Токен или None, если заголовок пуст или не Bearer
    """
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def decode_owner_token(token: str, config: AuthConfig) -> str:
    """
    Проверяет токен и возвращает id владельца.

    Raises:
        AccessDeniedError: подпись невалидна, токен истёк или нет id пользователя
    """
    if not config.secret:
        raise AccessDeniedError("Invalid token")

    try:
        payload: dict[str, Any] = jwt.decode(token, config.secret, algorithms=[config.algorithm])
    except jwt.PyJWTError as e:
        raise AccessDeniedError("Invalid token") from e

    for claim in OWNER_CLAIMS:
        owner_id = payload.get(claim)
        if owner_id:
            return str(owner_id)

    raise AccessDeniedError("Invalid token")


def resolve_owner(token: str | None, config: AuthConfig, required: bool = True) -> str | None:
    """
    Определяет владельца запроса.

    При отключённой авторизации всегда None (анонимный владелец).

    Raises:
        AuthenticationError: токен обязателен, но не передан
        AccessDeniedError: токен невалиден
    """
    if not config.enabled:
        return None

    if not token:
        if required:
            raise AuthenticationError("Access token required")
        return None

    return decode_owner_token(token, config)
