# src/common/exceptions.py
"""
Иерархия ошибок домена.
Ядро выбрасывает эти исключения, HTTP и WebSocket слои переводят их в ответы.
"""

from __future__ import annotations


class LoadTrackerError(Exception):
    """Базовая ошибка приложения."""

    error_code: str = "error"
    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(LoadTrackerError):
    """Некорректные или отсутствующие входные данные."""

    error_code = "validation_error"
    status_code = 400


class NotFoundError(LoadTrackerError):
    """Груз с таким id не найден."""

    error_code = "not_found"
    status_code = 404


class ConflictError(LoadTrackerError):
    """Операция недопустима в текущем статусе груза."""

    error_code = "conflict"
    status_code = 400

    def __init__(self, message: str, current_status: str | None = None) -> None:
        super().__init__(message)
        self.current_status = current_status


class AuthenticationError(LoadTrackerError):
    """Токен не передан."""

    error_code = "unauthorized"
    status_code = 401


class AccessDeniedError(LoadTrackerError):
    """Токен невалиден или груз принадлежит другому владельцу."""

    error_code = "forbidden"
    status_code = 403


class UpstreamError(LoadTrackerError):
    """Ошибка внешнего сервиса геокодирования."""

    error_code = "upstream_error"
    status_code = 502


class AddressNotFoundError(UpstreamError):
    """Геокодер не смог разрешить адрес."""

    error_code = "address_not_found"

    def __init__(self, address: str) -> None:
        super().__init__(f"Address could not be resolved: {address}")
        self.address = address
