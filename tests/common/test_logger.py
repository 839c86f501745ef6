# tests/common/test_logger.py
"""
Тесты модуля логирования.
"""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

import src.common.logger as logger_module
from src.common.constants import TypeMsg
from src.common.logger import (
    DEFAULT_LOGGER_NAME,
    ColoredFormatter,
    JsonFormatter,
    LoggingOptions,
    _get_caller_info,
    _loggers,
    _logging_options,
    get_logger,
    log_debug,
    log_error,
    log_info,
    log_warning,
    setup_logging,
)


def make_record(level: int = logging.INFO, msg: str = "Груз создан", exc_info=None) -> logging.LogRecord:
    record = logging.LogRecord(
        name="load_tracker",
        level=level,
        pathname="service.py",
        lineno=42,
        msg=msg,
        args=(),
        exc_info=exc_info,
    )
    record.module = "service"
    record.funcName = "create_load"
    return record


@pytest.fixture
def fresh_loggers():
    """Очищает кэш и хендлеры тестовых логгеров."""
    _loggers.clear()
    yield
    for name in list(_loggers):
        logging.getLogger(name).handlers.clear()
    _loggers.clear()


class TestFormatters:
    """Тесты форматтеров."""

    def test_json(self) -> None:
        record = make_record()
        record.extra_data = {"load_id": "abc"}

        data = json.loads(JsonFormatter().format(record))

        assert data["level"] == "INFO"
        assert data["message"] == "Груз создан"
        assert data["function"] == "create_load"
        assert data["line"] == 42
        assert data["extra"] == {"load_id": "abc"}
        assert data["timestamp"].endswith("Z")

    def test_json_with_exception(self) -> None:
        try:
            raise ValueError("broken stop")
        except ValueError:
            exc_info = sys.exc_info()

        data = json.loads(JsonFormatter().format(make_record(logging.ERROR, exc_info=exc_info)))

        assert "ValueError: broken stop" in data["exception"]

    def test_colored(self) -> None:
        result = ColoredFormatter().format(make_record(logging.WARNING))

        assert "[WARNING]" in result
        assert "Груз создан" in result
        assert "\033[33m" in result

    def test_colored_with_caller(self) -> None:
        record = make_record(logging.DEBUG)
        record.extra_data = {
            "caller_function": "update_location",
            "caller_module": "src.core.loads.service",
            "caller_file": "service.py",
            "caller_line": 210,
        }

        result = ColoredFormatter().format(record)

        assert "src.core.loads.service.update_location()" in result
        assert "service.py:210" in result


class TestLoggingOptions:
    """Тесты чтения параметров логирования."""

    def test_from_settings(self) -> None:
        with patch("src.config.settings") as mock_settings:
            mock_settings.logging.LOG_LEVEL = "WARNING"
            mock_settings.logging.LOG_FORMAT = "json"
            mock_settings.logging.LOG_TO_FILE = False
            mock_settings.logging.LOG_FILE_PATH = "logs/tracker.log"
            mock_settings.logging.LOG_MAX_BYTES = 1024

            options = _logging_options()

        assert options == LoggingOptions(
            level="WARNING", fmt="json", to_file=False, file_path="logs/tracker.log", max_bytes=1024,
        )

    def test_wrong_types_fall_back(self) -> None:
        """Незаданные значения мока заменяются значениями по умолчанию."""
        with patch("src.config.settings", MagicMock()):
            assert _logging_options() == LoggingOptions()

    def test_config_unavailable(self) -> None:
        with patch.dict("sys.modules", {"src.config": None}):
            assert _logging_options() == LoggingOptions()


class TestGetLogger:
    """Тесты для get_logger."""

    def test_creates_console_logger(self, fresh_loggers) -> None:
        with patch.object(logger_module, "_logging_options", return_value=LoggingOptions(level="INFO")):
            logger = get_logger("tracker_console")

        assert logger.level == logging.INFO
        assert len(logger.handlers) == 1
        assert logger.propagate is False

    def test_cached(self, fresh_loggers) -> None:
        assert get_logger("tracker_cached") is get_logger("tracker_cached")

    def test_existing_handlers_are_reused(self, fresh_loggers) -> None:
        """Повторная настройка после очистки кэша не дублирует хендлеры."""
        first = get_logger("tracker_reuse")
        handlers = list(first.handlers)
        _loggers.clear()

        second = get_logger("tracker_reuse")

        assert second is first
        assert second.handlers == handlers
        assert "tracker_reuse" in _loggers

    def test_file_handlers(self, fresh_loggers, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(logger_module, "_GLOBAL_FILE_HANDLER", None)
        monkeypatch.setattr(logger_module, "_GLOBAL_ERROR_HANDLER", None)
        monkeypatch.setenv("SERVICE_NAME", "load_service")
        options = LoggingOptions(to_file=True, file_path=str(tmp_path / "logs" / "app.log"), fmt="json")

        with patch.object(logger_module, "_logging_options", return_value=options):
            logger = get_logger("tracker_files")

        assert len(logger.handlers) == 3
        assert (tmp_path / "logs" / "app_load_service.log").exists()
        assert (tmp_path / "logs" / "error.log").exists()
        assert logger_module._GLOBAL_ERROR_HANDLER.level == logging.ERROR

        for handler in logger.handlers[1:]:
            handler.close()


class TestSetupLogging:
    """Тесты для setup_logging."""

    def setup_method(self) -> None:
        _loggers.clear()
        logger_module._LOGGING_INITIALIZED = False

    def test_initializes_default_logger(self) -> None:
        setup_logging()

        assert DEFAULT_LOGGER_NAME in _loggers

    def test_quiets_third_party(self) -> None:
        setup_logging()

        for name in ("redis", "httpx", "httpcore", "uvicorn.access"):
            assert logging.getLogger(name).level == logging.WARNING

    def test_idempotent(self) -> None:
        setup_logging()
        first = _loggers[DEFAULT_LOGGER_NAME]

        setup_logging()

        assert _loggers[DEFAULT_LOGGER_NAME] is first


class TestLogFunctions:
    """Тесты асинхронных функций логирования."""

    def test_caller_info_shape(self) -> None:
        def helper() -> dict:
            return _get_caller_info()

        info = helper()

        assert set(info) <= {"caller_function", "caller_module", "caller_file", "caller_line"}

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "type_msg,level",
        [
            (TypeMsg.DEBUG, logging.DEBUG),
            (TypeMsg.INFO, logging.INFO),
            (TypeMsg.WARNING, logging.WARNING),
            (TypeMsg.ERROR, logging.ERROR),
            (TypeMsg.CRITICAL, logging.CRITICAL),
        ],
    )
    async def test_log_info_levels(self, type_msg: TypeMsg, level: int) -> None:
        with patch.object(logging.Logger, "log") as mock_log:
            await log_info("Груз подтверждён", type_msg=type_msg)

        assert mock_log.call_args.args == (level, "Груз подтверждён")

    @pytest.mark.asyncio
    async def test_extra_merged_with_caller(self) -> None:
        with patch.object(logging.Logger, "log") as mock_log:
            await log_info("Груз удалён", extra={"load_id": "abc"})

        extra_data = mock_log.call_args.kwargs["extra"]["extra_data"]
        assert extra_data["load_id"] == "abc"
        assert extra_data["caller_function"] == "test_extra_merged_with_caller"

    @pytest.mark.asyncio
    async def test_helpers_report_real_caller(self) -> None:
        """log_debug и log_warning указывают на вызывающий код, а не на себя."""
        with patch.object(logging.Logger, "log") as mock_log:
            await log_debug("debug")
            await log_warning("warning")

        for call in mock_log.call_args_list:
            assert call.kwargs["extra"]["extra_data"]["caller_function"] == "test_helpers_report_real_caller"
        assert [c.args[0] for c in mock_log.call_args_list] == [logging.DEBUG, logging.WARNING]

    @pytest.mark.asyncio
    async def test_log_error_with_traceback(self) -> None:
        with patch.object(logging.Logger, "log") as mock_log:
            await log_error("Необработанная ошибка", exc_info=True)

        assert mock_log.call_args.args[0] == logging.ERROR
        assert mock_log.call_args.kwargs["exc_info"] is True

    @pytest.mark.asyncio
    async def test_custom_logger_name(self) -> None:
        with patch("src.common.logger.get_logger") as mock_get_logger:
            await log_info("message", logger_name="redis_subscriber")

        mock_get_logger.assert_called_once_with("redis_subscriber")
        mock_get_logger.return_value.log.assert_called_once()
