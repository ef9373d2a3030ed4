# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for logging setup."""

import logging
from collections.abc import Iterator

import pytest
import structlog

from src.core.config.settings import DatabaseSettings, Settings
from src.utils.logging import bind_context, clear_context, setup_logging


@pytest.fixture(autouse=True)
def restore_root_logger() -> Iterator[None]:
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers = handlers
    root.setLevel(level)
    structlog.reset_defaults()


class TestSetupLogging:
    """Tests for setup_logging."""

    def test_root_logger_uses_structlog_formatter(self) -> None:
        setup_logging(Settings(log_level="INFO"))

        root = logging.getLogger()

        assert root.level == logging.INFO
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, structlog.stdlib.ProcessorFormatter)

    def test_noisy_loggers_are_quiet(self) -> None:
        setup_logging(Settings())

        assert logging.getLogger("httpx").level == logging.WARNING
        assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING

    def test_sql_echo_raises_sqlalchemy_level(self) -> None:
        settings = Settings(database=DatabaseSettings(url="sqlite+aiosqlite:///:memory:", echo=True))

        setup_logging(settings)

        assert logging.getLogger("sqlalchemy.engine").level == logging.INFO


class TestContext:
    """Tests for request-scoped log context."""

    def test_bind_and_clear(self) -> None:
        clear_context()
        bind_context(player_id="player-1")

        assert structlog.contextvars.get_contextvars() == {"player_id": "player-1"}

        clear_context()
        assert structlog.contextvars.get_contextvars() == {}
