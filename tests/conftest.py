"""Shared fixtures for structraven tests."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest
import structlog

from structraven.config import Configuration

TESTS_DIR = Path(__file__).parent


@pytest.fixture(autouse=True)
def _reset_logging() -> None:  # type: ignore[misc]
    """Reset root logger handlers and level after each test."""
    root = logging.getLogger()
    original_handlers = list(root.handlers)
    original_level = root.level

    yield  # type: ignore[misc]

    root.handlers[:] = original_handlers
    root.setLevel(original_level)


@pytest.fixture(autouse=True)
def _reset_structlog() -> None:  # type: ignore[misc]
    """Reset structlog configuration after each test."""
    yield  # type: ignore[misc]
    structlog.reset_defaults()


@pytest.fixture
def configuration() -> Configuration:
    """A configuration that treats the tests directory as application code."""
    return Configuration(
        server_name="test-host",
        release="1.0.0",
        current_environment="test",
        send_modules=False,
        project_root=str(TESTS_DIR),
        in_app_exclude=("site-packages", "dist-packages"),
    )
