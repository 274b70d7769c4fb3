from __future__ import annotations

import os

import pytest

# Must be set before app.main is imported by any test module.
os.environ.setdefault("SG_STORAGE_BACKEND", "memory")
os.environ.setdefault("SG_MESSAGE_BUS", "memory")
os.environ.setdefault("SG_OTEL_ENABLED", "false")
os.environ.setdefault("SG_RUN_MIGRATIONS_ON_STARTUP", "false")

from app.core.config import Settings  # noqa: E402
from app.services.container import ServiceContainer, build_services  # noqa: E402


@pytest.fixture
def memory_settings() -> Settings:
    return Settings(storage_backend="memory", message_bus="memory", otel_enabled=False)


@pytest.fixture
def services(memory_settings: Settings) -> ServiceContainer:
    return build_services(memory_settings)
