"""Shared test fixtures for the personal assistant test suite."""

from __future__ import annotations

import os
from datetime import UTC, datetime
from zoneinfo import ZoneInfo

import pytest


def pytest_configure(config):
    """Set test environment variables BEFORE collection starts.

    This runs before any imports, so config.py won't fail on module load.
    """
    os.environ.setdefault("OPENAI_API_KEY", "test-openai-key-123")
    os.environ["MODEL_PROVIDER"] = "openai"
    os.environ["CALENDAR_TIMEZONE"] = "America/Mexico_City"
    os.environ["METRICS_ENABLED"] = "false"


@pytest.fixture
def mexico_city():
    return ZoneInfo("America/Mexico_City")


@pytest.fixture
def fixed_now(mexico_city):
    """Wednesday 2025-03-12 10:07 in Mexico City, as a UTC instant."""
    return datetime(2025, 3, 12, 10, 7, tzinfo=mexico_city).astimezone(UTC)
