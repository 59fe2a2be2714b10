"""Pytest configuration and fixtures shared across all test modules.

This file is automatically loaded by pytest before running any tests.
It pins the environment to "testing" before any settings are imported and
provides factories for isolated app instances.
"""

import os

# CRITICAL: Set this before any imports that might load settings
os.environ["APP_ENV"] = "testing"
os.environ.setdefault("LOG_LEVEL", "WARNING")

from collections.abc import Callable, Iterator
from datetime import datetime, timedelta, timezone

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.core.app_factory import create_app
from app.core.config import AppSettings, LogSettings, Settings

# Limits high enough that functional tests never trip them
GENEROUS_LIMITS = {
    "rate_limit_max_requests": 10_000,
    "global_rate_limit_max_requests": 10_000,
    "strict_rate_limit_max_requests": 10_000,
    "lenient_rate_limit_max_requests": 10_000,
}


def make_settings(**app_overrides) -> Settings:
    """Build Settings with explicit AppSettings overrides."""
    return Settings(
        app=AppSettings(**app_overrides),
        log=LogSettings(level="WARNING"),
    )


def make_app(**app_overrides) -> FastAPI:
    """Build an isolated app (own stores) without touching root logging."""
    return create_app(make_settings(**app_overrides), configure_logs=False)


class FakeClock:
    """Deterministic UTC clock for the task store."""

    def __init__(self, start: datetime | None = None) -> None:
        self.current = start or datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs: float) -> None:
        self.current += timedelta(**kwargs)


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def app() -> FastAPI:
    return make_app(**GENEROUS_LIMITS)


@pytest.fixture
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def make_client() -> Callable[..., TestClient]:
    """Factory for clients over isolated apps; overrides win over the generous limits."""

    def _make(**app_overrides) -> TestClient:
        return TestClient(make_app(**{**GENEROUS_LIMITS, **app_overrides}))

    return _make
