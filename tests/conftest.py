"""Shared test fixtures for the Steward test suite."""

import os

import pytest

from steward.config import Settings
from steward.credentials.vault import CredentialVault, generate_key
from steward.storage.repository import TenantStore


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    """Keep the host environment out of Settings."""
    for name in list(os.environ):
        if name.startswith("STEWARD_") or name == "GROQ_API_KEY":
            monkeypatch.delenv(name)


@pytest.fixture
def store():
    s = TenantStore(":memory:")
    yield s
    s.close()


@pytest.fixture
def hex_key():
    return generate_key()


@pytest.fixture
def vault(hex_key):
    return CredentialVault(hex_key)


@pytest.fixture
def settings(hex_key):
    return Settings(
        database_url=":memory:",
        encryption_key=hex_key,
        fallback_provider="groq",
        fallback_api_key="gsk-system-fallback-key",
    )


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()
