"""Pytest fixtures for Studio Integrations tests."""
import base64
import json
from datetime import datetime, timedelta, timezone
from typing import Callable

import httpx
import pytest

from studio_integrations.core.config import Settings
from studio_integrations.core.encryption import TokenCipher
from studio_integrations.credentials import CredentialResolver, InMemoryCredentialStore

NOW = datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)


# --- Configuration Fixtures ---

@pytest.fixture
def config() -> Settings:
    """Settings isolated from the environment and any .env file."""
    return Settings(_env_file=None)


@pytest.fixture
def encryption_key() -> str:
    return base64.b64encode(b"k" * 32).decode("ascii")


@pytest.fixture
def cipher(encryption_key: str) -> TokenCipher:
    return TokenCipher(base64.b64decode(encryption_key))


# --- Credential Fixtures ---

@pytest.fixture
def store() -> InMemoryCredentialStore:
    return InMemoryCredentialStore()


@pytest.fixture
def clock() -> Callable[[], datetime]:
    """Frozen clock at NOW."""
    return lambda: NOW


@pytest.fixture
def resolver(store, config, clock) -> CredentialResolver:
    return CredentialResolver(store, config=config, clock=clock)


# --- HTTP Fixtures ---

class RecordingTransport(httpx.MockTransport):
    """MockTransport that keeps every request it served."""

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response]):
        self.requests: list[httpx.Request] = []

        def record(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return handler(request)

        super().__init__(record)


@pytest.fixture
def mock_http() -> Callable[[Callable[[httpx.Request], httpx.Response]], tuple[httpx.AsyncClient, RecordingTransport]]:
    """Factory: build an AsyncClient served by a handler function."""
    def _make(handler):
        transport = RecordingTransport(handler)
        return httpx.AsyncClient(transport=transport), transport
    return _make


def json_body(request: httpx.Request) -> dict:
    return json.loads(request.content.decode("utf-8"))


def expires_in(minutes: int) -> datetime:
    return NOW + timedelta(minutes=minutes)
