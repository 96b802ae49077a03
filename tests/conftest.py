"""Pytest fixtures for shopledger tests."""

import tempfile
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from shopledger.config import Settings, get_settings
from shopledger.ledger import ShopLedger
from shopledger.store import JsonFileStore, MemoryStore


@pytest.fixture
def temp_dir():
    """Create a temporary directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def memory_store():
    store = MemoryStore()
    yield store
    store.close()


@pytest.fixture
def json_store(temp_dir):
    store = JsonFileStore(temp_dir / "data")
    yield store
    store.close()


@pytest.fixture(params=["memory", "json"])
def store(request, temp_dir):
    """Each storage backend in turn."""
    if request.param == "memory":
        backend = MemoryStore()
    else:
        backend = JsonFileStore(temp_dir / "data")
    yield backend
    backend.close()


@pytest.fixture
def ledger(store):
    return ShopLedger(store)


@pytest.fixture
def settings(monkeypatch):
    """Settings isolated from the host environment."""
    for key in ("STORE", "DATA_DIR", "DEFAULT_BALANCE", "LOG_LEVEL", "LOG_JSON"):
        monkeypatch.delenv(f"SHOPLEDGER_{key}", raising=False)
    get_settings.cache_clear()
    yield Settings(_env_file=None)
    get_settings.cache_clear()


@pytest.fixture
def api_client(settings):
    """Test client over a fresh in-memory store."""
    from shopledger.api import create_app

    app = create_app(settings=settings, store=MemoryStore())
    return TestClient(app)


def register(client: TestClient, username: str = "alice") -> str:
    """Register a user through the API and return its ID."""
    response = client.post("/users/register", json={"username": username})
    assert response.status_code == 200
    return response.json()["userId"]
