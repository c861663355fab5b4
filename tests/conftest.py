from __future__ import annotations

import sys
from pathlib import Path

# Make the three source roots importable without installing the project.
ROOT = Path(__file__).resolve().parents[1]
SOURCE_ROOTS = [
    ROOT / "tests",
    ROOT / "clients" / "python",
    ROOT / "models" / "python",
    ROOT / "services" / "api" / "src",
]

for path in reversed(SOURCE_ROOTS):
    path_str = str(path)
    if path_str not in sys.path:
        sys.path.insert(0, path_str)

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from fakes import FakeAuth, FakeChain, FakeStorage, MemoryStore  # noqa: E402


@pytest.fixture
def store(monkeypatch):
    return MemoryStore().install(monkeypatch)


@pytest.fixture
def chain():
    return FakeChain()


@pytest.fixture
def storage():
    return FakeStorage()


@pytest.fixture
def app(store, chain, storage):
    from app import create_app
    from routes.dependencies import blockchain_get, storage_get

    application = create_app()
    application.state.auth_client = FakeAuth()
    application.dependency_overrides[blockchain_get] = lambda: chain
    application.dependency_overrides[storage_get] = lambda: storage
    return application


@pytest.fixture
def client(app):
    return TestClient(app, raise_server_exceptions=False)
