"""Shared fixtures for settings-store tests."""

import asyncio
from pathlib import Path

import pytest

from settings_store.config import database_path
from settings_store.db import open_and_migrate
from settings_store.server import SqlServer

TEST_KEY = "testKey123"


@pytest.fixture
def key() -> str:
    return TEST_KEY


@pytest.fixture
def config_dir(tmp_path: Path) -> Path:
    """A config directory that does not exist yet."""
    return tmp_path / "config"


@pytest.fixture
def handle(config_dir: Path, key: str):
    """An open, migrated EncryptedHandle."""
    path = database_path(config_dir)
    path.parent.mkdir(parents=True)
    handle = open_and_migrate(path, key)
    yield handle
    handle.close()


@pytest.fixture
def server(config_dir: Path, key: str):
    """An initialized SqlServer."""
    server = SqlServer()
    asyncio.run(server.initialize(config_dir, key))
    yield server
    asyncio.run(server.close())
