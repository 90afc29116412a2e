"""Общие фикстуры для тестов."""

import os

# Минимальное окружение ДО импорта модулей приложения,
# чтобы config = Config() на уровне модуля не зависел от машины разработчика.
os.environ.setdefault("STORAGE_BACKEND", "memory")
os.environ.setdefault("APP_ENV", "production")

from unittest.mock import patch

import pytest

from faction_hub.services.directory_storage import InMemoryDirectoryStorage
from faction_hub.services.user_directory import UserDirectoryStore
from helpers import FakeClock


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def storage() -> InMemoryDirectoryStorage:
    return InMemoryDirectoryStorage()


@pytest.fixture
async def store(storage, clock) -> UserDirectoryStore:
    """Пустой справочник поверх in-memory хранилища."""
    s = UserDirectoryStore(storage, clock=clock)
    await s.load()
    return s


@pytest.fixture
def clean_env():
    """Окружение без переменных приложения."""
    with patch.dict(os.environ, {}, clear=True):
        yield
