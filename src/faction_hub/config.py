"""Конфигурация приложения через переменные окружения.

Параметры подключения к MySQL — заглушки для слоя доступа к данным:
сам справочник пользователей их не использует.
"""

from __future__ import annotations

import sys
from dataclasses import dataclass

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Фиксированные параметры подключения (не из окружения)
DB_CHARSET = "utf8mb4"
DB_TIMEZONE = "+00:00"
DB_ACQUIRE_TIMEOUT_MS = 60000
DB_TIMEOUT_MS = 60000
DB_RECONNECT = True

DEVELOPMENT_ENV = "development"
STORAGE_BACKENDS = frozenset({"sqlite", "redis", "memory"})


@dataclass(frozen=True)
class DatabaseConfig:
    """Параметры подключения к базе фракций."""

    host: str
    port: int
    user: str
    password: str
    database: str
    charset: str = DB_CHARSET
    timezone: str = DB_TIMEZONE
    acquire_timeout: int = DB_ACQUIRE_TIMEOUT_MS
    timeout: int = DB_TIMEOUT_MS
    reconnect: bool = DB_RECONNECT

    @property
    def safe_dsn(self) -> str:
        """DSN для логов — без пароля."""
        auth = f"{self.user}:***" if self.password else self.user
        return f"mysql://{auth}@{self.host}:{self.port}/{self.database}?charset={self.charset}"

    def __repr__(self) -> str:
        return f"DatabaseConfig({self.safe_dsn!r})"


@dataclass(frozen=True)
class InitSettings:
    """Переключатели инициализации базы (схема, тестовые данные, лог запросов)."""

    create_tables: bool = True
    seed_data: bool = True
    log_queries: bool = False


def is_browser_runtime() -> bool:
    """Работаем ли в браузерном рантайме (Pyodide / WebAssembly)."""
    return sys.platform == "emscripten"


class Config(BaseSettings):
    """Настройки справочника, хранилища и подключения к БД."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_ignore_empty=True,
        extra="ignore",
    )

    # MySQL (заглушки для слоя доступа к данным)
    db_host: str = "localhost"
    db_port: int = 3306
    db_user: str = "root"
    db_password: str = Field(default="", repr=False)
    db_name: str = "faction_system"

    # Режим окружения: "development" включает mock-данные и лог запросов
    app_env: str = "production"

    # Хранилище справочника: "sqlite" | "redis" | "memory"
    storage_backend: str = "sqlite"
    storage_name: str = "user-storage"
    directory_db_path: str = "data/user-storage.db"
    redis_url: str = Field(default="", repr=False)

    # Логирование
    log_json: bool = False
    debug: bool = False

    @field_validator("app_env", mode="before")
    @classmethod
    def _normalize_env(cls, v: object) -> str:
        """Пустое значение → production, регистр не важен."""
        if v is None:
            return "production"
        value = str(v).strip().lower()
        return value or "production"

    @field_validator("storage_backend", mode="before")
    @classmethod
    def _validate_backend(cls, v: object) -> str:
        value = str(v).strip().lower() if v is not None else ""
        if not value:
            return "sqlite"
        if value not in STORAGE_BACKENDS:
            raise ValueError(
                f"storage_backend must be one of {sorted(STORAGE_BACKENDS)}, got {value!r}"
            )
        return value

    @property
    def is_development(self) -> bool:
        return self.app_env == DEVELOPMENT_ENV

    @property
    def use_mock_data(self) -> bool:
        """Mock-режим: разработка или браузерный рантайм."""
        return self.is_development or is_browser_runtime()

    @property
    def database(self) -> DatabaseConfig:
        return DatabaseConfig(
            host=self.db_host,
            port=self.db_port,
            user=self.db_user,
            password=self.db_password,
            database=self.db_name,
        )

    @property
    def init_settings(self) -> InitSettings:
        return InitSettings(log_queries=self.is_development)


config = Config()
