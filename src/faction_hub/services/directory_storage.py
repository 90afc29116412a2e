"""Персистентное хранение справочника пользователей.

Справочник хранится одной именованной записью (по умолчанию
``user-storage``) — JSON-строкой вида::

    {"users": [...], "currentUser": {...} | null, "isAuthenticated": bool}

Поля пользователя — в camelCase, даты — ISO-8601.
Запись перезаписывается целиком при каждом изменении.

Бэкенды:
    - ``InMemoryDirectoryStorage`` — в памяти процесса (тесты, mock-режим)
    - ``SqliteDirectoryStorage``  — key/value таблица в SQLite (aiosqlite)
    - ``RedisDirectoryStorage``   — ключ в Redis
"""

from __future__ import annotations

import json
import logging
import os
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, Protocol

import aiosqlite
from redis.exceptions import RedisError

from faction_hub.models import Directory, User, UserStatistics

if TYPE_CHECKING:
    from redis.asyncio import Redis

logger = logging.getLogger(__name__)

# Имя записи по умолчанию
DEFAULT_STORAGE_NAME = "user-storage"

_CREATE_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS storage (
    name       TEXT PRIMARY KEY,
    value      TEXT NOT NULL,
    updated_at TEXT DEFAULT CURRENT_TIMESTAMP
)
"""

# Соответствие полей User ↔ ключей JSON
_USER_OPTIONAL_FIELDS = {
    "username": "username",
    "email": "email",
    "vk_id": "vkId",
    "avatar": "avatar",
}


# ---------------------------------------------------------------------------
# Сериализация
# ---------------------------------------------------------------------------


def _dump_dt(value: datetime) -> str:
    return value.isoformat()


def _load_dt(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def user_to_dict(user: User) -> dict[str, Any]:
    """User → JSON-совместимый dict (camelCase, отсутствующие поля опускаются)."""
    stats = user.statistics
    data: dict[str, Any] = {"id": user.id}
    for attr, key in _USER_OPTIONAL_FIELDS.items():
        value = getattr(user, attr)
        if value is not None:
            data[key] = value
    data.update(
        {
            "name": user.name,
            "authType": user.auth_type,
            "status": user.status,
            "lastActivity": _dump_dt(user.last_activity),
            "createdAt": _dump_dt(user.created_at),
            "statistics": {
                "totalSessions": stats.total_sessions,
                "totalTimeSpent": stats.total_time_spent,
                "lastLoginDate": _dump_dt(stats.last_login_date),
                "accountsManaged": stats.accounts_managed,
                "actionsPerformed": stats.actions_performed,
            },
        }
    )
    return data


def user_from_dict(data: dict[str, Any]) -> User:
    """JSON-dict → User.

    Raises:
        KeyError, TypeError, ValueError: Если запись повреждена.
    """
    stats = data["statistics"]
    return User(
        id=data["id"],
        name=data["name"],
        auth_type=data["authType"],
        status=data["status"],
        last_activity=_load_dt(data["lastActivity"]),
        created_at=_load_dt(data["createdAt"]),
        statistics=UserStatistics(
            total_sessions=int(stats["totalSessions"]),
            total_time_spent=int(stats["totalTimeSpent"]),
            last_login_date=_load_dt(stats["lastLoginDate"]),
            accounts_managed=int(stats["accountsManaged"]),
            actions_performed=int(stats["actionsPerformed"]),
        ),
        **{attr: data.get(key) for attr, key in _USER_OPTIONAL_FIELDS.items()},
    )


def serialize_directory(directory: Directory) -> str:
    """Directory → JSON-строка записи."""
    current = directory.current_user
    payload = {
        "users": [user_to_dict(u) for u in directory.users],
        "currentUser": user_to_dict(current) if current is not None else None,
        "isAuthenticated": directory.is_authenticated,
    }
    return json.dumps(payload, ensure_ascii=False)


def deserialize_directory(raw: str | bytes) -> Directory:
    """JSON-строка записи → Directory.

    Текущий пользователь восстанавливается по id из списка ``users``;
    флаг ``isAuthenticated`` выводится из него, а не читается.

    Raises:
        ValueError, KeyError, TypeError: Если запись повреждена.
    """
    payload = json.loads(raw)
    if not isinstance(payload, dict):
        raise ValueError("запись справочника должна быть JSON-объектом")
    users = tuple(user_from_dict(item) for item in payload.get("users") or [])

    current_id = None
    current = payload.get("currentUser")
    if isinstance(current, dict) and any(u.id == current.get("id") for u in users):
        current_id = current["id"]
    elif current is not None or payload.get("isAuthenticated"):
        logger.warning("Справочник: текущий пользователь не найден в списке, сессия сброшена")
    return Directory(users=users, current_user_id=current_id)


def _parse_or_none(raw: str | bytes | None, source: str) -> Directory | None:
    if raw is None:
        return None
    try:
        return deserialize_directory(raw)
    except (ValueError, KeyError, TypeError) as e:
        logger.warning("%s: повреждённая запись справочника, начинаю с пустого: %s", source, e)
        return None


# ---------------------------------------------------------------------------
# Бэкенды
# ---------------------------------------------------------------------------


class DirectoryStorage(Protocol):
    """Контракт хранилища одной именованной записи справочника."""

    async def load(self) -> Directory | None:
        """Прочитать справочник; None если записи ещё нет."""

    async def save(self, directory: Directory) -> None:
        """Перезаписать запись целиком."""

    async def close(self) -> None:
        """Освободить ресурсы."""


class InMemoryDirectoryStorage:
    """Хранение записи в памяти процесса.

    Запись хранится сериализованной, поэтому поведение
    совпадает с персистентными бэкендами. При рестарте данные теряются.
    """

    def __init__(self, name: str = DEFAULT_STORAGE_NAME) -> None:
        self.name = name
        self._records: dict[str, str] = {}

    async def load(self) -> Directory | None:
        return _parse_or_none(self._records.get(self.name), "memory")

    async def save(self, directory: Directory) -> None:
        self._records[self.name] = serialize_directory(directory)
        logger.debug("Справочник сохранён (in-memory): users=%d", len(directory.users))

    async def close(self) -> None:
        return None


class SqliteDirectoryStorage:
    """Хранение записи в SQLite-таблице ``storage`` (name → value)."""

    def __init__(self, db_path: str, name: str = DEFAULT_STORAGE_NAME) -> None:
        self._db_path = db_path
        self.name = name
        self._db: aiosqlite.Connection | None = None

    async def _ensure_db(self) -> aiosqlite.Connection:
        """Открыть или переиспользовать соединение с БД."""
        if self._db is None:
            db_dir = os.path.dirname(self._db_path)
            if db_dir:
                os.makedirs(db_dir, exist_ok=True)

            self._db = await aiosqlite.connect(self._db_path)
            self._db.row_factory = aiosqlite.Row
            await self._db.execute("PRAGMA journal_mode=WAL")
            await self._db.execute(_CREATE_TABLE_SQL)
            await self._db.commit()
            logger.info("SQLite хранилище справочника открыто: %s", self._db_path)
        return self._db

    async def load(self) -> Directory | None:
        db = await self._ensure_db()
        cursor = await db.execute("SELECT value FROM storage WHERE name = ?", (self.name,))
        row = await cursor.fetchone()
        return _parse_or_none(row["value"] if row else None, "sqlite")

    async def save(self, directory: Directory) -> None:
        db = await self._ensure_db()
        await db.execute(
            "INSERT INTO storage (name, value) VALUES (?, ?) "
            "ON CONFLICT(name) DO UPDATE SET value = excluded.value, "
            "updated_at = CURRENT_TIMESTAMP",
            (self.name, serialize_directory(directory)),
        )
        await db.commit()
        logger.debug("Справочник сохранён (sqlite): users=%d", len(directory.users))

    async def close(self) -> None:
        """Закрыть соединение с БД."""
        if self._db is not None:
            await self._db.close()
            self._db = None
            logger.info("SQLite хранилище справочника закрыто.")


class RedisDirectoryStorage:
    """Хранение записи в Redis под ключом ``{key_prefix}{name}`` (без TTL)."""

    def __init__(
        self,
        redis: Redis,
        name: str = DEFAULT_STORAGE_NAME,
        *,
        key_prefix: str = "",
    ) -> None:
        self._redis = redis
        self.name = name
        self._key = f"{key_prefix}{name}"

    async def load(self) -> Directory | None:
        raw = await self._redis.get(self._key)
        return _parse_or_none(raw, "redis")

    async def save(self, directory: Directory) -> None:
        await self._redis.set(self._key, serialize_directory(directory))
        logger.debug("Справочник сохранён (redis): users=%d", len(directory.users))

    async def close(self) -> None:
        try:
            await self._redis.aclose()
            logger.info("Redis соединение закрыто.")
        except RedisError as e:
            logger.warning("Ошибка при закрытии Redis: %s", e)
