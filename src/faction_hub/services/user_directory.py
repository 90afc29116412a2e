"""Справочник пользователей: вход, выход, статусы, статистика.

Состояние — неизменяемый ``Directory``. Переходы описаны чистыми
функциями ``apply_*`` (состояние на входе → новое состояние на выходе),
а ``UserDirectoryStore`` держит текущее состояние, сохраняет его
в хранилище после каждого изменения и подменяет только после
успешной записи.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import fields, replace
from datetime import datetime
from typing import TYPE_CHECKING, Any

from faction_hub.models import (
    VALID_STATUSES,
    Directory,
    User,
    UserStatistics,
    find_user,
    utcnow,
)
from faction_hub.services.identity import has_identity, match_identity

if TYPE_CHECKING:
    from faction_hub.services.directory_storage import DirectoryStorage

logger = logging.getLogger(__name__)

# Поля, которые кандидат не перезаписывает при слиянии
_MERGE_PRESERVED = frozenset({"id", "created_at", "statistics"})


class DirectoryError(Exception):
    """Базовая ошибка справочника пользователей."""


class MissingIdentityError(DirectoryError, ValueError):
    """У кандидата на вход нет ни username, ни vk_id."""


class DuplicateUserError(DirectoryError, ValueError):
    """Новый пользователь с уже занятым id."""


class DirectoryPersistenceError(DirectoryError):
    """Не удалось сохранить справочник; изменение не применено."""


# ---------------------------------------------------------------------------
# Чистые переходы состояния
# ---------------------------------------------------------------------------


def _merge_on_login(existing: User, candidate: User, now: datetime) -> User:
    changes: dict[str, Any] = {
        f.name: getattr(candidate, f.name)
        for f in fields(User)
        if f.name not in _MERGE_PRESERVED and getattr(candidate, f.name) is not None
    }
    changes.update(
        statistics=replace(
            existing.statistics,
            total_sessions=existing.statistics.total_sessions + 1,
            last_login_date=now,
        ),
        last_activity=now,
        status="online",
    )
    return replace(existing, **changes)


def apply_login(directory: Directory, candidate: User, now: datetime) -> tuple[Directory, User]:
    """Вход: слить с известным пользователем или добавить нового.

    Returns:
        Новое состояние и запись, ставшая текущим пользователем.

    Raises:
        MissingIdentityError: У кандидата нет ключей идентичности.
        DuplicateUserError: Кандидат новый, но его id уже занят.
    """
    if not has_identity(candidate):
        raise MissingIdentityError(
            f"Пользователь {candidate.id!r}: для входа нужен username или vk_id"
        )

    match = match_identity(directory.users, candidate)
    users = list(directory.users)
    if match.matched and match.index is not None:
        user = _merge_on_login(users[match.index], candidate, now)
        users[match.index] = user
    else:
        if find_user(users, candidate.id) is not None:
            raise DuplicateUserError(f"Пользователь с id {candidate.id!r} уже существует")
        user = candidate
        users.append(user)
    return Directory(users=tuple(users), current_user_id=user.id), user


def apply_status(directory: Directory, user_id: str, status: str, now: datetime) -> Directory:
    """Установить статус и обновить last_activity (нет пользователя → без изменений)."""
    if status not in VALID_STATUSES:
        raise ValueError(f"Недопустимый статус: {status!r}, допустимо: {sorted(VALID_STATUSES)}")
    users = tuple(
        replace(u, status=status, last_activity=now) if u.id == user_id else u
        for u in directory.users
    )
    return replace(directory, users=users)


def apply_statistics(
    directory: Directory,
    user_id: str,
    updates: Mapping[str, Any],
    now: datetime,
) -> Directory:
    """Поверхностно слить ``updates`` в статистику пользователя.

    Raises:
        ValueError: Неизвестное поле статистики.
    """
    unknown = set(updates) - UserStatistics.field_names()
    if unknown:
        raise ValueError(f"Неизвестные поля статистики: {sorted(unknown)}")
    users = tuple(
        replace(u, statistics=replace(u.statistics, **updates), last_activity=now)
        if u.id == user_id
        else u
        for u in directory.users
    )
    return replace(directory, users=users)


def apply_logout(directory: Directory, now: datetime) -> Directory:
    """Выход: текущий пользователь → offline, сессия сбрасывается."""
    current = directory.current_user
    if current is not None:
        directory = apply_status(directory, current.id, "offline", now)
    return replace(directory, current_user_id=None)


def apply_delete(directory: Directory, user_id: str) -> Directory:
    """Удалить запись ``user_id``; сбросить сессию, если удалён текущий."""
    users = tuple(u for u in directory.users if u.id != user_id)
    current_id = None if directory.current_user_id == user_id else directory.current_user_id
    return Directory(users=users, current_user_id=current_id)


# ---------------------------------------------------------------------------
# Хранилище с персистентностью
# ---------------------------------------------------------------------------


class UserDirectoryStore:
    """Справочник пользователей с сохранением после каждого изменения.

    Рассчитан на последовательные вызовы из одного event loop.
    Хранилище и часы инжектируются явно.
    """

    def __init__(
        self,
        storage: DirectoryStorage,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._storage = storage
        self._clock = clock
        self._state = Directory()

    # ---- Состояние (только чтение) ----

    @property
    def directory(self) -> Directory:
        return self._state

    @property
    def current_user(self) -> User | None:
        return self._state.current_user

    @property
    def is_authenticated(self) -> bool:
        return self._state.is_authenticated

    # ---- Загрузка и сохранение ----

    async def load(self) -> Directory:
        """Восстановить состояние из хранилища (нет записи → пустой справочник)."""
        loaded = await self._storage.load()
        self._state = loaded if loaded is not None else Directory()
        logger.info(
            "Справочник загружен: users=%d, authenticated=%s",
            len(self._state.users),
            self._state.is_authenticated,
        )
        return self._state

    async def _commit(self, new_state: Directory) -> None:
        try:
            await self._storage.save(new_state)
        except Exception as e:
            logger.error("Не удалось сохранить справочник: %s", e)
            raise DirectoryPersistenceError(f"Не удалось сохранить справочник: {e}") from e
        self._state = new_state

    async def close(self) -> None:
        await self._storage.close()

    # ---- Операции ----

    async def login(self, candidate: User) -> User:
        """Войти пользователем ``candidate`` (слияние или добавление).

        Returns:
            Запись текущего пользователя после входа.
        """
        before = len(self._state.users)
        new_state, user = apply_login(self._state, candidate, self._clock())
        await self._commit(new_state)
        if len(new_state.users) > before:
            logger.info("Новый пользователь: id=%s, auth=%s", user.id, user.auth_type)
        else:
            logger.info(
                "Повторный вход: id=%s, sessions=%d",
                user.id,
                user.statistics.total_sessions,
            )
        return user

    async def logout(self) -> None:
        """Выйти из текущей сессии (идемпотентно)."""
        current = self._state.current_user
        await self._commit(apply_logout(self._state, self._clock()))
        if current is not None:
            logger.info("Выход: id=%s", current.id)

    async def update_user_status(self, user_id: str, status: str) -> None:
        """Сменить статус пользователя; неизвестный id — без изменений."""
        await self._commit(apply_status(self._state, user_id, status, self._clock()))
        logger.debug("Статус пользователя %s → %s", user_id, status)

    async def update_user_statistics(self, user_id: str, **updates: Any) -> None:
        """Обновить поля статистики; неизвестный id — без изменений."""
        await self._commit(apply_statistics(self._state, user_id, updates, self._clock()))
        logger.debug("Статистика пользователя %s: %s", user_id, updates)

    def get_all_users(self) -> list[User]:
        return list(self._state.users)

    def get_user_by_id(self, user_id: str) -> User | None:
        return find_user(self._state.users, user_id)

    async def delete_user(self, user_id: str) -> None:
        """Удалить пользователя; если он текущий — сессия сбрасывается."""
        await self._commit(apply_delete(self._state, user_id))
        logger.info("Пользователь удалён: id=%s", user_id)
