"""Типы данных справочника пользователей.

Все записи неизменяемые (``frozen``): любое изменение пользователя —
это замена записи целиком через ``dataclasses.replace``.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from datetime import UTC, datetime

# Допустимые значения вариантов
VALID_AUTH_TYPES = frozenset({"credentials", "vk"})
VALID_STATUSES = frozenset({"online", "offline", "away"})


def utcnow() -> datetime:
    """Текущее время в UTC (aware)."""
    return datetime.now(UTC)


@dataclass(frozen=True)
class UserStatistics:
    """Статистика пользователя. Счётчики ведёт вызывающий код."""

    total_sessions: int = 1
    total_time_spent: int = 0  # в минутах
    last_login_date: datetime = field(default_factory=utcnow)
    accounts_managed: int = 0
    actions_performed: int = 0

    @classmethod
    def field_names(cls) -> frozenset[str]:
        return frozenset(f.name for f in fields(cls))


@dataclass(frozen=True)
class User:
    """Пользователь: идентичность + состояние сессии + статистика.

    ``username`` и ``vk_id`` — ключи, по которым login находит
    существующую запись. None означает «поле отсутствует».
    """

    id: str
    name: str
    auth_type: str
    status: str = "online"
    last_activity: datetime = field(default_factory=utcnow)
    created_at: datetime = field(default_factory=utcnow)
    statistics: UserStatistics = field(default_factory=UserStatistics)
    username: str | None = None
    email: str | None = None
    vk_id: str | None = None
    avatar: str | None = None

    def __post_init__(self) -> None:
        if not self.id:
            raise ValueError("id пользователя не может быть пустым")
        if self.auth_type not in VALID_AUTH_TYPES:
            raise ValueError(
                f"Недопустимый auth_type: {self.auth_type!r}, допустимо: {sorted(VALID_AUTH_TYPES)}"
            )
        if self.status not in VALID_STATUSES:
            raise ValueError(
                f"Недопустимый статус: {self.status!r}, допустимо: {sorted(VALID_STATUSES)}"
            )


@dataclass(frozen=True)
class LoginCredentials:
    """Данные формы входа по логину и паролю."""

    username: str
    password: str


@dataclass(frozen=True)
class VKAuthData:
    """Ответ виджета авторизации ВКонтакте."""

    vk_id: str
    access_token: str
    name: str
    avatar: str | None = None


@dataclass(frozen=True)
class Directory:
    """Агрегированное состояние справочника.

    ``current_user_id`` — логическая ссылка на запись в ``users``,
    поэтому текущий пользователь всегда совпадает с записью в списке.
    """

    users: tuple[User, ...] = ()
    current_user_id: str | None = None

    def __post_init__(self) -> None:
        ids = [u.id for u in self.users]
        if len(ids) != len(set(ids)):
            dups = sorted({i for i in ids if ids.count(i) > 1})
            raise ValueError(f"Повторяющиеся id пользователей: {dups}")

    @property
    def current_user(self) -> User | None:
        if self.current_user_id is None:
            return None
        return find_user(self.users, self.current_user_id)

    @property
    def is_authenticated(self) -> bool:
        return self.current_user is not None


def find_user(users: tuple[User, ...] | list[User], user_id: str) -> User | None:
    """Первая запись с указанным id или None."""
    return next((u for u in users if u.id == user_id), None)
