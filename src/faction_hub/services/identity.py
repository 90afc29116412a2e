"""Сопоставление кандидата на вход с известными пользователями."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence

    from faction_hub.models import User

# Ключи идентичности в порядке приоритета
IDENTITY_KEYS: tuple[str, ...] = ("username", "vk_id")


@dataclass(frozen=True)
class IdentityMatch:
    """Результат сопоставления: найдена ли запись, где и по какому ключу."""

    matched: bool
    index: int | None = None
    key: str | None = None


NO_MATCH = IdentityMatch(matched=False)


def identity_values(user: User) -> dict[str, str]:
    """Непустые значения ключей идентичности пользователя."""
    values: dict[str, str] = {}
    for key in IDENTITY_KEYS:
        value = getattr(user, key)
        if value:
            values[key] = value
    return values


def has_identity(user: User) -> bool:
    return bool(identity_values(user))


def match_identity(users: Sequence[User], candidate: User) -> IdentityMatch:
    """Найти первую запись, совпадающую с кандидатом хотя бы по одному ключу.

    Побеждает первый индекс в ``users``, а не «лучшее» совпадение:
    внутри одной записи ключи проверяются в порядке ``IDENTITY_KEYS``.
    Кандидат без ключей идентичности ни с чем не совпадает.
    """
    wanted = identity_values(candidate)
    if not wanted:
        return NO_MATCH
    for index, user in enumerate(users):
        for key, value in wanted.items():
            if getattr(user, key) == value:
                return IdentityMatch(matched=True, index=index, key=key)
    return NO_MATCH
