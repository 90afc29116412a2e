"""Сборка кандидата на вход из данных формы или виджета ВКонтакте.

Проверка пароля и токена ВК здесь не выполняется: кандидат
передаётся в ``UserDirectoryStore.login`` как есть.
"""

from __future__ import annotations

import secrets
from datetime import datetime
from typing import TYPE_CHECKING

from faction_hub.models import LoginCredentials, User, UserStatistics, VKAuthData, utcnow

if TYPE_CHECKING:
    from faction_hub.services.user_directory import UserDirectoryStore


def make_user_id(now: datetime) -> str:
    """``user_<миллисекунды>_<суффикс>`` — уникален и при входах в одну миллисекунду."""
    return f"user_{int(now.timestamp() * 1000)}_{secrets.token_hex(3)}"


def _fresh_statistics(now: datetime) -> UserStatistics:
    return UserStatistics(
        total_sessions=1,
        total_time_spent=0,
        last_login_date=now,
        accounts_managed=0,
        actions_performed=0,
    )


def credentials_candidate(credentials: LoginCredentials, now: datetime | None = None) -> User:
    """Кандидат для входа по логину: имя = логин.

    Логин сохраняется как введён: ``" alice"`` и ``"alice"`` — разные
    пользователи.

    Raises:
        ValueError: Пустой логин.
    """
    username = credentials.username
    if not username.strip():
        raise ValueError("Логин не может быть пустым")
    now = now or utcnow()
    return User(
        id=make_user_id(now),
        username=username,
        name=username,
        auth_type="credentials",
        status="online",
        last_activity=now,
        created_at=now,
        statistics=_fresh_statistics(now),
    )


def vk_candidate(data: VKAuthData, now: datetime | None = None) -> User:
    """Кандидат для входа через ВКонтакте.

    Raises:
        ValueError: Пустой vk_id.
    """
    vk_id = data.vk_id.strip()
    if not vk_id:
        raise ValueError("vk_id не может быть пустым")
    now = now or utcnow()
    return User(
        id=make_user_id(now),
        vk_id=vk_id,
        name=data.name.strip() or "Пользователь ВК",
        avatar=data.avatar or None,
        auth_type="vk",
        status="online",
        last_activity=now,
        created_at=now,
        statistics=_fresh_statistics(now),
    )


async def login_with_credentials(
    store: UserDirectoryStore,
    credentials: LoginCredentials,
) -> User:
    return await store.login(credentials_candidate(credentials))


async def login_with_vk(store: UserDirectoryStore, data: VKAuthData) -> User:
    return await store.login(vk_candidate(data))
