"""Общие хелперы для тестов.

Публичные функции для создания тестовых пользователей и часов.
Импортируй из этого модуля, а не дублируй в каждом тесте.
"""

from datetime import UTC, datetime, timedelta

from faction_hub.models import User, UserStatistics

# Базовый момент времени для детерминированных дат
T0 = datetime(2026, 1, 15, 12, 0, tzinfo=UTC)


class FakeClock:
    """Управляемые часы: каждый вызов сдвигает время на одну секунду."""

    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        self.now += timedelta(seconds=1)
        return self.now


def make_user(
    user_id: str = "user_1",
    *,
    username: str | None = None,
    vk_id: str | None = None,
    name: str | None = None,
    auth_type: str | None = None,
    status: str = "online",
    total_sessions: int = 1,
    **kwargs,
) -> User:
    """Пользователь с детерминированными датами."""
    if auth_type is None:
        auth_type = "vk" if vk_id and not username else "credentials"
    return User(
        id=user_id,
        username=username,
        vk_id=vk_id,
        name=name or username or vk_id or user_id,
        auth_type=auth_type,
        status=status,
        last_activity=T0,
        created_at=T0,
        statistics=UserStatistics(total_sessions=total_sessions, last_login_date=T0),
        **kwargs,
    )
