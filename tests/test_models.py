"""Тесты моделей: валидация вариантов и вычисляемые свойства Directory."""

from dataclasses import FrozenInstanceError

import pytest

from faction_hub.models import Directory, User, UserStatistics, find_user
from helpers import make_user


class TestUserValidation:
    def test_invalid_auth_type(self):
        with pytest.raises(ValueError, match="auth_type"):
            User(id="u1", name="x", auth_type="google")

    def test_invalid_status(self):
        with pytest.raises(ValueError, match="статус"):
            User(id="u1", name="x", auth_type="vk", status="busy")

    def test_empty_id(self):
        with pytest.raises(ValueError):
            User(id="", name="x", auth_type="vk")

    def test_defaults(self):
        user = User(id="u1", name="x", auth_type="credentials")
        assert user.status == "online"
        assert user.statistics.total_sessions == 1
        assert user.statistics.total_time_spent == 0
        assert user.created_at.tzinfo is not None

    def test_frozen(self):
        user = make_user("u1", username="alice")
        with pytest.raises(FrozenInstanceError):
            user.status = "away"  # type: ignore[misc]


class TestUserStatistics:
    def test_field_names(self):
        assert UserStatistics.field_names() == {
            "total_sessions",
            "total_time_spent",
            "last_login_date",
            "accounts_managed",
            "actions_performed",
        }


class TestDirectory:
    def test_empty(self):
        directory = Directory()
        assert directory.current_user is None
        assert directory.is_authenticated is False

    def test_current_user_resolved_by_id(self):
        alice = make_user("u1", username="alice")
        directory = Directory(users=(alice,), current_user_id="u1")
        assert directory.current_user is alice
        assert directory.is_authenticated is True

    def test_dangling_reference_is_not_authenticated(self):
        """Ссылка на отсутствующую запись не даёт аутентификации."""
        directory = Directory(users=(), current_user_id="ghost")
        assert directory.current_user is None
        assert directory.is_authenticated is False

    def test_duplicate_ids_rejected(self):
        a = make_user("dup", username="a")
        b = make_user("dup", username="b")
        with pytest.raises(ValueError, match="dup"):
            Directory(users=(a, b))

    def test_find_user_first_match(self):
        a = make_user("dup", username="a")
        b = make_user("dup", username="b")
        assert find_user((a, b), "dup") is a
        assert find_user((a, b), "other") is None
