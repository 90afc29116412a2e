"""Тесты консольной точки входа.

Каждая команда — отдельный запуск main() поверх одной SQLite-базы,
поэтому проверяется и восстановление справочника между запусками.
"""

import json
import logging
import os
from unittest.mock import patch

import pytest

from faction_hub.__main__ import _JSONFormatter, build_parser, main
from faction_hub.config import Config


@pytest.fixture
def cfg(tmp_path) -> Config:
    env = {
        "STORAGE_BACKEND": "sqlite",
        "DIRECTORY_DB_PATH": str(tmp_path / "cli.db"),
        "DB_PASSWORD": "s3cret",
    }
    with patch.dict(os.environ, env, clear=True):
        return Config(_env_file=None)  # type: ignore[call-arg]


@pytest.fixture(autouse=True)
def _no_logging_setup():
    with patch("faction_hub.__main__._setup_logging"):
        yield


@pytest.fixture
def cli(cfg, capsys):
    """Запустить команду и вернуть (код выхода, JSON-результат)."""

    def _run(*argv: str):
        code = main(list(argv), cfg=cfg)
        out = capsys.readouterr().out
        return code, json.loads(out) if out.strip() else None

    return _run


class TestLoginLogout:
    def test_login_new_user(self, cli):
        code, user = cli("login", "--username", "alice", "--email", "a@example.com")
        assert code == 0
        assert user["username"] == "alice"
        assert user["email"] == "a@example.com"
        assert user["authType"] == "credentials"

        code, me = cli("whoami")
        assert me["id"] == user["id"]

    def test_relogin_merges(self, cli):
        _, first = cli("login", "--username", "alice")
        _, second = cli("login", "--username", "alice", "--name", "Alice 2")

        assert second["id"] == first["id"]
        assert second["name"] == "Alice 2"
        assert second["statistics"]["totalSessions"] == 2

        _, users = cli("list")
        assert len(users) == 1

    def test_vk_login(self, cli):
        code, user = cli("login", "--vk-id", "12345", "--name", "Иван")
        assert code == 0
        assert user["vkId"] == "12345"
        assert user["authType"] == "vk"

    def test_logout(self, cli):
        _, user = cli("login", "--username", "alice")
        code, result = cli("logout")
        assert code == 0
        assert result == {"isAuthenticated": False}

        _, me = cli("whoami")
        assert me is None
        _, shown = cli("show", user["id"])
        assert shown["status"] == "offline"


class TestUpdates:
    def test_status(self, cli):
        _, user = cli("login", "--username", "alice")
        code, updated = cli("status", user["id"], "away")
        assert code == 0
        assert updated["status"] == "away"

    def test_status_unknown_user(self, cli):
        code, result = cli("status", "ghost", "away")
        assert code == 1
        assert result is None

    def test_stats(self, cli):
        _, user = cli("login", "--username", "alice")
        code, updated = cli(
            "stats", user["id"], "--set", "actions_performed=5", "--set", "accounts_managed=2"
        )
        assert code == 0
        assert updated["statistics"]["actionsPerformed"] == 5
        assert updated["statistics"]["accountsManaged"] == 2

    def test_stats_unknown_field(self, cli, cfg, capsys):
        _, user = cli("login", "--username", "alice")
        code = main(["stats", user["id"], "--set", "karma=1"], cfg=cfg)
        assert code == 1
        assert "ОШИБКА" in capsys.readouterr().err

    def test_delete_current(self, cli):
        _, user = cli("login", "--username", "alice")
        code, result = cli("delete", user["id"])
        assert code == 0
        assert result == {"deleted": user["id"], "isAuthenticated": False}
        _, users = cli("list")
        assert users == []


class TestConfigCommand:
    def test_summary_hides_password(self, cli):
        code, summary = cli("config")
        assert code == 0
        assert summary["database"]["host"] == "localhost"
        assert summary["database"]["port"] == 3306
        assert summary["database"]["charset"] == "utf8mb4"
        assert summary["useMockData"] is False
        assert summary["init"] == {
            "create_tables": True,
            "seed_data": True,
            "log_queries": False,
        }
        assert "s3cret" not in json.dumps(summary)


class TestParser:
    def test_login_requires_identity(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["login"])

    def test_status_choices(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["status", "u1", "busy"])

    def test_stats_value_must_be_int(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["stats", "u1", "--set", "total_time_spent=abc"])


class TestJSONFormatter:
    def test_formats_record(self):
        record = logging.LogRecord("faction_hub", logging.INFO, __file__, 1, "вход %s", ("u1",), None)
        entry = json.loads(_JSONFormatter().format(record))
        assert entry["level"] == "INFO"
        assert entry["logger"] == "faction_hub"
        assert entry["message"] == "вход u1"
