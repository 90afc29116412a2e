"""Точка входа — консольное управление справочником пользователей.

Примеры::

    python -m faction_hub login --username alice
    python -m faction_hub login --vk-id 12345 --name "Иван"
    python -m faction_hub status user_1700000000000_ab12cd away
    python -m faction_hub stats user_1700000000000_ab12cd --set actions_performed=3
    python -m faction_hub list
    python -m faction_hub logout
    python -m faction_hub config

Результат печатается в stdout как JSON.
"""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import json
import logging
import sys
from typing import Any

from faction_hub.config import Config, config
from faction_hub.models import LoginCredentials, User, VALID_STATUSES, VKAuthData
from faction_hub.services.auth_flow import credentials_candidate, vk_candidate
from faction_hub.services.directory_storage import user_to_dict
from faction_hub.services.storage_factory import create_directory_storage
from faction_hub.services.user_directory import DirectoryError, UserDirectoryStore

# ---------------------------------------------------------------------------
# Логирование: JSON для production, текст для разработки
# ---------------------------------------------------------------------------

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

logger = logging.getLogger(__name__)


class _JSONFormatter(logging.Formatter):
    """Структурированные JSON-логи (одна запись — одна строка)."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info and record.exc_info[1] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False)


def _setup_logging(cfg: Config) -> None:
    """Настроить логирование в stderr (stdout занят JSON-результатом)."""
    level = logging.DEBUG if cfg.debug else logging.INFO
    handler = logging.StreamHandler(sys.stderr)
    if cfg.log_json:
        handler.setFormatter(_JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logging.basicConfig(level=level, handlers=[handler], force=True)


# ---------------------------------------------------------------------------
# Аргументы
# ---------------------------------------------------------------------------


def _parse_stat(value: str) -> tuple[str, int]:
    key, sep, raw = value.partition("=")
    if not sep or not key.strip():
        raise argparse.ArgumentTypeError(f"ожидается поле=число, получено {value!r}")
    try:
        return key.strip(), int(raw)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"значение {key!r} должно быть целым") from e


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="faction_hub",
        description="Справочник пользователей: вход, выход, статусы, статистика",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    login = sub.add_parser("login", help="Войти (новый пользователь или повторный вход)")
    ident = login.add_mutually_exclusive_group(required=True)
    ident.add_argument("--username", help="Логин (вход по логину и паролю)")
    ident.add_argument("--vk-id", help="ID ВКонтакте (вход через ВК)")
    login.add_argument("--name", help="Отображаемое имя")
    login.add_argument("--email", help="Email")
    login.add_argument("--avatar", help="URL аватара")

    sub.add_parser("logout", help="Выйти из текущей сессии")
    sub.add_parser("whoami", help="Показать текущего пользователя")
    sub.add_parser("list", help="Показать всех пользователей")

    show = sub.add_parser("show", help="Показать пользователя по id")
    show.add_argument("user_id")

    status = sub.add_parser("status", help="Сменить статус пользователя")
    status.add_argument("user_id")
    status.add_argument("status", choices=sorted(VALID_STATUSES))

    stats = sub.add_parser("stats", help="Обновить статистику пользователя")
    stats.add_argument("user_id")
    stats.add_argument(
        "--set",
        dest="updates",
        action="append",
        type=_parse_stat,
        required=True,
        metavar="FIELD=N",
        help="Поле статистики и новое значение (можно несколько раз)",
    )

    delete = sub.add_parser("delete", help="Удалить пользователя")
    delete.add_argument("user_id")

    sub.add_parser("config", help="Показать параметры подключения к БД")
    return parser


# ---------------------------------------------------------------------------
# Команды
# ---------------------------------------------------------------------------


def _build_candidate(args: argparse.Namespace) -> User:
    if args.username is not None:
        candidate = credentials_candidate(LoginCredentials(username=args.username, password=""))
        if args.name:
            candidate = dataclasses.replace(candidate, name=args.name)
    else:
        candidate = vk_candidate(
            VKAuthData(
                vk_id=args.vk_id,
                access_token="",
                name=args.name or "",
                avatar=args.avatar,
            )
        )
    if args.email:
        candidate = dataclasses.replace(candidate, email=args.email)
    if args.avatar and candidate.avatar is None:
        candidate = dataclasses.replace(candidate, avatar=args.avatar)
    return candidate


def _config_summary(cfg: Config) -> dict[str, Any]:
    db = cfg.database
    return {
        "database": {
            "host": db.host,
            "port": db.port,
            "user": db.user,
            "database": db.database,
            "charset": db.charset,
            "timezone": db.timezone,
            "acquireTimeout": db.acquire_timeout,
            "timeout": db.timeout,
            "reconnect": db.reconnect,
            "dsn": db.safe_dsn,
        },
        "useMockData": cfg.use_mock_data,
        "init": dataclasses.asdict(cfg.init_settings),
        "storageBackend": cfg.storage_backend,
    }


async def _execute(store: UserDirectoryStore, args: argparse.Namespace) -> Any:
    """Выполнить команду и вернуть JSON-совместимый результат."""
    command = args.command
    if command == "login":
        user = await store.login(_build_candidate(args))
        return user_to_dict(user)
    if command == "logout":
        await store.logout()
        return {"isAuthenticated": store.is_authenticated}
    if command == "whoami":
        current = store.current_user
        return user_to_dict(current) if current is not None else None
    if command == "list":
        return [user_to_dict(u) for u in store.get_all_users()]
    if command == "show":
        user = store.get_user_by_id(args.user_id)
        return user_to_dict(user) if user is not None else None
    if command == "status":
        await store.update_user_status(args.user_id, args.status)
        user = store.get_user_by_id(args.user_id)
        return user_to_dict(user) if user is not None else None
    if command == "stats":
        await store.update_user_statistics(args.user_id, **dict(args.updates))
        user = store.get_user_by_id(args.user_id)
        return user_to_dict(user) if user is not None else None
    if command == "delete":
        await store.delete_user(args.user_id)
        return {"deleted": args.user_id, "isAuthenticated": store.is_authenticated}
    raise ValueError(f"Неизвестная команда: {command}")


async def run(args: argparse.Namespace, cfg: Config) -> Any:
    """Открыть справочник, выполнить команду, закрыть хранилище."""
    if args.command == "config":
        return _config_summary(cfg)

    storage = await create_directory_storage(cfg)
    store = UserDirectoryStore(storage)
    try:
        await store.load()
        return await _execute(store, args)
    finally:
        await store.close()


def main(argv: list[str] | None = None, cfg: Config | None = None) -> int:
    cfg = cfg or config
    args = build_parser().parse_args(argv)
    _setup_logging(cfg)

    try:
        result = asyncio.run(run(args, cfg))
    except (DirectoryError, ValueError) as e:
        logger.error("Команда %s не выполнена: %s", args.command, e)
        print(f"ОШИБКА: {e}", file=sys.stderr)
        return 1

    print(json.dumps(result, ensure_ascii=False, indent=2))
    if result is None and args.command in {"show", "status", "stats"}:
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
