"""Учёт времени сессии текущего пользователя.

Фоновая asyncio-задача раз в минуту прибавляет одну минуту
к ``statistics.total_time_spent`` текущего пользователя.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from faction_hub.services.user_directory import UserDirectoryStore

logger = logging.getLogger(__name__)

# Интервал учёта (секунды)
TICK_INTERVAL = 60


class SessionTracker:
    """Периодически увеличивает время сессии текущего пользователя."""

    def __init__(self, store: UserDirectoryStore, interval: float = TICK_INTERVAL) -> None:
        self._store = store
        self._interval = interval
        self._task: asyncio.Task[None] | None = None

    async def tick(self) -> bool:
        """Засчитать одну минуту текущему пользователю.

        Returns:
            True если была активная сессия.
        """
        user = self._store.current_user
        if user is None:
            return False
        await self._store.update_user_statistics(
            user.id,
            total_time_spent=user.statistics.total_time_spent + 1,
        )
        return True

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                await self.tick()
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.error("SessionTracker: ошибка учёта времени: %s", exc)

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Запустить фоновую задачу."""
        if not self.running:
            self._task = asyncio.create_task(self._loop())
            logger.info("SessionTracker: фоновая задача запущена")

    async def stop(self) -> None:
        """Остановить фоновую задачу."""
        if self._task and not self._task.done():
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            logger.info("SessionTracker: фоновая задача остановлена")
        self._task = None
