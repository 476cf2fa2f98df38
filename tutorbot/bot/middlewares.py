from __future__ import annotations

import logging
import time
from typing import Any, Awaitable, Callable, Dict

from aiogram import BaseMiddleware
from aiogram.types import TelegramObject, Update

from tutorbot import repo
from tutorbot.bot.auth import is_admin
from tutorbot.db.session import session_scope

log = logging.getLogger(__name__)


class CorrelationIdMiddleware(BaseMiddleware):
    """Puts corr_id/update_id into handler data for log context."""

    async def __call__(
        self,
        handler: Callable[[TelegramObject, Dict[str, Any]], Awaitable[Any]],
        event: TelegramObject,
        data: Dict[str, Any],
    ) -> Any:
        update: Update | None = data.get("event_update")
        if update:
            data["corr_id"] = f"u{update.update_id}"
            data["update_id"] = update.update_id
        return await handler(event, data)


class RateLimitMiddleware(BaseMiddleware):
    """Drops a repeated tap on the same inline button within `min_interval_sec`."""

    def __init__(self, min_interval_sec: float = 0.4):
        self.min_interval_sec = min_interval_sec
        self._last: dict[tuple[int, str], float] = {}

    async def __call__(
        self,
        handler: Callable[[TelegramObject, Dict[str, Any]], Awaitable[Any]],
        event: TelegramObject,
        data: Dict[str, Any],
    ) -> Any:
        cb = getattr(event, "data", None)
        from_user = getattr(event, "from_user", None)
        if cb and from_user:
            key = (from_user.id, cb)
            now = time.monotonic()
            last = self._last.get(key)
            if last and (now - last) < self.min_interval_sec:
                return None
            self._last[key] = now
        return await handler(event, data)


class BlockedUserMiddleware(BaseMiddleware):
    """Silently drops updates from users an admin has blocked."""

    async def __call__(
        self,
        handler: Callable[[TelegramObject, Dict[str, Any]], Awaitable[Any]],
        event: TelegramObject,
        data: Dict[str, Any],
    ) -> Any:
        from_user = getattr(event, "from_user", None)
        if from_user and not is_admin(from_user.id):
            async with session_scope() as session:
                user = await repo.get_user(session, from_user.id)
            if user is not None and user.blocked:
                log.info("blocked_user_dropped", extra={"tg_id": from_user.id})
                return None
        return await handler(event, data)
