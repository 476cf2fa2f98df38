from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Iterable

from sqlalchemy.ext.asyncio import AsyncSession

from tutorbot import repo
from tutorbot.core.config import settings
from tutorbot.db.models import User

log = logging.getLogger(__name__)

AUDIENCES = ("all", "verified", "unverified", "admins")
AUDIENCE_LABELS = {
    "all": "everyone",
    "verified": "verified students",
    "unverified": "unverified users",
    "admins": "admins",
}


@dataclass
class BroadcastReport:
    total: int = 0
    sent: int = 0
    failed: int = 0
    failed_ids: list[int] = field(default_factory=list)

    @property
    def done(self) -> int:
        return self.sent + self.failed

    @property
    def success_rate(self) -> float:
        if not self.total:
            return 0.0
        return round(self.sent * 100.0 / self.total, 1)

    def summary(self) -> str:
        return (
            "📊 <b>Broadcast finished</b>\n\n"
            f"👥 Recipients: <b>{self.total}</b>\n"
            f"✅ Delivered: <b>{self.sent}</b>\n"
            f"❌ Failed: <b>{self.failed}</b>\n"
            f"📈 Success rate: <b>{self.success_rate}%</b>"
        )


async def recipients_for(session: AsyncSession, audience: str) -> list[int]:
    """Chat ids for an audience. Blocked users are never included."""
    if audience == "all":
        return await repo.all_user_ids(session)
    if audience == "verified":
        return await repo.user_ids_by(session, "is_verified", True)
    if audience == "unverified":
        return await repo.user_ids_by(session, "is_verified", False)
    if audience == "admins":
        return list(settings.all_admin_ids)
    raise ValueError(f"unknown audience: {audience}")


async def find_recipient(session: AsyncSession, raw: str | None) -> User | None:
    """The single recipient named by a typed Telegram id.

    Raises ValueError when `raw` is not a numeric id. Returns None for an
    unknown user.
    """
    raw = (raw or "").strip()
    if not raw.lstrip("-").isdigit():
        raise ValueError(f"not a user id: {raw!r}")
    return await repo.get_user(session, int(raw))


async def broadcast(
    send: Callable[[int, str], Awaitable[int | None]],
    recipients: Iterable[int],
    text: str,
    *,
    delay: float | None = None,
    progress_every: int | None = None,
    on_progress: Callable[[BroadcastReport], Awaitable[None]] | None = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> BroadcastReport:
    """Sequential, rate-limited fan-out of one text message.

    `send` returns a message id, or None when delivery failed (see
    Notifier.send_text). A failed recipient is counted and skipped; the loop
    always runs to the end.
    """
    ids = list(dict.fromkeys(int(x) for x in recipients))
    delay = settings.broadcast_delay_ms / 1000.0 if delay is None else delay
    progress_every = settings.broadcast_progress_every if progress_every is None else progress_every

    report = BroadcastReport(total=len(ids))
    log.info("broadcast_started", extra={"op": "broadcast", "count": report.total})

    for i, chat_id in enumerate(ids, start=1):
        if await send(chat_id, text) is not None:
            report.sent += 1
        else:
            report.failed += 1
            report.failed_ids.append(chat_id)

        if on_progress and progress_every and i % progress_every == 0 and i < report.total:
            await on_progress(report)
        if delay and i < report.total:
            await sleep(delay)

    log.info(
        "broadcast_finished",
        extra={"op": "broadcast", "count": report.total, "sent": report.sent, "failed": report.failed},
    )
    return report
