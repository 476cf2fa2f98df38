from __future__ import annotations

from dataclasses import asdict, dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from tutorbot import repo
from tutorbot.core.states import PaymentStatus, WithdrawalStatus
from tutorbot.core.time import today_start_utc
from tutorbot.db.models import Payment, Withdrawal


@dataclass(frozen=True)
class Stats:
    total_users: int
    verified_users: int
    new_users_today: int
    pending_payments: int
    pending_withdrawals: int
    total_referrals: int

    def as_dict(self) -> dict[str, int]:
        return asdict(self)

    def render(self) -> str:
        return (
            "📊 <b>Bot statistics</b>\n\n"
            f"👥 Total users: <b>{self.total_users}</b>\n"
            f"✅ Verified students: <b>{self.verified_users}</b>\n"
            f"🆕 New today: <b>{self.new_users_today}</b>\n"
            f"🧾 Pending payments: <b>{self.pending_payments}</b>\n"
            f"💸 Pending withdrawals: <b>{self.pending_withdrawals}</b>\n"
            f"🎁 Total referrals: <b>{self.total_referrals}</b>"
        )


async def collect_stats(session: AsyncSession) -> Stats:
    return Stats(
        total_users=await repo.count_users(session),
        verified_users=await repo.count_users(session, verified=True),
        new_users_today=await repo.count_new_users_since(session, today_start_utc()),
        pending_payments=await repo.count_by_status(session, Payment, PaymentStatus.PENDING),
        pending_withdrawals=await repo.count_by_status(session, Withdrawal, WithdrawalStatus.PENDING),
        total_referrals=await repo.sum_referrals(session),
    )
