from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, Boolean, CheckConstraint, DateTime, Integer, String, Text, false, func
from sqlalchemy.orm import Mapped, mapped_column

from tutorbot.core.time import utcnow
from tutorbot.db.base import Base


class User(Base):
    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint("referrer_id IS NULL OR referrer_id <> tg_id", name="ck_users_no_self_referral"),
    )

    tg_id: Mapped[int] = mapped_column(BigInteger, primary_key=True)

    # Telegram profile snapshot
    first_name: Mapped[str | None] = mapped_column(String(128), nullable=True)
    username: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # ==========================
    # Registration
    # ==========================
    name: Mapped[str | None] = mapped_column(String(64), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(32), nullable=True)
    student_type: Mapped[str | None] = mapped_column(String(16), nullable=True)
    payment_method: Mapped[str | None] = mapped_column(String(16), nullable=True)

    registration_step: Mapped[str] = mapped_column(String(32), default="not_started", server_default="not_started", nullable=False)
    payment_status: Mapped[str] = mapped_column(String(16), default="not_started", server_default="not_started", nullable=False)
    is_verified: Mapped[bool] = mapped_column(Boolean, default=False, server_default=false(), nullable=False, index=True)

    # ==========================
    # Referrals
    # ==========================
    # Set once on /start ref_<id>; rewards are credited when this user's payment is approved.
    referrer_id: Mapped[int | None] = mapped_column(BigInteger, index=True, nullable=True)
    referral_count: Mapped[int] = mapped_column(Integer, default=0, server_default="0", nullable=False, index=True)
    # withdrawable balance; zeroed when a withdrawal is requested
    rewards: Mapped[int] = mapped_column(Integer, default=0, server_default="0", nullable=False)
    # lifetime earnings, never decreases
    total_rewards: Mapped[int] = mapped_column(Integer, default=0, server_default="0", nullable=False)

    # payout profile
    payment_method_preference: Mapped[str | None] = mapped_column(String(16), nullable=True)
    account_number: Mapped[str | None] = mapped_column(String(32), nullable=True)
    account_name: Mapped[str | None] = mapped_column(String(64), nullable=True)

    blocked: Mapped[bool] = mapped_column(Boolean, default=False, server_default=false(), nullable=False)

    # multi-message flows other than registration (payout profile edit, admin compose)
    flow_state: Mapped[str | None] = mapped_column(String(32), nullable=True)
    flow_data: Mapped[str | None] = mapped_column(Text, nullable=True)

    joined_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )

    @property
    def display_name(self) -> str:
        return self.name or self.first_name or f"User {self.tg_id}"

    @property
    def has_payout_profile(self) -> bool:
        return bool(self.payment_method_preference and self.account_number and self.account_name)
