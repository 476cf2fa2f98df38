from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from tutorbot import repo
from tutorbot.core.config import settings
from tutorbot.core.states import PaymentStatus, RegStep
from tutorbot.core.time import utcnow
from tutorbot.services.config import ConfigService, config_service
from tutorbot.services.referrals.service import ReferralService, referral_service
from tutorbot.services.result import Result

log = logging.getLogger(__name__)

# outcome codes
ALREADY_VERIFIED = "already_verified"
PENDING = "pending"
NOT_REGISTERED = "not_registered"
AWAITING_SCREENSHOT = "awaiting_screenshot"
NOT_EXPECTED = "not_expected"
NO_FILE = "no_file"
SUBMITTED = "submitted"
FORBIDDEN = "forbidden"
NOT_FOUND = "not_found"
ALREADY_PROCESSED = "already_processed"
APPROVED = "approved"
REJECTED = "rejected"


def pick_proof(message: Any) -> tuple[str, str] | None:
    """(file_id, file_type) of the proof in a message.

    Telegram sends several sizes of one photo; the largest one wins.
    Falls back to an attached document (uncompressed screenshot).
    """
    photos = getattr(message, "photo", None) or []
    if photos:
        best = max(photos, key=lambda p: (p.width or 0) * (p.height or 0))
        return best.file_id, "photo"
    document = getattr(message, "document", None)
    if document is not None and document.file_id:
        return document.file_id, "document"
    return None


def payment_account(method: str | None) -> str:
    if method == "cbebirr":
        return settings.payment_account_cbebirr
    return settings.payment_account_telebirr


class PaymentService:
    def __init__(self, config: ConfigService, referrals: ReferralService) -> None:
        self.config = config
        self.referrals = referrals

    async def request_payment(self, session: AsyncSession, *, tg_id: int) -> Result:
        user = await repo.get_user(session, tg_id)
        if user and user.is_verified:
            return Result(ALREADY_VERIFIED)
        if user and user.payment_status == PaymentStatus.PENDING:
            return Result(PENDING)
        if not user or not user.payment_method or user.registration_step not in (
            RegStep.COMPLETED,
            RegStep.AWAITING_SCREENSHOT,
        ):
            return Result(NOT_REGISTERED)

        await repo.update_user(session, tg_id, registration_step=RegStep.AWAITING_SCREENSHOT)
        await session.commit()
        return Result(
            AWAITING_SCREENSHOT,
            data={
                "fee": self.config.get_int("registration_fee"),
                "method": user.payment_method,
                "account": payment_account(user.payment_method),
            },
        )

    async def submit_proof(self, session: AsyncSession, *, tg_id: int, proof: tuple[str, str] | None) -> Result:
        """Records a pending payment for the proof and takes the user out of awaiting_screenshot.

        The caller fans the proof out to admins on SUBMITTED.
        """
        user = await repo.get_user(session, tg_id)
        if not user or user.registration_step != RegStep.AWAITING_SCREENSHOT:
            return Result(NOT_EXPECTED)
        if user.is_verified or user.payment_status == PaymentStatus.PENDING:
            return Result(NOT_EXPECTED)
        if proof is None:
            return Result(NO_FILE)

        if not await repo.mark_proof_submitted(session, tg_id):
            # another proof of the same album got there first
            await session.rollback()
            return Result(NOT_EXPECTED)

        file_id, file_type = proof
        payment = await repo.create_payment(
            session,
            user_id=tg_id,
            amount=self.config.get_int("registration_fee"),
            method=user.payment_method,
            file_id=file_id,
            file_type=file_type,
        )
        await session.commit()
        log.info("payment_submitted", extra={"tg_id": tg_id, "payment_id": payment.id})
        return Result(SUBMITTED, data={"payment": payment, "user": user})

    async def approve(self, session: AsyncSession, *, payment_id: int, admin_id: int) -> Result:
        """pending -> approved, verify the student and credit their referrer.

        Status flip, user verification and referral credit commit together; a
        failure anywhere leaves the payment pending so the same callback can be
        retried. The referrer is credited only by the call that flips the
        student from unverified to verified, so neither a repeated callback nor
        a second pending payment of the same student credits twice.
        """
        if int(admin_id) not in settings.all_admin_ids:
            return Result(FORBIDDEN)

        payment = await repo.get_payment(session, payment_id)
        if payment is None:
            return Result(NOT_FOUND)
        if payment.status != PaymentStatus.PENDING:
            return Result(ALREADY_PROCESSED, data={"payment": payment})

        now = utcnow()
        won = await repo.transition_payment(
            session,
            payment_id,
            from_status=PaymentStatus.PENDING,
            status=PaymentStatus.APPROVED,
            approved_by=int(admin_id),
            processed_at=now,
        )
        if not won:
            return Result(ALREADY_PROCESSED, data={"payment": payment})

        first = await repo.verify_user_once(session, payment.user_id, joined_at=now)
        user = await repo.update_user(
            session,
            payment.user_id,
            payment_status=PaymentStatus.APPROVED,
            registration_step=RegStep.COMPLETED,
        )
        credited = None
        if first and user is not None:
            credited = await self.referrals.credit_referrer(session, referred=user)
        await session.commit()
        log.info("payment_approved", extra={"payment_id": payment_id, "admin_id": admin_id, "tg_id": payment.user_id})

        return Result(
            APPROVED,
            data={
                "payment": payment,
                "user": user,
                "credited": credited,
                "verified_now": first,
                "reward": self.config.get_int("referral_reward"),
            },
        )

    async def reject(self, session: AsyncSession, *, payment_id: int, admin_id: int) -> Result:
        if int(admin_id) not in settings.all_admin_ids:
            return Result(FORBIDDEN)

        payment = await repo.get_payment(session, payment_id)
        if payment is None:
            return Result(NOT_FOUND)
        if payment.status != PaymentStatus.PENDING:
            return Result(ALREADY_PROCESSED, data={"payment": payment})

        won = await repo.transition_payment(
            session,
            payment_id,
            from_status=PaymentStatus.PENDING,
            status=PaymentStatus.REJECTED,
            rejected_by=int(admin_id),
            processed_at=utcnow(),
        )
        if not won:
            return Result(ALREADY_PROCESSED, data={"payment": payment})

        user = await repo.get_user(session, payment.user_id)
        if user is not None and not user.is_verified:
            # back to awaiting_screenshot so the student can send a new proof
            await repo.update_user(
                session,
                payment.user_id,
                payment_status=PaymentStatus.REJECTED,
                registration_step=RegStep.AWAITING_SCREENSHOT,
            )
        await session.commit()
        log.info("payment_rejected", extra={"payment_id": payment_id, "admin_id": admin_id, "tg_id": payment.user_id})
        return Result(REJECTED, data={"payment": payment, "user": user})


payment_service = PaymentService(config_service, referral_service)
