from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from tutorbot import repo
from tutorbot.core.states import PAYMENT_METHODS, STREAMS, PaymentStatus, RegStep
from tutorbot.core.time import utcnow
from tutorbot.services.config import ConfigService, check_feature, config_service
from tutorbot.services.result import Result

log = logging.getLogger(__name__)

NAME_MIN_LEN = 2
NAME_MAX_LEN = 50

# outcome codes
DISABLED = "disabled"
ALREADY_VERIFIED = "already_verified"
PAYMENT_PENDING = "payment_pending"
STARTED = "started"
NOT_EXPECTED = "not_expected"
INVALID = "invalid"
ACCEPTED = "accepted"
COMPLETED = "completed"
CANCELLED = "cancelled"
NOTHING_TO_CANCEL = "nothing_to_cancel"


def validate_name(name: str | None) -> bool:
    name = (name or "").strip()
    return NAME_MIN_LEN <= len(name) <= NAME_MAX_LEN


class RegistrationService:
    """Linear registration flow driven by the persisted users.registration_step.

    not_started -> awaiting_name -> awaiting_phone -> awaiting_stream
    -> awaiting_payment_method -> completed

    Every step reloads the user and checks the stored step before writing, so a
    restart between two messages resumes where the user left off and a stale or
    duplicated update is ignored.
    """

    def __init__(self, config: ConfigService) -> None:
        self.config = config

    async def start(
        self,
        session: AsyncSession,
        *,
        tg_id: int,
        first_name: str | None = None,
        username: str | None = None,
    ) -> Result:
        feature = check_feature(self.config, "registration")
        if not feature.allowed:
            return Result(DISABLED, feature.message)

        user = await repo.get_user(session, tg_id)
        if user and user.is_verified:
            return Result(ALREADY_VERIFIED)
        if user and user.payment_status == PaymentStatus.PENDING:
            return Result(PAYMENT_PENDING)

        # Referral fields and counters are not touched by the merge-write.
        await repo.set_user(
            session,
            tg_id,
            first_name=first_name,
            username=username,
            is_verified=False,
            registration_step=RegStep.AWAITING_NAME,
            payment_status=PaymentStatus.NOT_STARTED,
            name=None,
            phone=None,
            student_type=None,
            payment_method=None,
            joined_at=(user.joined_at if user and user.joined_at else utcnow()),
        )
        await session.commit()
        log.info("registration_started", extra={"tg_id": tg_id})
        return Result(STARTED)

    async def submit_name(self, session: AsyncSession, *, tg_id: int, text: str | None) -> Result:
        user = await repo.get_user(session, tg_id)
        if not user or user.registration_step != RegStep.AWAITING_NAME:
            return Result(NOT_EXPECTED)

        name = (text or "").strip()
        if not validate_name(name):
            return Result(INVALID)

        await repo.update_user(session, tg_id, name=name, registration_step=RegStep.AWAITING_PHONE)
        await session.commit()
        return Result(ACCEPTED, data={"name": name})

    async def submit_contact(
        self,
        session: AsyncSession,
        *,
        tg_id: int,
        contact_user_id: int | None,
        phone: str | None,
    ) -> Result:
        user = await repo.get_user(session, tg_id)
        if not user or user.registration_step != RegStep.AWAITING_PHONE:
            return Result(NOT_EXPECTED)

        # only the user's own contact card is accepted
        if contact_user_id is None or int(contact_user_id) != int(tg_id) or not phone:
            return Result(INVALID)

        await repo.update_user(session, tg_id, phone=phone, registration_step=RegStep.AWAITING_STREAM)
        await session.commit()
        return Result(ACCEPTED, data={"phone": phone})

    async def choose_stream(self, session: AsyncSession, *, tg_id: int, stream: str) -> Result:
        user = await repo.get_user(session, tg_id)
        if not user or user.registration_step != RegStep.AWAITING_STREAM:
            return Result(NOT_EXPECTED)
        if stream not in STREAMS:
            return Result(INVALID)

        await repo.update_user(
            session, tg_id, student_type=stream, registration_step=RegStep.AWAITING_PAYMENT_METHOD
        )
        await session.commit()
        return Result(ACCEPTED, data={"stream": stream})

    async def choose_payment_method(self, session: AsyncSession, *, tg_id: int, method: str) -> Result:
        user = await repo.get_user(session, tg_id)
        if not user or user.registration_step != RegStep.AWAITING_PAYMENT_METHOD:
            return Result(NOT_EXPECTED)
        if method not in PAYMENT_METHODS:
            return Result(INVALID)

        await repo.update_user(session, tg_id, payment_method=method, registration_step=RegStep.COMPLETED)
        await session.commit()
        log.info("registration_completed", extra={"tg_id": tg_id})
        return Result(COMPLETED, data={"method": method})

    async def cancel(self, session: AsyncSession, *, tg_id: int) -> Result:
        user = await repo.get_user(session, tg_id)
        if not user or user.registration_step not in RegStep.IN_FLIGHT:
            return Result(NOTHING_TO_CANCEL)

        await repo.update_user(
            session,
            tg_id,
            registration_step=RegStep.NOT_STARTED,
            payment_status=PaymentStatus.NOT_STARTED,
            name=None,
            phone=None,
            student_type=None,
            payment_method=None,
        )
        await session.commit()
        log.info("registration_cancelled", extra={"tg_id": tg_id})
        return Result(CANCELLED)


registration_service = RegistrationService(config_service)
