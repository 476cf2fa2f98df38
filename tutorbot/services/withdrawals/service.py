from __future__ import annotations

import json
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from tutorbot import repo
from tutorbot.core.config import settings
from tutorbot.core.states import PAYMENT_METHODS, FlowState, WithdrawalStatus
from tutorbot.core.time import utcnow
from tutorbot.db.models import User
from tutorbot.services.config import ConfigService, check_feature, config_service
from tutorbot.services.result import Result

log = logging.getLogger(__name__)

ACCOUNT_NUMBER_MIN_LEN = 5
ACCOUNT_NUMBER_MAX_LEN = 20
ACCOUNT_NAME_MIN_LEN = 2
ACCOUNT_NAME_MAX_LEN = 64

# outcome codes
DISABLED = "disabled"
NOT_VERIFIED = "not_verified"
BELOW_MINIMUM = "below_minimum"
PROFILE_MISSING = "profile_missing"
CONFLICT = "conflict"
SUBMITTED = "submitted"
STARTED = "started"
NOT_EXPECTED = "not_expected"
INVALID = "invalid"
ACCEPTED = "accepted"
SAVED = "saved"
CANCELLED = "cancelled"
FORBIDDEN = "forbidden"
NOT_FOUND = "not_found"
ALREADY_PROCESSED = "already_processed"
COMPLETED = "completed"
REJECTED = "rejected"


def _flow_data(user: User) -> dict:
    if not user.flow_data:
        return {}
    try:
        data = json.loads(user.flow_data)
    except ValueError:
        log.warning("flow_data_corrupt", extra={"tg_id": user.tg_id})
        return {}
    return data if isinstance(data, dict) else {}


class WithdrawalService:
    def __init__(self, config: ConfigService) -> None:
        self.config = config

    # ---- request ---------------------------------------------------------------

    async def request(self, session: AsyncSession, *, tg_id: int) -> Result:
        """Checks run in order and the first failure wins.

        On success the current balance is snapshotted into a pending withdrawal
        and `rewards` is zeroed with a compare-and-swap; `total_rewards` stays.
        The caller announces SUBMITTED requests to admins.
        """
        feature = check_feature(self.config, "withdrawal")
        if not feature.allowed:
            return Result(DISABLED, feature.message)

        user = await repo.get_user(session, tg_id)
        if not user or not user.is_verified:
            return Result(NOT_VERIFIED)

        minimum = self.config.get_int("min_withdrawal_amount")
        amount = int(user.rewards or 0)
        if amount <= 0 or amount < minimum:
            return Result(BELOW_MINIMUM, data={"balance": amount, "minimum": minimum})

        if not user.has_payout_profile:
            return Result(PROFILE_MISSING)

        w = await repo.create_withdrawal(
            session,
            user_id=tg_id,
            amount=amount,
            method=user.payment_method_preference,
            account_number=user.account_number,
            account_name=user.account_name,
        )
        if not await repo.zero_rewards_if(session, tg_id, expected=amount):
            # balance moved under us (a credit landed); let the user retry
            await session.rollback()
            log.info("withdrawal_conflict", extra={"tg_id": tg_id})
            return Result(CONFLICT)
        await session.commit()
        log.info("withdrawal_requested", extra={"tg_id": tg_id, "withdrawal_id": w.id})
        return Result(SUBMITTED, data={"withdrawal": w, "user": user})

    # ---- payout profile edit -----------------------------------------------------

    async def start_profile_edit(self, session: AsyncSession, *, tg_id: int) -> Result:
        user = await repo.get_user(session, tg_id)
        if not user:
            return Result(NOT_EXPECTED)
        await repo.update_user(session, tg_id, flow_state=FlowState.PAYOUT_METHOD, flow_data=None)
        await session.commit()
        return Result(STARTED)

    async def choose_profile_method(self, session: AsyncSession, *, tg_id: int, method: str) -> Result:
        user = await repo.get_user(session, tg_id)
        if not user or user.flow_state != FlowState.PAYOUT_METHOD:
            return Result(NOT_EXPECTED)
        if method not in PAYMENT_METHODS:
            return Result(INVALID)
        await repo.update_user(
            session,
            tg_id,
            flow_state=FlowState.PAYOUT_ACCOUNT_NUMBER,
            flow_data=json.dumps({"method": method}),
        )
        await session.commit()
        return Result(ACCEPTED, data={"method": method})

    async def submit_account_number(self, session: AsyncSession, *, tg_id: int, text: str | None) -> Result:
        user = await repo.get_user(session, tg_id)
        if not user or user.flow_state != FlowState.PAYOUT_ACCOUNT_NUMBER:
            return Result(NOT_EXPECTED)
        number = (text or "").strip()
        if not ACCOUNT_NUMBER_MIN_LEN <= len(number) <= ACCOUNT_NUMBER_MAX_LEN:
            return Result(INVALID)
        data = _flow_data(user)
        data["account_number"] = number
        await repo.update_user(
            session, tg_id, flow_state=FlowState.PAYOUT_ACCOUNT_NAME, flow_data=json.dumps(data)
        )
        await session.commit()
        return Result(ACCEPTED, data={"account_number": number})

    async def submit_account_name(self, session: AsyncSession, *, tg_id: int, text: str | None) -> Result:
        user = await repo.get_user(session, tg_id)
        if not user or user.flow_state != FlowState.PAYOUT_ACCOUNT_NAME:
            return Result(NOT_EXPECTED)
        name = (text or "").strip()
        if not ACCOUNT_NAME_MIN_LEN <= len(name) <= ACCOUNT_NAME_MAX_LEN:
            return Result(INVALID)

        data = _flow_data(user)
        method, number = data.get("method"), data.get("account_number")
        if method not in PAYMENT_METHODS or not number:
            # lost its earlier steps; start over
            await repo.update_user(session, tg_id, flow_state=FlowState.PAYOUT_METHOD, flow_data=None)
            await session.commit()
            return Result(NOT_EXPECTED)

        await repo.update_user(
            session,
            tg_id,
            payment_method_preference=method,
            account_number=number,
            account_name=name,
            flow_state=None,
            flow_data=None,
        )
        await session.commit()
        log.info("payout_profile_saved", extra={"tg_id": tg_id})
        return Result(SAVED, data={"method": method, "account_number": number, "account_name": name})

    async def cancel_profile_edit(self, session: AsyncSession, *, tg_id: int) -> Result:
        user = await repo.get_user(session, tg_id)
        if not user or user.flow_state not in FlowState.PAYOUT:
            return Result(NOT_EXPECTED)
        await repo.update_user(session, tg_id, flow_state=None, flow_data=None)
        await session.commit()
        return Result(CANCELLED)

    # ---- admin processing --------------------------------------------------------

    async def complete(self, session: AsyncSession, *, withdrawal_id: int, admin_id: int) -> Result:
        if int(admin_id) not in settings.all_admin_ids:
            return Result(FORBIDDEN)
        w = await repo.get_withdrawal(session, withdrawal_id)
        if w is None:
            return Result(NOT_FOUND)
        won = await repo.transition_withdrawal(
            session,
            withdrawal_id,
            from_status=WithdrawalStatus.PENDING,
            status=WithdrawalStatus.COMPLETED,
            processed_by=int(admin_id),
            processed_at=utcnow(),
        )
        if not won:
            return Result(ALREADY_PROCESSED, data={"withdrawal": w})
        await session.commit()
        log.info("withdrawal_completed", extra={"withdrawal_id": withdrawal_id, "admin_id": admin_id})
        return Result(COMPLETED, data={"withdrawal": w})

    async def reject(self, session: AsyncSession, *, withdrawal_id: int, admin_id: int) -> Result:
        """pending -> rejected; the snapshot amount goes back to `rewards` only."""
        if int(admin_id) not in settings.all_admin_ids:
            return Result(FORBIDDEN)
        w = await repo.get_withdrawal(session, withdrawal_id)
        if w is None:
            return Result(NOT_FOUND)
        won = await repo.transition_withdrawal(
            session,
            withdrawal_id,
            from_status=WithdrawalStatus.PENDING,
            status=WithdrawalStatus.REJECTED,
            processed_by=int(admin_id),
            processed_at=utcnow(),
        )
        if not won:
            return Result(ALREADY_PROCESSED, data={"withdrawal": w})
        await repo.increment_user(session, w.user_id, rewards=int(w.amount))
        await session.commit()
        log.info("withdrawal_rejected", extra={"withdrawal_id": withdrawal_id, "admin_id": admin_id})
        return Result(REJECTED, data={"withdrawal": w})


withdrawal_service = WithdrawalService(config_service)
