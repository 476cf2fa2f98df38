from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Sequence

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from tutorbot.core.states import PaymentStatus, RegStep
from tutorbot.core.time import utcnow
from tutorbot.db.models import AppSetting, Payment, TrialMaterial, User, Withdrawal

log = logging.getLogger(__name__)

_USER_COLUMNS = frozenset(c.key for c in User.__table__.columns)
_COUNTER_COLUMNS = frozenset({"referral_count", "rewards", "total_rewards"})


def _user_column(field: str):
    if field not in _USER_COLUMNS:
        raise ValueError(f"unknown user field: {field}")
    return getattr(User, field)


def _check_user_fields(fields: dict[str, Any]) -> None:
    unknown = set(fields) - _USER_COLUMNS
    if unknown:
        raise ValueError(f"unknown user fields: {sorted(unknown)}")
    if "tg_id" in fields:
        raise ValueError("tg_id is immutable")


# ---- Users -------------------------------------------------------------------

async def get_user(session: AsyncSession, tg_id: int) -> User | None:
    return await session.get(User, int(tg_id))


async def set_user(session: AsyncSession, tg_id: int, **fields: Any) -> User:
    """Merge-write: creates the row if missing, otherwise overlays only `fields`.

    The unit of work only emits the changed columns, so concurrent writes of
    unrelated fields on the same user do not overwrite each other.
    """
    _check_user_fields(fields)
    user = await session.get(User, int(tg_id))
    if user is None:
        user = User(tg_id=int(tg_id), **fields)
        session.add(user)
    else:
        for key, value in fields.items():
            setattr(user, key, value)
    await session.flush()
    return user


async def update_user(session: AsyncSession, tg_id: int, **fields: Any) -> User | None:
    """Like set_user, but never creates a row."""
    _check_user_fields(fields)
    user = await session.get(User, int(tg_id))
    if user is None:
        return None
    for key, value in fields.items():
        setattr(user, key, value)
    await session.flush()
    return user


async def ensure_user(
    session: AsyncSession,
    tg_id: int,
    *,
    first_name: str | None = None,
    username: str | None = None,
) -> User:
    """Ensures the User row exists and keeps the Telegram profile snapshot fresh."""
    user = await session.get(User, int(tg_id))
    if not user:
        user = User(tg_id=int(tg_id), first_name=first_name, username=username)
        session.add(user)
        await session.flush()
        return user

    changed = False
    if first_name is not None and user.first_name != first_name:
        user.first_name = first_name
        changed = True
    if username is not None and user.username != username:
        user.username = username
        changed = True
    if changed:
        await session.flush()
    return user


async def delete_user(session: AsyncSession, tg_id: int) -> bool:
    res = await session.execute(delete(User).where(User.tg_id == int(tg_id)))
    return bool(res.rowcount)


async def query_users_by(session: AsyncSession, field: str, value: Any) -> list[User]:
    col = _user_column(field)
    q = select(User).where(col.is_(None) if value is None else col == value).order_by(
        User.created_at.asc(), User.tg_id.asc()
    )
    return list((await session.scalars(q)).all())


async def top_users_by(session: AsyncSession, field: str, n: int) -> list[User]:
    """Top-N by `field` descending; ties keep arrival order."""
    col = _user_column(field)
    q = select(User).order_by(col.desc(), User.created_at.asc(), User.tg_id.asc()).limit(int(n))
    return list((await session.scalars(q)).all())


async def all_user_ids(session: AsyncSession, *, include_blocked: bool = False) -> list[int]:
    q = select(User.tg_id).order_by(User.created_at.asc(), User.tg_id.asc())
    if not include_blocked:
        q = q.where(User.blocked.is_(False))
    return [int(x) for x in (await session.scalars(q)).all()]


async def user_ids_by(session: AsyncSession, field: str, value: Any) -> list[int]:
    col = _user_column(field)
    q = (
        select(User.tg_id)
        .where(col == value, User.blocked.is_(False))
        .order_by(User.created_at.asc(), User.tg_id.asc())
    )
    return [int(x) for x in (await session.scalars(q)).all()]


async def increment_user(session: AsyncSession, tg_id: int, **deltas: int) -> bool:
    """Atomic `SET col = col + delta` for counter columns. False if the user is missing."""
    if not deltas:
        return False
    bad = set(deltas) - _COUNTER_COLUMNS
    if bad:
        raise ValueError(f"not a counter column: {sorted(bad)}")
    values = {getattr(User, k): getattr(User, k) + int(v) for k, v in deltas.items()}
    res = await session.execute(update(User).where(User.tg_id == int(tg_id)).values(values))
    return res.rowcount == 1


async def zero_rewards_if(session: AsyncSession, tg_id: int, *, expected: int) -> bool:
    """Compare-and-swap: rewards := 0 only while it still equals `expected`."""
    res = await session.execute(
        update(User)
        .where(User.tg_id == int(tg_id), User.rewards == int(expected))
        .values(rewards=0)
    )
    return res.rowcount == 1


async def link_referrer_if_unset(session: AsyncSession, tg_id: int, referrer_id: int) -> bool:
    """Write-once referrer link. False if the user already has a referrer."""
    if int(tg_id) == int(referrer_id):
        return False
    res = await session.execute(
        update(User)
        .where(User.tg_id == int(tg_id), User.referrer_id.is_(None))
        .values(referrer_id=int(referrer_id))
    )
    return res.rowcount == 1


async def mark_proof_submitted(session: AsyncSession, tg_id: int) -> bool:
    """awaiting_screenshot -> completed with payment_status pending.

    Conditional on the user still waiting for a proof, so of several proofs
    arriving together (a photo album) only one moves the user.
    """
    res = await session.execute(
        update(User)
        .where(
            User.tg_id == int(tg_id),
            User.registration_step == RegStep.AWAITING_SCREENSHOT,
            User.payment_status != PaymentStatus.PENDING,
            User.is_verified.is_(False),
        )
        .values(registration_step=RegStep.COMPLETED, payment_status=PaymentStatus.PENDING)
    )
    return res.rowcount == 1


async def verify_user_once(session: AsyncSession, tg_id: int, **fields: Any) -> bool:
    """is_verified False -> True (plus `fields`). Only the first caller gets True."""
    _check_user_fields(fields)
    res = await session.execute(
        update(User)
        .where(User.tg_id == int(tg_id), User.is_verified.is_(False))
        .values(is_verified=True, **fields)
    )
    return res.rowcount == 1


async def count_users(session: AsyncSession, *, verified: bool | None = None) -> int:
    q = select(func.count(User.tg_id))
    if verified is not None:
        q = q.where(User.is_verified.is_(verified))
    return int(await session.scalar(q) or 0)


async def count_new_users_since(session: AsyncSession, since: datetime) -> int:
    q = select(func.count(User.tg_id)).where(User.created_at >= since)
    return int(await session.scalar(q) or 0)


async def sum_referrals(session: AsyncSession) -> int:
    return int(await session.scalar(select(func.coalesce(func.sum(User.referral_count), 0))) or 0)


# ---- Payments / withdrawals --------------------------------------------------

async def _transition(session: AsyncSession, model, row_id: int, *, from_status: str, fields: dict[str, Any]) -> bool:
    res = await session.execute(
        update(model).where(model.id == int(row_id), model.status == from_status).values(**fields)
    )
    return res.rowcount == 1


async def create_payment(
    session: AsyncSession,
    *,
    user_id: int,
    amount: int,
    method: str | None,
    file_id: str,
    file_type: str = "photo",
) -> Payment:
    payment = Payment(
        user_id=int(user_id),
        amount=int(amount),
        method=method,
        file_id=file_id,
        file_type=file_type,
        status="pending",
        created_at=utcnow(),
    )
    session.add(payment)
    await session.flush()  # get id
    return payment


async def get_payment(session: AsyncSession, payment_id: int) -> Payment | None:
    return await session.get(Payment, int(payment_id))


async def payments_by_status(session: AsyncSession, status: str, *, limit: int | None = None) -> Sequence[Payment]:
    q = select(Payment).where(Payment.status == status).order_by(Payment.id.asc())
    if limit:
        q = q.limit(limit)
    return (await session.scalars(q)).all()


async def update_payment(session: AsyncSession, payment_id: int, **fields: Any) -> bool:
    res = await session.execute(update(Payment).where(Payment.id == int(payment_id)).values(**fields))
    return res.rowcount == 1


async def transition_payment(session: AsyncSession, payment_id: int, *, from_status: str, **fields: Any) -> bool:
    """Conditional status change; False when the payment is no longer in `from_status`."""
    return await _transition(session, Payment, payment_id, from_status=from_status, fields=fields)


async def create_withdrawal(
    session: AsyncSession,
    *,
    user_id: int,
    amount: int,
    method: str,
    account_number: str,
    account_name: str,
) -> Withdrawal:
    w = Withdrawal(
        user_id=int(user_id),
        amount=int(amount),
        method=method,
        account_number=account_number,
        account_name=account_name,
        status="pending",
        created_at=utcnow(),
    )
    session.add(w)
    await session.flush()
    return w


async def get_withdrawal(session: AsyncSession, withdrawal_id: int) -> Withdrawal | None:
    return await session.get(Withdrawal, int(withdrawal_id))


async def withdrawals_by_status(session: AsyncSession, status: str, *, limit: int | None = None) -> Sequence[Withdrawal]:
    q = select(Withdrawal).where(Withdrawal.status == status).order_by(Withdrawal.id.asc())
    if limit:
        q = q.limit(limit)
    return (await session.scalars(q)).all()


async def update_withdrawal(session: AsyncSession, withdrawal_id: int, **fields: Any) -> bool:
    res = await session.execute(update(Withdrawal).where(Withdrawal.id == int(withdrawal_id)).values(**fields))
    return res.rowcount == 1


async def transition_withdrawal(session: AsyncSession, withdrawal_id: int, *, from_status: str, **fields: Any) -> bool:
    return await _transition(session, Withdrawal, withdrawal_id, from_status=from_status, fields=fields)


async def count_by_status(session: AsyncSession, model, status: str) -> int:
    return int(await session.scalar(select(func.count(model.id)).where(model.status == status)) or 0)


# ---- Trial materials ---------------------------------------------------------

async def add_trial_material(
    session: AsyncSession,
    *,
    title: str,
    kind: str,
    file_id: str | None = None,
    content: str | None = None,
    added_by: int | None = None,
) -> TrialMaterial:
    m = TrialMaterial(
        title=title,
        kind=kind,
        file_id=file_id,
        content=content,
        added_by=added_by,
        created_at=utcnow(),
    )
    session.add(m)
    await session.flush()
    return m


async def list_trial_materials(session: AsyncSession) -> Sequence[TrialMaterial]:
    q = select(TrialMaterial).order_by(TrialMaterial.created_at.asc(), TrialMaterial.id.asc())
    return (await session.scalars(q)).all()


async def get_trial_material(session: AsyncSession, material_id: int) -> TrialMaterial | None:
    return await session.get(TrialMaterial, int(material_id))


async def delete_trial_material(session: AsyncSession, material_id: int) -> bool:
    res = await session.execute(delete(TrialMaterial).where(TrialMaterial.id == int(material_id)))
    return bool(res.rowcount)


# ---- Runtime settings (admin-tunable) ----------------------------------------

async def get_all_settings(session: AsyncSession) -> dict[str, str | None]:
    rows = (await session.scalars(select(AppSetting))).all()
    return {row.key: row.value for row in rows}


async def put_setting(session: AsyncSession, key: str, value: str | None) -> None:
    obj = await session.get(AppSetting, key)
    if obj is None:
        obj = AppSetting(key=key, value=value)
        session.add(obj)
    else:
        obj.value = value
    obj.touch()
    await session.flush()
