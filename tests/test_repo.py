from __future__ import annotations

from datetime import timedelta

import pytest

from conftest import make_user, reload
from tutorbot import repo
from tutorbot.core.time import utcnow
from tutorbot.db.models import Payment


async def test_set_user_merges_fields(session):
    await make_user(session, 1, name="Abebe", phone="+2519")
    await repo.set_user(session, 1, phone="+2510")
    await session.commit()

    user = await reload(session, 1)
    assert (user.name, user.phone) == ("Abebe", "+2510")


async def test_update_user_never_creates(session):
    assert await repo.update_user(session, 5, name="x") is None
    assert await repo.get_user(session, 5) is None


async def test_unknown_or_immutable_fields_are_rejected(session):
    with pytest.raises(ValueError):
        await repo.set_user(session, 1, nickname="x")
    with pytest.raises(ValueError):
        await repo.set_user(session, 1, tg_id=2)
    with pytest.raises(ValueError):
        await repo.increment_user(session, 1, name=1)


async def test_ensure_user_refreshes_profile_snapshot(session):
    await repo.ensure_user(session, 1, first_name="Abe", username=None)
    user = await repo.ensure_user(session, 1, first_name="Abebe", username="abebe")
    await session.commit()
    assert (user.first_name, user.username) == ("Abebe", "abebe")


async def test_increment_is_additive(session):
    await make_user(session, 1, referral_count=1, rewards=30, total_rewards=30)

    assert await repo.increment_user(session, 1, referral_count=1, rewards=30, total_rewards=30)
    assert await repo.increment_user(session, 1, referral_count=1, rewards=30, total_rewards=30)
    await session.commit()

    user = await reload(session, 1)
    assert (user.referral_count, user.rewards, user.total_rewards) == (3, 90, 90)
    assert await repo.increment_user(session, 404, rewards=1) is False


async def test_zero_rewards_is_compare_and_swap(session):
    await make_user(session, 1, rewards=150, total_rewards=150)

    assert await repo.zero_rewards_if(session, 1, expected=120) is False
    assert (await reload(session, 1)).rewards == 150

    assert await repo.zero_rewards_if(session, 1, expected=150) is True
    user = await reload(session, 1)
    assert (user.rewards, user.total_rewards) == (0, 150)


async def test_link_referrer_is_write_once(session):
    await make_user(session, 1)
    await make_user(session, 2)
    await make_user(session, 3)

    assert await repo.link_referrer_if_unset(session, 3, 1) is True
    assert await repo.link_referrer_if_unset(session, 3, 2) is False
    assert (await reload(session, 3)).referrer_id == 1


async def test_payment_transition_is_conditional(session):
    p = await repo.create_payment(session, user_id=1, amount=500, method="telebirr", file_id="f")
    await session.commit()

    assert await repo.transition_payment(session, p.id, from_status="pending", status="approved", approved_by=900)
    assert not await repo.transition_payment(session, p.id, from_status="pending", status="rejected", rejected_by=901)
    await session.commit()

    stored = await repo.get_payment(session, p.id)
    assert (stored.status, stored.approved_by, stored.rejected_by) == ("approved", 900, None)
    assert await repo.count_by_status(session, Payment, "approved") == 1
    assert await repo.payments_by_status(session, "pending") == []


async def test_counts(session):
    await make_user(session, 1, is_verified=True, referral_count=2, created_at=utcnow() - timedelta(days=3))
    await make_user(session, 2, referral_count=1)
    await make_user(session, 3)

    assert await repo.count_users(session) == 3
    assert await repo.count_users(session, verified=True) == 1
    assert await repo.count_users(session, verified=False) == 2
    assert await repo.count_new_users_since(session, utcnow() - timedelta(days=1)) == 2
    assert await repo.sum_referrals(session) == 3


async def test_delete_user(session):
    await make_user(session, 1)
    assert await repo.delete_user(session, 1) is True
    assert await repo.delete_user(session, 1) is False
