from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from conftest import ADMIN_ID, make_registered, make_user, reload
from tutorbot import repo
from tutorbot.services.referrals import service as ref
from tutorbot.services.referrals.service import parse_start_payload

A = 3001
B = 3002


def test_referral_link_is_derived_from_bot_and_user(referrals):
    assert referrals.referral_link(A) == f"https://t.me/tutorial_test_bot?start=ref_{A}"
    assert referrals.referral_link(A, bot_username="@other_bot") == f"https://t.me/other_bot?start=ref_{A}"


@pytest.mark.parametrize(
    "payload, expected",
    [
        ("ref_3001", 3001),
        (" ref_42 ", 42),
        ("ref_", None),
        ("ref_abc", None),
        ("promo_1", None),
        ("", None),
        (None, None),
    ],
)
def test_parse_start_payload(payload, expected):
    assert parse_start_payload(payload) == expected


async def test_attach_links_existing_referrer(referrals, session):
    await make_user(session, A)
    await make_user(session, B)

    res = await referrals.attach_referrer(session, tg_id=B, payload=f"ref_{A}")
    await session.commit()

    assert res.code == ref.LINKED
    assert res.data["referrer_id"] == A
    assert (await reload(session, B)).referrer_id == A
    # linking alone earns nothing
    referrer = await reload(session, A)
    assert (referrer.referral_count, referrer.rewards, referrer.total_rewards) == (0, 0, 0)


async def test_self_referral_is_ignored(referrals, session):
    await make_user(session, A)
    res = await referrals.attach_referrer(session, tg_id=A, payload=f"ref_{A}")
    assert res.code == ref.SELF
    assert (await reload(session, A)).referrer_id is None


async def test_referrer_is_write_once(referrals, session):
    await make_user(session, A)
    await make_user(session, A + 10)
    await make_user(session, B)

    await referrals.attach_referrer(session, tg_id=B, payload=f"ref_{A}")
    res = await referrals.attach_referrer(session, tg_id=B, payload=f"ref_{A + 10}")

    assert res.code == ref.ALREADY_LINKED
    assert (await reload(session, B)).referrer_id == A


async def test_unknown_referrer_is_ignored(referrals, session):
    await make_user(session, B)
    res = await referrals.attach_referrer(session, tg_id=B, payload="ref_999999")
    assert res.code == ref.UNKNOWN_REFERRER
    assert (await reload(session, B)).referrer_id is None


async def test_plain_start_has_no_payload(referrals, session):
    await make_user(session, B)
    assert (await referrals.attach_referrer(session, tg_id=B, payload=None)).code == ref.NO_PAYLOAD


async def test_attribution_disabled_with_referrals(referrals, config, session):
    await make_user(session, A)
    await make_user(session, B)
    await config.set(session, "referral_enabled", "false")

    res = await referrals.attach_referrer(session, tg_id=B, payload=f"ref_{A}")

    assert res.code == ref.DISABLED
    assert (await reload(session, B)).referrer_id is None


async def test_referred_user_approval_rewards_referrer(referrals, payments, session):
    await make_user(session, A, is_verified=True)
    await make_registered(session, B)
    await referrals.attach_referrer(session, tg_id=B, payload=f"ref_{A}")
    await session.commit()

    await payments.request_payment(session, tg_id=B)
    res = await payments.submit_proof(session, tg_id=B, proof=("proof", "photo"))
    await payments.approve(session, payment_id=res.data["payment"].id, admin_id=ADMIN_ID)

    referrer = await reload(session, A)
    assert referrer.referral_count == 1
    assert referrer.rewards == 30
    assert referrer.total_rewards == 30
    assert (await reload(session, B)).referrer_id == A


async def test_leaderboard_orders_by_count_then_arrival(referrals, session):
    t0 = datetime(2024, 1, 1, tzinfo=timezone.utc)
    await make_user(session, 1, referral_count=2, created_at=t0 + timedelta(minutes=3))
    await make_user(session, 2, referral_count=5, created_at=t0 + timedelta(minutes=2))
    await make_user(session, 3, referral_count=2, created_at=t0 + timedelta(minutes=1))
    await make_user(session, 4, referral_count=0, created_at=t0)

    top = await referrals.top_referrers(session)

    assert [u.tg_id for u in top] == [2, 3, 1]


async def test_leaderboard_is_capped(referrals, session):
    for i in range(1, 15):
        await make_user(session, i, referral_count=i)
    top = await referrals.top_referrers(session)
    assert len(top) == ref.LEADERBOARD_SIZE
    assert top[0].tg_id == 14


async def test_referrals_of(referrals, session):
    await make_user(session, A)
    await make_user(session, B, referrer_id=A)
    await make_user(session, B + 1, referrer_id=A)
    await make_user(session, B + 2)

    assert sorted(u.tg_id for u in await referrals.referrals_of(session, A)) == [B, B + 1]
    assert await referrals.referrals_of(session, B) == []


async def test_self_referral_is_refused_by_repo(session):
    await make_user(session, A)
    assert await repo.link_referrer_if_unset(session, A, A) is False
