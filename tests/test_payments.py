from __future__ import annotations

from types import SimpleNamespace

from conftest import ADMIN_ID, OTHER_ADMIN_ID, make_registered, make_user, reload
from tutorbot import repo
from tutorbot.core.states import PaymentStatus, RegStep
from tutorbot.services.payments import service as pay
from tutorbot.services.payments.service import pick_proof

STUDENT = 2001
REFERRER = 2000


async def _submitted(payments, session, tg_id=STUDENT, **user_fields):
    await make_registered(session, tg_id, **user_fields)
    await payments.request_payment(session, tg_id=tg_id)
    res = await payments.submit_proof(session, tg_id=tg_id, proof=("file-big", "photo"))
    assert res.code == pay.SUBMITTED
    return res.data["payment"]


def test_pick_proof_prefers_largest_photo():
    msg = SimpleNamespace(
        photo=[
            SimpleNamespace(file_id="small", width=90, height=160),
            SimpleNamespace(file_id="large", width=720, height=1280),
            SimpleNamespace(file_id="medium", width=320, height=568),
        ],
        document=None,
    )
    assert pick_proof(msg) == ("large", "photo")


def test_pick_proof_falls_back_to_document():
    msg = SimpleNamespace(photo=None, document=SimpleNamespace(file_id="doc-1"))
    assert pick_proof(msg) == ("doc-1", "document")
    assert pick_proof(SimpleNamespace(photo=[], document=None)) is None


async def test_request_payment_guards(payments, session):
    await make_user(session, STUDENT, registration_step=RegStep.AWAITING_STREAM)
    assert (await payments.request_payment(session, tg_id=STUDENT)).code == pay.NOT_REGISTERED
    assert (await payments.request_payment(session, tg_id=4242)).code == pay.NOT_REGISTERED

    await make_registered(session, STUDENT + 1, is_verified=True, payment_status=PaymentStatus.APPROVED)
    assert (await payments.request_payment(session, tg_id=STUDENT + 1)).code == pay.ALREADY_VERIFIED

    await make_registered(session, STUDENT + 2, payment_status=PaymentStatus.PENDING)
    assert (await payments.request_payment(session, tg_id=STUDENT + 2)).code == pay.PENDING


async def test_request_payment_returns_fee_and_account(payments, session):
    await make_registered(session, STUDENT, payment_method="cbebirr")
    res = await payments.request_payment(session, tg_id=STUDENT)
    assert res.code == pay.AWAITING_SCREENSHOT
    assert res.data["fee"] == 500
    assert res.data["method"] == "cbebirr"
    assert res.data["account"] == pay.payment_account("cbebirr")
    assert (await reload(session, STUDENT)).registration_step == RegStep.AWAITING_SCREENSHOT


async def test_proof_only_accepted_while_awaiting_screenshot(payments, session):
    await make_registered(session, STUDENT)
    res = await payments.submit_proof(session, tg_id=STUDENT, proof=("f", "photo"))
    assert res.code == pay.NOT_EXPECTED
    assert await repo.payments_by_status(session, PaymentStatus.PENDING) == []


async def test_submit_proof_creates_pending_payment(payments, session):
    payment = await _submitted(payments, session)

    assert payment.status == PaymentStatus.PENDING
    assert payment.amount == 500
    assert payment.method == "telebirr"
    assert payment.file_id == "file-big"
    assert payment.file_type == "photo"

    user = await reload(session, STUDENT)
    assert user.payment_status == PaymentStatus.PENDING
    assert user.registration_step == RegStep.COMPLETED


async def test_second_proof_of_an_album_is_not_recorded(payments, session):
    await _submitted(payments, session)

    res = await payments.submit_proof(session, tg_id=STUDENT, proof=("file-2", "photo"))

    assert res.code == pay.NOT_EXPECTED
    assert len(await repo.payments_by_status(session, PaymentStatus.PENDING)) == 1


async def test_proof_step_is_claimed_once(session):
    # two handlers that both read awaiting_screenshot before either committed
    await make_registered(session, STUDENT, registration_step=RegStep.AWAITING_SCREENSHOT)

    assert await repo.mark_proof_submitted(session, STUDENT) is True
    assert await repo.mark_proof_submitted(session, STUDENT) is False
    await session.commit()

    user = await reload(session, STUDENT)
    assert (user.registration_step, user.payment_status) == (RegStep.COMPLETED, PaymentStatus.PENDING)


async def test_missing_file_reprompts(payments, session):
    await make_registered(session, STUDENT)
    await payments.request_payment(session, tg_id=STUDENT)
    assert (await payments.submit_proof(session, tg_id=STUDENT, proof=None)).code == pay.NO_FILE
    assert (await reload(session, STUDENT)).registration_step == RegStep.AWAITING_SCREENSHOT


async def test_approve_verifies_and_credits_referrer_once(payments, session):
    await make_user(session, REFERRER, first_name="Almaz", is_verified=True)
    payment = await _submitted(payments, session, referrer_id=REFERRER)

    res = await payments.approve(session, payment_id=payment.id, admin_id=ADMIN_ID)
    assert res.code == pay.APPROVED
    assert res.data["credited"] == (REFERRER, 30)
    assert res.data["verified_now"] is True

    user = await reload(session, STUDENT)
    assert user.is_verified is True
    assert user.payment_status == PaymentStatus.APPROVED
    assert user.joined_at is not None

    stored = await repo.get_payment(session, payment.id)
    assert stored.status == PaymentStatus.APPROVED
    assert stored.approved_by == ADMIN_ID
    assert stored.processed_at is not None

    referrer = await reload(session, REFERRER)
    assert (referrer.referral_count, referrer.rewards, referrer.total_rewards) == (1, 30, 30)

    # the same callback again changes nothing
    res = await payments.approve(session, payment_id=payment.id, admin_id=OTHER_ADMIN_ID)
    assert res.code == pay.ALREADY_PROCESSED
    referrer = await reload(session, REFERRER)
    assert (referrer.referral_count, referrer.rewards, referrer.total_rewards) == (1, 30, 30)
    assert (await repo.get_payment(session, payment.id)).approved_by == ADMIN_ID


async def test_two_pending_payments_of_one_student_credit_once(payments, session):
    await make_user(session, REFERRER, is_verified=True)
    first = await _submitted(payments, session, referrer_id=REFERRER)
    # the leftover of a racing album: a second pending row for the same student
    second = await repo.create_payment(
        session, user_id=STUDENT, amount=500, method="telebirr", file_id="file-2"
    )
    await session.commit()

    res1 = await payments.approve(session, payment_id=first.id, admin_id=ADMIN_ID)
    res2 = await payments.approve(session, payment_id=second.id, admin_id=OTHER_ADMIN_ID)

    assert (res1.code, res2.code) == (pay.APPROVED, pay.APPROVED)
    assert res1.data["credited"] == (REFERRER, 30)
    assert res2.data["credited"] is None
    assert res2.data["verified_now"] is False

    referrer = await reload(session, REFERRER)
    assert (referrer.referral_count, referrer.rewards, referrer.total_rewards) == (1, 30, 30)
    assert (await reload(session, STUDENT)).is_verified is True


async def test_reward_uses_configured_amount(payments, config, session):
    await config.set(session, "referral_reward", "45")
    await make_user(session, REFERRER, rewards=10, total_rewards=100)
    payment = await _submitted(payments, session, referrer_id=REFERRER)

    await payments.approve(session, payment_id=payment.id, admin_id=ADMIN_ID)

    referrer = await reload(session, REFERRER)
    assert (referrer.referral_count, referrer.rewards, referrer.total_rewards) == (1, 55, 145)


async def test_approve_without_referrer_credits_nobody(payments, session):
    payment = await _submitted(payments, session)
    res = await payments.approve(session, payment_id=payment.id, admin_id=ADMIN_ID)
    assert res.code == pay.APPROVED
    assert res.data["credited"] is None


async def test_approve_with_deleted_referrer_still_verifies(payments, session):
    await make_user(session, REFERRER)
    payment = await _submitted(payments, session, referrer_id=REFERRER)
    await repo.delete_user(session, REFERRER)
    await session.commit()

    res = await payments.approve(session, payment_id=payment.id, admin_id=ADMIN_ID)
    assert res.code == pay.APPROVED
    assert res.data["credited"] is None
    assert (await reload(session, STUDENT)).is_verified is True


async def test_non_admin_cannot_decide(payments, session):
    payment = await _submitted(payments, session)

    assert (await payments.approve(session, payment_id=payment.id, admin_id=STUDENT)).code == pay.FORBIDDEN
    assert (await payments.reject(session, payment_id=payment.id, admin_id=STUDENT)).code == pay.FORBIDDEN
    assert (await repo.get_payment(session, payment.id)).status == PaymentStatus.PENDING


async def test_unknown_payment(payments, session):
    assert (await payments.approve(session, payment_id=999, admin_id=ADMIN_ID)).code == pay.NOT_FOUND


async def test_reject_lets_the_student_resubmit(payments, session):
    await make_user(session, REFERRER)
    payment = await _submitted(payments, session, referrer_id=REFERRER)

    res = await payments.reject(session, payment_id=payment.id, admin_id=ADMIN_ID)
    assert res.code == pay.REJECTED

    stored = await repo.get_payment(session, payment.id)
    assert stored.status == PaymentStatus.REJECTED
    assert stored.rejected_by == ADMIN_ID

    user = await reload(session, STUDENT)
    assert user.payment_status == PaymentStatus.REJECTED
    assert user.registration_step == RegStep.AWAITING_SCREENSHOT
    assert user.is_verified is False
    assert (await reload(session, REFERRER)).referral_count == 0

    # rejected is terminal
    res = await payments.approve(session, payment_id=payment.id, admin_id=ADMIN_ID)
    assert res.code == pay.ALREADY_PROCESSED

    res = await payments.submit_proof(session, tg_id=STUDENT, proof=("file-2", "photo"))
    assert res.code == pay.SUBMITTED
    assert res.data["payment"].id != payment.id
