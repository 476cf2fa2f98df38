from __future__ import annotations

from conftest import ADMIN_ID, OTHER_ADMIN_ID, FakeNotifier, make_registered, make_user
from tutorbot import repo
from tutorbot.bot import notify
from tutorbot.services.payments import service as pay

STUDENT = 5001
REFERRER = 5000


def _buttons(markup) -> list[str]:
    return [b.callback_data for row in markup.inline_keyboard for b in row]


async def _submitted(payments, session, proof=("file-big", "photo"), **user_fields):
    await make_registered(session, STUDENT, **user_fields)
    await payments.request_payment(session, tg_id=STUDENT)
    res = await payments.submit_proof(session, tg_id=STUDENT, proof=proof)
    assert res.code == pay.SUBMITTED
    return res.data["payment"], res.data["user"]


async def test_new_proof_goes_to_every_admin(payments, notifier, session):
    payment, user = await _submitted(payments, session)

    await notify.announce_payment(notifier, payment, user)

    for admin in (ADMIN_ID, OTHER_ADMIN_ID):
        (call,) = notifier.sent_to(admin)
        op, _, (file_id, caption), kwargs = call
        assert op == "send_photo"
        assert file_id == "file-big"
        assert f"Payment #{payment.id}" in caption
        buttons = _buttons(kwargs["reply_markup"])
        assert f"pay:approve:{payment.id}" in buttons
        assert f"pay:reject:{payment.id}" in buttons
        assert f"admin:user:{STUDENT}" in buttons


async def test_document_proof_is_forwarded_as_document(payments, notifier, session):
    payment, user = await _submitted(payments, session, proof=("doc-1", "document"))
    await notify.announce_payment(notifier, payment, user)
    assert {c[0] for c in notifier.calls} == {"send_document"}


async def test_approval_messages_student_and_referrer(payments, notifier, session):
    await make_user(session, REFERRER, is_verified=True)
    payment, _ = await _submitted(payments, session, referrer_id=REFERRER)
    res = await payments.approve(session, payment_id=payment.id, admin_id=ADMIN_ID)

    await notify.payment_approved(notifier, res)

    (student_text,) = notifier.texts_to(STUDENT)
    assert "approved" in student_text
    (referrer_text,) = notifier.texts_to(REFERRER)
    assert "30 ETB" in referrer_text


async def test_unreachable_referrer_is_skipped(payments, session):
    await make_user(session, REFERRER, is_verified=True)
    payment, _ = await _submitted(payments, session, referrer_id=REFERRER)
    res = await payments.approve(session, payment_id=payment.id, admin_id=ADMIN_ID)
    notifier = FakeNotifier(unreachable={REFERRER})

    await notify.payment_approved(notifier, res)

    assert len(notifier.texts_to(STUDENT)) == 1
    assert [c[0] for c in notifier.sent_to(REFERRER)] == ["send_text"]


async def test_already_verified_student_is_not_congratulated_twice(payments, notifier, session):
    payment, _ = await _submitted(payments, session)
    await payments.approve(session, payment_id=payment.id, admin_id=ADMIN_ID)

    extra = await repo.create_payment(session, user_id=STUDENT, amount=500, method="telebirr", file_id="x")
    await session.commit()
    res = await payments.approve(session, payment_id=extra.id, admin_id=ADMIN_ID)

    await notify.payment_approved(notifier, res)
    assert notifier.calls == []


async def test_withdrawal_announcement_and_outcomes(withdrawals, notifier, session):
    await make_user(
        session,
        STUDENT,
        is_verified=True,
        rewards=150,
        total_rewards=150,
        payment_method_preference="telebirr",
        account_number="0911223344",
        account_name="Abebe Kebede",
    )
    res = await withdrawals.request(session, tg_id=STUDENT)
    w = res.data["withdrawal"]

    await notify.announce_withdrawal(notifier, w, res.data["user"])
    for admin in (ADMIN_ID, OTHER_ADMIN_ID):
        (call,) = notifier.sent_to(admin)
        assert f"wd:complete:{w.id}" in _buttons(call[3]["reply_markup"])
        assert f"wd:reject:{w.id}" in _buttons(call[3]["reply_markup"])

    await notify.withdrawal_completed(notifier, w)
    await notify.withdrawal_rejected(notifier, w)
    paid, returned = notifier.texts_to(STUDENT)
    assert "0911223344" in paid
    assert "returned" in returned
