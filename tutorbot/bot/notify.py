"""Messages that follow a committed workflow step.

Everything here goes through Notifier, so a blocked chat or a deleted admin
account is logged and skipped.
"""

from __future__ import annotations

from tutorbot.bot.auth import admin_ids
from tutorbot.bot.keyboards import kb_payment_review, kb_withdrawal_review
from tutorbot.bot.notifier import Notifier
from tutorbot.bot.ui import h, method_label, money, payment_caption, withdrawal_text
from tutorbot.db.models import Payment, User, Withdrawal
from tutorbot.services.result import Result


async def announce_payment(notifier: Notifier, payment: Payment, user: User | None) -> None:
    """New proof: every admin gets the screenshot with approve/reject buttons."""
    caption = payment_caption(payment, user)
    kb = kb_payment_review(payment.id, payment.user_id)
    send = notifier.send_document if payment.file_type == "document" else notifier.send_photo
    for admin_id in admin_ids():
        await send(admin_id, payment.file_id, caption, reply_markup=kb)


async def payment_approved(notifier: Notifier, res: Result) -> None:
    payment: Payment = res.data["payment"]
    user: User | None = res.data["user"]

    if res.data["verified_now"]:
        await notifier.send_text(
            payment.user_id,
            "🎉 <b>Your payment has been approved!</b>\n\n"
            "You are now a verified student. Invite friends with <b>🎁 Invite & Earn</b> "
            f"and earn {money(res.data['reward'])} for each verified referral.",
        )

    credited = res.data["credited"]
    if credited:
        referrer_id, amount = credited
        name = user.display_name if user else payment.user_id
        await notifier.send_text(
            referrer_id,
            "🎁 <b>New verified referral!</b>\n\n"
            f"{h(name)} just got verified. You earned <b>{money(amount)}</b>.",
        )


async def payment_rejected(notifier: Notifier, payment: Payment) -> None:
    await notifier.send_text(
        payment.user_id,
        "❌ <b>Your payment was not approved.</b>\n\n"
        "Please check the amount and account, then send a clear screenshot of the receipt again. "
        "Contact support if you believe this is a mistake.",
    )


async def announce_withdrawal(notifier: Notifier, w: Withdrawal, user: User | None) -> None:
    text = "🆕 " + withdrawal_text(w, user)
    kb = kb_withdrawal_review(w.id, w.user_id)
    for admin_id in admin_ids():
        await notifier.send_text(admin_id, text, reply_markup=kb)


async def withdrawal_completed(notifier: Notifier, w: Withdrawal) -> None:
    await notifier.send_text(
        w.user_id,
        f"✅ <b>Withdrawal paid</b>\n\n{money(w.amount)} was sent to your "
        f"{method_label(w.method)} account <code>{h(w.account_number)}</code>.",
    )


async def withdrawal_rejected(notifier: Notifier, w: Withdrawal) -> None:
    await notifier.send_text(
        w.user_id,
        f"❌ <b>Withdrawal rejected</b>\n\n{money(w.amount)} has been returned to your balance. "
        "Check your payment info in <b>👤 My Profile</b> and try again, or contact support.",
    )
