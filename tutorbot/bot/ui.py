from __future__ import annotations

from html import escape

from aiogram.types import ReplyKeyboardMarkup

from tutorbot.bot.keyboards import kb_main
from tutorbot.core.config import settings
from tutorbot.core.states import METHOD_LABELS, STREAM_LABELS
from tutorbot.core.time import fmt_dt
from tutorbot.db.models import Payment, User, Withdrawal
from tutorbot.services.config import check_feature, config_service

GENERIC_ERROR = "😔 Something went wrong. Please try again later or contact support."


def h(value: object | None) -> str:
    """HTML-escaped text for parse_mode=HTML, with a dash for empty values."""
    if value is None or value == "":
        return "—"
    return escape(str(value))


def money(amount: int | None) -> str:
    return f"{int(amount or 0)} {settings.currency}"


def stream_label(stream: str | None) -> str:
    return STREAM_LABELS.get(stream or "", h(stream))


def method_label(method: str | None) -> str:
    return METHOD_LABELS.get(method or "", h(method))


def payment_instructions(*, fee: int, method: str | None, account: str) -> str:
    return (
        "💰 <b>Registration fee payment</b>\n\n"
        f"Amount: <b>{money(fee)}</b>\n"
        f"Method: <b>{method_label(method)}</b>\n"
        f"Account: <code>{h(account)}</code>\n\n"
        "After paying, send a <b>screenshot</b> of the receipt here."
    )


def user_mention(user: User) -> str:
    tail = f" (@{h(user.username)})" if user.username else ""
    return f"{h(user.display_name)}{tail}"


def user_card(user: User) -> str:
    """Full student record, shown to admins."""
    verified = "✅ Verified" if user.is_verified else "⏳ Not verified"
    lines = [
        f"👤 <b>{user_mention(user)}</b>",
        f"🆔 <code>{user.tg_id}</code>",
        f"📱 Phone: {h(user.phone)}",
        f"🎓 Stream: {stream_label(user.student_type)}",
        f"💳 Method: {method_label(user.payment_method)}",
        f"📌 Step: <code>{h(user.registration_step)}</code>",
        f"🧾 Payment: <code>{h(user.payment_status)}</code>",
        verified,
        "",
        f"👥 Referrals: <b>{user.referral_count}</b>",
        f"💰 Balance: <b>{money(user.rewards)}</b> (lifetime {money(user.total_rewards)})",
        f"🔗 Referred by: {h(user.referrer_id)}",
        f"🏦 Payout: {method_label(user.payment_method_preference)} {h(user.account_number)} {h(user.account_name)}",
        f"📅 Joined: {fmt_dt(user.joined_at)}",
    ]
    if user.blocked:
        lines.append("⛔ <b>Blocked</b>")
    return "\n".join(lines)


def payment_caption(payment: Payment, user: User | None) -> str:
    who = user_mention(user) if user else h(payment.user_id)
    lines = [
        f"🧾 <b>Payment #{payment.id}</b>",
        f"👤 {who}",
        f"🆔 <code>{payment.user_id}</code>",
    ]
    if user:
        lines.append(f"📱 {h(user.phone)}")
        lines.append(f"🎓 {stream_label(user.student_type)}")
    lines += [
        f"💳 {method_label(payment.method)}",
        f"💰 {money(payment.amount)}",
        f"🕒 {fmt_dt(payment.created_at)}",
    ]
    return "\n".join(lines)


def withdrawal_text(w: Withdrawal, user: User | None) -> str:
    who = user_mention(user) if user else h(w.user_id)
    return (
        f"💸 <b>Withdrawal #{w.id}</b>\n"
        f"👤 {who}\n"
        f"🆔 <code>{w.user_id}</code>\n"
        f"💰 {money(w.amount)}\n"
        f"🏦 {method_label(w.method)}: <code>{h(w.account_number)}</code>\n"
        f"👤 {h(w.account_name)}\n"
        f"🕒 {fmt_dt(w.created_at)}"
    )


def main_menu(user: User | None) -> ReplyKeyboardMarkup:
    """Reply keyboard for the user's current standing."""
    return kb_main(
        is_verified=bool(user and user.is_verified),
        registration_open=check_feature(config_service, "registration").allowed,
        referral_open=check_feature(config_service, "referral").allowed,
        trial_open=check_feature(config_service, "trial").allowed,
    )
