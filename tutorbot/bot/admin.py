from __future__ import annotations

import logging

from aiogram import Router
from aiogram.filters import Command, CommandObject
from aiogram.types import CallbackQuery, Message

from tutorbot import repo
from tutorbot.bot import notify
from tutorbot.bot.auth import is_admin
from tutorbot.bot.keyboards import (
    kb_admin_menu,
    kb_admin_user,
    kb_confirm_delete,
    kb_payment_review,
    kb_withdrawal_review,
)
from tutorbot.bot.notifier import Notifier
from tutorbot.bot.ui import payment_caption, user_card, withdrawal_text
from tutorbot.core.states import PaymentStatus, WithdrawalStatus
from tutorbot.core.time import fmt_dt, utcnow
from tutorbot.db.session import session_scope
from tutorbot.services.admin.stats import collect_stats
from tutorbot.services.payments import service as pay
from tutorbot.services.payments.service import payment_service
from tutorbot.services.withdrawals import service as wd
from tutorbot.services.withdrawals.service import withdrawal_service

router = Router()
log = logging.getLogger(__name__)

LIST_LIMIT = 20


def _arg_id(raw: str | None) -> int | None:
    raw = (raw or "").strip()
    return int(raw) if raw.isdigit() else None


def _tail_id(data: str) -> int | None:
    return _arg_id(data.rsplit(":", 1)[-1])


# ==========================
# PANEL / STATS
# ==========================

@router.message(Command("admin"))
async def cmd_admin(message: Message) -> None:
    if not is_admin(message.from_user.id):
        return
    await message.answer("🛠 <b>Admin panel</b>", reply_markup=kb_admin_menu(), parse_mode="HTML")


@router.callback_query(lambda c: c.data == "admin:menu")
async def on_admin_menu(cb: CallbackQuery) -> None:
    if not is_admin(cb.from_user.id):
        await cb.answer()
        return
    await cb.message.answer("🛠 <b>Admin panel</b>", reply_markup=kb_admin_menu(), parse_mode="HTML")
    await cb.answer()


async def _send_stats(chat: Message) -> None:
    async with session_scope() as session:
        stats = await collect_stats(session)
    await chat.answer(stats.render(), parse_mode="HTML")


@router.message(Command("stats"))
async def cmd_stats(message: Message) -> None:
    if not is_admin(message.from_user.id):
        return
    await _send_stats(message)


@router.callback_query(lambda c: c.data == "admin:stats")
async def on_stats(cb: CallbackQuery) -> None:
    if not is_admin(cb.from_user.id):
        await cb.answer()
        return
    await cb.answer()
    await _send_stats(cb.message)


# ==========================
# PAYMENTS
# ==========================

async def _send_pending_payments(chat: Message, notifier: Notifier) -> None:
    async with session_scope() as session:
        payments = await repo.payments_by_status(session, PaymentStatus.PENDING, limit=LIST_LIMIT)
        users = {p.user_id: await repo.get_user(session, p.user_id) for p in payments}

    if not payments:
        await chat.answer("✅ No pending payments.")
        return

    await chat.answer(f"🧾 <b>Pending payments: {len(payments)}</b>", parse_mode="HTML")
    for p in payments:
        caption = payment_caption(p, users.get(p.user_id))
        kb = kb_payment_review(p.id, p.user_id)
        if p.file_type == "document":
            await notifier.send_document(chat.chat.id, p.file_id, caption, reply_markup=kb)
        else:
            await notifier.send_photo(chat.chat.id, p.file_id, caption, reply_markup=kb)


@router.message(Command("pending"))
async def cmd_pending(message: Message, notifier: Notifier) -> None:
    if not is_admin(message.from_user.id):
        return
    await _send_pending_payments(message, notifier)


@router.callback_query(lambda c: c.data == "admin:pending")
async def on_pending(cb: CallbackQuery, notifier: Notifier) -> None:
    if not is_admin(cb.from_user.id):
        await cb.answer()
        return
    await cb.answer()
    await _send_pending_payments(cb.message, notifier)


@router.callback_query(lambda c: c.data and (c.data.startswith("pay:approve:") or c.data.startswith("pay:reject:")))
async def on_payment_decision(cb: CallbackQuery, notifier: Notifier) -> None:
    admin_id = cb.from_user.id
    if not is_admin(admin_id):
        await cb.answer()
        return

    payment_id = _tail_id(cb.data)
    if payment_id is None:
        await cb.answer()
        return

    approve = cb.data.startswith("pay:approve:")
    async with session_scope() as session:
        if approve:
            res = await payment_service.approve(session, payment_id=payment_id, admin_id=admin_id)
        else:
            res = await payment_service.reject(session, payment_id=payment_id, admin_id=admin_id)

    if res.code == pay.NOT_FOUND:
        await cb.answer("Payment not found.")
        return
    if res.code == pay.ALREADY_PROCESSED:
        await cb.answer("Already processed.")
        return

    if approve:
        await notify.payment_approved(notifier, res)
    else:
        await notify.payment_rejected(notifier, res.data["payment"])

    mark = "✅ <b>Approved</b>" if approve else "❌ <b>Rejected</b>"
    footer = f"\n\n{mark} by <code>{admin_id}</code> at {fmt_dt(utcnow())}"
    credited = res.data.get("credited")
    if credited:
        footer += f"\n🎁 Referrer <code>{credited[0]}</code> credited"
    await notifier.edit_caption(cb.message.chat.id, cb.message.message_id, (cb.message.html_text or "") + footer)
    await cb.answer("Approved" if approve else "Rejected")


# ==========================
# STUDENTS
# ==========================

async def _send_user(chat: Message, tg_id: int) -> None:
    async with session_scope() as session:
        user = await repo.get_user(session, tg_id)
    if not user:
        await chat.answer(f"User <code>{tg_id}</code> not found.", parse_mode="HTML")
        return
    await chat.answer(user_card(user), reply_markup=kb_admin_user(tg_id, blocked=user.blocked), parse_mode="HTML")


@router.message(Command("user"))
async def cmd_user(message: Message, command: CommandObject) -> None:
    if not is_admin(message.from_user.id):
        return
    tg_id = _arg_id(command.args)
    if tg_id is None:
        await message.answer("Usage: /user <telegram_id>")
        return
    await _send_user(message, tg_id)


@router.callback_query(lambda c: c.data and c.data.startswith("admin:user:"))
async def on_user(cb: CallbackQuery) -> None:
    if not is_admin(cb.from_user.id):
        await cb.answer()
        return
    tg_id = _tail_id(cb.data)
    await cb.answer()
    if tg_id is not None:
        await _send_user(cb.message, tg_id)


async def _set_blocked(tg_id: int, blocked: bool, admin_id: int) -> bool:
    async with session_scope() as session:
        user = await repo.update_user(session, tg_id, blocked=blocked)
        await session.commit()
    if user:
        log.info("user_blocked" if blocked else "user_unblocked", extra={"tg_id": tg_id, "admin_id": admin_id})
    return user is not None


@router.message(Command("block", "unblock"))
async def cmd_block(message: Message, command: CommandObject) -> None:
    if not is_admin(message.from_user.id):
        return
    tg_id = _arg_id(command.args)
    if tg_id is None:
        await message.answer(f"Usage: /{command.command} <telegram_id>")
        return
    blocked = command.command == "block"
    if await _set_blocked(tg_id, blocked, message.from_user.id):
        await message.answer(f"{'⛔ Blocked' if blocked else '✅ Unblocked'} <code>{tg_id}</code>", parse_mode="HTML")
    else:
        await message.answer(f"User <code>{tg_id}</code> not found.", parse_mode="HTML")


@router.callback_query(lambda c: c.data and (c.data.startswith("admin:block:") or c.data.startswith("admin:unblock:")))
async def on_block(cb: CallbackQuery) -> None:
    if not is_admin(cb.from_user.id):
        await cb.answer()
        return
    tg_id = _tail_id(cb.data)
    blocked = cb.data.startswith("admin:block:")
    if tg_id is None or not await _set_blocked(tg_id, blocked, cb.from_user.id):
        await cb.answer("User not found.")
        return
    await cb.message.edit_reply_markup(reply_markup=kb_admin_user(tg_id, blocked=blocked))
    await cb.answer("Blocked" if blocked else "Unblocked")


@router.callback_query(lambda c: c.data and c.data.startswith("admin:delete:"))
async def on_delete(cb: CallbackQuery) -> None:
    if not is_admin(cb.from_user.id):
        await cb.answer()
        return
    tg_id = _tail_id(cb.data)
    if tg_id is None:
        await cb.answer()
        return

    if not cb.data.startswith("admin:delete:confirm:"):
        await cb.message.edit_reply_markup(reply_markup=kb_confirm_delete(tg_id))
        await cb.answer()
        return

    async with session_scope() as session:
        deleted = await repo.delete_user(session, tg_id)
        await session.commit()
    if deleted:
        log.info("user_deleted", extra={"tg_id": tg_id, "admin_id": cb.from_user.id})
        await cb.message.edit_text(f"🗑 User <code>{tg_id}</code> deleted.", parse_mode="HTML")
    await cb.answer("Deleted" if deleted else "User not found.")


# ==========================
# WITHDRAWALS
# ==========================

async def _send_pending_withdrawals(chat: Message) -> None:
    async with session_scope() as session:
        items = await repo.withdrawals_by_status(session, WithdrawalStatus.PENDING, limit=LIST_LIMIT)
        users = {w.user_id: await repo.get_user(session, w.user_id) for w in items}

    if not items:
        await chat.answer("✅ No pending withdrawals.")
        return
    await chat.answer(f"💸 <b>Pending withdrawals: {len(items)}</b>", parse_mode="HTML")
    for w in items:
        await chat.answer(
            withdrawal_text(w, users.get(w.user_id)),
            reply_markup=kb_withdrawal_review(w.id, w.user_id),
            parse_mode="HTML",
        )


@router.message(Command("withdrawals"))
async def cmd_withdrawals(message: Message) -> None:
    if not is_admin(message.from_user.id):
        return
    await _send_pending_withdrawals(message)


@router.callback_query(lambda c: c.data == "admin:withdrawals")
async def on_withdrawals(cb: CallbackQuery) -> None:
    if not is_admin(cb.from_user.id):
        await cb.answer()
        return
    await cb.answer()
    await _send_pending_withdrawals(cb.message)


@router.callback_query(lambda c: c.data and (c.data.startswith("wd:complete:") or c.data.startswith("wd:reject:")))
async def on_withdrawal_decision(cb: CallbackQuery, notifier: Notifier) -> None:
    admin_id = cb.from_user.id
    if not is_admin(admin_id):
        await cb.answer()
        return
    withdrawal_id = _tail_id(cb.data)
    if withdrawal_id is None:
        await cb.answer()
        return

    complete = cb.data.startswith("wd:complete:")
    async with session_scope() as session:
        if complete:
            res = await withdrawal_service.complete(session, withdrawal_id=withdrawal_id, admin_id=admin_id)
        else:
            res = await withdrawal_service.reject(session, withdrawal_id=withdrawal_id, admin_id=admin_id)

    if res.code == wd.NOT_FOUND:
        await cb.answer("Withdrawal not found.")
        return
    if res.code == wd.ALREADY_PROCESSED:
        await cb.answer("Already processed.")
        return

    if complete:
        await notify.withdrawal_completed(notifier, res.data["withdrawal"])
    else:
        await notify.withdrawal_rejected(notifier, res.data["withdrawal"])

    mark = "✅ <b>Paid</b>" if complete else "❌ <b>Rejected</b> (amount returned)"
    await notifier.edit_text(
        cb.message.chat.id,
        cb.message.message_id,
        f"{cb.message.html_text}\n\n{mark} by <code>{admin_id}</code> at {fmt_dt(utcnow())}",
    )
    await cb.answer("Done")
