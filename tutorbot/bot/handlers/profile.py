from __future__ import annotations

from aiogram import F, Router
from aiogram.dispatcher.event.bases import SkipHandler
from aiogram.filters import Command
from aiogram.types import CallbackQuery, Message

from tutorbot import repo
from tutorbot.bot import notify
from tutorbot.bot.keyboards import BTN_CANCEL, BTN_PROFILE, is_free_text, kb_cancel, kb_payment_methods, kb_profile
from tutorbot.bot.notifier import Notifier
from tutorbot.bot.ui import h, main_menu, method_label, money, stream_label
from tutorbot.core.states import FlowState
from tutorbot.db.models import User
from tutorbot.db.session import session_scope
from tutorbot.services.withdrawals import service as wd
from tutorbot.services.withdrawals.service import withdrawal_service

router = Router()


def _profile_text(user: User) -> str:
    status = "✅ Verified" if user.is_verified else f"⏳ Not verified (payment: {h(user.payment_status)})"
    payout = (
        f"{method_label(user.payment_method_preference)} <code>{h(user.account_number)}</code> ({h(user.account_name)})"
        if user.has_payout_profile
        else "not set"
    )
    return (
        "👤 <b>My Profile</b>\n\n"
        f"Name: <b>{h(user.name or user.first_name)}</b>\n"
        f"Phone: {h(user.phone)}\n"
        f"Stream: {stream_label(user.student_type)}\n"
        f"Status: {status}\n\n"
        f"👥 Referrals: <b>{user.referral_count}</b>\n"
        f"💰 Balance: <b>{money(user.rewards)}</b>\n"
        f"🏆 Lifetime earnings: <b>{money(user.total_rewards)}</b>\n\n"
        f"🏦 Payout: {payout}"
    )


@router.message(Command("profile"))
@router.message(F.text == BTN_PROFILE)
async def on_profile(message: Message) -> None:
    async with session_scope() as session:
        user = await repo.ensure_user(
            session,
            message.from_user.id,
            first_name=message.from_user.first_name,
            username=message.from_user.username,
        )
        await session.commit()

    await message.answer(
        _profile_text(user),
        reply_markup=kb_profile(can_withdraw=user.is_verified),
        parse_mode="HTML",
    )


async def _withdraw(chat: Message, tg_id: int, notifier: Notifier) -> None:
    async with session_scope() as session:
        res = await withdrawal_service.request(session, tg_id=tg_id)
        user = await repo.get_user(session, tg_id)

    if res.code == wd.SUBMITTED:
        w = res.data["withdrawal"]
        await notify.announce_withdrawal(notifier, w, user)
        await chat.answer(
            "✅ <b>Withdrawal request submitted</b>\n\n"
            f"Amount: <b>{money(w.amount)}</b>\n"
            f"Method: <b>{method_label(w.method)}</b>\n"
            f"Account: <code>{h(w.account_number)}</code>\n\n"
            "An admin will process it soon.",
            reply_markup=main_menu(user),
            parse_mode="HTML",
        )
    elif res.code == wd.DISABLED:
        await chat.answer(res.message, parse_mode="HTML")
    elif res.code == wd.NOT_VERIFIED:
        await chat.answer("🔒 Only verified students can withdraw.")
    elif res.code == wd.BELOW_MINIMUM:
        await chat.answer(
            f"❌ Minimum withdrawal is <b>{money(res.data['minimum'])}</b>.\n"
            f"Your balance: <b>{money(res.data['balance'])}</b>",
            parse_mode="HTML",
        )
    elif res.code == wd.PROFILE_MISSING:
        await chat.answer(
            "🏦 Please set your payment info first.",
            reply_markup=kb_profile(can_withdraw=False),
        )
    else:
        await chat.answer("⚠️ Your balance just changed. Please try again.")


@router.message(Command("withdraw"))
async def cmd_withdraw(message: Message, notifier: Notifier) -> None:
    await _withdraw(message, message.from_user.id, notifier)


@router.callback_query(lambda c: c.data == "wd:request")
async def on_withdraw(cb: CallbackQuery, notifier: Notifier) -> None:
    await cb.answer()
    await _withdraw(cb.message, cb.from_user.id, notifier)


@router.callback_query(lambda c: c.data == "payout:edit")
async def on_payout_edit(cb: CallbackQuery) -> None:
    async with session_scope() as session:
        res = await withdrawal_service.start_profile_edit(session, tg_id=cb.from_user.id)
    if res.code != wd.STARTED:
        await cb.answer("Please press /start first.")
        return
    await cb.message.answer(
        "🏦 <b>Update payment info</b>\n\nChoose where you want to receive withdrawals:",
        reply_markup=kb_payment_methods(prefix="payout:method"),
        parse_mode="HTML",
    )
    await cb.answer()


@router.callback_query(lambda c: c.data and c.data.startswith("payout:method:"))
async def on_payout_method(cb: CallbackQuery) -> None:
    method = cb.data.split(":", 2)[2]
    async with session_scope() as session:
        res = await withdrawal_service.choose_profile_method(session, tg_id=cb.from_user.id, method=method)
    if res.code != wd.ACCEPTED:
        await cb.answer("This step is no longer active.")
        return
    await cb.message.edit_text(f"✅ Method: <b>{method_label(method)}</b>", parse_mode="HTML")
    await cb.message.answer(
        f"🔢 Enter your {method_label(method)} account number "
        f"({wd.ACCOUNT_NUMBER_MIN_LEN}-{wd.ACCOUNT_NUMBER_MAX_LEN} characters):",
        reply_markup=kb_cancel(),
    )
    await cb.answer()


@router.message(F.text, lambda m: is_free_text(m.text))
async def on_payout_text(message: Message) -> None:
    tg_id = message.from_user.id
    async with session_scope() as session:
        user = await repo.get_user(session, tg_id)
        if not user or user.flow_state not in (FlowState.PAYOUT_ACCOUNT_NUMBER, FlowState.PAYOUT_ACCOUNT_NAME):
            raise SkipHandler

        if user.flow_state == FlowState.PAYOUT_ACCOUNT_NUMBER:
            res = await withdrawal_service.submit_account_number(session, tg_id=tg_id, text=message.text)
            if res.code == wd.INVALID:
                await message.answer(
                    f"❌ Account number must be {wd.ACCOUNT_NUMBER_MIN_LEN}-{wd.ACCOUNT_NUMBER_MAX_LEN} characters."
                )
                return
            await message.answer("👤 Enter the full name on the account:", reply_markup=kb_cancel())
            return

        res = await withdrawal_service.submit_account_name(session, tg_id=tg_id, text=message.text)
        user = await repo.get_user(session, tg_id)

    if res.code == wd.INVALID:
        await message.answer(f"❌ Account name must be at least {wd.ACCOUNT_NAME_MIN_LEN} characters.")
        return
    if res.code != wd.SAVED:
        await message.answer(
            "⚠️ Let's start over. Choose your payout method:",
            reply_markup=kb_payment_methods(prefix="payout:method"),
        )
        return
    saved = res.data
    await message.answer(
        "✅ <b>Payment info updated</b>\n\n"
        f"🏦 {method_label(saved['method'])}\n"
        f"🔢 <code>{h(saved['account_number'])}</code>\n"
        f"👤 {h(saved['account_name'])}",
        reply_markup=main_menu(user),
        parse_mode="HTML",
    )


@router.callback_query(lambda c: c.data == "payout:cancel")
async def on_payout_cancel_cb(cb: CallbackQuery) -> None:
    async with session_scope() as session:
        await withdrawal_service.cancel_profile_edit(session, tg_id=cb.from_user.id)
    await cb.message.edit_text("❌ Payment info update cancelled.")
    await cb.answer()


@router.message(Command("cancel"))
@router.message(F.text == BTN_CANCEL)
async def on_payout_cancel(message: Message) -> None:
    tg_id = message.from_user.id
    async with session_scope() as session:
        res = await withdrawal_service.cancel_profile_edit(session, tg_id=tg_id)
        user = await repo.get_user(session, tg_id)
    if res.code != wd.CANCELLED:
        raise SkipHandler
    await message.answer("❌ Payment info update cancelled.", reply_markup=main_menu(user))
