from __future__ import annotations

from aiogram import F, Router
from aiogram.dispatcher.event.bases import SkipHandler
from aiogram.filters import Command
from aiogram.types import Message

from tutorbot import repo
from tutorbot.bot import notify
from tutorbot.bot.keyboards import BTN_PAY, is_free_text, kb_cancel
from tutorbot.bot.notifier import Notifier
from tutorbot.bot.ui import main_menu, payment_instructions
from tutorbot.core.states import RegStep
from tutorbot.db.session import session_scope
from tutorbot.services.payments import service as pay
from tutorbot.services.payments.service import payment_service, pick_proof

router = Router()


@router.message(Command("pay"))
@router.message(F.text == BTN_PAY)
async def on_pay(message: Message) -> None:
    tg_id = message.from_user.id
    async with session_scope() as session:
        res = await payment_service.request_payment(session, tg_id=tg_id)
        user = await repo.get_user(session, tg_id)

    if res.code == pay.AWAITING_SCREENSHOT:
        await message.answer(payment_instructions(**res.data), reply_markup=kb_cancel(), parse_mode="HTML")
    elif res.code == pay.ALREADY_VERIFIED:
        await message.answer("✅ Your payment is already approved.", reply_markup=main_menu(user))
    elif res.code == pay.PENDING:
        await message.answer(
            "⏳ Your payment screenshot is already under review. Please wait for the admin.",
            reply_markup=main_menu(user),
        )
    else:
        await message.answer(
            "📝 Please complete registration first: press <b>📝 Register</b>.",
            reply_markup=main_menu(user),
            parse_mode="HTML",
        )


@router.message(F.photo | F.document)
async def on_proof(message: Message, notifier: Notifier) -> None:
    tg_id = message.from_user.id
    async with session_scope() as session:
        res = await payment_service.submit_proof(session, tg_id=tg_id, proof=pick_proof(message))
        user = await repo.get_user(session, tg_id)

    if res.code == pay.NOT_EXPECTED:
        raise SkipHandler
    if res.code == pay.NO_FILE:
        await message.answer("❌ Please send the receipt as a photo or an image file.", reply_markup=kb_cancel())
        return

    await notify.announce_payment(notifier, res.data["payment"], user)
    await message.answer(
        "✅ <b>Screenshot received!</b>\n\n"
        "Your payment is now pending review. You will get a message as soon as an admin approves it.",
        reply_markup=main_menu(user),
        parse_mode="HTML",
    )


@router.message(F.text, lambda m: is_free_text(m.text))
async def on_text_while_awaiting_proof(message: Message) -> None:
    async with session_scope() as session:
        user = await repo.get_user(session, message.from_user.id)
    if not user or user.registration_step != RegStep.AWAITING_SCREENSHOT:
        raise SkipHandler
    await message.answer(
        "📸 Please send a <b>screenshot</b> of your payment receipt, or press ❌ Cancel.",
        reply_markup=kb_cancel(),
        parse_mode="HTML",
    )
