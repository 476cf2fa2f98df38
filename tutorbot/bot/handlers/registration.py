from __future__ import annotations

from aiogram import F, Router
from aiogram.dispatcher.event.bases import SkipHandler
from aiogram.filters import Command
from aiogram.types import CallbackQuery, Message, ReplyKeyboardRemove

from tutorbot import repo
from tutorbot.bot.keyboards import (
    BTN_CANCEL,
    BTN_REGISTER,
    is_free_text,
    kb_cancel,
    kb_payment_methods,
    kb_share_contact,
    kb_streams,
)
from tutorbot.bot.ui import h, main_menu, method_label, stream_label
from tutorbot.core.states import RegStep
from tutorbot.db.session import session_scope
from tutorbot.services.config import config_service
from tutorbot.services.registration import service as reg
from tutorbot.services.registration.service import registration_service

router = Router()


async def _menu(tg_id: int):
    async with session_scope() as session:
        return main_menu(await repo.get_user(session, tg_id))


@router.message(Command("register"))
@router.message(F.text == BTN_REGISTER)
async def on_register(message: Message) -> None:
    tg_id = message.from_user.id
    async with session_scope() as session:
        res = await registration_service.start(
            session,
            tg_id=tg_id,
            first_name=message.from_user.first_name,
            username=message.from_user.username,
        )

    if res.code == reg.STARTED:
        await message.answer(config_service.get_str("reg_start"), reply_markup=kb_cancel(), parse_mode="HTML")
    elif res.code == reg.ALREADY_VERIFIED:
        await message.answer("✅ You are already registered and verified.", reply_markup=await _menu(tg_id))
    elif res.code == reg.PAYMENT_PENDING:
        await message.answer(
            "⏳ Your payment is being reviewed. You will be notified once an admin checks it.",
            reply_markup=await _menu(tg_id),
        )
    else:
        await message.answer(res.message or "", parse_mode="HTML")


@router.message(F.text, lambda m: is_free_text(m.text))
async def on_registration_text(message: Message) -> None:
    tg_id = message.from_user.id
    async with session_scope() as session:
        user = await repo.get_user(session, tg_id)
        if not user:
            raise SkipHandler
        if user.registration_step == RegStep.AWAITING_PHONE:
            await message.answer(
                "📱 Please use the <b>Share Phone Number</b> button below.",
                reply_markup=kb_share_contact(),
                parse_mode="HTML",
            )
            return
        if user.registration_step == RegStep.AWAITING_STREAM:
            await message.answer("🎓 Please choose your stream:", reply_markup=kb_streams())
            return
        if user.registration_step == RegStep.AWAITING_PAYMENT_METHOD:
            await message.answer("💳 Please choose a payment method:", reply_markup=kb_payment_methods())
            return

        res = await registration_service.submit_name(session, tg_id=tg_id, text=message.text)

    if res.code == reg.NOT_EXPECTED:
        raise SkipHandler
    if res.code == reg.INVALID:
        await message.answer(
            f"❌ Please enter a valid name ({reg.NAME_MIN_LEN}-{reg.NAME_MAX_LEN} characters).",
            reply_markup=kb_cancel(),
        )
        return

    await message.answer(
        config_service.render("reg_name_saved", name=h(res.data["name"])),
        reply_markup=kb_share_contact(),
        parse_mode="HTML",
    )


@router.message(F.contact)
async def on_contact(message: Message) -> None:
    tg_id = message.from_user.id
    contact = message.contact
    async with session_scope() as session:
        res = await registration_service.submit_contact(
            session, tg_id=tg_id, contact_user_id=contact.user_id, phone=contact.phone_number
        )

    if res.code == reg.NOT_EXPECTED:
        raise SkipHandler
    if res.code == reg.INVALID:
        await message.answer(
            "❌ Please share <b>your own</b> phone number using the button below.",
            reply_markup=kb_share_contact(),
            parse_mode="HTML",
        )
        return

    # drop the contact keyboard before the inline stream picker
    await message.answer(
        config_service.render("reg_phone_saved", phone=h(res.data["phone"])),
        reply_markup=ReplyKeyboardRemove(),
        parse_mode="HTML",
    )
    await message.answer("👇", reply_markup=kb_streams())


@router.callback_query(lambda c: c.data and c.data.startswith("reg:stream:"))
async def on_stream(cb: CallbackQuery) -> None:
    stream = cb.data.split(":", 2)[2]
    async with session_scope() as session:
        res = await registration_service.choose_stream(session, tg_id=cb.from_user.id, stream=stream)

    if res.code != reg.ACCEPTED:
        await cb.answer("This step is no longer active.", show_alert=False)
        return

    await cb.message.edit_text(
        f"✅ Stream: <b>{stream_label(stream)}</b>\n\n💳 <b>Choose your payment method:</b>",
        reply_markup=kb_payment_methods(),
        parse_mode="HTML",
    )
    await cb.answer()


@router.callback_query(lambda c: c.data and c.data.startswith("reg:method:"))
async def on_method(cb: CallbackQuery) -> None:
    method = cb.data.split(":", 2)[2]
    tg_id = cb.from_user.id
    async with session_scope() as session:
        res = await registration_service.choose_payment_method(session, tg_id=tg_id, method=method)
        user = await repo.get_user(session, tg_id)

    if res.code != reg.COMPLETED:
        await cb.answer("This step is no longer active.")
        return

    await cb.message.edit_text(f"✅ Payment method: <b>{method_label(method)}</b>", parse_mode="HTML")
    await cb.message.answer(
        config_service.get_str("reg_success"), reply_markup=main_menu(user), parse_mode="HTML"
    )
    await cb.answer()


@router.callback_query(lambda c: c.data == "reg:cancel")
async def on_cancel_cb(cb: CallbackQuery) -> None:
    tg_id = cb.from_user.id
    async with session_scope() as session:
        res = await registration_service.cancel(session, tg_id=tg_id)
        user = await repo.get_user(session, tg_id)

    if res.code == reg.CANCELLED:
        await cb.message.edit_text("❌ Registration cancelled.")
        await cb.message.answer("You can start again any time.", reply_markup=main_menu(user))
    await cb.answer()


@router.message(Command("cancel"))
@router.message(F.text == BTN_CANCEL)
async def on_cancel(message: Message) -> None:
    tg_id = message.from_user.id
    async with session_scope() as session:
        res = await registration_service.cancel(session, tg_id=tg_id)
        user = await repo.get_user(session, tg_id)

    if res.code == reg.NOTHING_TO_CANCEL:
        raise SkipHandler
    await message.answer(
        "❌ Registration cancelled. You can start again any time.", reply_markup=main_menu(user)
    )
