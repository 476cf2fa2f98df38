from __future__ import annotations

import logging

from aiogram import F, Router
from aiogram.filters import Command, CommandObject, CommandStart
from aiogram.types import Message

from tutorbot import repo
from tutorbot.bot.keyboards import BTN_HELP
from tutorbot.bot.ui import main_menu, money
from tutorbot.db.session import session_scope
from tutorbot.services.config import config_service
from tutorbot.services.referrals.service import referral_service

router = Router()
log = logging.getLogger(__name__)

HELP_TEXT = (
    "❓ <b>How it works</b>\n\n"
    "1️⃣ Press <b>📝 Register</b> and enter your name, phone, stream and payment method.\n"
    "2️⃣ Press <b>💰 Pay Fee</b>, pay the registration fee and send the receipt screenshot.\n"
    "3️⃣ Wait for an admin to approve your payment.\n"
    "4️⃣ Once verified, invite friends with <b>🎁 Invite & Earn</b>: you earn {reward} "
    "for every friend who gets verified.\n"
    "5️⃣ Withdraw your balance from <b>👤 My Profile</b> once it reaches {minimum}.\n\n"
    "Browse <b>📚 Free Trial</b> for sample materials before you pay.\n"
    "Use <b>❌ Cancel</b> at any time to stop the current step."
)


@router.message(CommandStart())
async def cmd_start(message: Message, command: CommandObject) -> None:
    tg_id = message.from_user.id

    async with session_scope() as session:
        user = await repo.ensure_user(
            session,
            tg_id,
            first_name=message.from_user.first_name,
            username=message.from_user.username,
        )
        res = await referral_service.attach_referrer(session, tg_id=tg_id, payload=command.args)
        await session.commit()

    log.info("start", extra={"tg_id": tg_id, "op": res.code})

    text = config_service.render(
        "welcome_message",
        fee=money(config_service.get_int("registration_fee")),
        reward=money(config_service.get_int("referral_reward")),
    )
    await message.answer(text, reply_markup=main_menu(user), parse_mode="HTML")


@router.message(Command("help"))
@router.message(F.text == BTN_HELP)
async def cmd_help(message: Message) -> None:
    async with session_scope() as session:
        user = await repo.get_user(session, message.from_user.id)

    text = HELP_TEXT.format(
        reward=money(config_service.get_int("referral_reward")),
        minimum=money(config_service.get_int("min_withdrawal_amount")),
    )
    await message.answer(text, reply_markup=main_menu(user), parse_mode="HTML")
