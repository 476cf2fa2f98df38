from __future__ import annotations

from aiogram import F, Router
from aiogram.filters import Command
from aiogram.types import Message

from tutorbot import repo
from tutorbot.bot.keyboards import BTN_CANCEL
from tutorbot.bot.ui import main_menu
from tutorbot.db.session import session_scope

router = Router()


@router.message(Command("cancel"))
@router.message(F.text == BTN_CANCEL)
async def on_nothing_to_cancel(message: Message) -> None:
    async with session_scope() as session:
        user = await repo.get_user(session, message.from_user.id)
    await message.answer("Nothing to cancel.", reply_markup=main_menu(user))


@router.message()
async def on_unknown(message: Message) -> None:
    async with session_scope() as session:
        user = await repo.get_user(session, message.from_user.id)
    await message.answer("🤔 I didn't get that. Please use the menu below.", reply_markup=main_menu(user))
