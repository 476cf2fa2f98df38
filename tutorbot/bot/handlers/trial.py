from __future__ import annotations

from aiogram import F, Router
from aiogram.filters import Command
from aiogram.types import CallbackQuery, Message

from tutorbot.bot.keyboards import BTN_TRIAL, kb_trial_materials
from tutorbot.bot.notifier import Notifier
from tutorbot.bot.ui import h
from tutorbot.db.session import session_scope
from tutorbot.services.trial import service as trial
from tutorbot.services.trial.service import trial_service

router = Router()


@router.message(Command("trial"))
@router.message(F.text == BTN_TRIAL)
async def on_trial(message: Message) -> None:
    async with session_scope() as session:
        res = await trial_service.list_materials(session)

    if res.code == trial.DISABLED:
        await message.answer(res.message)
        return
    materials = res.data["materials"]
    if not materials:
        await message.answer("📚 <b>Free trial materials</b>\n\nNothing is available right now. Check back later.")
        return
    await message.answer(
        "📚 <b>Free trial materials</b>\n\nSelect a material below:",
        reply_markup=kb_trial_materials(materials),
    )


@router.callback_query(lambda c: c.data and c.data.startswith("trial:view:"))
async def on_trial_view(cb: CallbackQuery, notifier: Notifier) -> None:
    raw = cb.data.rsplit(":", 1)[-1]
    if not raw.isdigit():
        await cb.answer()
        return
    async with session_scope() as session:
        res = await trial_service.get_material(session, material_id=int(raw))

    if res.code == trial.DISABLED:
        await cb.answer()
        await cb.message.answer(res.message)
        return
    if res.code == trial.NOT_FOUND:
        await cb.answer("❌ Material not found.")
        return

    await cb.answer("Fetching material...")
    m = res.data["material"]
    caption = f"📘 <b>{h(m.title)}</b>\n\n<i>This is a free trial material.</i>"
    if m.kind == "document":
        await notifier.send_document(cb.message.chat.id, m.file_id, caption)
    else:
        await notifier.send_text(cb.message.chat.id, f"{caption}\n\n{m.content}")
