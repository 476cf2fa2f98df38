from __future__ import annotations

import json

from aiogram import F, Router
from aiogram.dispatcher.event.bases import SkipHandler
from aiogram.filters import Command, CommandObject
from aiogram.types import CallbackQuery, Message

from tutorbot import repo
from tutorbot.bot.auth import is_admin
from tutorbot.bot.keyboards import BTN_CANCEL, is_free_text, kb_admin_trials
from tutorbot.bot.ui import h
from tutorbot.core.states import FlowState
from tutorbot.db.session import session_scope
from tutorbot.services.trial import service as trial
from tutorbot.services.trial.service import TITLE_MAX_LEN, trial_service

router = Router()


async def _render_list(message: Message) -> None:
    async with session_scope() as session:
        materials = await repo.list_trial_materials(session)
    lines = ["📚 <b>Trial materials</b>", ""]
    if not materials:
        lines.append("None yet.")
    for m in materials:
        lines.append(f"#{m.id} [{m.kind}] {h(m.title)}")
    lines += ["", "Add one with <code>/addtrial title</code>. Tap a button to delete."]
    await message.answer("\n".join(lines), reply_markup=kb_admin_trials(materials), parse_mode="HTML")


@router.message(Command("trials"))
async def cmd_trials(message: Message) -> None:
    if not is_admin(message.from_user.id):
        return
    await _render_list(message)


@router.callback_query(lambda c: c.data == "admin:trials")
async def on_trials(cb: CallbackQuery) -> None:
    if not is_admin(cb.from_user.id):
        await cb.answer()
        return
    await _render_list(cb.message)
    await cb.answer()


@router.message(Command("addtrial"))
async def cmd_add_trial(message: Message, command: CommandObject) -> None:
    tg_id = message.from_user.id
    if not is_admin(tg_id):
        return
    title = (command.args or "").strip()
    if not title or len(title) > TITLE_MAX_LEN:
        await message.answer(f"Usage: /addtrial title (up to {TITLE_MAX_LEN} characters)")
        return

    async with session_scope() as session:
        await repo.ensure_user(session, tg_id, first_name=message.from_user.first_name, username=message.from_user.username)
        await repo.update_user(
            session, tg_id, flow_state=FlowState.ADMIN_TRIAL_UPLOAD, flow_data=json.dumps({"title": title})
        )
        await session.commit()
    await message.answer(
        f"📎 Send the document or the text for <b>{h(title)}</b>. /cancel to abort.",
        parse_mode="HTML",
    )


async def _take_title(tg_id: int) -> str | None:
    """Leaves upload mode. Returns the pending title, or None when not in that mode."""
    async with session_scope() as session:
        user = await repo.get_user(session, tg_id)
        if not user or user.flow_state != FlowState.ADMIN_TRIAL_UPLOAD:
            return None
        title = json.loads(user.flow_data or "{}").get("title")
        await repo.update_user(session, tg_id, flow_state=None, flow_data=None)
        await session.commit()
    return title or ""


@router.message(Command("cancel"))
@router.message(F.text == BTN_CANCEL)
async def on_cancel(message: Message) -> None:
    if not is_admin(message.from_user.id) or await _take_title(message.from_user.id) is None:
        raise SkipHandler
    await message.answer("❌ Upload cancelled.")


@router.message(F.document)
@router.message(F.text, lambda m: is_free_text(m.text))
async def on_upload(message: Message) -> None:
    tg_id = message.from_user.id
    if not is_admin(tg_id):
        raise SkipHandler
    title = await _take_title(tg_id)
    if title is None:
        raise SkipHandler

    async with session_scope() as session:
        res = await trial_service.add_material(
            session,
            admin_id=tg_id,
            title=title,
            file_id=message.document.file_id if message.document else None,
            content=None if message.document else message.html_text,
        )

    if res.code != trial.ADDED:
        await message.answer("❌ Could not save the material. Start again with /addtrial title.")
        return
    m = res.data["material"]
    await message.answer(f"✅ Added #{m.id} [{m.kind}] {h(m.title)}", parse_mode="HTML")


@router.callback_query(lambda c: c.data and c.data.startswith("trial:del:"))
async def on_delete(cb: CallbackQuery) -> None:
    if not is_admin(cb.from_user.id):
        await cb.answer()
        return
    raw = cb.data.rsplit(":", 1)[-1]
    if not raw.isdigit():
        await cb.answer()
        return
    async with session_scope() as session:
        res = await trial_service.delete_material(session, admin_id=cb.from_user.id, material_id=int(raw))

    if res.code == trial.NOT_FOUND:
        await cb.answer("Already deleted.")
        return
    await cb.answer("🗑 Deleted")
    async with session_scope() as session:
        materials = await repo.list_trial_materials(session)
    await cb.message.edit_reply_markup(reply_markup=kb_admin_trials(materials))
