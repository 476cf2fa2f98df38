from __future__ import annotations

import json
from html import escape

from aiogram import F, Router
from aiogram.dispatcher.event.bases import SkipHandler
from aiogram.filters import Command, CommandObject
from aiogram.types import CallbackQuery, Message

from tutorbot import repo
from tutorbot.bot.auth import is_admin
from tutorbot.bot.keyboards import BTN_CANCEL, is_free_text
from tutorbot.core.errors import ConfigError
from tutorbot.core.states import FlowState
from tutorbot.db.session import session_scope
from tutorbot.services.config import CATEGORIES, config_service

router = Router()

_PREVIEW_LEN = 40


def _preview(value) -> str:
    if isinstance(value, bool):
        return "✅ on" if value else "❌ off"
    s = str(value).replace("\n", " ")
    if len(s) > _PREVIEW_LEN:
        s = s[: _PREVIEW_LEN - 1] + "…"
    return escape(s)


def render_dashboard() -> str:
    values = config_service.snapshot()
    lines = ["⚙️ <b>Settings</b>"]
    for title, keys in CATEGORIES.items():
        lines += ["", f"<b>{title}</b>"]
        for key in keys:
            lines.append(f"<code>{key}</code>: {_preview(values[key])}")
    lines += ["", "Change with <code>/set key value</code>, or <code>/set key</code> to send a long text next."]
    return "\n".join(lines)


@router.message(Command("settings"))
async def cmd_settings(message: Message) -> None:
    if not is_admin(message.from_user.id):
        return
    await message.answer(render_dashboard(), parse_mode="HTML")


@router.callback_query(lambda c: c.data == "admin:settings")
async def on_settings(cb: CallbackQuery) -> None:
    if not is_admin(cb.from_user.id):
        await cb.answer()
        return
    await cb.message.answer(render_dashboard(), parse_mode="HTML")
    await cb.answer()


async def _apply(message: Message, key: str, raw: str) -> None:
    try:
        async with session_scope() as session:
            value = await config_service.set(session, key, raw)
    except ConfigError as e:
        await message.answer(f"❌ {escape(str(e))}", parse_mode="HTML")
        return
    await message.answer(f"✅ <code>{key}</code> = {_preview(value)}", parse_mode="HTML")


@router.message(Command("set"))
async def cmd_set(message: Message, command: CommandObject) -> None:
    if not is_admin(message.from_user.id):
        return
    parts = (command.args or "").split(maxsplit=1)
    if not parts:
        await message.answer("Usage: /set key value\nSee /settings for the keys.")
        return

    key = parts[0]
    if key not in config_service.keys:
        await message.answer(f"❌ Unknown setting: <code>{escape(key)}</code>", parse_mode="HTML")
        return

    if len(parts) == 2:
        await _apply(message, key, parts[1])
        return

    tg_id = message.from_user.id
    async with session_scope() as session:
        await repo.ensure_user(session, tg_id, first_name=message.from_user.first_name, username=message.from_user.username)
        await repo.update_user(
            session, tg_id, flow_state=FlowState.ADMIN_SET_VALUE, flow_data=json.dumps({"key": key})
        )
        await session.commit()
    await message.answer(
        f"✏️ Send the new value for <code>{key}</code>. /cancel to abort.\n\n"
        f"Current:\n{escape(config_service.get_str(key))}",
        parse_mode="HTML",
    )


async def _clear_flow(tg_id: int) -> str | None:
    """Leaves set-value mode. Returns the pending key, or None when not in that mode."""
    async with session_scope() as session:
        user = await repo.get_user(session, tg_id)
        if not user or user.flow_state != FlowState.ADMIN_SET_VALUE:
            return None
        key = json.loads(user.flow_data or "{}").get("key")
        await repo.update_user(session, tg_id, flow_state=None, flow_data=None)
        await session.commit()
    return key or ""


@router.message(Command("cancel"))
@router.message(F.text == BTN_CANCEL)
async def on_cancel(message: Message) -> None:
    if not is_admin(message.from_user.id) or await _clear_flow(message.from_user.id) is None:
        raise SkipHandler
    await message.answer("❌ Cancelled.")


@router.message(F.text, lambda m: is_free_text(m.text))
async def on_value_text(message: Message) -> None:
    tg_id = message.from_user.id
    if not is_admin(tg_id):
        raise SkipHandler
    key = await _clear_flow(tg_id)
    if key is None:
        raise SkipHandler
    if not key:
        await message.answer("⚠️ Lost track of the setting. Use /set key again.")
        return
    # templates keep the admin's HTML formatting
    await _apply(message, key, message.html_text)
