from __future__ import annotations

import json
import logging

from aiogram import F, Router
from aiogram.dispatcher.event.bases import SkipHandler
from aiogram.filters import Command
from aiogram.types import CallbackQuery, Message

from tutorbot import repo
from tutorbot.bot.auth import is_admin
from tutorbot.bot.keyboards import BTN_CANCEL, is_free_text, kb_broadcast_audience
from tutorbot.bot.notifier import Notifier
from tutorbot.bot.ui import h
from tutorbot.core.states import FlowState
from tutorbot.db.session import session_scope
from tutorbot.services.broadcast.service import (
    AUDIENCE_LABELS,
    AUDIENCES,
    BroadcastReport,
    broadcast,
    find_recipient,
    recipients_for,
)

router = Router()
log = logging.getLogger(__name__)

# the "one user" choice is a direct message, not a broadcast audience
AUDIENCE_USER = "user"

_COMPOSE_STATES = frozenset(
    {FlowState.ADMIN_BROADCAST, FlowState.ADMIN_MESSAGE_USER_ID, FlowState.ADMIN_MESSAGE_USER_TEXT}
)


@router.message(Command("broadcast"))
async def cmd_broadcast(message: Message) -> None:
    if not is_admin(message.from_user.id):
        return
    await message.answer("📢 <b>Broadcast</b>\n\nWho should receive it?", reply_markup=kb_broadcast_audience(), parse_mode="HTML")


@router.callback_query(lambda c: c.data == "admin:broadcast")
async def on_broadcast_menu(cb: CallbackQuery) -> None:
    if not is_admin(cb.from_user.id):
        await cb.answer()
        return
    await cb.message.answer("📢 <b>Broadcast</b>\n\nWho should receive it?", reply_markup=kb_broadcast_audience(), parse_mode="HTML")
    await cb.answer()


@router.callback_query(lambda c: c.data and c.data.startswith("bc:aud:"))
async def on_audience(cb: CallbackQuery) -> None:
    if not is_admin(cb.from_user.id):
        await cb.answer()
        return
    audience = cb.data.split(":", 2)[2]
    if audience != AUDIENCE_USER and audience not in AUDIENCES:
        await cb.answer()
        return

    async with session_scope() as session:
        await repo.ensure_user(session, cb.from_user.id, first_name=cb.from_user.first_name, username=cb.from_user.username)
        if audience == AUDIENCE_USER:
            await repo.update_user(session, cb.from_user.id, flow_state=FlowState.ADMIN_MESSAGE_USER_ID, flow_data=None)
        else:
            await repo.update_user(
                session,
                cb.from_user.id,
                flow_state=FlowState.ADMIN_BROADCAST,
                flow_data=json.dumps({"audience": audience}),
            )
        await session.commit()

    if audience == AUDIENCE_USER:
        await cb.message.edit_text(
            "📨 <b>Message one user</b>\n\nSend the user's Telegram ID. /cancel to abort.",
            parse_mode="HTML",
        )
    else:
        await cb.message.edit_text(
            f"📢 Audience: <b>{AUDIENCE_LABELS[audience]}</b>\n\n"
            "Send the message text now (HTML allowed). /cancel to abort.",
            parse_mode="HTML",
        )
    await cb.answer()


async def _clear_flow(tg_id: int) -> bool:
    async with session_scope() as session:
        user = await repo.get_user(session, tg_id)
        if not user or user.flow_state not in _COMPOSE_STATES:
            return False
        await repo.update_user(session, tg_id, flow_state=None, flow_data=None)
        await session.commit()
    return True


@router.callback_query(lambda c: c.data == "bc:cancel")
async def on_cancel_cb(cb: CallbackQuery) -> None:
    if not is_admin(cb.from_user.id):
        await cb.answer()
        return
    await _clear_flow(cb.from_user.id)
    await cb.message.edit_text("❌ Broadcast cancelled.")
    await cb.answer()


@router.message(Command("cancel"))
@router.message(F.text == BTN_CANCEL)
async def on_cancel(message: Message) -> None:
    if not is_admin(message.from_user.id) or not await _clear_flow(message.from_user.id):
        raise SkipHandler
    await message.answer("❌ Broadcast cancelled.")


@router.message(F.text, lambda m: is_free_text(m.text))
async def on_broadcast_text(message: Message, notifier: Notifier) -> None:
    tg_id = message.from_user.id
    if not is_admin(tg_id):
        raise SkipHandler

    async with session_scope() as session:
        user = await repo.get_user(session, tg_id)
        if not user or user.flow_state != FlowState.ADMIN_BROADCAST:
            raise SkipHandler
        audience = json.loads(user.flow_data or "{}").get("audience", "all")
        # leave compose mode before sending so a second message is not broadcast too
        await repo.update_user(session, tg_id, flow_state=None, flow_data=None)
        await session.commit()
        recipients = await recipients_for(session, audience)

    if not recipients:
        await message.answer("👥 Nobody to send to.")
        return

    status_id = await notifier.send_text(
        message.chat.id, f"📤 Sending to {len(recipients)} {AUDIENCE_LABELS.get(audience, audience)}..."
    )

    async def on_progress(report: BroadcastReport) -> None:
        if status_id is not None:
            await notifier.edit_text(
                message.chat.id,
                status_id,
                f"📤 Progress: {report.done}/{report.total} (✅ {report.sent} ❌ {report.failed})",
            )

    log.info("broadcast_requested", extra={"admin_id": tg_id, "key": audience})
    report = await broadcast(notifier.send_text, recipients, message.html_text, on_progress=on_progress)
    await message.answer(report.summary(), parse_mode="HTML")


@router.message(F.text, lambda m: is_free_text(m.text))
async def on_direct_text(message: Message, notifier: Notifier) -> None:
    tg_id = message.from_user.id
    if not is_admin(tg_id):
        raise SkipHandler

    async with session_scope() as session:
        admin = await repo.get_user(session, tg_id)
        if not admin or admin.flow_state not in (FlowState.ADMIN_MESSAGE_USER_ID, FlowState.ADMIN_MESSAGE_USER_TEXT):
            raise SkipHandler

        if admin.flow_state == FlowState.ADMIN_MESSAGE_USER_ID:
            try:
                target = await find_recipient(session, message.text)
            except ValueError:
                await message.answer("❌ Invalid user ID. Please enter a valid numeric ID.")
                return
            if target is None:
                await message.answer("❌ User not found. Please check the user ID.")
                return
            await repo.update_user(
                session, tg_id, flow_state=FlowState.ADMIN_MESSAGE_USER_TEXT, flow_data=json.dumps({"target": target.tg_id})
            )
            await session.commit()
            await message.answer(
                f"✅ User found: <b>{h(target.display_name)}</b>\n\nNow send the message (HTML allowed). /cancel to abort.",
                parse_mode="HTML",
            )
            return

        target_id = json.loads(admin.flow_data or "{}").get("target")
        await repo.update_user(session, tg_id, flow_state=None, flow_data=None)
        await session.commit()

    if not target_id:
        await message.answer("⚠️ Lost track of the recipient. Start again from /broadcast.")
        return

    log.info("direct_message_requested", extra={"admin_id": tg_id, "tg_id": target_id})
    if await notifier.send_text(int(target_id), message.html_text) is None:
        await message.answer(f"❌ Could not deliver to <code>{target_id}</code>. The user may have blocked the bot.", parse_mode="HTML")
        return
    await message.answer(f"✅ Message delivered to <code>{target_id}</code>.", parse_mode="HTML")
