from __future__ import annotations

import logging

from aiogram import Bot
from aiogram.exceptions import TelegramAPIError
from aiogram.types import InlineKeyboardMarkup, ReplyKeyboardMarkup, ReplyKeyboardRemove

log = logging.getLogger(__name__)

Markup = InlineKeyboardMarkup | ReplyKeyboardMarkup | ReplyKeyboardRemove | None


class Notifier:
    """Outbound Telegram sends that never raise.

    Every method logs and swallows TelegramAPIError (blocked bot, deleted chat,
    bad request, network) so a failed notification cannot abort a workflow.
    Send methods return the new message id, or None on failure.
    """

    def __init__(self, bot: Bot) -> None:
        self.bot = bot

    async def send_text(self, chat_id: int, text: str, *, reply_markup: Markup = None) -> int | None:
        try:
            msg = await self.bot.send_message(
                chat_id=chat_id, text=text, reply_markup=reply_markup, parse_mode="HTML"
            )
            return msg.message_id
        except TelegramAPIError as e:
            log.warning("notify_failed", extra={"tg_id": chat_id, "op": "send_text", "err": str(e)})
            return None

    async def send_photo(
        self, chat_id: int, file_id: str, caption: str, *, reply_markup: Markup = None
    ) -> int | None:
        try:
            msg = await self.bot.send_photo(
                chat_id=chat_id, photo=file_id, caption=caption, reply_markup=reply_markup, parse_mode="HTML"
            )
            return msg.message_id
        except TelegramAPIError as e:
            log.warning("notify_failed", extra={"tg_id": chat_id, "op": "send_photo", "err": str(e)})
            return None

    async def send_document(
        self, chat_id: int, file_id: str, caption: str, *, reply_markup: Markup = None
    ) -> int | None:
        try:
            msg = await self.bot.send_document(
                chat_id=chat_id, document=file_id, caption=caption, reply_markup=reply_markup, parse_mode="HTML"
            )
            return msg.message_id
        except TelegramAPIError as e:
            log.warning("notify_failed", extra={"tg_id": chat_id, "op": "send_document", "err": str(e)})
            return None

    async def edit_text(
        self, chat_id: int, message_id: int, text: str, *, reply_markup: InlineKeyboardMarkup | None = None
    ) -> bool:
        try:
            await self.bot.edit_message_text(
                text=text, chat_id=chat_id, message_id=message_id, reply_markup=reply_markup, parse_mode="HTML"
            )
            return True
        except TelegramAPIError as e:
            log.warning("notify_failed", extra={"tg_id": chat_id, "op": "edit_text", "err": str(e)})
            return False

    async def edit_caption(self, chat_id: int, message_id: int, caption: str) -> bool:
        try:
            await self.bot.edit_message_caption(
                chat_id=chat_id, message_id=message_id, caption=caption, reply_markup=None, parse_mode="HTML"
            )
            return True
        except TelegramAPIError as e:
            log.warning("notify_failed", extra={"tg_id": chat_id, "op": "edit_caption", "err": str(e)})
            return False

    async def answer_callback(self, callback_id: str, text: str | None = None, *, show_alert: bool = False) -> bool:
        try:
            await self.bot.answer_callback_query(callback_query_id=callback_id, text=text, show_alert=show_alert)
            return True
        except TelegramAPIError as e:
            log.debug("callback_answer_failed", extra={"op": "answer_callback", "err": str(e)})
            return False
