from __future__ import annotations

import logging

from aiogram import Router
from aiogram.types import ErrorEvent
from sqlalchemy.exc import SQLAlchemyError

from tutorbot.bot.notifier import Notifier
from tutorbot.bot.ui import GENERIC_ERROR
from tutorbot.core.errors import StorageError

router = Router()
log = logging.getLogger(__name__)


@router.errors()
async def on_error(event: ErrorEvent, notifier: Notifier) -> bool:
    """Last stop for exceptions escaping a handler: log, apologise, keep polling."""
    update = event.update
    exc = event.exception
    kind = "storage" if isinstance(exc, (SQLAlchemyError, StorageError)) else "unhandled"
    log.error(
        "handler_failed",
        exc_info=(type(exc), exc, exc.__traceback__),
        extra={"update_id": update.update_id, "op": kind},
    )

    chat_id = None
    if update.callback_query is not None:
        cb = update.callback_query
        await notifier.answer_callback(cb.id)
        chat_id = cb.from_user.id
    elif update.message is not None and update.message.from_user is not None:
        chat_id = update.message.chat.id

    if chat_id is not None:
        await notifier.send_text(chat_id, GENERIC_ERROR)
    return True
