"""Updates fed through the real dispatcher: router order, filters and rendering."""

from __future__ import annotations

import itertools
import json
from datetime import datetime, timezone

import pytest
from aiogram import Bot
from aiogram.client.default import DefaultBotProperties
from aiogram.client.session.base import BaseSession
from aiogram.enums import ParseMode
from aiogram.methods import SendMessage
from aiogram.types import Chat, Message, Update
from sqlalchemy.ext.asyncio import async_sessionmaker

from conftest import ADMIN_ID, OTHER_ADMIN_ID, make_registered, make_user, reload
from tutorbot import repo
from tutorbot.bot.app import build_dispatcher
from tutorbot.bot.keyboards import BTN_TRIAL
from tutorbot.core.states import FlowState, PaymentStatus, RegStep
from tutorbot.db import session as db_session

STUDENT = 3001
REFERRER = 3000
DATE = 1_700_000_000


class LocalApiSession(BaseSession):
    """Answers Bot API calls locally and keeps every request."""

    def __init__(self) -> None:
        super().__init__()
        self.requests: list = []

    async def make_request(self, bot, method, timeout=None):
        self.requests.append(method)
        if isinstance(method, SendMessage):
            return Message(
                message_id=len(self.requests),
                date=datetime.now(timezone.utc),
                chat=Chat(id=method.chat_id, type="private"),
                text=method.text,
            )
        return True

    async def stream_content(self, url, headers=None, timeout=30, chunk_size=65536, raise_for_status=True):
        yield b""

    async def close(self) -> None:
        pass

    def texts(self) -> list[str]:
        return [m.text for m in self.requests if isinstance(m, SendMessage)]


class Harness:
    def __init__(self, bot: Bot, dp, api: LocalApiSession) -> None:
        self.bot = bot
        self.dp = dp
        self.api = api
        self._ids = itertools.count(1)

    async def _feed(self, payload: dict) -> None:
        update = Update.model_validate({"update_id": next(self._ids), **payload}, context={"bot": self.bot})
        await self.dp.feed_update(self.bot, update)

    async def text(self, tg_id: int, text: str) -> None:
        msg = _message(tg_id, text=text)
        if text.startswith("/"):
            msg["entities"] = [{"type": "bot_command", "offset": 0, "length": len(text.split()[0])}]
        await self._feed({"message": msg})

    async def document(self, tg_id: int, file_id: str) -> None:
        doc = {"file_id": file_id, "file_unique_id": f"u-{file_id}", "file_name": "notes.pdf"}
        await self._feed({"message": _message(tg_id, document=doc)})

    async def tap(self, tg_id: int, data: str, *, message: dict | None = None) -> None:
        await self._feed(
            {
                "callback_query": {
                    "id": f"cb{tg_id}-{data}",
                    "from": _user(tg_id),
                    "chat_instance": "ci",
                    "data": data,
                    "message": message or _message(tg_id, text="menu"),
                }
            }
        )


def _user(tg_id: int) -> dict:
    return {"id": tg_id, "is_bot": False, "first_name": f"U{tg_id}"}


def _message(tg_id: int, **fields) -> dict:
    return {
        "message_id": 77,
        "date": DATE,
        "chat": {"id": tg_id, "type": "private"},
        "from": _user(tg_id),
        **fields,
    }


@pytest.fixture
async def bot_app(engine, notifier, monkeypatch):
    monkeypatch.setattr(db_session, "_sessionmaker", async_sessionmaker(engine, expire_on_commit=False))
    api = LocalApiSession()
    bot = Bot(token="123456:TEST", session=api, default=DefaultBotProperties(parse_mode=ParseMode.HTML))
    dp = build_dispatcher(bot)
    dp["notifier"] = notifier
    yield Harness(bot, dp, api)
    await bot.session.close()
    # module-level routers can only be attached to one Dispatcher at a time
    for router in dp.sub_routers:
        router._parent_router = None


async def _pending_payment(payments, session):
    await make_user(session, REFERRER, is_verified=True)
    await make_registered(session, STUDENT, referrer_id=REFERRER)
    await payments.request_payment(session, tg_id=STUDENT)
    res = await payments.submit_proof(session, tg_id=STUDENT, proof=("proof-file", "photo"))
    return res.data["payment"]


def _review_message(payment_id: int) -> dict:
    photo = [{"file_id": "proof-file", "file_unique_id": "p1", "width": 720, "height": 1280}]
    return _message(ADMIN_ID, photo=photo, caption=f"New payment #{payment_id}")


async def test_approve_button_stamps_the_review_caption(bot_app, payments, session, notifier):
    payment = await _pending_payment(payments, session)

    await bot_app.tap(ADMIN_ID, f"pay:approve:{payment.id}", message=_review_message(payment.id))

    edits = [c for c in notifier.calls if c[0] == "edit_caption"]
    assert len(edits) == 1
    chat_id, (message_id, caption) = edits[0][1], edits[0][2]
    assert (chat_id, message_id) == (ADMIN_ID, 77)
    assert caption.startswith(f"New payment #{payment.id}\n\n✅ <b>Approved</b> by <code>{ADMIN_ID}</code> at ")
    assert f"🎁 Referrer <code>{REFERRER}</code> credited" in caption

    student = await reload(session, STUDENT)
    assert (student.is_verified, student.payment_status) == (True, PaymentStatus.APPROVED)
    assert (await reload(session, REFERRER)).referral_count == 1
    assert any("approved" in t for t in notifier.texts_to(STUDENT))


async def test_second_admin_on_the_same_proof_changes_nothing(bot_app, payments, session, notifier):
    payment = await _pending_payment(payments, session)

    await bot_app.tap(ADMIN_ID, f"pay:approve:{payment.id}", message=_review_message(payment.id))
    await bot_app.tap(OTHER_ADMIN_ID, f"pay:reject:{payment.id}", message=_review_message(payment.id))

    assert len([c for c in notifier.calls if c[0] == "edit_caption"]) == 1
    assert (await reload(session, STUDENT)).is_verified is True
    assert (await reload(session, REFERRER)).rewards == 30


async def test_cancel_during_payout_edit_leaves_registration_alone(bot_app, session):
    await make_registered(
        session,
        STUDENT,
        is_verified=True,
        payment_status=PaymentStatus.APPROVED,
        flow_state=FlowState.PAYOUT_ACCOUNT_NUMBER,
        flow_data=json.dumps({"method": "telebirr"}),
    )

    await bot_app.text(STUDENT, "/cancel")

    assert bot_app.api.texts() == ["❌ Payment info update cancelled."]
    user = await reload(session, STUDENT)
    assert user.flow_state is None and user.flow_data is None
    assert (user.registration_step, user.name, user.is_verified) == (RegStep.COMPLETED, f"Student {STUDENT}", True)


async def test_cancel_mid_registration_still_reaches_registration(bot_app, session):
    await make_user(session, STUDENT, registration_step=RegStep.AWAITING_NAME)

    await bot_app.text(STUDENT, "/cancel")

    assert bot_app.api.texts() == ["❌ Registration cancelled. You can start again any time."]
    assert (await reload(session, STUDENT)).registration_step == RegStep.NOT_STARTED


async def test_admin_messages_one_user(bot_app, session, notifier):
    await make_user(session, STUDENT, name="Abebe")

    await bot_app.tap(ADMIN_ID, "bc:aud:user")
    await bot_app.text(ADMIN_ID, "not-a-number")
    await bot_app.text(ADMIN_ID, "9999")
    await bot_app.text(ADMIN_ID, str(STUDENT))
    await bot_app.text(ADMIN_ID, "Your class starts on Monday")

    texts = bot_app.api.texts()
    assert texts[0].startswith("❌ Invalid user ID")
    assert texts[1].startswith("❌ User not found")
    assert "Abebe" in texts[2]
    assert texts[3] == f"✅ Message delivered to <code>{STUDENT}</code>."
    assert notifier.texts_to(STUDENT) == ["Your class starts on Monday"]
    assert (await reload(session, ADMIN_ID)).flow_state is None


async def test_admin_uploads_trial_document_and_student_opens_it(bot_app, session, notifier):
    await make_user(session, STUDENT)

    await bot_app.text(ADMIN_ID, "/addtrial Chemistry unit 1")
    await bot_app.document(ADMIN_ID, "DOC-CHEM")

    materials = await repo.list_trial_materials(session)
    assert [(m.title, m.kind, m.file_id) for m in materials] == [("Chemistry unit 1", "document", "DOC-CHEM")]
    # the upload was not taken as a payment proof
    assert await repo.payments_by_status(session, PaymentStatus.PENDING) == []

    await bot_app.text(STUDENT, BTN_TRIAL)
    assert "Select a material" in bot_app.api.texts()[-1]

    await bot_app.tap(STUDENT, f"trial:view:{materials[0].id}")
    sent = [c for c in notifier.sent_to(STUDENT) if c[0] == "send_document"]
    assert len(sent) == 1
    assert sent[0][2][0] == "DOC-CHEM"
    assert "Chemistry unit 1" in sent[0][2][1]
