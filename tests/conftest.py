from __future__ import annotations

import os

# settings are read from the environment at import time
os.environ.setdefault("BOT_TOKEN", "123456:TEST")
os.environ.setdefault("BOT_USERNAME", "tutorial_test_bot")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("ADMIN_IDS", "900,901")

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from tutorbot import repo
from tutorbot.db import models  # noqa: F401
from tutorbot.db.base import Base
from tutorbot.db.models import User
from tutorbot.services.config import ConfigService
from tutorbot.services.payments.service import PaymentService
from tutorbot.services.referrals.service import ReferralService
from tutorbot.services.registration.service import RegistrationService
from tutorbot.services.trial.service import TrialService
from tutorbot.services.withdrawals.service import WithdrawalService

ADMIN_ID = 900
OTHER_ADMIN_ID = 901


class FakeNotifier:
    """Records outbound calls. Sends to ids in `unreachable` fail like a blocked bot."""

    def __init__(self, unreachable=()):
        self.unreachable = set(unreachable)
        self.calls: list[tuple] = []
        self._next_id = 1000

    def _sent(self, op, chat_id, *args, **kwargs):
        self.calls.append((op, chat_id, args, kwargs))
        if chat_id in self.unreachable:
            return None
        self._next_id += 1
        return self._next_id

    async def send_text(self, chat_id, text, *, reply_markup=None):
        return self._sent("send_text", chat_id, text, reply_markup=reply_markup)

    async def send_photo(self, chat_id, file_id, caption, *, reply_markup=None):
        return self._sent("send_photo", chat_id, file_id, caption, reply_markup=reply_markup)

    async def send_document(self, chat_id, file_id, caption, *, reply_markup=None):
        return self._sent("send_document", chat_id, file_id, caption, reply_markup=reply_markup)

    async def edit_text(self, chat_id, message_id, text, *, reply_markup=None):
        self.calls.append(("edit_text", chat_id, (message_id, text), {}))
        return True

    async def edit_caption(self, chat_id, message_id, caption):
        self.calls.append(("edit_caption", chat_id, (message_id, caption), {}))
        return True

    async def answer_callback(self, callback_id, text=None, *, show_alert=False):
        return True

    def sent_to(self, chat_id) -> list[tuple]:
        return [c for c in self.calls if c[1] == chat_id]

    def texts_to(self, chat_id) -> list[str]:
        return [c[2][0] for c in self.calls if c[1] == chat_id and c[0] == "send_text"]


@pytest.fixture
async def engine():
    eng = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
async def session(engine):
    sm = async_sessionmaker(engine, expire_on_commit=False)
    async with sm() as s:
        yield s


@pytest.fixture
def config():
    return ConfigService()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def registration(config):
    return RegistrationService(config)


@pytest.fixture
def referrals(config):
    return ReferralService(config)


@pytest.fixture
def payments(config, referrals):
    return PaymentService(config, referrals)


@pytest.fixture
def withdrawals(config):
    return WithdrawalService(config)


@pytest.fixture
def trial(config):
    return TrialService(config)


async def make_user(session, tg_id: int, **fields) -> User:
    user = await repo.set_user(session, tg_id, **fields)
    await session.commit()
    return user


async def reload(session, tg_id: int) -> User:
    return await session.get(User, tg_id, populate_existing=True)


async def make_registered(session, tg_id: int, **fields) -> User:
    """A user who finished registration and is ready to pay."""
    base = dict(
        first_name="Test",
        name=f"Student {tg_id}",
        phone="+251900000000",
        student_type="natural",
        payment_method="telebirr",
        registration_step="completed",
        payment_status="not_started",
    )
    base.update(fields)
    return await make_user(session, tg_id, **base)
