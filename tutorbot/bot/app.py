from __future__ import annotations

import asyncio
import logging

from aiogram import Bot, Dispatcher
from aiogram.client.default import DefaultBotProperties
from aiogram.enums import ParseMode
from aiogram.webhook.aiohttp_server import SimpleRequestHandler, setup_application
from aiohttp import web

from tutorbot.bot.admin import router as admin_router
from tutorbot.bot.admin_broadcast import router as admin_broadcast_router
from tutorbot.bot.admin_settings import router as admin_settings_router
from tutorbot.bot.admin_trial import router as admin_trial_router
from tutorbot.bot.errors import router as errors_router
from tutorbot.bot.handlers.fallback import router as fallback_router
from tutorbot.bot.handlers.payment import router as payment_router
from tutorbot.bot.handlers.profile import router as profile_router
from tutorbot.bot.handlers.referrals import router as referrals_router
from tutorbot.bot.handlers.registration import router as registration_router
from tutorbot.bot.handlers.start import router as start_router
from tutorbot.bot.handlers.trial import router as trial_router
from tutorbot.bot.middlewares import BlockedUserMiddleware, CorrelationIdMiddleware, RateLimitMiddleware
from tutorbot.bot.notifier import Notifier
from tutorbot.core.config import settings
from tutorbot.db.session import dispose_engine, init_engine, session_scope
from tutorbot.services.admin.stats import collect_stats
from tutorbot.services.config import config_service

log = logging.getLogger(__name__)


def build_dispatcher(bot: Bot) -> Dispatcher:
    # handlers receive `notifier` from workflow data
    dp = Dispatcher(notifier=Notifier(bot))
    for observer in (dp.message, dp.callback_query):
        observer.outer_middleware(BlockedUserMiddleware())
        observer.middleware(CorrelationIdMiddleware())
    dp.callback_query.middleware(RateLimitMiddleware(min_interval_sec=0.4))

    # Admin compose modes first, catch-all fallback last. Stateful text
    # handlers raise SkipHandler when the user's stored state is not theirs.
    dp.include_router(errors_router)
    dp.include_router(start_router)
    dp.include_router(admin_router)
    dp.include_router(admin_broadcast_router)
    dp.include_router(admin_settings_router)
    dp.include_router(admin_trial_router)
    dp.include_router(registration_router)
    dp.include_router(payment_router)
    dp.include_router(referrals_router)
    dp.include_router(profile_router)
    dp.include_router(trial_router)
    dp.include_router(fallback_router)

    dp.startup.register(on_startup)
    dp.shutdown.register(on_shutdown)
    return dp


async def on_startup(bot: Bot) -> None:
    init_engine(settings.database_url)
    async with session_scope() as session:
        await config_service.refresh(session)
    if settings.webhook_url:
        await bot.set_webhook(
            url=settings.webhook_url.rstrip("/") + settings.webhook_path,
            secret_token=settings.webhook_secret,
            drop_pending_updates=False,
        )
    log.info("bot_start", extra={"op": "webhook" if settings.webhook_url else "polling"})


async def on_shutdown(bot: Bot) -> None:
    await dispose_engine()
    log.info("bot_stop")


async def health(request: web.Request) -> web.Response:
    async with session_scope() as session:
        stats = await collect_stats(session)
    return web.json_response({"status": "ok", **stats.as_dict()})


def build_web_app(bot: Bot, dp: Dispatcher) -> web.Application:
    app = web.Application()
    SimpleRequestHandler(dispatcher=dp, bot=bot, secret_token=settings.webhook_secret).register(
        app, path=settings.webhook_path
    )
    app.router.add_get("/health", health)
    setup_application(app, dp, bot=bot)
    return app


async def run_bot() -> None:
    bot = Bot(
        token=settings.bot_token,
        default=DefaultBotProperties(parse_mode=ParseMode.HTML),
    )
    dp = build_dispatcher(bot)

    if not settings.webhook_url:
        await bot.delete_webhook(drop_pending_updates=False)
        await dp.start_polling(bot)
        return

    runner = web.AppRunner(build_web_app(bot, dp))
    await runner.setup()
    site = web.TCPSite(runner, host=settings.webhook_host, port=settings.webhook_port)
    await site.start()
    log.info("webhook_listening", extra={"op": f"{settings.webhook_host}:{settings.webhook_port}"})
    try:
        await asyncio.Event().wait()
    finally:
        await runner.cleanup()
