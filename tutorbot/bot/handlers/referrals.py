from __future__ import annotations

from aiogram import F, Router
from aiogram.filters import Command
from aiogram.types import Message

from tutorbot import repo
from tutorbot.bot.keyboards import BTN_INVITE, BTN_LEADERBOARD, BTN_REFERRALS
from tutorbot.bot.ui import h, main_menu, money
from tutorbot.db.session import session_scope
from tutorbot.services.config import check_feature, config_service
from tutorbot.services.referrals.service import referral_service

router = Router()

_MEDALS = {1: "🥇", 2: "🥈", 3: "🥉"}


async def _gate(message: Message):
    """Verified users only, and only while referrals are enabled. Returns the user or None."""
    feature = check_feature(config_service, "referral")
    async with session_scope() as session:
        user = await repo.get_user(session, message.from_user.id)
    if not feature.allowed:
        await message.answer(feature.message, reply_markup=main_menu(user), parse_mode="HTML")
        return None
    if not user or not user.is_verified:
        await message.answer(
            "🔒 The referral program is available to verified students only.\n"
            "Complete registration and payment first.",
            reply_markup=main_menu(user),
        )
        return None
    return user


@router.message(Command("invite"))
@router.message(F.text == BTN_INVITE)
async def on_invite(message: Message) -> None:
    user = await _gate(message)
    if user is None:
        return

    reward = config_service.get_int("referral_reward")
    minimum = config_service.get_int("min_withdrawal_amount")
    goal = config_service.get_int("min_referrals_withdraw")
    can_withdraw = user.rewards >= minimum and user.rewards > 0
    link = referral_service.referral_link(user.tg_id)

    await message.answer(
        "🎁 <b>Invite & Earn</b>\n\n"
        f"Share your personal link:\n<code>{link}</code>\n\n"
        f"👥 Verified referrals: <b>{user.referral_count}</b> (goal: {goal})\n"
        f"💰 Balance: <b>{money(user.rewards)}</b>\n"
        f"🏆 Lifetime earnings: <b>{money(user.total_rewards)}</b>\n\n"
        f"You earn <b>{money(reward)}</b> when a friend you invited gets verified.\n"
        f"Minimum withdrawal: <b>{money(minimum)}</b>\n"
        + ("✅ You can withdraw now from 👤 My Profile." if can_withdraw else "⏳ Keep inviting to unlock withdrawal."),
        parse_mode="HTML",
        disable_web_page_preview=True,
    )


@router.message(Command("leaderboard"))
@router.message(F.text == BTN_LEADERBOARD)
async def on_leaderboard(message: Message) -> None:
    user = await _gate(message)
    if user is None:
        return

    async with session_scope() as session:
        top = await referral_service.top_referrers(session)

    if not top:
        await message.answer("🏆 No referrals yet. Be the first on the leaderboard!")
        return

    lines = ["🏆 <b>Top referrers</b>", ""]
    for pos, u in enumerate(top, start=1):
        mark = _MEDALS.get(pos, f"{pos}.")
        me = " ← you" if u.tg_id == user.tg_id else ""
        lines.append(f"{mark} {h(u.display_name)}: <b>{u.referral_count}</b>{me}")
    await message.answer("\n".join(lines), parse_mode="HTML")


@router.message(Command("referrals"))
@router.message(F.text == BTN_REFERRALS)
async def on_my_referrals(message: Message) -> None:
    user = await _gate(message)
    if user is None:
        return

    async with session_scope() as session:
        refs = await referral_service.referrals_of(session, user.tg_id)

    if not refs:
        await message.answer("👥 Nobody has joined with your link yet. Share it from 🎁 Invite & Earn!")
        return

    lines = [f"👥 <b>Your referrals ({len(refs)})</b>", ""]
    for u in refs:
        status = "✅" if u.is_verified else "⏳"
        lines.append(f"{status} {h(u.display_name)}")
    lines += ["", "✅ verified (rewarded)  ⏳ not verified yet"]
    await message.answer("\n".join(lines), parse_mode="HTML")
