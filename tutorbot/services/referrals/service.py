from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from tutorbot import repo
from tutorbot.core.config import settings
from tutorbot.db.models import User
from tutorbot.services.config import ConfigService, check_feature, config_service
from tutorbot.services.result import Result

log = logging.getLogger(__name__)

REF_PREFIX = "ref_"
LEADERBOARD_SIZE = 10

# attribution outcomes
DISABLED = "disabled"
NO_PAYLOAD = "no_payload"
SELF = "self"
ALREADY_LINKED = "already_linked"
UNKNOWN_REFERRER = "unknown_referrer"
LINKED = "linked"


def parse_start_payload(payload: str | None) -> int | None:
    """`ref_<tg_id>` -> tg_id. Anything else -> None."""
    payload = (payload or "").strip()
    if not payload.startswith(REF_PREFIX):
        return None
    raw = payload[len(REF_PREFIX):].strip()
    if not raw.isdigit():
        return None
    return int(raw)


class ReferralService:
    def __init__(self, config: ConfigService) -> None:
        self.config = config

    def referral_link(self, tg_id: int, *, bot_username: str | None = None) -> str:
        # Derived, never stored: always regenerable from the bot identity.
        username = (bot_username or settings.bot_username).lstrip("@")
        return f"https://t.me/{username}?start={REF_PREFIX}{int(tg_id)}"

    async def attach_referrer(self, session: AsyncSession, *, tg_id: int, payload: str | None) -> Result:
        """Links `tg_id` to the referrer named in a /start payload.

        Only links. Rewards are credited when the referred user's payment is approved.
        The caller must have created the user row already (see repo.ensure_user).
        """
        referrer_id = parse_start_payload(payload)
        if referrer_id is None:
            return Result(NO_PAYLOAD)

        feature = check_feature(self.config, "referral")
        if not feature.allowed:
            return Result(DISABLED, feature.message)

        if referrer_id == int(tg_id):
            return Result(SELF)

        user = await repo.get_user(session, tg_id)
        if user is not None and user.referrer_id is not None:
            return Result(ALREADY_LINKED)

        referrer = await repo.get_user(session, referrer_id)
        if referrer is None:
            return Result(UNKNOWN_REFERRER)

        if not await repo.link_referrer_if_unset(session, tg_id, referrer_id):
            return Result(ALREADY_LINKED)

        log.info("referral_linked", extra={"tg_id": tg_id, "referrer_id": referrer_id})
        return Result(LINKED, data={"referrer_id": referrer_id})

    async def credit_referrer(self, session: AsyncSession, *, referred: User) -> tuple[int, int] | None:
        """Credits the referrer of `referred` once. Returns (referrer_id, amount) or None.

        Must only be called by the code path that verified the referred user
        (the is_verified False -> True update).
        """
        if not referred.referrer_id:
            return None
        referrer_id = int(referred.referrer_id)
        amount = self.config.get_int("referral_reward")

        credited = await repo.increment_user(
            session,
            referrer_id,
            referral_count=1,
            rewards=amount,
            total_rewards=amount,
        )
        if not credited:
            log.warning("referrer_missing", extra={"tg_id": referred.tg_id, "referrer_id": referrer_id})
            return None

        log.info("referral_rewarded", extra={"tg_id": referred.tg_id, "referrer_id": referrer_id})
        return referrer_id, amount

    async def top_referrers(self, session: AsyncSession, n: int = LEADERBOARD_SIZE) -> list[User]:
        users = await repo.top_users_by(session, "referral_count", n)
        return [u for u in users if (u.referral_count or 0) > 0]

    async def referrals_of(self, session: AsyncSession, tg_id: int) -> list[User]:
        return await repo.query_users_by(session, "referrer_id", int(tg_id))


referral_service = ReferralService(config_service)
