from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from tutorbot import repo
from tutorbot.core.errors import ConfigError

log = logging.getLogger(__name__)


# Every runtime-tunable key with its default. The type of the default is the
# type of the setting: stored values are coerced to it on read and on write.
DEFAULTS: dict[str, int | bool | str] = {
    # financial
    "registration_fee": 500,
    "referral_reward": 30,
    "min_referrals_withdraw": 4,
    "min_withdrawal_amount": 120,
    # feature toggles
    "maintenance_mode": False,
    "registration_enabled": True,
    "referral_enabled": True,
    "withdrawal_enabled": True,
    "trial_enabled": True,
    # messages
    "maintenance_message": "🚧 The bot is under maintenance. Please check back later.",
    "registration_disabled_message": "❌ Registration is temporarily closed.",
    "referral_disabled_message": "❌ The referral program is currently paused.",
    "withdrawal_disabled_message": "❌ Withdrawals are temporarily suspended.",
    "trial_disabled_message": "❌ Trial materials are currently unavailable.",
    "welcome_message": (
        "🎯 <b>Tutorial Registration Bot</b>\n\n"
        "📚 Register for comprehensive tutorials\n"
        "💰 Registration fee: {fee}\n"
        "🎁 Earn {reward} per verified referral\n\n"
        "Choose an option below:"
    ),
    "reg_start": "👤 <b>Enter your full name</b>\n\nPlease type your full name:",
    "reg_name_saved": (
        "✅ Name saved: <b>{name}</b>\n\n"
        "📱 <b>Share your phone number</b>\n\n"
        "Please share your phone number using the button below:"
    ),
    "reg_phone_saved": (
        "✅ Phone saved: <b>{phone}</b>\n\n"
        "🎓 <b>Select your stream</b>\n\n"
        "Choose your field of study:"
    ),
    "reg_success": (
        "🎉 <b>Registration complete!</b>\n\n"
        "Next step: press <b>💰 Pay Fee</b> and upload your payment screenshot.\n"
        "You will be notified once an admin approves it."
    ),
}

CATEGORIES: dict[str, tuple[str, ...]] = {
    "💰 Financial": ("registration_fee", "referral_reward", "min_referrals_withdraw", "min_withdrawal_amount"),
    "⚡ Feature toggles": (
        "registration_enabled",
        "referral_enabled",
        "withdrawal_enabled",
        "trial_enabled",
        "maintenance_mode",
    ),
    "💬 Messages": (
        "welcome_message",
        "reg_start",
        "reg_name_saved",
        "reg_phone_saved",
        "reg_success",
        "maintenance_message",
        "registration_disabled_message",
        "referral_disabled_message",
        "withdrawal_disabled_message",
        "trial_disabled_message",
    ),
}

_TRUE = ("1", "true", "yes", "y", "on")
_FALSE = ("0", "false", "no", "n", "off")
_PLACEHOLDER_RE = re.compile(r"\{(\w+)\}")


def coerce(default: Any, raw: Any) -> int | bool | str:
    """Coerce a raw (usually stored text) value to the type of `default`."""
    # bool first: bool is a subclass of int
    if isinstance(default, bool):
        if isinstance(raw, bool):
            return raw
        s = str(raw).strip().lower()
        if s in _TRUE:
            return True
        if s in _FALSE:
            return False
        raise ConfigError(f"expected a boolean, got {raw!r}")
    if isinstance(default, int):
        if isinstance(raw, int) and not isinstance(raw, bool):
            return raw
        s = str(raw).strip()
        if not re.fullmatch(r"-?\d+", s):
            raise ConfigError(f"expected an integer, got {raw!r}")
        return int(s)
    return "" if raw is None else str(raw)


def _dump(value: int | bool | str) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class ConfigService:
    """Runtime settings: stored overrides on top of DEFAULTS, cached in-process.

    Reads never touch the database; `refresh()` reloads the cache and `set()`
    writes one key and refreshes.
    """

    def __init__(self, defaults: dict[str, int | bool | str] | None = None) -> None:
        self._defaults = dict(DEFAULTS if defaults is None else defaults)
        self._values: dict[str, int | bool | str] = dict(self._defaults)

    @property
    def keys(self) -> tuple[str, ...]:
        return tuple(self._defaults)

    async def refresh(self, session: AsyncSession) -> None:
        stored = await repo.get_all_settings(session)
        values = dict(self._defaults)
        for key, raw in stored.items():
            if key not in self._defaults:
                log.warning("config_unknown_key", extra={"key": key})
                continue
            try:
                values[key] = coerce(self._defaults[key], raw)
            except ConfigError:
                log.warning("config_bad_value", extra={"key": key})
        self._values = values

    def get(self, key: str) -> int | bool | str:
        if key not in self._defaults:
            raise ConfigError(f"unknown setting: {key}")
        return self._values[key]

    def get_int(self, key: str) -> int:
        v = self.get(key)
        if isinstance(v, bool) or not isinstance(v, int):
            raise ConfigError(f"{key} is not numeric")
        return v

    def get_bool(self, key: str) -> bool:
        v = self.get(key)
        if not isinstance(v, bool):
            raise ConfigError(f"{key} is not a toggle")
        return v

    def get_str(self, key: str) -> str:
        return str(self.get(key))

    def render(self, key: str, **variables: Any) -> str:
        """Template with `{placeholder}` substitution; unknown placeholders stay as-is."""
        template = self.get_str(key)

        def _sub(m: re.Match) -> str:
            name = m.group(1)
            return str(variables[name]) if name in variables else m.group(0)

        return _PLACEHOLDER_RE.sub(_sub, template)

    async def set(self, session: AsyncSession, key: str, raw: Any) -> int | bool | str:
        if key not in self._defaults:
            raise ConfigError(f"unknown setting: {key}")
        value = coerce(self._defaults[key], raw)
        await repo.put_setting(session, key, _dump(value))
        await session.commit()
        await self.refresh(session)
        log.info("config_updated", extra={"key": key})
        return value

    def snapshot(self) -> dict[str, int | bool | str]:
        return dict(self._values)


@dataclass(frozen=True)
class FeatureStatus:
    allowed: bool
    message: str | None = None


_FEATURES = {
    "registration": ("registration_enabled", "registration_disabled_message"),
    "referral": ("referral_enabled", "referral_disabled_message"),
    "withdrawal": ("withdrawal_enabled", "withdrawal_disabled_message"),
    "trial": ("trial_enabled", "trial_disabled_message"),
}


def check_feature(config: ConfigService, feature: str) -> FeatureStatus:
    """Maintenance mode blocks everything, then the feature's own toggle."""
    if config.get_bool("maintenance_mode"):
        return FeatureStatus(False, config.get_str("maintenance_message"))
    try:
        toggle, message_key = _FEATURES[feature]
    except KeyError:
        raise ConfigError(f"unknown feature: {feature}") from None
    if not config.get_bool(toggle):
        return FeatureStatus(False, config.get_str(message_key))
    return FeatureStatus(True)


config_service = ConfigService()
