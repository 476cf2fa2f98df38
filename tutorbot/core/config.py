import os
from dataclasses import dataclass


def _env_bool(name: str, default: bool) -> bool:
    v = os.getenv(name)
    if v is None:
        return default
    return v.strip().lower() in ("1", "true", "yes", "y", "on")


def _env_ids(name: str) -> tuple[int, ...]:
    raw = os.getenv(name) or ""
    ids = []
    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        if not part.lstrip("-").isdigit():
            raise RuntimeError(f"{name} must be a comma-separated list of numeric ids")
        ids.append(int(part))
    return tuple(ids)


def make_async_db_url(url: str) -> str:
    """Accepts Railway-style DATABASE_URL and returns sqlalchemy async url."""
    if url.startswith("postgresql+asyncpg://") or url.startswith("sqlite+aiosqlite://"):
        return url
    if url.startswith("postgres://"):
        return "postgresql+asyncpg://" + url[len("postgres://") :]
    if url.startswith("postgresql://"):
        return "postgresql+asyncpg://" + url[len("postgresql://") :]
    raise RuntimeError("Unsupported DATABASE_URL format")


@dataclass(frozen=True)
class Settings:
    bot_token: str
    bot_username: str
    database_url: str

    # admin access: ADMIN_IDS plus the optional owner
    admin_ids: tuple[int, ...] = ()
    owner_tg_id: int | None = None

    # Webhook mode is enabled when webhook_url is set; polling otherwise.
    webhook_url: str | None = None
    webhook_path: str = "/webhook"
    webhook_host: str = "0.0.0.0"
    webhook_port: int = 8080
    webhook_secret: str | None = None

    # bulk messaging
    broadcast_delay_ms: int = 100
    broadcast_progress_every: int = 10

    # where students send the registration fee
    payment_account_telebirr: str = "+251 9XX XXX XXXX"
    payment_account_cbebirr: str = "1000 XXXXXXXX"
    currency: str = "ETB"

    @property
    def all_admin_ids(self) -> tuple[int, ...]:
        ids = list(self.admin_ids)
        if self.owner_tg_id is not None and self.owner_tg_id not in ids:
            ids.append(self.owner_tg_id)
        return tuple(ids)


def _load_settings() -> Settings:
    bot_token = (os.getenv("BOT_TOKEN") or "").strip()
    if not bot_token:
        raise RuntimeError("BOT_TOKEN is missing")

    database_url_raw = os.getenv("DATABASE_URL", "").strip()
    if not database_url_raw:
        raise RuntimeError("DATABASE_URL is missing")

    owner_raw = os.getenv("OWNER_TG_ID", "").strip()
    if owner_raw and not owner_raw.isdigit():
        raise RuntimeError("OWNER_TG_ID is invalid (must be digits)")

    return Settings(
        bot_token=bot_token,
        bot_username=(os.getenv("BOT_USERNAME") or "tutorial_bot").strip().lstrip("@"),
        database_url=make_async_db_url(database_url_raw),
        admin_ids=_env_ids("ADMIN_IDS"),
        owner_tg_id=int(owner_raw) if owner_raw else None,
        webhook_url=(os.getenv("WEBHOOK_URL") or "").strip() or None,
        webhook_path=os.getenv("WEBHOOK_PATH", "/webhook").strip(),
        webhook_host=os.getenv("WEBHOOK_HOST", "0.0.0.0").strip(),
        webhook_port=int(os.getenv("WEBHOOK_PORT") or os.getenv("PORT") or "8080"),
        webhook_secret=(os.getenv("WEBHOOK_SECRET") or "").strip() or None,
        broadcast_delay_ms=int(os.getenv("BROADCAST_DELAY_MS", "100")),
        broadcast_progress_every=int(os.getenv("BROADCAST_PROGRESS_EVERY", "10")),
        payment_account_telebirr=os.getenv("PAYMENT_ACCOUNT_TELEBIRR", "+251 9XX XXX XXXX").strip(),
        payment_account_cbebirr=os.getenv("PAYMENT_ACCOUNT_CBEBIRR", "1000 XXXXXXXX").strip(),
        currency=os.getenv("CURRENCY", "ETB").strip(),
    )


settings = _load_settings()
