from datetime import datetime, timezone, timedelta


EAT = timezone(timedelta(hours=3))


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def today_start_utc(now: datetime | None = None) -> datetime:
    """Midnight of the current day in Addis Ababa time, as UTC."""
    now = now or utcnow()
    local = now.astimezone(EAT).replace(hour=0, minute=0, second=0, microsecond=0)
    return local.astimezone(timezone.utc)


def fmt_dt(dt: datetime | None) -> str:
    if not dt:
        return "—"
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(EAT).strftime("%d.%m.%Y %H:%M EAT")
