from tutorbot.core.config import settings


def is_admin(tg_id: int) -> bool:
    return int(tg_id) in set(settings.all_admin_ids)


def admin_ids() -> tuple[int, ...]:
    return settings.all_admin_ids
