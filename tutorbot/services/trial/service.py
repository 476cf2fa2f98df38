from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from tutorbot import repo
from tutorbot.core.config import settings
from tutorbot.services.config import ConfigService, check_feature, config_service
from tutorbot.services.result import Result

log = logging.getLogger(__name__)

KINDS = ("document", "text")
TITLE_MAX_LEN = 128

# outcome codes
DISABLED = "disabled"
LISTED = "listed"
FOUND = "found"
NOT_FOUND = "not_found"
FORBIDDEN = "forbidden"
INVALID = "invalid"
ADDED = "added"
DELETED = "deleted"


class TrialService:
    """Free trial materials: students browse them, admins add and delete them."""

    def __init__(self, config: ConfigService) -> None:
        self.config = config

    async def list_materials(self, session: AsyncSession) -> Result:
        feature = check_feature(self.config, "trial")
        if not feature.allowed:
            return Result(DISABLED, feature.message)
        materials = await repo.list_trial_materials(session)
        return Result(LISTED, data={"materials": list(materials)})

    async def get_material(self, session: AsyncSession, *, material_id: int) -> Result:
        feature = check_feature(self.config, "trial")
        if not feature.allowed:
            return Result(DISABLED, feature.message)
        material = await repo.get_trial_material(session, material_id)
        if material is None:
            return Result(NOT_FOUND)
        return Result(FOUND, data={"material": material})

    async def add_material(
        self,
        session: AsyncSession,
        *,
        admin_id: int,
        title: str | None,
        file_id: str | None = None,
        content: str | None = None,
    ) -> Result:
        """Exactly one of `file_id` (a document) or `content` (text) is stored."""
        if int(admin_id) not in settings.all_admin_ids:
            return Result(FORBIDDEN)
        title = (title or "").strip()
        content = (content or "").strip() or None
        if not title or len(title) > TITLE_MAX_LEN:
            return Result(INVALID)
        if bool(file_id) == bool(content):
            return Result(INVALID)

        material = await repo.add_trial_material(
            session,
            title=title,
            kind="document" if file_id else "text",
            file_id=file_id,
            content=content,
            added_by=int(admin_id),
        )
        await session.commit()
        log.info("trial_material_added", extra={"admin_id": admin_id, "key": str(material.id)})
        return Result(ADDED, data={"material": material})

    async def delete_material(self, session: AsyncSession, *, admin_id: int, material_id: int) -> Result:
        if int(admin_id) not in settings.all_admin_ids:
            return Result(FORBIDDEN)
        if not await repo.delete_trial_material(session, material_id):
            return Result(NOT_FOUND)
        await session.commit()
        log.info("trial_material_deleted", extra={"admin_id": admin_id, "key": str(material_id)})
        return Result(DELETED)


trial_service = TrialService(config_service)
