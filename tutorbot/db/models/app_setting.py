from __future__ import annotations

from sqlalchemy import Column, DateTime, String, Text

from tutorbot.core.time import utcnow
from tutorbot.db.base import Base


class AppSetting(Base):
    """Small KV storage for runtime-tunable settings."""

    __tablename__ = "app_settings"

    key = Column(String(64), primary_key=True)
    value = Column(Text, nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=True)

    def touch(self) -> None:
        self.updated_at = utcnow()
