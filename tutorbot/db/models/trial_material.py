from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, DateTime, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from tutorbot.core.time import utcnow
from tutorbot.db.base import Base


class TrialMaterial(Base):
    """Free sample shown to anyone while trial materials are enabled.

    kind "document": file_id holds the Telegram document.
    kind "text": content holds the HTML text.
    """

    __tablename__ = "trial_materials"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    title: Mapped[str] = mapped_column(String(128), nullable=False)
    kind: Mapped[str] = mapped_column(String(16), nullable=False)
    file_id: Mapped[str | None] = mapped_column(String(256), nullable=True)
    content: Mapped[str | None] = mapped_column(Text, nullable=True)
    added_by: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )
