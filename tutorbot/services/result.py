from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class Result:
    """Outcome of a workflow step: a short code plus whatever the caller renders."""

    code: str
    message: str | None = None
    data: dict[str, Any] = field(default_factory=dict)
