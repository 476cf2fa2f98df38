from __future__ import annotations

import asyncio
import logging
import subprocess
import sys

from tutorbot.bot.app import run_bot
from tutorbot.core.logging import setup_logging

log = logging.getLogger(__name__)


def _run_alembic_upgrade_head() -> None:
    """Apply migrations at boot; the bot refuses to start on a stale schema."""
    subprocess.check_call([sys.executable, "-m", "alembic", "upgrade", "head"])
    log.info("alembic_upgraded")


def main() -> None:
    setup_logging()
    _run_alembic_upgrade_head()
    asyncio.run(run_bot())


if __name__ == "__main__":
    main()
