"""Process entry: run the ingestion flow selected by INGEST_MODE."""

from __future__ import annotations

import asyncio
import sys
from typing import TYPE_CHECKING

import structlog

from ingest.flows import connect_gateway, run_contest_resync, run_day_backfill, run_poll
from ingest.settings import IngestMode, IngestSettings
from shared.logging import setup_logging

if TYPE_CHECKING:
    from ingest.flows import ConnectFn

logger = structlog.get_logger()

_FLOWS = {
    IngestMode.POLL: run_poll,
    IngestMode.BACKFILL: run_day_backfill,
    IngestMode.CONTEST: run_contest_resync,
}


async def main(settings: IngestSettings | None = None, connect: ConnectFn = connect_gateway) -> int:
    """Run one flow and return the process exit code."""
    settings = settings or IngestSettings()
    setup_logging(log_dir=settings.log_dir)
    logger.info("ingestion started", mode=settings.mode)

    try:
        outcome = await _FLOWS[settings.mode](settings, connect)
    except Exception:
        logger.exception("ingestion failed", mode=settings.mode)
        return 1

    if outcome is None:
        logger.warning("ingestion skipped, game service unavailable", mode=settings.mode)
    else:
        logger.info("ingestion finished", mode=settings.mode, outcome=outcome)
    return 0


def run() -> None:
    sys.exit(asyncio.run(main()))
