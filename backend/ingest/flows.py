"""Entry flows: poll-for-new, day backfill and contest resync.

Each flow opens its own collaborators (game service connection, database,
blob storage, HTTP client) and closes them when it ends, whether it succeeds
or fails.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING

import httpx
import structlog

from ingest.connection import open_connection
from ingest.contests import ContestRegistry
from ingest.pipeline import IngestPipeline, backfill_days
from records.codec import RecordCodec
from shared.db import Database, SqliteMatchRepository, namespaced_path
from shared.storage import LocalBlobStorage

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from ingest.connection import GameServiceConnection
    from ingest.settings import IngestSettings

logger = structlog.get_logger()

ConnectFn = Callable[["IngestSettings"], "Awaitable[GameServiceConnection | None]"]


def load_codec(settings: IngestSettings) -> RecordCodec:
    """Build the record codec from the schema definition file."""
    definition = Path(settings.schema_path).read_bytes()
    return RecordCodec(definition, settings.schema_version)


async def connect_gateway(settings: IngestSettings) -> GameServiceConnection | None:
    return await open_connection(
        settings.gateway_url,
        load_codec(settings),
        response_timeout=settings.response_timeout_seconds,
    )


@dataclass
class IngestSession:
    pipeline: IngestPipeline
    repository: SqliteMatchRepository
    storage: LocalBlobStorage


@asynccontextmanager
async def ingest_session(
    settings: IngestSettings,
    connect: ConnectFn = connect_gateway,
    db_suffix: str = "",
) -> AsyncIterator[IngestSession | None]:
    """Open the collaborators of one flow. Yields None if the game service is unreachable."""
    connection = await connect(settings)
    if connection is None:
        yield None
        return

    db = Database(namespaced_path(settings.database_path, db_suffix))
    try:
        db.connect()
        repository = SqliteMatchRepository(db)
        async with httpx.AsyncClient(timeout=settings.download_timeout_seconds) as http_client:
            pipeline = IngestPipeline(
                connection,
                repository,
                http_client,
                pacing_seconds=settings.pacing_seconds,
                reconnect_delay=settings.reconnect_delay_seconds,
                download_attempts=settings.download_attempts,
                download_interval=settings.download_interval_seconds,
                download_timeout=settings.download_timeout_seconds,
                dedup_batch_size=settings.dedup_batch_size,
            )
            yield IngestSession(pipeline=pipeline, repository=repository, storage=LocalBlobStorage(settings.storage_dir))
    finally:
        db.close()
        await connection.close()


async def run_poll(settings: IngestSettings, connect: ConnectFn = connect_gateway) -> str | None:
    """Ingest matches that finished since the previous poll."""
    async with ingest_session(settings, connect) as session:
        if session is None:
            return None
        return await session.pipeline.poll_for_new(session.storage, settings.live_filter_ids)


async def run_day_backfill(
    settings: IngestSettings,
    connect: ConnectFn = connect_gateway,
    now: datetime | None = None,
) -> str | None:
    """Reprocess the day buckets from shortly before the newest stored match up to today."""
    async with ingest_session(settings, connect) as session:
        if session is None:
            return None
        latest = await session.repository.get_latest_record()
        days = list(
            backfill_days(
                latest.start_time if latest is not None else None,
                now or datetime.now(tz=UTC),
                settings.tzinfo,
            ),
        )
        logger.info("starting day backfill", days=len(days))
        saved = await session.pipeline.sync_days(session.storage, days)
        return f"{saved} records saved"


async def run_contest_resync(
    settings: IngestSettings,
    connect: ConnectFn = connect_gateway,
    registry: ContestRegistry | None = None,
) -> str | None:
    """Resync one configured contest (settings.contest_id) or all of them, each into its own store."""
    if registry is None:
        registry = ContestRegistry(Path(settings.contests_config) if settings.contests_config else None)
    if settings.contest_id is not None:
        contests = [registry.get_contest(settings.contest_id)]
    else:
        contests = registry.get_contests()

    saved = 0
    for contest in contests:
        async with ingest_session(settings, connect, db_suffix=contest.suffix) as session:
            if session is None:
                return None
            with structlog.contextvars.bound_contextvars(contest_id=contest.contest_id):
                saved += len(await session.pipeline.sync_contest(contest.contest_id))
    return f"{saved} records saved"
