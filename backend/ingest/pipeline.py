"""Ingestion pipeline: discover match ids, fetch payloads, reconstruct and persist rounds.

Everything runs strictly one match at a time. Concurrent calls would overload
the game service, and sequential processing keeps the schema bookkeeping
free of races. Transient failures are contained in the fetch layer; any other
error (a reconstruction failure, an exhausted retry budget, a second
transport failure) aborts the running flow. Matches persisted before the
failure stay committed and are skipped by the existence filter on the next run.
"""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any

import structlog

from ingest.dedup import DEDUP_BATCH_SIZE, filter_unseen
from ingest.errors import ServiceError
from ingest.fetch import (
    DEFAULT_DOWNLOAD_ATTEMPTS,
    DEFAULT_DOWNLOAD_INTERVAL,
    DEFAULT_DOWNLOAD_TIMEOUT,
    DEFAULT_RECONNECT_DELAY,
    fetch_game_record,
    resolve_payload,
)
from ingest.models import LiveGame
from records.reconstruct import ShantenFn, reconstruct
from records.shanten import calculate_hand_shanten
from shared.dal import MatchHeader
from shared.storage import LIVE_GAMES_KEY, PENDING_IDS_KEY, day_bucket_key

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Iterable, Iterator, Sequence
    from datetime import date, tzinfo

    import httpx

    from ingest.connection import GameServiceConnection
    from shared.dal import MatchRepository
    from shared.storage import BlobStorage

logger = structlog.get_logger()

FETCH_GAME_LIVE_LIST = ".lq.Lobby.fetchGameLiveList"
FETCH_GAME_RECORDS_DETAIL = ".lq.Lobby.fetchGameRecordsDetail"
FETCH_CONTEST_BY_CONTEST_ID = ".lq.Lobby.fetchCustomizedContestByContestId"
FETCH_CONTEST_GAME_RECORDS = ".lq.Lobby.fetchCustomizedContestGameRecords"

DEFAULT_LIVE_FILTER_IDS = (216, 212)
DEFAULT_PACING_SECONDS = 1.0

# Backfill restarts this long before the newest stored match, so matches
# filed under the previous day bucket are not missed.
BACKFILL_OVERLAP = timedelta(hours=36)

DAY_PREFIX_FORMAT = "%y%m%d"


def day_prefix(day: date) -> str:
    """YYMMDD prefix of a day bucket."""
    return day.strftime(DAY_PREFIX_FORMAT)


def backfill_days(latest_start_time: int | None, now: datetime, tz: tzinfo = UTC) -> Iterator[date]:
    """Yield every calendar day from (latest start time - 36h) through `now`, in `tz`.

    Without a stored match only the current day is walked.
    """
    last_day = now.astimezone(tz).date()
    if latest_start_time is None:
        day = last_day
    else:
        day = (datetime.fromtimestamp(latest_start_time, tz=tz) - BACKFILL_OVERLAP).date()
    while day <= last_day:
        yield day
        day += timedelta(days=1)


async def fetch_live_games(
    connection: GameServiceConnection,
    filter_ids: Iterable[int] = DEFAULT_LIVE_FILTER_IDS,
) -> list[LiveGame]:
    """List live games across all filter partitions, in partition order."""
    games: list[LiveGame] = []
    for filter_id in filter_ids:
        response = await connection.call(FETCH_GAME_LIVE_LIST, filter_id=filter_id)
        games.extend(LiveGame.from_live_head(raw) for raw in response.get("live_list", []))
    return games


def file_day_buckets(storage: BlobStorage, headers: Iterable[MatchHeader]) -> None:
    """Merge resolved match headers into their `records/<YYMMDD>.json` buckets."""
    grouped: dict[str, list[MatchHeader]] = {}
    for header in headers:
        grouped.setdefault(header.day_prefix, []).append(header)

    for prefix, group in grouped.items():
        key = day_bucket_key(prefix)
        bucket = storage.get(key, {})
        for header in group:
            bucket[header.uuid] = header.model_dump()
        storage.set(key, bucket)
        logger.debug("filed day bucket", day=prefix, added=len(group), total=len(bucket))


class IngestPipeline:
    """Sequential fetch-reconstruct-persist loop over candidate match ids."""

    def __init__(
        self,
        connection: GameServiceConnection,
        repository: MatchRepository,
        http_client: httpx.AsyncClient,
        *,
        pacing_seconds: float = DEFAULT_PACING_SECONDS,
        reconnect_delay: float = DEFAULT_RECONNECT_DELAY,
        download_attempts: int = DEFAULT_DOWNLOAD_ATTEMPTS,
        download_interval: float = DEFAULT_DOWNLOAD_INTERVAL,
        download_timeout: float = DEFAULT_DOWNLOAD_TIMEOUT,
        dedup_batch_size: int = DEDUP_BATCH_SIZE,
        shanten: ShantenFn = calculate_hand_shanten,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._connection = connection
        self._repository = repository
        self._http = http_client
        self._pacing_seconds = pacing_seconds
        self._reconnect_delay = reconnect_delay
        self._download_attempts = download_attempts
        self._download_interval = download_interval
        self._download_timeout = download_timeout
        self._dedup_batch_size = dedup_batch_size
        self._shanten = shanten
        self._sleep = sleep
        # schema versions already ensured by this pipeline
        self._ensured_schemas: set[str] = set()

    async def process_batch(self, match_ids: Iterable[str]) -> list[str]:
        """Ingest every id not yet persisted, in ascending id order.

        Returns the ids whose rounds were saved. Materialized views are
        refreshed afterwards, even for an empty batch.
        """
        unseen = sorted(await filter_unseen(self._repository, match_ids, self._dedup_batch_size))
        logger.info("processing batch", matches=len(unseen))
        saved = []
        for match_id in unseen:
            if await self.process_match(match_id):
                saved.append(match_id)
                await self._sleep(self._pacing_seconds)
        await self._repository.refresh_views()
        return saved

    async def process_match(self, match_id: str) -> bool:
        """Fetch, reconstruct and persist one match. Returns False if it had no payload."""
        with structlog.contextvars.bound_contextvars(match_id=match_id):
            response = await fetch_game_record(
                self._connection,
                match_id,
                reconnect_delay=self._reconnect_delay,
                sleep=self._sleep,
            )
            data = await resolve_payload(
                response,
                self._http,
                attempts=self._download_attempts,
                interval=self._download_interval,
                timeout=self._download_timeout,
                sleep=self._sleep,
            )
            if data is None:
                logger.info("no payload in response, skipping")
                return False

            codec = self._connection.codec
            header = MatchHeader.from_record(response.get("head") or {"uuid": match_id})
            await self._repository.save_match_header(header, codec.version)
            if codec.version not in self._ensured_schemas:
                await self._repository.ensure_schema(codec.version, codec.definition)
                self._ensured_schemas.add(codec.version)

            rounds = reconstruct(match_id, data, codec, self._shanten)
            await self._repository.save_rounds(header, rounds)
            logger.info("match ingested", rounds=len(rounds), schema_version=codec.version)
            return True

    async def poll_for_new(
        self,
        storage: BlobStorage,
        filter_ids: Sequence[int] = DEFAULT_LIVE_FILTER_IDS,
    ) -> str:
        """Ingest matches that finished since the previous poll.

        A match that left the live list is finished. Finished ids join the
        persisted pending set until fetchGameRecordsDetail resolves them; the
        resolved ones are filed into day buckets and processed, the rest wait
        for the next poll.
        """
        previous_live: list[dict[str, Any]] = storage.get(LIVE_GAMES_KEY, [])
        pending: list[str] = storage.get(PENDING_IDS_KEY, [])

        live_games = await fetch_live_games(self._connection, filter_ids)
        live_ids = {game.uuid for game in live_games}
        finished = [game["uuid"] for game in previous_live if game["uuid"] not in live_ids]
        pending = list(dict.fromkeys([*finished, *pending]))
        storage.set(PENDING_IDS_KEY, pending)
        logger.info("polled live games", live=len(live_games), finished=len(finished), pending=len(pending))

        headers: list[MatchHeader] = []
        if pending:
            response = await self._connection.call(FETCH_GAME_RECORDS_DETAIL, uuid_list=pending)
            headers = [MatchHeader.from_record(raw) for raw in response.get("record_list", [])]
            file_day_buckets(storage, headers)

        resolved = {header.uuid for header in headers}
        storage.set(PENDING_IDS_KEY, sorted(match_id for match_id in pending if match_id not in resolved))
        storage.set(LIVE_GAMES_KEY, [game.model_dump() for game in live_games])

        if resolved:
            await self.process_batch(resolved)
        return f"{len(headers)} records saved"

    async def sync_days(self, storage: BlobStorage, days: Iterable[date]) -> int:
        """Process the day buckets of `days` in order. Returns the number of matches saved."""
        saved = 0
        for day in days:
            prefix = day_prefix(day)
            match_ids = list(storage.get(day_bucket_key(prefix), {}))
            logger.info("syncing day", day=prefix, matches=len(match_ids))
            saved += len(await self.process_batch(match_ids))
        return saved

    async def collect_contest_match_ids(self, contest_id: int) -> list[str]:
        """Resolve a public contest id and page through all of its match ids."""
        response = await self._connection.call(FETCH_CONTEST_BY_CONTEST_ID, contest_id=contest_id)
        unique_id = response.get("contest_info", {}).get("unique_id")
        if not unique_id:
            raise ServiceError(f"contest {contest_id} not found")

        match_ids: dict[str, None] = {}
        next_index: int | None = None
        pages = 0
        while True:
            fields: dict[str, Any] = {"unique_id": unique_id}
            if next_index:
                fields["last_index"] = next_index
            response = await self._connection.call(FETCH_CONTEST_GAME_RECORDS, **fields)
            records = response.get("record_list", [])
            pages += 1
            for record in records:
                match_ids[record["uuid"]] = None
            next_index = response.get("next_index")
            if not next_index or not records:
                break

        logger.info("collected contest matches", contest_id=contest_id, unique_id=unique_id, pages=pages, matches=len(match_ids))
        return list(match_ids)

    async def sync_contest(self, contest_id: int) -> list[str]:
        return await self.process_batch(await self.collect_contest_match_ids(contest_id))
