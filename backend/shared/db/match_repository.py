"""SQLite-backed match repository."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import structlog

from records.types import RoundResult, SeatRoundResult
from shared.dal.match_repository import MatchRepository
from shared.dal.models import MatchHeader

if TYPE_CHECKING:
    from collections.abc import Sequence

    from shared.db.connection import Database

logger = structlog.get_logger()

_REFRESH_PLAYER_STATS_SQL = """\
DELETE FROM player_stats;
INSERT INTO player_stats (account_id, nickname, rounds, wins, deal_ins, riichi, total_win_amount)
SELECT
    account_id,
    MAX(nickname),
    COUNT(*),
    COUNT(win_amount),
    COUNT(deal_in_paid),
    COUNT(riichi_turn),
    COALESCE(SUM(win_amount), 0)
FROM round_results
WHERE account_id IS NOT NULL
GROUP BY account_id;
"""


class SqliteMatchRepository(MatchRepository):
    """SQLite implementation of MatchRepository.

    Match headers and per-seat round results are stored as JSON with indexed
    columns for queries. `player_stats` is a materialized aggregate over
    `round_results`, rebuilt by refresh_views().
    """

    def __init__(self, db: Database) -> None:
        self._db = db
        self._lock = asyncio.Lock()

    async def find_existing(self, match_ids: Sequence[str]) -> set[str]:
        """Return the ids among `match_ids` whose round results are stored."""
        if not match_ids:
            return set()
        placeholders = ",".join("?" * len(match_ids))
        rows = self._db.connection.execute(
            f"SELECT uuid FROM matches WHERE round_count IS NOT NULL AND uuid IN ({placeholders})",  # noqa: S608
            tuple(match_ids),
        ).fetchall()
        return {row[0] for row in rows}

    async def save_match_header(self, header: MatchHeader, schema_version: str) -> None:
        """Insert or update a match header. Previously saved round results stay attached."""
        async with self._lock:
            self._db.connection.execute(
                "INSERT INTO matches (uuid, start_time, schema_version, round_count, data) "
                "VALUES (?, ?, ?, NULL, ?) "
                "ON CONFLICT(uuid) DO UPDATE SET "
                "start_time = excluded.start_time, "
                "schema_version = excluded.schema_version, "
                "data = excluded.data",
                (header.uuid, header.start_time, schema_version, header.model_dump_json()),
            )
            self._db.connection.commit()

    async def ensure_schema(self, version: str, definition: bytes) -> None:
        async with self._lock:
            cursor = self._db.connection.execute(
                "INSERT INTO schemas (version, definition) VALUES (?, ?) ON CONFLICT(version) DO NOTHING",
                (version, definition),
            )
            self._db.connection.commit()
            if cursor.rowcount:
                logger.info("stored schema definition", schema_version=version)

    async def save_rounds(self, header: MatchHeader, rounds: Sequence[RoundResult]) -> None:
        """Replace all round results of a match in one transaction.

        The match header must have been saved first.
        """
        async with self._lock:
            conn = self._db.connection
            try:
                cursor = conn.execute(
                    "UPDATE matches SET round_count = ? WHERE uuid = ?",
                    (len(rounds), header.uuid),
                )
                if cursor.rowcount == 0:
                    raise ValueError(f"no match header stored for {header.uuid}")
                conn.execute("DELETE FROM round_results WHERE uuid = ?", (header.uuid,))
                conn.executemany(
                    "INSERT INTO round_results "
                    "(uuid, round_index, seat, wind, hand_number, honba, account_id, nickname, "
                    "win_amount, deal_in_paid, riichi_turn, data) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    [
                        self._round_row(header, index, round_result, seat_result)
                        for index, round_result in enumerate(rounds)
                        for seat_result in round_result.seats
                    ],
                )
                conn.commit()
            except Exception:
                conn.rollback()
                raise
        logger.info("saved rounds", match_id=header.uuid, rounds=len(rounds))

    @staticmethod
    def _round_row(
        header: MatchHeader,
        index: int,
        round_result: RoundResult,
        seat_result: SeatRoundResult,
    ) -> tuple[object, ...]:
        account = header.account_for_seat(seat_result.seat)
        return (
            header.uuid,
            index,
            seat_result.seat,
            round_result.wind,
            round_result.hand_number,
            round_result.honba,
            account.account_id if account else None,
            account.nickname if account else None,
            seat_result.win.amount if seat_result.win else None,
            seat_result.deal_in_paid,
            seat_result.riichi_turn,
            seat_result.model_dump_json(),
        )

    async def get_latest_record(self) -> MatchHeader | None:
        """Return the header of the most recently started match."""
        row = self._db.connection.execute(
            "SELECT data FROM matches ORDER BY start_time DESC LIMIT 1",
        ).fetchone()
        if row is None:
            return None
        return MatchHeader.model_validate_json(row[0])

    async def refresh_views(self) -> None:
        async with self._lock:
            conn = self._db.connection
            try:
                conn.executescript(f"BEGIN;\n{_REFRESH_PLAYER_STATS_SQL}COMMIT;")
            except Exception:
                if conn.in_transaction:
                    conn.rollback()
                raise
        logger.debug("refreshed player stats")
