"""Tests for SqliteMatchRepository."""

from __future__ import annotations

import itertools
from typing import TYPE_CHECKING

import pytest

from records.types import RoundResult, SeatRoundResult, WinRecord
from shared.dal.models import MatchAccount, MatchHeader
from shared.db.connection import Database
from shared.db.match_repository import SqliteMatchRepository

if TYPE_CHECKING:
    from pathlib import Path

HAND = ("1m", "2m", "3m", "4p", "5p", "6p", "7s", "8s", "9s", "1z", "1z", "2z", "3z")


def _header(uuid: str = "250101-a", start_time: int = 1735689600) -> MatchHeader:
    return MatchHeader(
        uuid=uuid,
        start_time=start_time,
        accounts=[
            MatchAccount(account_id=100 + seat, seat=seat, nickname=f"player{seat}", level=10301)
            for seat in range(4)
        ],
    )


def _round(winner: int = 1, dealer: int = 0, amount: int = 3900) -> RoundResult:
    seats = []
    for seat in range(4):
        seats.append(
            SeatRoundResult(
                seat=seat,
                hand=(*HAND, "4z") if seat == dealer else HAND,
                dealer=seat == dealer,
                shanten=3,
                win=WinRecord(amount=amount, yaku=(1, 54), turn=6) if seat == winner else None,
                deal_in_paid=amount if seat == (winner + 1) % 4 else None,
                riichi_turn=4 if seat == winner else None,
            ),
        )
    return RoundResult(wind=0, hand_number=dealer, honba=0, seats=tuple(seats))


def _stored_rounds(db: Database, match_id: str) -> list[RoundResult]:
    rows = db.connection.execute(
        "SELECT round_index, wind, hand_number, honba, data FROM round_results "
        "WHERE uuid = ? ORDER BY round_index, seat",
        (match_id,),
    ).fetchall()
    rounds = []
    for _, group in itertools.groupby(rows, key=lambda row: row[0]):
        seat_rows = list(group)
        _, wind, hand_number, honba, _ = seat_rows[0]
        seats = tuple(SeatRoundResult.model_validate_json(row[4]) for row in seat_rows)
        rounds.append(RoundResult(wind=wind, hand_number=hand_number, honba=honba, seats=seats))
    return rounds


@pytest.fixture
def db(tmp_path: Path):
    database = Database(tmp_path / "records.db")
    database.connect()
    yield database
    database.close()


@pytest.fixture
def repo(db: Database) -> SqliteMatchRepository:
    return SqliteMatchRepository(db)


class TestFindExisting:
    async def test_empty_input(self, repo: SqliteMatchRepository) -> None:
        assert await repo.find_existing([]) == set()

    async def test_header_only_match_is_not_existing(self, repo: SqliteMatchRepository) -> None:
        await repo.save_match_header(_header(), "0.11.0")

        assert await repo.find_existing(["250101-a"]) == set()

    async def test_match_with_rounds_is_existing(self, repo: SqliteMatchRepository) -> None:
        header = _header()
        await repo.save_match_header(header, "0.11.0")
        await repo.save_rounds(header, [_round()])

        assert await repo.find_existing(["250101-a", "250101-b"]) == {"250101-a"}

    async def test_match_with_zero_rounds_is_existing(self, repo: SqliteMatchRepository) -> None:
        header = _header()
        await repo.save_match_header(header, "0.11.0")
        await repo.save_rounds(header, [])

        assert await repo.find_existing(["250101-a"]) == {"250101-a"}


class TestSaveMatchHeader:
    async def test_resave_keeps_rounds(self, repo: SqliteMatchRepository, db: Database) -> None:
        header = _header()
        await repo.save_match_header(header, "0.11.0")
        await repo.save_rounds(header, [_round()])

        await repo.save_match_header(header, "0.11.1")

        assert await repo.find_existing(["250101-a"]) == {"250101-a"}
        assert len(_stored_rounds(db, "250101-a")) == 1

    async def test_records_schema_version(self, repo: SqliteMatchRepository, db: Database) -> None:
        await repo.save_match_header(_header(), "0.11.0")
        await repo.save_match_header(_header(), "0.11.1")

        row = db.connection.execute("SELECT schema_version FROM matches WHERE uuid = '250101-a'").fetchone()
        assert row[0] == "0.11.1"


class TestEnsureSchema:
    async def test_first_definition_wins(self, repo: SqliteMatchRepository, db: Database) -> None:
        await repo.ensure_schema("0.11.0", b"first")
        await repo.ensure_schema("0.11.0", b"second")

        rows = db.connection.execute("SELECT version, definition FROM schemas").fetchall()
        assert rows == [("0.11.0", b"first")]

    async def test_one_row_per_version(self, repo: SqliteMatchRepository, db: Database) -> None:
        await repo.ensure_schema("0.11.0", b"a")
        await repo.ensure_schema("0.12.0", b"b")

        assert db.connection.execute("SELECT COUNT(*) FROM schemas").fetchone()[0] == 2


class TestSaveRounds:
    async def test_roundtrip(self, repo: SqliteMatchRepository, db: Database) -> None:
        header = _header()
        rounds = [_round(winner=1, dealer=0), _round(winner=3, dealer=1, amount=8000)]
        await repo.save_match_header(header, "0.11.0")
        await repo.save_rounds(header, rounds)

        assert _stored_rounds(db, "250101-a") == rounds

    async def test_replaces_previous_rounds(self, repo: SqliteMatchRepository, db: Database) -> None:
        header = _header()
        await repo.save_match_header(header, "0.11.0")
        await repo.save_rounds(header, [_round(), _round(dealer=1)])
        await repo.save_rounds(header, [_round(amount=1000)])

        stored = _stored_rounds(db, "250101-a")
        assert len(stored) == 1
        assert stored[0].seats[1].win.amount == 1000

    async def test_requires_saved_header(self, repo: SqliteMatchRepository, db: Database) -> None:
        with pytest.raises(ValueError, match="no match header stored"):
            await repo.save_rounds(_header(), [_round()])

        assert _stored_rounds(db, "250101-a") == []

    async def test_indexed_columns(self, repo: SqliteMatchRepository, db: Database) -> None:
        header = _header()
        await repo.save_match_header(header, "0.11.0")
        await repo.save_rounds(header, [_round(winner=1)])

        row = db.connection.execute(
            "SELECT account_id, nickname, win_amount, riichi_turn FROM round_results WHERE seat = 1",
        ).fetchone()
        assert row == (101, "player1", 3900, 4)


class TestGetLatestRecord:
    async def test_none_when_empty(self, repo: SqliteMatchRepository) -> None:
        assert await repo.get_latest_record() is None

    async def test_returns_newest_start_time(self, repo: SqliteMatchRepository) -> None:
        await repo.save_match_header(_header("250101-a", start_time=100), "0.11.0")
        await repo.save_match_header(_header("250103-c", start_time=300), "0.11.0")
        await repo.save_match_header(_header("250102-b", start_time=200), "0.11.0")

        latest = await repo.get_latest_record()
        assert latest is not None
        assert latest.uuid == "250103-c"


class TestRefreshViews:
    async def test_aggregates_player_stats(self, repo: SqliteMatchRepository, db: Database) -> None:
        header = _header()
        await repo.save_match_header(header, "0.11.0")
        await repo.save_rounds(header, [_round(winner=1), _round(winner=1, dealer=1, amount=2000)])

        await repo.refresh_views()

        row = db.connection.execute(
            "SELECT rounds, wins, deal_ins, riichi, total_win_amount FROM player_stats WHERE account_id = 101",
        ).fetchone()
        assert row == (2, 2, 0, 2, 5900)
        deal_ins = db.connection.execute("SELECT deal_ins FROM player_stats WHERE account_id = 102").fetchone()
        assert deal_ins == (2,)

    async def test_refresh_on_empty_store(self, repo: SqliteMatchRepository, db: Database) -> None:
        await repo.refresh_views()

        assert db.connection.execute("SELECT COUNT(*) FROM player_stats").fetchone()[0] == 0

    async def test_refresh_is_repeatable(self, repo: SqliteMatchRepository, db: Database) -> None:
        header = _header()
        await repo.save_match_header(header, "0.11.0")
        await repo.save_rounds(header, [_round()])

        await repo.refresh_views()
        await repo.refresh_views()

        assert db.connection.execute("SELECT COUNT(*) FROM player_stats").fetchone()[0] == 4
