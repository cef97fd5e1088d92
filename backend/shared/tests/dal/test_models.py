"""Tests for DAL persistence models."""

from shared.dal.models import MatchAccount, MatchHeader

RECORD_HEAD = {
    "uuid": "250131-0f2e8a1c-9d3b-4c5e-8f7a-1b2c3d4e5f60",
    "start_time": 1738300000,
    "end_time": 1738302400,
    "config": {"meta": {"mode_id": 16}},
    "accounts": [
        {"account_id": 101, "seat": 0, "nickname": "alice", "level": {"id": 10401}},
        {"account_id": 102, "seat": 1, "nickname": "bob", "level": {"id": 10302}},
        {"account_id": 103, "seat": 2, "nickname": "carol"},
    ],
}


class TestMatchHeader:
    def test_from_record(self):
        header = MatchHeader.from_record(RECORD_HEAD)

        assert header.uuid == RECORD_HEAD["uuid"]
        assert header.start_time == 1738300000
        assert header.end_time == 1738302400
        assert header.mode_id == 16
        assert header.accounts[0] == MatchAccount(account_id=101, seat=0, nickname="alice", level=10401)
        assert header.accounts[2].level == 0

    def test_from_record_with_only_uuid(self):
        header = MatchHeader.from_record({"uuid": "250131-x"})

        assert header.start_time == 0
        assert header.mode_id == 0
        assert header.accounts == []

    def test_day_prefix(self):
        assert MatchHeader(uuid="250131-abc-def").day_prefix == "250131"

    def test_account_for_seat(self):
        header = MatchHeader.from_record(RECORD_HEAD)

        assert header.account_for_seat(1).nickname == "bob"
        assert header.account_for_seat(3) is None

    def test_serialization_roundtrip(self):
        header = MatchHeader.from_record(RECORD_HEAD)

        assert MatchHeader.model_validate_json(header.model_dump_json()) == header
