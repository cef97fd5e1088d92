"""Canned game service responses, decoded to dicts as the connection returns them."""

from typing import Any

from records.tests.helpers import events
from records.tests.helpers.schema import encode_match, make_codec

CODEC = make_codec()

# one round ended by an abortive draw after the dealer's first discard
MATCH_PAYLOAD = encode_match(CODEC, [events.round_start(), events.discard(0), events.abortive_draw(1)])
BROKEN_PAYLOAD = encode_match(CODEC, [events.discard(0)])

START_TIME = 1735700000  # 2025-01-01 02:53:20 UTC


def record_head(match_id: str, start_time: int = START_TIME) -> dict[str, Any]:
    return {
        "uuid": match_id,
        "start_time": start_time,
        "end_time": start_time + 1800,
        "config": {"meta": {"mode_id": 16}},
        "accounts": [{"account_id": 100 + seat, "seat": seat, "nickname": f"p{seat}"} for seat in range(4)],
    }


def game_record(game_uuid: str) -> dict[str, Any]:
    """fetchGameRecord response with an inline payload."""
    return {"head": record_head(game_uuid), "data": MATCH_PAYLOAD}


def live_head(match_id: str) -> dict[str, Any]:
    return {
        "uuid": match_id,
        "start_time": START_TIME,
        "game_config": {"meta": {"mode_id": 12}},
        "players": [{"account_id": 7, "nickname": "seven"}],
        "seat_list": [7, 0, 0, 0],
    }
