"""Models for the game service's discovery responses."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class LivePlayer(BaseModel, frozen=True):
    account_id: int
    nickname: str = ""
    level: int = 0


class LiveGame(BaseModel, frozen=True):
    """A match in progress, as listed by `.lq.Lobby.fetchGameLiveList`."""

    uuid: str
    start_time: int = 0
    mode_id: int = 0
    players: list[LivePlayer] = Field(default_factory=list)

    @classmethod
    def from_live_head(cls, raw: dict[str, Any]) -> LiveGame:
        """Build from a GameLiveHead, with players in seat order."""
        by_account = {player.get("account_id", 0): player for player in raw.get("players", [])}
        players = []
        for account_id in raw.get("seat_list", []):
            player = by_account.get(account_id, {})
            players.append(
                LivePlayer(
                    account_id=account_id,
                    nickname=player.get("nickname", ""),
                    level=player.get("level", {}).get("id", 0),
                ),
            )
        return cls(
            uuid=raw["uuid"],
            start_time=raw.get("start_time", 0),
            mode_id=raw.get("game_config", {}).get("meta", {}).get("mode_id", 0),
            players=players,
        )
