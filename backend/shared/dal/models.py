"""Persistence models for the data access layer."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class MatchAccount(BaseModel, frozen=True):
    """A player seated in a recorded match."""

    account_id: int = 0
    seat: int = 0
    nickname: str = ""
    level: int = 0  # rank id


class MatchHeader(BaseModel, frozen=True):
    """Match-level metadata, captured once and never modified."""

    uuid: str
    start_time: int = 0  # unix seconds
    end_time: int = 0
    mode_id: int = 0
    accounts: list[MatchAccount] = Field(default_factory=list)

    @classmethod
    def from_record(cls, raw: dict[str, Any]) -> MatchHeader:
        """Build a header from a decoded game record head."""
        return cls(
            uuid=raw["uuid"],
            start_time=raw.get("start_time", 0),
            end_time=raw.get("end_time", 0),
            mode_id=raw.get("config", {}).get("meta", {}).get("mode_id", 0),
            accounts=[
                MatchAccount(
                    account_id=account.get("account_id", 0),
                    seat=account.get("seat", 0),
                    nickname=account.get("nickname", ""),
                    level=account.get("level", {}).get("id", 0),
                )
                for account in raw.get("accounts", [])
            ],
        )

    @property
    def day_prefix(self) -> str:
        """The YYMMDD date prefix embedded in the identifier."""
        return self.uuid.split("-")[0]

    def account_for_seat(self, seat: int) -> MatchAccount | None:
        return next((a for a in self.accounts if a.seat == seat), None)
