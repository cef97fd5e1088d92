"""Per-round statistics produced by reconstruction.

All models are frozen: a round's results never change once the round closes.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, model_validator

from records.events import NUM_SEATS


class WinRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    amount: int  # net points won, excluding the winner's own riichi stick
    yaku: tuple[int, ...]  # yaku ids, repeated by count
    turn: int


class SeatRoundResult(BaseModel):
    """What one seat did during one round."""

    model_config = ConfigDict(frozen=True)

    seat: int = Field(ge=0, le=NUM_SEATS - 1)
    hand: tuple[str, ...]
    dealer: bool = False
    dead_wall: str | None = None  # wall order, kept for the dealer only
    shanten: int

    melds: int = 0
    riichi_turn: int | None = None
    double_riichi: bool = False
    furiten_riichi: bool = False

    win: WinRecord | None = None
    self_draw: bool = False
    furiten_self_draw: bool = False
    liability_paid: int | None = None
    deal_in_paid: int | None = None

    nagashi_mangan: bool = False
    tenpai_at_draw: bool | None = None
    abort_type: int | None = None


class RoundResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    wind: int = 0
    hand_number: int = 0
    honba: int = 0
    seats: tuple[SeatRoundResult, ...]

    @model_validator(mode="after")
    def _validate_seats(self) -> RoundResult:
        if len(self.seats) != NUM_SEATS:
            raise ValueError(f"round must have {NUM_SEATS} seats, got {len(self.seats)}")
        if [s.seat for s in self.seats] != list(range(NUM_SEATS)):
            raise ValueError("seats must be ordered 0-3")
        if sum(1 for s in self.seats if s.dealer) != 1:
            raise ValueError("round must have exactly one dealer")
        return self
