"""Typed match events decoded from a recorded event stream.

Each record of a match is a (type tag, payload) pair. parse_event() maps the
tag onto a closed set of event models and validates the payload against it.
Tags outside the set become UnrecognizedEvent, which the reconstruction engine
always rejects; the set of kinds is fixed by the game rules, not open for
extension.

Payload fields at their protobuf default (seat 0, false flags, empty lists)
are absent from decoded records, so every field here carries that default.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

NUM_SEATS = 4

Seat = Annotated[int, Field(ge=0, le=NUM_SEATS - 1)]


class EventKind(StrEnum):
    ROUND_START = "round_start"
    DRAW_TILE = "draw_tile"
    CALL = "call"
    DISCARD = "discard"
    CLOSED_OR_ADDED_KAN = "closed_or_added_kan"
    EXHAUSTIVE_DRAW = "exhaustive_draw"
    ABORTIVE_DRAW = "abortive_draw"
    WIN = "win"
    UNRECOGNIZED = "unrecognized"


class MatchEvent(BaseModel):
    """Base class for all decoded match events."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    kind: EventKind


class RoundStartEvent(MatchEvent):
    """A new round is dealt: starting hands for all seats plus the dead wall order."""

    kind: Literal[EventKind.ROUND_START] = EventKind.ROUND_START
    chang: int = 0  # round wind
    ju: int = 0  # hand number within the wind
    ben: int = 0  # honba counter
    tiles0: tuple[str, ...] = ()
    tiles1: tuple[str, ...] = ()
    tiles2: tuple[str, ...] = ()
    tiles3: tuple[str, ...] = ()
    paishan: str = ""

    def hand(self, seat: int) -> tuple[str, ...]:
        return (self.tiles0, self.tiles1, self.tiles2, self.tiles3)[seat]


class DrawTileEvent(MatchEvent):
    kind: Literal[EventKind.DRAW_TILE] = EventKind.DRAW_TILE


class CallEvent(MatchEvent):
    """Chi, pon or open kan."""

    kind: Literal[EventKind.CALL] = EventKind.CALL
    seat: Seat = 0


class DiscardEvent(MatchEvent):
    kind: Literal[EventKind.DISCARD] = EventKind.DISCARD
    seat: Seat = 0
    tile: str = ""
    is_liqi: bool = False
    is_wliqi: bool = False
    moqie: bool = False  # tsumogiri
    # authoritative furiten state of every seat after this discard
    zhenting: tuple[bool, ...] = (False,) * NUM_SEATS

    @field_validator("zhenting", mode="after")
    @classmethod
    def _four_seats(cls, value: tuple[bool, ...]) -> tuple[bool, ...]:
        if not value:
            return (False,) * NUM_SEATS
        if len(value) != NUM_SEATS:
            raise ValueError(f"furiten vector must cover {NUM_SEATS} seats, got {len(value)}")
        return value

    @property
    def declares_riichi(self) -> bool:
        return self.is_liqi or self.is_wliqi


class ClosedOrAddedKanEvent(MatchEvent):
    kind: Literal[EventKind.CLOSED_OR_ADDED_KAN] = EventKind.CLOSED_OR_ADDED_KAN
    seat: Seat = 0


class ExhaustiveDrawPlayer(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    tingpai: bool = False


class ExhaustiveDrawScore(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    seat: Seat = 0


class ExhaustiveDrawEvent(MatchEvent):
    kind: Literal[EventKind.EXHAUSTIVE_DRAW] = EventKind.EXHAUSTIVE_DRAW
    liujumanguan: bool = False  # nagashi mangan
    players: tuple[ExhaustiveDrawPlayer, ...] = Field(min_length=NUM_SEATS, max_length=NUM_SEATS)
    # with nagashi mangan: one entry per seat awarded it
    scores: tuple[ExhaustiveDrawScore, ...] = ()


class AbortiveDrawEvent(MatchEvent):
    kind: Literal[EventKind.ABORTIVE_DRAW] = EventKind.ABORTIVE_DRAW
    type: int = 0  # abortive draw reason code


class Fan(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    id: int = 0
    val: int = 0


class WinInfo(BaseModel):
    """One winner of a win event."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    seat: Seat = 0
    zimo: bool = False
    liqi: bool = False  # winner's riichi stick is consumed by this win
    yiman: bool = False  # maximal-class hand
    point_rong: int = 0  # base value of the hand as a discard win
    fans: tuple[Fan, ...] = ()

    def yaku(self) -> tuple[int, ...]:
        """Yaku ids repeated by their count."""
        return tuple(fan.id for fan in self.fans for _ in range(fan.val))


class WinEvent(MatchEvent):
    kind: Literal[EventKind.WIN] = EventKind.WIN
    hules: tuple[WinInfo, ...] = Field(min_length=1)
    delta_scores: tuple[int, ...] = Field(min_length=NUM_SEATS, max_length=NUM_SEATS)

    @property
    def losing_seats(self) -> list[int]:
        return [seat for seat, delta in enumerate(self.delta_scores) if delta < 0]


class UnrecognizedEvent(MatchEvent):
    kind: Literal[EventKind.UNRECOGNIZED] = EventKind.UNRECOGNIZED
    type_tag: str


EVENT_MODELS: dict[str, type[MatchEvent]] = {
    ".lq.RecordNewRound": RoundStartEvent,
    ".lq.RecordDealTile": DrawTileEvent,
    ".lq.RecordChiPengGang": CallEvent,
    ".lq.RecordDiscardTile": DiscardEvent,
    ".lq.RecordAnGangAddGang": ClosedOrAddedKanEvent,
    ".lq.RecordNoTile": ExhaustiveDrawEvent,
    ".lq.RecordLiuJu": AbortiveDrawEvent,
    ".lq.RecordHule": WinEvent,
}


def parse_event(type_tag: str, payload: dict[str, Any]) -> MatchEvent:
    """Validate a decoded record into its event model.

    Raises pydantic.ValidationError when the payload does not fit the model.
    """
    model = EVENT_MODELS.get(type_tag)
    if model is None:
        return UnrecognizedEvent(type_tag=type_tag)
    return model.model_validate(payload)
