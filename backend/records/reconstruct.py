"""Round reconstruction: fold a match's event stream into per-round statistics.

The event stream carries no semantic hints beyond the raw game actions, so
every statistic is derived here from the order of events:

- turn numbers come from the running discard count of the round;
- furiten is taken from each discard's authoritative per-seat vector;
- deal-in attribution uses the last seat that discarded or declared a kan
  (a kan can be robbed, so it counts as a discard for attribution).

Anything the engine does not understand (an unknown event type, a payload of
the wrong shape, a win whose payments do not fit the rules) raises a
ReconstructionError. A statistics table that is silently wrong is worse than
no table, so nothing is coerced into a best guess.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field, fields
from typing import TYPE_CHECKING, Any

import structlog
from pydantic import ValidationError

from records.codec import CodecError
from records.events import (
    NUM_SEATS,
    AbortiveDrawEvent,
    CallEvent,
    ClosedOrAddedKanEvent,
    DiscardEvent,
    DrawTileEvent,
    ExhaustiveDrawEvent,
    MatchEvent,
    RoundStartEvent,
    UnrecognizedEvent,
    WinEvent,
    WinInfo,
    parse_event,
)
from records.exceptions import (
    InvariantViolation,
    MalformedEventError,
    ReconstructionError,
    UnrecognizedEventError,
)
from records.shanten import calculate_hand_shanten
from records.tiles import DEALER_HAND_SIZE
from records.types import RoundResult, SeatRoundResult, WinRecord

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

    from records.codec import RecordCodec

logger = structlog.get_logger()

RIICHI_STICK = 1000

# A discard-win paying less than its base value minus this margin was
# short-paid: another winner's liability hand absorbed part of the payment.
_SHORT_PAY_MARGIN = 1500

_DRAW_TILE_TAG = ".lq.RecordDealTile"

ShantenFn = Callable[[Sequence[str]], int]


@dataclass
class SeatProgress:
    """Mutable per-seat statistics while a round is in progress."""

    seat: int
    hand: tuple[str, ...]
    shanten: int
    dealer: bool = False
    dead_wall: str | None = None
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

    def freeze(self) -> SeatRoundResult:
        return SeatRoundResult(**{f.name: getattr(self, f.name) for f in fields(self)})


@dataclass
class RoundState:
    """State of the round currently being reconstructed.

    A fresh instance is created at every round start; the previous one is
    closed into an immutable RoundResult.
    """

    start: RoundStartEvent
    seats: list[SeatProgress]
    discard_count: int = 0
    furiten: tuple[bool, ...] = field(default=(False,) * NUM_SEATS)
    last_discard_seat: int | None = None

    @property
    def turn(self) -> int:
        return self.discard_count // NUM_SEATS + 1

    def close(self) -> RoundResult:
        return RoundResult(
            wind=self.start.chang,
            hand_number=self.start.ju,
            honba=self.start.ben,
            seats=tuple(seat.freeze() for seat in self.seats),
        )


class RoundReconstructor:
    """Consumes decoded records of one match, one at a time."""

    def __init__(self, match_id: str, shanten: ShantenFn = calculate_hand_shanten) -> None:
        self.match_id = match_id
        self._shanten = shanten
        self._rounds: list[RoundResult] = []
        self._state: RoundState | None = None
        # record being processed, for error context
        self._type_tag = ""
        self._payload: dict[str, Any] = {}

    def feed(self, type_tag: str, payload: dict[str, Any]) -> None:
        self._type_tag = type_tag
        self._payload = payload
        try:
            event = parse_event(type_tag, payload)
        except ValidationError as exc:
            raise self._error(MalformedEventError, str(exc)) from exc

        if isinstance(event, UnrecognizedEvent):
            raise self._error(UnrecognizedEventError, "unrecognized event type")
        if isinstance(event, DrawTileEvent):
            return
        if isinstance(event, RoundStartEvent):
            self._start_round(event)
            return

        state = self._state
        if state is None:
            raise self._error(InvariantViolation, "event before the first round start")

        self._apply(state, event)

    def finish(self) -> list[RoundResult]:
        """Close the round in progress and return all rounds in order."""
        if self._state is not None:
            self._rounds.append(self._state.close())
            self._state = None
        return list(self._rounds)

    def _error(self, error_cls: type[ReconstructionError], reason: str) -> ReconstructionError:
        return error_cls(match_id=self.match_id, event_type=self._type_tag, payload=self._payload, reason=reason)

    # -- Round start ----------------------------------------------------------

    def _start_round(self, event: RoundStartEvent) -> None:
        hands = [event.hand(seat) for seat in range(NUM_SEATS)]
        dealers = [seat for seat, hand in enumerate(hands) if len(hand) == DEALER_HAND_SIZE]
        if len(dealers) != 1:
            raise self._error(InvariantViolation, f"expected exactly one dealer hand, found {len(dealers)}")
        dealer = dealers[0]

        seats = []
        for seat, hand in enumerate(hands):
            try:
                shanten = self._shanten(hand)
            except ValueError as exc:
                raise self._error(MalformedEventError, f"seat {seat} hand: {exc}") from exc
            seats.append(
                SeatProgress(
                    seat=seat,
                    hand=hand,
                    shanten=shanten,
                    dealer=seat == dealer,
                    dead_wall=event.paishan if seat == dealer else None,
                ),
            )

        if self._state is not None:
            self._rounds.append(self._state.close())
        self._state = RoundState(start=event, seats=seats)

    # -- In-round events ------------------------------------------------------

    def _apply(self, state: RoundState, event: MatchEvent) -> None:
        if isinstance(event, CallEvent):
            state.seats[event.seat].melds += 1
        elif isinstance(event, DiscardEvent):
            self._handle_discard(state, event)
        elif isinstance(event, ClosedOrAddedKanEvent):
            state.last_discard_seat = event.seat
        elif isinstance(event, ExhaustiveDrawEvent):
            self._handle_exhaustive_draw(state, event)
        elif isinstance(event, AbortiveDrawEvent):
            for seat in state.seats:
                seat.abort_type = event.type
        elif isinstance(event, WinEvent):
            for info in event.hules:
                self._record_win(state, event, info)
        else:
            raise self._error(UnrecognizedEventError, f"no handler for {event.kind}")

    def _handle_discard(self, state: RoundState, event: DiscardEvent) -> None:
        seat = state.seats[event.seat]
        state.last_discard_seat = event.seat
        state.furiten = event.zhenting
        if seat.riichi_turn is None and event.declares_riichi:
            seat.riichi_turn = state.turn
            if state.furiten[event.seat]:
                seat.furiten_riichi = True
        if event.is_wliqi:
            seat.double_riichi = True
        state.discard_count += 1

    def _handle_exhaustive_draw(self, state: RoundState, event: ExhaustiveDrawEvent) -> None:
        if event.liujumanguan:
            for score in event.scores:
                state.seats[score.seat].nagashi_mangan = True
        for seat, player in enumerate(event.players):
            state.seats[seat].tenpai_at_draw = player.tingpai

    def _record_win(self, state: RoundState, event: WinEvent, info: WinInfo) -> None:
        winner = state.seats[info.seat]
        losers = event.losing_seats

        amount = event.delta_scores[info.seat] - (RIICHI_STICK if info.liqi else 0)
        if amount < max(0, info.point_rong - _SHORT_PAY_MARGIN):
            share = self._liability_share(event, info)
            amount += share
            winner.liability_paid = share
        winner.win = WinRecord(amount=amount, yaku=info.yaku(), turn=state.turn)

        if info.zimo:
            self._record_self_draw(state, event, info, losers)
        else:
            self._record_discard_win(state, event, losers)

    def _liability_share(self, event: WinEvent, info: WinInfo) -> int:
        """Half the base value of the other winner's liability hand."""
        if len(event.hules) != 2:  # noqa: PLR2004
            raise self._error(InvariantViolation, f"short-paid win needs exactly 2 winners, got {len(event.hules)}")
        partner = next((other for other in event.hules if other.yiman and other.seat != info.seat), None)
        if partner is None:
            raise self._error(InvariantViolation, f"short-paid win for seat {info.seat} without a yakuman partner")
        return partner.point_rong // 2

    def _record_self_draw(self, state: RoundState, event: WinEvent, info: WinInfo, losers: list[int]) -> None:
        if len(event.hules) != 1:
            raise self._error(InvariantViolation, f"self-draw with {len(event.hules)} winners")
        if len(losers) != NUM_SEATS - 1 and not info.yiman:
            raise self._error(InvariantViolation, f"self-draw paid by {len(losers)} seats")

        winner = state.seats[info.seat]
        winner.self_draw = True
        if state.furiten[info.seat]:
            winner.furiten_self_draw = True
        # a yakuman self-draw paid in full by one seat
        if len(losers) == 1:
            state.seats[losers[0]].liability_paid = abs(event.delta_scores[losers[0]])

    def _record_discard_win(self, state: RoundState, event: WinEvent, losers: list[int]) -> None:
        if len(losers) == 1:
            if losers[0] != state.last_discard_seat:
                raise self._error(
                    InvariantViolation,
                    f"discard-win paid by seat {losers[0]}, last discard was seat {state.last_discard_seat}",
                )
        elif len(losers) == 2:  # noqa: PLR2004
            if not any(other.yiman for other in event.hules):
                raise self._error(InvariantViolation, "discard-win paid by 2 seats without a yakuman")
            if state.last_discard_seat not in losers:
                raise self._error(
                    InvariantViolation,
                    f"discard-win paid by seats {losers}, last discard was seat {state.last_discard_seat}",
                )
        else:
            raise self._error(InvariantViolation, f"discard-win paid by {len(losers)} seats")

        for loser in losers:
            paid = abs(event.delta_scores[loser])
            if loser == state.last_discard_seat:
                state.seats[loser].deal_in_paid = paid
            else:
                state.seats[loser].liability_paid = paid


def reconstruct_rounds(
    match_id: str,
    records: Iterable[tuple[str, dict[str, Any]]],
    shanten: ShantenFn = calculate_hand_shanten,
) -> list[RoundResult]:
    """Reconstruct per-round statistics from decoded (type tag, payload) records.

    Raises ReconstructionError (after logging the offending event) on anything
    that cannot be interpreted.
    """
    reconstructor = RoundReconstructor(match_id, shanten)
    try:
        for type_tag, payload in records:
            reconstructor.feed(type_tag, payload)
    except ReconstructionError as exc:
        logger.error(
            "round reconstruction failed",
            match_id=exc.match_id,
            event_type=exc.event_type,
            payload=exc.payload,
            reason=exc.reason,
        )
        raise
    return reconstructor.finish()


def _decode_records(match_id: str, data: bytes, codec: RecordCodec) -> Iterator[tuple[str, dict[str, Any]]]:
    try:
        raw_records = list(codec.iter_records(data))
    except CodecError as exc:
        raise MalformedEventError(match_id=match_id, event_type="", payload={}, reason=str(exc)) from exc

    for type_tag, payload in raw_records:
        if type_tag == _DRAW_TILE_TAG:
            yield type_tag, {}
            continue
        if not codec.has_type(type_tag):
            raise UnrecognizedEventError(
                match_id=match_id,
                event_type=type_tag,
                payload={"raw": payload.hex()},
                reason="type tag not in schema",
            )
        try:
            decoded = codec.decode(type_tag, payload)
        except CodecError as exc:
            raise MalformedEventError(match_id=match_id, event_type=type_tag, payload={}, reason=str(exc)) from exc
        yield type_tag, decoded


def reconstruct(
    match_id: str,
    data: bytes,
    codec: RecordCodec,
    shanten: ShantenFn = calculate_hand_shanten,
) -> list[RoundResult]:
    """Decode a match payload with `codec` and reconstruct its rounds."""
    return reconstruct_rounds(match_id, _decode_records(match_id, data, codec), shanten)
