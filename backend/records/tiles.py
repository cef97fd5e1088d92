"""
Tile string conversion for recorded hands.

Recorded hands carry tiles as two-character strings: a rank digit followed by
a suit letter. "1m".."9m" are man, "p" pin, "s" sou, "1z".."7z" honors
(E, S, W, N, Haku, Hatsu, Chun). A rank of "0" is the red five of its suit.
"""

from collections.abc import Sequence

from mahjong.tile import TilesConverter

# suit letter -> TilesConverter keyword
_SUIT_KEYWORDS = {
    "m": "man",
    "p": "pin",
    "s": "sou",
    "z": "honors",
}

_HONOR_RANKS = frozenset("1234567")
_SUIT_RANKS = frozenset("0123456789")

# The dealer starts with one tile more than the 13 of every other seat.
DEALER_HAND_SIZE = 14


def _normalize(tile: str) -> tuple[str, str]:
    """Split a tile string into (rank, suit), folding red fives onto plain fives."""
    if len(tile) != 2:  # noqa: PLR2004
        raise ValueError(f"invalid tile string: {tile!r}")
    rank, suit = tile[0], tile[1]
    if suit not in _SUIT_KEYWORDS:
        raise ValueError(f"invalid tile suit: {tile!r}")
    allowed = _HONOR_RANKS if suit == "z" else _SUIT_RANKS
    if rank not in allowed:
        raise ValueError(f"invalid tile rank: {tile!r}")
    if rank == "0":
        rank = "5"
    return rank, suit


def tiles_to_34(tiles: Sequence[str]) -> list[int]:
    """Convert recorded tile strings into a 34-format count array."""
    ranks: dict[str, list[str]] = {keyword: [] for keyword in _SUIT_KEYWORDS.values()}
    for tile in tiles:
        rank, suit = _normalize(tile)
        ranks[_SUIT_KEYWORDS[suit]].append(rank)
    return TilesConverter.string_to_34_array(**{keyword: "".join(digits) for keyword, digits in ranks.items()})
