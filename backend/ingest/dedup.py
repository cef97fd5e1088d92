"""Existence filter against persisted matches."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable

    from shared.dal import MatchRepository

DEDUP_BATCH_SIZE = 100


async def filter_unseen(
    repository: MatchRepository,
    match_ids: Iterable[str],
    batch_size: int = DEDUP_BATCH_SIZE,
) -> list[str]:
    """Return the ids not yet persisted, looked up `batch_size` at a time.

    The result is unordered; callers sort before processing.
    """
    if batch_size < 1:
        raise ValueError(f"batch_size must be at least 1, got {batch_size}")
    candidates = list(dict.fromkeys(match_ids))
    unseen: list[str] = []
    for start in range(0, len(candidates), batch_size):
        batch = candidates[start : start + batch_size]
        existing = await repository.find_existing(batch)
        unseen.extend(match_id for match_id in batch if match_id not in existing)
    return unseen
