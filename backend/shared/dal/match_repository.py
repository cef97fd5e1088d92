"""Abstract interface for recorded match persistence."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence

    from records.types import RoundResult
    from shared.dal.models import MatchHeader


class MatchRepository(ABC):
    """Abstract interface for recorded match persistence.

    All writes are upserts: reprocessing the same match id is safe.
    """

    @abstractmethod
    async def find_existing(self, match_ids: Sequence[str]) -> set[str]:
        """Return the subset of ids whose round results are already stored."""

    @abstractmethod
    async def save_match_header(self, header: MatchHeader, schema_version: str) -> None: ...

    @abstractmethod
    async def ensure_schema(self, version: str, definition: bytes) -> None:
        """Store a schema definition once; later calls for the same version are no-ops."""

    @abstractmethod
    async def save_rounds(self, header: MatchHeader, rounds: Sequence[RoundResult]) -> None: ...

    @abstractmethod
    async def get_latest_record(self) -> MatchHeader | None: ...

    @abstractmethod
    async def refresh_views(self) -> None: ...
