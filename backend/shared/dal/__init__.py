"""Data access layer: repository interfaces and shared persistence models."""

from shared.dal.match_repository import MatchRepository
from shared.dal.models import MatchAccount, MatchHeader

__all__ = [
    "MatchAccount",
    "MatchHeader",
    "MatchRepository",
]
