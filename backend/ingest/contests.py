"""Contest registry: which contests are resynced, and into which store namespace."""

from pathlib import Path

import yaml
from pydantic import BaseModel, Field


class Contest(BaseModel, frozen=True):
    contest_id: int
    # Appended to the database file name to keep each contest in its own store
    suffix: str = Field(pattern=r"^[A-Za-z0-9_-]+$")


def _get_default_config_path() -> Path:  # pragma: no cover
    """Return the file-relative default path to contests.yaml."""
    backend_root = Path(__file__).parent.parent
    return backend_root / "config" / "contests.yaml"


class ContestRegistry:
    def __init__(self, config_path: Path | None = None) -> None:
        self._contests: list[Contest] = []
        self._config_path = config_path or _get_default_config_path()
        self._load_config()

    def _load_config(self) -> None:
        if not self._config_path.exists():
            return

        with self._config_path.open() as f:
            config = yaml.safe_load(f) or {}

        for contest_data in config.get("contests", []):
            self._contests.append(
                Contest(
                    contest_id=contest_data["contest_id"],
                    suffix=contest_data["suffix"],
                ),
            )

    def get_contests(self) -> list[Contest]:
        return self._contests.copy()

    def get_contest(self, contest_id: int) -> Contest:
        for contest in self._contests:
            if contest.contest_id == contest_id:
                return contest
        raise KeyError(f"contest {contest_id} is not configured in {self._config_path}")
