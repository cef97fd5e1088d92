"""Key/value blob storage for ingestion state.

Holds small JSON documents the ingestion flows carry between runs: the last
live-game snapshot (`live.json`), the carryover set of finished-but-unresolved
match ids (`pending_ids.json`) and the day buckets of resolved match records
(`records/<YYMMDD>.json`). Keys are relative paths below the storage root.
Files are written atomically with owner-only permissions (0o600) inside an
owner-only directory (0o700).
"""

import contextlib
import json
import os
import tempfile
from pathlib import Path
from typing import Any, Protocol

import structlog

logger = structlog.get_logger()

# Owner-only directory permissions for blob storage.
_STORAGE_DIR_MODE = 0o700

# Owner-only file permissions for blob files.
_STORAGE_FILE_MODE = 0o600

LIVE_GAMES_KEY = "live.json"
PENDING_IDS_KEY = "pending_ids.json"


def day_bucket_key(day_prefix: str) -> str:
    """Key of the day bucket for a YYMMDD identifier prefix."""
    return f"records/{day_prefix}.json"


class BlobStorage(Protocol):
    """Protocol for JSON key/value persistence."""

    def get(self, key: str, default: Any = None) -> Any: ...

    def set(self, key: str, value: Any) -> None: ...


class LocalBlobStorage:
    """Stores JSON values as files below a local directory."""

    def __init__(self, root_dir: str) -> None:
        self._root = Path(root_dir).resolve()

    def _path(self, key: str) -> Path:
        target = (self._root / key).resolve()
        if not target.is_relative_to(self._root):
            raise ValueError(f"Path traversal rejected: '{key}' resolves outside storage directory")
        return target

    def get(self, key: str, default: Any = None) -> Any:
        """Return the stored value for `key`, or `default` if it was never set."""
        target = self._path(key)
        try:
            raw = target.read_text(encoding="utf-8")
        except FileNotFoundError:
            return default
        return json.loads(raw)

    def set(self, key: str, value: Any) -> None:
        """Store `value` as JSON under `key`.

        Creates parent directories lazily with owner-only permissions and
        writes via temp-file-then-rename so readers never see a partial file.
        """
        target = self._path(key)
        target.parent.mkdir(mode=_STORAGE_DIR_MODE, parents=True, exist_ok=True)
        self._root.chmod(_STORAGE_DIR_MODE)

        content = json.dumps(value, ensure_ascii=False).encode("utf-8")

        fd, tmp_path = tempfile.mkstemp(dir=str(target.parent), suffix=".tmp", prefix=".blob_")
        fd_owned = True
        try:
            with os.fdopen(fd, "wb") as f:
                fd_owned = False  # os.fdopen took ownership; it will close fd
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
            os.chmod(tmp_path, _STORAGE_FILE_MODE)  # noqa: PTH101
            Path(tmp_path).replace(target)
        except BaseException:
            if fd_owned:
                with contextlib.suppress(OSError):
                    os.close(fd)
            with contextlib.suppress(OSError):
                Path(tmp_path).unlink()
            raise
        logger.debug("stored blob", key=key, path=str(target))
