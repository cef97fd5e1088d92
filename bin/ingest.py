"""Run one ingestion flow against the game service.

Usage: uv run python bin/ingest.py

The flow is selected by INGEST_MODE (poll, backfill or contest); see
backend/ingest/settings.py for the other INGEST_* variables.
"""

import asyncio
import sys
from pathlib import Path

# Add backend to path for imports
sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "backend"))

from ingest.main import main

if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
