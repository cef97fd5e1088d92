import logging
from unittest.mock import AsyncMock, patch

import pytest

from ingest.main import main
from ingest.pipeline import FETCH_GAME_LIVE_LIST
from ingest.settings import IngestMode, IngestSettings
from ingest.tests.helpers.fakes import FakeConnection


@pytest.fixture(autouse=True)
def _keep_test_logging():
    """main() configures logging for the process; keep the test configuration instead."""
    with patch("ingest.main.setup_logging") as setup_logging:
        yield setup_logging


@pytest.fixture
def settings(tmp_path):
    return IngestSettings(
        database_path=str(tmp_path / "records.db"),
        storage_dir=str(tmp_path / "storage"),
        log_dir=str(tmp_path / "logs"),
        pacing_seconds=0,
    )


def _events(caplog, level):
    return [r.msg["event"] for r in caplog.records if r.levelno == level and r.name == "ingest.main"]


class TestMain:
    async def test_configures_logging(self, settings, _keep_test_logging):
        await main(settings, AsyncMock(return_value=None))

        _keep_test_logging.assert_called_once_with(log_dir=settings.log_dir)

    async def test_unavailable_service_is_not_a_failure(self, settings, caplog):
        with caplog.at_level(logging.INFO, logger="ingest.main"):
            exit_code = await main(settings, AsyncMock(return_value=None))

        assert exit_code == 0
        assert _events(caplog, logging.WARNING) == ["ingestion skipped, game service unavailable"]

    async def test_successful_poll(self, settings, caplog):
        connection = FakeConnection({FETCH_GAME_LIVE_LIST: lambda filter_id: {}})

        with caplog.at_level(logging.INFO, logger="ingest.main"):
            exit_code = await main(settings, AsyncMock(return_value=connection))

        assert exit_code == 0
        finished = [r.msg for r in caplog.records if r.name == "ingest.main" and r.msg["event"] == "ingestion finished"]
        assert finished[0]["outcome"] == "0 records saved"

    async def test_flow_error_exits_nonzero(self, settings, caplog):
        connection = FakeConnection({FETCH_GAME_LIVE_LIST: [RuntimeError("decoder exploded")]})

        with caplog.at_level(logging.ERROR, logger="ingest.main"):
            exit_code = await main(settings, AsyncMock(return_value=connection))

        assert exit_code == 1
        assert _events(caplog, logging.ERROR) == ["ingestion failed"]
        assert connection.closed

    async def test_dispatches_on_mode(self, settings):
        settings = settings.model_copy(update={"mode": IngestMode.BACKFILL})
        flow = AsyncMock(return_value="0 records saved")

        with patch.dict("ingest.main._FLOWS", {IngestMode.BACKFILL: flow}):
            assert await main(settings, AsyncMock()) == 0

        flow.assert_awaited_once()
