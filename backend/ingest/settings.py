"""Ingestion configuration via environment variables."""

from enum import StrEnum
from typing import TYPE_CHECKING
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

from shared.validators import IntListEnvSettingsSource, parse_int_list

if TYPE_CHECKING:
    from pydantic_settings.sources.base import PydanticBaseSettingsSource


class IngestMode(StrEnum):
    POLL = "poll"
    BACKFILL = "backfill"
    CONTEST = "contest"


class IngestSettings(BaseSettings):
    model_config = {"env_prefix": "INGEST_"}

    mode: IngestMode = IngestMode.POLL

    # Game service gateway and the schema its codec is built from
    gateway_url: str = "wss://gateway.mahjongsoul.com/gateway"
    schema_path: str = "backend/config/liqi.desc"
    schema_version: str = Field(default="0.0.0", min_length=1)

    database_path: str = "backend/records.db"
    storage_dir: str = "backend/storage"
    log_dir: str = "backend/logs/ingest"

    # Contest mode: contests.yaml lists contest ids and their store suffixes.
    # When contest_id is unset every configured contest is resynced.
    contests_config: str | None = None
    contest_id: int | None = None

    live_filter_ids: list[int] = [216, 212]

    pacing_seconds: float = Field(default=1.0, ge=0)
    reconnect_delay_seconds: float = Field(default=1.0, ge=0)
    response_timeout_seconds: float = Field(default=30.0, gt=0)
    download_timeout_seconds: float = Field(default=5.0, gt=0)
    download_attempts: int = Field(default=20, ge=1)
    download_interval_seconds: float = Field(default=5.0, ge=0)
    dedup_batch_size: int = Field(default=100, ge=1)

    # Timezone of the day buckets walked by the backfill
    timezone: str = "UTC"

    @field_validator("live_filter_ids", mode="before")
    @classmethod
    def validate_live_filter_ids(cls, v: str | list[int]) -> list[int]:
        return parse_int_list(v)

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone {v!r}") from e
        return v

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: "PydanticBaseSettingsSource",
        env_settings: "PydanticBaseSettingsSource",  # noqa: ARG003
        dotenv_settings: "PydanticBaseSettingsSource",
        file_secret_settings: "PydanticBaseSettingsSource",
    ) -> tuple["PydanticBaseSettingsSource", ...]:
        return (
            init_settings,
            IntListEnvSettingsSource(settings_cls, frozenset({"live_filter_ids"})),
            dotenv_settings,
            file_secret_settings,
        )
