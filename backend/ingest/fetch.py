"""Fetch one match's raw payload, recovering from transient failures."""

from __future__ import annotations

import asyncio
from http import HTTPStatus
from typing import TYPE_CHECKING, Any

import httpx
import structlog

from ingest.errors import PayloadDownloadError, ServiceTransportError
from ingest.retry import RetryFailure, with_retry

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from ingest.connection import GameServiceConnection

logger = structlog.get_logger()

FETCH_GAME_RECORD = ".lq.Lobby.fetchGameRecord"

DEFAULT_RECONNECT_DELAY = 1.0
DEFAULT_DOWNLOAD_ATTEMPTS = 20
DEFAULT_DOWNLOAD_INTERVAL = 5.0
DEFAULT_DOWNLOAD_TIMEOUT = 5.0


async def fetch_game_record(
    connection: GameServiceConnection,
    match_id: str,
    *,
    reconnect_delay: float = DEFAULT_RECONNECT_DELAY,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> dict[str, Any]:
    """Request a match record, reconnecting and retrying exactly once on transport failure.

    A second transport failure propagates. Errors reported by the service
    itself (ServiceCallError) are not retried.
    """
    try:
        return await connection.call(FETCH_GAME_RECORD, game_uuid=match_id)
    except ServiceTransportError as exc:
        logger.warning("fetch failed, reconnecting", match_id=match_id, error=str(exc))

    await sleep(reconnect_delay)
    connection.reconnect()
    await connection.wait_for_ready()
    return await connection.call(FETCH_GAME_RECORD, game_uuid=match_id)


def _is_forbidden(error: Exception) -> bool:
    return isinstance(error, httpx.HTTPStatusError) and error.response.status_code == HTTPStatus.FORBIDDEN


async def download_payload(
    client: httpx.AsyncClient,
    url: str,
    *,
    attempts: int = DEFAULT_DOWNLOAD_ATTEMPTS,
    interval: float = DEFAULT_DOWNLOAD_INTERVAL,
    timeout: float = DEFAULT_DOWNLOAD_TIMEOUT,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> bytes:
    """GET a payload URL with capped retries. HTTP 403 ends the loop after one attempt."""

    async def attempt() -> bytes:
        response = await client.get(url, timeout=timeout)
        response.raise_for_status()
        return response.content

    result = await with_retry(attempt, attempts=attempts, interval=interval, is_permanent=_is_forbidden, sleep=sleep)
    if isinstance(result, RetryFailure):
        reason = "access denied" if result.permanent else "retries exhausted"
        raise PayloadDownloadError(
            f"cannot download {url} ({reason} after {result.attempts} attempts): {result.error}",
        ) from result.error
    return result.value


async def resolve_payload(
    response: dict[str, Any],
    client: httpx.AsyncClient,
    *,
    attempts: int = DEFAULT_DOWNLOAD_ATTEMPTS,
    interval: float = DEFAULT_DOWNLOAD_INTERVAL,
    timeout: float = DEFAULT_DOWNLOAD_TIMEOUT,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> bytes | None:
    """Return the raw match payload of a fetchGameRecord response.

    The payload is either inline (`data`) or must be downloaded from
    `data_url`. Returns None when the response carries neither.
    """
    url = response.get("data_url")
    if url:
        return await download_payload(client, url, attempts=attempts, interval=interval, timeout=timeout, sleep=sleep)
    data = response.get("data")
    if data:
        return data
    return None
