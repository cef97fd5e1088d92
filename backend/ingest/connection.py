"""Connection to the remote game service.

Calls are request/response RPCs addressed by fully qualified method name
(".lq.Lobby.fetchGameRecord"). Requests and responses are protobuf messages
wrapped in the codec's Wrapper envelope and framed over a websocket:

- request:      0x02 | uint16 LE call index | Wrapper(method, request)
- response:     0x03 | uint16 LE call index | Wrapper("", response)
- notification: 0x01 | Wrapper(...)        (not addressed to a call; skipped)

Responses carry an `error.code`; a non-zero code raises ServiceCallError.
A socket failure raises ServiceTransportError and leaves the connection
unusable until reconnect().

Only one call is in flight at a time: the ingestion pipeline is sequential.
Authentication is an injected `on_connect` hook run after every (re)connect.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any, Protocol

import structlog
import websockets

from ingest.errors import ServiceCallError, ServiceTransportError
from records.codec import message_to_dict

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from records.codec import RecordCodec

logger = structlog.get_logger()

MSG_NOTIFY = 0x01
MSG_REQUEST = 0x02
MSG_RESPONSE = 0x03

_INDEX_MODULO = 1 << 16


class GameServiceConnection(Protocol):
    """What the ingestion pipeline needs from the game service."""

    @property
    def codec(self) -> RecordCodec: ...

    async def call(self, method: str, **fields: Any) -> dict[str, Any]: ...

    def reconnect(self) -> None: ...

    async def wait_for_ready(self) -> None: ...

    async def close(self) -> None: ...


class WebSocketConnection:
    """GameServiceConnection over the gateway websocket."""

    def __init__(
        self,
        url: str,
        codec: RecordCodec,
        *,
        on_connect: Callable[[WebSocketConnection], Awaitable[None]] | None = None,
        ready_timeout: float = 30.0,
        response_timeout: float = 30.0,
    ) -> None:
        self._url = url
        self._codec = codec
        self._on_connect = on_connect
        self._ready_timeout = ready_timeout
        self._response_timeout = response_timeout
        self._ws: Any = None
        self._index = 0
        self._ready = asyncio.Event()
        self._connect_task: asyncio.Task[None] | None = None

    @property
    def codec(self) -> RecordCodec:
        return self._codec

    async def connect(self) -> None:
        """Open the socket and run the on_connect hook."""
        try:
            self._ws = await websockets.connect(self._url, max_size=None)
        except (OSError, websockets.WebSocketException) as exc:
            raise ServiceTransportError(f"cannot connect to {self._url}: {exc}") from exc
        self._index = 0
        if self._on_connect is not None:
            await self._on_connect(self)
        self._ready.set()
        logger.info("connected to game service", url=self._url)

    def reconnect(self) -> None:
        """Drop the current socket and start connecting again in the background.

        Await wait_for_ready() before the next call.
        """
        self._ready.clear()
        old_ws, self._ws = self._ws, None
        self._connect_task = asyncio.get_running_loop().create_task(self._reopen(old_ws))

    async def _reopen(self, old_ws: Any) -> None:
        if old_ws is not None:
            await old_ws.close()
        await self.connect()

    async def wait_for_ready(self) -> None:
        """Wait until the connection is usable, re-raising a failed reconnect."""
        if self._connect_task is not None:
            task, self._connect_task = self._connect_task, None
            await asyncio.wait_for(task, timeout=self._ready_timeout)
        await asyncio.wait_for(self._ready.wait(), timeout=self._ready_timeout)

    async def close(self) -> None:
        self._ready.clear()
        if self._ws is not None:
            await self._ws.close()
            self._ws = None

    async def call(self, method: str, **fields: Any) -> dict[str, Any]:
        """Send one RPC and return its decoded response."""
        if self._ws is None:
            raise ServiceTransportError("not connected")

        descriptor = self._codec.find_method(method)
        request = self._codec.message_class(descriptor.input_type.full_name)(**fields)
        index = self._index
        self._index = (self._index + 1) % _INDEX_MODULO
        frame = bytes([MSG_REQUEST]) + index.to_bytes(2, "little") + self._codec.wrap(
            f".{descriptor.full_name}",
            request.SerializeToString(),
        )

        try:
            await self._ws.send(frame)
            raw = await asyncio.wait_for(self._receive_response(index), timeout=self._response_timeout)
        except websockets.WebSocketException as exc:
            raise ServiceTransportError(f"{method}: {exc}") from exc
        except TimeoutError as exc:
            raise ServiceTransportError(f"{method}: no response within {self._response_timeout}s") from exc

        _, payload = self._codec.unwrap(raw[3:])
        response = message_to_dict(self._codec.decode_message(descriptor.output_type.full_name, payload))
        code = response.get("error", {}).get("code", 0)
        if code:
            raise ServiceCallError(method=method, code=code)
        return response

    async def _receive_response(self, index: int) -> bytes:
        while True:
            raw = await self._ws.recv()
            if not isinstance(raw, bytes) or not raw:
                continue
            if raw[0] == MSG_NOTIFY:
                continue
            if raw[0] != MSG_RESPONSE:
                raise ServiceTransportError(f"unexpected frame type {raw[0]}")
            received = int.from_bytes(raw[1:3], "little")
            if received != index:
                raise ServiceTransportError(f"response index {received} does not match request {index}")
            return raw


async def open_connection(
    url: str,
    codec: RecordCodec,
    on_connect: Callable[[WebSocketConnection], Awaitable[None]] | None = None,
    *,
    response_timeout: float = 30.0,
) -> WebSocketConnection | None:
    """Connect to the game service, or log and return None if it is unreachable."""
    connection = WebSocketConnection(url, codec, on_connect=on_connect, response_timeout=response_timeout)
    try:
        await connection.connect()
    except ServiceTransportError as exc:
        logger.warning("game service unavailable", url=url, error=str(exc))
        return None
    return connection
