"""Relay session: one client connection bridged to one upstream connection.

Lifecycle: CONNECTING → RELAYING → CLOSING → CLOSED.

While CONNECTING the token is being solved and the upstream dialed; client
messages are queued in arrival order. On upstream open the queue is flushed,
the session switches to direct forwarding, and a keepalive task pings the
upstream periodically. Each direction is driven by its own reader task.

Teardown runs exactly once, whichever side ends first and however many
close/error events fire: it stops the keepalive, releases the proxy lease,
cancels the reader and connect tasks, and closes the peer. A client that
leaves while CONNECTING cancels the pending solve/dial, so no upstream
connection outlives it.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections import deque
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

from starlette.websockets import WebSocket, WebSocketState
from websockets.exceptions import ConnectionClosed
from websockets.protocol import State

from wsrelay.middleware.error_handler import (
    CLOSE_GOING_AWAY,
    CLOSE_INTERNAL_ERROR,
    CLOSE_NORMAL,
    DialError,
    RelayError,
    RelayFault,
)
from wsrelay.models.session import SessionState
from wsrelay.proxy.pool import ProxyPool
from wsrelay.proxy.types import ProxyLease

if TYPE_CHECKING:
    from websockets.asyncio.client import ClientConnection

logger = logging.getLogger(__name__)

Message = str | bytes

MAX_CLOSE_REASON_BYTES = 123
ABNORMAL_CLOSURE = 1006


def safe_close_code(code: int | None) -> int:
    """Map an upstream close code to one that may be sent to the client.

    1000-1003, 1007-1014 and 3000-4999 pass through; reserved codes
    (1004-1006, 1015) and anything else become 1000.
    """
    if code is None:
        return CLOSE_NORMAL
    if 1000 <= code <= 1003 or 1007 <= code <= 1014 or 3000 <= code <= 4999:
        return code
    return CLOSE_NORMAL


def truncate_reason(reason: str | None, limit: int = MAX_CLOSE_REASON_BYTES) -> str:
    """Cut *reason* to at most *limit* UTF-8 bytes without splitting a character."""
    if not reason:
        return ""
    encoded = reason.encode("utf-8")
    if len(encoded) <= limit:
        return reason
    return encoded[:limit].decode("utf-8", errors="ignore")


class RelaySession:
    """Bridges a client WebSocket to an upstream backend connection.

    Parameters
    ----------
    client:
        Accepted client WebSocket.
    region:
        Validated backend host the session targets.
    name:
        Display name supplied by the client, used in the session label.
    proxy_pool / lease:
        Pool and lease to give back on teardown (``lease`` is None for direct).
    keepalive_interval_seconds:
        Upstream ping period while relaying.
    """

    def __init__(
        self,
        *,
        client: WebSocket,
        region: str,
        name: str,
        proxy_pool: ProxyPool,
        lease: ProxyLease | None = None,
        keepalive_interval_seconds: float = 20.0,
        session_id: str | None = None,
    ) -> None:
        self.session_id = session_id or str(uuid.uuid4())
        self.region = region
        self.name = name
        self.label = f"{name}#{self.session_id[:8]}"

        self._client = client
        self._upstream: ClientConnection | None = None
        self._proxy_pool = proxy_pool
        self._lease = lease
        self._keepalive_interval = keepalive_interval_seconds

        self._queue: deque[Message] = deque()
        self._upstream_ready = False
        self._state = SessionState.CONNECTING
        self._closed = asyncio.Event()
        self._started_at = time.monotonic()

        self._client_task: asyncio.Task[None] | None = None
        self._upstream_task: asyncio.Task[None] | None = None
        self._connect_task: asyncio.Task[None] | None = None
        self._keepalive_task: asyncio.Task[None] | None = None

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def upstream_ready(self) -> bool:
        return self._upstream_ready

    @property
    def queued(self) -> int:
        return len(self._queue)

    @property
    def proxy_host(self) -> str:
        return self._lease.endpoint.display_host if self._lease else "direct"

    def _extra(self, **fields: Any) -> dict:
        return {
            "session_id": self.session_id,
            "session": self.label,
            "region": self.region,
            "proxy": self.proxy_host,
            **fields,
        }

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def run(self, open_upstream: Callable[[], Awaitable[ClientConnection]]) -> None:
        """Relay until both sides are closed.

        *open_upstream* solves the challenge and dials the backend; a
        ``RelayError`` from it closes the client with the error's code/reason.
        """
        self._client_task = asyncio.create_task(
            self._pump_client(), name=f"relay-client-{self.label}"
        )
        self._connect_task = asyncio.create_task(
            self._connect(open_upstream), name=f"relay-connect-{self.label}"
        )

        try:
            await self._closed.wait()
        finally:
            if self._state is not SessionState.CLOSED:
                # run() itself was cancelled, e.g. server shutdown
                await self.teardown(CLOSE_GOING_AWAY, "Server shutting down")
            await self._drain_tasks()

    async def close(self, code: int = CLOSE_GOING_AWAY, reason: str = "") -> None:
        """Close both sides from outside the session."""
        await self.teardown(code, reason)

    async def teardown(self, client_code: int | None = None, client_reason: str = "") -> None:
        """Single cleanup path; only the first call has any effect.

        *client_code* is sent to the client if it is still open; ``None``
        means the client initiated the close.
        """
        if self._state in (SessionState.CLOSING, SessionState.CLOSED):
            return
        self._state = SessionState.CLOSING
        self._upstream_ready = False

        self._proxy_pool.release(self._lease)

        # Stop keepalive and detach readers so no late event re-enters forwarding
        current = asyncio.current_task()
        for task in (
            self._keepalive_task,
            self._client_task,
            self._upstream_task,
            self._connect_task,
        ):
            if task is not None and task is not current and not task.done():
                task.cancel()

        self._queue.clear()

        if self._upstream_open():
            await self._close_upstream()
        if client_code is not None and self._client_open():
            await self._close_client(client_code, client_reason)

        self._state = SessionState.CLOSED
        self._closed.set()
        logger.info(
            "Session closed",
            extra=self._extra(
                close_code=client_code,
                duration_ms=round((time.monotonic() - self._started_at) * 1000, 1),
            ),
        )

    # ------------------------------------------------------------------
    # Connect
    # ------------------------------------------------------------------

    async def _connect(self, open_upstream: Callable[[], Awaitable[ClientConnection]]) -> None:
        try:
            upstream = await open_upstream()
        except RelayError as exc:
            logger.error(
                "%s. Closing.", exc.message, extra=self._extra(error_reason=exc.message)
            )
            await self.teardown(exc.close_code, exc.reason)
            return
        except Exception as exc:
            logger.exception("Unexpected connect failure", extra=self._extra(error_reason=str(exc)))
            await self.teardown(CLOSE_INTERNAL_ERROR, DialError.reason)
            return

        if self._state is not SessionState.CONNECTING:
            # Client left while the dial was resolving
            logger.info("Discarding upstream opened after client left", extra=self._extra())
            self._upstream = upstream
            await self._close_upstream()
            return

        self._upstream = upstream
        logger.info("Connected to upstream via %s", self.proxy_host, extra=self._extra())

        await self._flush_queue()
        if self._state is not SessionState.CONNECTING:
            return

        self._upstream_ready = True
        self._state = SessionState.RELAYING
        self._keepalive_task = asyncio.create_task(
            self._keepalive(), name=f"relay-keepalive-{self.label}"
        )
        self._upstream_task = asyncio.create_task(
            self._pump_upstream(), name=f"relay-upstream-{self.label}"
        )

    async def _flush_queue(self) -> None:
        """Send queued client messages in FIFO order, including any that arrive meanwhile."""
        assert self._upstream is not None
        while self._queue:
            message = self._queue.popleft()
            try:
                await self._upstream.send(message)
            except Exception as exc:
                fault = RelayFault(f"Queued message flush failed: {exc}")
                logger.warning(fault.message, extra=self._extra())
                self._queue.clear()
                return

    # ------------------------------------------------------------------
    # Client → upstream
    # ------------------------------------------------------------------

    async def _pump_client(self) -> None:
        code: int | None = None
        try:
            while True:
                event = await self._client.receive()
                if event["type"] == "websocket.disconnect":
                    code = event.get("code", CLOSE_NORMAL)
                    break
                message = event.get("text")
                if message is None:
                    message = event.get("bytes")
                if message is not None:
                    await self._forward_to_upstream(message)
        except Exception as exc:
            logger.error("Client error: %s", exc, extra=self._extra(error_reason=str(exc)))

        logger.info("Client closed", extra=self._extra(close_code=code))
        await self.teardown()

    async def _forward_to_upstream(self, message: Message) -> None:
        if not self._upstream_ready:
            self._queue.append(message)
            return
        if not self._upstream_open():
            return
        try:
            await self._upstream.send(message)  # type: ignore[union-attr]
        except Exception as exc:
            fault = RelayFault(f"Upstream send failed: {exc}")
            logger.warning(fault.message, extra=self._extra())

    # ------------------------------------------------------------------
    # Upstream → client
    # ------------------------------------------------------------------

    async def _pump_upstream(self) -> None:
        assert self._upstream is not None
        try:
            while True:
                message = await self._upstream.recv()
                await self._forward_to_client(message)
        except ConnectionClosed as exc:
            if exc.rcvd is None and exc.__cause__ is not None:
                # Transport failure, no close frame from the backend
                logger.error(
                    "Upstream error: %s",
                    exc.__cause__,
                    extra=self._extra(error_reason=str(exc.__cause__)),
                )
                await self.teardown(CLOSE_INTERNAL_ERROR, RelayFault.reason)
                return
            code = exc.rcvd.code if exc.rcvd is not None else ABNORMAL_CLOSURE
            reason = exc.rcvd.reason if exc.rcvd is not None else ""
            logger.info("Upstream closed: %s %s", code, reason, extra=self._extra(close_code=code))
            await self.teardown(safe_close_code(code), truncate_reason(reason))
        except Exception as exc:
            logger.error("Upstream error: %s", exc, extra=self._extra(error_reason=str(exc)))
            await self.teardown(CLOSE_INTERNAL_ERROR, RelayFault.reason)

    async def _forward_to_client(self, message: Message) -> None:
        if not self._client_open():
            return
        try:
            if isinstance(message, str):
                await self._client.send_text(message)
            else:
                await self._client.send_bytes(message)
        except Exception as exc:
            fault = RelayFault(f"Client send failed: {exc}")
            logger.warning(fault.message, extra=self._extra())

    # ------------------------------------------------------------------
    # Keepalive
    # ------------------------------------------------------------------

    async def _keepalive(self) -> None:
        while True:
            await asyncio.sleep(self._keepalive_interval)
            if not self._upstream_open():
                return
            try:
                await self._upstream.ping()  # type: ignore[union-attr]
            except Exception as exc:
                logger.warning("Keepalive ping error: %s", exc, extra=self._extra())

    # ------------------------------------------------------------------
    # Peer state / closing
    # ------------------------------------------------------------------

    def _client_open(self) -> bool:
        return (
            self._client.client_state == WebSocketState.CONNECTED
            and self._client.application_state == WebSocketState.CONNECTED
        )

    def _upstream_open(self) -> bool:
        return self._upstream is not None and self._upstream.state is State.OPEN

    async def _close_client(self, code: int, reason: str) -> None:
        try:
            await self._client.close(code=code, reason=truncate_reason(reason))
        except Exception as exc:
            # The ASGI server drops the socket once the endpoint returns
            logger.error("Error closing client: %s", exc, extra=self._extra())

    async def _close_upstream(self) -> None:
        assert self._upstream is not None
        try:
            await self._upstream.close()
        except Exception as exc:
            logger.warning("Error closing upstream, aborting: %s", exc, extra=self._extra())
            self._upstream.transport.abort()

    async def _drain_tasks(self) -> None:
        tasks = [
            task
            for task in (
                self._client_task,
                self._connect_task,
                self._upstream_task,
                self._keepalive_task,
            )
            if task is not None
        ]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
