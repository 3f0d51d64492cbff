"""Session multiplexer for the streamable HTTP transport.

Every HTTP client gets its own `MCPProtocolServer` (and tool registry) bound to
a `SessionTransport`. The multiplexer owns the ``session id → transport`` map;
entries are added when an initialize request arrives without a session id and
removed exactly once, by the transport's close callback.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator, Callable, Iterable
from dataclasses import dataclass, field
from typing import Any, Final, TypeAlias
from uuid import uuid4

from mcp.types import INVALID_REQUEST

from api_tester.mcp.protocol import JSONObject, MCPProtocolServer, error, is_initialize_request

logger = logging.getLogger(__name__)

SESSION_HEADER: Final = "mcp-session-id"
SESSION_ERROR_CODE: Final = -32000
NO_VALID_SESSION_MESSAGE: Final = "Bad Request: No valid session ID provided"
INVALID_SESSION_TEXT: Final = "Invalid or missing session ID"
# Localhost only. There is no setting for this; non-local deployments must pass
# their own allowlist to `SessionMultiplexer`.
DEFAULT_ALLOWED_HOSTS: Final = frozenset(
    {"localhost", "localhost:3000", "127.0.0.1", "127.0.0.1:3000"}
)

ServerFactory: TypeAlias = Callable[[str], MCPProtocolServer]


@dataclass(slots=True)
class TransportResponse:
    """Transport-level outcome, rendered to HTTP by the route layer."""

    status_code: int
    body: JSONObject | list[JSONObject] | None = None
    headers: dict[str, str] = field(default_factory=dict)


class StreamConflictError(RuntimeError):
    """Raised when a session already has an open notification stream."""


def format_sse(message: JSONObject) -> str:
    return f"event: message\ndata: {json.dumps(message)}\n\n"


class SessionTransport:
    """Duplex channel between one HTTP client and its protocol server."""

    def __init__(
        self,
        session_id: str,
        server: MCPProtocolServer,
        *,
        allowed_hosts: Iterable[str],
        on_close: Callable[[str], None],
    ) -> None:
        self.session_id = session_id
        self.server = server
        self._allowed_hosts = frozenset(allowed_hosts)
        self._on_close = on_close
        self._stream: asyncio.Queue[JSONObject | None] | None = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def has_stream(self) -> bool:
        return self._stream is not None

    def connect(self) -> None:
        """Bind the server's notification sender to this transport."""
        self.server.connect(self.send)

    def host_rejection(self, host: str | None) -> TransportResponse | None:
        """403 response for hosts outside the allowlist (DNS-rebinding guard)."""
        if host is not None and host in self._allowed_hosts:
            return None
        logger.warning("Rejected request with Host header %r", host)
        return TransportResponse(
            status_code=403,
            body=error(None, SESSION_ERROR_CODE, f"Invalid Host header: {host}"),
        )

    async def handle_post(self, host: str | None, payload: Any) -> TransportResponse:
        rejection = self.host_rejection(host)
        if rejection is not None:
            return rejection
        headers = {SESSION_HEADER: self.session_id}

        if isinstance(payload, list):
            if not payload:
                body = error(None, INVALID_REQUEST, "Invalid Request")
                return TransportResponse(status_code=400, body=body, headers=headers)
            replies = []
            for message in payload:
                reply = await self.server.handle_message(message)
                if reply is not None:
                    replies.append(reply)
            if not replies:
                return TransportResponse(status_code=202, headers=headers)
            return TransportResponse(status_code=200, body=replies, headers=headers)

        reply = await self.server.handle_message(payload)
        if reply is None:
            return TransportResponse(status_code=202, headers=headers)
        return TransportResponse(status_code=200, body=reply, headers=headers)

    def open_stream(self) -> AsyncIterator[str]:
        """Attach the server-to-client notification stream (one per session)."""
        if self._stream is not None:
            msg = "Only one notification stream is allowed per session"
            raise StreamConflictError(msg)
        queue: asyncio.Queue[JSONObject | None] = asyncio.Queue()
        self._stream = queue
        return self._drain(queue)

    async def _drain(self, queue: asyncio.Queue[JSONObject | None]) -> AsyncIterator[str]:
        finished = False
        try:
            while True:
                message = await queue.get()
                if message is None:
                    finished = True
                    return
                yield format_sse(message)
        finally:
            if self._stream is queue:
                self._stream = None
            if not finished and not self._closed:
                logger.info("Client disconnected from session %s", self.session_id)
                self.close()

    async def send(self, message: JSONObject) -> None:
        if self._closed:
            return
        if self._stream is None:
            logger.debug("No open stream for session %s; dropping %s", self.session_id, message)
            return
        self._stream.put_nowait(message)

    def close(self) -> None:
        """Close the transport; the close callback runs once, synchronously."""
        if self._closed:
            return
        self._closed = True
        if self._stream is not None:
            self._stream.put_nowait(None)
        self._on_close(self.session_id)


class SessionMultiplexer:
    """Route streamable-HTTP requests to per-session protocol servers."""

    def __init__(
        self,
        server_factory: ServerFactory,
        *,
        allowed_hosts: Iterable[str] = DEFAULT_ALLOWED_HOSTS,
        session_id_factory: Callable[[], str] | None = None,
    ) -> None:
        self._server_factory = server_factory
        self._allowed_hosts = frozenset(allowed_hosts)
        self._session_id_factory = session_id_factory or (lambda: str(uuid4()))
        self._sessions: dict[str, SessionTransport] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def session_ids(self) -> list[str]:
        return list(self._sessions)

    def get(self, session_id: str | None) -> SessionTransport | None:
        if not session_id:
            return None
        return self._sessions.get(session_id)

    async def handle_post(
        self,
        session_id: str | None,
        host: str | None,
        payload: Any,
    ) -> TransportResponse:
        """Resolve or create the session for `payload`, then dispatch it."""
        transport = self.get(session_id)
        if transport is not None:
            return await transport.handle_post(host, payload)
        if not session_id and is_initialize_request(payload):
            return await self._start_session(host, payload)
        return TransportResponse(
            status_code=400,
            body=error(None, SESSION_ERROR_CODE, NO_VALID_SESSION_MESSAGE),
        )

    async def _start_session(self, host: str | None, payload: Any) -> TransportResponse:
        session_id = self._session_id_factory()
        transport = SessionTransport(
            session_id,
            self._server_factory(session_id),
            allowed_hosts=self._allowed_hosts,
            on_close=self._forget,
        )
        rejection = transport.host_rejection(host)
        if rejection is not None:
            return rejection
        self._sessions[session_id] = transport
        transport.connect()
        logger.info("Created MCP session %s", session_id)
        return await transport.handle_post(host, payload)

    def _forget(self, session_id: str) -> None:
        if self._sessions.pop(session_id, None) is not None:
            logger.info("Closed MCP session %s", session_id)

    def close_all(self) -> None:
        for transport in list(self._sessions.values()):
            transport.close()
