"""stdio transport: one client speaking MCP over the process pipes."""

from __future__ import annotations

import asyncio
import logging

from anyio.streams.memory import MemoryObjectReceiveStream, MemoryObjectSendStream
from mcp.server.stdio import stdio_server
from mcp.shared.message import SessionMessage
from mcp.types import JSONRPCMessage
from pydantic import ValidationError

from api_tester.mcp.protocol import JSONObject, MCPProtocolServer

logger = logging.getLogger(__name__)


async def serve_streams(
    server: MCPProtocolServer,
    read_stream: MemoryObjectReceiveStream[SessionMessage | Exception],
    write_stream: MemoryObjectSendStream[SessionMessage],
) -> None:
    """Pump messages between `server` and a pair of SDK message streams.

    Each inbound message is handled in its own task so slow tool calls do not
    block pings or other requests. Returns once the read side is exhausted and
    every in-flight request has been answered.
    """

    async def send(payload: JSONObject) -> None:
        try:
            message = JSONRPCMessage.model_validate(payload)
        except ValidationError:
            logger.warning("Dropping message that is not valid JSON-RPC: %s", payload)
            return
        await write_stream.send(SessionMessage(message))

    async def handle(item: SessionMessage) -> None:
        payload = item.message.model_dump(by_alias=True, exclude_none=True)
        reply = await server.handle_message(payload)
        if reply is not None:
            await send(reply)

    server.connect(send)
    async with read_stream, write_stream:
        async with asyncio.TaskGroup() as tasks:
            async for item in read_stream:
                if isinstance(item, Exception):
                    logger.warning("Ignoring unreadable stdin message: %s", item)
                    continue
                tasks.create_task(handle(item))


async def serve_stdio(server: MCPProtocolServer) -> None:
    """Serve `server` on stdin/stdout until stdin closes."""
    logger.info("Serving MCP over stdio")
    async with stdio_server() as (read_stream, write_stream):
        await serve_streams(server, read_stream, write_stream)
