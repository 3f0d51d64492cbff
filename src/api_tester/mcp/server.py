"""api-tester MCP tool/resource catalog."""

from __future__ import annotations

from typing import Final

from mcp.types import Implementation

from api_tester.core.http_engine import HttpCallEngine
from api_tester.mcp.protocol import MCPProtocolServer
from api_tester.mcp.registry import ToolRegistry
from api_tester.mcp.tools.arithmetic_tools import ArithmeticArgs, handle_add, handle_sub
from api_tester.mcp.tools.http_tools import (
    HTTP_REQUEST_HINTS,
    HttpRequestArgs,
    make_http_request_handler,
)
from api_tester.mcp.tools.resource_refs import GREETING_TEMPLATE, read_greeting

SERVER_NAME: Final = "API Tester MCP"
SERVER_VERSION: Final = "2.0.0"


def server_info() -> Implementation:
    return Implementation(name=SERVER_NAME, version=SERVER_VERSION)


def build_registry(engine: HttpCallEngine) -> ToolRegistry:
    """Register every api-tester tool and resource against a fresh registry."""
    registry = ToolRegistry()
    registry.register("add", "Add two numbers", ArithmeticArgs, handle_add)
    registry.register("sub", "Subtract b from a", ArithmeticArgs, handle_sub)
    registry.register(
        "http_request",
        "Send an HTTP request with timeout and retries; returns status, latency and body",
        HttpRequestArgs,
        make_http_request_handler(engine),
        hints=HTTP_REQUEST_HINTS,
    )
    registry.register_resource_template(
        "greeting",
        GREETING_TEMPLATE,
        "Dynamic greeting for {name}",
        read_greeting,
    )
    return registry


def create_protocol_server(
    engine: HttpCallEngine,
    session_id: str | None = None,
) -> MCPProtocolServer:
    """Build one protocol server with its own freshly populated registry."""
    return MCPProtocolServer(build_registry(engine), info=server_info(), session_id=session_id)
