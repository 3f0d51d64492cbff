from __future__ import annotations

from typing import Any

import pytest
from mcp.types import LATEST_PROTOCOL_VERSION

from api_tester.mcp.protocol import MCPProtocolServer, is_initialize_request
from api_tester.mcp.server import SERVER_NAME, create_protocol_server
from tests.support.http_stubs import (
    initialize_message,
    json_upstream,
    make_engine,
    tool_call_message,
)


def _server() -> MCPProtocolServer:
    return create_protocol_server(make_engine(json_upstream(200, {"a": 1})), "session-1")


async def _call(server: MCPProtocolServer, method: str, params: dict | None = None) -> Any:
    message: dict[str, Any] = {"jsonrpc": "2.0", "id": 7, "method": method}
    if params is not None:
        message["params"] = params
    return await server.handle_message(message)


def test_is_initialize_request() -> None:
    assert is_initialize_request(initialize_message()) is True
    assert is_initialize_request({"jsonrpc": "2.0", "id": 1, "method": "ping"}) is False
    assert is_initialize_request({"jsonrpc": "2.0", "method": "initialize", "params": {}}) is False
    assert is_initialize_request({"jsonrpc": "2.0", "id": 1, "method": "initialize"}) is False
    assert is_initialize_request([initialize_message()]) is False


@pytest.mark.asyncio
async def test_initialize_negotiates_protocol_version() -> None:
    server = _server()

    reply = await server.handle_message(initialize_message(version="2025-03-26"))

    assert reply is not None
    result = reply["result"]
    assert result["protocolVersion"] == "2025-03-26"
    assert result["serverInfo"]["name"] == SERVER_NAME
    assert set(result["capabilities"]) == {"tools", "resources", "logging"}
    assert server.initialized is True
    assert server.client_info is not None
    assert server.client_info.name == "pytest"


@pytest.mark.asyncio
async def test_initialize_falls_back_to_latest_version() -> None:
    server = _server()

    reply = await server.handle_message(initialize_message(version="1999-01-01"))

    assert reply is not None
    assert reply["result"]["protocolVersion"] == LATEST_PROTOCOL_VERSION


@pytest.mark.asyncio
async def test_second_initialize_is_rejected() -> None:
    server = _server()
    await server.handle_message(initialize_message())

    reply = await server.handle_message(initialize_message(request_id=1))

    assert reply is not None
    assert reply["error"]["code"] == -32600
    assert reply["id"] == 1


@pytest.mark.asyncio
async def test_initialized_notification_has_no_reply() -> None:
    server = _server()

    reply = await server.handle_message({"jsonrpc": "2.0", "method": "notifications/initialized"})

    assert reply is None
    assert server.client_ready is True


@pytest.mark.asyncio
async def test_client_responses_are_accepted_silently() -> None:
    assert await _server().handle_message({"jsonrpc": "2.0", "id": 3, "result": {}}) is None


@pytest.mark.asyncio
async def test_ping_and_listings() -> None:
    server = _server()

    assert (await _call(server, "ping"))["result"] == {}

    tools = (await _call(server, "tools/list"))["result"]["tools"]
    assert {tool["name"] for tool in tools} == {"add", "sub", "http_request"}
    assert all("inputSchema" in tool for tool in tools)

    resources = (await _call(server, "resources/list"))["result"]
    assert resources == {"resources": []}

    templates = (await _call(server, "resources/templates/list"))["result"]["resourceTemplates"]
    assert templates[0]["uriTemplate"] == "greeting://{name}"
    assert templates[0]["name"] == "greeting"


@pytest.mark.asyncio
async def test_tools_call_returns_call_tool_result() -> None:
    server = _server()

    reply = await server.handle_message(tool_call_message(5, "add", {"a": 2, "b": 3}))

    assert reply == {
        "jsonrpc": "2.0",
        "id": 5,
        "result": {"content": [{"type": "text", "text": "5"}], "isError": False},
    }


@pytest.mark.asyncio
async def test_tools_call_http_request_includes_structured_content() -> None:
    server = _server()

    reply = await server.handle_message(
        tool_call_message(6, "http_request", {"url": "https://example.test/ok"})
    )

    assert reply is not None
    structured = reply["result"]["structuredContent"]
    assert structured["ok"] is True
    assert structured["status"] == 200
    assert structured["bodyJson"] == {"a": 1}
    assert structured["error"] is None


@pytest.mark.asyncio
async def test_tools_call_validation_failure_is_not_a_protocol_error() -> None:
    reply = await _server().handle_message(tool_call_message(8, "http_request", {}))

    assert reply is not None
    assert "error" not in reply
    assert reply["result"]["isError"] is True


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("method", "params", "code"),
    [
        ("tools/call", {"name": "multiply", "arguments": {}}, -32601),
        ("tools/call", {"arguments": {}}, -32602),
        ("tools/call", {"name": "add", "arguments": [1, 2]}, -32602),
        ("resources/read", {}, -32602),
        ("resources/read", {"uri": "farewell://Ada"}, -32002),
        ("logging/setLevel", {"level": "loud"}, -32602),
        ("prompts/list", {}, -32601),
    ],
)
async def test_protocol_errors(method: str, params: dict, code: int) -> None:
    reply = await _call(_server(), method, params)

    assert reply["error"]["code"] == code
    assert reply["id"] == 7


@pytest.mark.asyncio
async def test_invalid_messages() -> None:
    server = _server()

    assert (await server.handle_message("ping"))["error"]["code"] == -32600
    assert (await server.handle_message({"jsonrpc": "2.0", "id": 1}))["error"]["code"] == -32600
    assert (await server.handle_message({"jsonrpc": "2.0", "id": 1, "method": 5}))["error"][
        "code"
    ] == -32600
    reply = await server.handle_message({"jsonrpc": "2.0", "id": 1, "method": "ping", "params": []})
    assert reply["error"]["code"] == -32602


@pytest.mark.asyncio
async def test_resources_read_greeting() -> None:
    reply = await _call(_server(), "resources/read", {"uri": "greeting://Ada"})

    contents = reply["result"]["contents"]
    assert len(contents) == 1
    assert contents[0]["text"] == "Hello, Ada!"
    assert contents[0]["mimeType"] == "text/plain"


@pytest.mark.asyncio
async def test_log_notifications_respect_level() -> None:
    server = _server()
    sent: list[dict] = []

    async def sender(message: dict) -> None:
        sent.append(message)

    server.connect(sender)
    await server.send_log("info", "before")
    assert (await _call(server, "logging/setLevel", {"level": "warning"}))["result"] == {}
    await server.send_log("info", "filtered")
    await server.send_log("error", "kept")

    assert [message["params"]["data"] for message in sent] == ["before", "kept"]
    assert sent[0] == {
        "jsonrpc": "2.0",
        "method": "notifications/message",
        "params": {"level": "info", "logger": "api-tester", "data": "before"},
    }
    assert server.log_level == "warning"


@pytest.mark.asyncio
async def test_notify_without_transport_is_dropped() -> None:
    await _server().send_log("error", "nobody listening")
