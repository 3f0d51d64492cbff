from __future__ import annotations

import pytest
from mcp.types import CallToolResult, TextContent
from pydantic import BaseModel

from api_tester.mcp.registry import ToolContext, ToolRegistry, UnknownToolError
from api_tester.mcp.server import build_registry
from tests.support.http_stubs import json_upstream, make_engine


class EmptyArgs(BaseModel):
    """No arguments."""


def _registry() -> ToolRegistry:
    return build_registry(make_engine(json_upstream(200, {})))


def test_registered_tools_contains_expected_surface() -> None:
    tools = _registry().list_tools()
    names = {tool.name for tool in tools}

    assert names == {"add", "sub", "http_request"}
    http_tool = next(tool for tool in tools if tool.name == "http_request")
    assert http_tool.inputSchema["required"] == ["url"]
    assert set(http_tool.inputSchema["properties"]) == {
        "url",
        "method",
        "headers",
        "query",
        "body",
        "timeoutMs",
    }


def test_registered_resource_templates() -> None:
    templates = _registry().list_resource_templates()

    assert [template.uriTemplate for template in templates] == ["greeting://{name}"]


def test_find_tool_returns_none_when_missing() -> None:
    assert _registry().find_tool("multiply") is None


def test_duplicate_tool_registration_is_rejected() -> None:
    registry = _registry()

    with pytest.raises(ValueError, match="Tool already registered: add"):
        registry.register("add", "again", EmptyArgs, _noop)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("tool", "arguments", "expected"),
    [
        ("add", {"a": 1, "b": 2}, "3"),
        ("sub", {"a": 1, "b": 2}, "-1"),
        ("add", {"a": 1.5, "b": 1.5}, "3"),
        ("add", {"a": 0.1, "b": 0.2}, "0.30000000000000004"),
    ],
)
async def test_arithmetic_tools(tool: str, arguments: dict, expected: str) -> None:
    result = await _registry().invoke(tool, arguments)

    assert result.isError is False
    assert [block.text for block in result.content] == [expected]


@pytest.mark.asyncio
async def test_arithmetic_rejects_numeric_strings() -> None:
    result = await _registry().invoke("add", {"a": "1", "b": 2})

    assert result.isError is True
    assert result.content[0].text.startswith('Invalid "a":')


@pytest.mark.asyncio
async def test_arithmetic_reports_every_missing_operand() -> None:
    result = await _registry().invoke("sub", {})

    assert result.isError is True
    assert result.content[0].text == 'Missing required "a". Missing required "b".'


@pytest.mark.asyncio
async def test_invoke_unknown_tool_raises() -> None:
    with pytest.raises(UnknownToolError):
        await _registry().invoke("multiply", {})


@pytest.mark.asyncio
async def test_handler_failure_becomes_error_result() -> None:
    registry = ToolRegistry()

    async def explode(args: EmptyArgs, context: ToolContext) -> CallToolResult:
        raise RuntimeError("kaboom")

    registry.register("explode", "always fails", EmptyArgs, explode)
    result = await registry.invoke("explode", {})

    assert result.isError is True
    assert result.content[0].text == "Tool explode failed: kaboom"


@pytest.mark.asyncio
async def test_greeting_resource_read() -> None:
    result = await _registry().read_resource("greeting://Ada")

    assert result is not None
    assert [content.text for content in result.contents] == ["Hello, Ada!"]


@pytest.mark.asyncio
async def test_unknown_resource_returns_none() -> None:
    registry = _registry()

    assert await registry.read_resource("farewell://Ada") is None
    assert await registry.read_resource("greeting://Ada/extra") is None


async def _noop(args: EmptyArgs, context: ToolContext) -> CallToolResult:
    return CallToolResult(content=[TextContent(type="text", text="")])
