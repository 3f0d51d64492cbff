"""Arithmetic example tools."""

from __future__ import annotations

from mcp.types import CallToolResult, TextContent
from pydantic import BaseModel, StrictFloat, StrictInt

from api_tester.core.query_normalizer import number_text
from api_tester.mcp.registry import ToolContext


class ArithmeticArgs(BaseModel):
    """Two numeric operands."""

    a: StrictInt | StrictFloat
    b: StrictInt | StrictFloat


async def handle_add(args: ArithmeticArgs, context: ToolContext) -> CallToolResult:
    return _number_result(args.a + args.b)


async def handle_sub(args: ArithmeticArgs, context: ToolContext) -> CallToolResult:
    return _number_result(args.a - args.b)


def format_number(value: int | float) -> str:
    """Render a result without a trailing ``.0`` for integral floats."""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return number_text(value)


def _number_result(value: int | float) -> CallToolResult:
    return CallToolResult(
        content=[TextContent(type="text", text=format_number(value))],
        isError=False,
    )
