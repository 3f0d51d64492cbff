"""HTTP request tool adapter for MCP exposure."""

from __future__ import annotations

import json
from typing import Any

import httpx
from mcp.types import CallToolResult, TextContent
from pydantic import BaseModel, ConfigDict, Field, PositiveInt, field_validator

from api_tester.core.http_engine import CallRequest, CallResult, HttpCallEngine, HttpMethod
from api_tester.core.query_normalizer import normalize_query
from api_tester.mcp.registry import ToolContext, ToolHandler

PREVIEW_LIMIT = 8000
TRUNCATION_MARKER = "…[truncated]"
HTTP_REQUEST_HINTS = {"url": "absolute URL"}


class HttpRequestArgs(BaseModel):
    """Arguments accepted by the `http_request` tool."""

    model_config = ConfigDict(populate_by_name=True)

    url: str = Field(description="Absolute URL to call")
    method: HttpMethod = "GET"
    headers: dict[str, str] | None = None
    query: dict[str, str] | None = Field(
        default=None,
        description="Query parameters; 'true'/'false' and numeric strings are sent typed",
    )
    body: str | None = Field(default=None, description="Raw request body, sent as-is")
    timeout_ms: PositiveInt | None = Field(
        default=None,
        alias="timeoutMs",
        description="Per-attempt timeout in milliseconds",
    )

    @field_validator("url")
    @classmethod
    def _require_absolute_url(cls, value: str) -> str:
        try:
            parsed = httpx.URL(value)
        except httpx.InvalidURL as exc:
            msg = f"url is not a valid URL: {exc}"
            raise ValueError(msg) from exc
        if not parsed.is_absolute_url:
            msg = "url must be an absolute URL"
            raise ValueError(msg)
        return value

    def to_call_request(self) -> CallRequest:
        return CallRequest(
            url=self.url,
            method=self.method,
            headers=dict(self.headers or {}),
            query=normalize_query(self.query),
            body=self.body,
            timeout_ms=self.timeout_ms,
        )


def make_http_request_handler(engine: HttpCallEngine) -> ToolHandler:
    """Bind the `http_request` tool handler to one call engine."""

    async def handle_http_request(args: HttpRequestArgs, context: ToolContext) -> CallToolResult:
        async def report_retry(attempt: int, error: str) -> None:
            await context.send_log(
                "warning",
                {"tool": "http_request", "url": args.url, "attempt": attempt, "error": error},
            )

        result = await engine.call(args.to_call_request(), on_retry=report_retry)
        return build_http_result(result)

    return handle_http_request


def body_preview(result: CallResult) -> str:
    """Pretty JSON when the body parsed, otherwise the raw text."""
    if result.json is not None:
        return json.dumps(result.json, indent=2, ensure_ascii=False)
    return result.text


def truncate_preview(text: str, limit: int = PREVIEW_LIMIT) -> str:
    if len(text) > limit:
        return text[:limit] + TRUNCATION_MARKER
    return text


def structured_payload(result: CallResult, preview: str) -> dict[str, Any]:
    return {
        "ok": result.ok,
        "status": result.status,
        "latencyMs": result.latency_ms,
        "headers": result.headers,
        "request": {
            "method": result.method,
            "headers": result.request_headers,
            "url": result.url,
        },
        "bodyJson": result.json,
        "bodyTextPreview": preview,
        "error": result.error,
    }


def build_http_result(result: CallResult) -> CallToolResult:
    summary = f"HTTP {result.method} {result.url} → {result.status} in {result.latency_ms}ms"
    preview = truncate_preview(body_preview(result))
    return CallToolResult(
        content=[
            TextContent(type="text", text=f"✅ {summary}"),
            TextContent(type="text", text="Response preview:\n```json\n" + preview + "\n```"),
        ],
        structuredContent=structured_payload(result, preview),
        isError=False,
    )
