"""MCP streamable HTTP transport endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse, PlainTextResponse, StreamingResponse
from mcp.types import PARSE_ERROR

from api_tester.api.deps import get_multiplexer
from api_tester.api.sessions import (
    INVALID_SESSION_TEXT,
    SESSION_ERROR_CODE,
    SESSION_HEADER,
    SessionMultiplexer,
    StreamConflictError,
    TransportResponse,
)
from api_tester.mcp.protocol import error

router = APIRouter(tags=["mcp-transport"])


def _session_id(request: Request) -> str | None:
    return request.headers.get(SESSION_HEADER) or None


def _render(outcome: TransportResponse) -> Response:
    if outcome.body is None:
        return Response(status_code=outcome.status_code, headers=outcome.headers)
    return JSONResponse(outcome.body, status_code=outcome.status_code, headers=outcome.headers)


@router.post("/mcp")
async def mcp_post(
    request: Request,
    multiplexer: SessionMultiplexer = Depends(get_multiplexer),
) -> Response:
    try:
        payload = await request.json()
    except ValueError:
        return JSONResponse(error(None, PARSE_ERROR, "Parse error"), status_code=400)
    outcome = await multiplexer.handle_post(
        _session_id(request),
        request.headers.get("host"),
        payload,
    )
    return _render(outcome)


@router.get("/mcp")
async def mcp_stream(
    request: Request,
    multiplexer: SessionMultiplexer = Depends(get_multiplexer),
) -> Response:
    transport = multiplexer.get(_session_id(request))
    if transport is None:
        return PlainTextResponse(INVALID_SESSION_TEXT, status_code=400)
    rejection = transport.host_rejection(request.headers.get("host"))
    if rejection is not None:
        return _render(rejection)
    try:
        events = transport.open_stream()
    except StreamConflictError as exc:
        return JSONResponse(error(None, SESSION_ERROR_CODE, f"Conflict: {exc}"), status_code=409)
    return StreamingResponse(
        events,
        media_type="text/event-stream",
        headers={"cache-control": "no-cache", SESSION_HEADER: transport.session_id},
    )


@router.delete("/mcp")
async def mcp_terminate(
    request: Request,
    multiplexer: SessionMultiplexer = Depends(get_multiplexer),
) -> Response:
    transport = multiplexer.get(_session_id(request))
    if transport is None:
        return PlainTextResponse(INVALID_SESSION_TEXT, status_code=400)
    rejection = transport.host_rejection(request.headers.get("host"))
    if rejection is not None:
        return _render(rejection)
    transport.close()
    return Response(status_code=200)
