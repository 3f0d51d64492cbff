from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable
from typing import TypeAlias

import httpx

from api_tester.config import Settings
from api_tester.core.http_engine import HttpCallEngine

StubHandler: TypeAlias = Callable[[httpx.Request], httpx.Response | Awaitable[httpx.Response]]


class StubUpstream:
    """Records outbound requests and answers them with `handler`."""

    def __init__(self, handler: StubHandler) -> None:
        self.requests: list[httpx.Request] = []
        self._handler = handler

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self._handle)

    async def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        result = self._handler(request)
        if inspect.isawaitable(result):
            result = await result
        return result


class SleepRecorder:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


def make_engine(
    upstream: StubUpstream,
    *,
    settings: Settings | None = None,
    sleep: SleepRecorder | None = None,
) -> HttpCallEngine:
    return HttpCallEngine(
        settings or Settings(),
        transport=upstream.transport(),
        sleep=sleep or SleepRecorder(),
        jitter=lambda low, high: 0.0,
    )


def json_upstream(status: int, payload: object) -> StubUpstream:
    return StubUpstream(lambda request: httpx.Response(status, json=payload))


def initialize_message(request_id: str | int = 0, version: str = "2025-03-26") -> dict:
    return {
        "jsonrpc": "2.0",
        "id": request_id,
        "method": "initialize",
        "params": {
            "protocolVersion": version,
            "capabilities": {},
            "clientInfo": {"name": "pytest", "version": "1.0"},
        },
    }


def tool_call_message(request_id: str | int, name: str, arguments: dict) -> dict:
    return {
        "jsonrpc": "2.0",
        "id": request_id,
        "method": "tools/call",
        "params": {"name": name, "arguments": arguments},
    }
