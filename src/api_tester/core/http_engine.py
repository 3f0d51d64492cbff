"""Outbound HTTP call engine with timeout, jittered retry and normalization."""

from __future__ import annotations

import asyncio
import json
import logging
import random
import time
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import Any, Literal, TypeAlias, Union
from urllib.parse import quote

import httpx

from api_tester.config import Settings
from api_tester.core.query_normalizer import QueryValue, number_text

logger = logging.getLogger(__name__)

HttpMethod: TypeAlias = Literal["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"]
JSONValue: TypeAlias = Union[None, bool, int, float, str, list["JSONValue"], dict[str, "JSONValue"]]
RetryHook: TypeAlias = Callable[[int, str], Awaitable[None]]

HTTP_METHODS: tuple[HttpMethod, ...] = ("GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS")
USER_AGENT = "mcp-api-tester/1.0"
REDACTED = "🔒[redacted]"

_BACKOFF_STEP_MS = 150
_BACKOFF_JITTER_MS = 200
# Characters encodeURIComponent leaves alone, beyond the ones quote() never escapes.
_URI_COMPONENT_SAFE = "!*'()"
_SENSITIVE_HEADER_MARKERS = ("authorization", "api-key")


@dataclass(slots=True)
class CallRequest:
    """One outbound HTTP call."""

    url: str
    method: HttpMethod = "GET"
    headers: dict[str, str] = field(default_factory=dict)
    query: Mapping[str, QueryValue | None] | None = None
    body: Any = None
    timeout_ms: int | None = None


@dataclass(slots=True)
class CallResult:
    """Normalized outcome of a `CallRequest`, successful or not."""

    ok: bool
    status: int
    latency_ms: int
    headers: dict[str, str]
    text: str
    json: JSONValue
    url: str
    method: str
    request_headers: dict[str, str]
    error: str | None = None


def redact_headers(headers: Mapping[str, str]) -> dict[str, str]:
    """Mask credential-bearing headers for display."""
    redacted: dict[str, str] = {}
    for key, value in headers.items():
        lowered = key.lower()
        if any(marker in lowered for marker in _SENSITIVE_HEADER_MARKERS):
            redacted[key] = REDACTED
        else:
            redacted[key] = value
    return redacted


def build_target_url(url: str, query: Mapping[str, QueryValue | None] | None) -> str:
    """Append `query` to `url`, dropping `None` values."""
    if not query:
        return url
    pairs = [
        f"{_encode_component(key)}={_encode_component(_format_query_value(value))}"
        for key, value in query.items()
        if value is not None
    ]
    if not pairs:
        return url
    separator = "&" if "?" in url else "?"
    return url + separator + "&".join(pairs)


def serialize_body(body: Any) -> str | None:
    if body is None:
        return None
    if isinstance(body, str):
        return body
    return json.dumps(body)


def as_json_maybe(text: str) -> JSONValue:
    """Parse `text` as JSON, returning `None` when it is not JSON."""
    try:
        return json.loads(text)
    except ValueError:
        return None


def flatten_headers(headers: httpx.Headers) -> dict[str, str]:
    """Collapse repeated response headers into one comma-joined value."""
    flattened: dict[str, str] = {}
    for key, value in headers.multi_items():
        if key in flattened:
            flattened[key] = f"{flattened[key]}, {value}"
        else:
            flattened[key] = value
    return flattened


class HttpCallEngine:
    """Perform outbound HTTP calls; failures are encoded in the result, never raised."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        jitter: Callable[[float, float], float] = random.uniform,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self._settings = settings or Settings()
        self._transport = transport
        self._sleep = sleep
        self._jitter = jitter
        self._clock = clock

    @property
    def max_retries(self) -> int:
        return self._settings.max_retries

    def compose_headers(self, headers: Mapping[str, str], *, has_body: bool) -> dict[str, str]:
        """Default headers, then auth, then caller headers (caller wins)."""
        composed: dict[str, str] = {"user-agent": USER_AGENT}
        if has_body:
            composed["content-type"] = "application/json"
        token = self._settings.api_token.strip()
        if token:
            composed["authorization"] = token if " " in token else f"Bearer {token}"
        for key, value in headers.items():
            for existing in [name for name in composed if name.lower() == key.lower()]:
                del composed[existing]
            composed[key] = value
        return composed

    def backoff_seconds(self, attempt: int) -> float:
        """Delay after failed `attempt` (0-based): linear step plus jitter."""
        delay_ms = _BACKOFF_STEP_MS * (attempt + 1) + self._jitter(0, _BACKOFF_JITTER_MS)
        return delay_ms / 1000

    async def call(self, request: CallRequest, *, on_retry: RetryHook | None = None) -> CallResult:
        target = build_target_url(request.url, request.query)
        payload = serialize_body(request.body)
        final_headers = self.compose_headers(request.headers, has_body=bool(payload))
        timeout_ms = request.timeout_ms or self._settings.timeout_ms
        attempts = self._settings.max_retries + 1

        last_error = "request failed"
        started = self._clock()
        async with httpx.AsyncClient(transport=self._transport, timeout=None) as client:
            for attempt in range(attempts):
                try:
                    async with asyncio.timeout(timeout_ms / 1000):
                        response = await client.request(
                            request.method,
                            target,
                            headers=final_headers,
                            content=payload,
                        )
                except (TimeoutError, httpx.HTTPError, httpx.InvalidURL, ValueError) as exc:
                    last_error = _describe_error(exc, timeout_ms)
                    logger.warning(
                        "HTTP %s %s attempt %d/%d failed: %s",
                        request.method,
                        target,
                        attempt + 1,
                        attempts,
                        last_error,
                    )
                    if attempt < attempts - 1:
                        if on_retry is not None:
                            await on_retry(attempt + 1, last_error)
                        await self._sleep(self.backoff_seconds(attempt))
                    continue

                text = response.text
                return CallResult(
                    ok=200 <= response.status_code < 300,
                    status=response.status_code,
                    latency_ms=self._elapsed_ms(started),
                    headers=flatten_headers(response.headers),
                    text=text,
                    json=as_json_maybe(text),
                    url=target,
                    method=request.method,
                    request_headers=redact_headers(final_headers),
                )

        return CallResult(
            ok=False,
            status=0,
            latency_ms=self._elapsed_ms(started),
            headers={},
            text="",
            json=None,
            url=target,
            method=request.method,
            request_headers=redact_headers(final_headers),
            error=last_error,
        )

    def _elapsed_ms(self, started: float) -> int:
        return int((self._clock() - started) * 1000)


def _encode_component(value: str) -> str:
    return quote(value, safe=_URI_COMPONENT_SAFE)


def _format_query_value(value: QueryValue) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int | float):
        return number_text(value)
    return str(value)


def _describe_error(exc: Exception, timeout_ms: int) -> str:
    if isinstance(exc, TimeoutError):
        return f"timeout after {timeout_ms}ms"
    message = str(exc)
    return message or exc.__class__.__name__
