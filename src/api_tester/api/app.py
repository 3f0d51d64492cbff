"""FastAPI app entrypoint."""

from __future__ import annotations

from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager
from functools import partial

import uvicorn
from fastapi import FastAPI

from api_tester.api.routes.mcp_transport import router as mcp_router
from api_tester.api.sessions import DEFAULT_ALLOWED_HOSTS, SessionMultiplexer
from api_tester.config import Settings
from api_tester.core.http_engine import HttpCallEngine
from api_tester.mcp.server import SERVER_VERSION, create_protocol_server


def create_app(
    settings: Settings | None = None,
    *,
    engine: HttpCallEngine | None = None,
    allowed_hosts: Iterable[str] = DEFAULT_ALLOWED_HOSTS,
) -> FastAPI:
    settings = settings or Settings.from_env()
    engine = engine or HttpCallEngine(settings)
    multiplexer = SessionMultiplexer(
        partial(create_protocol_server, engine),
        allowed_hosts=allowed_hosts,
    )

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        yield
        multiplexer.close_all()

    app = FastAPI(title="API Tester MCP HTTP", version=SERVER_VERSION, lifespan=lifespan)
    app.state.multiplexer = multiplexer
    app.include_router(mcp_router)

    @app.get("/health", tags=["system"])
    async def health() -> dict[str, str | int]:
        return {"status": "ok", "sessions": len(multiplexer)}

    return app


def run(settings: Settings | None = None) -> None:
    settings = settings or Settings.from_env()
    uvicorn.run(create_app(settings), host=settings.http_host, port=settings.http_port)
