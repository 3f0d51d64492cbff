"""Shared API dependency providers."""

from __future__ import annotations

from fastapi import Request

from api_tester.api.sessions import SessionMultiplexer


def get_multiplexer(request: Request) -> SessionMultiplexer:
    return request.app.state.multiplexer
