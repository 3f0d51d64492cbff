"""Command-line entrypoint: serve over stdio or streamable HTTP."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from dataclasses import replace

from api_tester.api.app import run as run_http
from api_tester.config import Settings
from api_tester.core.http_engine import HttpCallEngine
from api_tester.mcp.server import create_protocol_server
from api_tester.mcp.stdio import serve_stdio

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="api-tester", description="API tester MCP server")
    subparsers = parser.add_subparsers(dest="transport", required=True)
    subparsers.add_parser("stdio", help="Serve one client over stdin/stdout")
    http_parser = subparsers.add_parser("http", help="Serve sessions over streamable HTTP")
    http_parser.add_argument("--host", default=None, help="Bind address (MCP_HTTP_HOST)")
    http_parser.add_argument("--port", type=int, default=None, help="Bind port (MCP_HTTP_PORT)")
    return parser


def configure_logging(level: str) -> None:
    # stdout belongs to the stdio transport; logs always go to stderr.
    logging.basicConfig(level=level, format=LOG_FORMAT, stream=sys.stderr)


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = Settings.from_env()
    configure_logging(settings.log_level)

    if args.transport == "stdio":
        server = create_protocol_server(HttpCallEngine(settings))
        asyncio.run(serve_stdio(server))
        return 0

    overrides = {}
    if args.host is not None:
        overrides["http_host"] = args.host
    if args.port is not None:
        overrides["http_port"] = args.port
    run_http(replace(settings, **overrides))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
