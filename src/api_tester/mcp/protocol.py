"""Transport-neutral MCP JSON-RPC protocol server."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeAlias, get_args

from mcp.shared.version import SUPPORTED_PROTOCOL_VERSIONS
from mcp.types import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    INVALID_REQUEST,
    LATEST_PROTOCOL_VERSION,
    METHOD_NOT_FOUND,
    Implementation,
    InitializeRequest,
    InitializeRequestParams,
    InitializeResult,
    JSONRPCRequest,
    ListResourcesResult,
    ListResourceTemplatesResult,
    ListToolsResult,
    LoggingCapability,
    LoggingLevel,
    ResourcesCapability,
    ServerCapabilities,
    ToolsCapability,
)
from pydantic import BaseModel, ValidationError

from api_tester.mcp.registry import ToolContext, ToolRegistry

logger = logging.getLogger(__name__)

JSONObject: TypeAlias = dict[str, Any]
Sender: TypeAlias = Callable[[JSONObject], Awaitable[None]]

RESOURCE_NOT_FOUND = -32002
_LOG_LEVELS: tuple[str, ...] = get_args(LoggingLevel)


def is_initialize_request(payload: Any) -> bool:
    """True when `payload` is a well-formed JSON-RPC `initialize` request."""
    if not isinstance(payload, dict):
        return False
    try:
        request = JSONRPCRequest.model_validate(payload)
        InitializeRequest.model_validate({"method": request.method, "params": request.params})
    except ValidationError:
        return False
    return True


def response(request_id: str | int | None, result: Any) -> JSONObject:
    return {"jsonrpc": "2.0", "id": request_id, "result": result}


def error(request_id: str | int | None, code: int, message: str) -> JSONObject:
    return {
        "jsonrpc": "2.0",
        "id": request_id,
        "error": {
            "code": code,
            "message": message,
        },
    }


def dump(model: BaseModel) -> JSONObject:
    return model.model_dump(by_alias=True, exclude_unset=True, mode="json")


class MCPProtocolServer:
    """One client's MCP protocol state: handshake, logging level and dispatch.

    Transports feed decoded JSON-RPC messages to `handle_message` and write back
    whatever it returns. Server-initiated notifications go through the sender
    bound with `connect`.
    """

    def __init__(
        self,
        registry: ToolRegistry,
        *,
        info: Implementation,
        session_id: str | None = None,
    ) -> None:
        self.registry = registry
        self.session_id = session_id
        self._info = info
        self._send: Sender | None = None
        self._initialized = False
        self._client_ready = False
        self._log_level: LoggingLevel | None = None
        self.client_info: Implementation | None = None
        self.protocol_version: str | None = None

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def client_ready(self) -> bool:
        return self._client_ready

    @property
    def log_level(self) -> LoggingLevel | None:
        return self._log_level

    def connect(self, send: Sender) -> None:
        """Bind the outbound channel used for server-initiated notifications."""
        self._send = send

    async def notify(self, method: str, params: JSONObject) -> None:
        if self._send is None:
            return
        await self._send({"jsonrpc": "2.0", "method": method, "params": params})

    async def send_log(self, level: LoggingLevel, data: Any) -> None:
        """Emit `notifications/message` unless filtered by `logging/setLevel`."""
        if self._log_level is not None and _LOG_LEVELS.index(level) < _LOG_LEVELS.index(
            self._log_level
        ):
            return
        await self.notify(
            "notifications/message",
            {"level": level, "logger": "api-tester", "data": data},
        )

    async def handle_message(self, message: Any) -> JSONObject | None:
        """Process one inbound message; returns the response for requests only."""
        if not isinstance(message, dict):
            return error(None, INVALID_REQUEST, "Invalid Request")

        request_id = message.get("id")
        method = message.get("method")
        if method is None:
            if "result" in message or "error" in message:
                return None
            return error(request_id, INVALID_REQUEST, "Invalid Request")
        if not isinstance(method, str):
            return error(request_id, INVALID_REQUEST, "Invalid method")

        params = message.get("params")
        if params is None:
            params = {}
        if "id" not in message:
            self._handle_notification(method, params)
            return None
        if not isinstance(params, dict):
            return error(request_id, INVALID_PARAMS, "Invalid params")

        try:
            return await self._dispatch(request_id, method, params)
        except Exception as exc:
            logger.exception("Unhandled error in %s", method)
            return error(request_id, INTERNAL_ERROR, str(exc))

    def _handle_notification(self, method: str, params: Any) -> None:
        if method == "notifications/initialized":
            self._client_ready = True
            return
        logger.debug("Ignoring notification %s", method)

    async def _dispatch(
        self,
        request_id: str | int | None,
        method: str,
        params: JSONObject,
    ) -> JSONObject:
        if method == "initialize":
            return self._initialize(request_id, params)

        if method == "ping":
            return response(request_id, {})

        if method == "tools/list":
            return response(request_id, dump(ListToolsResult(tools=self.registry.list_tools())))

        if method == "tools/call":
            tool_name = params.get("name")
            arguments = params.get("arguments") or {}
            if not isinstance(tool_name, str):
                return error(request_id, INVALID_PARAMS, "Missing tool name")
            if not isinstance(arguments, dict):
                return error(request_id, INVALID_PARAMS, "Invalid tool arguments")
            if self.registry.find_tool(tool_name) is None:
                return error(request_id, METHOD_NOT_FOUND, f"Unknown tool: {tool_name}")
            context = ToolContext(session_id=self.session_id, log=self.send_log)
            result = await self.registry.invoke(tool_name, arguments, context)
            return response(request_id, dump(result))

        if method == "resources/list":
            return response(request_id, dump(ListResourcesResult(resources=[])))

        if method == "resources/templates/list":
            templates = self.registry.list_resource_templates()
            listing = ListResourceTemplatesResult(resourceTemplates=templates)
            return response(request_id, dump(listing))

        if method == "resources/read":
            uri = params.get("uri")
            if not isinstance(uri, str):
                return error(request_id, INVALID_PARAMS, "Missing resource uri")
            contents = await self.registry.read_resource(uri)
            if contents is None:
                return error(request_id, RESOURCE_NOT_FOUND, f"Resource not found: {uri}")
            return response(request_id, dump(contents))

        if method == "logging/setLevel":
            level = params.get("level")
            if level not in _LOG_LEVELS:
                return error(request_id, INVALID_PARAMS, f"Invalid log level: {level}")
            self._log_level = level
            return response(request_id, {})

        return error(request_id, METHOD_NOT_FOUND, f"Unknown method: {method}")

    def _initialize(self, request_id: str | int | None, params: JSONObject) -> JSONObject:
        if self._initialized:
            return error(request_id, INVALID_REQUEST, "Invalid Request: Server already initialized")
        try:
            init = InitializeRequestParams.model_validate(params)
        except ValidationError as exc:
            msg = f"Invalid initialize params: {exc.error_count()} error(s)"
            return error(request_id, INVALID_PARAMS, msg)

        requested = str(init.protocolVersion)
        version = requested if requested in SUPPORTED_PROTOCOL_VERSIONS else LATEST_PROTOCOL_VERSION
        self._initialized = True
        self.client_info = init.clientInfo
        self.protocol_version = version
        result = InitializeResult(
            protocolVersion=version,
            capabilities=ServerCapabilities(
                tools=ToolsCapability(listChanged=False),
                resources=ResourcesCapability(subscribe=False, listChanged=False),
                logging=LoggingCapability(),
            ),
            serverInfo=self._info,
        )
        return response(request_id, dump(result))
