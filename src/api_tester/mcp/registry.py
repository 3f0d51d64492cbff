"""Tool and resource registry shared by every protocol server instance."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import Any, TypeAlias

from mcp.types import (
    CallToolResult,
    LoggingLevel,
    ReadResourceResult,
    ResourceTemplate,
    TextContent,
    TextResourceContents,
    Tool,
)
from pydantic import BaseModel, ValidationError

from api_tester.mcp.tools.resource_refs import UriTemplate

logger = logging.getLogger(__name__)

LogSink: TypeAlias = Callable[[LoggingLevel, Any], Awaitable[None]]
ToolHandler: TypeAlias = Callable[[Any, "ToolContext"], Awaitable[CallToolResult]]
ResourceHandler: TypeAlias = Callable[[str, dict[str, str]], Awaitable[str]]


class UnknownToolError(LookupError):
    """Raised when invoking a tool name that was never registered."""


@dataclass(slots=True)
class ToolContext:
    """Per-invocation context handed to tool handlers."""

    session_id: str | None = None
    log: LogSink | None = None

    async def send_log(self, level: LoggingLevel, data: Any) -> None:
        if self.log is not None:
            await self.log(level, data)


@dataclass(frozen=True, slots=True)
class ToolDescriptor:
    """Registered tool: name, typed input model and async handler."""

    name: str
    description: str
    input_model: type[BaseModel]
    handler: ToolHandler
    hints: Mapping[str, str] = field(default_factory=dict)

    @property
    def input_schema(self) -> dict[str, Any]:
        return self.input_model.model_json_schema(by_alias=True)

    def as_tool(self) -> Tool:
        return Tool(name=self.name, description=self.description, inputSchema=self.input_schema)


@dataclass(frozen=True, slots=True)
class ResourceTemplateDescriptor:
    """Registered templated resource."""

    name: str
    uri_template: UriTemplate
    description: str
    handler: ResourceHandler
    mime_type: str = "text/plain"

    def as_template(self) -> ResourceTemplate:
        return ResourceTemplate(
            name=self.name,
            uriTemplate=self.uri_template.template,
            description=self.description,
            mimeType=self.mime_type,
        )


class ToolRegistry:
    """Name → tool/resource lookup; populated once, then only read."""

    def __init__(self) -> None:
        self._tools: dict[str, ToolDescriptor] = {}
        self._templates: dict[str, ResourceTemplateDescriptor] = {}

    def register(
        self,
        name: str,
        description: str,
        input_model: type[BaseModel],
        handler: ToolHandler,
        *,
        hints: Mapping[str, str] | None = None,
    ) -> ToolDescriptor:
        if name in self._tools:
            msg = f"Tool already registered: {name}"
            raise ValueError(msg)
        descriptor = ToolDescriptor(
            name=name,
            description=description,
            input_model=input_model,
            handler=handler,
            hints=dict(hints or {}),
        )
        self._tools[name] = descriptor
        return descriptor

    def register_resource_template(
        self,
        name: str,
        uri_template: str,
        description: str,
        handler: ResourceHandler,
    ) -> ResourceTemplateDescriptor:
        if name in self._templates:
            msg = f"Resource template already registered: {name}"
            raise ValueError(msg)
        descriptor = ResourceTemplateDescriptor(
            name=name,
            uri_template=UriTemplate.parse(uri_template),
            description=description,
            handler=handler,
        )
        self._templates[name] = descriptor
        return descriptor

    def find_tool(self, name: str) -> ToolDescriptor | None:
        return self._tools.get(name)

    def list_tools(self) -> list[Tool]:
        return [descriptor.as_tool() for descriptor in self._tools.values()]

    def list_resource_templates(self) -> list[ResourceTemplate]:
        return [descriptor.as_template() for descriptor in self._templates.values()]

    async def invoke(
        self,
        name: str,
        raw_args: Mapping[str, Any] | None,
        context: ToolContext | None = None,
    ) -> CallToolResult:
        """Validate `raw_args` and run the tool.

        Validation failures and handler crashes come back as `isError` results.
        Raises `UnknownToolError` when `name` is not registered.
        """
        descriptor = self._tools.get(name)
        if descriptor is None:
            raise UnknownToolError(name)
        try:
            args = descriptor.input_model.model_validate(dict(raw_args or {}))
        except ValidationError as exc:
            return error_result(describe_validation_error(exc, descriptor.hints))
        try:
            return await descriptor.handler(args, context or ToolContext())
        except Exception as exc:
            logger.exception("Tool %s failed", name)
            return error_result(f"Tool {name} failed: {exc}")

    async def read_resource(self, uri: str) -> ReadResourceResult | None:
        """Resolve `uri` against registered templates; `None` when nothing matches."""
        for descriptor in self._templates.values():
            variables = descriptor.uri_template.match(uri)
            if variables is None:
                continue
            text = await descriptor.handler(uri, variables)
            return ReadResourceResult(
                contents=[TextResourceContents(uri=uri, text=text, mimeType=descriptor.mime_type)]
            )
        return None


def error_result(message: str) -> CallToolResult:
    return CallToolResult(content=[TextContent(type="text", text=message)], isError=True)


def describe_validation_error(exc: ValidationError, hints: Mapping[str, str]) -> str:
    """Render pydantic errors as one uniform, client-facing sentence per field."""
    messages: dict[str, str] = {}
    for error in exc.errors():
        location = error.get("loc") or ()
        field_name = str(location[0]) if location else "arguments"
        if field_name in messages:
            continue
        if error["type"] == "missing":
            hint = hints.get(field_name)
            suffix = f" ({hint})." if hint else "."
            messages[field_name] = f'Missing required "{field_name}"{suffix}'
        else:
            messages[field_name] = f'Invalid "{field_name}": {error["msg"]}'
    return " ".join(messages.values())
