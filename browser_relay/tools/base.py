"""
Tool dispatch table.

Maps tool names to pydantic argument models and async handlers, validates
arguments before anything reaches the browser, and converts handler failures
into MCP tool results flagged ``isError``.
"""

import json
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Type
from dataclasses import dataclass

from mcp import types
from pydantic import BaseModel, ValidationError

from ..relay.errors import ChannelError, ToolRegistrationError, UnknownToolError
from ..relay.service import BrowserContext

logger = logging.getLogger(__name__)

ToolHandler = Callable[[BrowserContext, BaseModel], Awaitable[types.CallToolResult]]


def text_result(*texts: str) -> types.CallToolResult:
    """Build a successful result made of text blocks."""
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=text) for text in texts]
    )


def image_result(data: str, mime_type: str = "image/png") -> types.CallToolResult:
    """Build a successful result carrying one base64 image block."""
    return types.CallToolResult(
        content=[types.ImageContent(type="image", data=data, mimeType=mime_type)]
    )


def error_result(message: str) -> types.CallToolResult:
    """Build a failed result; the client sees the message, the call still succeeds."""
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=message)],
        isError=True
    )


def snapshot_result(text: str, snapshot: types.CallToolResult) -> types.CallToolResult:
    """Prefix an action's own text to a page snapshot's content blocks."""
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=text), *snapshot.content]
    )


def json_text(value: Any, pretty: bool = True) -> str:
    """Serialize an extension result for a text block."""
    return json.dumps(value, indent=2 if pretty else None, ensure_ascii=False, default=str)


def plain_text(value: Any) -> str:
    """Strings pass through; anything else is rendered as JSON."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return json_text(value)


def format_validation_error(error: ValidationError) -> str:
    """Flatten pydantic errors into ``field: message`` pairs."""
    parts = []
    for item in error.errors():
        location = ".".join(str(part) for part in item.get("loc", ())) or "arguments"
        parts.append(f"{location}: {item.get('msg', 'invalid value')}")
    return "; ".join(parts)


@dataclass(frozen=True)
class ToolDescriptor:
    """Static description of one registered tool."""
    name: str
    description: str
    arguments: Type[BaseModel]
    handler: ToolHandler

    @property
    def input_schema(self) -> Dict[str, Any]:
        schema = self.arguments.model_json_schema()
        schema.setdefault("properties", {})
        return schema

    def to_mcp_tool(self) -> types.Tool:
        return types.Tool(
            name=self.name,
            description=self.description,
            inputSchema=self.input_schema
        )


class ToolDispatchTable:
    """
    Registry of tools exposed to MCP clients.

    Populated once at startup and then frozen; lookups afterwards are
    read-only, so sessions can share one table.
    """

    def __init__(self):
        self._tools: Dict[str, ToolDescriptor] = {}
        self._frozen = False

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    @property
    def frozen(self) -> bool:
        return self._frozen

    def register(
        self,
        name: str,
        description: str,
        arguments: Type[BaseModel],
        handler: ToolHandler
    ) -> ToolDescriptor:
        """
        Register a tool.

        Raises:
            ToolRegistrationError: If the name is taken or the table is frozen
        """
        if self._frozen:
            raise ToolRegistrationError(f"Cannot register '{name}': tool table is frozen")
        if name in self._tools:
            raise ToolRegistrationError(f"Tool already registered: {name}")

        descriptor = ToolDescriptor(name=name, description=description, arguments=arguments, handler=handler)
        self._tools[name] = descriptor
        logger.debug(f"Registered tool: {name}")
        return descriptor

    def freeze(self):
        self._frozen = True

    def get(self, name: str) -> Optional[ToolDescriptor]:
        return self._tools.get(name)

    def names(self) -> List[str]:
        return list(self._tools)

    def list_tools(self) -> List[types.Tool]:
        return [descriptor.to_mcp_tool() for descriptor in self._tools.values()]

    async def invoke(
        self,
        name: str,
        raw_args: Optional[Dict[str, Any]],
        context: BrowserContext
    ) -> types.CallToolResult:
        """
        Validate arguments and run a tool.

        Args:
            name: Registered tool name
            raw_args: Arguments exactly as the client sent them
            context: Browser capabilities for the calling session

        Returns:
            The tool result; failures are results with ``isError`` set

        Raises:
            UnknownToolError: If no tool is registered under ``name``
        """
        descriptor = self._tools.get(name)
        if descriptor is None:
            raise UnknownToolError(name)

        if raw_args is None:
            raw_args = {}
        if not isinstance(raw_args, dict):
            return error_result(f"Invalid arguments for tool '{name}': expected an object")

        try:
            args = descriptor.arguments.model_validate(raw_args)
        except ValidationError as e:
            detail = format_validation_error(e)
            logger.info(f"Rejected call to {name}: {detail}")
            return error_result(f"Invalid arguments for tool '{name}': {detail}")

        logger.debug(f"Invoking tool {name}")
        try:
            return await descriptor.handler(context, args)
        except ChannelError as e:
            logger.warning(f"Tool {name} failed: {e}")
            return error_result(f"Error executing tool '{name}': {e}")
        except Exception as e:
            logger.error(f"Tool {name} raised unexpectedly: {e}", exc_info=True)
            return error_result(f"Error executing tool '{name}': {e}")
