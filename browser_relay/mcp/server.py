"""
MCP server for the relay tools.

One ``mcp.server.lowlevel.Server`` serves every session. Each session runs it
over its own pair of memory streams (see SessionTransport), and tags every
message it feeds in with its SessionContext so tool handlers act on the right
browser context. The SDK owns the lifecycle: initialize and version
negotiation, ping, cancellation and request validation.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict

from mcp import types
from mcp.server.lowlevel import Server
from pydantic import BaseModel

from .. import __version__
from ..relay.service import BrowserContext
from ..tools.base import ToolDispatchTable

logger = logging.getLogger(__name__)

SERVER_INSTRUCTIONS = (
    "Browser automation tools relayed to a browser extension. "
    "Actions fail with an error result while the extension is disconnected."
)

LOG_LEVELS = ["debug", "info", "notice", "warning", "error", "critical", "alert", "emergency"]


def dump_model(model: BaseModel) -> Dict[str, Any]:
    """Serialize an ``mcp.types`` model for the wire."""
    return model.model_dump(by_alias=True, mode="json", exclude_none=True)


@dataclass
class SessionContext:
    """Per-session state handed to the server handlers."""
    session_id: str
    browser: BrowserContext
    log_level: str = "info"

    def accepts_log(self, level: str) -> bool:
        """Whether a log notification at ``level`` passes the client's threshold."""
        return LOG_LEVELS.index(level) >= LOG_LEVELS.index(self.log_level)


def build_server(
    table: ToolDispatchTable,
    server_name: str = "browser-relay",
    server_version: str = __version__
) -> Server:
    """
    Create the MCP server exposing ``table``.

    Tool failures, including unknown tools and invalid arguments, come back
    as results flagged ``isError``.
    """
    app = Server(server_name, version=server_version, instructions=SERVER_INSTRUCTIONS)

    def session_context() -> SessionContext:
        context = app.request_context.request
        if not isinstance(context, SessionContext):
            raise RuntimeError("Request has no session context")
        return context

    @app.list_tools()
    async def handle_list_tools() -> list[types.Tool]:
        return table.list_tools()

    @app.call_tool(validate_input=False)
    async def handle_call_tool(name: str, arguments: dict) -> types.CallToolResult:
        session = session_context()
        logger.info(f"Session {session.session_id} calling tool {name}")
        return await table.invoke(name, arguments, session.browser)

    @app.set_logging_level()
    async def handle_set_logging_level(level: types.LoggingLevel) -> None:
        session = session_context()
        session.log_level = level
        logger.info(f"Session {session.session_id} set log level to {level}")

    return app
