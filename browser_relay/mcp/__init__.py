"""
MCP streamable HTTP server: JSON-RPC framing, per-session dispatch,
session management and the aiohttp front door.
"""

from .http import create_app
from .protocol import MCPMessage, parse_messages
from .server import SessionContext, build_server
from .session_manager import SessionManager
from .transport import SessionTransport

__all__ = [
    "MCPMessage",
    "SessionManager",
    "SessionTransport",
    "SessionContext",
    "build_server",
    "create_app",
    "parse_messages",
]
