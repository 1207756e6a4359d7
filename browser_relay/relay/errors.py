"""
Error taxonomy for the browser relay.

Protocol errors are surfaced by the HTTP front door as an HTTP status plus a
JSON-RPC error envelope. Channel and validation errors are surfaced to the
AI client as tool results flagged ``isError``.
"""

from typing import Any, Optional

# JSON-RPC error codes used on the wire.
SERVER_ERROR = -32000
PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603


class RelayError(Exception):
    """Base exception for all relay failures."""

    def __init__(self, message: str, error_code: Optional[int] = None, error_data: Optional[Any] = None):
        self.message = message
        self.error_code = error_code
        self.error_data = error_data
        super().__init__(self.message)


# ---------------------------------------------------------------------------
# Protocol errors (HTTP transport)
# ---------------------------------------------------------------------------


class ProtocolError(RelayError):
    """Request rejected at the HTTP transport layer."""

    http_status = 400
    default_code = SERVER_ERROR

    def __init__(
        self,
        message: str,
        error_code: Optional[int] = None,
        http_status: Optional[int] = None,
        session_id: Optional[str] = None,
    ):
        super().__init__(message, error_code if error_code is not None else self.default_code)
        if http_status is not None:
            self.http_status = http_status
        self.session_id = session_id


class MissingSessionIdError(ProtocolError):
    http_status = 400


class SessionNotFoundError(ProtocolError):
    http_status = 404


class ServerNotInitializedError(SessionNotFoundError):
    """POST that neither initializes nor names a live session."""

    http_status = 400


class NotAcceptableError(ProtocolError):
    http_status = 406


class UnsupportedMediaTypeError(ProtocolError):
    http_status = 415


class ParseError(ProtocolError):
    http_status = 400
    default_code = PARSE_ERROR


class InvalidRequestError(ProtocolError):
    http_status = 400
    default_code = INVALID_REQUEST


class StreamConflictError(ProtocolError):
    """A standalone event stream is already open for the session."""

    http_status = 409


# ---------------------------------------------------------------------------
# Tool table errors
# ---------------------------------------------------------------------------


class UnknownToolError(RelayError):
    def __init__(self, name: str):
        super().__init__(f"Unknown tool: {name}", error_code=INVALID_PARAMS)
        self.name = name


class ToolRegistrationError(RelayError):
    """Startup-time tool table misconfiguration."""


# ---------------------------------------------------------------------------
# Control channel errors
# ---------------------------------------------------------------------------


class ChannelError(RelayError):
    """Base class for failures of a call relayed to the browser extension."""


class ChannelUnavailableError(ChannelError):
    """The browser extension is not connected."""


class ActionTimeoutError(ChannelError):
    """The browser extension did not reply within the timeout ceiling."""


class SupersededError(ChannelError):
    """A new extension connection replaced the one the call was sent on."""


class ConnectionLostError(ChannelError):
    """The extension connection closed before the reply arrived."""


class ExtensionActionError(ChannelError):
    """The extension replied with an error for the action."""


class SessionClosedError(ChannelError):
    """The MCP session that issued the call was torn down."""
