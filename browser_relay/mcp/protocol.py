"""
JSON-RPC 2.0 framing for the MCP streamable HTTP transport.
"""

import json
from typing import Any, Dict, List, Optional, Tuple, Union
from dataclasses import dataclass

from ..relay.errors import InvalidRequestError

SESSION_ID_HEADER = "Mcp-Session-Id"
PROTOCOL_VERSION_HEADER = "MCP-Protocol-Version"

JSON_CONTENT_TYPE = "application/json"
SSE_CONTENT_TYPE = "text/event-stream"


@dataclass
class MCPMessage:
    """Represents a JSON-RPC message exchanged with an MCP client."""
    jsonrpc: str = "2.0"
    id: Optional[Union[str, int]] = None
    method: Optional[str] = None
    params: Optional[Dict[str, Any]] = None
    result: Optional[Any] = None
    error: Optional[Dict[str, Any]] = None

    @property
    def is_request(self) -> bool:
        return self.method is not None and self.id is not None

    @property
    def is_notification(self) -> bool:
        return self.method is not None and self.id is None

    @property
    def is_response(self) -> bool:
        return self.method is None and (self.id is not None or self.error is not None)

    def to_dict(self) -> Dict[str, Any]:
        """Convert message to dictionary."""
        data: Dict[str, Any] = {"jsonrpc": self.jsonrpc}

        if self.id is not None:
            data["id"] = self.id
        if self.method is not None:
            data["method"] = self.method
        if self.params is not None:
            data["params"] = self.params
        if self.result is not None:
            data["result"] = self.result
        if self.error is not None:
            data["error"] = self.error

        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MCPMessage":
        """Create message from dictionary."""
        return cls(
            jsonrpc=data.get("jsonrpc", "2.0"),
            id=data.get("id"),
            method=data.get("method"),
            params=data.get("params"),
            result=data.get("result"),
            error=data.get("error")
        )

    @classmethod
    def response(cls, request_id: Union[str, int], result: Any) -> "MCPMessage":
        return cls(id=request_id, result=result)

    @classmethod
    def error_response(
        cls,
        request_id: Optional[Union[str, int]],
        code: int,
        message: str,
        data: Any = None
    ) -> "MCPMessage":
        error: Dict[str, Any] = {"code": code, "message": message}
        if data is not None:
            error["data"] = data
        return cls(id=request_id, error=error)

    @classmethod
    def notification(cls, method: str, params: Optional[Dict[str, Any]] = None) -> "MCPMessage":
        return cls(method=method, params=params)


def _validate(item: Any) -> MCPMessage:
    if not isinstance(item, dict) or item.get("jsonrpc") != "2.0":
        raise InvalidRequestError("Invalid Request: expected a JSON-RPC 2.0 message")

    method = item.get("method")
    if method is not None and not isinstance(method, str):
        raise InvalidRequestError("Invalid Request: method must be a string")

    request_id = item.get("id")
    if request_id is not None and (isinstance(request_id, bool) or not isinstance(request_id, (str, int))):
        raise InvalidRequestError("Invalid Request: id must be a string or integer")

    params = item.get("params")
    if params is not None and not isinstance(params, (dict, list)):
        raise InvalidRequestError("Invalid Request: params must be an object or array")

    if method is None and "result" not in item and "error" not in item:
        raise InvalidRequestError("Invalid Request: message has neither method nor result")

    return MCPMessage.from_dict(item)


def parse_messages(body: Any) -> Tuple[List[MCPMessage], bool]:
    """
    Validate a decoded POST body.

    Args:
        body: Decoded JSON, a single message object or a batch array

    Returns:
        The messages and whether the body was a batch

    Raises:
        InvalidRequestError: If the body is not JSON-RPC 2.0
    """
    if isinstance(body, list):
        if not body:
            raise InvalidRequestError("Invalid Request: empty batch")
        return [_validate(item) for item in body], True
    return [_validate(body)], False


def error_body(code: int, message: str, request_id: Any = None) -> Dict[str, Any]:
    """JSON-RPC error envelope; ``id`` is always present, null when unknown."""
    return {
        "jsonrpc": "2.0",
        "error": {"code": code, "message": message},
        "id": request_id
    }


def sse_event(message: Union[MCPMessage, Dict[str, Any]], event_id: Optional[str] = None) -> bytes:
    """Encode one message as a server-sent ``message`` event."""
    payload = message.to_dict() if isinstance(message, MCPMessage) else message
    lines = []
    if event_id is not None:
        lines.append(f"id: {event_id}")
    lines.append("event: message")
    lines.append(f"data: {json.dumps(payload, separators=(',', ':'))}")
    return ("\n".join(lines) + "\n\n").encode("utf-8")


def accepts(accept_header: Optional[str], media_type: str) -> bool:
    """Whether an Accept header lists ``media_type``."""
    if not accept_header:
        return False
    return any(
        part.split(";", 1)[0].strip().lower() == media_type
        for part in accept_header.split(",")
    )
