"""
MCP session manager.

Owns the mapping from session ID to SessionTransport, routes the three HTTP
verbs of the streamable HTTP transport, and tears sessions down on DELETE,
on idle timeout and at shutdown.
"""

import asyncio
import json
import logging
import uuid
from typing import Any, Dict, List, Optional, Tuple

from aiohttp import web
from mcp import types

from ..config import RelayConfig
from ..relay.channel import ChannelState
from ..relay.errors import (
    InvalidRequestError,
    MissingSessionIdError,
    NotAcceptableError,
    ParseError,
    ProtocolError,
    ServerNotInitializedError,
    SessionNotFoundError,
    UnsupportedMediaTypeError,
)
from ..relay.service import RelayService
from ..tools.base import ToolDispatchTable
from .protocol import (
    JSON_CONTENT_TYPE,
    SESSION_ID_HEADER,
    SSE_CONTENT_TYPE,
    MCPMessage,
    accepts,
    parse_messages,
)
from .server import SessionContext, build_server, dump_model
from .transport import SessionTransport

logger = logging.getLogger(__name__)

SESSION_ID_QUERY_PARAM = "sessionId"


def requested_session_id(request: web.Request) -> Optional[str]:
    """Session ID from the ``Mcp-Session-Id`` header, else the ``sessionId`` query parameter."""
    return request.headers.get(SESSION_ID_HEADER) or request.query.get(SESSION_ID_QUERY_PARAM) or None


class SessionManager:
    """
    Manages MCP sessions for the HTTP front door.

    A session exists from its ``initialize`` response until DELETE, idle
    teardown or shutdown. Closing a session removes it from the map and
    rejects the extension calls it still has in flight.
    """

    def __init__(self, relay: RelayService, table: ToolDispatchTable, config: Optional[RelayConfig] = None):
        """
        Initialize the session manager.

        Args:
            relay: Relay providing per-session browser contexts
            table: Shared tool table
            config: Relay configuration
        """
        self.relay = relay
        self.table = table
        self.config = config or RelayConfig()
        self.server = build_server(table, self.config.server_name, self.config.server_version)

        self._sessions: Dict[str, SessionTransport] = {}
        self._shutdown_event = asyncio.Event()
        self._sweeper_task: Optional[asyncio.Task] = None
        self._listening = False

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def session_ids(self) -> List[str]:
        return list(self._sessions)

    async def start(self):
        """Subscribe to extension state changes and start idle teardown."""
        self._shutdown_event.clear()
        if not self._listening:
            self.relay.channel.add_state_listener(self._on_channel_state)
            self._listening = True

        if self.config.session_idle_timeout > 0:
            self._sweeper_task = asyncio.create_task(self._idle_sweep_loop())
            logger.info(f"Closing sessions idle for more than {self.config.session_idle_timeout:g}s")

    async def close_all(self):
        """Close every session and stop idle teardown."""
        self._shutdown_event.set()

        if self._sweeper_task:
            self._sweeper_task.cancel()
            try:
                await self._sweeper_task
            except asyncio.CancelledError:
                pass
            self._sweeper_task = None

        transports = list(self._sessions.values())
        for transport in transports:
            await transport.close()

        if transports:
            logger.info(f"Closed {len(transports)} session(s)")

    def handle_initialize(self, request: web.Request, message: MCPMessage) -> Tuple[str, SessionTransport]:
        """
        Create a session for an ``initialize`` request.

        Returns:
            The new session ID and its transport; the caller dispatches the
            request through the transport
        """
        session_id = str(uuid.uuid4())
        transport = SessionTransport(
            session_id,
            self.server,
            SessionContext(session_id, self.relay.context_for(session_id)),
            json_response=self.config.json_response,
            keepalive_interval=self.config.sse_keepalive
        )
        transport.add_close_callback(self._on_transport_closed)
        self._sessions[session_id] = transport
        transport.start()

        params = message.params if message is not None and isinstance(message.params, dict) else {}
        client_info = params.get("clientInfo")
        client_name = client_info.get("name") if isinstance(client_info, dict) else None
        logger.info(
            f"Session {session_id} created for {client_name or request.remote} ({len(self._sessions)} open)"
        )
        return session_id, transport

    def find(self, session_id: str) -> Optional[SessionTransport]:
        """Live session for ``session_id``: exact match first, then case-insensitive."""
        transport = self._sessions.get(session_id)
        if transport is not None:
            return transport

        folded = session_id.casefold()
        for candidate_id, candidate in self._sessions.items():
            if candidate_id.casefold() == folded:
                logger.debug(f"Resolved session {session_id} case-insensitively to {candidate_id}")
                return candidate
        return None

    def lookup(self, session_id: str) -> SessionTransport:
        """
        Find a live session.

        Exact match first, then a case-insensitive match, so clients that
        normalize header values still reach their session.

        Raises:
            SessionNotFoundError: If no live session matches
        """
        transport = self.find(session_id)
        if transport is None:
            raise SessionNotFoundError("Session not found")
        return transport

    async def handle_post(self, request: web.Request) -> web.StreamResponse:
        session_id = requested_session_id(request)
        named = self.find(session_id) if session_id else None

        try:
            messages, is_batch = await self._read_post_body(request)
        except ProtocolError as e:
            if e.session_id is None and named is not None:
                e.session_id = named.session_id
            raise

        initialize = [message for message in messages if message.is_request and message.method == "initialize"]
        if initialize:
            if session_id:
                raise InvalidRequestError(
                    "Invalid Request: Server already initialized",
                    session_id=named.session_id if named else None
                )
            if len(messages) > 1:
                raise InvalidRequestError("Invalid Request: Only one initialization request is allowed")

            _, transport = self.handle_initialize(request, initialize[0])
            return await transport.handle_post(request, messages, is_batch)

        if named is None:
            raise ServerNotInitializedError("Bad Request: Server not initialized")

        return await named.handle_post(request, messages, is_batch)

    async def _read_post_body(self, request: web.Request) -> Tuple[List[MCPMessage], bool]:
        accept = request.headers.get("Accept")
        if not (accepts(accept, JSON_CONTENT_TYPE) and accepts(accept, SSE_CONTENT_TYPE)):
            raise NotAcceptableError(
                "Not Acceptable: Client must accept both application/json and text/event-stream"
            )

        if request.content_type != JSON_CONTENT_TYPE:
            raise UnsupportedMediaTypeError("Unsupported Media Type: Content-Type must be application/json")

        raw = await request.text()
        try:
            body = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ParseError(f"Parse error: {e.msg}")

        return parse_messages(body)

    async def handle_get(self, request: web.Request) -> web.StreamResponse:
        transport = self._require_session(request)

        if not accepts(request.headers.get("Accept"), SSE_CONTENT_TYPE):
            raise NotAcceptableError(
                "Not Acceptable: Client must accept text/event-stream",
                session_id=transport.session_id
            )

        return await transport.handle_get(request)

    async def handle_delete(self, request: web.Request) -> web.Response:
        transport = self._require_session(request)
        await transport.close()
        return web.Response(status=200, headers={SESSION_ID_HEADER: transport.session_id})

    async def broadcast(self, method: str, params: Optional[Dict[str, Any]] = None) -> int:
        """
        Push a notification to every session with an open event stream.

        A ``notifications/message`` only reaches sessions whose log level
        admits it.

        Returns:
            Number of sessions the notification reached
        """
        level = params.get("level") if method == "notifications/message" and params else None

        delivered = 0
        for transport in list(self._sessions.values()):
            if level is not None and not transport.context.accepts_log(level):
                continue
            if await transport.send_notification(method, params):
                delivered += 1
        return delivered

    def status(self) -> Dict[str, Any]:
        return {
            "count": len(self._sessions),
            "streams": sum(1 for transport in self._sessions.values() if transport.has_stream)
        }

    def _require_session(self, request: web.Request) -> SessionTransport:
        session_id = requested_session_id(request)
        if not session_id:
            raise MissingSessionIdError("Bad Request: Missing session ID")
        return self.lookup(session_id)

    def _on_transport_closed(self, transport: SessionTransport):
        self._sessions.pop(transport.session_id, None)
        abandoned = self.relay.abandon_session(transport.session_id)
        logger.info(
            f"Session {transport.session_id} closed ({len(self._sessions)} open, "
            f"{abandoned} pending call(s) abandoned)"
        )

    async def _on_channel_state(self, state: ChannelState):
        if state is ChannelState.OPEN:
            level, text = "info", "Browser extension connected"
        elif state is ChannelState.DISCONNECTED:
            level, text = "warning", "Browser extension disconnected"
        else:
            return

        params = types.LoggingMessageNotificationParams(level=level, logger="browser-relay", data=text)
        await self.broadcast("notifications/message", dump_model(params))

    async def _idle_sweep_loop(self):
        timeout = self.config.session_idle_timeout
        interval = min(max(timeout / 4, 0.05), 60.0)

        while not self._shutdown_event.is_set():
            try:
                await asyncio.sleep(interval)
                await self._close_idle_sessions(timeout)
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Idle session sweep error: {e}")

    async def _close_idle_sessions(self, timeout: float):
        for transport in list(self._sessions.values()):
            if transport.busy or transport.has_stream:
                continue
            if transport.idle_seconds() > timeout:
                logger.info(f"Session {transport.session_id} idle for {transport.idle_seconds():.0f}s, closing")
                await transport.close()
