"""
Streamable HTTP transport for one MCP session.

Each session runs the shared MCP server over a pair of anyio memory streams.
POST bodies are fed into the server and answered either as a JSON body or
as a short-lived server-sent event stream; GET opens the session's
standalone push stream, which also carries messages the server emits on its
own.
"""

import asyncio
import json
import logging
import time
from typing import Callable, Dict, List, Optional, Tuple, Union

import anyio
from aiohttp import web
from mcp import types
from mcp.server.lowlevel import Server
from mcp.shared.message import ServerMessageMetadata, SessionMessage
from pydantic import ValidationError

from ..relay.errors import SERVER_ERROR, InvalidRequestError, SessionNotFoundError, StreamConflictError
from .protocol import (
    JSON_CONTENT_TYPE,
    PROTOCOL_VERSION_HEADER,
    SESSION_ID_HEADER,
    SSE_CONTENT_TYPE,
    MCPMessage,
    sse_event,
)
from .server import SessionContext, dump_model

logger = logging.getLogger(__name__)

CloseCallback = Callable[["SessionTransport"], None]
RequestId = Union[str, int]

# Seconds a closing session waits for in-flight replies before failing them.
CLOSE_GRACE = 1.0


class SessionTransport:
    """
    HTTP side of one MCP session.

    One POST carrying requests is processed at a time; requests inside a
    batch run concurrently. Notification-only POSTs skip the queue so a
    ``notifications/cancelled`` reaches a request that is still running.
    """

    def __init__(
        self,
        session_id: str,
        server: Server,
        context: SessionContext,
        json_response: bool = False,
        keepalive_interval: Optional[float] = 30.0
    ):
        """
        Initialize the transport.

        Args:
            session_id: Canonical session ID issued at initialize
            server: MCP server shared by all sessions
            context: State handed to the server handlers for this session
            json_response: Answer POSTs with JSON bodies instead of SSE
            keepalive_interval: Seconds between comments on the GET stream
        """
        self.session_id = session_id
        self.server = server
        self.context = context
        self.json_response = json_response
        self.keepalive_interval = keepalive_interval or None

        self.protocol_version: Optional[str] = None
        self.created_at = time.monotonic()
        self.last_activity = self.created_at
        self.closed = False

        self._lock = asyncio.Lock()
        self._stream: Optional[web.StreamResponse] = None
        self._closed_event = asyncio.Event()
        self._on_close: List[CloseCallback] = []

        self._waiters: Dict[RequestId, Tuple[str, asyncio.Future]] = {}
        self._to_server, self._server_reads = anyio.create_memory_object_stream(0)
        self._server_writes, self._from_server = anyio.create_memory_object_stream(0)
        self._server_task: Optional[asyncio.Task] = None
        self._router_task: Optional[asyncio.Task] = None

    @property
    def has_stream(self) -> bool:
        return self._stream is not None

    @property
    def busy(self) -> bool:
        """True while a POST carrying requests is being processed."""
        return self._lock.locked()

    def touch(self):
        self.last_activity = time.monotonic()

    def idle_seconds(self) -> float:
        return time.monotonic() - self.last_activity

    def add_close_callback(self, callback: CloseCallback):
        self._on_close.append(callback)

    def start(self):
        """Run the MCP server for this session; needs a running event loop."""
        if self._server_task is not None:
            return
        self._server_task = asyncio.create_task(self._run_server())
        self._router_task = asyncio.create_task(self._route_server_messages())

    def response_headers(self) -> dict:
        headers = {SESSION_ID_HEADER: self.session_id}
        if self.protocol_version:
            headers[PROTOCOL_VERSION_HEADER] = self.protocol_version
        return headers

    async def handle_post(
        self,
        request: web.Request,
        messages: List[MCPMessage],
        is_batch: bool = False
    ) -> web.StreamResponse:
        """Feed validated messages to the server and write the replies."""
        self._ensure_open()
        self.touch()

        outgoing = [(message, self._session_message(message)) for message in messages if not message.is_response]
        for message in messages:
            if message.is_response:
                logger.debug(f"Ignoring client response for id {message.id}")

        requests = [(message, wrapped) for message, wrapped in outgoing if message.is_request]
        ids = [message.id for message, _ in requests]
        if len(set(ids)) != len(ids):
            raise InvalidRequestError("Invalid Request: duplicate request id in batch", session_id=self.session_id)

        for message, wrapped in outgoing:
            if message.is_notification:
                await self._send_to_server(wrapped)

        if not requests:
            return web.Response(status=202, headers=self.response_headers())

        async with self._lock:
            # The session may have closed while this POST waited its turn.
            self._ensure_open()
            waiters = []
            try:
                for message, wrapped in requests:
                    waiters.append(self._expect_reply(message))
                    await self._send_to_server(wrapped)

                if self.json_response:
                    return await self._respond_json(waiters, is_batch)
                return await self._respond_sse(request, waiters)
            finally:
                for request_id in ids:
                    self._waiters.pop(request_id, None)
                self.touch()

    async def handle_get(self, request: web.Request) -> web.StreamResponse:
        """Serve the standalone server-push stream until the session closes."""
        if self._stream is not None:
            raise StreamConflictError(
                "Conflict: Only one SSE stream is allowed per session",
                session_id=self.session_id
            )

        response = self._event_stream_response()
        self._stream = response
        self.touch()

        try:
            await response.prepare(request)
            # Flush headers so the client sees the stream open before the first event.
            await response.write(b": stream opened\n\n")
            logger.info(f"Opened event stream for session {self.session_id}")

            while not self.closed:
                try:
                    await asyncio.wait_for(self._closed_event.wait(), timeout=self.keepalive_interval)
                except asyncio.TimeoutError:
                    await response.write(b": keepalive\n\n")
        except ConnectionResetError:
            logger.debug(f"Event stream for session {self.session_id} dropped by client")
        finally:
            if self._stream is response:
                self._stream = None
            logger.info(f"Closed event stream for session {self.session_id}")

        return response

    async def send_notification(self, method: str, params: Optional[dict] = None) -> bool:
        """
        Push a notification onto the GET stream.

        Returns:
            True if it was written, False if no stream is open
        """
        return await self._push(MCPMessage.notification(method, params))

    async def close(self):
        """Close the session; idempotent."""
        if self.closed:
            return

        self.closed = True
        self._closed_event.set()
        logger.info(f"Closing session {self.session_id}")

        callbacks, self._on_close = self._on_close, []
        for callback in callbacks:
            try:
                callback(self)
            except Exception as e:
                logger.error(f"Session close callback failed for {self.session_id}: {e}")

        pending = [future for _, future in self._waiters.values() if not future.done()]
        if pending:
            await asyncio.wait(pending, timeout=CLOSE_GRACE)
        for request_id, (_, future) in list(self._waiters.items()):
            if not future.done():
                future.set_result(MCPMessage.error_response(request_id, SERVER_ERROR, "Session closed"))

        await self._to_server.aclose()
        if self._server_task is None:
            for stream in (self._server_reads, self._server_writes, self._from_server):
                await stream.aclose()
            return

        for task in (self._server_task, self._router_task):
            if task is None:
                continue
            try:
                await asyncio.wait_for(task, timeout=CLOSE_GRACE)
            except asyncio.TimeoutError:
                logger.warning(f"MCP server for session {self.session_id} did not stop in time")

    def _ensure_open(self):
        if self.closed:
            raise SessionNotFoundError("Session not found", session_id=self.session_id)

    def _session_message(self, message: MCPMessage) -> SessionMessage:
        try:
            root = types.JSONRPCMessage.model_validate(message.to_dict())
        except ValidationError:
            raise InvalidRequestError(
                f"Invalid Request: malformed {message.method} message",
                session_id=self.session_id
            )
        return SessionMessage(root, metadata=ServerMessageMetadata(request_context=self.context))

    async def _send_to_server(self, message: SessionMessage):
        try:
            await self._to_server.send(message)
        except (anyio.ClosedResourceError, anyio.BrokenResourceError):
            raise SessionNotFoundError("Session not found", session_id=self.session_id)

    def _expect_reply(self, message: MCPMessage) -> asyncio.Future:
        future = asyncio.get_running_loop().create_future()
        self._waiters[message.id] = (message.method, future)
        return future

    async def _run_server(self):
        try:
            await self.server.run(
                self._server_reads,
                self._server_writes,
                self.server.create_initialization_options()
            )
        except Exception as e:
            logger.error(f"MCP server for session {self.session_id} failed: {e}", exc_info=True)
        finally:
            logger.debug(f"MCP server for session {self.session_id} stopped")

    async def _route_server_messages(self):
        async with self._from_server:
            async for session_message in self._from_server:
                message = MCPMessage.from_dict(dump_model(session_message.message))
                if message.is_response:
                    self._resolve(message)
                else:
                    await self._push(message)

    def _resolve(self, reply: MCPMessage):
        method, future = self._waiters.get(reply.id, (None, None))
        if future is None or future.done():
            logger.debug(f"Dropping reply {reply.id} for session {self.session_id}: nobody is waiting")
            return

        if method == "initialize" and isinstance(reply.result, dict):
            self.protocol_version = reply.result.get("protocolVersion")
            logger.info(f"Session {self.session_id} negotiated protocol {self.protocol_version}")
        future.set_result(reply)

    async def _push(self, message: MCPMessage) -> bool:
        stream = self._stream
        if stream is None or not stream.prepared or self.closed:
            logger.debug(f"Dropping {message.method} for session {self.session_id}: no open stream")
            return False

        try:
            await stream.write(sse_event(message))
            return True
        except ConnectionResetError as e:
            logger.debug(f"Failed to push {message.method} to session {self.session_id}: {e}")
            if self._stream is stream:
                self._stream = None
            return False

    async def _respond_json(self, waiters: List[asyncio.Future], is_batch: bool) -> web.Response:
        replies = await asyncio.gather(*waiters)
        payload = [reply.to_dict() for reply in replies] if is_batch else replies[0].to_dict()
        return web.Response(
            text=json.dumps(payload),
            content_type=JSON_CONTENT_TYPE,
            headers=self.response_headers()
        )

    async def _respond_sse(self, request: web.Request, waiters: List[asyncio.Future]) -> web.StreamResponse:
        # Headers go out with the first reply so they carry the negotiated version.
        response: Optional[web.StreamResponse] = None
        writable = True
        for next_reply in asyncio.as_completed(waiters):
            reply = await next_reply
            if response is None:
                response = self._event_stream_response()
                await response.prepare(request)
            if not writable:
                continue
            try:
                await response.write(sse_event(reply))
            except ConnectionResetError:
                logger.info(f"Client disconnected before reply {reply.id} on session {self.session_id}")
                writable = False

        if writable:
            await response.write_eof()
        return response

    def _event_stream_response(self) -> web.StreamResponse:
        headers = {
            "Content-Type": SSE_CONTENT_TYPE,
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
        }
        headers.update(self.response_headers())
        return web.StreamResponse(status=200, reason="OK", headers=headers)
