"""
WebSocket control channel to the browser extension.

The extension dials in to a local aiohttp WebSocket listener. At most one
peer is authoritative at a time; every outbound action is tagged with a
correlation ID and its reply is demultiplexed back through the
CorrelationRegistry.
"""

import asyncio
import json
import logging
import uuid
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Set
from datetime import datetime

from aiohttp import web, WSMsgType, WSCloseCode

from .correlation import CorrelationRegistry
from .errors import (
    ChannelUnavailableError,
    ConnectionLostError,
    ExtensionActionError,
    SupersededError,
)

logger = logging.getLogger(__name__)

SUPERSEDED_CLOSE_CODE = 4000

StateListener = Callable[["ChannelState"], Any]
MessageListener = Callable[[Dict[str, Any]], Any]


class ChannelState(Enum):
    """Connectivity of the control channel."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    OPEN = "open"


def _error_text(error: Any) -> str:
    if isinstance(error, dict):
        return str(error.get("message") or error)
    return str(error)


class ControlChannel:
    """
    Single logical connection to the browser extension.

    Outbound actions fail fast when no peer is connected. A new peer always
    wins: the incumbent's pending calls are drained with SupersededError and
    its socket is force-closed.
    """

    def __init__(
        self,
        registry: CorrelationRegistry,
        host: str = "127.0.0.1",
        port: int = 8081,
        path: str = "/",
        reconnect_delay: float = 5.0,
        heartbeat: Optional[float] = 30.0
    ):
        """
        Initialize the control channel.

        Args:
            registry: Registry that owns pending calls
            host: Interface the WebSocket listener binds to
            port: Port the extension dials (0 picks a free port)
            path: WebSocket route path
            reconnect_delay: Seconds before a lost peer is considered awaited again
            heartbeat: WebSocket ping interval in seconds, None disables
        """
        self.registry = registry
        self.host = host
        self.port = port
        self.path = path
        self.reconnect_delay = reconnect_delay
        self.heartbeat = heartbeat or None
        self.bound_port: Optional[int] = None

        self._state = ChannelState.DISCONNECTED
        self._ws: Optional[web.WebSocketResponse] = None
        self._peer_address: Optional[str] = None
        self._connected_at: Optional[datetime] = None
        self._connected_event = asyncio.Event()
        self._reconnect_handle: Optional[asyncio.TimerHandle] = None
        self._shutting_down = False
        self._runner: Optional[web.AppRunner] = None
        self._background: Set[asyncio.Task] = set()
        self._state_listeners: List[StateListener] = []
        self._message_listeners: List[MessageListener] = []
        self.connections_accepted = 0

    @property
    def state(self) -> ChannelState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is ChannelState.OPEN and self._ws is not None and not self._ws.closed

    @property
    def reconnect_pending(self) -> bool:
        """True while a reconnect timer is armed."""
        return self._reconnect_handle is not None

    def build_app(self) -> web.Application:
        """Build the aiohttp application serving the WebSocket route."""
        app = web.Application()
        app.router.add_get(self.path, self.handle_websocket)
        return app

    async def start(self):
        """
        Bind the WebSocket listener.

        Raises:
            OSError: If the port cannot be bound
        """
        self._shutting_down = False
        self._runner = web.AppRunner(self.build_app(), handle_signals=False)
        await self._runner.setup()

        site = web.TCPSite(self._runner, self.host, self.port)
        try:
            await site.start()
        except OSError as e:
            logger.error(f"Failed to bind control channel on {self.host}:{self.port}: {e}")
            await self._runner.cleanup()
            self._runner = None
            raise

        addresses = self._runner.addresses
        self.bound_port = addresses[0][1] if addresses else self.port
        self._set_state(ChannelState.CONNECTING)
        logger.info(f"Control channel listening on ws://{self.host}:{self.bound_port}{self.path}")

    async def stop(self):
        """Close the peer, reject pending calls and stop listening."""
        logger.info("Stopping control channel")
        self._shutting_down = True
        self._cancel_reconnect()

        ws = self._ws
        self._ws = None
        self.registry.drain_all(ConnectionLostError("Server shutting down"))

        if ws is not None and not ws.closed:
            await ws.close(code=WSCloseCode.OK, message=b"Server shutting down")

        for task in list(self._background):
            task.cancel()
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)

        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None

        self._connected_event.clear()
        self._set_state(ChannelState.DISCONNECTED)
        logger.info("Control channel stopped")

    async def handle_websocket(self, request: web.Request) -> web.StreamResponse:
        """Accept an extension connection and pump its frames until it closes."""
        ws = web.WebSocketResponse(heartbeat=self.heartbeat)
        if not ws.can_prepare(request).ok:
            return web.Response(status=426, text="Expected a WebSocket upgrade")

        await ws.prepare(request)
        self._adopt_peer(ws, request.remote)

        try:
            async for msg in ws:
                if msg.type == WSMsgType.TEXT:
                    self._handle_frame(msg.data)
                elif msg.type == WSMsgType.BINARY:
                    self._handle_frame(msg.data.decode("utf-8", errors="replace"))
                elif msg.type == WSMsgType.ERROR:
                    logger.warning(f"Control channel error from {request.remote}: {ws.exception()}")
        finally:
            if self._ws is ws:
                self._on_peer_lost(ws)

        return ws

    async def invoke(
        self,
        action: str,
        payload: Optional[Dict[str, Any]] = None,
        *,
        owner: Optional[str] = None,
        timeout: Optional[float] = None
    ) -> Any:
        """
        Send an action to the extension and await its reply.

        Args:
            action: Extension action type
            payload: Action payload
            owner: Session the call belongs to
            timeout: Per-call ceiling overriding the registry default

        Returns:
            The ``result`` field of the extension's reply

        Raises:
            ChannelUnavailableError: No extension is connected
            ChannelError: Timeout, supersession, disconnect or extension error
        """
        ws = self._ws
        if not self.is_connected or ws is None:
            raise ChannelUnavailableError(
                "Browser extension is not connected. Open the extension and connect it to the relay."
            )

        correlation_id = str(uuid.uuid4())
        entry = self.registry.register(correlation_id, action, owner=owner, timeout=timeout)
        frame = {"id": correlation_id, "type": action, "payload": payload if payload is not None else {}}

        try:
            await ws.send_str(json.dumps(frame))
            logger.debug(f"Sent {action} ({correlation_id}) to browser extension")
        except Exception as e:
            logger.warning(f"Failed to send {action} to browser extension: {e}")
            self.registry.reject(
                correlation_id,
                ConnectionLostError(f"Failed to send '{action}' to the browser extension: {e}")
            )

        return await entry.future

    def schedule_reconnect(self) -> bool:
        """
        Arm the reconnect timer.

        Returns:
            False if a timer was already armed or shutdown was requested
        """
        if self._shutting_down or self._reconnect_handle is not None:
            return False

        loop = asyncio.get_running_loop()
        self._reconnect_handle = loop.call_later(self.reconnect_delay, self._on_reconnect_timer)
        logger.debug(f"Reconnect timer armed for {self.reconnect_delay:g}s")
        return True

    async def wait_for_connection(self, timeout: float) -> bool:
        """Wait up to ``timeout`` seconds for an extension to connect."""
        if self.is_connected:
            return True
        try:
            await asyncio.wait_for(self._connected_event.wait(), timeout)
        except asyncio.TimeoutError:
            return False
        return self.is_connected

    def add_state_listener(self, listener: StateListener):
        """Call ``listener(state)`` on every state change; coroutines are scheduled."""
        self._state_listeners.append(listener)

    def add_message_listener(self, listener: MessageListener):
        """Call ``listener(message)`` for frames that carry no correlation ID."""
        self._message_listeners.append(listener)

    def status(self) -> Dict[str, Any]:
        return {
            "state": self._state.value,
            "connected": self.is_connected,
            "peer": self._peer_address,
            "connected_at": self._connected_at.isoformat() if self._connected_at else None,
            "listening": f"ws://{self.host}:{self.bound_port or self.port}{self.path}",
            "reconnect_pending": self.reconnect_pending,
            "connections_accepted": self.connections_accepted,
            "pending_calls": len(self.registry)
        }

    def _adopt_peer(self, ws: web.WebSocketResponse, remote: Optional[str]):
        incumbent = self._ws
        if incumbent is not None:
            logger.warning(f"New browser extension connection from {remote} supersedes {self._peer_address}")
            self.registry.drain_all(SupersededError("Browser extension connection was replaced by a new one"))
            self._spawn(self._force_close(incumbent))

        self._cancel_reconnect()
        self._ws = ws
        self._peer_address = remote
        self._connected_at = datetime.now()
        self.connections_accepted += 1
        self._connected_event.set()
        self._set_state(ChannelState.OPEN)
        logger.info(f"Browser extension connected from {remote}")

    def _on_peer_lost(self, ws: web.WebSocketResponse):
        logger.info(f"Browser extension disconnected (close code {ws.close_code})")
        self._ws = None
        self._peer_address = None
        self._connected_at = None
        self._connected_event.clear()
        self.registry.drain_all(ConnectionLostError("Browser extension disconnected"))
        self._set_state(ChannelState.DISCONNECTED)
        self.schedule_reconnect()

    async def _force_close(self, ws: web.WebSocketResponse):
        try:
            await ws.close(code=SUPERSEDED_CLOSE_CODE, message=b"Superseded by a new connection")
        except Exception as e:
            logger.debug(f"Error closing superseded connection: {e}")

    def _handle_frame(self, data: str):
        try:
            message = json.loads(data)
        except json.JSONDecodeError as e:
            logger.warning(f"Discarding unparseable frame from browser extension: {e}")
            return

        if not isinstance(message, dict):
            logger.warning(f"Discarding non-object frame from browser extension: {type(message).__name__}")
            return

        correlation_id = message.get("id")
        if correlation_id is None:
            logger.info(f"Unsolicited message from browser extension: {message.get('type', '<untyped>')}")
            self._notify_message(message)
            return

        if not isinstance(correlation_id, str):
            logger.warning(f"Discarding reply with non-string id {correlation_id!r}")
            return

        error = message.get("error")
        if error:
            settled = self.registry.reject(
                correlation_id,
                ExtensionActionError(_error_text(error), error_data=error)
            )
        else:
            settled = self.registry.resolve(correlation_id, message.get("result"))

        if settled:
            logger.debug(f"Reply received for {correlation_id}")
        else:
            logger.warning(f"Discarding reply for unknown or expired call {correlation_id}")

    def _on_reconnect_timer(self):
        self._reconnect_handle = None
        if self._shutting_down or self._ws is not None:
            return

        self._set_state(ChannelState.CONNECTING)
        logger.warning(
            f"Browser extension not connected; waiting for it to reconnect on "
            f"ws://{self.host}:{self.bound_port or self.port}{self.path}"
        )

    def _cancel_reconnect(self):
        if self._reconnect_handle is not None:
            self._reconnect_handle.cancel()
            self._reconnect_handle = None

    def _set_state(self, state: ChannelState):
        if state is self._state:
            return

        logger.debug(f"Control channel {self._state.value} -> {state.value}")
        self._state = state
        for listener in list(self._state_listeners):
            self._dispatch(listener, state)

    def _notify_message(self, message: Dict[str, Any]):
        for listener in list(self._message_listeners):
            self._dispatch(listener, message)

    def _dispatch(self, listener: Callable[[Any], Any], arg: Any):
        try:
            result = listener(arg)
        except Exception as e:
            logger.error(f"Control channel listener failed: {e}")
            return

        if asyncio.iscoroutine(result):
            self._spawn(result)

    def _spawn(self, coro):
        task = asyncio.get_running_loop().create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._reap)

    def _reap(self, task: asyncio.Task):
        self._background.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Control channel background task failed: {task.exception()}")
