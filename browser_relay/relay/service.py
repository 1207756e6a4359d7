"""
Relay service and the browser context handed to tool handlers.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional
from dataclasses import dataclass, asdict

from .channel import ControlChannel
from .correlation import CorrelationRegistry
from .errors import SessionClosedError

logger = logging.getLogger(__name__)


@dataclass
class BrowserState:
    """Connectivity and location of the controlled browser."""
    connected: bool
    url: Optional[str] = None
    title: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


class BrowserContext(ABC):
    """Capabilities a tool handler may use to drive the browser."""

    @abstractmethod
    async def invoke_browser_action(self, action: str, payload: Optional[Dict[str, Any]] = None) -> Any:
        """Relay an action to the extension and return its result."""
        pass

    @abstractmethod
    async def wait(self, ms: float):
        """Sleep for ``ms`` milliseconds."""
        pass

    @abstractmethod
    async def get_browser_state(self) -> BrowserState:
        """Return connectivity plus current URL and title where available."""
        pass

    @abstractmethod
    def is_connected(self) -> bool:
        """Whether the extension is currently connected."""
        pass


class RelayBrowserContext(BrowserContext):
    """BrowserContext backed by the control channel, scoped to one MCP session."""

    def __init__(self, channel: ControlChannel, owner: Optional[str] = None):
        self.channel = channel
        self.owner = owner

    async def invoke_browser_action(self, action: str, payload: Optional[Dict[str, Any]] = None) -> Any:
        return await self.channel.invoke(action, payload, owner=self.owner)

    async def wait(self, ms: float):
        await asyncio.sleep(max(ms, 0) / 1000.0)

    async def get_browser_state(self) -> BrowserState:
        if not self.channel.is_connected:
            return BrowserState(connected=False)

        url, title = await asyncio.gather(
            self.invoke_browser_action("getUrl"),
            self.invoke_browser_action("getTitle"),
            return_exceptions=True
        )

        state = BrowserState(connected=True)
        if isinstance(url, BaseException):
            logger.warning(f"Could not read page URL: {url}")
        elif url is not None:
            state.url = str(url)

        if isinstance(title, BaseException):
            logger.warning(f"Could not read page title: {title}")
        elif title is not None:
            state.title = str(title)

        return state

    def is_connected(self) -> bool:
        return self.channel.is_connected


class RelayService:
    """
    Owns the correlation registry and the control channel.

    Built once by the entry point and passed by reference to everything that
    needs to reach the browser.
    """

    def __init__(
        self,
        config=None,
        channel: Optional[ControlChannel] = None,
        registry: Optional[CorrelationRegistry] = None
    ):
        """
        Initialize the relay.

        Args:
            config: RelayConfig supplying channel settings
            channel: Pre-built channel, mainly for tests
            registry: Pre-built registry, mainly for tests
        """
        self.config = config

        if registry is None:
            timeout = config.action_timeout if config is not None else 15.0
            registry = CorrelationRegistry(timeout=timeout)
        self.registry = registry

        if channel is None:
            kwargs = {}
            if config is not None:
                kwargs = {
                    "host": config.ws_host,
                    "port": config.ws_port,
                    "path": config.ws_path,
                    "reconnect_delay": config.reconnect_delay,
                    "heartbeat": config.ws_heartbeat
                }
            channel = ControlChannel(self.registry, **kwargs)
        self.channel = channel

    async def start(self):
        await self.channel.start()

    async def stop(self):
        await self.channel.stop()

    def context_for(self, owner: Optional[str] = None) -> RelayBrowserContext:
        """Return a browser context whose calls are tagged with ``owner``."""
        return RelayBrowserContext(self.channel, owner=owner)

    def abandon_session(self, owner: str) -> int:
        """Reject every pending extension call issued by a closed session."""
        return self.registry.reject_owned(
            owner,
            SessionClosedError(f"MCP session {owner} was closed before the browser replied")
        )

    def is_connected(self) -> bool:
        return self.channel.is_connected

    def status(self) -> Dict[str, Any]:
        return {
            "channel": self.channel.status(),
            "pending": self.registry.describe_pending()
        }
