"""
Pytest configuration and shared fixtures for browser relay tests.
"""

import asyncio
import json
from typing import Any, Callable, Dict, List, Optional
from unittest.mock import AsyncMock, Mock

import aiohttp
import pytest
import pytest_asyncio

from browser_relay.config import RelayConfig
from browser_relay.relay.channel import ControlChannel
from browser_relay.relay.correlation import CorrelationRegistry
from browser_relay.relay.service import BrowserState

pytest_plugins = ["pytest_asyncio"]


class StubExtension:
    """
    Minimal browser extension speaking the control-channel protocol.

    Frames whose ``type`` has an entry in ``replies`` are answered
    automatically; everything else is queued on ``inbox`` for the test to
    answer by hand.
    """

    def __init__(self, url: str, replies: Optional[Dict[str, Any]] = None):
        self.url = url
        self.replies: Dict[str, Any] = dict(replies or {})
        self.received: List[Dict[str, Any]] = []
        self.inbox: asyncio.Queue = asyncio.Queue()
        self.ws: Optional[aiohttp.ClientWebSocketResponse] = None
        self._session: Optional[aiohttp.ClientSession] = None
        self._pump_task: Optional[asyncio.Task] = None

    @property
    def closed(self) -> bool:
        return self.ws is None or self.ws.closed

    async def connect(self) -> "StubExtension":
        self._session = aiohttp.ClientSession()
        self.ws = await self._session.ws_connect(self.url)
        self._pump_task = asyncio.create_task(self._pump())
        return self

    async def reply(self, correlation_id: str, result: Any = None, error: Any = None):
        message: Dict[str, Any] = {"id": correlation_id}
        if error is not None:
            message["error"] = error
        else:
            message["result"] = result
        await self.ws.send_str(json.dumps(message))

    async def send(self, message: Any):
        await self.ws.send_str(message if isinstance(message, str) else json.dumps(message))

    async def next_frame(self, timeout: float = 2.0) -> Dict[str, Any]:
        return await asyncio.wait_for(self.inbox.get(), timeout)

    async def close(self):
        if self.ws is not None and not self.ws.closed:
            await self.ws.close()
        if self._pump_task is not None:
            await asyncio.gather(self._pump_task, return_exceptions=True)
        if self._session is not None:
            await self._session.close()

    async def _pump(self):
        async for msg in self.ws:
            if msg.type != aiohttp.WSMsgType.TEXT:
                continue
            frame = json.loads(msg.data)
            self.received.append(frame)

            if frame.get("type") in self.replies:
                reply = self.replies[frame["type"]]
                result = reply(frame) if callable(reply) else reply
                await self.reply(frame["id"], result=result)
            else:
                await self.inbox.put(frame)


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0, interval: float = 0.01):
    """Poll ``predicate`` until it is true or fail the test."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            pytest.fail("Condition not met before timeout")
        await asyncio.sleep(interval)


@pytest.fixture
def wait_for():
    """Expose ``wait_until`` to tests."""
    return wait_until


@pytest.fixture
def relay_config() -> RelayConfig:
    """Config bound to ephemeral ports with short timers."""
    return RelayConfig(
        port=0,
        ws_port=0,
        action_timeout=2.0,
        reconnect_delay=0.05,
        ws_heartbeat=0,
        sse_keepalive=0.1
    )


@pytest.fixture
def registry() -> CorrelationRegistry:
    return CorrelationRegistry(timeout=2.0)


@pytest_asyncio.fixture
async def channel(registry):
    """A started control channel on an ephemeral port."""
    channel = ControlChannel(registry, host="127.0.0.1", port=0, reconnect_delay=0.05, heartbeat=None)
    await channel.start()
    yield channel
    await channel.stop()


@pytest_asyncio.fixture
async def stub_extension():
    """
    Factory connecting StubExtensions to a WebSocket URL.

    Every extension created through the factory is closed at teardown.
    """
    created: List[StubExtension] = []

    async def connect(url: str, replies: Optional[Dict[str, Any]] = None) -> StubExtension:
        extension = StubExtension(url, replies)
        created.append(extension)
        return await extension.connect()

    yield connect

    for extension in created:
        await extension.close()


@pytest.fixture
def page_replies() -> Dict[str, Any]:
    """Auto-replies describing a loaded example page."""
    return {
        "getUrl": "https://example.com/",
        "getTitle": "Example Domain",
        "snapshot": "- heading \"Example Domain\" [level=1]\n- link \"More information...\"",
    }


@pytest.fixture
def mock_context():
    """BrowserContext double with a connected browser on example.com."""
    context = Mock()
    context.invoke_browser_action = AsyncMock(return_value=None)
    context.wait = AsyncMock()
    context.get_browser_state = AsyncMock(
        return_value=BrowserState(connected=True, url="https://example.com/", title="Example Domain")
    )
    context.is_connected = Mock(return_value=True)
    return context


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test"
    )
    config.addinivalue_line(
        "markers", "e2e: mark test as an end-to-end test"
    )
    config.addinivalue_line(
        "markers", "slow: mark test as slow running"
    )


def pytest_collection_modifyitems(config, items):
    """Modify test collection to add markers based on test location."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
        elif "e2e" in str(item.fspath):
            item.add_marker(pytest.mark.e2e)

        if "timeout" in item.name or "reconnect" in item.name:
            item.add_marker(pytest.mark.slow)
