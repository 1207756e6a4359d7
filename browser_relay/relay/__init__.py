"""
Relay core: correlation registry, control channel and browser context.
"""

from .channel import ChannelState, ControlChannel
from .correlation import CorrelationRegistry, PendingRequest
from .service import BrowserContext, BrowserState, RelayBrowserContext, RelayService

__all__ = [
    "ChannelState",
    "ControlChannel",
    "CorrelationRegistry",
    "PendingRequest",
    "BrowserContext",
    "BrowserState",
    "RelayBrowserContext",
    "RelayService",
]
