"""
Browser Relay - MCP tool server for browser-extension automation.

This package exposes browser actions (navigation, DOM interaction, tabs,
windows, cookies, storage, history, bookmarks, screenshots) as MCP tools over
the streamable HTTP transport, and relays every tool call to a connected
browser extension over a single correlated WebSocket control channel.
"""

__version__ = "0.1.0"
