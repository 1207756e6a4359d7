"""
Page snapshots: URL, title and the accessibility tree as YAML.

Used by the ``snapshot`` tool and appended to the result of actions that
change the page, so the client sees the page as it is after the action.
"""

import logging
from typing import Any, Optional

import yaml
from mcp import types

from ..relay.errors import ChannelError
from ..relay.service import BrowserContext
from .base import ToolDispatchTable, error_result, snapshot_result, text_result
from .schemas import NoArguments

logger = logging.getLogger(__name__)


def format_snapshot(url: str, title: Optional[str], tree: Any, status: str = "") -> str:
    """Render a snapshot as the text block returned to the client."""
    if not isinstance(tree, str):
        tree = yaml.safe_dump(tree, sort_keys=False, allow_unicode=True)

    lines = []
    if status:
        lines.append(status)
    lines.extend([
        f"- Page URL: {url}",
        f"- Page Title: {title or ''}",
        "- Page Snapshot",
        "```yaml",
        tree.rstrip("\n"),
        "```",
    ])
    return "\n".join(lines) + "\n"


async def capture_page_snapshot(context: BrowserContext, status: str = "") -> types.CallToolResult:
    """
    Capture the current page.

    Never raises for browser failures: a disconnected browser, a failed
    action or an incomplete answer all come back as a result flagged
    ``isError`` with an explanation.
    """
    state = await context.get_browser_state()
    if not state.connected:
        return error_result(
            "Browser extension is not connected; cannot capture a page snapshot. "
            "Check that the browser is running and the extension is connected."
        )

    try:
        tree = await context.invoke_browser_action("snapshot")
    except ChannelError as e:
        logger.warning(f"Page snapshot failed: {e}")
        return error_result(f"Error capturing page snapshot: {e}")

    missing = []
    if not state.url:
        missing.append("URL")
    if state.title is None:
        missing.append("title")
    if tree is None or tree == "":
        missing.append("accessibility tree")
    if missing:
        return error_result(
            f"Incomplete page snapshot (missing {', '.join(missing)}). "
            "The browser may have disconnected during the action."
        )

    return text_result(format_snapshot(state.url, state.title, tree, status))


async def with_snapshot(context: BrowserContext, text: str, enabled: bool) -> types.CallToolResult:
    """Return ``text`` followed by a page snapshot when ``enabled``."""
    if not enabled:
        return text_result(text)
    return snapshot_result(text, await capture_page_snapshot(context))


async def snapshot(context: BrowserContext, args: NoArguments) -> types.CallToolResult:
    return await capture_page_snapshot(context)


def register(table: ToolDispatchTable, snapshot_after_actions: bool = True):
    table.register(
        "snapshot",
        "Take a snapshot of the current page state (URL, title and accessibility tree)",
        NoArguments,
        snapshot
    )
