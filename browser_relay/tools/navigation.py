"""Navigation tools."""

import logging
from functools import partial

from mcp import types

from ..relay.service import BrowserContext
from .base import ToolDispatchTable, text_result
from .schemas import NavigateArguments, NoArguments
from .snapshot import with_snapshot

logger = logging.getLogger(__name__)


async def navigate(context: BrowserContext, args: NavigateArguments, snapshot: bool = True) -> types.CallToolResult:
    logger.debug(f"Navigating to {args.url}")
    await context.invoke_browser_action("navigate", args.to_payload())
    return await with_snapshot(context, f'Navigated to "{args.url}"', snapshot)


async def refresh_page(context: BrowserContext, args: NoArguments) -> types.CallToolResult:
    await context.invoke_browser_action("refreshPage", {})
    return text_result("Refreshed the current tab")


def register(table: ToolDispatchTable, snapshot_after_actions: bool = True):
    table.register(
        "navigate",
        "Navigate the active tab to a URL",
        NavigateArguments,
        partial(navigate, snapshot=snapshot_after_actions)
    )
    table.register(
        "refreshPage",
        "Refresh the current active tab",
        NoArguments,
        refresh_page
    )
