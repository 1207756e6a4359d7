"""
Tab and window management tools.

Tab tools keep the extension's snake_case action names (``create_tab``,
``close_tab``, ``focus_tab``) while the tools themselves are camelCase.
"""

from mcp import types

from ..relay.service import BrowserContext
from .base import ToolDispatchTable, json_text, text_result
from .schemas import (
    CreateTabArguments,
    CreateWindowArguments,
    NoArguments,
    TabIdArguments,
    WindowIdArguments,
)


async def get_all_tabs(context: BrowserContext, args: NoArguments) -> types.CallToolResult:
    tabs = await context.invoke_browser_action("getAllTabs", {})
    return text_result(json_text(tabs))


async def create_tab(context: BrowserContext, args: CreateTabArguments) -> types.CallToolResult:
    tab = await context.invoke_browser_action("create_tab", args.to_payload())
    return text_result(f"Created tab: {json_text(tab, pretty=False)}")


async def close_tab(context: BrowserContext, args: TabIdArguments) -> types.CallToolResult:
    await context.invoke_browser_action("close_tab", args.to_payload())
    return text_result(f"Closed tab {args.tab_id}")


async def focus_tab(context: BrowserContext, args: TabIdArguments) -> types.CallToolResult:
    await context.invoke_browser_action("focus_tab", args.to_payload())
    return text_result(f"Focused tab {args.tab_id}")


async def get_all_windows(context: BrowserContext, args: NoArguments) -> types.CallToolResult:
    windows = await context.invoke_browser_action("getAllWindows", {})
    return text_result(json_text(windows))


async def create_window(context: BrowserContext, args: CreateWindowArguments) -> types.CallToolResult:
    window = await context.invoke_browser_action("createWindow", args.to_payload())
    return text_result(f"Created window: {json_text(window, pretty=False)}")


async def close_window(context: BrowserContext, args: WindowIdArguments) -> types.CallToolResult:
    await context.invoke_browser_action("closeWindow", args.to_payload())
    return text_result(f"Closed window {args.window_id}")


async def focus_window(context: BrowserContext, args: WindowIdArguments) -> types.CallToolResult:
    await context.invoke_browser_action("focusWindow", args.to_payload())
    return text_result(f"Focused window {args.window_id}")


def register(table: ToolDispatchTable, snapshot_after_actions: bool = True):
    table.register("getAllTabs", "Get information about all open tabs", NoArguments, get_all_tabs)
    table.register("createTab", "Create a new tab", CreateTabArguments, create_tab)
    table.register("closeTab", "Close a specific tab", TabIdArguments, close_tab)
    table.register("focusTab", "Focus on a specific tab", TabIdArguments, focus_tab)

    table.register("getAllWindows", "Get information about all open browser windows", NoArguments, get_all_windows)
    table.register("createWindow", "Create a new browser window", CreateWindowArguments, create_window)
    table.register("closeWindow", "Close a specific browser window", WindowIdArguments, close_window)
    table.register("focusWindow", "Focus on a specific browser window", WindowIdArguments, focus_window)
