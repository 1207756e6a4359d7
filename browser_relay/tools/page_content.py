"""Page content tools and script execution."""

from mcp import types

from ..relay.service import BrowserContext
from .base import ToolDispatchTable, json_text, plain_text, text_result
from .schemas import ExecuteScriptArguments, GetAttributeArguments, GetContentArguments, NoArguments


async def get_content(context: BrowserContext, args: GetContentArguments) -> types.CallToolResult:
    content = await context.invoke_browser_action("get_content", args.to_payload())
    return text_result(plain_text(content))


async def get_attribute(context: BrowserContext, args: GetAttributeArguments) -> types.CallToolResult:
    value = await context.invoke_browser_action("get_attribute", args.to_payload())
    if value is None:
        return text_result(f'Attribute "{args.attribute}" is not set on "{args.selector}"')
    return text_result(plain_text(value))


async def get_current_state(context: BrowserContext, args: NoArguments) -> types.CallToolResult:
    state = await context.invoke_browser_action("getCurrentState", {}) or {}
    if not isinstance(state, dict):
        return text_result(plain_text(state))
    return text_result(f"URL: {state.get('url', '')}\nTitle: {state.get('title', '')}")


async def execute_script(context: BrowserContext, args: ExecuteScriptArguments) -> types.CallToolResult:
    result = await context.invoke_browser_action("execute_script", args.to_payload())
    return text_result(json_text(result, pretty=False))


def register(table: ToolDispatchTable, snapshot_after_actions: bool = True):
    table.register(
        "get_content",
        "Get the HTML content of the page or a specific element",
        GetContentArguments,
        get_content
    )
    table.register(
        "get_attribute",
        "Get the value of a specific attribute for an element",
        GetAttributeArguments,
        get_attribute
    )
    table.register(
        "getCurrentState",
        "Get the URL and title of the current active tab",
        NoArguments,
        get_current_state
    )
    table.register(
        "execute_script",
        "Execute custom JavaScript code on the page",
        ExecuteScriptArguments,
        execute_script
    )
