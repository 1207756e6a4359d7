"""DOM interaction tools: click, hover, type and scroll."""

from functools import partial

from mcp import types

from ..relay.service import BrowserContext
from .base import ToolDispatchTable, text_result
from .schemas import ScrollArguments, SelectorArguments, TypeArguments
from .snapshot import with_snapshot


async def click(context: BrowserContext, args: SelectorArguments, snapshot: bool = True) -> types.CallToolResult:
    await context.invoke_browser_action("click", args.to_payload())
    return await with_snapshot(context, f'Clicked "{args.selector}"', snapshot)


async def hover(context: BrowserContext, args: SelectorArguments, snapshot: bool = True) -> types.CallToolResult:
    await context.invoke_browser_action("hover", args.to_payload())
    return await with_snapshot(context, f'Hovered over "{args.selector}"', snapshot)


async def type_text(context: BrowserContext, args: TypeArguments, snapshot: bool = True) -> types.CallToolResult:
    await context.invoke_browser_action("type", args.to_payload())
    return await with_snapshot(context, f'Typed "{args.text}" into "{args.selector}"', snapshot)


async def scroll(context: BrowserContext, args: ScrollArguments) -> types.CallToolResult:
    result = await context.invoke_browser_action("scroll", args.to_payload())
    if isinstance(result, str) and result:
        return text_result(result)

    if args.selector:
        return text_result(f'Scrolled "{args.selector}" into view')
    amount = f" by {args.amount:g}px" if args.amount is not None else ""
    return text_result(f"Scrolled {args.direction}{amount}")


def register(table: ToolDispatchTable, snapshot_after_actions: bool = True):
    table.register(
        "click",
        "Click on an element on the page",
        SelectorArguments,
        partial(click, snapshot=snapshot_after_actions)
    )
    table.register(
        "hover",
        "Hover over an element on the page",
        SelectorArguments,
        partial(hover, snapshot=snapshot_after_actions)
    )
    table.register(
        "type",
        "Type text into an input element",
        TypeArguments,
        partial(type_text, snapshot=snapshot_after_actions)
    )
    table.register(
        "scroll",
        "Scroll the page up, down, left, right, or to a specific element",
        ScrollArguments,
        scroll
    )
