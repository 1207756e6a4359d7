"""Utility tools: wait, screenshot and clearing browsing data."""

from functools import partial
from typing import Any, Tuple

from mcp import types

from ..relay.errors import ExtensionActionError
from ..relay.service import BrowserContext
from .base import ToolDispatchTable, image_result, text_result
from .schemas import ClearBrowsingDataArguments, NoArguments, WaitArguments
from .snapshot import with_snapshot

DEFAULT_IMAGE_MIME_TYPE = "image/png"


def decode_screenshot(value: Any) -> Tuple[str, str]:
    """
    Normalize the extension's screenshot reply to ``(base64, mime_type)``.

    Accepts bare base64, a ``data:`` URL, or an object carrying ``data`` (or
    ``dataUrl``) and an optional ``mimeType``.
    """
    mime_type = DEFAULT_IMAGE_MIME_TYPE
    data = value
    if isinstance(value, dict):
        data = value.get("data") or value.get("dataUrl")
        mime_type = value.get("mimeType") or mime_type

    if not isinstance(data, str) or not data:
        raise ExtensionActionError("Browser extension returned no screenshot data")

    if data.startswith("data:"):
        header, _, data = data.partition(",")
        mime_type = header[len("data:"):].split(";")[0] or mime_type

    return data, mime_type


async def wait(context: BrowserContext, args: WaitArguments, snapshot: bool = True) -> types.CallToolResult:
    await context.wait(args.time)
    return await with_snapshot(context, f"Waited {args.time:g}ms", snapshot)


async def screenshot(context: BrowserContext, args: NoArguments) -> types.CallToolResult:
    reply = await context.invoke_browser_action("screenshot", {})
    data, mime_type = decode_screenshot(reply)
    return image_result(data, mime_type)


async def clear_browsing_data(context: BrowserContext, args: ClearBrowsingDataArguments) -> types.CallToolResult:
    await context.invoke_browser_action("clearBrowsingData", args.to_payload())
    cleared = ", ".join(args.data_types) if args.data_types else "nothing"
    return text_result(f"Cleared browsing data: {cleared}")


def register(table: ToolDispatchTable, snapshot_after_actions: bool = True):
    table.register(
        "wait",
        "Wait for a specified number of milliseconds (handled by the server)",
        WaitArguments,
        partial(wait, snapshot=snapshot_after_actions)
    )
    table.register(
        "screenshot",
        "Take a screenshot of the current visible tab",
        NoArguments,
        screenshot
    )
    table.register(
        "clearBrowsingData",
        "Clear browsing data",
        ClearBrowsingDataArguments,
        clear_browsing_data
    )
