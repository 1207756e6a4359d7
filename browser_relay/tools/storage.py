"""Cookie and Web Storage tools."""

import logging

from mcp import types

from ..relay.service import BrowserContext
from .base import ToolDispatchTable, json_text, plain_text, text_result
from .schemas import (
    DeleteCookieArguments,
    GetCookiesArguments,
    SetCookieArguments,
    SetStorageItemArguments,
    StorageKeyArguments,
)

logger = logging.getLogger(__name__)


async def get_cookies(context: BrowserContext, args: GetCookiesArguments) -> types.CallToolResult:
    cookies = await context.invoke_browser_action("getCookies", args.to_payload())
    return text_result(json_text(cookies))


async def set_cookie(context: BrowserContext, args: SetCookieArguments) -> types.CallToolResult:
    logger.debug(f"Setting cookie {args.name} for {args.url}")
    cookie = await context.invoke_browser_action("setCookie", args.to_payload())
    return text_result(f"Cookie set: {json_text(cookie, pretty=False)}")


async def delete_cookie(context: BrowserContext, args: DeleteCookieArguments) -> types.CallToolResult:
    await context.invoke_browser_action("deleteCookie", args.to_payload())
    return text_result(f"Deleted cookie '{args.name}' for {args.url}")


async def get_storage_item(context: BrowserContext, args: StorageKeyArguments) -> types.CallToolResult:
    value = await context.invoke_browser_action("getStorageItem", args.to_payload())
    if value is None:
        return text_result(f"No item '{args.key}' in {args.storage_type} storage")
    return text_result(plain_text(value))


async def set_storage_item(context: BrowserContext, args: SetStorageItemArguments) -> types.CallToolResult:
    await context.invoke_browser_action("setStorageItem", args.to_payload())
    return text_result(f"Set '{args.key}' in {args.storage_type} storage")


async def delete_storage_item(context: BrowserContext, args: StorageKeyArguments) -> types.CallToolResult:
    await context.invoke_browser_action("deleteStorageItem", args.to_payload())
    return text_result(f"Deleted '{args.key}' from {args.storage_type} storage")


def register(table: ToolDispatchTable, snapshot_after_actions: bool = True):
    table.register("getCookies", "Get cookies, optionally filtered by URL, name, domain or path", GetCookiesArguments, get_cookies)
    table.register("setCookie", "Set a cookie", SetCookieArguments, set_cookie)
    table.register("deleteCookie", "Delete a cookie", DeleteCookieArguments, delete_cookie)
    table.register("getStorageItem", "Get an item from local or session storage", StorageKeyArguments, get_storage_item)
    table.register("setStorageItem", "Set an item in local or session storage", SetStorageItemArguments, set_storage_item)
    table.register("deleteStorageItem", "Delete an item from local or session storage", StorageKeyArguments, delete_storage_item)
