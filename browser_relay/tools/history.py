"""History and bookmark tools."""

from mcp import types

from ..relay.service import BrowserContext
from .base import ToolDispatchTable, json_text, text_result
from .schemas import (
    CreateBookmarkArguments,
    SearchBookmarksArguments,
    SearchHistoryArguments,
    UrlArguments,
)


async def search_history(context: BrowserContext, args: SearchHistoryArguments) -> types.CallToolResult:
    items = await context.invoke_browser_action("searchHistory", args.to_payload())
    return text_result(json_text(items))


async def delete_history_url(context: BrowserContext, args: UrlArguments) -> types.CallToolResult:
    await context.invoke_browser_action("deleteHistoryUrl", args.to_payload())
    return text_result(f"Deleted {args.url} from history")


async def create_bookmark(context: BrowserContext, args: CreateBookmarkArguments) -> types.CallToolResult:
    bookmark = await context.invoke_browser_action("createBookmark", args.to_payload())
    return text_result(f"Created bookmark: {json_text(bookmark, pretty=False)}")


async def search_bookmarks(context: BrowserContext, args: SearchBookmarksArguments) -> types.CallToolResult:
    bookmarks = await context.invoke_browser_action("searchBookmarks", args.to_payload())
    return text_result(json_text(bookmarks))


def register(table: ToolDispatchTable, snapshot_after_actions: bool = True):
    table.register("searchHistory", "Search browser history", SearchHistoryArguments, search_history)
    table.register("deleteHistoryUrl", "Delete a specific URL from browser history", UrlArguments, delete_history_url)
    table.register("createBookmark", "Create a new bookmark", CreateBookmarkArguments, create_bookmark)
    table.register("searchBookmarks", "Search bookmarks", SearchBookmarksArguments, search_bookmarks)
