"""
Unit tests for the browser tool catalogue.
"""

import pytest

from browser_relay.relay.errors import ExtensionActionError
from browser_relay.relay.service import BrowserState
from browser_relay.tools import build_tool_table
from browser_relay.tools.snapshot import capture_page_snapshot, format_snapshot
from browser_relay.tools.utility import decode_screenshot

EXPECTED_TOOLS = {
    "navigate", "refreshPage",
    "click", "hover", "type", "scroll",
    "get_content", "get_attribute", "getCurrentState", "execute_script",
    "getAllTabs", "createTab", "closeTab", "focusTab",
    "getAllWindows", "createWindow", "closeWindow", "focusWindow",
    "getCookies", "setCookie", "deleteCookie",
    "getStorageItem", "setStorageItem", "deleteStorageItem",
    "searchHistory", "deleteHistoryUrl", "createBookmark", "searchBookmarks",
    "wait", "screenshot", "clearBrowsingData", "snapshot",
}


@pytest.fixture
def table():
    return build_tool_table(snapshot_after_actions=False)


@pytest.fixture
def snapshot_table():
    return build_tool_table(snapshot_after_actions=True)


def page_actions(mock_context, tree="- button \"Go\""):
    """Make the mock browser answer the snapshot action."""
    async def invoke(action, payload=None):
        if action == "snapshot":
            return tree
        return None

    mock_context.invoke_browser_action.side_effect = invoke


class TestCatalogue:
    """The registered tool set."""

    def test_all_tools_registered(self, table):
        assert set(table.names()) == EXPECTED_TOOLS
        assert len(table) == 32
        assert table.frozen

    def test_every_tool_has_description_and_object_schema(self, table):
        for tool in table.list_tools():
            assert tool.description
            assert tool.inputSchema["type"] == "object"

    def test_wire_field_names_are_camel_case(self, table):
        schema = table.get("createWindow").input_schema
        assert set(schema["properties"]) == {"url", "focused", "type"}

        schema = table.get("clearBrowsingData").input_schema
        assert "dataTypes" in schema["properties"]


class TestActionMapping:
    """Each tool relays the right action and payload."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("tool, arguments, action, payload, expected", [
        ("navigate", {"url": "https://example.com"}, "navigate",
         {"url": "https://example.com"}, 'Navigated to "https://example.com"'),
        ("refreshPage", {}, "refreshPage", {}, "Refreshed the current tab"),
        ("click", {"selector": "#go"}, "click", {"selector": "#go"}, 'Clicked "#go"'),
        ("hover", {"selector": "nav a"}, "hover", {"selector": "nav a"}, 'Hovered over "nav a"'),
        ("type", {"selector": "#q", "text": "hello"}, "type",
         {"selector": "#q", "text": "hello"}, 'Typed "hello" into "#q"'),
        ("scroll", {"direction": "down", "amount": 300}, "scroll",
         {"direction": "down", "amount": 300}, "Scrolled down by 300px"),
        ("scroll", {"selector": "#footer"}, "scroll", {"selector": "#footer"}, 'Scrolled "#footer" into view'),
        ("createTab", {"url": "https://example.org"}, "create_tab",
         {"url": "https://example.org", "active": True}, "Created tab: null"),
        ("closeTab", {"tabId": 12}, "close_tab", {"tabId": 12}, "Closed tab 12"),
        ("focusTab", {"tabId": 3}, "focus_tab", {"tabId": 3}, "Focused tab 3"),
        ("createWindow", {"type": "popup", "focused": False}, "createWindow",
         {"focused": False, "type": "popup"}, "Created window: null"),
        ("closeWindow", {"windowId": 2}, "closeWindow", {"windowId": 2}, "Closed window 2"),
        ("focusWindow", {"windowId": 2}, "focusWindow", {"windowId": 2}, "Focused window 2"),
        ("deleteCookie", {"url": "https://example.com", "name": "sid"}, "deleteCookie",
         {"url": "https://example.com", "name": "sid"}, "Deleted cookie 'sid' for https://example.com"),
        ("getStorageItem", {"key": "theme"}, "getStorageItem",
         {"key": "theme", "storageType": "local"}, "No item 'theme' in local storage"),
        ("setStorageItem", {"key": "theme", "value": "dark", "storageType": "session"}, "setStorageItem",
         {"key": "theme", "value": "dark", "storageType": "session"}, "Set 'theme' in session storage"),
        ("deleteStorageItem", {"key": "theme"}, "deleteStorageItem",
         {"key": "theme", "storageType": "local"}, "Deleted 'theme' from local storage"),
        ("deleteHistoryUrl", {"url": "https://example.com/old"}, "deleteHistoryUrl",
         {"url": "https://example.com/old"}, "Deleted https://example.com/old from history"),
        ("searchHistory", {"text": "news"}, "searchHistory",
         {"text": "news", "maxResults": 100}, "null"),
        ("clearBrowsingData", {"dataTypes": ["cache", "cookies"]}, "clearBrowsingData",
         {"dataTypes": ["cache", "cookies"]}, "Cleared browsing data: cache, cookies"),
    ])
    async def test_tool_relays_action(self, table, mock_context, tool, arguments, action, payload, expected):
        result = await table.invoke(tool, arguments, mock_context)

        assert not result.isError, result.content[0].text
        assert result.content[0].text == expected
        mock_context.invoke_browser_action.assert_awaited_once_with(action, payload)

    @pytest.mark.asyncio
    async def test_scroll_passes_extension_text_through(self, table, mock_context):
        mock_context.invoke_browser_action.return_value = "Scrolled to bottom"

        result = await table.invoke("scroll", {"direction": "down"}, mock_context)

        assert result.content[0].text == "Scrolled to bottom"

    @pytest.mark.asyncio
    async def test_get_attribute_reports_missing_attribute(self, table, mock_context):
        result = await table.invoke("get_attribute", {"selector": "a", "attribute": "href"}, mock_context)

        assert result.content[0].text == 'Attribute "href" is not set on "a"'

    @pytest.mark.asyncio
    async def test_get_current_state(self, table, mock_context):
        mock_context.invoke_browser_action.return_value = {"url": "https://example.com/", "title": "Example"}

        result = await table.invoke("getCurrentState", {}, mock_context)

        assert result.content[0].text == "URL: https://example.com/\nTitle: Example"

    @pytest.mark.asyncio
    async def test_execute_script_returns_json(self, table, mock_context):
        mock_context.invoke_browser_action.return_value = {"answer": 42}

        result = await table.invoke("execute_script", {"script": "return {answer: 42}"}, mock_context)

        assert result.content[0].text == '{"answer": 42}'
        mock_context.invoke_browser_action.assert_awaited_once_with(
            "execute_script", {"script": "return {answer: 42}"}
        )

    @pytest.mark.asyncio
    async def test_get_all_tabs_pretty_prints(self, table, mock_context):
        mock_context.invoke_browser_action.return_value = [{"id": 1, "title": "Example"}]

        result = await table.invoke("getAllTabs", {}, mock_context)

        assert result.content[0].text == '[\n  {\n    "id": 1,\n    "title": "Example"\n  }\n]'

    @pytest.mark.asyncio
    async def test_wait_is_handled_by_server(self, table, mock_context):
        result = await table.invoke("wait", {"time": 250}, mock_context)

        assert result.content[0].text == "Waited 250ms"
        mock_context.wait.assert_awaited_once_with(250)
        mock_context.invoke_browser_action.assert_not_awaited()


class TestArgumentValidation:
    """Invalid arguments are rejected before reaching the browser."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("tool, arguments, fragment", [
        ("navigate", {"url": "not a url"}, "Invalid URL format"),
        ("navigate", {}, "url: Field required"),
        ("scroll", {}, "Either direction or selector must be provided"),
        ("scroll", {"direction": "sideways"}, "direction"),
        ("wait", {"time": -5}, "time"),
        ("closeTab", {"tabId": "abc"}, "tabId"),
        ("clearBrowsingData", {"dataTypes": ["everything"]}, "dataTypes"),
        ("setStorageItem", {"key": "k", "value": "v", "storageType": "disk"}, "storageType"),
    ])
    async def test_rejected(self, table, mock_context, tool, arguments, fragment):
        result = await table.invoke(tool, arguments, mock_context)

        assert result.isError
        text = result.content[0].text
        assert text.startswith(f"Invalid arguments for tool '{tool}': ")
        assert fragment in text
        mock_context.invoke_browser_action.assert_not_awaited()
        mock_context.wait.assert_not_awaited()


class TestScreenshot:
    """Screenshot decoding and image results."""

    def test_decode_bare_base64(self):
        assert decode_screenshot("iVBORw0KGgo=") == ("iVBORw0KGgo=", "image/png")

    def test_decode_data_url(self):
        assert decode_screenshot("data:image/jpeg;base64,/9j/4AAQ") == ("/9j/4AAQ", "image/jpeg")

    def test_decode_object(self):
        assert decode_screenshot({"data": "UklGRg==", "mimeType": "image/webp"}) == ("UklGRg==", "image/webp")
        assert decode_screenshot({"dataUrl": "data:image/png;base64,AAAA"}) == ("AAAA", "image/png")

    @pytest.mark.parametrize("reply", [None, "", {}, {"data": ""}, 42])
    def test_decode_rejects_empty(self, reply):
        with pytest.raises(ExtensionActionError, match="no screenshot data"):
            decode_screenshot(reply)

    @pytest.mark.asyncio
    async def test_screenshot_returns_image_block(self, table, mock_context):
        mock_context.invoke_browser_action.return_value = "data:image/png;base64,iVBORw0KGgo="

        result = await table.invoke("screenshot", {}, mock_context)

        assert not result.isError
        block = result.content[0]
        assert block.type == "image"
        assert block.data == "iVBORw0KGgo="
        assert block.mimeType == "image/png"

    @pytest.mark.asyncio
    async def test_screenshot_without_data_is_error(self, table, mock_context):
        result = await table.invoke("screenshot", {}, mock_context)

        assert result.isError
        assert "no screenshot data" in result.content[0].text


class TestSnapshots:
    """Page snapshots and actions that append them."""

    def test_format_snapshot(self):
        text = format_snapshot("https://example.com/", "Example", "- heading \"Example\"\n")

        assert text == (
            "- Page URL: https://example.com/\n"
            "- Page Title: Example\n"
            "- Page Snapshot\n"
            "```yaml\n"
            "- heading \"Example\"\n"
            "```\n"
        )

    def test_format_snapshot_dumps_structured_tree(self):
        text = format_snapshot("https://example.com/", "Example", [{"role": "button", "name": "Go"}])

        assert "- role: button\n  name: Go\n```" in text

    @pytest.mark.asyncio
    async def test_snapshot_tool(self, table, mock_context):
        page_actions(mock_context)

        result = await table.invoke("snapshot", {}, mock_context)

        assert not result.isError
        assert result.content[0].text.startswith("- Page URL: https://example.com/\n- Page Title: Example Domain\n")
        mock_context.invoke_browser_action.assert_awaited_once_with("snapshot")

    @pytest.mark.asyncio
    async def test_snapshot_when_disconnected(self, mock_context):
        mock_context.get_browser_state.return_value = BrowserState(connected=False)

        result = await capture_page_snapshot(mock_context)

        assert result.isError
        assert result.content[0].text.startswith("Browser extension is not connected")
        mock_context.invoke_browser_action.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_snapshot_reports_missing_pieces(self, mock_context):
        mock_context.get_browser_state.return_value = BrowserState(connected=True, url=None, title="Example")

        result = await capture_page_snapshot(mock_context)

        assert result.isError
        assert "missing URL, accessibility tree" in result.content[0].text

    @pytest.mark.asyncio
    async def test_snapshot_action_failure(self, mock_context):
        mock_context.invoke_browser_action.side_effect = ExtensionActionError("Tab crashed")

        result = await capture_page_snapshot(mock_context)

        assert result.isError
        assert result.content[0].text == "Error capturing page snapshot: Tab crashed"

    @pytest.mark.asyncio
    async def test_click_appends_snapshot(self, snapshot_table, mock_context):
        page_actions(mock_context)

        result = await snapshot_table.invoke("click", {"selector": "#go"}, mock_context)

        assert [block.type for block in result.content] == ["text", "text"]
        assert result.content[0].text == 'Clicked "#go"'
        assert "- Page Snapshot" in result.content[1].text
        assert "- button \"Go\"" in result.content[1].text

    @pytest.mark.asyncio
    async def test_wait_appends_snapshot(self, snapshot_table, mock_context):
        page_actions(mock_context)

        result = await snapshot_table.invoke("wait", {"time": 0}, mock_context)

        assert result.content[0].text == "Waited 0ms"
        assert "- Page Snapshot" in result.content[1].text
