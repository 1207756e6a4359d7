"""
Argument models for the browser tools.

Field names are snake_case in Python and camelCase on the wire, matching
what the browser extension expects in action payloads.
"""

from typing import Annotated, Any, Dict, List, Literal, Optional
from urllib.parse import urlparse

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


def validate_url(value: str) -> str:
    parsed = urlparse(value)
    if not parsed.scheme or not (parsed.netloc or parsed.path):
        raise ValueError("Invalid URL format")
    return value


Url = Annotated[str, AfterValidator(validate_url)]


class ToolArguments(BaseModel):
    """Base for tool argument models."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_payload(self) -> Dict[str, Any]:
        """Action payload in the extension's camelCase shape."""
        return self.model_dump(by_alias=True, exclude_none=True)


class NoArguments(ToolArguments):
    pass


# Navigation

class NavigateArguments(ToolArguments):
    url: Url = Field(..., description="URL to navigate to")


# Interaction

class SelectorArguments(ToolArguments):
    selector: str = Field(..., description="CSS selector of the target element")


class TypeArguments(ToolArguments):
    selector: str = Field(..., description="CSS selector of the input element")
    text: str = Field(..., description="Text to type")


class ScrollArguments(ToolArguments):
    direction: Optional[Literal["up", "down", "left", "right"]] = Field(None, description="Direction to scroll")
    selector: Optional[str] = Field(None, description="CSS selector of an element to scroll into view")
    amount: Optional[float] = Field(None, description="Pixels to scroll for directional scrolling")

    @model_validator(mode="after")
    def require_target(self) -> "ScrollArguments":
        if not self.direction and not self.selector:
            raise ValueError("Either direction or selector must be provided")
        return self


# Page content

class GetContentArguments(ToolArguments):
    selector: Optional[str] = Field(None, description="CSS selector; omit for the whole page")


class GetAttributeArguments(ToolArguments):
    selector: str = Field(..., description="CSS selector of the element")
    attribute: str = Field(..., description="Attribute name to read")


class ExecuteScriptArguments(ToolArguments):
    script: str = Field(..., description="JavaScript source to run in the page")


# Tabs and windows

class CreateTabArguments(ToolArguments):
    url: Optional[Url] = Field(None, description="URL to open in the new tab")
    active: bool = Field(True, description="Whether the new tab becomes active")


class TabIdArguments(ToolArguments):
    tab_id: int = Field(..., description="Browser tab ID")


class CreateWindowArguments(ToolArguments):
    url: Optional[Url] = Field(None, description="URL to open in the new window")
    focused: bool = Field(True, description="Whether the new window is focused")
    window_type: Optional[Literal["normal", "popup", "panel"]] = Field(
        None, alias="type", description="Window type"
    )


class WindowIdArguments(ToolArguments):
    window_id: int = Field(..., description="Browser window ID")


# Cookies and storage

class GetCookiesArguments(ToolArguments):
    url: Optional[Url] = Field(None, description="Only cookies visible to this URL")
    name: Optional[str] = Field(None, description="Cookie name filter")
    domain: Optional[str] = Field(None, description="Cookie domain filter")
    path: Optional[str] = Field(None, description="Cookie path filter")


class SetCookieArguments(ToolArguments):
    url: Url = Field(..., description="URL the cookie is associated with")
    name: str = Field(..., description="Cookie name")
    value: str = Field(..., description="Cookie value")
    domain: Optional[str] = Field(None, description="Cookie domain")
    path: Optional[str] = Field(None, description="Cookie path")
    secure: Optional[bool] = Field(None, description="Secure flag")
    http_only: Optional[bool] = Field(None, description="HttpOnly flag")
    expiration_date: Optional[float] = Field(None, description="Expiry as Unix time in seconds")


class DeleteCookieArguments(ToolArguments):
    url: Url = Field(..., description="URL the cookie is associated with")
    name: str = Field(..., description="Cookie name")


StorageType = Literal["local", "session"]


class StorageKeyArguments(ToolArguments):
    key: str = Field(..., description="Storage key")
    storage_type: StorageType = Field("local", description="Which Web Storage area to use")


class SetStorageItemArguments(ToolArguments):
    key: str = Field(..., description="Storage key")
    value: str = Field(..., description="Value to store")
    storage_type: StorageType = Field("local", description="Which Web Storage area to use")


# History and bookmarks

class SearchHistoryArguments(ToolArguments):
    text: str = Field(..., description="Text to search for; empty matches everything")
    start_time: Optional[float] = Field(None, description="Earliest visit as Unix time in milliseconds")
    end_time: Optional[float] = Field(None, description="Latest visit as Unix time in milliseconds")
    max_results: int = Field(100, description="Maximum number of results")


class UrlArguments(ToolArguments):
    url: Url = Field(..., description="URL to remove from history")


class CreateBookmarkArguments(ToolArguments):
    title: Optional[str] = Field(None, description="Bookmark title")
    url: Url = Field(..., description="Bookmarked URL")
    parent_id: Optional[str] = Field(None, description="ID of the parent bookmark folder")


class SearchBookmarksArguments(ToolArguments):
    query: str = Field(..., description="Text matched against bookmark titles and URLs")


# Utility

class WaitArguments(ToolArguments):
    time: float = Field(..., ge=0, description="Milliseconds to wait")


BrowsingDataType = Literal[
    "appcache", "cache", "cookies", "downloads", "fileSystems",
    "formData", "history", "indexedDB", "localStorage",
    "pluginData", "passwords", "serviceWorkers", "webSQL"
]


class ClearBrowsingDataArguments(ToolArguments):
    data_types: List[BrowsingDataType] = Field(..., description="Kinds of browsing data to remove")
    since: Optional[float] = Field(None, description="Only data created after this Unix time in milliseconds")
