"""
Browser tool catalogue.

``build_tool_table`` assembles every tool category into one frozen
ToolDispatchTable shared by all MCP sessions.
"""

import logging

from . import history, interaction, navigation, page_content, snapshot, storage, tabs, utility
from .base import (
    ToolDescriptor,
    ToolDispatchTable,
    error_result,
    image_result,
    snapshot_result,
    text_result,
)

logger = logging.getLogger(__name__)

TOOL_MODULES = [
    navigation,
    interaction,
    page_content,
    tabs,
    storage,
    history,
    utility,
    snapshot,
]


def build_tool_table(snapshot_after_actions: bool = True) -> ToolDispatchTable:
    """
    Build the full browser tool table.

    Args:
        snapshot_after_actions: Append a page snapshot to navigate, click,
            hover, type and wait results

    Returns:
        A frozen ToolDispatchTable
    """
    table = ToolDispatchTable()
    for module in TOOL_MODULES:
        module.register(table, snapshot_after_actions)
    table.freeze()

    logger.info(f"Registered {len(table)} browser tools")
    return table


__all__ = [
    "ToolDescriptor",
    "ToolDispatchTable",
    "build_tool_table",
    "error_result",
    "image_result",
    "snapshot_result",
    "text_result",
]
