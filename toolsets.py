#!/usr/bin/env python3
"""
Toolsets Module

Groups the browser tools so callers can enable or disable them by scenario.
Toolsets can list tools directly or include other toolsets.

Usage:
    from toolsets import get_toolset, resolve_toolset, get_all_toolsets

    # Tools for page interaction only
    tools = resolve_toolset("browser")

    # Everything the chat agent exposes
    all_tools = resolve_toolset("browserchat")
"""

import logging
from typing import List, Dict, Any, Set, Optional

logger = logging.getLogger(__name__)


# Core toolset definitions
# These can include individual tools or reference other toolsets
TOOLSETS = {
    "session": {
        "description": "Create and close remote Browserbase sessions",
        "tools": ["createSession", "createSessionAdvanced", "closeStagehand"],
        "includes": []
    },

    "browser": {
        "description": "Navigate and interact with pages through Stagehand",
        "tools": ["navigateTo", "stagehandAct", "stagehandExtract"],
        "includes": []
    },

    "search": {
        "description": "Web search and page content, summarized by an LLM",
        "tools": ["googleSearch", "getPageContent"],
        "includes": []
    },

    "confirmation": {
        "description": "Ask the user to confirm before continuing (answered client-side)",
        "tools": ["askForConfirmation"],
        "includes": []
    },

    # Scenario toolsets
    "browserchat": {
        "description": "Every tool the browser chat agent exposes",
        "tools": [],
        "includes": ["session", "browser", "search", "confirmation"]
    },

    "readonly": {
        "description": "Read pages without acting on them",
        "tools": ["navigateTo", "stagehandExtract"],
        "includes": ["session", "search"]
    },
}


def get_toolset(name: str) -> Optional[Dict[str, Any]]:
    """Return the toolset definition, or None if it does not exist."""
    return TOOLSETS.get(name)


def resolve_toolset(name: str, visited: Set[str] = None) -> List[str]:
    """
    Recursively resolve a toolset to get all tool names.

    Args:
        name (str): Name of the toolset to resolve ("all" or "*" for every tool)
        visited (Set[str]): Toolsets already on the current path (cycle detection)

    Returns:
        List[str]: Sorted tool names in the toolset
    """
    if visited is None:
        visited = set()

    if name in {"all", "*"}:
        all_tools: Set[str] = set()
        for toolset_name in get_toolset_names():
            all_tools.update(resolve_toolset(toolset_name, visited.copy()))
        return sorted(all_tools)

    if name in visited:
        logger.warning("Circular dependency detected in toolset '%s'", name)
        return []

    visited.add(name)

    toolset = TOOLSETS.get(name)
    if not toolset:
        return []

    tools = set(toolset.get("tools", []))
    for included_name in toolset.get("includes", []):
        tools.update(resolve_toolset(included_name, visited.copy()))

    return sorted(tools)


def get_all_toolsets() -> Dict[str, Dict[str, Any]]:
    return TOOLSETS.copy()


def get_toolset_names() -> List[str]:
    return list(TOOLSETS.keys())


def validate_toolset(name: str) -> bool:
    """Check if a toolset name is valid (the "all"/"*" aliases included)."""
    if name in {"all", "*"}:
        return True
    return name in TOOLSETS


def get_toolset_info(name: str) -> Dict[str, Any]:
    """
    Get detailed information about a toolset including resolved tools.

    Returns:
        Dict: name, description, direct_tools, includes, resolved_tools,
              tool_count and is_composite; empty dict for unknown toolsets
    """
    toolset = get_toolset(name)
    if not toolset:
        return {}

    resolved_tools = resolve_toolset(name)
    return {
        "name": name,
        "description": toolset["description"],
        "direct_tools": toolset["tools"],
        "includes": toolset["includes"],
        "resolved_tools": resolved_tools,
        "tool_count": len(resolved_tools),
        "is_composite": len(toolset["includes"]) > 0,
    }
