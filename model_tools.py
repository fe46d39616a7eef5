#!/usr/bin/env python3
"""
Model Tools Module

Builds the tool definitions sent to the conversation model and routes the
model's function calls to the registered handlers. Importing this module
imports every tool module so their registry entries exist.

Usage:
    from model_tools import get_tool_definitions, handle_function_call

    # All available tool definitions for the model API
    tools = get_tool_definitions()

    # Only session + page tools
    tools = get_tool_definitions(enabled_toolsets=["session", "browser"])

    # Execute a function call from the model
    result = await handle_function_call("navigateTo", '{"url": "https://example.com", ...}')
"""

import json
import logging
from typing import Any, Dict, List, Optional, Union

# Importing the tool modules registers their tools
import tools.browser_tool  # noqa: F401
from tools.browser_tool import BrowserToolDispatcher, ToolResult
from tools.registry import registry
from toolsets import get_all_toolsets, get_toolset_info, resolve_toolset, validate_toolset

logger = logging.getLogger(__name__)


def get_tool_definitions(
    enabled_toolsets: List[str] = None,
    disabled_toolsets: List[str] = None,
    available_only: bool = True,
) -> List[Dict[str, Any]]:
    """
    Get tool definitions for model API calls with toolset-based filtering.

    Args:
        enabled_toolsets (List[str]): Only include tools from these toolsets.
                                     If None, all toolsets are included.
        disabled_toolsets (List[str]): Exclude tools from these toolsets.
                                      Applied only if enabled_toolsets is None.
        available_only (bool): Drop tools whose requirements (credentials) are missing.

    Returns:
        List[Dict]: OpenAI function-tool definitions sorted by name
    """
    tools_to_include = set()

    if enabled_toolsets:
        for toolset_name in enabled_toolsets:
            if validate_toolset(toolset_name):
                tools_to_include.update(resolve_toolset(toolset_name))
            else:
                logger.warning("Unknown toolset: %s", toolset_name)
    else:
        for toolset_name in get_all_toolsets():
            tools_to_include.update(resolve_toolset(toolset_name))
        for toolset_name in disabled_toolsets or []:
            if validate_toolset(toolset_name):
                tools_to_include.difference_update(resolve_toolset(toolset_name))
            else:
                logger.warning("Unknown toolset: %s", toolset_name)

    definitions = registry.get_definitions(sorted(tools_to_include), available_only=available_only)

    if definitions:
        logger.info("Tool selection (%s tools): %s", len(definitions),
                    ", ".join(d["function"]["name"] for d in definitions))
    else:
        logger.warning("No tools selected (all filtered out or unavailable)")
    return definitions


def is_client_side_tool(tool_name: str) -> bool:
    """True for tools the user answers (no server-side handler)."""
    return registry.is_client_side(tool_name)


def parse_function_args(function_args: Union[str, Dict[str, Any], None]) -> Dict[str, Any]:
    """Decode model-provided arguments; raises ValueError on malformed JSON."""
    if function_args is None or function_args == "":
        return {}
    if isinstance(function_args, dict):
        return function_args
    try:
        parsed = json.loads(function_args)
    except json.JSONDecodeError as e:
        raise ValueError(f"arguments are not valid JSON: {e}") from e
    if not isinstance(parsed, dict):
        raise ValueError("arguments must be a JSON object")
    return parsed


async def handle_function_call(
    function_name: str,
    function_args: Union[str, Dict[str, Any], None],
    dispatcher: Optional[BrowserToolDispatcher] = None,
) -> Dict[str, Any]:
    """
    Execute one model function call and return its ToolResult as a dict.

    Never raises: unknown tools, client-side tools, malformed arguments and
    handler failures all come back as ``dataCollected: False`` results.
    """
    if registry.get_entry(function_name) is None:
        logger.error("Model requested unknown tool %s", function_name)
        return ToolResult(function_name, f"Error: unknown tool '{function_name}'", False).to_dict()

    if is_client_side_tool(function_name):
        return ToolResult(
            function_name,
            f"Error: {function_name} is answered by the user and cannot be executed by the server",
            False,
        ).to_dict()

    try:
        args = parse_function_args(function_args)
    except ValueError as e:
        logger.error("Bad arguments for %s: %s", function_name, e)
        return ToolResult(function_name, f"Error: {e}", False).to_dict()

    kwargs = {"dispatcher": dispatcher} if dispatcher is not None else {}
    try:
        result = await registry.dispatch(function_name, args, **kwargs)
    except Exception as e:
        logger.exception("Error executing %s", function_name)
        return ToolResult(function_name, f"Error executing {function_name}: {e}", False).to_dict()

    return result.to_dict() if isinstance(result, ToolResult) else result


def get_available_toolsets() -> Dict[str, Dict[str, Any]]:
    """Availability and requirements of every toolset."""
    available = {}
    for name in get_all_toolsets():
        info = get_toolset_info(name)
        entries = [registry.get_entry(tool_name) for tool_name in info["resolved_tools"]]
        entries = [entry for entry in entries if entry is not None]
        available[name] = {
            "available": all(entry.is_available() for entry in entries),
            "tools": info["resolved_tools"],
            "includes": info["includes"],
            "description": info["description"],
            "requirements": sorted({env for entry in entries for env in entry.requires_env}),
        }
    return available
