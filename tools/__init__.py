#!/usr/bin/env python3
"""
Tools Package

Browser tools for the browserchat agent. Each module covers one concern:

- errors: typed failure taxonomy shared by every tool
- browser_handle: Stagehand adapter, error classification, soft waits
- session_pool: process-wide cache of live handles keyed by session id
- browserbase_client: Browserbase session provisioning over REST
- web_tools: readable-text extraction, search result formatting, summarizer
- browser_tool: the tool dispatcher and its registry entries

The tools are imported into model_tools.py which provides a unified interface
for the conversation driver.
"""

# Export all tools for easy importing
from .errors import (
    BrowserToolError,
    ToolValidationError,
    ProvisioningError,
    TransientPageError,
    SessionFatalError,
    UnclassifiedError,
)

from .session_pool import (
    SessionPool,
    get_session_pool,
)

from .browser_tool import (
    BrowserToolDispatcher,
    BrowserToolSettings,
    ToolResult,
    BROWSER_TOOL_SCHEMAS,
    check_browser_requirements,
)

__all__ = [
    # Errors
    'BrowserToolError',
    'ToolValidationError',
    'ProvisioningError',
    'TransientPageError',
    'SessionFatalError',
    'UnclassifiedError',
    # Session pool
    'SessionPool',
    'get_session_pool',
    # Dispatcher
    'BrowserToolDispatcher',
    'BrowserToolSettings',
    'ToolResult',
    'BROWSER_TOOL_SCHEMAS',
    'check_browser_requirements',
]
