#!/usr/bin/env python3
"""
Browser Tool Module

The eight tools the conversation model uses to drive remote Browserbase
sessions through Stagehand:

- createSession / createSessionAdvanced: provision a session, return its id
  and live-view URL
- closeStagehand: shut down the pooled handle for a session
- navigateTo, stagehandAct, stagehandExtract: page operations on a session
- googleSearch, getPageContent: collect text from a page and summarize it
- askForConfirmation: answered by the user, never executed here

Every tool returns a ToolResult ``{toolName, content, dataCollected}``; no
exception escapes a tool call. Failures are classified by type (see
``tools.errors``): a dead session is evicted from the pool so the next call
re-provisions it, and an execution context torn down by a navigation is
retried exactly once after the page settles.

Environment Variables:
- BROWSERBASE_API_KEY: API key for Browserbase (required)
- BROWSERBASE_PROJECT_ID: Project ID for Browserbase (required)
- OPENAI_API_KEY: model key Stagehand uses for act/extract (required)
- OPENROUTER_API_KEY: summarizer key for googleSearch/getPageContent

Usage:
    from tools.browser_tool import BrowserToolDispatcher

    dispatcher = BrowserToolDispatcher.from_config(config)
    result = await dispatcher.execute("navigateTo", {"url": "https://example.com", "sessionId": sid})
"""

import asyncio
import json
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional, Type, TypeVar
from urllib.parse import quote, urlparse

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from agent.redact import redact_sensitive_text
from browserchat_constants import BROWSERBASE_REGIONS, DUCKDUCKGO_HTML_URL
from tools.browser_handle import BrowserHandle, PageFault, as_tool_error, classify_error
from tools.browserbase_client import BrowserbaseClient, SessionCreateOptions
from tools.errors import ToolValidationError
from tools.openrouter_client import check_api_key
from tools.session_pool import SessionPool, get_session_pool
from tools.web_tools import (
    SEARCH_RESULTS_JS,
    PageSummarizer,
    extract_readable_text,
    format_search_results,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")
ArgsModel = TypeVar("ArgsModel", bound=BaseModel)

# ============================================================================
# Configuration
# ============================================================================

@dataclass
class BrowserToolSettings:
    """Timeouts (milliseconds unless noted) used by the page operations."""
    action_timeout_ms: int = 15000
    navigation_timeout_ms: int = 45000
    load_retry_timeout_ms: int = 10000
    domcontentloaded_timeout_ms: int = 10000
    networkidle_timeout_ms: int = 7500
    search_results_timeout_ms: int = 15000
    session_timeout: int = 900  # seconds, for createSession

    @classmethod
    def from_config(cls, config: dict) -> "BrowserToolSettings":
        browser_cfg = config.get("browser", {})
        defaults = cls()
        return cls(**{
            name: int(browser_cfg.get(name, getattr(defaults, name)))
            for name in defaults.__dataclass_fields__
        })


# ============================================================================
# Result envelope
# ============================================================================

@dataclass
class ToolResult:
    """Uniform envelope returned by every tool, success or failure."""
    tool_name: str
    content: str
    data_collected: bool
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "toolName": self.tool_name,
            "content": self.content,
            "dataCollected": self.data_collected,
            **self.extra,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)


# ============================================================================
# Argument models
# ============================================================================

def _require_absolute_url(value: str) -> str:
    value = value.strip()
    parsed = urlparse(value)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValueError("must be an absolute http(s) URL including the scheme, e.g. https://example.com")
    return value


class _ToolArgs(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class SessionArgs(_ToolArgs):
    session_id: str = Field(alias="sessionId", min_length=1)


class PageToolArgs(SessionArgs):
    # Display label chosen by the model and the live-view URL it was given;
    # both are informational only.
    tool_name: Optional[str] = Field(default=None, alias="toolName")
    debugger_fullscreen_url: Optional[str] = Field(default=None, alias="debuggerFullscreenUrl")


class NavigateArgs(PageToolArgs):
    url: str

    @field_validator("url")
    @classmethod
    def check_absolute_url(cls, value: str) -> str:
        return _require_absolute_url(value)


class PageContentArgs(NavigateArgs):
    pass


class InstructionArgs(PageToolArgs):
    instruction: str = Field(min_length=1)


class SearchArgs(PageToolArgs):
    query: str = Field(min_length=1)


class CreateSessionAdvancedArgs(SessionCreateOptions):
    tool_name: Optional[str] = Field(default=None, alias="toolName")


class ExtractedText(BaseModel):
    """Minimal extraction schema: a single text field."""
    text: str


def _validate(model: Type[ArgsModel], args: Any, tool_name: str) -> ArgsModel:
    try:
        return model.model_validate(args if args is not None else {})
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in err['loc']) or 'arguments'}: {err['msg']}"
            for err in e.errors()
        )
        raise ToolValidationError(f"Invalid arguments for {tool_name}: {problems}", cause=e) from e


# ============================================================================
# Tool Schemas
# ============================================================================

_TOOL_NAME_PROPERTY = {"type": "string", "description": "What the tool is doing"}

BROWSER_TOOL_SCHEMAS = [
    {
        "name": "createSession",
        "description": "Create a new session",
        "parameters": {"type": "object", "properties": {}, "required": []},
    },
    {
        "name": "createSessionAdvanced",
        "description": "Create a new Browserbase session with advanced options (timeout, keepAlive, region, viewport, proxies, etc.)",
        "parameters": {
            "type": "object",
            "properties": {
                "toolName": _TOOL_NAME_PROPERTY,
                "timeout": {"type": "number", "minimum": 60, "maximum": 21600, "description": "Session timeout in seconds"},
                "keepAlive": {"type": "boolean", "description": "Keep session alive after disconnection (plan-dependent)"},
                "region": {"type": "string", "enum": list(BROWSERBASE_REGIONS)},
                "proxies": {"type": "boolean"},
                "viewport": {
                    "type": "object",
                    "properties": {"width": {"type": "number"}, "height": {"type": "number"}},
                },
                "blockAds": {"type": "boolean"},
                "solveCaptchas": {"type": "boolean"},
                "recordSession": {"type": "boolean"},
                "userMetadata": {"type": "object", "additionalProperties": True},
            },
            "required": ["toolName"],
        },
    },
    {
        "name": "closeStagehand",
        "description": "Close and cleanup the Stagehand instance for a given session. Use this when you are done interacting with the session.",
        "parameters": {
            "type": "object",
            "properties": {"sessionId": {"type": "string", "description": "Existing Browserbase session ID"}},
            "required": ["sessionId"],
        },
    },
    {
        "name": "stagehandAct",
        "description": "Use Stagehand to take a natural-language action on the current page. Prefer this for robust interactions (click, type, press).",
        "parameters": {
            "type": "object",
            "properties": {
                "toolName": _TOOL_NAME_PROPERTY,
                "instruction": {"type": "string", "description": "The action to perform, e.g., \"click \\\"Sign in\\\"\""},
                "sessionId": {"type": "string", "description": "Existing Browserbase session ID. If none, create one first."},
                "debuggerFullscreenUrl": {"type": "string", "description": "Optional debugger URL (not required)."},
            },
            "required": ["toolName", "instruction", "sessionId"],
        },
    },
    {
        "name": "stagehandExtract",
        "description": "Use Stagehand to extract structured data from the current page as plain text.",
        "parameters": {
            "type": "object",
            "properties": {
                "toolName": _TOOL_NAME_PROPERTY,
                "instruction": {"type": "string", "description": "What to extract, e.g., \"extract the main headline\""},
                "sessionId": {"type": "string", "description": "Existing Browserbase session ID. If none, create one first."},
                "debuggerFullscreenUrl": {"type": "string", "description": "Optional debugger URL (not required)."},
            },
            "required": ["toolName", "instruction", "sessionId"],
        },
    },
    {
        "name": "navigateTo",
        "description": "Directly navigate to a specific URL in the existing browser session. Prefer this when the user requests to open a known site (e.g., \"go to bestbuy.com\").",
        "parameters": {
            "type": "object",
            "properties": {
                "toolName": _TOOL_NAME_PROPERTY,
                "url": {"type": "string", "description": "The full URL to navigate to (e.g., https://www.bestbuy.com). Include scheme."},
                "sessionId": {"type": "string", "description": "The session ID to use. If none exists, create one with createSession Tool."},
                "debuggerFullscreenUrl": {"type": "string", "description": "The fullscreen debug URL for the session."},
            },
            "required": ["toolName", "url", "sessionId", "debuggerFullscreenUrl"],
        },
    },
    {
        "name": "askForConfirmation",
        "description": "Ask the user for confirmation.",
        "parameters": {
            "type": "object",
            "properties": {"message": {"type": "string", "description": "The message to ask for confirmation."}},
            "required": ["message"],
        },
    },
    {
        "name": "googleSearch",
        "description": "Search the web for a query using DuckDuckGo (preferred to reduce captchas). Use this when the user requests to \"search\" or find information, not when they ask to open a specific site.",
        "parameters": {
            "type": "object",
            "properties": {
                "toolName": _TOOL_NAME_PROPERTY,
                "query": {"type": "string", "description": "The exact and complete search query as provided by the user. Do not modify this in any way."},
                "sessionId": {"type": "string", "description": "The session ID to use for the search. If there is no session ID, create a new session with createSession Tool."},
                "debuggerFullscreenUrl": {"type": "string", "description": "The fullscreen debug URL to use for the search. If there is no debug URL, create a new session with createSession Tool."},
            },
            "required": ["toolName", "query", "sessionId", "debuggerFullscreenUrl"],
        },
    },
    {
        "name": "getPageContent",
        "description": "Get the content of a page using Playwright",
        "parameters": {
            "type": "object",
            "properties": {
                "toolName": _TOOL_NAME_PROPERTY,
                "url": {"type": "string", "description": "The url to get the content of"},
                "sessionId": {"type": "string", "description": "The session ID to use for the search. If there is no session ID, create a new session with createSession Tool."},
                "debuggerFullscreenUrl": {"type": "string", "description": "The fullscreen debug URL to use for the search. If there is no debug URL, create a new session with createSession Tool."},
            },
            "required": ["toolName", "url", "sessionId", "debuggerFullscreenUrl"],
        },
    },
]


# ============================================================================
# Dispatcher
# ============================================================================

def _extracted_text(data: Any) -> str:
    """Pick ``text``, then ``extraction``, then the JSON form of the whole result."""
    if isinstance(data, BaseModel):
        data = data.model_dump()
    if isinstance(data, dict):
        for key in ("text", "extraction"):
            if data.get(key) is not None:
                return str(data[key])
    return json.dumps(data, ensure_ascii=False, default=str)


class BrowserToolDispatcher:
    """Executes the browser tools against a SessionPool.

    Collaborators are injected so tests can substitute fakes for the pool,
    the Browserbase client and the summarizer.
    """

    def __init__(
        self,
        pool: SessionPool,
        browserbase: BrowserbaseClient,
        summarizer: Callable[[str], Awaitable[str]],
        settings: Optional[BrowserToolSettings] = None,
    ):
        self.pool = pool
        self.browserbase = browserbase
        self.summarizer = summarizer
        self.settings = settings or BrowserToolSettings()
        self._tools: Dict[str, Callable[[Any], Awaitable[ToolResult]]] = {
            "createSession": self.create_session,
            "createSessionAdvanced": self.create_session_advanced,
            "closeStagehand": self.close_stagehand,
            "navigateTo": self.navigate_to,
            "stagehandAct": self.stagehand_act,
            "stagehandExtract": self.stagehand_extract,
            "googleSearch": self.google_search,
            "getPageContent": self.get_page_content,
        }

    @classmethod
    def from_config(cls, config: dict, pool: Optional[SessionPool] = None) -> "BrowserToolDispatcher":
        browser_cfg = config.get("browser", {})
        return cls(
            pool=pool if pool is not None else get_session_pool(config),
            browserbase=BrowserbaseClient(
                api_key=os.getenv("BROWSERBASE_API_KEY"),
                project_id=os.getenv("BROWSERBASE_PROJECT_ID"),
                timeout=browser_cfg.get("request_timeout", 30),
            ),
            summarizer=PageSummarizer.from_config(config),
            settings=BrowserToolSettings.from_config(config),
        )

    @property
    def tool_names(self):
        return list(self._tools)

    async def execute(self, name: str, args: Any) -> ToolResult:
        """Run tool ``name``; unknown names yield a failed result."""
        tool = self._tools.get(name)
        if tool is None:
            return ToolResult(name, f"Error: unknown browser tool '{name}'", False)
        return await tool(args)

    # ------------------------------------------------------------------
    # Shared helpers
    # ------------------------------------------------------------------

    async def _guarded(
        self,
        tool_name: str,
        error_prefix: str,
        args: Any,
        operation: Callable[[], Awaitable[ToolResult]],
    ) -> ToolResult:
        """Run ``operation`` as the failure boundary of one tool call."""
        try:
            return await operation()
        except Exception as e:
            error = as_tool_error(e)
            session_id = args.get("sessionId") if isinstance(args, dict) else None
            logger.error("%s failed (session %s): %s: %s",
                         tool_name, session_id or "-", type(error).__name__, error.message)
            if error.evicts_session and session_id:
                self._evict_dead_session(session_id)
            return ToolResult(tool_name, redact_sensitive_text(f"{error_prefix}: {error.message}"), False)

    def _evict_dead_session(self, session_id: str) -> None:
        try:
            evicted = self.pool.evict(session_id)
        except Exception as e:
            logger.warning("Could not evict session %s: %s", session_id, e)
            return
        if evicted:
            logger.warning("Session %s is no longer usable; evicted it from the pool", session_id)

    async def _with_context_retry(
        self,
        handle: BrowserHandle,
        operation: Callable[[], Awaitable[T]],
        description: str,
    ) -> T:
        """Run ``operation``, retrying once if a navigation destroyed its execution context."""
        try:
            return await operation()
        except Exception as e:
            if classify_error(e) is not PageFault.TRANSIENT:
                raise
            logger.info("Execution context destroyed during %s on session %s; retrying once",
                        description, handle.session_id)
        outcome = await handle.wait_for_load_state("load", self.settings.load_retry_timeout_ms)
        logger.debug("Load wait before retry on session %s: %s", handle.session_id, outcome.value)
        return await operation()

    async def _settle(self, handle: BrowserHandle) -> None:
        """Best-effort readiness waits after a navigation; outcomes are informational."""
        await handle.wait_for_load_state("domcontentloaded", self.settings.domcontentloaded_timeout_ms)
        await handle.wait_for_load_state("networkidle", self.settings.networkidle_timeout_ms)

    async def _prepare_page(self, session_id: str) -> BrowserHandle:
        handle = await self.pool.resolve(session_id)
        handle.set_timeouts(self.settings.action_timeout_ms, self.settings.navigation_timeout_ms)
        return handle

    # ------------------------------------------------------------------
    # Session tools
    # ------------------------------------------------------------------

    async def _session_result(self, tool_name: str, create: Callable[..., Dict[str, Any]], *create_args) -> ToolResult:
        session = await asyncio.to_thread(create, *create_args)
        session_id = session["id"]
        debug_url = await asyncio.to_thread(self.browserbase.get_debug_url, session_id)
        return ToolResult(
            tool_name,
            f"Created session {session_id}",
            True,
            extra={"sessionId": session_id, "debugUrl": debug_url},
        )

    async def create_session(self, args: Any = None) -> ToolResult:
        tool_name = "Creating a new session"

        async def operation() -> ToolResult:
            return await self._session_result(
                tool_name, self.browserbase.create_default_session, self.settings.session_timeout)

        return await self._guarded(tool_name, "Error creating session", args, operation)

    async def create_session_advanced(self, args: Any) -> ToolResult:
        tool_name = "Creating a new session (advanced)"

        async def operation() -> ToolResult:
            params = _validate(CreateSessionAdvancedArgs, args, "createSessionAdvanced")
            return await self._session_result(tool_name, self.browserbase.create_session, params)

        return await self._guarded(tool_name, "Error creating session", args, operation)

    async def close_stagehand(self, args: Any) -> ToolResult:
        tool_name = "Close Stagehand"

        async def operation() -> ToolResult:
            params = _validate(SessionArgs, args, "closeStagehand")
            if not await self.pool.close(params.session_id):
                return ToolResult(tool_name, "No Stagehand instance found for this session.", False)
            return ToolResult(tool_name, "Stagehand closed.", True)

        return await self._guarded(tool_name, "Error closing Stagehand", args, operation)

    # ------------------------------------------------------------------
    # Page tools
    # ------------------------------------------------------------------

    async def navigate_to(self, args: Any) -> ToolResult:
        tool_name = "Navigating to URL"
        url = args.get("url", "") if isinstance(args, dict) else ""

        async def operation() -> ToolResult:
            params = _validate(NavigateArgs, args, "navigateTo")
            handle = await self.pool.resolve(params.session_id)
            await handle.goto(params.url, wait_until="load")
            await self._settle(handle)
            title = await handle.title()
            return ToolResult(tool_name, f"Navigated to {params.url}. Page title: {title}", True)

        return await self._guarded(tool_name, f"Error navigating to {url}", args, operation)

    async def stagehand_act(self, args: Any) -> ToolResult:
        tool_name = "Stagehand act"

        async def operation() -> ToolResult:
            params = _validate(InstructionArgs, args, "stagehandAct")
            handle = await self._prepare_page(params.session_id)
            message = await self._with_context_retry(
                handle, lambda: handle.act(params.instruction), "act")
            return ToolResult(tool_name, message or "Action executed", True)

        return await self._guarded(tool_name, "Error performing action", args, operation)

    async def stagehand_extract(self, args: Any) -> ToolResult:
        tool_name = "Stagehand extract"

        async def operation() -> ToolResult:
            params = _validate(InstructionArgs, args, "stagehandExtract")
            handle = await self._prepare_page(params.session_id)
            data = await self._with_context_retry(
                handle, lambda: handle.extract(params.instruction, ExtractedText), "extract")
            return ToolResult(tool_name, _extracted_text(data), True)

        return await self._guarded(tool_name, "Error extracting content", args, operation)

    async def google_search(self, args: Any) -> ToolResult:
        tool_name = "Searching the web"

        async def operation() -> ToolResult:
            params = _validate(SearchArgs, args, "googleSearch")
            handle = await self.pool.resolve(params.session_id)
            await handle.goto(f"{DUCKDUCKGO_HTML_URL}?q={quote(params.query, safe='')}", wait_until="load")
            await self._settle(handle)
            # Critical wait: no results within the bound fails the call
            await handle.wait_for_selector("div.result", self.settings.search_results_timeout_ms)
            results = await handle.evaluate(SEARCH_RESULTS_JS)
            text = format_search_results(results)
            logger.debug("Collected %s search results for %r", len(results or []), params.query)
            summary = await self.summarizer(text)
            return ToolResult(tool_name, summary, True)

        return await self._guarded(tool_name, "Error performing web search", args, operation)

    async def get_page_content(self, args: Any) -> ToolResult:
        tool_name = "Getting page content"

        async def operation() -> ToolResult:
            params = _validate(PageContentArgs, args, "getPageContent")
            handle = await self.pool.resolve(params.session_id)
            await handle.goto(params.url, wait_until="load")
            await self._settle(handle)
            html = await handle.content()
            text = await asyncio.to_thread(extract_readable_text, html)
            summary = await self.summarizer(text)
            return ToolResult(tool_name, summary, True)

        return await self._guarded(tool_name, "Error fetching page content", args, operation)


# ============================================================================
# Requirements Check
# ============================================================================

def check_browser_requirements() -> bool:
    """True when Browserbase credentials are configured."""
    return bool(os.getenv("BROWSERBASE_API_KEY") and os.getenv("BROWSERBASE_PROJECT_ID"))


def check_stagehand_requirements() -> bool:
    """Act/extract additionally need the Stagehand model key."""
    return check_browser_requirements() and bool(os.getenv("OPENAI_API_KEY"))


def check_summary_requirements() -> bool:
    """Search and page content additionally need the summarizer key."""
    return check_browser_requirements() and check_api_key()


# ============================================================================
# Process default dispatcher
# ============================================================================

_default_dispatcher: Optional[BrowserToolDispatcher] = None


def get_default_dispatcher() -> BrowserToolDispatcher:
    global _default_dispatcher
    if _default_dispatcher is None:
        from browserchat_cli.config import load_config
        _default_dispatcher = BrowserToolDispatcher.from_config(load_config())
    return _default_dispatcher


def _dispatcher(kw: Dict[str, Any]) -> BrowserToolDispatcher:
    return kw.get("dispatcher") or get_default_dispatcher()


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------
from tools.registry import registry

_BROWSER_SCHEMA_MAP = {s["name"]: s for s in BROWSER_TOOL_SCHEMAS}
_BROWSERBASE_ENV = ["BROWSERBASE_API_KEY", "BROWSERBASE_PROJECT_ID"]

registry.register(
    name="createSession",
    toolset="session",
    schema=_BROWSER_SCHEMA_MAP["createSession"],
    handler=lambda args, **kw: _dispatcher(kw).create_session(args),
    check_fn=check_browser_requirements,
    requires_env=_BROWSERBASE_ENV,
)
registry.register(
    name="createSessionAdvanced",
    toolset="session",
    schema=_BROWSER_SCHEMA_MAP["createSessionAdvanced"],
    handler=lambda args, **kw: _dispatcher(kw).create_session_advanced(args),
    check_fn=check_browser_requirements,
    requires_env=_BROWSERBASE_ENV,
)
registry.register(
    name="closeStagehand",
    toolset="session",
    schema=_BROWSER_SCHEMA_MAP["closeStagehand"],
    handler=lambda args, **kw: _dispatcher(kw).close_stagehand(args),
    check_fn=check_browser_requirements,
    requires_env=_BROWSERBASE_ENV,
)
registry.register(
    name="navigateTo",
    toolset="browser",
    schema=_BROWSER_SCHEMA_MAP["navigateTo"],
    handler=lambda args, **kw: _dispatcher(kw).navigate_to(args),
    check_fn=check_stagehand_requirements,
    requires_env=_BROWSERBASE_ENV + ["OPENAI_API_KEY"],
)
registry.register(
    name="stagehandAct",
    toolset="browser",
    schema=_BROWSER_SCHEMA_MAP["stagehandAct"],
    handler=lambda args, **kw: _dispatcher(kw).stagehand_act(args),
    check_fn=check_stagehand_requirements,
    requires_env=_BROWSERBASE_ENV + ["OPENAI_API_KEY"],
)
registry.register(
    name="stagehandExtract",
    toolset="browser",
    schema=_BROWSER_SCHEMA_MAP["stagehandExtract"],
    handler=lambda args, **kw: _dispatcher(kw).stagehand_extract(args),
    check_fn=check_stagehand_requirements,
    requires_env=_BROWSERBASE_ENV + ["OPENAI_API_KEY"],
)
registry.register(
    name="googleSearch",
    toolset="search",
    schema=_BROWSER_SCHEMA_MAP["googleSearch"],
    handler=lambda args, **kw: _dispatcher(kw).google_search(args),
    check_fn=check_summary_requirements,
    requires_env=_BROWSERBASE_ENV + ["OPENROUTER_API_KEY"],
)
registry.register(
    name="getPageContent",
    toolset="search",
    schema=_BROWSER_SCHEMA_MAP["getPageContent"],
    handler=lambda args, **kw: _dispatcher(kw).get_page_content(args),
    check_fn=check_summary_requirements,
    requires_env=_BROWSERBASE_ENV + ["OPENROUTER_API_KEY"],
)
# Client-side: the driver surfaces the question and the user's answer comes
# back through the message history.
registry.register(
    name="askForConfirmation",
    toolset="confirmation",
    schema=_BROWSER_SCHEMA_MAP["askForConfirmation"],
)
