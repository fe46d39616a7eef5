"""
Browser handle adapter over Stagehand.

A BrowserHandle is the live automation connection bound to one Browserbase
session. This module is the only place that looks at raw error text coming out
of Stagehand / Playwright: every page operation re-raises failures as one of
the typed errors in ``tools.errors`` so the dispatcher can decide on retry or
eviction from the type alone.

Non-critical readiness waits (``wait_for_load_state``) never raise; they
return a WaitOutcome that callers are free to ignore.
"""

import asyncio
import enum
import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Type

from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from pydantic import BaseModel
from stagehand import Stagehand, StagehandConfig

from tools.errors import (
    BrowserToolError,
    SessionFatalError,
    TransientPageError,
    UnclassifiedError,
)

logger = logging.getLogger(__name__)

# ============================================================================
# Error classification
# ============================================================================

CONTEXT_DESTROYED_SIGNATURE = "Execution context was destroyed"

# Browserbase answers 409 once a session has ended; the CDP layer reports the
# other two when the socket is gone.
SESSION_GONE_SIGNATURES = ("409", "not currently active", "Session closed")


class PageFault(enum.Enum):
    TRANSIENT = "transient"
    SESSION_GONE = "session_gone"
    OTHER = "other"


def classify_error(error: BaseException) -> PageFault:
    """Map an exception onto a PageFault by inspecting its message.

    Dead-session signatures win over the context-destroyed signature: retrying
    against a session that no longer exists can only fail again.
    """
    if isinstance(error, SessionFatalError):
        return PageFault.SESSION_GONE
    if isinstance(error, TransientPageError):
        return PageFault.TRANSIENT
    if isinstance(error, BrowserToolError):
        return PageFault.SESSION_GONE if error.evicts_session else PageFault.OTHER

    message = str(error)
    if any(signature in message for signature in SESSION_GONE_SIGNATURES):
        return PageFault.SESSION_GONE
    if CONTEXT_DESTROYED_SIGNATURE in message:
        return PageFault.TRANSIENT
    return PageFault.OTHER


def as_tool_error(error: BaseException) -> BrowserToolError:
    """Wrap any exception into the typed taxonomy (already-typed errors pass through)."""
    if isinstance(error, BrowserToolError):
        return error

    message = str(error) or type(error).__name__
    fault = classify_error(error)
    if fault is PageFault.SESSION_GONE:
        return SessionFatalError(message, cause=error)
    if fault is PageFault.TRANSIENT:
        return TransientPageError(message, cause=error)
    return UnclassifiedError(message, cause=error)


# ============================================================================
# Soft waits
# ============================================================================

class WaitOutcome(enum.Enum):
    READY = "ready"
    TIMED_OUT = "timed_out"
    FAILED = "failed"


async def soft_wait(wait: Callable[[], Awaitable[Any]], description: str) -> WaitOutcome:
    """Run a readiness wait, reporting timeouts and failures as outcomes.

    ``wait`` is called inside the guard, so building the awaitable may fail too.
    """
    try:
        await wait()
    except (PlaywrightTimeoutError, asyncio.TimeoutError):
        logger.debug("Soft wait for %s timed out; continuing", description)
        return WaitOutcome.TIMED_OUT
    except Exception as e:
        logger.debug("Soft wait for %s failed (%s); continuing", description, e)
        return WaitOutcome.FAILED
    return WaitOutcome.READY


# ============================================================================
# Handle interface
# ============================================================================

class BrowserHandle(ABC):
    """Page-level operations on one remote browser session.

    Raising methods only ever raise ``tools.errors.BrowserToolError`` subclasses.
    """

    session_id: str

    @abstractmethod
    async def goto(self, url: str, wait_until: str = "load") -> None:
        ...

    @abstractmethod
    async def wait_for_load_state(self, state: str, timeout_ms: int) -> WaitOutcome:
        ...

    @abstractmethod
    async def wait_for_selector(self, selector: str, timeout_ms: int) -> None:
        ...

    @abstractmethod
    async def act(self, instruction: str) -> Optional[str]:
        """Run a natural-language action; returns the action's message if any."""

    @abstractmethod
    async def extract(self, instruction: str, schema: Type[BaseModel]) -> Any:
        ...

    @abstractmethod
    async def evaluate(self, script: str) -> Any:
        ...

    @abstractmethod
    async def title(self) -> str:
        ...

    @abstractmethod
    async def content(self) -> str:
        ...

    @abstractmethod
    def set_timeouts(self, action_timeout_ms: int, navigation_timeout_ms: int) -> bool:
        """Best-effort default timeouts for subsequent page calls."""

    @abstractmethod
    async def close(self) -> None:
        ...


# ============================================================================
# Stagehand implementation
# ============================================================================

@dataclass
class HandleSettings:
    """Fixed provisioning settings shared by every Stagehand handle."""
    api_key: Optional[str]
    project_id: Optional[str]
    model_name: str = "gpt-4o"
    model_api_key: Optional[str] = None
    dom_settle_timeout_ms: int = 60000
    self_heal: bool = True

    @classmethod
    def from_config(cls, config: dict) -> "HandleSettings":
        browser_cfg = config.get("browser", {})
        return cls(
            api_key=os.getenv("BROWSERBASE_API_KEY"),
            project_id=os.getenv("BROWSERBASE_PROJECT_ID"),
            model_name=browser_cfg.get("stagehand_model", "gpt-4o"),
            model_api_key=os.getenv("OPENAI_API_KEY"),
            dom_settle_timeout_ms=int(browser_cfg.get("dom_settle_timeout_ms", 60000)),
        )


class StagehandHandle(BrowserHandle):
    """BrowserHandle backed by an initialized ``stagehand.Stagehand`` instance."""

    def __init__(self, session_id: str, stagehand: Stagehand):
        self.session_id = session_id
        self._stagehand = stagehand

    @property
    def page(self):
        return self._stagehand.page

    async def _call(self, operation: Callable[[], Awaitable[Any]]) -> Any:
        try:
            return await operation()
        except Exception as e:
            raise as_tool_error(e) from e

    async def goto(self, url: str, wait_until: str = "load") -> None:
        await self._call(lambda: self.page.goto(url, wait_until=wait_until))

    async def wait_for_load_state(self, state: str, timeout_ms: int) -> WaitOutcome:
        return await soft_wait(
            lambda: self.page.wait_for_load_state(state, timeout=timeout_ms),
            f"'{state}' on session {self.session_id}",
        )

    async def wait_for_selector(self, selector: str, timeout_ms: int) -> None:
        await self._call(lambda: self.page.wait_for_selector(selector, timeout=timeout_ms))

    async def act(self, instruction: str) -> Optional[str]:
        result = await self._call(lambda: self.page.act(instruction))
        if isinstance(result, dict):
            return result.get("message")
        return getattr(result, "message", None)

    async def extract(self, instruction: str, schema: Type[BaseModel]) -> Any:
        return await self._call(lambda: self.page.extract(instruction, schema=schema))

    async def evaluate(self, script: str) -> Any:
        return await self._call(lambda: self.page.evaluate(script))

    async def title(self) -> str:
        return await self._call(lambda: self.page.title())

    async def content(self) -> str:
        return await self._call(lambda: self.page.content())

    def set_timeouts(self, action_timeout_ms: int, navigation_timeout_ms: int) -> bool:
        try:
            self.page.set_default_timeout(action_timeout_ms)
            self.page.set_default_navigation_timeout(navigation_timeout_ms)
        except AttributeError as e:
            logger.debug("Page for session %s does not expose default timeouts: %s",
                         self.session_id, e)
            return False
        return True

    async def close(self) -> None:
        await self._call(lambda: self._stagehand.close())


class StagehandHandleFactory:
    """Provisions a StagehandHandle attached to an existing Browserbase session."""

    def __init__(self, settings: HandleSettings):
        self.settings = settings

    async def __call__(self, session_id: str) -> StagehandHandle:
        if not self.settings.api_key or not self.settings.project_id:
            raise ValueError(
                "BROWSERBASE_API_KEY and BROWSERBASE_PROJECT_ID environment variables are required. "
                "Get your credentials at https://browserbase.com"
            )

        config = StagehandConfig(
            env="BROWSERBASE",
            api_key=self.settings.api_key,
            project_id=self.settings.project_id,
            browserbase_session_id=session_id,
            model_name=self.settings.model_name,
            model_api_key=self.settings.model_api_key,
            dom_settle_timeout_ms=self.settings.dom_settle_timeout_ms,
            self_heal=self.settings.self_heal,
            verbose=0,
            use_rich_logging=False,
        )
        stagehand = Stagehand(config=config)
        await stagehand.init()
        logger.info("Attached Stagehand to session %s (model: %s)", session_id, self.settings.model_name)
        return StagehandHandle(session_id, stagehand)
