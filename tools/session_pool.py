"""
Session pool: process-wide cache of live browser handles keyed by session ID.

Each LLM tool call is independent, so the handle for a Browserbase session is
kept here between calls instead of reconnecting every time. Entries live until
they are explicitly closed or evicted after a session-fatal error; the remote
session's own server-side timeout bounds their useful lifetime, so there is no
TTL or LRU policy.

All map mutations happen without an await between check and set, which makes
them atomic on the asyncio event loop. A multi-threaded caller would need a
lock around ``_handles`` / ``_provisioning``.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Dict, List, Optional

from tools.browser_handle import (
    BrowserHandle,
    HandleSettings,
    PageFault,
    StagehandHandleFactory,
    classify_error,
)
from tools.errors import BrowserToolError, ProvisioningError

logger = logging.getLogger(__name__)

HandleFactory = Callable[[str], Awaitable[BrowserHandle]]


class SessionPool:
    """Maps session ID -> BrowserHandle with lazy creation and manual eviction."""

    def __init__(self, handle_factory: HandleFactory):
        self._factory = handle_factory
        self._handles: Dict[str, BrowserHandle] = {}
        # In-flight provisioning, shared by concurrent resolvers of the same id
        self._provisioning: Dict[str, "asyncio.Future[BrowserHandle]"] = {}

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._handles

    def __len__(self) -> int:
        return len(self._handles)

    def session_ids(self) -> List[str]:
        return list(self._handles)

    def get(self, session_id: str) -> Optional[BrowserHandle]:
        """Look up a handle without provisioning one."""
        return self._handles.get(session_id)

    async def resolve(self, session_id: str) -> BrowserHandle:
        """Return the pooled handle for ``session_id``, provisioning it on first use.

        Provisioning is attempted once; failure raises ProvisioningError and
        nothing is registered.
        """
        handle = self._handles.get(session_id)
        if handle is not None:
            return handle

        pending = self._provisioning.get(session_id)
        if pending is None:
            pending = asyncio.ensure_future(self._provision(session_id))
            self._provisioning[session_id] = pending
        # A cancelled caller must not cancel provisioning other callers share
        return await asyncio.shield(pending)

    async def _provision(self, session_id: str) -> BrowserHandle:
        logger.info("Provisioning browser handle for session %s", session_id)
        try:
            handle = await self._factory(session_id)
        except Exception as e:
            session_gone = classify_error(e) is PageFault.SESSION_GONE
            if isinstance(e, BrowserToolError):
                detail = e.message
            else:
                detail = str(e) or type(e).__name__
            raise ProvisioningError(
                f"Failed to attach to browser session {session_id}: {detail}",
                cause=e,
                session_gone=session_gone,
            ) from e
        finally:
            self._provisioning.pop(session_id, None)

        self._handles[session_id] = handle
        return handle

    def evict(self, session_id: str, handle: Optional[BrowserHandle] = None) -> bool:
        """Drop the entry for ``session_id``. Idempotent.

        When ``handle`` is given, only that exact handle is removed, so a handle
        re-provisioned in the meantime survives.
        """
        current = self._handles.get(session_id)
        if current is None or (handle is not None and current is not handle):
            return False
        del self._handles[session_id]
        logger.info("Evicted browser handle for session %s", session_id)
        return True

    async def close(self, session_id: str) -> bool:
        """Shut down and evict the handle. Returns False if there was none.

        A handle still being provisioned for ``session_id`` is awaited first and
        then closed. The entry is evicted even when shutdown raises; the
        shutdown error is then re-raised to the caller.
        """
        pending = self._provisioning.get(session_id)
        if pending is not None:
            try:
                await asyncio.shield(pending)
            except ProvisioningError:
                return False
        handle = self._handles.get(session_id)
        if handle is None:
            return False
        try:
            await handle.close()
        finally:
            self.evict(session_id, handle)
        return True

    async def close_all(self) -> None:
        """Best-effort shutdown of every pooled handle (process exit)."""
        session_ids = self.session_ids()
        if session_ids:
            logger.info("Closing %s pooled browser session(s)...", len(session_ids))
        for session_id in session_ids:
            try:
                await self.close(session_id)
            except Exception as e:
                logger.warning("Error closing session %s during shutdown: %s", session_id, e)


_default_pool: Optional[SessionPool] = None


def get_session_pool(config: Optional[dict] = None) -> SessionPool:
    """Return the process-wide pool, creating it with Stagehand handles on first use."""
    global _default_pool
    if _default_pool is None:
        if config is None:
            from browserchat_cli.config import load_config
            config = load_config()
        _default_pool = SessionPool(StagehandHandleFactory(HandleSettings.from_config(config)))
    return _default_pool
