"""Fake browser handles shared by the session pool and dispatcher tests."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from tools.browser_handle import BrowserHandle, WaitOutcome
from tools.browser_tool import BrowserToolDispatcher, BrowserToolSettings
from tools.session_pool import SessionPool


class FakeHandle(BrowserHandle):
    """In-memory BrowserHandle that records calls.

    ``act_results`` / ``extract_results`` are queues: exception instances are
    raised, anything else is returned. The ``*_error`` attributes are raised
    by the matching call when set.
    """

    def __init__(self, session_id):
        self.session_id = session_id
        self.calls = []
        self.act_results = []
        self.extract_results = []
        self.goto_error = None
        self.selector_error = None
        self.close_error = None
        self.load_outcome = WaitOutcome.READY
        self.page_title = "Example Domain"
        self.html = "<html><head><title>Example Domain</title></head><body><p>Hello</p></body></html>"
        self.search_results = []
        self.closed = False

    def _next(self, queue, default):
        if not queue:
            return default
        item = queue.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item

    def calls_to(self, name):
        return [call for call in self.calls if call[0] == name]

    async def goto(self, url, wait_until="load"):
        self.calls.append(("goto", url, wait_until))
        if self.goto_error:
            raise self.goto_error

    async def wait_for_load_state(self, state, timeout_ms):
        self.calls.append(("wait_for_load_state", state, timeout_ms))
        return self.load_outcome

    async def wait_for_selector(self, selector, timeout_ms):
        self.calls.append(("wait_for_selector", selector, timeout_ms))
        if self.selector_error:
            raise self.selector_error

    async def act(self, instruction):
        self.calls.append(("act", instruction))
        return self._next(self.act_results, None)

    async def extract(self, instruction, schema):
        self.calls.append(("extract", instruction, schema))
        return self._next(self.extract_results, {"text": "extracted"})

    async def evaluate(self, script):
        self.calls.append(("evaluate", script))
        return self.search_results

    async def title(self):
        self.calls.append(("title",))
        return self.page_title

    async def content(self):
        self.calls.append(("content",))
        return self.html

    def set_timeouts(self, action_timeout_ms, navigation_timeout_ms):
        self.calls.append(("set_timeouts", action_timeout_ms, navigation_timeout_ms))
        return True

    async def close(self):
        self.calls.append(("close",))
        self.closed = True
        if self.close_error:
            raise self.close_error


class FakeHandleFactory:
    """Creates FakeHandles; queued ``errors`` are raised instead, one per call."""

    def __init__(self):
        self.created = []
        self.errors = []

    async def __call__(self, session_id):
        # Yield to the loop so concurrent resolvers can interleave
        await asyncio.sleep(0)
        if self.errors:
            raise self.errors.pop(0)
        handle = FakeHandle(session_id)
        self.created.append(handle)
        return handle

    def count_for(self, session_id):
        return sum(1 for handle in self.created if handle.session_id == session_id)


@pytest.fixture()
def handle_factory():
    return FakeHandleFactory()


@pytest.fixture()
def pool(handle_factory):
    return SessionPool(handle_factory)


@pytest.fixture()
def browserbase():
    client = MagicMock()
    client.create_default_session.return_value = {"id": "sess-1"}
    client.get_debug_url.return_value = "https://www.browserbase.com/devtools-fullscreen/sess-1"
    return client


@pytest.fixture()
def summarizer():
    return AsyncMock(return_value="A short summary.")


@pytest.fixture()
def dispatcher(pool, browserbase, summarizer):
    return BrowserToolDispatcher(pool, browserbase, summarizer, BrowserToolSettings())
