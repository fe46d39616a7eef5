"""Tests for tools.browser_handle -- error classification, soft waits, Stagehand adapter."""

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from tools.browser_handle import (
    HandleSettings,
    PageFault,
    StagehandHandle,
    StagehandHandleFactory,
    WaitOutcome,
    as_tool_error,
    classify_error,
    soft_wait,
)
from tools.errors import (
    ProvisioningError,
    SessionFatalError,
    TransientPageError,
    UnclassifiedError,
)


class TestClassifyError:
    @pytest.mark.parametrize("message", [
        "Request failed with status code 409",
        "Session 123 is not currently active",
        "Target page, context or browser has been closed: Session closed",
    ])
    def test_dead_session_signatures(self, message):
        assert classify_error(Exception(message)) is PageFault.SESSION_GONE

    def test_context_destroyed_is_transient(self):
        error = Exception("Execution context was destroyed, most likely because of a navigation")
        assert classify_error(error) is PageFault.TRANSIENT

    def test_dead_session_wins_over_transient(self):
        error = Exception("Execution context was destroyed; Session closed")
        assert classify_error(error) is PageFault.SESSION_GONE

    def test_other(self):
        assert classify_error(ValueError("element not found")) is PageFault.OTHER

    def test_typed_errors_classified_by_type(self):
        assert classify_error(SessionFatalError("x")) is PageFault.SESSION_GONE
        assert classify_error(TransientPageError("x")) is PageFault.TRANSIENT
        assert classify_error(ProvisioningError("x", session_gone=True)) is PageFault.SESSION_GONE
        assert classify_error(ProvisioningError("409 but flagged healthy")) is PageFault.OTHER


class TestAsToolError:
    def test_wraps_by_fault(self):
        assert isinstance(as_tool_error(Exception("Session closed")), SessionFatalError)
        assert isinstance(as_tool_error(Exception("Execution context was destroyed")), TransientPageError)
        assert isinstance(as_tool_error(Exception("boom")), UnclassifiedError)

    def test_typed_error_passes_through(self):
        error = ProvisioningError("nope")
        assert as_tool_error(error) is error

    def test_keeps_cause_and_message(self):
        original = RuntimeError("boom")
        wrapped = as_tool_error(original)
        assert wrapped.__cause__ is original
        assert str(wrapped) == "boom"

    def test_empty_message_uses_type_name(self):
        assert as_tool_error(asyncio.TimeoutError()).message == "TimeoutError"


class TestSoftWait:
    @pytest.mark.asyncio
    async def test_ready(self):
        assert await soft_wait(lambda: asyncio.sleep(0), "noop") is WaitOutcome.READY

    @pytest.mark.asyncio
    async def test_playwright_timeout(self):
        async def times_out():
            raise PlaywrightTimeoutError("Timeout 7500ms exceeded.")
        assert await soft_wait(times_out, "networkidle") is WaitOutcome.TIMED_OUT

    @pytest.mark.asyncio
    async def test_other_failure(self):
        async def fails():
            raise RuntimeError("page crashed")
        assert await soft_wait(fails, "load") is WaitOutcome.FAILED


def _fake_page():
    page = MagicMock()
    page.goto = AsyncMock()
    page.wait_for_load_state = AsyncMock()
    page.act = AsyncMock()
    page.extract = AsyncMock()
    page.title = AsyncMock(return_value="Title")
    return page


class TestStagehandHandle:
    @pytest.mark.asyncio
    async def test_act_returns_message_from_result_object(self):
        page = _fake_page()
        page.act.return_value = SimpleNamespace(success=True, message="Clicked", action="click")
        handle = StagehandHandle("S", SimpleNamespace(page=page))
        assert await handle.act("click") == "Clicked"

    @pytest.mark.asyncio
    async def test_act_returns_message_from_dict(self):
        page = _fake_page()
        page.act.return_value = {"message": "Typed"}
        handle = StagehandHandle("S", SimpleNamespace(page=page))
        assert await handle.act("type") == "Typed"

    @pytest.mark.asyncio
    async def test_raw_errors_become_typed(self):
        page = _fake_page()
        page.goto.side_effect = Exception("Protocol error: Session closed.")
        handle = StagehandHandle("S", SimpleNamespace(page=page))
        with pytest.raises(SessionFatalError):
            await handle.goto("https://example.com")

    @pytest.mark.asyncio
    async def test_load_state_timeout_is_an_outcome(self):
        page = _fake_page()
        page.wait_for_load_state.side_effect = PlaywrightTimeoutError("Timeout 10000ms exceeded.")
        handle = StagehandHandle("S", SimpleNamespace(page=page))
        assert await handle.wait_for_load_state("load", 10000) is WaitOutcome.TIMED_OUT
        page.wait_for_load_state.assert_called_once_with("load", timeout=10000)

    @pytest.mark.asyncio
    async def test_load_state_on_unreadable_page_is_an_outcome(self):
        class PagelessStagehand:
            @property
            def page(self):
                raise RuntimeError("Stagehand not initialized")

        handle = StagehandHandle("S", PagelessStagehand())
        assert await handle.wait_for_load_state("networkidle", 7500) is WaitOutcome.FAILED

    def test_set_timeouts(self):
        page = _fake_page()
        handle = StagehandHandle("S", SimpleNamespace(page=page))
        assert handle.set_timeouts(15000, 45000) is True
        page.set_default_timeout.assert_called_once_with(15000)
        page.set_default_navigation_timeout.assert_called_once_with(45000)

    def test_set_timeouts_unsupported_page(self):
        handle = StagehandHandle("S", SimpleNamespace(page=SimpleNamespace()))
        assert handle.set_timeouts(15000, 45000) is False


class TestStagehandHandleFactory:
    @pytest.mark.asyncio
    async def test_missing_credentials(self):
        factory = StagehandHandleFactory(HandleSettings(api_key=None, project_id=None))
        with pytest.raises(ValueError):
            await factory("S")

    @pytest.mark.asyncio
    async def test_builds_browserbase_config_for_session(self):
        settings = HandleSettings(api_key="bb_key", project_id="proj", model_api_key="sk-test")
        instance = MagicMock()
        instance.init = AsyncMock()
        with patch("tools.browser_handle.StagehandConfig") as config_cls, \
             patch("tools.browser_handle.Stagehand", return_value=instance) as stagehand_cls:
            handle = await StagehandHandleFactory(settings)("S-1")

        kwargs = config_cls.call_args.kwargs
        assert kwargs["env"] == "BROWSERBASE"
        assert kwargs["browserbase_session_id"] == "S-1"
        assert kwargs["model_name"] == "gpt-4o"
        assert kwargs["dom_settle_timeout_ms"] == 60000
        assert kwargs["self_heal"] is True
        stagehand_cls.assert_called_once_with(config=config_cls.return_value)
        instance.init.assert_awaited_once()
        assert handle.session_id == "S-1"

    def test_settings_from_config_reads_env(self, monkeypatch):
        monkeypatch.setenv("BROWSERBASE_API_KEY", "bb_key")
        monkeypatch.setenv("BROWSERBASE_PROJECT_ID", "proj")
        monkeypatch.setenv("OPENAI_API_KEY", "sk-x")
        settings = HandleSettings.from_config({"browser": {"dom_settle_timeout_ms": 30000}})
        assert settings.api_key == "bb_key"
        assert settings.project_id == "proj"
        assert settings.model_api_key == "sk-x"
        assert settings.dom_settle_timeout_ms == 30000
