"""Tests for tools.browserbase_client -- session payloads and REST error mapping."""

from unittest.mock import MagicMock, patch

import pytest
import requests
from pydantic import ValidationError

from tools.browserbase_client import (
    BrowserbaseClient,
    SessionCreateOptions,
    build_session_payload,
)
from tools.errors import ProvisioningError


def _response(payload=None, status_code=200, text=""):
    response = MagicMock()
    response.ok = status_code < 400
    response.status_code = status_code
    response.json.return_value = payload
    response.text = text
    return response


class TestBuildSessionPayload:
    def test_no_options_sends_only_project(self):
        assert build_session_payload("proj") == {"projectId": "proj"}

    def test_region_only(self):
        payload = build_session_payload("proj", SessionCreateOptions(region="eu-central-1"))
        assert payload == {"projectId": "proj", "region": "eu-central-1"}
        for absent in ("timeout", "keepAlive", "proxies", "browserSettings"):
            assert absent not in payload

    def test_browser_settings_grouped(self):
        options = SessionCreateOptions.model_validate({
            "blockAds": True, "solveCaptchas": False, "recordSession": True,
            "viewport": {"width": 1920, "height": 1080},
        })
        payload = build_session_payload("proj", options)
        assert payload["browserSettings"] == {
            "viewport": {"width": 1920, "height": 1080},
            "blockAds": True,
            "solveCaptchas": False,
            "recordSession": True,
        }

    def test_partial_viewport_filled_with_defaults(self):
        options = SessionCreateOptions(viewport={"height": 900})
        payload = build_session_payload("proj", options)
        assert payload["browserSettings"]["viewport"] == {"width": 1280, "height": 900}

    def test_empty_viewport_omitted(self):
        payload = build_session_payload("proj", SessionCreateOptions(viewport={}))
        assert "browserSettings" not in payload

    def test_top_level_fields(self):
        options = SessionCreateOptions.model_validate({
            "timeout": 600, "keepAlive": False, "proxies": True, "userMetadata": {"chat": "c1"},
        })
        payload = build_session_payload("proj", options)
        assert payload == {
            "projectId": "proj", "timeout": 600, "keepAlive": False,
            "proxies": True, "userMetadata": {"chat": "c1"},
        }

    @pytest.mark.parametrize("timeout", [59, 21601])
    def test_timeout_range(self, timeout):
        with pytest.raises(ValidationError):
            SessionCreateOptions(timeout=timeout)


class TestBrowserbaseClient:
    def test_missing_credentials(self):
        with pytest.raises(ProvisioningError):
            BrowserbaseClient(api_key=None, project_id="proj").create_session()

    def test_create_default_session(self):
        client = BrowserbaseClient(api_key="key", project_id="proj")
        with patch("tools.browserbase_client.requests.request",
                   return_value=_response({"id": "S"})) as request:
            data = client.create_default_session()
        assert data["id"] == "S"
        assert request.call_args.kwargs["json"] == {"projectId": "proj", "timeout": 900, "keepAlive": True}
        assert request.call_args.kwargs["headers"]["x-bb-api-key"] == "key"

    def test_response_without_id(self):
        client = BrowserbaseClient(api_key="key", project_id="proj")
        with patch("tools.browserbase_client.requests.request", return_value=_response({})):
            with pytest.raises(ProvisioningError):
                client.create_session()

    def test_http_error(self):
        client = BrowserbaseClient(api_key="key", project_id="proj")
        with patch("tools.browserbase_client.requests.request",
                   return_value=_response(status_code=429, text="Too many sessions")):
            with pytest.raises(ProvisioningError) as exc_info:
                client.create_session()
        assert "429" in str(exc_info.value)
        assert not exc_info.value.evicts_session

    def test_conflict_marks_session_gone(self):
        client = BrowserbaseClient(api_key="key", project_id="proj")
        with patch("tools.browserbase_client.requests.request",
                   return_value=_response(status_code=409, text="Session is not running")):
            with pytest.raises(ProvisioningError) as exc_info:
                client.get_debug_url("S")
        assert exc_info.value.evicts_session

    def test_network_error(self):
        client = BrowserbaseClient(api_key="key", project_id="proj")
        with patch("tools.browserbase_client.requests.request",
                   side_effect=requests.ConnectionError("connection reset")):
            with pytest.raises(ProvisioningError) as exc_info:
                client.create_session()
        assert "connection reset" in str(exc_info.value)

    def test_get_debug_url(self):
        client = BrowserbaseClient(api_key="key", project_id="proj")
        with patch("tools.browserbase_client.requests.request",
                   return_value=_response({"debuggerFullscreenUrl": "https://debug/S"})) as request:
            assert client.get_debug_url("S") == "https://debug/S"
        assert request.call_args.args == ("GET", "https://www.browserbase.com/v1/sessions/S/debug")
