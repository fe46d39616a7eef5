"""
Browserbase REST client for provisioning remote browser sessions.

Two calls are used:
- POST /v1/sessions             create a session (returns its id)
- GET  /v1/sessions/{id}/debug  fetch the live-view URLs for a session

Both are blocking ``requests`` calls; async callers run them through
``asyncio.to_thread``.
"""

import logging
from typing import Any, Dict, Literal, Optional

import requests
from pydantic import BaseModel, ConfigDict, Field

from browserchat_constants import (
    BROWSERBASE_REGIONS,
    BROWSERBASE_SESSIONS_URL,
    DEFAULT_VIEWPORT_HEIGHT,
    DEFAULT_VIEWPORT_WIDTH,
)
from tools.browser_handle import PageFault, classify_error
from tools.errors import ProvisioningError

logger = logging.getLogger(__name__)

BrowserbaseRegion = Literal[BROWSERBASE_REGIONS]


class ViewportOptions(BaseModel):
    width: Optional[int] = Field(default=None, gt=0)
    height: Optional[int] = Field(default=None, gt=0)


class SessionCreateOptions(BaseModel):
    """Optional session settings; anything left unset is omitted from the request."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    timeout: Optional[int] = Field(default=None, ge=60, le=21600, description="Session timeout in seconds")
    keep_alive: Optional[bool] = Field(default=None, alias="keepAlive")
    region: Optional[BrowserbaseRegion] = None
    viewport: Optional[ViewportOptions] = None
    block_ads: Optional[bool] = Field(default=None, alias="blockAds")
    solve_captchas: Optional[bool] = Field(default=None, alias="solveCaptchas")
    record_session: Optional[bool] = Field(default=None, alias="recordSession")
    proxies: Optional[bool] = None
    user_metadata: Optional[Dict[str, Any]] = Field(default=None, alias="userMetadata")


def build_session_payload(project_id: str, options: Optional[SessionCreateOptions] = None) -> Dict[str, Any]:
    """Build the POST /v1/sessions body, omitting every unset option."""
    options = options or SessionCreateOptions()
    payload: Dict[str, Any] = {"projectId": project_id}

    if options.timeout:
        payload["timeout"] = options.timeout
    if options.keep_alive is not None:
        payload["keepAlive"] = options.keep_alive
    if options.region:
        payload["region"] = options.region
    if options.proxies is not None:
        payload["proxies"] = options.proxies
    if options.user_metadata:
        payload["userMetadata"] = options.user_metadata

    browser_settings: Dict[str, Any] = {}
    viewport = options.viewport
    if viewport and (viewport.width or viewport.height):
        # Browserbase needs both dimensions
        browser_settings["viewport"] = {
            "width": viewport.width or DEFAULT_VIEWPORT_WIDTH,
            "height": viewport.height or DEFAULT_VIEWPORT_HEIGHT,
        }
    if options.block_ads is not None:
        browser_settings["blockAds"] = options.block_ads
    if options.solve_captchas is not None:
        browser_settings["solveCaptchas"] = options.solve_captchas
    if options.record_session is not None:
        browser_settings["recordSession"] = options.record_session
    if browser_settings:
        payload["browserSettings"] = browser_settings

    return payload


class BrowserbaseClient:
    """Thin wrapper around the Browserbase sessions API."""

    def __init__(self, api_key: Optional[str], project_id: Optional[str], timeout: float = 30):
        self.api_key = api_key
        self.project_id = project_id
        self.timeout = timeout

    def _headers(self) -> Dict[str, str]:
        if not self.api_key or not self.project_id:
            raise ProvisioningError(
                "BROWSERBASE_API_KEY and BROWSERBASE_PROJECT_ID environment variables are required. "
                "Get your credentials at https://browserbase.com"
            )
        return {
            "x-bb-api-key": self.api_key,
            "Content-Type": "application/json",
        }

    def _request(self, method: str, url: str, **kwargs) -> Dict[str, Any]:
        headers = self._headers()
        try:
            response = requests.request(method, url, headers=headers, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise ProvisioningError(f"Browserbase request failed: {e}", cause=e) from e

        if not response.ok:
            message = f"Browserbase {method} {url} failed: {response.status_code} {response.text[:200]}"
            raise ProvisioningError(
                message,
                session_gone=classify_error(Exception(message)) is PageFault.SESSION_GONE,
            )
        try:
            return response.json()
        except ValueError as e:
            raise ProvisioningError(f"Browserbase returned invalid JSON: {e}", cause=e) from e

    def create_session(self, options: Optional[SessionCreateOptions] = None) -> Dict[str, Any]:
        """Create a session with the given options; returns the API response (with ``id``)."""
        payload = build_session_payload(self.project_id or "", options)
        data = self._request("POST", BROWSERBASE_SESSIONS_URL, json=payload)
        if not data.get("id"):
            raise ProvisioningError("Browserbase session response did not include an id")
        logger.info("Created Browserbase session %s (options: %s)",
                    data["id"], ", ".join(k for k in payload if k != "projectId") or "defaults")
        return data

    def create_default_session(self, session_timeout: int = 900) -> Dict[str, Any]:
        """Create a keep-alive session with a long timeout, the default for new chats."""
        return self.create_session(SessionCreateOptions(timeout=session_timeout, keep_alive=True))

    def get_debug_url(self, session_id: str) -> Optional[str]:
        """Return the fullscreen live-view URL for a session."""
        data = self._request("GET", f"{BROWSERBASE_SESSIONS_URL}/{session_id}/debug")
        return data.get("debuggerFullscreenUrl")
