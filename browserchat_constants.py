"""Shared constants for browserchat.

Import-safe module with no dependencies so any module can pull endpoints
and defaults without circular imports.
"""

BROWSERBASE_API_URL = "https://www.browserbase.com/v1"
BROWSERBASE_SESSIONS_URL = f"{BROWSERBASE_API_URL}/sessions"

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"

# Search results page that renders without JavaScript (fewer captchas)
DUCKDUCKGO_HTML_URL = "https://html.duckduckgo.com/html/"

BROWSERBASE_REGIONS = ("us-west-2", "us-east-1", "eu-central-1", "ap-southeast-1")

DEFAULT_VIEWPORT_WIDTH = 1280
DEFAULT_VIEWPORT_HEIGHT = 720
