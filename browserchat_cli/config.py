"""
Configuration management for browserchat.

Config files are stored in ~/.browserchat/ for easy access:
- ~/.browserchat/config.yaml  - All settings (models, timeouts, server)
- ~/.browserchat/.env         - API keys and secrets

Precedence (lowest to highest): DEFAULT_CONFIG, config.yaml, environment.
Secrets are only ever read from the environment (after the .env files have
been loaded into it), never from config.yaml.
"""

import copy
import logging
import os
from pathlib import Path
from typing import Dict, Any, Optional, List

import yaml
from dotenv import load_dotenv

logger = logging.getLogger(__name__)


class ConfigError(Exception):
    """Raised when required configuration is missing or invalid."""


# =============================================================================
# Config paths
# =============================================================================

def get_browserchat_home() -> Path:
    """Get the browserchat home directory (~/.browserchat)."""
    return Path(os.getenv("BROWSERCHAT_HOME", Path.home() / ".browserchat"))

def get_config_path() -> Path:
    """Get the main config file path."""
    return get_browserchat_home() / "config.yaml"

def get_env_path() -> Path:
    """Get the .env file path (for API keys)."""
    return get_browserchat_home() / ".env"

def get_log_dir() -> Path:
    return get_browserchat_home() / "logs"

def ensure_browserchat_home():
    """Ensure ~/.browserchat directory structure exists."""
    get_log_dir().mkdir(parents=True, exist_ok=True)


# =============================================================================
# Config loading
# =============================================================================

DEFAULT_CONFIG = {
    # Model driving the tool-calling conversation loop
    "model": "gpt-4-turbo",
    "max_turns": 10,
    # Upper bound for one /api/chat request, seconds
    "max_duration": 300,

    "browser": {
        "stagehand_model": "gpt-4o",
        "dom_settle_timeout_ms": 60000,
        "action_timeout_ms": 15000,
        "navigation_timeout_ms": 45000,
        "load_retry_timeout_ms": 10000,
        "domcontentloaded_timeout_ms": 10000,
        "networkidle_timeout_ms": 7500,
        "search_results_timeout_ms": 15000,
        # Default Browserbase session timeout for createSession, seconds
        "session_timeout": 900,
        "request_timeout": 30,
    },

    "summary": {
        "model": "anthropic/claude-3.5-sonnet",
        "max_tokens": 2000,
    },

    "server": {
        "host": "127.0.0.1",
        "port": 8000,
    },

    "logging": {
        "verbose": False,
    },
}

# Secrets that must be present before the server or CLI starts
REQUIRED_ENV_VARS = {
    "BROWSERBASE_API_KEY": {
        "description": "Browserbase API key for remote browser sessions",
        "url": "https://browserbase.com/",
    },
    "BROWSERBASE_PROJECT_ID": {
        "description": "Browserbase project ID",
        "url": "https://browserbase.com/",
    },
    "OPENAI_API_KEY": {
        "description": "OpenAI API key (conversation model and Stagehand model assist)",
        "url": "https://platform.openai.com/api-keys",
    },
    "OPENROUTER_API_KEY": {
        "description": "OpenRouter API key for page summarization",
        "url": "https://openrouter.ai/keys",
    },
}


def load_env_files() -> None:
    """Load ~/.browserchat/.env, then the project .env, without overriding the process env."""
    env_path = get_env_path()
    if env_path.exists():
        try:
            load_dotenv(env_path, encoding="utf-8")
        except UnicodeDecodeError:
            load_dotenv(env_path, encoding="latin-1")
    load_dotenv()


def _deep_merge(base: dict, override: dict) -> dict:
    """Recursively merge *override* into *base*, preserving nested defaults.

    Keys in *override* take precedence. If both values are dicts the merge
    recurses, so a user who overrides only ``browser.action_timeout_ms`` keeps
    the other browser defaults intact.
    """
    result = base.copy()
    for key, value in override.items():
        if (
            key in result
            and isinstance(result[key], dict)
            and isinstance(value, dict)
        ):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def load_config(path: Optional[Path] = None) -> Dict[str, Any]:
    """Load configuration from ~/.browserchat/config.yaml merged over the defaults.

    Environment overrides: BROWSERCHAT_MODEL, BROWSERCHAT_MAX_TURNS,
    BROWSERCHAT_SUMMARY_MODEL, BROWSERCHAT_HOST, BROWSERCHAT_PORT.
    """
    config_path = path or get_config_path()
    config = copy.deepcopy(DEFAULT_CONFIG)

    if config_path.exists():
        try:
            with open(config_path, encoding="utf-8") as f:
                user_config = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Failed to load {config_path}: {e}") from e
        if not isinstance(user_config, dict):
            raise ConfigError(f"{config_path} must contain a mapping at the top level")
        config = _deep_merge(config, user_config)

    if os.getenv("BROWSERCHAT_MODEL"):
        config["model"] = os.environ["BROWSERCHAT_MODEL"]
    if os.getenv("BROWSERCHAT_SUMMARY_MODEL"):
        config["summary"]["model"] = os.environ["BROWSERCHAT_SUMMARY_MODEL"]
    if os.getenv("BROWSERCHAT_HOST"):
        config["server"]["host"] = os.environ["BROWSERCHAT_HOST"]
    try:
        if os.getenv("BROWSERCHAT_MAX_TURNS"):
            config["max_turns"] = int(os.environ["BROWSERCHAT_MAX_TURNS"])
        if os.getenv("BROWSERCHAT_PORT"):
            config["server"]["port"] = int(os.environ["BROWSERCHAT_PORT"])
    except ValueError as e:
        raise ConfigError(f"Invalid integer in environment override: {e}") from e

    return config


def get_env_value(key: str) -> Optional[str]:
    """Get a non-empty value from the environment."""
    value = os.environ.get(key, "").strip()
    return value or None


def get_missing_env_vars() -> List[Dict[str, Any]]:
    """Return info dicts for every required secret that is not set."""
    return [
        {"name": var_name, **info}
        for var_name, info in REQUIRED_ENV_VARS.items()
        if not get_env_value(var_name)
    ]


def validate_config(config: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Fail fast on missing secrets or nonsensical limits.

    Returns the (loaded) config so callers can chain
    ``config = validate_config(load_config())``.
    """
    if config is None:
        config = load_config()

    missing = get_missing_env_vars()
    if missing:
        lines = [f"  - {m['name']}: {m['description']} ({m['url']})" for m in missing]
        raise ConfigError(
            "Missing required environment variables:\n" + "\n".join(lines)
        )

    if int(config.get("max_turns", 0)) < 1:
        raise ConfigError("max_turns must be at least 1")
    if float(config.get("max_duration", 0)) <= 0:
        raise ConfigError("max_duration must be positive")

    return config


def redact_key(key: Optional[str]) -> str:
    """Redact an API key for display."""
    if not key:
        return "(not set)"
    if len(key) < 12:
        return "***"
    return key[:4] + "..." + key[-4:]
