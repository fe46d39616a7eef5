"""
HTTP gateway for the browser chat agent.

POST /api/chat accepts ``{"messages": [...]}`` (chat UI messages, including
assistant ``toolInvocations``) and streams the agent's events back as
newline-delimited JSON. The whole request is bounded by ``max_duration``
seconds; when it runs out an ``error`` event and a ``finish`` event close the
stream.

GET /health reports how many browser sessions are pooled.

Run with:
    python -m gateway.server --port 8000
"""

import asyncio
import json
import logging
import os
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional

import fire
import uvicorn
from fastapi import FastAPI
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from browserchat_cli import __version__
from browserchat_cli.config import (
    ConfigError,
    load_config,
    load_env_files,
    redact_key,
    validate_config,
)
from run_agent import BrowserAgent
from tools.browser_tool import BrowserToolDispatcher
from tools.session_pool import SessionPool, get_session_pool

logger = logging.getLogger(__name__)


class ChatRequest(BaseModel):
    messages: List[Dict[str, Any]]


async def stream_with_deadline(
    events: AsyncIterator[Dict[str, Any]],
    max_duration: float,
) -> AsyncIterator[Dict[str, Any]]:
    """Relay ``events`` until they end or ``max_duration`` seconds have passed."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + max_duration
    try:
        while True:
            remaining = deadline - loop.time()
            if remaining <= 0:
                raise asyncio.TimeoutError
            try:
                event = await asyncio.wait_for(events.__anext__(), timeout=remaining)
            except StopAsyncIteration:
                return
            yield event
    except asyncio.TimeoutError:
        logger.warning("Chat request exceeded %ss; terminating stream", max_duration)
        yield {"type": "error", "error": f"Request exceeded the maximum duration of {max_duration:g}s"}
        yield {"type": "finish", "finishReason": "timeout"}
    except Exception as e:
        logger.exception("Chat stream failed")
        yield {"type": "error", "error": f"Internal error: {e}"}
        yield {"type": "finish", "finishReason": "error"}
    finally:
        await events.aclose()


async def _ndjson(events: AsyncIterator[Dict[str, Any]]) -> AsyncIterator[str]:
    async for event in events:
        yield json.dumps(event, ensure_ascii=False, default=str) + "\n"


def create_app(
    config: Optional[Dict[str, Any]] = None,
    agent: Optional[BrowserAgent] = None,
    pool: Optional[SessionPool] = None,
) -> FastAPI:
    """
    Build the FastAPI app.

    Without an explicit config the configuration is loaded and validated here,
    so missing credentials stop the server before it accepts requests.
    """
    if config is None:
        config = validate_config(load_config())
    if pool is None:
        pool = get_session_pool(config)
    if agent is None:
        agent = BrowserAgent.from_config(
            config, dispatcher=BrowserToolDispatcher.from_config(config, pool=pool))
    max_duration = float(config.get("max_duration", 300))

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("browserchat gateway started (model: %s, max duration: %ss)", agent.model, max_duration)
        yield
        await pool.close_all()
        logger.info("browserchat gateway stopped")

    app = FastAPI(title="browserchat", version=__version__, lifespan=lifespan)
    app.state.pool = pool
    app.state.agent = agent

    @app.get("/health")
    async def health():
        return {"status": "ok", "sessions": len(pool)}

    @app.post("/api/chat")
    async def chat(request: ChatRequest):
        logger.info("Chat request with %s message(s)", len(request.messages))
        events = stream_with_deadline(agent.stream_conversation(request.messages), max_duration)
        return StreamingResponse(
            _ndjson(events),
            media_type="application/x-ndjson",
            headers={"Cache-Control": "no-cache"},
        )

    return app


def main(host: str = None, port: int = None, verbose: bool = False):
    """
    Start the gateway server.

    Args:
        host (str): Bind address. Defaults to server.host in config.
        port (int): Bind port. Defaults to server.port in config.
        verbose (bool): Enable debug logging
    """
    from browserchat_cli.logging_setup import setup_logging

    load_env_files()
    setup_logging(verbose=verbose)
    try:
        config = validate_config(load_config())
    except ConfigError as e:
        logger.error("%s", e)
        return 1

    logger.info("Browserbase key %s, project %s",
                redact_key(os.getenv("BROWSERBASE_API_KEY")), os.getenv("BROWSERBASE_PROJECT_ID"))
    uvicorn.run(
        create_app(config),
        host=host or config["server"]["host"],
        port=int(port or config["server"]["port"]),
        log_config=None,
    )


if __name__ == "__main__":
    fire.Fire(main)
