#!/usr/bin/env python3
"""
Browser Agent Runner with Tool Calling

Drives the conversation model through a bounded tool-calling loop over the
browser tools. Each step sends the history plus tool definitions to the chat
model, runs the tool calls it asks for, and appends the results, until the
model answers without tools, asks the user for confirmation, or the step
limit is reached.

``stream_conversation`` yields event dicts as they happen, which the HTTP
gateway streams to the browser:

- {"type": "text", "text": ...}
- {"type": "tool-call", "toolCallId", "toolName", "args", "pending"}
- {"type": "tool-result", "toolCallId", "toolName", "result"}
- {"type": "error", "error": ...}
- {"type": "finish", "finishReason": "stop" | "tool-calls" | "length" | "error", "steps": n}

Usage:
    from run_agent import BrowserAgent

    agent = BrowserAgent(model="gpt-4-turbo")
    async for event in agent.stream_conversation([{"role": "user", "content": "open bestbuy.com"}]):
        ...
"""

import asyncio
import json
import logging
import time
from typing import Any, AsyncIterator, Dict, List, Optional

import fire
from openai import AsyncOpenAI

from agent.redact import redact_sensitive_text
from model_tools import (
    get_tool_definitions,
    handle_function_call,
    is_client_side_tool,
    parse_function_args,
)
from tools.browser_tool import BrowserToolDispatcher

logger = logging.getLogger(__name__)


# ============================================================================
# UI message conversion
# ============================================================================

def _tool_result_content(result: Any) -> str:
    if isinstance(result, str):
        return result
    return json.dumps(result, ensure_ascii=False, default=str)


def convert_ui_messages(messages: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Convert chat UI messages into OpenAI chat-completion messages.

    Assistant messages carrying ``toolInvocations`` become an assistant message
    with ``tool_calls`` followed by one ``tool`` message per invocation that
    has a result. Invocations still waiting for a result are dropped, since
    the API rejects tool calls without a matching response.
    """
    converted = []
    for message in messages or []:
        role = message.get("role")
        content = message.get("content")

        if role == "assistant" and message.get("toolInvocations"):
            answered = [inv for inv in message["toolInvocations"] if "result" in inv]
            if len(answered) < len(message["toolInvocations"]):
                logger.debug("Dropping %s unanswered tool invocation(s)",
                             len(message["toolInvocations"]) - len(answered))
            if not answered:
                if content:
                    converted.append({"role": "assistant", "content": content})
                continue
            converted.append({
                "role": "assistant",
                "content": content or None,
                "tool_calls": [
                    {
                        "id": inv["toolCallId"],
                        "type": "function",
                        "function": {
                            "name": inv["toolName"],
                            "arguments": json.dumps(inv.get("args") or {}, ensure_ascii=False),
                        },
                    }
                    for inv in answered
                ],
            })
            for inv in answered:
                converted.append({
                    "role": "tool",
                    "tool_call_id": inv["toolCallId"],
                    "content": _tool_result_content(inv["result"]),
                })
        elif role in ("system", "user", "assistant"):
            converted.append({"role": role, "content": content if content is not None else ""})
        elif role == "tool":
            converted.append(message)
        else:
            logger.warning("Skipping message with unsupported role %r", role)
    return converted


# ============================================================================
# Agent
# ============================================================================

class BrowserAgent:
    """
    Conversation driver over the browser tools.

    The dispatcher is optional; without one the registry handlers use the
    process default dispatcher (and its shared session pool).
    """

    def __init__(
        self,
        model: str = "gpt-4-turbo",
        max_iterations: int = 10,
        dispatcher: Optional[BrowserToolDispatcher] = None,
        client: Optional[AsyncOpenAI] = None,
        api_key: str = None,
        base_url: str = None,
        enabled_toolsets: List[str] = None,
        disabled_toolsets: List[str] = None,
        max_retries: int = 3,
        system_message: str = None,
    ):
        """
        Args:
            model (str): Chat model name (default: "gpt-4-turbo")
            max_iterations (int): Maximum number of model calls per conversation (default: 10)
            dispatcher (BrowserToolDispatcher): Tool dispatcher to use (optional)
            client (AsyncOpenAI): Pre-built client, mainly for tests (optional)
            api_key (str): API key; the OpenAI SDK reads OPENAI_API_KEY when omitted
            base_url (str): Custom OpenAI-compatible endpoint (optional)
            enabled_toolsets (List[str]): Only enable tools from these toolsets (optional)
            disabled_toolsets (List[str]): Disable tools from these toolsets (optional)
            max_retries (int): Retries for a failed model call, with exponential backoff
            system_message (str): Prepended as a system message when set
        """
        self.model = model
        self.max_iterations = max_iterations
        self.dispatcher = dispatcher
        self.max_retries = max_retries
        self.system_message = system_message

        if client is None:
            client_kwargs = {}
            if api_key:
                client_kwargs["api_key"] = api_key
            if base_url:
                client_kwargs["base_url"] = base_url
            client = AsyncOpenAI(**client_kwargs)
        self.client = client

        self.tools = get_tool_definitions(
            enabled_toolsets=enabled_toolsets,
            disabled_toolsets=disabled_toolsets,
        )
        logger.info("Browser agent ready with model %s and %s tools", self.model, len(self.tools))

    @classmethod
    def from_config(cls, config: dict, **kwargs) -> "BrowserAgent":
        kwargs.setdefault("model", config.get("model", "gpt-4-turbo"))
        kwargs.setdefault("max_iterations", int(config.get("max_turns", 10)))
        return cls(**kwargs)

    async def _create_completion(self, messages: List[Dict[str, Any]]):
        attempt = 0
        while True:
            try:
                return await self.client.chat.completions.create(
                    model=self.model,
                    messages=messages,
                    tools=self.tools or None,
                    timeout=60.0,
                )
            except Exception as e:
                attempt += 1
                if attempt > self.max_retries:
                    raise
                wait_time = min(2 ** attempt, 10)
                logger.warning("Model call failed (attempt %s/%s): %s; retrying in %ss",
                               attempt, self.max_retries, str(e)[:200], wait_time)
                await asyncio.sleep(wait_time)

    async def stream_conversation(self, messages: List[Dict[str, Any]]) -> AsyncIterator[Dict[str, Any]]:
        """Run the tool-calling loop over ``messages``, yielding events as they happen."""
        history = convert_ui_messages(messages)
        if self.system_message:
            history.insert(0, {"role": "system", "content": self.system_message})

        step = 0
        finish_reason = "length"
        while step < self.max_iterations:
            step += 1
            api_start = time.time()
            try:
                response = await self._create_completion(history)
            except Exception as e:
                logger.error("Model call #%s failed: %s", step, e)
                yield {"type": "error", "error": redact_sensitive_text(f"Model call failed: {e}")}
                finish_reason = "error"
                break
            logger.debug("Model call #%s completed in %.2fs", step, time.time() - api_start)

            assistant_message = response.choices[0].message
            if assistant_message.content:
                yield {"type": "text", "text": assistant_message.content}

            tool_calls = assistant_message.tool_calls or []
            if not tool_calls:
                history.append({"role": "assistant", "content": assistant_message.content or ""})
                finish_reason = "stop"
                break

            history.append({
                "role": "assistant",
                "content": assistant_message.content,
                "tool_calls": [
                    {
                        "id": tool_call.id,
                        "type": "function",
                        "function": {
                            "name": tool_call.function.name,
                            "arguments": tool_call.function.arguments,
                        },
                    }
                    for tool_call in tool_calls
                ],
            })

            awaiting_user = False
            for tool_call in tool_calls:
                function_name = tool_call.function.name
                try:
                    args = parse_function_args(tool_call.function.arguments)
                except ValueError:
                    args = {}

                if is_client_side_tool(function_name):
                    # Answered by the user; the result comes back in the next request
                    awaiting_user = True
                    yield {
                        "type": "tool-call",
                        "toolCallId": tool_call.id,
                        "toolName": function_name,
                        "args": args,
                        "pending": True,
                    }
                    continue

                yield {
                    "type": "tool-call",
                    "toolCallId": tool_call.id,
                    "toolName": function_name,
                    "args": args,
                    "pending": False,
                }
                tool_start = time.time()
                result = await handle_function_call(
                    function_name, tool_call.function.arguments, dispatcher=self.dispatcher)
                logger.info("Tool %s finished in %.2fs (dataCollected=%s)",
                            function_name, time.time() - tool_start, result.get("dataCollected"))

                history.append({
                    "role": "tool",
                    "tool_call_id": tool_call.id,
                    "content": _tool_result_content(result),
                })
                yield {
                    "type": "tool-result",
                    "toolCallId": tool_call.id,
                    "toolName": function_name,
                    "result": result,
                }

            if awaiting_user:
                finish_reason = "tool-calls"
                break

        if finish_reason == "length":
            logger.warning("Reached maximum iterations (%s); stopping", self.max_iterations)
        yield {"type": "finish", "finishReason": finish_reason, "steps": step}

    async def run_conversation(self, user_message: str, conversation_history: List[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Run a complete conversation and collect its events.

        Returns:
            Dict: final_response, events, api_calls and completed
        """
        messages = list(conversation_history or [])
        messages.append({"role": "user", "content": user_message})

        events = []
        texts = []
        finish = {}
        async for event in self.stream_conversation(messages):
            events.append(event)
            if event["type"] == "text":
                texts.append(event["text"])
            elif event["type"] == "finish":
                finish = event

        return {
            "final_response": texts[-1] if texts else None,
            "events": events,
            "api_calls": finish.get("steps", 0),
            "completed": finish.get("finishReason") == "stop",
        }


# ============================================================================
# CLI
# ============================================================================

async def _run_once(agent: BrowserAgent, query: str) -> Dict[str, Any]:
    from tools.session_pool import get_session_pool
    try:
        return await agent.run_conversation(query)
    finally:
        await get_session_pool().close_all()


def main(
    query: str = None,
    model: str = None,
    max_turns: int = None,
    enabled_toolsets: str = None,
    disabled_toolsets: str = None,
    list_tools: bool = False,
    verbose: bool = False,
):
    """
    Run the browser agent once from the command line.

    Args:
        query (str): What to ask the agent. Required unless list_tools is set.
        model (str): Chat model name. Defaults to the configured model.
        max_turns (int): Maximum number of model calls. Defaults to the configured max_turns.
        enabled_toolsets (str): Comma-separated toolsets to enable (e.g. "session,browser")
        disabled_toolsets (str): Comma-separated toolsets to disable (e.g. "search")
        list_tools (bool): Just list available tools and exit
        verbose (bool): Enable debug logging
    """
    from browserchat_cli.config import ConfigError, load_config, load_env_files, validate_config
    from browserchat_cli.logging_setup import setup_logging

    load_env_files()
    setup_logging(verbose=verbose)

    if list_tools:
        from model_tools import get_available_toolsets
        print("📋 Available Toolsets:")
        for name, info in get_available_toolsets().items():
            status = "✅" if info["available"] else "❌"
            print(f"  {status} {name:13} - {info['description']}")
            if info["includes"]:
                print(f"    Includes: {', '.join(info['includes'])}")
            print(f"    Tools: {', '.join(info['tools'])}")
            if not info["available"]:
                print(f"    Requirements: {', '.join(info['requirements'])}")
        return

    if not query:
        print("❌ --query is required")
        return 1

    try:
        config = validate_config(load_config())
    except ConfigError as e:
        print(f"❌ {e}")
        return 1

    agent = BrowserAgent.from_config(
        config,
        **({"model": model} if model else {}),
        **({"max_iterations": max_turns} if max_turns else {}),
        dispatcher=BrowserToolDispatcher.from_config(config),
        enabled_toolsets=[t.strip() for t in enabled_toolsets.split(",")] if enabled_toolsets else None,
        disabled_toolsets=[t.strip() for t in disabled_toolsets.split(",")] if disabled_toolsets else None,
    )

    print(f"📝 User Query: {query}")
    print("=" * 50)
    result = asyncio.run(_run_once(agent, query))

    for event in result["events"]:
        if event["type"] == "tool-call":
            marker = "⏸️ " if event["pending"] else "📞"
            print(f"{marker} {event['toolName']}({', '.join(event['args'])})")
        elif event["type"] == "tool-result":
            print(f"  → {event['result'].get('content', '')[:200]}")
        elif event["type"] == "error":
            print(f"❌ {event['error']}")

    print("=" * 50)
    print(f"✅ Completed: {result['completed']}  📞 API Calls: {result['api_calls']}")
    if result["final_response"]:
        print(f"\n🎯 FINAL RESPONSE:\n{result['final_response']}")


if __name__ == "__main__":
    fire.Fire(main)
