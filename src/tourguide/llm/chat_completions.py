"""
OpenAI-compatible `/chat/completions` adapter.

Works against any server speaking the chat-completions wire format with `tools`
(hosted APIs, vLLM, llama.cpp server). Only the first tool call of a reply is
honoured; the guide dispatches one local action per utterance.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Sequence

import httpx

from tourguide.config.settings import Settings, get_settings
from tourguide.core.errors import ModelInvocationError
from tourguide.core.http import json_headers
from tourguide.domain.models import ConversationTurn
from tourguide.llm.base import ModelReply, TextReply, ToolSpec, ToolUseReply

logger = logging.getLogger(__name__)


def tool_payload(tools: Sequence[ToolSpec]) -> list[dict[str, Any]]:
    return [
        {
            "type": "function",
            "function": {"name": t.name, "description": t.description, "parameters": t.parameters},
        }
        for t in tools
    ]


def parse_completion(payload: Any) -> ModelReply:
    """Map a chat-completions body onto a `TextReply` or `ToolUseReply`.

    Raises:
        ModelInvocationError: With reason `bad_response` if the body has no message.
    """
    try:
        message = payload["choices"][0]["message"]
    except (KeyError, IndexError, TypeError) as e:
        raise ModelInvocationError("bad_response", "chat completion has no choices[0].message") from e
    if not isinstance(message, dict):
        raise ModelInvocationError("bad_response", "chat completion message is not an object")

    tool_calls = message.get("tool_calls") or []
    if tool_calls:
        function = (tool_calls[0] or {}).get("function") or {}
        raw_args = function.get("arguments") or "{}"
        try:
            args = json.loads(raw_args) if isinstance(raw_args, str) else dict(raw_args)
        except (json.JSONDecodeError, TypeError, ValueError):
            logger.warning("Tool call %r carried unparseable arguments", function.get("name"))
            args = {}
        if not isinstance(args, dict):
            args = {}
        return ToolUseReply(name=str(function.get("name") or ""), input=args)

    content = message.get("content")
    return TextReply(content=content if isinstance(content, str) else "")


class ChatCompletionsModel:
    def __init__(self, settings: Settings | None = None, *, client: httpx.AsyncClient | None = None):
        self._settings = settings or get_settings()
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            cfg = self._settings.llm
            self._client = httpx.AsyncClient(
                base_url=cfg.base_url.rstrip("/"),
                timeout=self._settings.conversation.model_timeout_seconds,
                headers=json_headers(),
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None

    def build_messages(self, turns: Sequence[ConversationTurn], system: str | None) -> list[dict[str, str]]:
        messages: list[dict[str, str]] = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.extend({"role": t.role, "content": t.content} for t in turns)
        return messages

    async def complete(
        self,
        turns: Sequence[ConversationTurn],
        *,
        tools: Sequence[ToolSpec],
        system: str | None = None,
    ) -> ModelReply:
        cfg = self._settings.llm
        if not cfg.api_key:
            raise ModelInvocationError(
                "auth", "Language model API key not configured. Set TOURGUIDE_LLM_API_KEY in your environment or .env"
            )

        body: dict[str, Any] = {
            "model": cfg.model,
            "messages": self.build_messages(turns, system),
            "max_tokens": cfg.max_tokens,
            "temperature": cfg.temperature,
        }
        if tools:
            body["tools"] = tool_payload(tools)
            body["tool_choice"] = "auto"

        try:
            resp = await self._get_client().post(
                "/chat/completions",
                json=body,
                headers={"Authorization": f"Bearer {cfg.api_key}"},
            )
            resp.raise_for_status()
            payload = resp.json()
        except httpx.TimeoutException as e:
            raise ModelInvocationError("timeout", f"Language model request timed out: {e}") from e
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            reason = "auth" if status in (401, 403) else "error"
            raise ModelInvocationError(reason, f"Language model returned HTTP {status}") from e
        except httpx.TransportError as e:
            raise ModelInvocationError("network", f"Language model unreachable: {e}") from e
        except ValueError as e:
            raise ModelInvocationError("bad_response", f"Language model returned invalid JSON: {e}") from e

        reply = parse_completion(payload)
        logger.debug("Model reply type=%s", reply.type)
        return reply
