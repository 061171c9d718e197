"""
Language-model collaborator contract.

The orchestrator hands a model the bounded conversation plus a tool catalog and gets
back exactly one of:
- `TextReply`: free text to show/speak
- `ToolUseReply`: a request to run one named local tool with a JSON-like input

Implementations raise `ModelInvocationError` for any failure (network, auth, timeout,
malformed body); the orchestrator owns the recovery policy.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, Protocol, Sequence, Union

from tourguide.domain.models import ConversationTurn


@dataclass(frozen=True)
class ToolSpec:
    """One tool as advertised to the model (name, description, JSON-schema parameters)."""

    name: str
    description: str
    parameters: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class TextReply:
    content: str
    type: Literal["text"] = "text"


@dataclass(frozen=True)
class ToolUseReply:
    name: str
    input: dict[str, Any] = field(default_factory=dict)
    type: Literal["toolUse"] = "toolUse"


ModelReply = Union[TextReply, ToolUseReply]


class LanguageModel(Protocol):
    async def complete(
        self,
        turns: Sequence[ConversationTurn],
        *,
        tools: Sequence[ToolSpec],
        system: str | None = None,
    ) -> ModelReply: ...
