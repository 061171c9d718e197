"""
Where did the attractions come from?

The catalog reports every load (live tourism-board data or the built-in fallback)
through `record_ingestion_source`. Outside a `capture_ingestion_meta()` block the
report is dropped; inside it, the caller gets one entry per source name, for example

    {"attractions": {"mode": "fallback", "as_of": "...", "count": 10, "error": "..."}}

which is enough to show a "running on offline data" hint.
"""

from __future__ import annotations

import contextvars
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Iterator


@dataclass
class IngestionMeta:
    sources: dict[str, dict[str, Any]] = field(default_factory=dict)

    @property
    def degraded(self) -> bool:
        return any(entry.get("mode") == "fallback" for entry in self.sources.values())


_current: contextvars.ContextVar[IngestionMeta | None] = contextvars.ContextVar(
    "tourguide_ingestion_meta", default=None
)


def record_ingestion_source(name: str, payload: dict[str, Any]) -> None:
    meta = _current.get()
    if meta is not None and name:
        meta.sources[name] = dict(payload)


@contextmanager
def capture_ingestion_meta() -> Iterator[IngestionMeta]:
    token = _current.set(IngestionMeta())
    try:
        yield _current.get()
    finally:
        _current.reset(token)
