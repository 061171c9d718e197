"""
Outbound message ids.

Every message sent to the avatar/output channel carries an id. `MessageIdFactory`
hands out ids that are unique within a session; `MessageTracker` remembers ids sent
in the last `ttl_seconds` so a caller can refuse a duplicate send. Expiry is checked
lazily against the injected clock, so no timers are left behind on `clear()`.
"""

from __future__ import annotations

import itertools
import logging
import uuid
from datetime import datetime, timedelta
from typing import Any

from tourguide.core.time import Clock, utc_now

logger = logging.getLogger(__name__)


class MessageIdFactory:
    def __init__(self, prefix: str | None = None):
        self._prefix = prefix or uuid.uuid4().hex[:8]
        self._counter = itertools.count(1)

    def next_id(self) -> str:
        return f"msg-{self._prefix}-{next(self._counter)}"


class MessageTracker:
    def __init__(self, ttl_seconds: float = 30, *, clock: Clock = utc_now):
        self._ttl = timedelta(seconds=ttl_seconds)
        self._clock = clock
        self._sent: dict[str, datetime] = {}

    def _purge(self) -> None:
        now = self._clock()
        expired = [mid for mid, expires in self._sent.items() if expires <= now]
        for mid in expired:
            del self._sent[mid]

    def track(self, message_id: str) -> bool:
        """Record `message_id` as sent; returns False if it was already sent."""
        self._purge()
        if message_id in self._sent:
            logger.warning("Duplicate message detected: %s", message_id)
            return False
        self._sent[message_id] = self._clock() + self._ttl
        return True

    def is_sent(self, message_id: str) -> bool:
        self._purge()
        return message_id in self._sent

    def clear(self) -> None:
        self._sent.clear()

    def stats(self) -> dict[str, Any]:
        self._purge()
        return {"total_tracked": len(self._sent), "messages": list(self._sent)}
