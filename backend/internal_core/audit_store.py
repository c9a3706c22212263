from __future__ import annotations

from collections import deque
from threading import RLock
from typing import Deque, List, Optional

from .contracts import AuditEvent


class InMemoryAuditStore:
    """Bounded, lock-protected trail of dispatch audit events.

    Oldest events are evicted once ``max_events`` is reached.
    """

    def __init__(self, max_events: int):
        if max_events < 1:
            raise ValueError("max_events must be >= 1")
        self._lock = RLock()
        self._events: Deque[AuditEvent] = deque(maxlen=max_events)

    def append(self, event: AuditEvent) -> None:
        with self._lock:
            self._events.append(event)

    def recent(self, limit: Optional[int] = None) -> List[AuditEvent]:
        with self._lock:
            events = list(self._events)
        if limit is None or limit >= len(events):
            return events
        if limit <= 0:
            return []
        return events[-limit:]

    def for_request(self, request_id: str) -> List[AuditEvent]:
        with self._lock:
            return [event for event in self._events if event.request_id == request_id]

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)
