from __future__ import annotations

import datetime as _dt
from typing import Optional

from .audit_store import InMemoryAuditStore
from .contracts import AuditEvent, AuditEventType, DispatchState


def _ts_iso() -> str:
    return _dt.datetime.now(_dt.timezone.utc).isoformat()


def _sanitize_detail(detail: str) -> str:
    # Never include document bodies in detail; identifiers and messages only.
    detail = (detail or "").replace("\n", " ").strip()
    if len(detail) > 200:
        detail = detail[:200] + "…"
    return detail


def log_event(
    store: Optional[InMemoryAuditStore],
    request_id: str,
    event_type: AuditEventType,
    code: str,
    detail: str,
    route_key: Optional[str] = None,
    state: Optional[DispatchState] = None,
    trace: Optional[str] = None,
) -> None:
    if store is None:
        return
    event = AuditEvent(
        ts_iso=_ts_iso(),
        request_id=request_id,
        type=event_type,
        code=code,
        detail=_sanitize_detail(detail),
        route_key=route_key,
        state=state,
        trace=trace,
    )
    store.append(event)
