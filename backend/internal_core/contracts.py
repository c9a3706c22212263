from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

DispatchState = Literal[
    "routing",
    "decoding",
    "executing",
    "classifying_failure",
    "rewriting",
    "succeeded",
    "terminal_failure",
]


AuditEventType = Literal[
    "DISPATCH_ROUTED",
    "DISPATCH_ACCEPTED",
    "CONTINGENCY_APPLIED",
    "CONTINGENCY_NOT_APPLICABLE",
    "DISPATCH_REJECTED",
    "INTERNAL_ERROR",
]


class AuditEvent(BaseModel):
    model_config = ConfigDict(extra="forbid")

    ts_iso: str
    request_id: str
    type: AuditEventType
    code: str
    detail: str
    route_key: Optional[str] = None
    # Set only on the event that closes a request: its final state and the path taken.
    state: Optional[DispatchState] = None
    trace: Optional[str] = None


class DocumentKindInfo(BaseModel):
    model_config = ConfigDict(extra="forbid")

    route_key: str
    document_type_code: str
    allows_contingency: bool
    title: str


class ResponseOptions(BaseModel):
    model_config = ConfigDict(extra="forbid")

    ambient: Optional[str] = None
    reception_stamp: Optional[str] = None
    qr_link: Optional[str] = None


class DocumentCreatedResponse(BaseModel):
    success: bool = True
    reception_stamp: Optional[str] = None
    qr_link: Optional[str] = None
    data: Dict[str, Any] = Field(default_factory=dict)


class DocumentKindsResponse(BaseModel):
    kinds: List[DocumentKindInfo] = Field(default_factory=list)


class AuditEventsResponse(BaseModel):
    events: List[AuditEvent] = Field(default_factory=list)
