from __future__ import annotations

"""
HTTP surface for DTE submission.

Design intent:
- One generic create route; the dispatch engine resolves the document kind from the path.
- Map the engine's failure taxonomy to status codes deterministically.
- Keep collaborators on app.state so tests can inject their own.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator
from uuid import uuid4

from fastapi import FastAPI, HTTPException, Query, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from starlette.concurrency import run_in_threadpool

from backend.dispatch.engine import DispatchEngine
from backend.dispatch.outcome import Accepted, RequestContext, SubmissionOutcome
from backend.documents.kinds import build_default_registry
from backend.documents.transmitter import build_transmitter
from backend.internal_core.audit_store import InMemoryAuditStore
from backend.internal_core.config import DispatchConfig, load_config
from backend.internal_core.contracts import (
    AuditEventsResponse,
    DocumentCreatedResponse,
    DocumentKindInfo,
    DocumentKindsResponse,
)

logger = logging.getLogger(__name__)

FAILURE_STATUS_CODES: dict[str, int] = {
    "validation": 400,
    "not_found": 404,
    "transmission": 502,
    "internal": 500,
}


def configure_logging(cfg: DispatchConfig) -> None:
    level = getattr(logging, cfg.DTE_LOG_LEVEL.strip().upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logging.getLogger("backend").setLevel(level)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    configure_logging(_get_config())
    # Build the registry before the first request is routed.
    _get_dispatch_engine()
    yield


app = FastAPI(title="dte dispatch backend service", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _get_config() -> DispatchConfig:
    existing = getattr(app.state, "dispatch_config", None)
    if isinstance(existing, DispatchConfig):
        return existing
    created = load_config()
    setattr(app.state, "dispatch_config", created)
    return created


def _get_audit_store() -> InMemoryAuditStore:
    existing = getattr(app.state, "audit_store", None)
    if isinstance(existing, InMemoryAuditStore):
        return existing
    created = InMemoryAuditStore(max_events=_get_config().DTE_AUDIT_MAX_EVENTS)
    setattr(app.state, "audit_store", created)
    return created


def _get_dispatch_engine() -> DispatchEngine:
    existing = getattr(app.state, "dispatch_engine", None)
    if isinstance(existing, DispatchEngine):
        return existing
    cfg = _get_config()
    registry = build_default_registry(cfg, build_transmitter(cfg))
    created = DispatchEngine(registry, audit_store=_get_audit_store())
    setattr(app.state, "dispatch_engine", created)
    logger.info("Registered %d document kinds (ambient=%s)", len(registry), cfg.DTE_AMBIENT)
    return created


def _request_context(request: Request) -> RequestContext:
    request_id = (request.headers.get("x-request-id") or "").strip()[:128] or uuid4().hex
    return RequestContext(request_id=request_id, path=request.url.path)


def _to_response(
    outcome: SubmissionOutcome, context: RequestContext, response: Response
) -> DocumentCreatedResponse:
    if isinstance(outcome, Accepted):
        response.headers["X-Request-ID"] = context.request_id
        return DocumentCreatedResponse(
            success=True,
            reception_stamp=outcome.options.reception_stamp,
            qr_link=outcome.options.qr_link,
            data=dict(outcome.artifact),
        )
    failure = outcome.failure
    raise HTTPException(
        status_code=FAILURE_STATUS_CODES.get(failure.kind, 500),
        detail={"kind": failure.kind, "message": failure.message},
        headers={"X-Request-ID": context.request_id},
    )


@app.get("/healthz")
async def healthz() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/dte/kinds", response_model=DocumentKindsResponse)
async def list_document_kinds() -> DocumentKindsResponse:
    registry = _get_dispatch_engine().registry
    return DocumentKindsResponse(
        kinds=[
            DocumentKindInfo(
                route_key=descriptor.route_key,
                document_type_code=descriptor.document_type_code,
                allows_contingency=descriptor.allows_contingency,
                title=descriptor.title,
            )
            for descriptor in registry.kinds()
        ]
    )


@app.get("/audit/events", response_model=AuditEventsResponse)
async def list_audit_events(
    limit: int = Query(default=50, ge=1, le=1000),
    request_id: str | None = Query(default=None, min_length=1, max_length=128),
) -> AuditEventsResponse:
    store = _get_audit_store()
    if request_id is not None:
        return AuditEventsResponse(events=store.for_request(request_id)[-limit:])
    return AuditEventsResponse(events=store.recent(limit))


@app.post("/dte/{document_path:path}", response_model=DocumentCreatedResponse, status_code=201)
async def create_document(
    document_path: str, request: Request, response: Response
) -> DocumentCreatedResponse:
    context = _request_context(request)
    raw_body = await request.body()
    engine = _get_dispatch_engine()
    # Use cases may block on the authority; keep them off the event loop.
    outcome = await run_in_threadpool(engine.handle, context.path, raw_body, context)
    return _to_response(outcome, context, response)
