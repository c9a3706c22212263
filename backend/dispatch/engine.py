from __future__ import annotations

"""
Generic DTE dispatch: route -> decode -> execute -> (contingency) -> outcome.

Design intent:
- One code path for every document kind; per-kind behavior lives in the descriptor.
- A failed transmission of a contingency-capable kind becomes an accepted contingency
  document only through an explicit, audited rewrite.
- Every other failure is passed through unchanged with its original cause.
"""

import logging
from dataclasses import dataclass
from typing import List, Mapping, Optional, Tuple

from backend.internal_core import audit
from backend.internal_core.audit_store import InMemoryAuditStore
from backend.internal_core.contracts import AuditEventType, DispatchState

from .contingency import Applicable, ContingencyClassifier
from .outcome import Accepted, Failure, Rejected, RequestContext, SubmissionOutcome
from .registry import DocumentKindDescriptor, DocumentKindRegistry, RouteNotFoundError
from .rewriter import IDENTIFICATION_KEY, InvalidArtifactError, apply_contingency

logger = logging.getLogger(__name__)


def _decode_message(exc: Exception) -> str:
    errors = getattr(exc, "errors", None)
    if callable(errors):
        try:
            details = errors()
        except (TypeError, ValueError):
            details = None
        if details:
            first = details[0]
            loc = ".".join(str(part) for part in first.get("loc", ()) if part != "__root__")
            msg = str(first.get("msg", "")).strip()
            prefix = f"{loc}: " if loc else ""
            suffix = f" (+{len(details) - 1} more)" if len(details) > 1 else ""
            return f"Invalid request format: {prefix}{msg}{suffix}"
    return f"Invalid request format: {exc}"


def _generation_code(artifact: object) -> str:
    if isinstance(artifact, Mapping):
        block = artifact.get(IDENTIFICATION_KEY)
        if isinstance(block, Mapping):
            return str(block.get("codigoGeneracion") or "")
    return ""



@dataclass(frozen=True)
class DispatchTrace:
    """States one request went through; the last one is always final."""

    request_id: str
    states: Tuple[DispatchState, ...]
    route_key: Optional[str] = None

    @property
    def final_state(self) -> DispatchState:
        return self.states[-1]

    def render(self) -> str:
        return ">".join(self.states)


TracedOutcome = Tuple[SubmissionOutcome, DispatchTrace]


class DispatchEngine:
    def __init__(
        self,
        registry: DocumentKindRegistry,
        classifier: Optional[ContingencyClassifier] = None,
        audit_store: Optional[InMemoryAuditStore] = None,
    ) -> None:
        self._registry = registry
        self._classifier = classifier or ContingencyClassifier()
        self._audit_store = audit_store

    @property
    def registry(self) -> DocumentKindRegistry:
        return self._registry

    def handle(
        self,
        path: str,
        raw_body: bytes | str,
        context: Optional[RequestContext] = None,
    ) -> SubmissionOutcome:
        outcome, _ = self.handle_traced(path, raw_body, context)
        return outcome

    def handle_traced(
        self,
        path: str,
        raw_body: bytes | str,
        context: Optional[RequestContext] = None,
    ) -> TracedOutcome:
        ctx = context or RequestContext(request_id="-", path=path)
        states: List[DispatchState] = ["routing"]

        try:
            descriptor = self._registry.resolve(path)
        except RouteNotFoundError as exc:
            return self._terminal(ctx, None, Rejected(failure=Failure.not_found(str(exc))), states)
        audit.log_event(
            self._audit_store,
            ctx.request_id,
            "DISPATCH_ROUTED",
            descriptor.document_type_code,
            f"path={path}",
            route_key=descriptor.route_key,
        )

        states.append("decoding")
        body = raw_body.encode("utf-8") if isinstance(raw_body, str) else raw_body
        try:
            request = descriptor.decode(body)
        except (ValueError, TypeError) as exc:
            failure = Failure.validation(_decode_message(exc), error=exc)
            return self._terminal(ctx, descriptor, Rejected(failure=failure), states)
        except Exception as exc:
            # Decoders report bad input as ValueError; anything else is a defect.
            failure = Failure.internal(
                f"Decoder for {descriptor.route_key} failed: {exc}", error=exc
            )
            return self._terminal(ctx, descriptor, Rejected(failure=failure), states)

        states.append("executing")
        try:
            outcome = descriptor.handler.create(ctx, request)
        except Exception as exc:
            # Handlers must return failures; a raise here is a defect in the handler.
            failure = Failure.internal(f"Unexpected error processing document: {exc}", error=exc)
            return self._terminal(ctx, descriptor, Rejected(failure=failure), states)

        if isinstance(outcome, Accepted):
            generation_code = _generation_code(outcome.artifact)
            logger.info(
                "DTE %s accepted for %s (request %s)",
                generation_code,
                descriptor.route_key,
                ctx.request_id,
            )
            return self._succeeded(
                ctx,
                descriptor,
                outcome,
                states,
                event_type="DISPATCH_ACCEPTED",
                code=descriptor.document_type_code,
                detail=f"codigoGeneracion={generation_code}",
            )

        if not (descriptor.allows_contingency and outcome.failure.kind == "transmission"):
            return self._terminal(ctx, descriptor, outcome, states)
        return self._recover(ctx, descriptor, outcome, states)

    def _recover(
        self,
        ctx: RequestContext,
        descriptor: DocumentKindDescriptor,
        rejected: Rejected,
        states: List[DispatchState],
    ) -> TracedOutcome:
        states.append("classifying_failure")
        decision = self._classifier.classify(
            rejected.artifact, descriptor.document_type_code, rejected.failure
        )
        if not isinstance(decision, Applicable):
            logger.warning(
                "Contingency not applicable for %s (request %s): %s",
                descriptor.route_key,
                ctx.request_id,
                decision.why,
            )
            audit.log_event(
                self._audit_store,
                ctx.request_id,
                "CONTINGENCY_NOT_APPLICABLE",
                rejected.failure.cause or rejected.failure.kind,
                decision.why,
                route_key=descriptor.route_key,
            )
            return self._terminal(ctx, descriptor, rejected, states)

        states.append("rewriting")
        try:
            updated = apply_contingency(
                rejected.artifact, decision.contingency_type, decision.reason
            )
        except InvalidArtifactError as exc:
            if rejected.failure.error is not None:
                exc.__cause__ = rejected.failure.error
            failure = Failure.internal(
                f"{exc} (original failure: {rejected.failure.message})",
                error=exc,
                original=rejected.failure,
            )
            return self._terminal(
                ctx,
                descriptor,
                Rejected(failure=failure, artifact=rejected.artifact, options=rejected.options),
                states,
            )

        logger.warning(
            "DTE %s issued in contingency (request %s): type=%s reason=%s",
            _generation_code(updated),
            ctx.request_id,
            decision.contingency_type,
            decision.reason,
        )
        return self._succeeded(
            ctx,
            descriptor,
            Accepted(artifact=updated, options=rejected.options),
            states,
            event_type="CONTINGENCY_APPLIED",
            code=str(decision.contingency_type),
            detail=f"codigoGeneracion={_generation_code(rejected.artifact)} cause={rejected.failure.cause}",
        )

    def _succeeded(
        self,
        ctx: RequestContext,
        descriptor: DocumentKindDescriptor,
        accepted: Accepted,
        states: List[DispatchState],
        event_type: AuditEventType,
        code: str,
        detail: str,
    ) -> TracedOutcome:
        states.append("succeeded")
        trace = DispatchTrace(ctx.request_id, tuple(states), descriptor.route_key)
        audit.log_event(
            self._audit_store,
            ctx.request_id,
            event_type,
            code,
            detail,
            route_key=descriptor.route_key,
            state=trace.final_state,
            trace=trace.render(),
        )
        return accepted, trace

    def _terminal(
        self,
        ctx: RequestContext,
        descriptor: Optional[DocumentKindDescriptor],
        rejected: Rejected,
        states: List[DispatchState],
    ) -> TracedOutcome:
        failed_in = states[-1]
        states.append("terminal_failure")
        route_key = descriptor.route_key if descriptor is not None else None
        trace = DispatchTrace(ctx.request_id, tuple(states), route_key)
        failure = rejected.failure
        if failure.kind == "internal":
            logger.error(
                "Internal dispatch defect in state %s (request %s): %s",
                failed_in,
                ctx.request_id,
                failure.message,
                exc_info=failure.error,
            )
            event_type: AuditEventType = "INTERNAL_ERROR"
        else:
            logger.warning(
                "Dispatch rejected in state %s (request %s): %s",
                failed_in,
                ctx.request_id,
                failure.message,
            )
            event_type = "DISPATCH_REJECTED"
        audit.log_event(
            self._audit_store,
            ctx.request_id,
            event_type,
            failure.kind,
            f"state={failed_in} {failure.message}",
            route_key=route_key,
            state=trace.final_state,
            trace=trace.render(),
        )
        return rejected, trace
