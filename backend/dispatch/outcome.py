from __future__ import annotations

"""
Submission outcome and failure types shared by the dispatch engine and use cases.

Design intent:
- Keep the partial-artifact-on-failure contract explicit in the type.
- Keep the failure taxonomy small and stable so the HTTP boundary can map it deterministically.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Literal, Mapping, Optional, Union

from backend.internal_core.contracts import ResponseOptions


FailureKind = Literal["validation", "transmission", "internal", "not_found"]

TransmissionCause = Literal[
    "service_unavailable",
    "timeout",
    "rate_limited",
    "maintenance",
    "emitter_system_failure",
    "connection_error",
    "power_failure",
    "other",
    "rejected",
]

FAILURE_KINDS: frozenset[str] = frozenset({"validation", "transmission", "internal", "not_found"})

Artifact = Mapping[str, Any]


@dataclass(frozen=True)
class Failure:
    kind: FailureKind
    message: str
    cause: Optional[str] = None
    error: Optional[BaseException] = field(default=None, compare=False, repr=False)
    # Failure this one replaced, when a recovery step itself failed.
    original: Optional["Failure"] = field(default=None, compare=False, repr=False)

    def __post_init__(self) -> None:
        if self.kind not in FAILURE_KINDS:
            raise ValueError(f"Unknown failure kind: {self.kind!r}")

    @classmethod
    def validation(cls, message: str, error: BaseException | None = None) -> "Failure":
        return cls(kind="validation", message=message, error=error)

    @classmethod
    def transmission(
        cls, message: str, cause: str | None = None, error: BaseException | None = None
    ) -> "Failure":
        return cls(kind="transmission", message=message, cause=cause, error=error)

    @classmethod
    def internal(
        cls,
        message: str,
        error: BaseException | None = None,
        original: "Failure | None" = None,
    ) -> "Failure":
        return cls(kind="internal", message=message, error=error, original=original)

    @classmethod
    def not_found(cls, message: str) -> "Failure":
        return cls(kind="not_found", message=message)


@dataclass(frozen=True)
class Accepted:
    artifact: Artifact
    options: ResponseOptions = field(default_factory=ResponseOptions)


@dataclass(frozen=True)
class Rejected:
    failure: Failure
    artifact: Optional[Artifact] = None
    options: ResponseOptions = field(default_factory=ResponseOptions)


SubmissionOutcome = Union[Accepted, Rejected]


@dataclass(frozen=True)
class RequestContext:
    request_id: str
    path: str


class UseCaseHandler(ABC):
    """Per-document-kind handler: validate, build, sign and transmit.

    Implementations return every failure as a ``Rejected`` outcome and attach
    the partially built artifact whenever construction got that far, so that
    contingency recovery has something to rewrite.
    """

    @abstractmethod
    def create(self, context: RequestContext, request: Any) -> SubmissionOutcome: ...
