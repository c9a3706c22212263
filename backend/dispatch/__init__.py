"""
Document dispatch core for the DTE backend.

Design intent:
- Route every document kind through one engine driven by registry descriptors.
- Recover eligible transmission failures as contingency documents, never silently.
"""
from .contingency import Applicable, ContingencyClassifier, ContingencyDecision, NotApplicable
from .engine import DispatchEngine, DispatchTrace
from .outcome import (
    Accepted,
    Failure,
    FailureKind,
    Rejected,
    RequestContext,
    SubmissionOutcome,
    UseCaseHandler,
)
from .registry import (
    ConfigurationError,
    DocumentKindDescriptor,
    DocumentKindRegistry,
    RegistryBuilder,
    RouteNotFoundError,
)
from .rewriter import InvalidArtifactError, apply_contingency

__all__ = [
    "Accepted",
    "Applicable",
    "ConfigurationError",
    "ContingencyClassifier",
    "ContingencyDecision",
    "DispatchEngine",
    "DispatchTrace",
    "DocumentKindDescriptor",
    "DocumentKindRegistry",
    "Failure",
    "FailureKind",
    "InvalidArtifactError",
    "NotApplicable",
    "RegistryBuilder",
    "Rejected",
    "RequestContext",
    "RouteNotFoundError",
    "SubmissionOutcome",
    "UseCaseHandler",
    "apply_contingency",
]
