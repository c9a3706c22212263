from __future__ import annotations

"""
Classify transmission failures into authority contingency types.

Design intent:
- Pure and total: no I/O, never raises, always returns a decision.
- Only transmission failures with a known outage cause qualify; everything else stays terminal.
- The cause -> contingency code table mirrors the authority catalogue and can be replaced
  wholesale when the catalogue changes.
"""

from dataclasses import dataclass
from typing import Any, Mapping, Optional, Union

from .outcome import Failure


@dataclass(frozen=True)
class ContingencyCode:
    contingency_type: int
    reason: str


@dataclass(frozen=True)
class NotApplicable:
    why: str

    @property
    def applicable(self) -> bool:
        return False


@dataclass(frozen=True)
class Applicable:
    # Written verbatim into identificacion.tipoContingencia.
    contingency_type: Union[int, str]
    reason: str

    @property
    def applicable(self) -> bool:
        return True


ContingencyDecision = Union[NotApplicable, Applicable]


MH_UNAVAILABLE = ContingencyCode(1, "No disponibilidad de sistema del MH")
EMITTER_UNAVAILABLE = ContingencyCode(2, "No disponibilidad de sistema del emisor")
INTERNET_FAILURE = ContingencyCode(3, "Falla en el suministro de servicio de Internet del Emisor")
POWER_FAILURE = ContingencyCode(
    4,
    "Falla en el suministro de servicio de energía eléctrica del emisor "
    "que impida la transmisión de los DTE",
)
OTHER_CONTINGENCY_TYPE = 5
MAX_OTHER_REASON_CHARS = 500

DEFAULT_CAUSE_CODES: Mapping[str, ContingencyCode] = {
    "service_unavailable": MH_UNAVAILABLE,
    "timeout": MH_UNAVAILABLE,
    "rate_limited": MH_UNAVAILABLE,
    "maintenance": MH_UNAVAILABLE,
    "emitter_system_failure": EMITTER_UNAVAILABLE,
    "connection_error": INTERNET_FAILURE,
    "power_failure": POWER_FAILURE,
}

# Document types the authority accepts inside a contingency event.
CONTINGENCY_DOCUMENT_TYPES: frozenset[str] = frozenset(
    {"01", "03", "04", "05", "06", "11", "14"}
)


def infer_cause(error: Optional[BaseException]) -> Optional[str]:
    if error is None:
        return None
    if isinstance(error, TimeoutError):
        return "timeout"
    if isinstance(error, ConnectionError):
        return "connection_error"
    return None


class ContingencyClassifier:
    def __init__(
        self,
        cause_codes: Optional[Mapping[str, ContingencyCode]] = None,
        document_types: Optional[frozenset[str]] = None,
    ) -> None:
        self._cause_codes = dict(DEFAULT_CAUSE_CODES if cause_codes is None else cause_codes)
        self._document_types = (
            CONTINGENCY_DOCUMENT_TYPES if document_types is None else frozenset(document_types)
        )

    def classify(
        self,
        artifact: Optional[Mapping[str, Any]],
        document_type_code: str,
        failure: Failure,
    ) -> ContingencyDecision:
        if failure.kind != "transmission":
            return NotApplicable(f"failure kind {failure.kind} is terminal")
        if artifact is None:
            return NotApplicable("no artifact was produced")
        if document_type_code not in self._document_types:
            return NotApplicable(f"document type {document_type_code} cannot be issued in contingency")

        cause = failure.cause or infer_cause(failure.error)
        if cause is None:
            return NotApplicable("transmission cause unknown")
        if cause == "other":
            reason = (failure.message or "").strip()[:MAX_OTHER_REASON_CHARS]
            if not reason:
                return NotApplicable("cause 'other' requires a reason")
            return Applicable(contingency_type=OTHER_CONTINGENCY_TYPE, reason=reason)

        code = self._cause_codes.get(cause)
        if code is None:
            return NotApplicable(f"cause {cause} is not a contingency condition")
        return Applicable(contingency_type=code.contingency_type, reason=code.reason)
