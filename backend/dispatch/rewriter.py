from __future__ import annotations

import copy
from typing import Any, Mapping, Union

IDENTIFICATION_KEY = "identificacion"
CONTINGENCY_TYPE_KEY = "tipoContingencia"
CONTINGENCY_REASON_KEY = "motivoContin"


class InvalidArtifactError(ValueError):
    pass


def apply_contingency(
    artifact: Mapping[str, Any],
    contingency_type: Union[int, str],
    reason: str,
) -> dict[str, Any]:
    """Return a deep copy of ``artifact`` with the contingency fields set.

    Only ``identificacion.tipoContingencia`` and ``identificacion.motivoContin``
    change; the input is left untouched.
    """
    if not isinstance(artifact, Mapping):
        raise InvalidArtifactError(
            f"Artifact must be a mapping, got {type(artifact).__name__}"
        )
    identification = artifact.get(IDENTIFICATION_KEY)
    if not isinstance(identification, Mapping):
        raise InvalidArtifactError(
            f"Artifact has no '{IDENTIFICATION_KEY}' block to record contingency"
        )

    updated = copy.deepcopy(dict(artifact))
    block = dict(updated[IDENTIFICATION_KEY])
    block[CONTINGENCY_TYPE_KEY] = contingency_type
    block[CONTINGENCY_REASON_KEY] = reason
    updated[IDENTIFICATION_KEY] = block
    return updated
