from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional


_TRUE_VALUES = {"1", "true", "t", "yes", "y", "on"}


def _getenv_str(name: str, default: str) -> str:
    value = os.getenv(name)
    return default if value is None else value


def _getenv_opt_str(name: str) -> Optional[str]:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return None
    return value.strip()


def _getenv_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return int(value)


def _getenv_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in _TRUE_VALUES


@dataclass(frozen=True)
class DispatchConfig:
    DTE_AMBIENT: str
    DTE_LOG_LEVEL: str
    DTE_CONTINGENCY_ENABLED: bool
    DTE_TRANSMITTER: str
    DTE_EMITTER_NIT: str
    DTE_EMITTER_NRC: str
    DTE_EMITTER_NAME: str
    DTE_EMITTER_ACTIVITY_CODE: str
    DTE_EMITTER_ACTIVITY_DESC: str
    DTE_ESTABLISHMENT_CODE: str
    DTE_POS_CODE: str
    DTE_QR_BASE_URL: str
    DTE_AUDIT_MAX_EVENTS: int
    DTE_TEST_INJECT_TRANSMISSION_FAILURE: Optional[str]

    def emitter_block(self) -> dict[str, object]:
        return {
            "nit": self.DTE_EMITTER_NIT,
            "nrc": self.DTE_EMITTER_NRC,
            "nombre": self.DTE_EMITTER_NAME,
            "codActividad": self.DTE_EMITTER_ACTIVITY_CODE,
            "descActividad": self.DTE_EMITTER_ACTIVITY_DESC,
            "codEstable": self.DTE_ESTABLISHMENT_CODE,
            "codPuntoVenta": self.DTE_POS_CODE,
        }


def load_config() -> DispatchConfig:
    ambient = _getenv_str("DTE_AMBIENT", "00").strip()
    if ambient not in {"00", "01"}:
        raise ValueError(f"DTE_AMBIENT must be '00' or '01', got {ambient!r}")

    audit_max_events = _getenv_int("DTE_AUDIT_MAX_EVENTS", 1000)
    if audit_max_events < 1:
        raise ValueError("DTE_AUDIT_MAX_EVENTS must be >= 1")

    establishment = _getenv_str("DTE_ESTABLISHMENT_CODE", "M001")
    pos = _getenv_str("DTE_POS_CODE", "P001")
    if len(establishment) + len(pos) != 8:
        # numeroControl reserves exactly eight characters for establishment + point of sale.
        raise ValueError("DTE_ESTABLISHMENT_CODE and DTE_POS_CODE must total 8 characters")

    return DispatchConfig(
        DTE_AMBIENT=ambient,
        DTE_LOG_LEVEL=_getenv_str("DTE_LOG_LEVEL", "INFO"),
        DTE_CONTINGENCY_ENABLED=_getenv_bool("DTE_CONTINGENCY_ENABLED", True),
        DTE_TRANSMITTER=_getenv_str("DTE_TRANSMITTER", "mock"),
        DTE_EMITTER_NIT=_getenv_str("DTE_EMITTER_NIT", "00000000000000"),
        DTE_EMITTER_NRC=_getenv_str("DTE_EMITTER_NRC", "0000000"),
        DTE_EMITTER_NAME=_getenv_str("DTE_EMITTER_NAME", "EMPRESA DE PRUEBAS SA DE CV"),
        DTE_EMITTER_ACTIVITY_CODE=_getenv_str("DTE_EMITTER_ACTIVITY_CODE", "00000"),
        DTE_EMITTER_ACTIVITY_DESC=_getenv_str(
            "DTE_EMITTER_ACTIVITY_DESC", "Venta al por mayor de otros productos"
        ),
        DTE_ESTABLISHMENT_CODE=establishment,
        DTE_POS_CODE=pos,
        DTE_QR_BASE_URL=_getenv_str(
            "DTE_QR_BASE_URL", "https://admin.factura.gob.sv/consultaPublica"
        ),
        DTE_AUDIT_MAX_EVENTS=audit_max_events,
        DTE_TEST_INJECT_TRANSMISSION_FAILURE=_getenv_opt_str(
            "DTE_TEST_INJECT_TRANSMISSION_FAILURE"
        ),
    )
