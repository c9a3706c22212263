from __future__ import annotations

import datetime as _dt
import hashlib
from abc import ABC, abstractmethod
from dataclasses import dataclass
from threading import Lock
from typing import Any, Mapping, Optional

from backend.internal_core.config import DispatchConfig


class TransmissionError(RuntimeError):
    def __init__(self, cause: str, message: str, transmitter_name: str = ""):
        super().__init__(message)
        self.cause = cause
        self.message = message
        self.transmitter_name = transmitter_name


@dataclass(frozen=True)
class TransmissionReceipt:
    reception_stamp: str


class AuthorityTransmitter(ABC):
    @abstractmethod
    def transmit(self, artifact: Mapping[str, Any]) -> TransmissionReceipt: ...

    @abstractmethod
    def name(self) -> str: ...


_MOCK_FAILURE_MESSAGES = {
    "service_unavailable": "Authority service unavailable (HTTP 503)",
    "timeout": "Authority did not answer before the deadline",
    "rate_limited": "Authority rate limit exceeded (HTTP 429)",
    "maintenance": "Authority under scheduled maintenance",
    "connection_error": "Could not connect to the authority",
    "rejected": "Documento rechazado por el MH",
}


class MockAuthorityTransmitter(AuthorityTransmitter):
    def __init__(self, fail_with: Optional[str] = None) -> None:
        self._fail_with = fail_with
        self._lock = Lock()
        self._counter = 0

    @property
    def transmitted(self) -> int:
        with self._lock:
            return self._counter

    def transmit(self, artifact: Mapping[str, Any]) -> TransmissionReceipt:
        if self._fail_with:
            raise TransmissionError(
                self._fail_with,
                _MOCK_FAILURE_MESSAGES.get(self._fail_with, f"(mock) transmission failed: {self._fail_with}"),
                self.name(),
            )
        identification = artifact.get("identificacion") or {}
        generation_code = str(identification.get("codigoGeneracion") or "")
        now = _dt.datetime.now(_dt.timezone.utc)
        digest = hashlib.sha256(generation_code.encode("utf-8")).hexdigest().upper()
        with self._lock:
            self._counter += 1
        return TransmissionReceipt(reception_stamp=f"{now.year}{digest[:36]}")

    def name(self) -> str:
        return "mock"


def build_qr_link(base_url: str, ambient: str, generation_code: str, emission_date: str) -> str:
    return f"{base_url}?ambiente={ambient}&codGen={generation_code}&fechaEmi={emission_date}"


def build_transmitter(cfg: DispatchConfig) -> AuthorityTransmitter:
    provider = cfg.DTE_TRANSMITTER.strip().lower()
    if provider == "mock":
        return MockAuthorityTransmitter(fail_with=cfg.DTE_TEST_INJECT_TRANSMISSION_FAILURE)
    raise ValueError(f"Unsupported DTE_TRANSMITTER: {cfg.DTE_TRANSMITTER}")
