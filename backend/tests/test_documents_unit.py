import datetime as dt
import re

import pytest

from backend.dispatch.outcome import Accepted, Rejected, RequestContext
from backend.documents.kinds import DOCUMENT_KINDS, build_default_registry
from backend.documents.models import CreditNoteRequest, InvoiceRequest, RetentionRequest
from backend.documents.transmitter import (
    MockAuthorityTransmitter,
    TransmissionError,
    build_qr_link,
    build_transmitter,
)
from backend.documents.use_cases import (
    ControlNumberSequence,
    DocumentUseCase,
    format_control_number,
)
from backend.internal_core.config import load_config

_CTX = RequestContext(request_id="t", path="/dte/invoices")

INVOICE_PAYLOAD = {
    "items": [
        {
            "type": 1,
            "description": "CODO PVC 3/4",
            "quantity": 12,
            "unit_measure": 59,
            "unit_price": 0.65,
            "taxed_sale": 7.8,
            "iva_item": 0.9,
        }
    ],
    "receiver": {
        "document_type": "13",
        "document_number": "00000000-0",
        "name": "CLIENTE DE PRUEBA",
        "address": {"department": "08", "municipality": "23", "complement": "SOYAPANGO"},
    },
    "summary": {
        "total_taxed": 7.8,
        "sub_total": 7.8,
        "sub_total_sales": 7.8,
        "total_operation": 7.8,
        "total_to_pay": 7.8,
        "total_iva": 0.9,
        "payment_types": [{"code": "01", "amount": 7.8}],
    },
}

CREDIT_NOTE_PAYLOAD = {
    "items": [
        {
            "type": 1,
            "description": "Venta gravada",
            "unit_price": 1000.0,
            "taxed_sale": 1000.0,
            "taxes": ["20"],
            "related_doc": "DE4BD411-DEBF-4EB8-B000-000000000000",
        }
    ],
    "receiver": {
        "nrc": "0000",
        "nit": "00000000000000",
        "name": "CLIENTE DE PRUEBA",
        "activity_code": "47190",
        "activity_description": "ACTIVIDADES JURIDICAS Y CONTABLES",
        "address": {"department": "06", "municipality": "22", "complement": "Direccion 1"},
    },
    "summary": {"total_taxed": 1000.0, "total_operation": 1130.0},
    "related_docs": [
        {
            "document_type": "03",
            "generation_type": 2,
            "document_number": "DE4BD411-DEBF-4EB8-B000-000000000000",
        }
    ],
}


def _fixed_clock() -> dt.datetime:
    return dt.datetime(2025, 4, 16, 15, 0, 48)


def _invoice_use_case(transmitter=None, sequence=None) -> DocumentUseCase:
    invoice_kind = next(kind for kind in DOCUMENT_KINDS if kind.route_key == "invoices")
    return DocumentUseCase(
        invoice_kind.schema,
        load_config(),
        transmitter or MockAuthorityTransmitter(),
        sequence or ControlNumberSequence(),
        clock=_fixed_clock,
    )


def test_control_number_format_and_sequence_per_type() -> None:
    sequence = ControlNumberSequence()
    assert sequence.next("01") == 1
    assert sequence.next("01") == 2
    assert sequence.next("03") == 1
    assert format_control_number("01", "M001", "P001", 7) == "DTE-01-M001P001-000000000000007"


def test_invoice_use_case_builds_identification_and_stamps_on_success() -> None:
    transmitter = MockAuthorityTransmitter()
    use_case = _invoice_use_case(transmitter)

    outcome = use_case.create(_CTX, InvoiceRequest.model_validate(INVOICE_PAYLOAD))

    assert isinstance(outcome, Accepted)
    identification = outcome.artifact["identificacion"]
    assert identification["tipoDte"] == "01"
    assert identification["ambiente"] == "00"
    assert identification["numeroControl"] == "DTE-01-M001P001-000000000000001"
    assert re.fullmatch(r"[0-9A-F]{8}-[0-9A-F]{4}-4[0-9A-F]{3}-[0-9A-F]{4}-[0-9A-F]{12}", identification["codigoGeneracion"])
    assert (identification["fecEmi"], identification["horEmi"]) == ("2025-04-16", "15:00:48")
    assert identification["tipoContingencia"] is None and identification["motivoContin"] is None
    assert outcome.artifact["cuerpoDocumento"][0]["ivaItem"] == 0.9
    assert outcome.artifact["resumen"]["pagos"][0]["montoPago"] == 7.8
    assert outcome.options.reception_stamp
    assert outcome.artifact["apendice"][-1]["valor"] == outcome.options.reception_stamp
    assert f"codGen={identification['codigoGeneracion']}" in outcome.options.qr_link
    assert transmitter.transmitted == 1


def test_transmission_failure_keeps_partial_artifact() -> None:
    use_case = _invoice_use_case(MockAuthorityTransmitter(fail_with="timeout"))

    outcome = use_case.create(_CTX, InvoiceRequest.model_validate(INVOICE_PAYLOAD))

    assert isinstance(outcome, Rejected)
    assert outcome.failure.kind == "transmission"
    assert outcome.failure.cause == "timeout"
    assert isinstance(outcome.failure.error, TransmissionError)
    assert outcome.artifact is not None
    assert outcome.artifact["identificacion"]["tipoDte"] == "01"
    assert outcome.options.reception_stamp is None
    assert outcome.options.qr_link


def test_sale_items_without_amounts_are_rejected_before_transmission() -> None:
    transmitter = MockAuthorityTransmitter()
    payload = dict(INVOICE_PAYLOAD, items=[{"type": 1, "description": "Nada"}])

    outcome = _invoice_use_case(transmitter).create(_CTX, InvoiceRequest.model_validate(payload))

    assert isinstance(outcome, Rejected)
    assert outcome.failure.kind == "validation"
    assert outcome.artifact is None
    assert transmitter.transmitted == 0


def test_credit_note_items_must_reference_related_documents() -> None:
    registry = build_default_registry(load_config(), MockAuthorityTransmitter())
    handler = registry.resolve("/dte/creditnote").handler
    payload = dict(CREDIT_NOTE_PAYLOAD)
    payload["items"] = [dict(CREDIT_NOTE_PAYLOAD["items"][0], related_doc="UNKNOWN")]

    ok = handler.create(_CTX, CreditNoteRequest.model_validate(CREDIT_NOTE_PAYLOAD))
    bad = handler.create(_CTX, CreditNoteRequest.model_validate(payload))

    assert isinstance(ok, Accepted)
    assert ok.artifact["documentoRelacionado"][0]["tipoGeneracion"] == 2
    assert isinstance(bad, Rejected)
    assert bad.failure.kind == "validation"
    assert "UNKNOWN" in bad.failure.message


def test_retention_body_totals_items() -> None:
    registry = build_default_registry(load_config(), MockAuthorityTransmitter())
    request = RetentionRequest.model_validate(
        {
            "items": [
                {"type": 2, "document_number": "A", "description": "x", "retention_code": "22", "taxed_amount": 100.0, "iva_retention": 1.0},
                {"type": 2, "document_number": "B", "description": "y", "retention_code": "22", "taxed_amount": 50.0, "iva_retention": 0.5},
            ],
            "receiver": {
                "document_type": "36",
                "document_number": "00000000000000",
                "name": "EJEMPLO",
                "activity_code": "00000",
                "activity_description": "ACTIVIDADES",
                "address": {"department": "06", "municipality": "20", "complement": "Direccion"},
            },
        }
    )

    outcome = registry.resolve("/dte/retention").handler.create(_CTX, request)

    assert isinstance(outcome, Accepted)
    assert outcome.artifact["identificacion"]["tipoDte"] == "07"
    assert outcome.artifact["resumen"] == {"totalSujetoRetencion": 150.0, "totalIVAretenido": 1.5}


def test_default_registry_contingency_flags(monkeypatch) -> None:
    registry = build_default_registry(load_config(), MockAuthorityTransmitter())
    flags = {d.route_key: (d.document_type_code, d.allows_contingency) for d in registry.kinds()}
    assert flags == {
        "ccf": ("03", True),
        "creditnote": ("05", True),
        "invoices": ("01", True),
        "retention": ("07", False),
    }

    monkeypatch.setenv("DTE_CONTINGENCY_ENABLED", "false")
    disabled = build_default_registry(load_config(), MockAuthorityTransmitter())
    assert not any(d.allows_contingency for d in disabled.kinds())


def test_build_transmitter_honours_failure_injection(monkeypatch) -> None:
    monkeypatch.setenv("DTE_TEST_INJECT_TRANSMISSION_FAILURE", "service_unavailable")
    transmitter = build_transmitter(load_config())
    with pytest.raises(TransmissionError) as excinfo:
        transmitter.transmit({"identificacion": {}})
    assert excinfo.value.cause == "service_unavailable"

    monkeypatch.setenv("DTE_TRANSMITTER", "carrier-pigeon")
    with pytest.raises(ValueError, match="Unsupported DTE_TRANSMITTER"):
        build_transmitter(load_config())


def test_qr_link_format() -> None:
    assert (
        build_qr_link("https://admin.factura.gob.sv/consultaPublica", "00", "ABC", "2025-04-16")
        == "https://admin.factura.gob.sv/consultaPublica?ambiente=00&codGen=ABC&fechaEmi=2025-04-16"
    )


def test_load_config_rejects_invalid_values(monkeypatch) -> None:
    monkeypatch.setenv("DTE_AMBIENT", "02")
    with pytest.raises(ValueError, match="DTE_AMBIENT"):
        load_config()
    monkeypatch.setenv("DTE_AMBIENT", "01")
    monkeypatch.setenv("DTE_ESTABLISHMENT_CODE", "M0001")
    with pytest.raises(ValueError, match="8 characters"):
        load_config()
