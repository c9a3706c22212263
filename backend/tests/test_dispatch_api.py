from contextlib import contextmanager
from typing import Iterator, Optional

from fastapi.testclient import TestClient

from backend.api.main import app
from backend.dispatch.engine import DispatchEngine
from backend.documents.kinds import build_default_registry
from backend.documents.transmitter import MockAuthorityTransmitter
from backend.internal_core.audit_store import InMemoryAuditStore
from backend.internal_core.config import load_config

_STATE_KEYS = ("dispatch_config", "audit_store", "dispatch_engine")

INVOICE = {
    "items": [
        {
            "type": 1,
            "description": "Servicio de consultoria",
            "unit_price": 99.05,
            "taxed_sale": 99.05,
            "iva_item": 11.39,
        }
    ],
    "summary": {"total_taxed": 99.05, "total_operation": 99.05, "total_to_pay": 99.05},
}

CCF = {
    "items": [
        {
            "type": 2,
            "description": "Mantenimiento",
            "unit_price": 200.0,
            "taxed_sale": 200.0,
            "taxes": ["20"],
        }
    ],
    "receiver": {
        "nit": "06140000000000",
        "nrc": "1234567",
        "name": "CLIENTE SA DE CV",
        "activity_code": "46900",
        "activity_description": "Venta al por mayor",
        "address": {"department": "06", "municipality": "14", "complement": "San Salvador"},
    },
    "summary": {"total_taxed": 200.0, "total_operation": 226.0, "total_to_pay": 226.0},
}

RETENTION = {
    "items": [
        {
            "type": 2,
            "document_number": "DE4BD411-DEBF-4EB8-B000-000000000000",
            "description": "Retencion IVA",
            "retention_code": "22",
            "taxed_amount": 100.0,
            "iva_retention": 1.0,
        }
    ],
    "receiver": {
        "document_type": "36",
        "document_number": "06140000000000",
        "name": "PROVEEDOR SA DE CV",
        "activity_code": "46900",
        "activity_description": "Venta al por mayor",
        "address": {"department": "06", "municipality": "14", "complement": "San Salvador"},
    },
}


@contextmanager
def _dispatch_state(fail_with: Optional[str] = None) -> Iterator[InMemoryAuditStore]:
    cfg = load_config()
    store = InMemoryAuditStore(max_events=100)
    registry = build_default_registry(cfg, MockAuthorityTransmitter(fail_with=fail_with))
    app.state.dispatch_config = cfg
    app.state.audit_store = store
    app.state.dispatch_engine = DispatchEngine(registry, audit_store=store)
    try:
        yield store
    finally:
        for key in _STATE_KEYS:
            if hasattr(app.state, key):
                delattr(app.state, key)


def test_healthz() -> None:
    client = TestClient(app)
    response = client.get("/healthz")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_create_invoice_returns_stamped_document() -> None:
    client = TestClient(app)
    with _dispatch_state():
        response = client.post("/dte/invoices", json=INVOICE)

    assert response.status_code == 201
    payload = response.json()
    assert payload["success"] is True
    assert payload["reception_stamp"]
    assert payload["qr_link"].startswith("https://admin.factura.gob.sv/consultaPublica?ambiente=00")
    identification = payload["data"]["identificacion"]
    assert identification["tipoDte"] == "01"
    assert identification["tipoContingencia"] is None
    assert payload["data"]["emisor"]["codEstable"] == "M001"


def test_unknown_document_kind_returns_404() -> None:
    client = TestClient(app)
    with _dispatch_state():
        response = client.post("/dte/unknown", json=INVOICE)

    assert response.status_code == 404
    assert response.json()["detail"]["kind"] == "not_found"


def test_malformed_body_returns_400() -> None:
    client = TestClient(app)
    with _dispatch_state():
        broken = client.post(
            "/dte/invoices", content=b"{not json", headers={"content-type": "application/json"}
        )
        no_items = client.post("/dte/invoices", json={"items": [], "summary": {}})

    assert broken.status_code == 400
    assert broken.json()["detail"]["kind"] == "validation"
    assert no_items.status_code == 400


def test_ccf_outage_is_issued_in_contingency() -> None:
    client = TestClient(app)
    with _dispatch_state(fail_with="service_unavailable") as store:
        response = client.post("/dte/ccf", json=CCF, headers={"X-Request-ID": "ccf-outage"})
        events = [event.type for event in store.for_request("ccf-outage")]

    assert response.status_code == 201
    payload = response.json()
    identification = payload["data"]["identificacion"]
    assert identification["tipoDte"] == "03"
    assert identification["tipoContingencia"] == 1
    assert identification["motivoContin"]
    assert payload["reception_stamp"] is None
    assert response.headers["X-Request-ID"] == "ccf-outage"
    assert events == ["DISPATCH_ROUTED", "CONTINGENCY_APPLIED"]


def test_retention_outage_surfaces_transmission_failure() -> None:
    client = TestClient(app)
    with _dispatch_state(fail_with="service_unavailable"):
        response = client.post("/dte/retention", json=RETENTION)

    assert response.status_code == 502
    assert response.json()["detail"]["kind"] == "transmission"


def test_authority_rejection_is_not_issued_in_contingency() -> None:
    client = TestClient(app)
    with _dispatch_state(fail_with="rejected"):
        response = client.post("/dte/invoices", json=INVOICE, headers={"X-Request-ID": "rej-1"})

    assert response.status_code == 502
    assert response.json()["detail"]["message"] == "Documento rechazado por el MH"
    assert response.headers["X-Request-ID"] == "rej-1"


def test_list_document_kinds() -> None:
    client = TestClient(app)
    with _dispatch_state():
        response = client.get("/dte/kinds")

    assert response.status_code == 200
    kinds = {kind["route_key"]: kind for kind in response.json()["kinds"]}
    assert sorted(kinds) == ["ccf", "creditnote", "invoices", "retention"]
    assert kinds["retention"]["allows_contingency"] is False
    assert kinds["ccf"]["document_type_code"] == "03"


def test_audit_events_filter_by_request_id() -> None:
    client = TestClient(app)
    with _dispatch_state():
        client.post("/dte/invoices", json=INVOICE, headers={"X-Request-ID": "audit-a"})
        client.post("/dte/unknown", json=INVOICE, headers={"X-Request-ID": "audit-b"})
        filtered = client.get("/audit/events", params={"request_id": "audit-a"})
        recent = client.get("/audit/events", params={"limit": 1})

    assert filtered.status_code == 200
    assert [event["type"] for event in filtered.json()["events"]] == [
        "DISPATCH_ROUTED",
        "DISPATCH_ACCEPTED",
    ]
    latest = recent.json()["events"]
    assert len(latest) == 1
    assert latest[0]["request_id"] == "audit-b"
    assert latest[0]["code"] == "not_found"
