from __future__ import annotations

"""
Reference use cases: build a DTE artifact from a decoded request and transmit it.

Design intent:
- Keep per-kind differences in small body builders; identity, numbering and
  transmission are shared.
- Return every failure as a typed outcome and keep the built artifact on
  transmission failures so the dispatch engine can issue it in contingency.
- Amounts are carried from the request as given; tax computation is not done here.
"""

import datetime as _dt
import logging
import uuid
from dataclasses import dataclass
from threading import Lock
from typing import Any, Callable, Optional, Sequence

from backend.dispatch.outcome import (
    Accepted,
    Failure,
    Rejected,
    RequestContext,
    SubmissionOutcome,
    UseCaseHandler,
)
from backend.internal_core.config import DispatchConfig
from backend.internal_core.contracts import ResponseOptions

from .models import (
    Address,
    Appendix,
    CCFRequest,
    CreditNoteRequest,
    Extension,
    InvoiceRequest,
    Item,
    RelatedDoc,
    RetentionRequest,
    Summary,
)
from .transmitter import AuthorityTransmitter, TransmissionError, build_qr_link

logger = logging.getLogger(__name__)

# El Salvador does not observe daylight saving time.
SV_TZ = _dt.timezone(_dt.timedelta(hours=-6), name="America/El_Salvador")


class ControlNumberSequence:
    """Per-document-type counter for numeroControl; in memory only."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._counters: dict[str, int] = {}

    def next(self, document_type_code: str) -> int:
        with self._lock:
            value = self._counters.get(document_type_code, 0) + 1
            self._counters[document_type_code] = value
            return value


def format_control_number(document_type_code: str, establishment: str, pos: str, sequence: int) -> str:
    return f"DTE-{document_type_code}-{establishment}{pos}-{sequence:015d}"


def _address(address: Optional[Address]) -> Optional[dict[str, Any]]:
    if address is None:
        return None
    return {
        "departamento": address.department,
        "municipio": address.municipality,
        "complemento": address.complement,
    }


def _extension(extension: Optional[Extension]) -> Optional[dict[str, Any]]:
    if extension is None:
        return None
    return {
        "nombEntrega": extension.delivery_name,
        "docuEntrega": extension.delivery_document,
        "nombRecibe": extension.receiver_name,
        "docuRecibe": extension.receiver_document,
        "observaciones": extension.observation,
        "placaVehiculo": extension.vehicle_plate,
    }


def _related_docs(docs: Optional[Sequence[RelatedDoc]]) -> Optional[list[dict[str, Any]]]:
    if not docs:
        return None
    return [
        {
            "tipoDocumento": doc.document_type,
            "tipoGeneracion": doc.generation_type,
            "numeroDocumento": doc.document_number,
            "fechaEmision": doc.emission_date,
        }
        for doc in docs
    ]


def _appendixes(appendixes: Optional[Sequence[Appendix]]) -> list[dict[str, Any]]:
    return [
        {"campo": item.field, "etiqueta": item.label, "valor": item.value}
        for item in (appendixes or [])
    ]


def _sale_items(items: Sequence[Item], *, with_iva: bool) -> list[dict[str, Any]]:
    body: list[dict[str, Any]] = []
    for index, item in enumerate(items, start=1):
        entry: dict[str, Any] = {
            "numItem": index,
            "tipoItem": item.type,
            "numeroDocumento": item.related_doc,
            "codigo": item.code,
            "codTributo": None,
            "descripcion": item.description,
            "cantidad": item.quantity,
            "uniMedida": item.unit_measure,
            "precioUni": item.unit_price,
            "montoDescu": item.discount,
            "ventaNoSuj": item.non_subject_sale,
            "ventaExenta": item.exempt_sale,
            "ventaGravada": item.taxed_sale,
            "tributos": list(item.taxes) if item.taxes else None,
            "psv": item.suggested_price,
            "noGravado": item.non_taxed,
        }
        if with_iva:
            entry["ivaItem"] = item.iva_item
        body.append(entry)
    return body


def _summary(summary: Summary) -> dict[str, Any]:
    return {
        "totalNoSuj": summary.total_non_subject,
        "totalExenta": summary.total_exempt,
        "totalGravada": summary.total_taxed,
        "subTotalVentas": summary.sub_total_sales,
        "descuNoSuj": summary.non_subject_discount,
        "descuExenta": summary.exempt_discount,
        "descuGravada": summary.taxed_discount,
        "porcentajeDescuento": summary.discount_percentage,
        "totalDescu": summary.total_discount,
        "tributos": [
            {"codigo": tax.code, "descripcion": tax.description, "valor": tax.value}
            for tax in summary.taxes
        ],
        "subTotal": summary.sub_total,
        "ivaPerci1": summary.iva_perception,
        "ivaRete1": summary.iva_retention,
        "reteRenta": summary.income_retention,
        "montoTotalOperacion": summary.total_operation,
        "totalNoGravado": summary.total_non_taxed,
        "totalPagar": summary.total_to_pay,
        "totalIva": summary.total_iva,
        "saldoFavor": summary.balance_in_favor,
        "condicionOperacion": summary.operation_condition,
        "pagos": [
            {
                "codigo": payment.code,
                "montoPago": payment.amount,
                "referencia": payment.reference,
                "plazo": payment.term,
                "periodo": payment.period,
            }
            for payment in summary.payment_types
        ]
        or None,
    }


def build_invoice_body(request: InvoiceRequest) -> dict[str, Any]:
    receiver = request.receiver
    return {
        "receptor": None
        if receiver is None
        else {
            "nombre": receiver.name,
            "tipoDocumento": receiver.document_type,
            "numDocumento": receiver.document_number,
            "nrc": receiver.nrc,
            "codActividad": receiver.activity_code,
            "descActividad": receiver.activity_description,
            "direccion": _address(receiver.address),
            "telefono": receiver.phone,
            "correo": receiver.email,
        },
        "cuerpoDocumento": _sale_items(request.items, with_iva=True),
        "resumen": _summary(request.summary),
        "documentoRelacionado": _related_docs(request.related_docs),
        "otrosDocumentos": [doc.model_dump() for doc in request.other_docs] if request.other_docs else None,
        "ventaTercero": request.third_party_sale.model_dump() if request.third_party_sale else None,
        "extension": _extension(request.extension),
        "apendice": _appendixes(request.appendixes),
    }


def _taxpayer_body(request: CCFRequest | CreditNoteRequest) -> dict[str, Any]:
    receiver = request.receiver
    return {
        "receptor": {
            "nit": receiver.nit,
            "nrc": receiver.nrc,
            "nombre": receiver.name,
            "nombreComercial": receiver.commercial_name,
            "codActividad": receiver.activity_code,
            "descActividad": receiver.activity_description,
            "direccion": _address(receiver.address),
            "telefono": receiver.phone,
            "correo": receiver.email,
        },
        "cuerpoDocumento": _sale_items(request.items, with_iva=False),
        "resumen": _summary(request.summary),
        "documentoRelacionado": _related_docs(request.related_docs),
        "ventaTercero": request.third_party_sale.model_dump() if request.third_party_sale else None,
        "extension": _extension(request.extension),
        "apendice": _appendixes(request.appendixes),
    }


def build_ccf_body(request: CCFRequest) -> dict[str, Any]:
    body = _taxpayer_body(request)
    body["otrosDocumentos"] = (
        [doc.model_dump() for doc in request.other_docs] if request.other_docs else None
    )
    return body


def build_credit_note_body(request: CreditNoteRequest) -> dict[str, Any]:
    return _taxpayer_body(request)


def build_retention_body(request: RetentionRequest) -> dict[str, Any]:
    receiver = request.receiver
    items = [
        {
            "numItem": index,
            "tipoDte": "03",
            "tipoDoc": item.type,
            "numDocumento": item.document_number,
            "fechaEmision": item.emission_date,
            "montoSujetoGrav": item.taxed_amount,
            "codigoRetencionMH": item.retention_code,
            "ivaRetenido": item.iva_retention,
            "descripcion": item.description,
        }
        for index, item in enumerate(request.items, start=1)
    ]
    return {
        "receptor": {
            "tipoDocumento": receiver.document_type,
            "numDocumento": receiver.document_number,
            "nrc": receiver.nrc,
            "nombre": receiver.name,
            "nombreComercial": receiver.commercial_name,
            "codActividad": receiver.activity_code,
            "descActividad": receiver.activity_description,
            "direccion": _address(receiver.address),
            "telefono": receiver.phone,
            "correo": receiver.email,
        },
        "cuerpoDocumento": items,
        "resumen": {
            "totalSujetoRetencion": round(sum(item.taxed_amount for item in request.items), 2),
            "totalIVAretenido": round(sum(item.iva_retention for item in request.items), 2),
        },
        "extension": _extension(request.extension),
        "apendice": _appendixes(request.appendixes),
    }


def validate_sale_items(request: InvoiceRequest | CCFRequest | CreditNoteRequest) -> list[str]:
    problems: list[str] = []
    for index, item in enumerate(request.items, start=1):
        if item.non_subject_sale + item.exempt_sale + item.taxed_sale + item.non_taxed <= 0 and item.type != 4:
            problems.append(f"items[{index}]: at least one sale amount must be greater than zero")
    return problems


def validate_credit_note(request: CreditNoteRequest) -> list[str]:
    problems = validate_sale_items(request)
    related = {doc.document_number for doc in request.related_docs}
    for index, item in enumerate(request.items, start=1):
        if not item.related_doc:
            problems.append(f"items[{index}]: related_doc is required for credit notes")
        elif item.related_doc not in related:
            problems.append(f"items[{index}]: related_doc {item.related_doc} is not listed in related_docs")
    return problems


@dataclass(frozen=True)
class DocumentSchema:
    document_type_code: str
    version: int
    build_body: Callable[[Any], dict[str, Any]]
    validate: Optional[Callable[[Any], list[str]]] = None


class DocumentUseCase(UseCaseHandler):
    def __init__(
        self,
        schema: DocumentSchema,
        cfg: DispatchConfig,
        transmitter: AuthorityTransmitter,
        sequence: ControlNumberSequence,
        clock: Optional[Callable[[], _dt.datetime]] = None,
    ) -> None:
        self._schema = schema
        self._cfg = cfg
        self._transmitter = transmitter
        self._sequence = sequence
        self._clock = clock or (lambda: _dt.datetime.now(SV_TZ))

    @property
    def document_type_code(self) -> str:
        return self._schema.document_type_code

    def _identification(self) -> dict[str, Any]:
        now = self._clock()
        code = self._schema.document_type_code
        return {
            "version": self._schema.version,
            "ambiente": self._cfg.DTE_AMBIENT,
            "tipoDte": code,
            "numeroControl": format_control_number(
                code,
                self._cfg.DTE_ESTABLISHMENT_CODE,
                self._cfg.DTE_POS_CODE,
                self._sequence.next(code),
            ),
            "codigoGeneracion": str(uuid.uuid4()).upper(),
            "tipoModelo": 1,
            "tipoOperacion": 1,
            "tipoContingencia": None,
            "motivoContin": None,
            "fecEmi": now.strftime("%Y-%m-%d"),
            "horEmi": now.strftime("%H:%M:%S"),
            "tipoMoneda": "USD",
        }

    def build_artifact(self, request: Any) -> dict[str, Any]:
        artifact: dict[str, Any] = {
            "identificacion": self._identification(),
            "emisor": self._cfg.emitter_block(),
        }
        artifact.update(self._schema.build_body(request))
        return artifact

    def create(self, context: RequestContext, request: Any) -> SubmissionOutcome:
        if self._schema.validate is not None:
            problems = self._schema.validate(request)
            if problems:
                return Rejected(failure=Failure.validation("; ".join(problems)))

        artifact = self.build_artifact(request)
        identification = artifact["identificacion"]
        options = ResponseOptions(
            ambient=self._cfg.DTE_AMBIENT,
            qr_link=build_qr_link(
                self._cfg.DTE_QR_BASE_URL,
                self._cfg.DTE_AMBIENT,
                identification["codigoGeneracion"],
                identification["fecEmi"],
            ),
        )

        try:
            receipt = self._transmitter.transmit(artifact)
        except TransmissionError as exc:
            logger.warning(
                "Error transmitting DTE %s via %s: %s",
                identification["codigoGeneracion"],
                exc.transmitter_name or self._transmitter.name(),
                exc.message,
            )
            return Rejected(
                failure=Failure.transmission(exc.message, cause=exc.cause, error=exc),
                artifact=artifact,
                options=options,
            )
        except (TimeoutError, ConnectionError) as exc:
            return Rejected(
                failure=Failure.transmission(str(exc) or type(exc).__name__, error=exc),
                artifact=artifact,
                options=options,
            )

        artifact["apendice"] = list(artifact.get("apendice") or []) + [
            {
                "campo": "Datos del documento",
                "etiqueta": "Sello de recepción",
                "valor": receipt.reception_stamp,
            }
        ]
        return Accepted(
            artifact=artifact,
            options=options.model_copy(update={"reception_stamp": receipt.reception_stamp}),
        )
