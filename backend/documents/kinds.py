from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional

from pydantic import BaseModel

from backend.dispatch.registry import DocumentKindDescriptor, DocumentKindRegistry, RegistryBuilder
from backend.internal_core.config import DispatchConfig

from .models import CCFRequest, CreditNoteRequest, InvoiceRequest, RetentionRequest
from .transmitter import AuthorityTransmitter
from .use_cases import (
    ControlNumberSequence,
    DocumentSchema,
    DocumentUseCase,
    build_ccf_body,
    build_credit_note_body,
    build_invoice_body,
    build_retention_body,
    validate_credit_note,
    validate_sale_items,
)


@dataclass(frozen=True)
class DocumentKindSpec:
    route_key: str
    title: str
    request_model: type[BaseModel]
    schema: DocumentSchema
    allows_contingency: bool


DOCUMENT_KINDS: tuple[DocumentKindSpec, ...] = (
    DocumentKindSpec(
        route_key="invoices",
        title="Factura Electrónica",
        request_model=InvoiceRequest,
        schema=DocumentSchema("01", 1, build_invoice_body, validate_sale_items),
        allows_contingency=True,
    ),
    DocumentKindSpec(
        route_key="ccf",
        title="Comprobante de Crédito Fiscal",
        request_model=CCFRequest,
        schema=DocumentSchema("03", 3, build_ccf_body, validate_sale_items),
        allows_contingency=True,
    ),
    DocumentKindSpec(
        route_key="creditnote",
        title="Nota de Crédito",
        request_model=CreditNoteRequest,
        schema=DocumentSchema("05", 3, build_credit_note_body, validate_credit_note),
        allows_contingency=True,
    ),
    DocumentKindSpec(
        route_key="retention",
        title="Comprobante de Retención",
        request_model=RetentionRequest,
        schema=DocumentSchema("07", 1, build_retention_body),
        allows_contingency=False,
    ),
)


def json_decoder(model: type[BaseModel]) -> Callable[[bytes], BaseModel]:
    def decode(raw_body: bytes) -> BaseModel:
        return model.model_validate_json(raw_body)

    return decode


def build_default_registry(
    cfg: DispatchConfig,
    transmitter: AuthorityTransmitter,
    sequence: Optional[ControlNumberSequence] = None,
) -> DocumentKindRegistry:
    sequence = sequence or ControlNumberSequence()
    builder = RegistryBuilder()
    for kind in DOCUMENT_KINDS:
        builder.register(
            kind.route_key,
            DocumentKindDescriptor(
                route_key=kind.route_key,
                decode=json_decoder(kind.request_model),
                handler=DocumentUseCase(kind.schema, cfg, transmitter, sequence),
                allows_contingency=kind.allows_contingency and cfg.DTE_CONTINGENCY_ENABLED,
                document_type_code=kind.schema.document_type_code,
                title=kind.title,
            ),
        )
    return builder.build()
