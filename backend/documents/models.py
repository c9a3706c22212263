from __future__ import annotations

"""
Typed request shapes for the four supported DTE kinds.

Design intent:
- Reject structurally invalid payloads at decode time, before any use case runs.
- Keep field names aligned with the public JSON examples (snake_case, English).
"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class Address(BaseModel):
    model_config = ConfigDict(extra="forbid")

    department: str = Field(min_length=2, max_length=2)
    municipality: str = Field(min_length=2, max_length=2)
    complement: str = Field(min_length=1, max_length=200)


class InvoiceReceiver(BaseModel):
    model_config = ConfigDict(extra="forbid")

    document_type: Optional[str] = None
    document_number: Optional[str] = None
    nrc: Optional[str] = None
    name: Optional[str] = None
    activity_code: Optional[str] = None
    activity_description: Optional[str] = None
    address: Optional[Address] = None
    phone: Optional[str] = None
    email: Optional[str] = None

    @model_validator(mode="after")
    def _validate_document_pair(self) -> "InvoiceReceiver":
        if (self.document_type is None) != (self.document_number is None):
            raise ValueError("document_type and document_number must be provided together")
        return self


class TaxpayerReceiver(BaseModel):
    model_config = ConfigDict(extra="forbid")

    nit: str = Field(min_length=9, max_length=14)
    nrc: str = Field(min_length=2, max_length=8)
    name: str = Field(min_length=1, max_length=250)
    commercial_name: Optional[str] = None
    activity_code: str
    activity_description: str
    address: Address
    phone: Optional[str] = None
    email: Optional[str] = None


class RetentionReceiver(BaseModel):
    model_config = ConfigDict(extra="forbid")

    document_type: str
    document_number: str
    nrc: Optional[str] = None
    name: str = Field(min_length=1, max_length=250)
    commercial_name: Optional[str] = None
    activity_code: str
    activity_description: str
    address: Address
    phone: Optional[str] = None
    email: Optional[str] = None


class Item(BaseModel):
    model_config = ConfigDict(extra="forbid")

    type: int = Field(ge=1, le=4)
    description: str = Field(min_length=1, max_length=1000)
    quantity: float = Field(default=1.0, gt=0.0)
    unit_measure: int = 59
    unit_price: float = Field(default=0.0, ge=0.0)
    discount: float = Field(default=0.0, ge=0.0)
    code: Optional[str] = None
    non_subject_sale: float = Field(default=0.0, ge=0.0)
    exempt_sale: float = Field(default=0.0, ge=0.0)
    taxed_sale: float = Field(default=0.0, ge=0.0)
    suggested_price: float = Field(default=0.0, ge=0.0)
    non_taxed: float = 0.0
    iva_item: float = Field(default=0.0, ge=0.0)
    taxes: Optional[List[str]] = None
    related_doc: Optional[str] = None


class RetentionItem(BaseModel):
    model_config = ConfigDict(extra="forbid")

    type: int = Field(ge=1, le=2)
    document_number: str = Field(min_length=1)
    description: str = Field(min_length=1, max_length=1000)
    retention_code: str
    emission_date: Optional[str] = None
    taxed_amount: float = Field(default=0.0, ge=0.0)
    iva_retention: float = Field(default=0.0, ge=0.0)


class TaxLine(BaseModel):
    model_config = ConfigDict(extra="forbid")

    code: str
    description: str
    value: float


class PaymentType(BaseModel):
    model_config = ConfigDict(extra="forbid")

    code: str
    amount: float = Field(ge=0.0)
    reference: Optional[str] = None
    term: Optional[str] = None
    period: Optional[int] = None


class Summary(BaseModel):
    model_config = ConfigDict(extra="forbid")

    operation_condition: int = Field(default=1, ge=1, le=3)
    total_non_subject: float = 0.0
    total_exempt: float = 0.0
    total_taxed: float = 0.0
    sub_total: float = 0.0
    non_subject_discount: float = 0.0
    exempt_discount: float = 0.0
    taxed_discount: float = 0.0
    discount_percentage: float = 0.0
    total_discount: float = 0.0
    sub_total_sales: float = 0.0
    total_operation: float = 0.0
    total_non_taxed: float = 0.0
    total_to_pay: float = 0.0
    iva_retention: float = 0.0
    iva_perception: float = 0.0
    income_retention: float = 0.0
    total_iva: float = 0.0
    balance_in_favor: float = 0.0
    taxes: List[TaxLine] = Field(default_factory=list)
    payment_types: List[PaymentType] = Field(default_factory=list)


class Extension(BaseModel):
    model_config = ConfigDict(extra="forbid")

    delivery_name: Optional[str] = None
    delivery_document: Optional[str] = None
    receiver_name: Optional[str] = None
    receiver_document: Optional[str] = None
    observation: Optional[str] = None
    vehicle_plate: Optional[str] = None


class RelatedDoc(BaseModel):
    model_config = ConfigDict(extra="forbid")

    document_type: str
    generation_type: int = Field(ge=1, le=2)
    document_number: str = Field(min_length=1)
    emission_date: Optional[str] = None


class OtherDoc(BaseModel):
    model_config = ConfigDict(extra="forbid")

    document_code: int
    description: Optional[str] = None
    detail: Optional[str] = None


class ThirdPartySale(BaseModel):
    model_config = ConfigDict(extra="forbid")

    nit: str
    name: str


class Appendix(BaseModel):
    model_config = ConfigDict(extra="forbid")

    field: str
    label: str
    value: str


class InvoiceRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    items: List[Item] = Field(min_length=1)
    receiver: Optional[InvoiceReceiver] = None
    summary: Summary
    extension: Optional[Extension] = None
    related_docs: Optional[List[RelatedDoc]] = None
    other_docs: Optional[List[OtherDoc]] = None
    third_party_sale: Optional[ThirdPartySale] = None
    appendixes: Optional[List[Appendix]] = None


class CCFRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    items: List[Item] = Field(min_length=1)
    receiver: TaxpayerReceiver
    summary: Summary
    extension: Optional[Extension] = None
    related_docs: Optional[List[RelatedDoc]] = None
    other_docs: Optional[List[OtherDoc]] = None
    third_party_sale: Optional[ThirdPartySale] = None
    appendixes: Optional[List[Appendix]] = None


class CreditNoteRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    items: List[Item] = Field(min_length=1)
    receiver: TaxpayerReceiver
    summary: Summary
    related_docs: List[RelatedDoc] = Field(min_length=1)
    extension: Optional[Extension] = None
    other_docs: Optional[List[OtherDoc]] = None
    third_party_sale: Optional[ThirdPartySale] = None
    appendixes: Optional[List[Appendix]] = None


class RetentionRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    items: List[RetentionItem] = Field(min_length=1)
    receiver: RetentionReceiver
    extension: Optional[Extension] = None
    appendixes: Optional[List[Appendix]] = None
