from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, ClassVar, Literal, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

RecordKind = Literal["vouchers", "invoices"]


class ApiModel(BaseModel):
    """Base for records parsed from sevDesk's camelCase JSON."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        coerce_numbers_to_str=True,
        extra="ignore",
    )


class Contact(ApiModel):
    id: Optional[str] = None
    name: Optional[str] = None


class AccountingType(ApiModel):
    id: Optional[str] = None
    name: Optional[str] = None


class VoucherPosition(ApiModel):
    id: Optional[str] = None
    accounting_type: Optional[AccountingType] = None


class DocumentInfo(ApiModel):
    """Attachment metadata embedded in voucher/invoice listings."""

    id: Optional[str] = None
    filename: Optional[str] = None
    extension: Optional[str] = None


class DocumentPayload(ApiModel):
    """Body of the download endpoints (``objects``)."""

    content: str = ""
    base64_encoded: bool = Field(
        False, validation_alias=AliasChoices("base64Encoded", "base64encoded")
    )
    filename: Optional[str] = None
    mime_type: Optional[str] = None


def _blank_to_none(v: Any) -> Any:
    if isinstance(v, str) and not v.strip():
        return None
    return v


def get_categories(positions: list[VoucherPosition]) -> list[str]:
    """Accounting category name of each position, in position order."""
    return [(p.accounting_type.name if p.accounting_type else None) or "" for p in positions]


def _first_name(*candidates: Optional[str]) -> str:
    return next((c for c in candidates if c), "")


class Voucher(ApiModel):
    kind: ClassVar[RecordKind] = "vouchers"
    report_type: ClassVar[str] = "AR"

    id: str
    voucher_date: Optional[datetime] = None
    pay_date: Optional[datetime] = None
    description: Optional[str] = None
    paid_amount: Optional[Decimal] = None
    supplier_name: Optional[str] = None
    supplier_name_at_save: Optional[str] = None
    supplier: Optional[Contact] = None
    positions: list[VoucherPosition] = Field(default_factory=list)
    document: Optional[DocumentInfo] = None

    @field_validator("voucher_date", "pay_date", "paid_amount", mode="before")
    @classmethod
    def blank_to_none(cls, v: Any) -> Any:
        return _blank_to_none(v)

    @property
    def date(self) -> Optional[datetime]:
        return self.voucher_date

    @property
    def number(self) -> Optional[str]:
        return self.description

    @property
    def contact_name(self) -> str:
        return _first_name(
            self.supplier_name,
            self.supplier_name_at_save,
            self.supplier.name if self.supplier else None,
        )

    @property
    def categories(self) -> list[str]:
        return get_categories(self.positions)


class Invoice(ApiModel):
    kind: ClassVar[RecordKind] = "invoices"
    report_type: ClassVar[str] = "ER"

    id: str
    invoice_date: Optional[datetime] = None
    invoice_number: Optional[str] = None
    pay_date: Optional[datetime] = None
    address_name: Optional[str] = None
    contact: Optional[Contact] = None
    paid_amount: Optional[Decimal] = None
    document: Optional[DocumentInfo] = None

    @field_validator("invoice_date", "pay_date", "paid_amount", mode="before")
    @classmethod
    def blank_to_none(cls, v: Any) -> Any:
        return _blank_to_none(v)

    @property
    def date(self) -> Optional[datetime]:
        return self.invoice_date

    @property
    def number(self) -> Optional[str]:
        return self.invoice_number

    @property
    def contact_name(self) -> str:
        return _first_name(self.address_name, self.contact.name if self.contact else None)

    @property
    def categories(self) -> list[str]:
        return []


Record = Union[Voucher, Invoice]


class Document(BaseModel):
    """A downloaded attachment, ready to be saved."""

    content: bytes
    file_name: str


class ReportRow(BaseModel):
    type: Literal["AR", "ER"]
    date: Optional[datetime] = None
    number: Optional[str] = None
    contact: str = ""
    pay_date: Optional[datetime] = None
    paid_amount: Optional[Decimal] = None
    categories: list[str] = Field(default_factory=list)
    filename: str


class StageResult(BaseModel):
    kind: RecordKind
    status: Literal["ok", "empty", "failed"] = "ok"
    message: Optional[str] = None
    fetched: int = 0
    downloaded: int = 0
    saved: int = 0


class ExportResult(BaseModel):
    directory: str
    stages: list[StageResult] = Field(default_factory=list)
    report_path: Optional[str] = None
    deleted_existing: Optional[bool] = None
    started_at: datetime
    finished_at: Optional[datetime] = None

    @property
    def status(self) -> Literal["ok", "partial", "failed"]:
        failed = [s for s in self.stages if s.status == "failed"]
        if not failed:
            return "ok"
        if len(failed) == len(self.stages):
            return "failed"
        return "partial"
