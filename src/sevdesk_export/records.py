from __future__ import annotations

import base64
import binascii
import logging
from collections.abc import Sequence
from datetime import datetime
from typing import Optional

from pydantic import ValidationError

from .client import ApiError, SevDeskClient
from .models import Document, DocumentPayload, Invoice, Record, RecordKind, Voucher, VoucherPosition
from .pmap import p_map
from .util import build_file_name, document_extension, sanitize_filename

logger = logging.getLogger(__name__)

# sevDesk cannot filter invoices by pay date. Query this many range lengths
# before the start on the invoice date and filter on payDate locally.
# Invoices paid later than that after creation are not found.
INVOICE_LOOKBACK_FACTOR = 2


def to_epoch(value: datetime) -> int:
    return int(value.timestamp())


def _local(value: datetime) -> datetime:
    return value.astimezone()


def fetch_voucher_positions(client: SevDeskClient, voucher_id: str) -> list[VoucherPosition]:
    return [VoucherPosition.model_validate(p) for p in client.list_voucher_positions(voucher_id)]


def fetch_vouchers(
    client: SevDeskClient,
    start: datetime,
    end: datetime,
    *,
    concurrency: Optional[int] = None,
) -> list[Voucher]:
    """Vouchers paid within ``[start, end]``, each with its positions and accounting types."""
    raw = client.list_vouchers(to_epoch(start), to_epoch(end))
    try:
        vouchers = [Voucher.model_validate(v) for v in raw]
    except ValidationError as e:
        raise ApiError(f"Unexpected voucher payload: {e}") from e

    outcomes = p_map(vouchers, lambda v: fetch_voucher_positions(client, v.id), concurrency=concurrency)
    enriched: list[Voucher] = []
    for voucher, outcome in zip(vouchers, outcomes):
        positions: list[VoucherPosition] = []
        if outcome.ok and outcome.value is not None:
            positions = outcome.value
        else:
            logger.debug("Positions for voucher %s unavailable: %s", voucher.id, outcome.error)
        enriched.append(voucher.model_copy(update={"positions": positions}))
    return enriched


def invoice_query_window(start: datetime, end: datetime) -> tuple[datetime, datetime]:
    return start - INVOICE_LOOKBACK_FACTOR * (end - start), end


def filter_invoices_by_pay_date(invoices: Sequence[Invoice], start: datetime, end: datetime) -> list[Invoice]:
    lo, hi = _local(start), _local(end)
    return [i for i in invoices if i.pay_date is not None and lo <= _local(i.pay_date) <= hi]


def fetch_invoices(client: SevDeskClient, start: datetime, end: datetime) -> list[Invoice]:
    """Invoices paid within ``[start, end]``, with contact data embedded."""
    query_start, query_end = invoice_query_window(start, end)
    raw = client.list_invoices(to_epoch(query_start), to_epoch(query_end))
    try:
        invoices = [Invoice.model_validate(i) for i in raw]
    except ValidationError as e:
        raise ApiError(f"Unexpected invoice payload: {e}") from e
    return filter_invoices_by_pay_date(invoices, start, end)


def record_file_name(record: Record, extra_info_filename: bool = False) -> str:
    """Sanitized filename for a record's document. Shared by the saver and the journal."""
    extra_info = record.categories if extra_info_filename else None
    name = build_file_name(
        record.pay_date,
        record.contact_name,
        record.id,
        extra_info,
        document_extension(record.document),
    )
    return sanitize_filename(name)


def _decode(payload: DocumentPayload) -> bytes:
    if payload.base64_encoded:
        try:
            return base64.b64decode(payload.content)
        except binascii.Error as e:
            raise ValueError(f"invalid base64 document content: {e}") from e
    return payload.content.encode("utf-8")


def download_document(
    client: SevDeskClient,
    kind: RecordKind,
    record: Record,
    *,
    extra_info_filename: bool = False,
) -> Optional[Document]:
    """Download one record's attachment. ``None`` when nothing is attached."""
    if kind == "vouchers":
        raw = client.download_voucher_document(record.id)
    elif kind == "invoices":
        raw = client.get_invoice_pdf(record.id)
    else:
        raise ValueError(f"Unknown record kind: {kind}")

    if not raw:
        # e.g. transaction costs generated by sevDesk have no document
        return None
    payload = DocumentPayload.model_validate(raw)
    return Document(
        content=_decode(payload),
        file_name=record_file_name(record, extra_info_filename),
    )


def download_documents(
    client: SevDeskClient,
    kind: RecordKind,
    records: Sequence[Record],
    *,
    extra_info_filename: bool = False,
    concurrency: Optional[int] = None,
) -> list[Document]:
    """Download all attachments in parallel. Records without one, or that fail, are skipped."""
    outcomes = p_map(
        records,
        lambda r: download_document(client, kind, r, extra_info_filename=extra_info_filename),
        concurrency=concurrency,
    )
    documents: list[Document] = []
    for record, outcome in zip(records, outcomes):
        if not outcome.ok:
            logger.warning("Skipping %s %s: %s", kind, record.id, outcome.error)
            continue
        if outcome.value is not None:
            documents.append(outcome.value)
    return documents
