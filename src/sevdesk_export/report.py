"""Journal export: one row per fetched voucher/invoice, written as ``journal.csv``."""

from __future__ import annotations

import csv
import io
from collections.abc import Sequence
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Optional

from .exporter import join_path
from .models import Invoice, Record, ReportRow, Voucher
from .records import record_file_name
from .storage import FileProvider
from .util import date_to_string

REPORT_FILE_NAME = "journal.csv"

HEADERS = (
    "Typ",
    "Rechnungs-/Belegdatum",
    "Nummer",
    "Kunde/Lieferant",
    "Zahlung Datum",
    "Zahlung Summe",
    "Kategorie",
    "Dateiname",
)


def _row(record: Record, extra_info_filename: bool) -> ReportRow:
    return ReportRow(
        type=record.report_type,
        date=record.date,
        number=record.number,
        contact=record.contact_name,
        pay_date=record.pay_date,
        paid_amount=record.paid_amount,
        categories=record.categories,
        filename=record_file_name(record, extra_info_filename),
    )


def build_voucher_report_data(vouchers: Sequence[Voucher], *, extra_info_filename: bool = False) -> list[ReportRow]:
    return [_row(v, extra_info_filename) for v in vouchers]


def build_invoice_report_data(invoices: Sequence[Invoice], *, extra_info_filename: bool = False) -> list[ReportRow]:
    return [_row(i, extra_info_filename) for i in invoices]


def format_amount(value: Optional[Decimal]) -> str:
    """German currency format, e.g. ``1.234,56 €``. Empty for missing amounts."""
    if value is None:
        return ""
    try:
        quantized = Decimal(value).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    except InvalidOperation:
        return ""
    english = f"{quantized:,.2f}"
    german = english.replace(",", "_").replace(".", ",").replace("_", ".")
    return f"{german} €"


def _format_date(value: Optional[datetime]) -> str:
    return date_to_string(value) if value else ""


def render_report_csv(rows: Sequence[ReportRow]) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf)
    writer.writerow(HEADERS)
    for row in rows:
        writer.writerow(
            [
                row.type,
                _format_date(row.date),
                row.number or "",
                row.contact,
                _format_date(row.pay_date),
                format_amount(row.paid_amount),
                ", ".join(row.categories),
                row.filename,
            ]
        )
    return buf.getvalue()


def write_report_csv(provider: FileProvider, rows: Sequence[ReportRow], directory: str) -> str:
    """Write (overwrite) the journal in ``directory`` and return its path."""
    path = join_path(directory, REPORT_FILE_NAME)
    provider.write_file(path, render_report_csv(rows).encode("utf-8"))
    return path
