import os
import time

import pytest


API = "https://my.sevdesk.de/api/v1"


@pytest.fixture
def berlin_tz():
    """Run the test with Europe/Berlin as the local timezone."""
    if not hasattr(time, "tzset"):
        pytest.skip("time.tzset is not available on this platform")
    old = os.environ.get("TZ")
    os.environ["TZ"] = "Europe/Berlin"
    time.tzset()
    yield
    if old is None:
        os.environ.pop("TZ", None)
    else:
        os.environ["TZ"] = old
    time.tzset()


def voucher_json(voucher_id="42", pay_date="2022-02-15T12:00:00+01:00", **extra):
    data = {
        "id": voucher_id,
        "objectName": "Voucher",
        "voucherDate": "2022-02-10T12:00:00+01:00",
        "payDate": pay_date,
        "description": f"RE-{voucher_id}",
        "paidAmount": "1234.5",
        "supplierName": "Acme GmbH",
        "supplierNameAtSave": None,
        "supplier": None,
        "document": {"id": "9", "filename": "rechnung.pdf", "extension": "pdf"},
    }
    data.update(extra)
    return data


def invoice_json(invoice_id="7", pay_date="2022-02-20T12:00:00+01:00", **extra):
    data = {
        "id": invoice_id,
        "objectName": "Invoice",
        "invoiceDate": "2022-01-20T12:00:00+01:00",
        "invoiceNumber": f"RE-100{invoice_id}",
        "payDate": pay_date,
        "addressName": "Kunde AG",
        "contact": {"id": "3", "name": "Kunde AG (Kontakt)"},
        "paidAmount": 119,
        "document": None,
    }
    data.update(extra)
    return data
