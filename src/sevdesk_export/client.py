from __future__ import annotations

from typing import Any, Optional

import httpx


DEFAULT_BASE_URL = "https://my.sevdesk.de/api/v1"


class ApiError(RuntimeError):
    pass


class SevDeskClient:
    """Thin sevDesk REST client. One attempt per call; errors surface as :class:`ApiError`."""

    def __init__(self, http: httpx.Client, api_token: str, base_url: str = DEFAULT_BASE_URL):
        self._http = http
        self._api_token = api_token
        self._base_url = base_url.rstrip("/")

    def _headers(self) -> dict[str, str]:
        # sevDesk expects the bare token, without a "Bearer" scheme
        return {"Authorization": self._api_token, "Accept": "application/json"}

    def _raise_for_status(self, resp: httpx.Response) -> None:
        if resp.status_code < 400:
            return
        raise ApiError(f"{resp.request.method} {resp.request.url} -> {resp.status_code}: {resp.text}")

    def get_objects(self, path: str, params: Optional[dict[str, Any]] = None) -> Any:
        """GET ``path`` and return the ``objects`` member of the JSON envelope."""
        url = f"{self._base_url}/{path.lstrip('/')}"
        try:
            resp = self._http.get(url, headers=self._headers(), params=params)
        except httpx.HTTPError as e:
            raise ApiError(f"GET {url} failed: {e}") from e
        self._raise_for_status(resp)
        try:
            body = resp.json()
        except ValueError as e:
            raise ApiError(f"GET {url} returned invalid JSON: {e}") from e
        if not isinstance(body, dict):
            raise ApiError(f"GET {url} returned an unexpected body: {body!r}")
        return body.get("objects")

    def list_vouchers(self, start_pay_date: int, end_pay_date: int) -> list[dict[str, Any]]:
        params = {
            "startPayDate": start_pay_date,
            "endPayDate": end_pay_date,
            "embed": "supplier,document",
        }
        return self.get_objects("Voucher", params) or []

    def list_voucher_positions(self, voucher_id: str) -> list[dict[str, Any]]:
        params = {
            "voucher[id]": voucher_id,
            "voucher[objectName]": "Voucher",
            "embed": "accountingType",
        }
        return self.get_objects("VoucherPos", params) or []

    def list_invoices(self, start_date: int, end_date: int) -> list[dict[str, Any]]:
        params = {
            "startDate": start_date,
            "endDate": end_date,
            "embed": "contact,document",
        }
        return self.get_objects("Invoice", params) or []

    def download_voucher_document(self, voucher_id: str) -> Optional[dict[str, Any]]:
        return self.get_objects(f"Voucher/{voucher_id}/downloadDocument") or None

    def get_invoice_pdf(self, invoice_id: str) -> Optional[dict[str, Any]]:
        return self.get_objects(f"Invoice/{invoice_id}/getPdf") or None
