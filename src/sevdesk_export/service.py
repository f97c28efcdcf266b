from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Optional

import httpx

from .client import ApiError, SevDeskClient
from .config import ExportOptions, Settings
from .exporter import delete_all_files_in_directory, prepare_directory, save_documents
from .models import ExportResult, Record, RecordKind, ReportRow, StageResult
from .records import download_documents, fetch_invoices, fetch_vouchers
from .report import build_invoice_report_data, build_voucher_report_data, write_report_csv
from .storage import FileProvider, get_file_provider

logger = logging.getLogger(__name__)


class ExportService:
    """High-level orchestration: prepare dir -> vouchers -> invoices -> journal.

    Each record type runs fetch -> download -> save. A failed fetch only ends
    that record type; per-document failures only lower the saved count.
    """

    def __init__(
        self,
        settings: Settings,
        provider: Optional[FileProvider] = None,
        http: Optional[httpx.Client] = None,
        progress: Optional[Callable[[str], None]] = None,
    ):
        self.settings = settings
        self._provider = provider
        self._http = http
        self._progress = progress or logger.info

    def _http_client(self) -> httpx.Client:
        # worker threads queue for pooled connections without a deadline
        return httpx.Client(timeout=httpx.Timeout(self.settings.sevdesk_timeout_s, pool=None))

    def run(self, options: ExportOptions) -> ExportResult:
        """Run a full export. Raises :class:`ExportDirectoryError` if the target is unusable."""
        started = datetime.now(tz=timezone.utc)
        provider = self._provider or get_file_provider(self.settings)
        http = self._http or self._http_client()
        try:
            result = self._run(provider, http, options, started)
        finally:
            if self._http is None:
                http.close()
            if self._provider is None:
                provider.close()
        result.finished_at = datetime.now(tz=timezone.utc)
        return result

    def _run(
        self, provider: FileProvider, http: httpx.Client, options: ExportOptions, started: datetime
    ) -> ExportResult:
        prepare_directory(provider, options.directory)
        result = ExportResult(directory=options.directory, started_at=started)

        if options.delete_existing:
            result.deleted_existing = delete_all_files_in_directory(provider, options.directory)
            if result.deleted_existing:
                self._progress(f"Deleted existing files in {options.directory}")
            else:
                self._progress("Deleting existing files failed, continuing")
        else:
            self._progress("Keeping existing files")

        client = SevDeskClient(http, self.settings.sevdesk_api_key, self.settings.sevdesk_api_url)
        report_rows: list[ReportRow] = []
        for kind in ("vouchers", "invoices"):
            result.stages.append(self._export_kind(kind, client, provider, options, report_rows))

        if options.report:
            result.report_path = write_report_csv(provider, report_rows, options.directory)
            self._progress(f"Journal saved to {result.report_path}")
        return result

    def _fetch(self, kind: RecordKind, client: SevDeskClient, options: ExportOptions) -> list[Record]:
        if kind == "vouchers":
            return fetch_vouchers(
                client, options.start_at, options.end_at, concurrency=self.settings.sevdesk_concurrency
            )
        return fetch_invoices(client, options.start_at, options.end_at)

    def _export_kind(
        self,
        kind: RecordKind,
        client: SevDeskClient,
        provider: FileProvider,
        options: ExportOptions,
        report_rows: list[ReportRow],
    ) -> StageResult:
        stage = StageResult(kind=kind)
        self._progress(f"Fetching {kind} paid between {options.start} and {options.end}")
        try:
            records = self._fetch(kind, client, options)
        except ApiError as e:
            stage.status = "failed"
            stage.message = f"Fetching {kind} failed: {e}"
            self._progress(stage.message)
            return stage

        stage.fetched = len(records)
        if not records:
            stage.status = "empty"
            stage.message = f"No {kind} found"
            self._progress(stage.message)
            return stage

        if options.report:
            if kind == "vouchers":
                rows = build_voucher_report_data(records, extra_info_filename=options.extra_info_filename)
            else:
                rows = build_invoice_report_data(records, extra_info_filename=options.extra_info_filename)
            report_rows.extend(rows)

        self._progress(f"Downloading {len(records)} {kind} documents")
        documents = download_documents(
            client,
            kind,
            records,
            extra_info_filename=options.extra_info_filename,
            concurrency=self.settings.sevdesk_concurrency,
        )
        stage.downloaded = len(documents)
        if not documents:
            stage.status = "empty"
            stage.message = f"No {kind} documents found"
            self._progress(stage.message)
            return stage

        stage.saved = save_documents(
            provider, documents, options.directory, concurrency=self.settings.sevdesk_concurrency
        )
        self._progress(f"{stage.saved} {kind} saved to {options.directory}")
        return stage
