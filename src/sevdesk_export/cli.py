from __future__ import annotations

import json
import logging
import sys
from datetime import datetime

import typer
from pydantic import ValidationError

from .config import ExportOptions, Settings, default_date_range
from .exporter import ExportDirectoryError
from .service import ExportService

app = typer.Typer(add_completion=False)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
        stream=sys.stderr,
    )


def _progress(message: str) -> None:
    typer.echo(message, err=True)


@app.command()
def export(
        start: datetime | None = typer.Option(
            None, formats=["%Y-%m-%d"], help="Start of the pay-date range (YYYY-MM-DD). Default: first day of last month"
        ),
        end: datetime | None = typer.Option(
            None, formats=["%Y-%m-%d"], help="End of the pay-date range (YYYY-MM-DD). Default: last day of last month"
        ),
        directory: str | None = typer.Option(
            None, "--dir", help="Directory the documents are saved to (env: EXPORT_DIR, default: export)"
        ),
        delete: bool = typer.Option(False, "-d", "--delete", help="Delete existing files in the export directory"),
        report: bool = typer.Option(False, "-r", "--report", help="Write a journal.csv with all exported records"),
        extra_info_filename: bool = typer.Option(
            False, "--extra-info-filename", help="Add extra info (like categories) to the filenames"
        ),
        api_token: str | None = typer.Option(None, "--api-token", help="sevDesk API token (env: SEVDESK_API_KEY)"),
        webdav_address: str | None = typer.Option(None, "--webdav-address", help="WebDAV URL (env: WEBDAV_ADDRESS)"),
        webdav_username: str | None = typer.Option(None, "--webdav-username", help="WebDAV user (env: WEBDAV_USERNAME)"),
        webdav_password: str | None = typer.Option(None, "--webdav-password", help="WebDAV password (env: WEBDAV_PASSWORD)"),
        concurrency: int | None = typer.Option(
            None,
            min=1,
            help="Max parallel requests per batch (default: unlimited; at most 100 connections are open, the rest wait)",
        ),
        verbose: bool = typer.Option(False, "-v", "--verbose", help="Debug logging"),
) -> None:
    """Export sevDesk vouchers and invoices paid in a date range as files.

    Example: sevdesk-export --start 2022-02-01 --end 2022-02-28 --dir ~/accounting/2022/02 --delete
    """
    _configure_logging(verbose)

    overrides = {
        "sevdesk_api_key": api_token,
        "export_dir": directory,
        "webdav_address": webdav_address,
        "webdav_username": webdav_username,
        "webdav_password": webdav_password,
        "sevdesk_concurrency": concurrency,
    }
    default_start, default_end = default_date_range()
    try:
        settings = Settings(**{k: v for k, v in overrides.items() if v is not None})
        options = ExportOptions(
            start=start.date() if start else default_start,
            end=end.date() if end else default_end,
            directory=settings.export_dir,
            delete_existing=delete,
            report=report,
            extra_info_filename=extra_info_filename,
        )
    except ValidationError as e:
        typer.echo(f"Configuration error: {e}", err=True)
        raise typer.Exit(code=2)

    svc = ExportService(settings, progress=_progress)
    try:
        result = svc.run(options)
    except ExportDirectoryError as e:
        typer.echo(f"The export directory {options.directory} cannot be used: {e}", err=True)
        raise typer.Exit(code=1)

    summary = {
        "status": result.status,
        "directory": result.directory,
        "start": options.start.isoformat(),
        "end": options.end.isoformat(),
        "stages": [s.model_dump() for s in result.stages],
        "report": result.report_path,
        "started_at": result.started_at.isoformat(),
        "finished_at": result.finished_at.isoformat() if result.finished_at else None,
    }
    typer.echo(json.dumps(summary, indent=2))


def main() -> None:
    app()


if __name__ == "__main__":
    sys.exit(main())
