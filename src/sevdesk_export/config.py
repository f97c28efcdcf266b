from __future__ import annotations

from datetime import date, datetime, time, timedelta
from typing import Optional

from pydantic import BaseModel, Field, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .client import DEFAULT_BASE_URL


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables (and ``.env``).

    Explicit init kwargs (the CLI flags that were given) take precedence over
    the environment, which takes precedence over the defaults.
    """

    model_config = SettingsConfigDict(env_file=".env", env_prefix="", case_sensitive=False, extra="ignore")

    sevdesk_api_key: str = Field(..., min_length=1, description="sevDesk API token (Settings > Users > API token)")
    sevdesk_api_url: str = Field(DEFAULT_BASE_URL, description="sevDesk REST API base URL")
    sevdesk_timeout_s: float = Field(30.0, ge=1.0, le=300.0, description="HTTP timeout (seconds)")
    sevdesk_concurrency: Optional[int] = Field(
        None, ge=1, description="Max parallel requests per batch; unlimited when unset"
    )

    export_dir: str = Field("export", description="Directory the documents are written to")

    webdav_address: Optional[str] = Field(None, description="WebDAV base URL; local filesystem when unset")
    webdav_username: Optional[str] = None
    webdav_password: Optional[SecretStr] = None


def default_date_range(today: Optional[date] = None) -> tuple[date, date]:
    """First and last day of the previous calendar month."""
    today = today or date.today()
    end = today.replace(day=1) - timedelta(days=1)
    return end.replace(day=1), end


class ExportOptions(BaseModel):
    start: date
    end: date
    directory: str
    delete_existing: bool = False
    report: bool = False
    extra_info_filename: bool = False

    @model_validator(mode="after")
    def check_range(self) -> "ExportOptions":
        if self.end < self.start:
            raise ValueError(f"end ({self.end}) is before start ({self.start})")
        return self

    @property
    def start_at(self) -> datetime:
        """Local midnight of the start day."""
        return datetime.combine(self.start, time.min).astimezone()

    @property
    def end_at(self) -> datetime:
        """Last second of the end day, local time."""
        return datetime.combine(self.end, time(23, 59, 59)).astimezone()
