from __future__ import annotations

import re
from collections.abc import Sequence
from datetime import date, datetime
from typing import Optional, Union

from .models import DocumentInfo


_ILLEGAL = re.compile(r'[/?<>\\:*|"]')
_CONTROL = re.compile(r"[\x00-\x1f\x80-\x9f]")
_RESERVED = re.compile(r"^\.+$")
_WINDOWS_RESERVED = re.compile(r"^(con|prn|aux|nul|com[0-9]|lpt[0-9])(\..*)?$", re.IGNORECASE)
_WINDOWS_TRAILING = re.compile(r"[. ]+$")

MAX_FILENAME_BYTES = 255
DEFAULT_EXTENSION = "pdf"


def date_to_string(value: Union[date, datetime]) -> str:
    """Format as YYYY-MM-DD using the wall-clock date of the local timezone."""
    if isinstance(value, datetime):
        # naive values are taken as local time by astimezone()
        return value.astimezone().date().isoformat()
    return value.isoformat()


def sanitize_filename(name: str) -> str:
    """Strip characters and names that are not allowed in filenames on common filesystems."""
    cleaned = _ILLEGAL.sub("", name)
    cleaned = _CONTROL.sub("", cleaned)
    cleaned = _RESERVED.sub("", cleaned)
    cleaned = _WINDOWS_RESERVED.sub("", cleaned)
    cleaned = _WINDOWS_TRAILING.sub("", cleaned)
    if len(cleaned.encode("utf-8")) > MAX_FILENAME_BYTES:
        cleaned = _truncate_keeping_extension(cleaned)
    return cleaned


def _truncate(value: str, limit: int) -> str:
    return value.encode("utf-8")[:limit].decode("utf-8", errors="ignore")


def _truncate_keeping_extension(name: str) -> str:
    stem, dot, extension = name.rpartition(".")
    suffix = f".{extension}"
    budget = MAX_FILENAME_BYTES - len(suffix.encode("utf-8"))
    if not dot or not stem or budget <= 0:
        return _truncate(name, MAX_FILENAME_BYTES)
    stem = _WINDOWS_TRAILING.sub("", _truncate(stem, budget))
    return stem + suffix


def build_file_name(
    pay_date: Optional[Union[date, datetime]],
    name: Optional[str],
    record_id: Optional[Union[str, int]],
    extra_info: Optional[Union[str, Sequence[str]]],
    extension: str = DEFAULT_EXTENSION,
) -> str:
    """Build a sortable, readable filename: ``<payDate>-<name>-<id>-<extra>.<ext>``.

    Empty parts are left out. The id keeps names unique within a batch.
    The result is not sanitized; see :func:`sanitize_filename`.
    """
    parts: list[str] = []
    if pay_date:
        parts.append(date_to_string(pay_date))
    if name:
        parts.append(name)
    if record_id is not None and record_id != "":
        parts.append(str(record_id))
    if extra_info:
        if not isinstance(extra_info, str):
            extra_info = ",".join(extra_info)
        if extra_info:
            parts.append(extra_info)
    return "-".join(parts) + f".{extension}"


def document_extension(info: Optional[DocumentInfo]) -> str:
    """Extension of an attached document; the filename suffix wins over the declared extension."""
    ext = DEFAULT_EXTENSION
    if info is None:
        return ext
    if info.extension:
        ext = info.extension.lstrip(".")
    if info.filename and "." in info.filename:
        suffix = info.filename.rsplit(".", 1)[1]
        if suffix:
            ext = suffix
    return ext
