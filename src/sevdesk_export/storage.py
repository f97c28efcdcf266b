from __future__ import annotations

import errno
import logging
import os
import posixpath
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Optional, Protocol
from urllib.parse import quote, unquote, urlsplit
from xml.etree import ElementTree

import httpx

if TYPE_CHECKING:
    from .config import Settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FileStat:
    is_directory: bool


@dataclass(frozen=True)
class DirEntry:
    name: str
    is_file: bool
    is_directory: bool


class FileProvider(Protocol):
    """Filesystem primitives the exporter needs; paths are ``/``-separated strings."""

    def stat(self, path: str) -> FileStat: ...

    def readdir(self, path: str) -> list[DirEntry]: ...

    def mkdir(self, path: str) -> None: ...

    def unlink(self, path: str) -> None: ...

    def write_file(self, path: str, data: bytes) -> None: ...

    def close(self) -> None: ...


class LocalFileProvider:
    def stat(self, path: str) -> FileStat:
        p = Path(path).expanduser()
        p.stat()
        return FileStat(is_directory=p.is_dir())

    def readdir(self, path: str) -> list[DirEntry]:
        with os.scandir(Path(path).expanduser()) as it:
            entries = [DirEntry(name=e.name, is_file=e.is_file(), is_directory=e.is_dir()) for e in it]
        return sorted(entries, key=lambda e: e.name)

    def mkdir(self, path: str) -> None:
        Path(path).expanduser().mkdir()

    def unlink(self, path: str) -> None:
        Path(path).expanduser().unlink()

    def write_file(self, path: str, data: bytes) -> None:
        Path(path).expanduser().write_bytes(data)

    def close(self) -> None:
        pass


class WebDavError(OSError):
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


_DAV = "{DAV:}"
_PROPFIND_BODY = (
    b'<?xml version="1.0" encoding="utf-8"?>'
    b'<d:propfind xmlns:d="DAV:"><d:prop><d:resourcetype/></d:prop></d:propfind>'
)


class WebDavFileProvider:
    """WebDAV backend speaking PROPFIND/MKCOL/DELETE/PUT over httpx.

    HTTP failures are mapped onto ``OSError`` subclasses so callers can treat
    both backends alike.
    """

    def __init__(
        self,
        address: str,
        username: Optional[str] = None,
        password: Optional[str] = None,
        timeout_s: float = 30.0,
        http: Optional[httpx.Client] = None,
    ):
        self._base = address.rstrip("/") + "/"
        auth = httpx.BasicAuth(username, password or "") if username else None
        self._owns_http = http is None
        self._http = http or httpx.Client(auth=auth, timeout=httpx.Timeout(timeout_s, pool=None))

    def _url(self, path: str) -> str:
        return self._base + quote(path.strip("/"), safe="/")

    def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            resp = self._http.request(method, self._url(path), **kwargs)
        except httpx.HTTPError as e:
            raise WebDavError(f"WebDAV {method} {path} failed: {e}") from e
        if resp.status_code == 404:
            raise FileNotFoundError(errno.ENOENT, f"WebDAV {method}: not found", path)
        if resp.status_code >= 400:
            raise WebDavError(f"WebDAV {method} {path} -> {resp.status_code}: {resp.text}", resp.status_code)
        return resp

    def _propfind(self, path: str, depth: str) -> tuple[str, list[tuple[str, bool]]]:
        resp = self._request(
            "PROPFIND",
            path,
            headers={"Depth": depth, "Content-Type": "application/xml; charset=utf-8"},
            content=_PROPFIND_BODY,
        )
        try:
            root = ElementTree.fromstring(resp.content)
        except ElementTree.ParseError as e:
            raise WebDavError(f"WebDAV PROPFIND {path}: invalid response: {e}") from e
        own = unquote(urlsplit(str(resp.request.url)).path).rstrip("/")
        entries: list[tuple[str, bool]] = []
        for response in root.iter(f"{_DAV}response"):
            href = unquote(urlsplit(response.findtext(f"{_DAV}href") or "").path).rstrip("/")
            is_dir = response.find(f".//{_DAV}resourcetype/{_DAV}collection") is not None
            entries.append((href, is_dir))
        return own, entries

    def stat(self, path: str) -> FileStat:
        own, entries = self._propfind(path, "0")
        if not entries:
            raise FileNotFoundError(errno.ENOENT, "WebDAV PROPFIND: empty response", path)
        is_dir = next((d for href, d in entries if href == own), entries[0][1])
        return FileStat(is_directory=is_dir)

    def readdir(self, path: str) -> list[DirEntry]:
        own, entries = self._propfind(path, "1")
        result = [
            DirEntry(name=posixpath.basename(href), is_file=not is_dir, is_directory=is_dir)
            for href, is_dir in entries
            if href != own
        ]
        return sorted(result, key=lambda e: e.name)

    def mkdir(self, path: str) -> None:
        try:
            self._request("MKCOL", path)
        except WebDavError as e:
            # 405: the resource already exists
            if e.status_code == 405:
                raise FileExistsError(errno.EEXIST, "WebDAV MKCOL: already exists", path) from e
            raise

    def unlink(self, path: str) -> None:
        self._request("DELETE", path)

    def write_file(self, path: str, data: bytes) -> None:
        self._request("PUT", path, content=data)

    def close(self) -> None:
        if self._owns_http:
            self._http.close()


def get_file_provider(settings: Settings) -> FileProvider:
    """WebDAV when an address is configured, the local filesystem otherwise."""
    if settings.webdav_address:
        logger.debug("Using WebDAV storage at %s", settings.webdav_address)
        password = settings.webdav_password.get_secret_value() if settings.webdav_password else None
        return WebDavFileProvider(
            settings.webdav_address,
            username=settings.webdav_username,
            password=password,
            timeout_s=settings.sevdesk_timeout_s,
        )
    return LocalFileProvider()
