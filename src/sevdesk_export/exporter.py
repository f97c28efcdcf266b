from __future__ import annotations

import logging
import posixpath
from collections.abc import Sequence
from typing import Optional

from .models import Document
from .pmap import p_map
from .storage import FileProvider
from .util import sanitize_filename

logger = logging.getLogger(__name__)


class ExportDirectoryError(RuntimeError):
    pass


def join_path(directory: str, name: str) -> str:
    return posixpath.join(directory, name)


def prepare_directory(provider: FileProvider, directory: str) -> None:
    """Make sure ``directory`` exists and is a directory.

    A missing directory is created, but not its parents.
    """
    try:
        st = provider.stat(directory)
    except FileNotFoundError:
        try:
            provider.mkdir(directory)
        except OSError as e:
            raise ExportDirectoryError(f"Cannot create directory {directory}: {e}") from e
        logger.info("Created export directory %s", directory)
        return
    except OSError as e:
        raise ExportDirectoryError(f"Cannot access {directory}: {e}") from e
    if not st.is_directory:
        raise ExportDirectoryError(f"{directory} exists but is not a directory")


def delete_all_files_in_directory(provider: FileProvider, directory: str) -> bool:
    """Remove all non-hidden files (not subdirectories) in ``directory``. False on any failure."""
    try:
        entries = provider.readdir(directory)
    except OSError as e:
        logger.warning("Cannot list %s: %s", directory, e)
        return False
    names = [e.name for e in entries if e.is_file and not e.name.startswith(".")]
    outcomes = p_map(names, lambda n: provider.unlink(join_path(directory, n)))
    failed = [(n, o.error) for n, o in zip(names, outcomes) if not o.ok]
    for name, error in failed:
        logger.warning("Cannot delete %s: %s", name, error)
    return not failed


def save_document(provider: FileProvider, document: Optional[Document], directory: str) -> Optional[bool]:
    """Write one document. ``None`` for no document, ``False`` when the write failed."""
    if document is None:
        return None
    file_name = sanitize_filename(document.file_name)
    try:
        provider.write_file(join_path(directory, file_name), document.content)
    except OSError as e:
        logger.warning("Cannot save %s: %s", file_name, e)
        return False
    return True


def save_documents(
    provider: FileProvider,
    documents: Sequence[Optional[Document]],
    directory: str,
    *,
    concurrency: Optional[int] = None,
) -> int:
    """Save all documents in parallel and return how many were written."""
    outcomes = p_map(documents, lambda d: save_document(provider, d, directory), concurrency=concurrency)
    saved = 0
    for outcome in outcomes:
        if not outcome.ok:
            logger.warning("Saving a document failed: %s", outcome.error)
        elif outcome.value:
            saved += 1
    return saved
