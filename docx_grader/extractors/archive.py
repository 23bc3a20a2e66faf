"""
Batch archive reader.

A batch is a single ZIP holding many student documents, possibly in
nested folders. Only Word documents are taken; folders, hidden files,
OS metadata and Office lock files are skipped.
"""

import logging
import zipfile
from io import BytesIO
from pathlib import PurePosixPath
from typing import NamedTuple

from docx_grader.extractors.base import ExtractionError

logger = logging.getLogger(__name__)

DOCUMENT_EXTENSIONS: tuple[str, ...] = (".docx",)

# Folder names written by archivers that never contain submissions
_SYSTEM_DIRECTORIES = frozenset({"__MACOSX"})


class ArchiveDocument(NamedTuple):
    """One qualifying document found inside a batch archive."""

    name: str
    path: str
    data: bytes


def is_document_entry(info: zipfile.ZipInfo) -> bool:
    """Decide whether a ZIP entry is a student document."""
    if info.is_dir():
        return False

    path = PurePosixPath(info.filename.replace("\\", "/"))
    for component in path.parts:
        if component.startswith(".") or component in _SYSTEM_DIRECTORIES:
            return False

    # "~$name.docx" is the owner file Word leaves next to an open document
    if path.name.startswith("~$"):
        return False

    return path.suffix.lower() in DOCUMENT_EXTENSIONS


def extract_archive_documents(data: bytes, source: str = "<memory>") -> list[ArchiveDocument]:
    """
    List the Word documents contained in a batch archive.

    Args:
        data: Raw bytes of the ZIP archive.
        source: Name used in error messages.

    Returns:
        One ArchiveDocument per qualifying entry, in archive order.

    Raises:
        ExtractionError: If the data is not a readable ZIP archive.
    """
    try:
        with zipfile.ZipFile(BytesIO(data)) as archive:
            documents = [
                ArchiveDocument(
                    name=PurePosixPath(info.filename.replace("\\", "/")).name,
                    path=info.filename,
                    data=archive.read(info),
                )
                for info in archive.infolist()
                if is_document_entry(info)
            ]
    except zipfile.BadZipFile as e:
        raise ExtractionError("File is not a valid ZIP archive", source, cause=e) from e

    logger.info("Found %d document(s) in %s", len(documents), source)
    return documents
