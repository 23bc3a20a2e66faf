"""
Word document part extractor.

A .docx file is a ZIP container. Grading works on its raw XML parts,
which are handed to the provider as opaque text.
"""

import logging
import zipfile
from io import BytesIO
from pathlib import Path
from typing import ClassVar

from docx_grader.extractors.base import ExtractionError
from docx_grader.models import DocumentParts

logger = logging.getLogger(__name__)


class DocumentExtractor:
    """
    Unpacks a Word document into its named XML parts.

    The main document part is mandatory. Styles, comments, relationships
    and numbering default to an empty string when the document has none.
    """

    CONTENT_PART: ClassVar[str] = "word/document.xml"

    OPTIONAL_PARTS: ClassVar[dict[str, str]] = {
        "styles": "word/styles.xml",
        "comments": "word/comments.xml",
        "relationships": "word/_rels/document.xml.rels",
        "numbering": "word/numbering.xml",
    }

    def extract(self, data: bytes, source: str = "<memory>") -> DocumentParts:
        """
        Extract the XML parts of a Word document.

        Args:
            data: Raw bytes of the .docx file.
            source: Name used in error messages.

        Returns:
            DocumentParts with every part decoded to text.

        Raises:
            ExtractionError: If the data is not a ZIP archive or the main
                document part is missing.
        """
        try:
            with zipfile.ZipFile(BytesIO(data)) as archive:
                names = set(archive.namelist())

                if self.CONTENT_PART not in names:
                    raise ExtractionError(f"'{self.CONTENT_PART}' not found", source)

                parts = {"content": self._read_part(archive, self.CONTENT_PART)}
                for field, part_name in self.OPTIONAL_PARTS.items():
                    parts[field] = (
                        self._read_part(archive, part_name) if part_name in names else ""
                    )

        except zipfile.BadZipFile as e:
            raise ExtractionError(
                "File is not a valid .docx document or is corrupted", source, cause=e
            ) from e

        result = DocumentParts(**parts)
        logger.debug("Extracted %s: %d characters across all parts", source, result.total_length)
        return result

    def extract_file(self, file_path: Path) -> DocumentParts:
        """Read a .docx from disk and extract its parts."""
        if not file_path.is_file():
            raise ExtractionError("File does not exist", file_path)
        return self.extract(file_path.read_bytes(), source=file_path.name)

    @staticmethod
    def _read_part(archive: zipfile.ZipFile, name: str) -> str:
        raw = archive.read(name)
        if raw.startswith((b"\xff\xfe", b"\xfe\xff")):
            return raw.decode("utf-16")
        return raw.decode("utf-8-sig", errors="replace")


def extract_parts(data: bytes, source: str = "<memory>") -> DocumentParts:
    """Convenience wrapper around DocumentExtractor.extract."""
    return DocumentExtractor().extract(data, source)
