"""
Word requirements extractor using python-docx.

Reads the visible text of an exam requirements document, keeping the
order of paragraphs and tables as they appear in the body.
"""

from pathlib import Path
from typing import ClassVar

from docx import Document
from docx.opc.exceptions import PackageNotFoundError
from docx.table import Table
from docx.text.paragraph import Paragraph

from docx_grader.extractors.base import ExtractionError, TextExtractor


class WordTextExtractor(TextExtractor):
    """Extracts body text (paragraphs and tables) from .docx files."""

    SUPPORTED_EXTENSIONS: ClassVar[tuple[str, ...]] = (".docx",)

    def extract(self, file_path: Path) -> str:
        self._validate_file(file_path)

        try:
            doc = Document(str(file_path))
        except PackageNotFoundError as e:
            raise ExtractionError(
                "File is not a valid .docx document or is corrupted", file_path, cause=e
            ) from e

        blocks: list[str] = []
        for block in doc.iter_inner_content():
            if isinstance(block, Paragraph):
                if block.text.strip():
                    blocks.append(block.text)
            elif isinstance(block, Table):
                table_text = self._table_text(block)
                if table_text:
                    blocks.append(table_text)

        return self._require_text("\n".join(blocks), file_path)

    @staticmethod
    def _table_text(table: Table) -> str:
        rows = []
        for row in table.rows:
            cells = [cell.text.strip() for cell in row.cells]
            if any(cells):
                rows.append(" | ".join(cells))
        return "\n".join(rows)
