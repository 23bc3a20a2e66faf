"""
PDF requirements extractor using PyMuPDF.
"""

from pathlib import Path
from typing import ClassVar

import fitz  # PyMuPDF

from docx_grader.extractors.base import ExtractionError, TextExtractor


class PDFTextExtractor(TextExtractor):
    """Extracts page text from PDF exam requirement sheets."""

    SUPPORTED_EXTENSIONS: ClassVar[tuple[str, ...]] = (".pdf",)

    def extract(self, file_path: Path) -> str:
        self._validate_file(file_path)

        try:
            with fitz.open(file_path) as doc:
                pages = [page.get_text("text") for page in doc]
        except (fitz.FileDataError, fitz.EmptyFileError) as e:
            raise ExtractionError("PDF file is corrupted or empty", file_path, cause=e) from e

        text = "\n".join(p for p in pages if p.strip())
        if not text.strip():
            # Scanned sheets have no text layer
            raise ExtractionError("No text layer found; OCR is not supported", file_path)
        return text
