"""
Plain text requirements extractor.

Handles .txt and .md files with encoding fallback for files saved by
Chinese-locale editors.
"""

from pathlib import Path
from typing import ClassVar

from docx_grader.extractors.base import ExtractionError, TextExtractor


class PlainTextExtractor(TextExtractor):
    """Reads .txt and .md requirement files."""

    SUPPORTED_EXTENSIONS: ClassVar[tuple[str, ...]] = (".txt", ".md")

    # Encodings to try in order of preference
    ENCODINGS: ClassVar[tuple[str, ...]] = ("utf-8-sig", "gb18030", "latin-1")

    def extract(self, file_path: Path) -> str:
        self._validate_file(file_path)

        raw = file_path.read_bytes()
        last_error: Exception | None = None

        for encoding in self.ENCODINGS:
            try:
                return self._require_text(raw.decode(encoding), file_path)
            except UnicodeDecodeError as e:
                last_error = e

        raise ExtractionError(
            f"Could not decode file with any supported encoding: {self.ENCODINGS}",
            file_path,
            cause=last_error,
        )
