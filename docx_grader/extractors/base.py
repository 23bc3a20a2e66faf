"""
Base classes for document extraction.

Defines the extraction error and the abstract interface shared by the
requirements-text extractors.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import ClassVar

from docx_grader.errors import FormatError


class ExtractionError(FormatError):
    """
    Raised when document extraction fails.

    Contains the name of the offending source and the underlying cause.
    """

    def __init__(self, message: str, source: str | Path, cause: Exception | None = None):
        self.source = str(source)
        self.cause = cause
        super().__init__(f"Failed to extract '{source}': {message}")


class TextExtractor(ABC):
    """
    Abstract base class for plain-text extractors.

    Used to read exam requirements from which rules are generated. Each
    subclass declares the extensions it handles via `SUPPORTED_EXTENSIONS`.
    """

    SUPPORTED_EXTENSIONS: ClassVar[tuple[str, ...]] = ()

    @classmethod
    def supports(cls, file_path: Path) -> bool:
        """Check if this extractor handles the file's extension."""
        return file_path.suffix.lower() in cls.SUPPORTED_EXTENSIONS

    @abstractmethod
    def extract(self, file_path: Path) -> str:
        """
        Extract text content from the file.

        Raises:
            ExtractionError: If extraction fails for any reason.
        """
        ...

    def _validate_file(self, file_path: Path) -> None:
        if not file_path.exists():
            raise ExtractionError("File does not exist", file_path)

        if not file_path.is_file():
            raise ExtractionError("Path is not a file", file_path)

        if not self.supports(file_path):
            raise ExtractionError(
                f"Unsupported file format. Expected one of: {self.SUPPORTED_EXTENSIONS}",
                file_path,
            )

    @staticmethod
    def _require_text(text: str, file_path: Path) -> str:
        if not text.strip():
            raise ExtractionError("File contains no extractable text", file_path)
        return text
