"""
Extractor factory module.

Selects the requirements-text extractor for a file by extension.
"""

from pathlib import Path

from docx_grader.extractors.base import ExtractionError, TextExtractor
from docx_grader.extractors.docx_extractor import WordTextExtractor
from docx_grader.extractors.pdf_extractor import PDFTextExtractor
from docx_grader.extractors.text_extractor import PlainTextExtractor

# Registry of all available extractors
_EXTRACTORS: tuple[type[TextExtractor], ...] = (
    PlainTextExtractor,
    WordTextExtractor,
    PDFTextExtractor,
)


def get_supported_extensions() -> tuple[str, ...]:
    """Get all extensions accepted for requirements files."""
    extensions: list[str] = []
    for extractor_cls in _EXTRACTORS:
        extensions.extend(extractor_cls.SUPPORTED_EXTENSIONS)
    return tuple(sorted(set(extensions)))


def create_extractor(file_path: Path | str) -> TextExtractor:
    """
    Create the appropriate extractor for a given file.

    Raises:
        ExtractionError: If the file format is not supported.
    """
    path = Path(file_path)
    for extractor_cls in _EXTRACTORS:
        if extractor_cls.supports(path):
            return extractor_cls()

    raise ExtractionError(
        f"Unsupported file format '{path.suffix.lower()}'. "
        f"Supported formats: {get_supported_extensions()}",
        path,
    )


def extract_text(file_path: Path | str) -> str:
    """
    Extract plain text from a requirements file.

    Convenience function that creates the appropriate extractor
    and performs the extraction in one step.
    """
    path = Path(file_path)
    return create_extractor(path).extract(path)
