"""
Document Extraction Module.

- DocumentExtractor: raw XML parts of a Word document, for grading.
- extract_archive_documents: Word documents inside a batch ZIP.
- extract_text: plain text of a requirements file (.txt, .md, .docx, .pdf).
"""

from docx_grader.extractors.archive import ArchiveDocument, extract_archive_documents
from docx_grader.extractors.base import ExtractionError
from docx_grader.extractors.document import DocumentExtractor, extract_parts
from docx_grader.extractors.factory import create_extractor, extract_text

__all__ = [
    "ArchiveDocument",
    "DocumentExtractor",
    "ExtractionError",
    "create_extractor",
    "extract_archive_documents",
    "extract_parts",
    "extract_text",
]
