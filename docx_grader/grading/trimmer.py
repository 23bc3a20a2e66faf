"""
Payload trimmer.

Keeps each XML part within a provider's character budget. Namespace
declarations are dropped first since they carry no grading evidence.
If a part is still too large, its head and tail are kept: the head holds
style and definition sections, the tail holds section and page settings.
"""

import re

from docx_grader.models import PART_NAMES, DocumentParts

NAMESPACE_DECLARATION = re.compile(r' xmlns:[^=]+="[^"]+"')

TRUNCATION_MARKER = "\n...(truncated)...\n"

HEAD_RATIO = 0.7


def strip_namespaces(text: str) -> str:
    """Remove `xmlns:prefix="..."` declarations."""
    return NAMESPACE_DECLARATION.sub("", text)


def trim(text: str, limit: int) -> str:
    """
    Fit `text` into `limit` characters plus the truncation marker.

    Args:
        text: An XML part.
        limit: Character budget.

    Returns:
        The text with namespace noise removed, cut to a head slice (70% of
        the budget) and a tail slice (30%) when still over budget.
    """
    if not text:
        return ""

    cleaned = strip_namespaces(text)
    if len(cleaned) <= limit:
        return cleaned

    head = int(limit * HEAD_RATIO)
    tail = limit - head
    tail_slice = cleaned[-tail:] if tail > 0 else ""
    return cleaned[:head] + TRUNCATION_MARKER + tail_slice


def trim_parts(parts: DocumentParts, limit: int) -> DocumentParts:
    """Apply `trim` to every part of a document."""
    return DocumentParts(**{name: trim(getattr(parts, name), limit) for name in PART_NAMES})
