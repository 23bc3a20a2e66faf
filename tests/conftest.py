"""
Pytest configuration and fixtures.

Provides common test fixtures for all test modules.
"""

import json
import tempfile
import zipfile
from collections.abc import Callable
from decimal import Decimal
from io import BytesIO
from pathlib import Path
from typing import Generator
from unittest.mock import MagicMock

import pytest

from docx_grader.config import ProviderConfig, ProviderKind, Settings
from docx_grader.models import DocumentParts, Rubric, Rule

# ==============================================================================
# Directory Fixtures
# ==============================================================================


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


# ==============================================================================
# Document Fixtures
# ==============================================================================

DOCUMENT_XML = (
    '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>'
    '<w:document xmlns:w="http://schemas.openxmlformats.org/wordprocessingml/2006/main"'
    ' xmlns:r="http://schemas.openxmlformats.org/officeDocument/2006/relationships">'
    "<w:body><w:p><w:pPr><w:jc w:val=\"center\"/></w:pPr>"
    "<w:r><w:rPr><w:b/><w:sz w:val=\"44\"/></w:rPr><w:t>摘要</w:t></w:r></w:p>"
    "<w:sectPr><w:pgMar w:top=\"1440\" w:bottom=\"1440\"/></w:sectPr></w:body></w:document>"
)

STYLES_XML = '<w:styles><w:style w:styleId="Heading1"><w:rPr><w:b/></w:rPr></w:style></w:styles>'

COMMENTS_XML = '<w:comments><w:comment w:id="0" w:author="Teacher"><w:p><w:r><w:t>Fix this</w:t></w:r></w:p></w:comment></w:comments>'


def build_zip(entries: dict[str, bytes | str]) -> bytes:
    """Build an in-memory ZIP archive from name -> content entries."""
    buffer = BytesIO()
    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as archive:
        for name, content in entries.items():
            archive.writestr(name, content)
    return buffer.getvalue()


@pytest.fixture
def zip_builder() -> Callable[[dict[str, bytes | str]], bytes]:
    return build_zip


@pytest.fixture
def document_xml() -> str:
    return DOCUMENT_XML


@pytest.fixture
def styles_xml() -> str:
    return STYLES_XML


@pytest.fixture
def comments_xml() -> str:
    return COMMENTS_XML


@pytest.fixture
def make_docx() -> Callable[..., bytes]:
    """Factory for minimal .docx archives with selectable parts."""

    def _make(
        document: str | None = DOCUMENT_XML,
        styles: str | None = STYLES_XML,
        comments: str | None = None,
    ) -> bytes:
        entries: dict[str, bytes | str] = {"[Content_Types].xml": "<Types/>"}
        if document is not None:
            entries["word/document.xml"] = document
        if styles is not None:
            entries["word/styles.xml"] = styles
        if comments is not None:
            entries["word/comments.xml"] = comments
        return build_zip(entries)

    return _make


@pytest.fixture
def docx_bytes(make_docx: Callable[..., bytes]) -> bytes:
    """A valid .docx with document and styles parts."""
    return make_docx()


@pytest.fixture
def sample_parts() -> DocumentParts:
    """Extracted parts of a small student document."""
    return DocumentParts(content=DOCUMENT_XML, styles=STYLES_XML)


@pytest.fixture
def reference_parts() -> DocumentParts:
    """Extracted parts of a template document with a comment."""
    return DocumentParts(content="<w:document>template</w:document>", comments=COMMENTS_XML)


@pytest.fixture
def sample_docx_file(temp_dir: Path, docx_bytes: bytes) -> Path:
    """A .docx file on disk."""
    file_path = temp_dir / "student.docx"
    file_path.write_bytes(docx_bytes)
    return file_path


# ==============================================================================
# Sample Rubric Fixtures
# ==============================================================================


@pytest.fixture
def sample_rubric() -> Rubric:
    """Two-rule rubric worth 15 points."""
    return Rubric(
        title="Word Formatting Exam",
        rules=(
            Rule(id="r1", description="标题 '摘要' 应设置为黑体且居中", points=Decimal("10"), category="格式"),
            Rule(id="r2", description="正文首行缩进 2 字符", points=Decimal("5"), category="格式"),
        ),
    )


@pytest.fixture
def sample_rubric_text() -> str:
    """Sample rubric in text format."""
    return """# Word Formatting Exam

1. [格式] Title is bold (10 points): The heading '摘要' uses bold 22pt text
2. [格式] Body indent (5 points): First line indent of 2 characters
3. [批注] Comment reply (5 points): Reply to the teacher's comment
"""


@pytest.fixture
def sample_rubric_json_file(temp_dir: Path) -> Path:
    """Rubric JSON as written by generate-rules."""
    file_path = temp_dir / "rubric.json"
    file_path.write_text(
        json.dumps(
            {
                "title": "Word Formatting Exam",
                "rules": [
                    {"id": "r1", "description": "Title is bold", "points": "10", "category": "格式"},
                    {"id": "r2", "description": "Body indent", "points": 5, "category": "格式"},
                ],
            },
            ensure_ascii=False,
        ),
        encoding="utf-8",
    )
    return file_path


# ==============================================================================
# Provider Response Fixtures
# ==============================================================================


@pytest.fixture
def sample_grading_response() -> str:
    """Provider grading response for sample_rubric (r1 passes, r2 fails)."""
    return json.dumps(
        {
            "details": [
                {
                    "ruleId": "r1",
                    "passed": True,
                    "reasoning": "标题加粗居中",
                    "extractedValue": "bold, center",
                    "originalValue": "N/A",
                },
                {
                    "ruleId": "r2",
                    "passed": False,
                    "reasoning": "未设置首行缩进",
                    "extractedValue": "0",
                },
            ],
            "summary": "格式基本正确",
        },
        ensure_ascii=False,
    )


# ==============================================================================
# Settings Fixtures
# ==============================================================================


@pytest.fixture
def test_settings() -> Settings:
    """Create test settings with fake credentials."""
    return Settings(
        _env_file=None,  # type: ignore[call-arg]
        provider=ProviderKind.DEEPSEEK,
        gemini_api_key="test-gemini-key",
        deepseek_api_key="test-deepseek-key",
        deepseek_base_url="https://deepseek.test/",
        openai_api_key="test-openai-key",
        concurrency_limit=3,
        max_retries=2,
    )


@pytest.fixture
def deepseek_config() -> ProviderConfig:
    return ProviderConfig(
        provider_kind=ProviderKind.DEEPSEEK,
        model="deepseek-chat",
        base_url="https://deepseek.test",
        api_key="test-deepseek-key",
        concurrency_limit=2,
        max_retries=2,
    )


@pytest.fixture
def gemini_config() -> ProviderConfig:
    return ProviderConfig(
        provider_kind=ProviderKind.GEMINI,
        model="gemini-2.0-flash-exp",
        api_key="test-gemini-key",
        max_retries=2,
    )


# ==============================================================================
# Mock Fixtures
# ==============================================================================


@pytest.fixture
def mock_provider(deepseek_config: ProviderConfig, sample_grading_response: str) -> MagicMock:
    """Provider client double that answers every grading call the same way."""
    provider = MagicMock()
    provider.config = deepseek_config
    provider.name = "deepseek:deepseek-chat"
    provider.grade.return_value = sample_grading_response
    provider.test_connection.return_value = "pong"
    return provider
