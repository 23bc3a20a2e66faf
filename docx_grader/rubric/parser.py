"""
Rubric parser module.

Parses raw rubric text into a structured Rubric.
Supports numbered lists (with an optional [category] tag), dash-separated
lines and markdown tables.
"""

import re
from decimal import Decimal, InvalidOperation
from typing import Sequence

from docx_grader.errors import FormatError
from docx_grader.models import Rubric, Rule


class RubricParseError(FormatError):
    """Raised when rubric parsing fails."""

    def __init__(self, message: str, line_number: int | None = None):
        self.line_number = line_number
        if line_number:
            message = f"Line {line_number}: {message}"
        super().__init__(message)


class RubricParser:
    """
    Parses rubric text into a Rubric model.

    Supports formats:
    1. Numbered list: "1. [格式] Title is bold (10 points): Description"
    2. Simple format: "Title is bold - 10 pts - Description"
    3. Markdown table: "| Rule | Points | Description |"

    Rules are numbered r1, r2, ... in the order they appear.
    """

    POINTS_UNIT = r"(?:points?|pts?|marks?|分)"

    NUMBERED_PATTERN = re.compile(
        r"^\s*\d+[.)、]\s*"  # Number with dot
        r"(?:\[([^\]]+)\]\s*)?"  # Optional category
        r"([^(（]+)"  # Rule name
        r"[(（]\s*(\d+(?:\.\d+)?)\s*" + POINTS_UNIT + r"\s*[)）]"  # Points in parentheses
        r"[:：\s]*"  # Optional colon/space
        r"(.*)$",  # Description
        re.IGNORECASE,
    )

    SIMPLE_PATTERN = re.compile(
        r"^\s*"
        r"(?:\[([^\]]+)\]\s*)?"  # Optional category
        r"([^-]+?)"  # Rule name
        r"\s*-\s*"  # Dash separator
        r"(\d+(?:\.\d+)?)\s*" + POINTS_UNIT +  # Points
        r"\s*-\s*"  # Dash separator
        r"(.+)$",  # Description
        re.IGNORECASE,
    )

    def parse(self, content: str, title: str = "Grading Rubric") -> Rubric:
        """
        Parse rubric content into a Rubric model.

        Args:
            content: Raw text content of the rubric.
            title: Title used when the text has no heading.

        Returns:
            Structured Rubric object.

        Raises:
            RubricParseError: If parsing fails.
        """
        if not content or not content.strip():
            raise RubricParseError("Rubric content is empty")

        lines = content.strip().split("\n")
        rules = self._parse_lines(lines)

        if not rules:
            raise RubricParseError(
                "No valid rules found. Expected format like:\n"
                "  1. [格式] Title is bold (10 points): Description\n"
                "  OR: Title is bold - 10 pts - Description"
            )

        return Rubric(title=self._extract_title(lines) or title, rules=tuple(rules))

    def _parse_lines(self, lines: Sequence[str]) -> list[Rule]:
        rules: list[Rule] = []

        for line_num, line in enumerate(lines, start=1):
            stripped = line.strip()
            if not stripped or stripped.startswith("#") or stripped.startswith("---"):
                continue
            if stripped.startswith("|") and set(stripped.replace("|", "").strip()) <= {"-", ":"}:
                continue

            fields = (
                self._match_line(self.NUMBERED_PATTERN, stripped, line_num)
                or self._match_line(self.SIMPLE_PATTERN, stripped, line_num)
                or self._try_table_format(stripped, line_num)
            )
            if fields is None:
                continue

            category, name, points, description = fields
            rules.append(
                Rule(
                    id=f"r{len(rules) + 1}",
                    description=f"{name}: {description}" if description else name,
                    points=points,
                    category=category,
                )
            )

        return rules

    def _match_line(
        self, pattern: re.Pattern[str], line: str, line_num: int
    ) -> tuple[str, str, Decimal, str] | None:
        match = pattern.match(line)
        if not match:
            return None
        category = (match.group(1) or "").strip()
        name = match.group(2).strip()
        points = self._parse_points(match.group(3), line_num)
        return category, name, points, match.group(4).strip()

    def _try_table_format(self, line: str, line_num: int) -> tuple[str, str, Decimal, str] | None:
        """Parse a markdown table row: name, points, then description cells."""
        if not line.startswith("|"):
            return None

        cells = [c.strip() for c in line.split("|")]
        cells = [c for c in cells if c]
        if len(cells) < 2:
            return None

        for i, cell in enumerate(cells[1:], start=1):
            points_match = re.fullmatch(r"(\d+(?:\.\d+)?)\s*" + self.POINTS_UNIT + "?", cell, re.IGNORECASE)
            if points_match:
                points = self._parse_points(points_match.group(1), line_num)
                return "", cells[0], points, " ".join(cells[i + 1 :])

        # Header rows have no numeric cell
        return None

    def _parse_points(self, points_str: str, line_num: int) -> Decimal:
        try:
            points = Decimal(points_str.strip())
        except InvalidOperation as e:
            raise RubricParseError(f"Invalid points value: {points_str}", line_num) from e
        if points < 0:
            raise RubricParseError(f"Points must not be negative, got {points}", line_num)
        return points

    def _extract_title(self, lines: Sequence[str]) -> str | None:
        """Markdown heading, if the rubric starts with one."""
        for line in lines:
            stripped = line.strip()
            if not stripped:
                continue
            if stripped.startswith("#"):
                return stripped.lstrip("#").strip() or None
            return None
        return None
