"""
Rubric loader module.

Reads a rubric from disk. JSON files hold either a list of rules or an
object with `title` and `rules` (the format written by `generate-rules`).
Any other supported file is read as text and parsed by RubricParser.
"""

import json
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from docx_grader.extractors import extract_text
from docx_grader.models import Rubric, Rule
from docx_grader.rubric.parser import RubricParseError, RubricParser


def load_rules(path: Path | str) -> tuple[str | None, list[Rule]]:
    """
    Load the title and rules of a rubric file without enforcing unique ids.

    Raises:
        RubricParseError: If the file cannot be parsed into rules.
        ExtractionError: If a text rubric cannot be read.
    """
    path = Path(path)
    if path.suffix.lower() == ".json":
        return _load_json(path)

    rubric = RubricParser().parse(extract_text(path))
    return rubric.title, list(rubric.rules)


def load_rubric(path: Path | str) -> Rubric:
    """
    Load a rubric file.

    Raises:
        RubricParseError: If the file is not a valid rubric.
    """
    title, rules = load_rules(path)
    try:
        return Rubric(title=title or "Grading Rubric", rules=tuple(rules))
    except ValidationError as e:
        raise RubricParseError(f"Invalid rubric in {path}: {_first_error(e)}") from e


def _load_json(path: Path) -> tuple[str | None, list[Rule]]:
    try:
        data: Any = json.loads(path.read_text(encoding="utf-8-sig"))
    except (OSError, json.JSONDecodeError) as e:
        raise RubricParseError(f"Cannot read rubric {path}: {e}") from e

    title = None
    if isinstance(data, dict):
        title = data.get("title")
        data = data.get("rules")
    if not isinstance(data, list):
        raise RubricParseError(f"{path}: expected a list of rules or an object with 'rules'")

    rules: list[Rule] = []
    for index, entry in enumerate(data, start=1):
        try:
            rules.append(Rule.model_validate(entry))
        except ValidationError as e:
            raise RubricParseError(f"{path}: rule {index}: {_first_error(e)}") from e
    return title, rules


def _first_error(error: ValidationError) -> str:
    first = error.errors()[0]
    location = ".".join(str(part) for part in first["loc"])
    return f"{location}: {first['msg']}" if location else first["msg"]
