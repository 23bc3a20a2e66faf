"""
Rubric Processing Module.

Provides loading, parsing and validation of grading rubrics.
"""

from docx_grader.rubric.loader import load_rubric, load_rules
from docx_grader.rubric.parser import RubricParseError, RubricParser
from docx_grader.rubric.validator import RubricValidationError, RubricValidator

__all__ = [
    "RubricParser",
    "RubricParseError",
    "RubricValidator",
    "RubricValidationError",
    "load_rubric",
    "load_rules",
]
