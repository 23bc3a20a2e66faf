"""
Docx Grader - rubric-based grading of Word documents with AI providers.

Extracts the raw XML parts of .docx submissions, asks a configured AI
provider to judge each rubric rule against them, and derives scores from
the rubric's own point values.
"""

__version__ = "1.0.0"
