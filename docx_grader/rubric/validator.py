"""
Rubric validation module.

Checks a rubric for problems that would make grading results misleading,
such as rules with no description or point totals that differ from the
exam's full score.
"""

from collections import Counter
from decimal import Decimal
from typing import Sequence

from docx_grader.errors import FormatError
from docx_grader.models import Rubric, Rule


class RubricValidationError(FormatError):
    """Raised when rubric validation fails."""

    def __init__(self, errors: list[str]):
        self.errors = errors
        message = "Rubric validation failed:\n" + "\n".join(f"  - {e}" for e in errors)
        super().__init__(message)


class RubricValidator:
    """
    Validates rubrics for completeness and consistency.

    Checks:
    1. The rubric has rules and every rule has a description
    2. Rule ids are unique
    3. Points sum to a positive total (and to the expected total, if given)
    """

    # Sanity cap for a single rule
    MAX_POINTS_PER_RULE = Decimal("1000")

    def validate(
        self, rubric: Rubric | Sequence[Rule], expected_total: Decimal | None = None
    ) -> tuple[bool, list[str]]:
        """
        Validate a rubric and return any issues found.

        Args:
            rubric: The rubric, or a plain rule list (which may still
                contain duplicate ids).
            expected_total: Full score the rules should add up to.

        Returns:
            Tuple of (is_valid, list of issues).
        """
        rules = rubric.rules if isinstance(rubric, Rubric) else tuple(rubric)
        issues: list[str] = []

        if not rules:
            issues.append("Rubric has no rules")

        for index, rule in enumerate(rules, start=1):
            issues.extend(self._validate_rule(rule, index))

        issues.extend(self._check_duplicates(rules))
        issues.extend(self._validate_total_points(rules, expected_total))

        return len(issues) == 0, issues

    def validate_or_raise(
        self, rubric: Rubric | Sequence[Rule], expected_total: Decimal | None = None
    ) -> None:
        """
        Raises:
            RubricValidationError: If validation fails.
        """
        is_valid, issues = self.validate(rubric, expected_total)
        if not is_valid:
            raise RubricValidationError(issues)

    def _validate_rule(self, rule: Rule, index: int) -> list[str]:
        issues: list[str] = []
        prefix = f"Rule {index} ({rule.id})"

        if not rule.description.strip():
            issues.append(f"{prefix}: Description is empty")

        if rule.points > self.MAX_POINTS_PER_RULE:
            issues.append(
                f"{prefix}: Points ({rule.points}) exceed maximum "
                f"allowed ({self.MAX_POINTS_PER_RULE})"
            )

        return issues

    def _check_duplicates(self, rules: Sequence[Rule]) -> list[str]:
        counts = Counter(rule.id for rule in rules)
        return [
            f"Duplicate rule id: '{rule_id}' (appears {count} times)"
            for rule_id, count in counts.items()
            if count > 1
        ]

    def _validate_total_points(
        self, rules: Sequence[Rule], expected_total: Decimal | None
    ) -> list[str]:
        issues: list[str] = []
        total = sum((r.points for r in rules), Decimal(0))

        if rules and total <= 0:
            issues.append("Total points must be greater than 0")

        if expected_total is not None and total != expected_total:
            issues.append(
                f"Rules add up to {total} points, expected {expected_total}"
            )

        return issues
