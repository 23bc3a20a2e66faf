"""
Score aggregator.

Reconciles the provider's pass/fail verdicts with the rubric. Points
always come from the rubric: a provider can flip a verdict but cannot
award arbitrary scores.
"""

import logging
from decimal import Decimal

from docx_grader.models import GradingPayload, GradingResult, RawRuleDetail, Rubric, RuleResult

logger = logging.getLogger(__name__)

DEFAULT_SUMMARY = "Grading completed."

MISSING_REASONING = "No reasoning provided: the provider did not report on this rule."

NOT_AVAILABLE = "N/A"


class ScoreAggregator:
    """
    Builds a GradingResult from provider verdicts and a rubric.

    - Every rubric rule appears once, in rubric order.
    - A passed rule scores its full points, anything else scores zero.
    - Verdicts for ids not in the rubric are kept as zero-point records.
    - maxScore is the rubric total, whatever the provider returned.
    """

    def aggregate(self, payload: GradingPayload, rubric: Rubric) -> GradingResult:
        """
        Score a decoded grading response against the rubric.

        Args:
            payload: Decoded provider response.
            rubric: The authoritative rubric.

        Returns:
            GradingResult with scores recomputed from rubric points.
        """
        verdicts: dict[str, RawRuleDetail] = {}
        unknown: list[RawRuleDetail] = []

        for detail in payload.details:
            if rubric.get_rule(detail.rule_id) is None:
                unknown.append(detail)
            elif detail.rule_id in verdicts:
                logger.debug("Ignoring repeated verdict for rule %s", detail.rule_id)
            else:
                verdicts[detail.rule_id] = detail

        details: list[RuleResult] = []
        for rule in rubric.rules:
            detail = verdicts.get(rule.id)
            if detail is None:
                details.append(
                    RuleResult(
                        rule_id=rule.id,
                        passed=False,
                        score=Decimal(0),
                        reasoning=MISSING_REASONING,
                    )
                )
                continue

            details.append(self._to_result(detail, rule.points if detail.passed else Decimal(0)))

        if unknown:
            logger.warning(
                "Provider reported unknown rule ids: %s", ", ".join(d.rule_id for d in unknown)
            )
        details.extend(self._to_result(d, Decimal(0)) for d in unknown)

        return GradingResult(
            total_score=sum((d.score for d in details), Decimal(0)),
            max_score=rubric.max_score,
            details=tuple(details),
            summary=payload.summary or DEFAULT_SUMMARY,
        )

    @staticmethod
    def _to_result(detail: RawRuleDetail, score: Decimal) -> RuleResult:
        return RuleResult(
            rule_id=detail.rule_id,
            passed=detail.passed,
            score=score,
            reasoning=detail.reasoning or MISSING_REASONING,
            extracted_value=detail.extracted_value or NOT_AVAILABLE,
            original_value=detail.original_value or NOT_AVAILABLE,
        )
