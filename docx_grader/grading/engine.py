"""
Grading engine - the per-document pipeline.

Runs one document through extract -> trim -> prompt -> provider ->
normalize -> aggregate, and turns free-text exam requirements into rules.
"""

import logging
from decimal import Decimal

from docx_grader.config import REFERENCE_BUDGET_RATIO, ProviderConfig
from docx_grader.extractors import DocumentExtractor
from docx_grader.grading.normalizer import ResponseNormalizer
from docx_grader.grading.prompt_builder import GradingMode, PromptBuilder
from docx_grader.grading.providers import ProviderClient, ResponseShape, create_provider_client
from docx_grader.grading.scorer import ScoreAggregator
from docx_grader.grading.trimmer import trim_parts
from docx_grader.models import DocumentParts, GradingItem, GradingResult, RawRule, Rubric, Rule

logger = logging.getLogger(__name__)


class GradingEngine:
    """
    Grades single documents against a rubric.

    Holds no per-document state, so one engine is shared by every worker
    of a scheduler run.
    """

    def __init__(self, config: ProviderConfig, provider: ProviderClient | None = None):
        """
        Initialize the grading engine.

        Args:
            config: Immutable configuration for this run.
            provider: Client to use. Built from `config` when not given.

        Raises:
            ConfigError: If the provider cannot be built from `config`.
        """
        self._config = config
        self._provider = provider or create_provider_client(config)
        self._extractor = DocumentExtractor()
        self._normalizer = ResponseNormalizer()
        self._aggregator = ScoreAggregator()

    @property
    def config(self) -> ProviderConfig:
        return self._config

    @property
    def provider(self) -> ProviderClient:
        return self._provider

    def extract(self, item: GradingItem) -> DocumentParts:
        """
        Get the XML parts of a queued document.

        Parts extracted by an earlier attempt are reused.

        Raises:
            FormatError: If the document is not a valid .docx.
        """
        if item.parts is not None:
            return item.parts
        return self._extractor.extract(item.source_bytes, source=item.display_name)

    def grade_document(
        self,
        parts: DocumentParts,
        rubric: Rubric,
        reference: DocumentParts | None = None,
    ) -> GradingResult:
        """
        Grade one document.

        Args:
            parts: The student's document parts.
            rubric: The rubric to grade against.
            reference: Template parts; enables differential grading.

        Returns:
            GradingResult with scores derived from rubric points.

        Raises:
            ConfigError: If the provider rejects the credential.
            ProviderError: If the provider call fails.
            FormatError: If the response cannot be decoded.
        """
        limit = self._config.part_char_limit
        student = trim_parts(parts, limit)
        template = (
            trim_parts(reference, int(limit * REFERENCE_BUDGET_RATIO))
            if reference is not None
            else None
        )

        request = PromptBuilder.build_grading_prompt(student, rubric, reference=template)
        if request.mode == GradingMode.DIFFERENTIAL:
            logger.debug("Differential grading against reference document")

        raw = self._provider.grade(request.system_instruction, request.prompt, ResponseShape.GRADING)
        payload = self._normalizer.parse_grading(raw)
        return self._aggregator.aggregate(payload, rubric)

    def grade(
        self,
        item: GradingItem,
        rubric: Rubric,
        reference: DocumentParts | None = None,
    ) -> GradingResult:
        """Extract and grade a queued document in one step."""
        return self.grade_document(self.extract(item), rubric, reference)

    def generate_rules(self, requirements: str, total_points: Decimal | int | float) -> list[Rule]:
        """
        Turn exam requirements into grading rules.

        An unrecognized response yields an empty list rather than an error.

        Args:
            requirements: Free-text exam requirements.
            total_points: Score the rules should add up to.

        Returns:
            Rules with unique ids.

        Raises:
            ConfigError / ProviderError: If the provider call fails.
            FormatError: If the response contains no JSON at all.
        """
        total = Decimal(str(total_points))
        prompt = PromptBuilder.build_rules_prompt(requirements, total)
        raw = self._provider.generate_rules(prompt, ResponseShape.RULES)

        rules = self._assign_ids(self._normalizer.parse_rules(raw))

        generated_total = sum((r.points for r in rules), Decimal(0))
        if rules and generated_total != total:
            logger.warning("Generated rules total %s points, expected %s", generated_total, total)
        logger.info("Generated %d rule(s)", len(rules))
        return rules

    def check_connection(self) -> str:
        """
        Run the provider's connectivity self-test.

        Raises:
            ConfigError / ProviderError: If the provider is unreachable or
                rejects the configuration.
        """
        return self._provider.test_connection()

    @staticmethod
    def _assign_ids(raw_rules: list[RawRule]) -> list[Rule]:
        """Keep provider ids where unique; number the rest r1, r2, ..."""
        taken = {r.id for r in raw_rules if r.id}
        seen: set[str] = set()
        counter = 0
        rules: list[Rule] = []

        for raw in raw_rules:
            rule_id = raw.id
            if not rule_id or rule_id in seen:
                counter += 1
                while f"r{counter}" in taken or f"r{counter}" in seen:
                    counter += 1
                rule_id = f"r{counter}"
            seen.add(rule_id)
            rules.append(
                Rule(
                    id=rule_id,
                    description=raw.description,
                    points=raw.points,
                    category=raw.category,
                )
            )
        return rules
