"""
Response normalizer for provider output.

Recovers a JSON value from raw model text that may be wrapped in
Markdown fences, preceded by an inline reasoning block, or surrounded by
conversational prose, then decodes it into a known response shape.
"""

import json
import logging
import re
from typing import Any

from pydantic import BaseModel, ValidationError

from docx_grader.errors import FormatError
from docx_grader.models import (
    CriteriaWrapper,
    DataWrapper,
    GradingDetailList,
    GradingPayload,
    GradingRulesWrapper,
    ItemsWrapper,
    RawGradingPayload,
    RawRule,
    RawRuleDetail,
    RuleList,
    RulesWrapper,
    WrappedGradingPayload,
)

logger = logging.getLogger(__name__)

CODE_FENCE = re.compile(r"```[a-zA-Z]*")

REASONING_BLOCK = re.compile(
    r"<(think|thinking|reasoning)>.*?</\1>", re.IGNORECASE | re.DOTALL
)

# Some reasoning models drop the opening tag and emit only the closing one
DANGLING_REASONING_END = re.compile(r"^.*?</(?:think|thinking|reasoning)>", re.IGNORECASE | re.DOTALL)

_CLOSERS = {"{": "}", "[": "]"}

# Tried in order; the first shape that validates wins
GRADING_SHAPES: tuple[type[BaseModel], ...] = (
    RawGradingPayload,
    WrappedGradingPayload,
    GradingDetailList,
)

RULE_SHAPES: tuple[type[BaseModel], ...] = (
    RuleList,
    RulesWrapper,
    ItemsWrapper,
    DataWrapper,
    GradingRulesWrapper,
    CriteriaWrapper,
)


class ResponseNormalizer:
    """
    Turns noisy provider output into validated response models.

    Grading output that cannot be recovered is an error for that document.
    Rule-generation output in an unknown shape degrades to "no rules".
    """

    def normalize(self, raw_text: str) -> Any:
        """
        Extract the JSON value embedded in raw model output.

        Args:
            raw_text: Text returned by the provider.

        Returns:
            The decoded JSON value (object or array).

        Raises:
            FormatError: If no parseable JSON can be recovered.
        """
        if not raw_text or not raw_text.strip():
            raise FormatError("Empty response from provider")

        text = CODE_FENCE.sub("", raw_text)
        text = REASONING_BLOCK.sub("", text)
        text = DANGLING_REASONING_END.sub("", text, count=1)

        return self._decode(self._json_span(text))

    def parse_grading(self, raw_text: str) -> GradingPayload:
        """
        Decode a grading response.

        Raises:
            FormatError: If the text holds no JSON, the JSON matches no
                known grading shape, or none of its verdicts is valid.
        """
        raw = self._grading_shape(self.normalize(raw_text))

        details: list[RawRuleDetail] = []
        for index, entry in enumerate(raw.details):
            try:
                details.append(RawRuleDetail.model_validate(entry))
            except ValidationError as e:
                logger.warning("Dropping malformed verdict at index %d: %s", index, e.errors()[0]["msg"])

        if raw.details and not details:
            raise FormatError("Response contains no valid rule verdicts")
        return GradingPayload(details=details, summary=raw.summary)

    @staticmethod
    def _grading_shape(value: Any) -> RawGradingPayload:
        for shape in GRADING_SHAPES:
            try:
                parsed = shape.model_validate(value)
            except ValidationError:
                continue
            return parsed.unwrap()  # type: ignore[attr-defined]
        raise FormatError("Response does not match the grading schema")

    def parse_rules(self, raw_text: str) -> list[RawRule]:
        """
        Decode a rule-generation response.

        Accepts a bare array or an array nested under a known wrapper key.
        Entries that are not valid rules are dropped.

        Raises:
            FormatError: If the text holds no JSON at all.
        """
        value = self.normalize(raw_text)

        entries = self._rule_entries(value)
        if entries is None:
            logger.warning("Rule-generation response has an unrecognized shape; no rules produced")
            return []

        rules: list[RawRule] = []
        for index, entry in enumerate(entries):
            try:
                rules.append(RawRule.model_validate(entry))
            except ValidationError as e:
                logger.warning("Dropping malformed rule at index %d: %s", index, e.errors()[0]["msg"])
        return rules

    @staticmethod
    def _rule_entries(value: Any) -> list[Any] | None:
        for shape in RULE_SHAPES:
            try:
                parsed = shape.model_validate(value)
            except ValidationError:
                continue
            return parsed.entries()  # type: ignore[attr-defined]
        return None

    @staticmethod
    def _json_span(text: str) -> str:
        """Slice from the first opening bracket to its last matching closer."""
        starts = [i for i in (text.find("{"), text.find("[")) if i != -1]
        if not starts:
            raise FormatError("No JSON object or array found in response")

        start = min(starts)
        end = text.rfind(_CLOSERS[text[start]])
        if end < start:
            raise FormatError("Unclosed JSON value in response")

        return text[start : end + 1]

    @staticmethod
    def _decode(span: str) -> Any:
        try:
            return json.loads(span)
        except json.JSONDecodeError as e:
            raise FormatError(f"Invalid JSON in response: {e}") from e
