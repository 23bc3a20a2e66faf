"""
Pydantic models for the Docx Grader system.

These models define the schemas for:
- Rubric rules and structure
- Extracted document parts
- Grading results with per-rule scores
- Queue items tracked by the scheduler
- The response shapes accepted from providers

Result models serialize with camelCase aliases (ruleId, totalScore, ...).
"""

from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    RootModel,
    computed_field,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel


def _to_decimal(v: Any) -> Decimal:
    """Convert numeric values to Decimal for precision."""
    if isinstance(v, Decimal):
        return v
    if isinstance(v, bool):
        raise ValueError("points must be a number, not a boolean")
    try:
        return Decimal(str(v).strip())
    except InvalidOperation as e:
        raise ValueError(f"Invalid numeric value: {v!r}") from e


# ==============================================================================
# Rubric Models
# ==============================================================================


class Rule(BaseModel):
    """
    A single scoring rule within a rubric.

    The rule is awarded its full point value when the provider judges it
    passed, and zero otherwise.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1, description="Identifier unique within the rubric")

    description: str = Field(
        ...,
        description="Concrete requirement (e.g. 'Heading is bold and centered')",
    )

    points: Decimal = Field(..., ge=0, description="Points awarded when the rule passes")

    category: str = Field(default="", description="Free-form grouping (e.g. 'format')")

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v: Any) -> str:
        return str(v).strip()

    @field_validator("points", mode="before")
    @classmethod
    def convert_to_decimal(cls, v: Any) -> Decimal:
        return _to_decimal(v)


class Rubric(BaseModel):
    """
    An ordered set of scoring rules.

    Rule ids must be unique. The sum of rule points is the maximum score.
    """

    model_config = ConfigDict(frozen=True)

    title: str = Field(default="Grading Rubric", description="Title of the rubric")

    rules: tuple[Rule, ...] = Field(default=(), description="Scoring rules in display order")

    @computed_field  # type: ignore[prop-decorator]
    @property
    def max_score(self) -> Decimal:
        """Sum of all rule point values."""
        return sum((r.points for r in self.rules), Decimal(0))

    @model_validator(mode="after")
    def validate_unique_ids(self) -> "Rubric":
        """Ensure no duplicate rule ids."""
        ids = [r.id for r in self.rules]
        if len(ids) != len(set(ids)):
            duplicates = sorted({i for i in ids if ids.count(i) > 1})
            raise ValueError(f"Duplicate rule ids found: {duplicates}")
        return self

    def get_rule(self, rule_id: str) -> Rule | None:
        for rule in self.rules:
            if rule.id == rule_id:
                return rule
        return None


# ==============================================================================
# Document Models
# ==============================================================================


class DocumentParts(BaseModel):
    """
    Named XML parts of one Word document, treated as opaque text.

    Only `content` is mandatory in the source archive; the other parts are
    empty strings when the document does not carry them.
    """

    model_config = ConfigDict(frozen=True)

    content: str
    styles: str = ""
    comments: str = ""
    relationships: str = ""
    numbering: str = ""

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total_length(self) -> int:
        return sum(len(getattr(self, name)) for name in PART_NAMES)


PART_NAMES: tuple[str, ...] = ("content", "styles", "comments", "relationships", "numbering")


# ==============================================================================
# Grading Result Models
# ==============================================================================


class RuleResult(BaseModel):
    """
    The outcome of one rule for one document.

    `score` is derived from the rubric, never copied from provider output.
    """

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    rule_id: str
    passed: bool
    score: Decimal = Field(..., ge=0)
    reasoning: str
    extracted_value: str = "N/A"
    original_value: str = "N/A"


class GradingResult(BaseModel):
    """Complete grading result for one document."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    total_score: Decimal
    max_score: Decimal
    details: tuple[RuleResult, ...]
    summary: str

    @computed_field  # type: ignore[prop-decorator]
    @property
    def percentage(self) -> float:
        """Calculate overall percentage score."""
        if self.max_score == 0:
            return 0.0
        return float(self.total_score / self.max_score * 100)


# ==============================================================================
# Queue Models
# ==============================================================================


class ItemStatus(str, Enum):
    """Lifecycle of a queued document."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"


class GradingItem(BaseModel):
    """
    One document queued for grading.

    Items are immutable snapshots. Every state transition produces a new
    snapshot, which the queue publishes with a single assignment.
    """

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    id: str = Field(default_factory=lambda: uuid4().hex)
    display_name: str
    source_bytes: bytes = Field(..., repr=False, exclude=True)
    status: ItemStatus = ItemStatus.PENDING
    progress: int = Field(default=0, ge=0, le=100)
    parts: DocumentParts | None = Field(default=None, exclude=True)
    result: GradingResult | None = None
    error_message: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in (ItemStatus.COMPLETED, ItemStatus.ERROR)

    def claimed(self) -> "GradingItem":
        return self.model_copy(
            update={"status": ItemStatus.PROCESSING, "progress": 0, "error_message": None}
        )

    def with_progress(self, progress: int) -> "GradingItem":
        # Never moves backwards
        return self.model_copy(update={"progress": max(self.progress, min(progress, 100))})

    def with_parts(self, parts: DocumentParts) -> "GradingItem":
        return self.model_copy(update={"parts": parts})

    def completed(self, result: GradingResult) -> "GradingItem":
        return self.model_copy(
            update={"status": ItemStatus.COMPLETED, "progress": 100, "result": result}
        )

    def failed(self, message: str) -> "GradingItem":
        return self.model_copy(
            update={"status": ItemStatus.ERROR, "error_message": message, "result": None}
        )

    def reset(self) -> "GradingItem":
        return self.model_copy(
            update={
                "status": ItemStatus.PENDING,
                "progress": 0,
                "result": None,
                "error_message": None,
            }
        )


# ==============================================================================
# Provider Response Shapes
# ==============================================================================


class RawRuleDetail(BaseModel):
    """One rule verdict as reported by a provider."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    rule_id: str
    passed: bool = False
    reasoning: str = ""
    extracted_value: str | None = None
    original_value: str | None = None

    @field_validator("passed", mode="before")
    @classmethod
    def coerce_passed(cls, v: Any) -> Any:
        # null means the provider gave no verdict
        return False if v is None else v

    @field_validator("rule_id", mode="before")
    @classmethod
    def coerce_rule_id(cls, v: Any) -> str:
        if v is None:
            raise ValueError("ruleId is required")
        return str(v).strip()

    @field_validator("reasoning", "extracted_value", "original_value", mode="before")
    @classmethod
    def coerce_text(cls, v: Any) -> Any:
        if v is None or isinstance(v, str):
            return v
        return str(v)


class GradingPayload(BaseModel):
    """Decoded grading response with validated rule verdicts."""

    details: list[RawRuleDetail]
    summary: str | None = None


class RawGradingPayload(BaseModel):
    """
    Canonical grading response shape: {details: [...], summary}.

    Verdicts are left unchecked so one malformed entry can be dropped
    without discarding the rest.
    """

    details: list[Any]
    summary: str | None = None

    @field_validator("summary", mode="before")
    @classmethod
    def coerce_summary(cls, v: Any) -> Any:
        if v is None or isinstance(v, str):
            return v
        return str(v)

    def unwrap(self) -> "RawGradingPayload":
        return self


class WrappedGradingPayload(BaseModel):
    """Grading response nested under a single `result` key."""

    result: RawGradingPayload

    def unwrap(self) -> RawGradingPayload:
        return self.result


class GradingDetailList(RootModel[list[Any]]):
    """Grading response that is a bare list of rule verdicts."""

    def unwrap(self) -> RawGradingPayload:
        return RawGradingPayload(details=self.root)


class RawRule(BaseModel):
    """A rule as proposed by a provider during rule generation."""

    id: str | None = None
    description: str = Field(..., min_length=1)
    points: Decimal = Field(default=Decimal(0), ge=0)
    category: str = ""

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v: Any) -> str | None:
        if v is None:
            return None
        return str(v).strip() or None

    @field_validator("category", mode="before")
    @classmethod
    def coerce_category(cls, v: Any) -> str:
        return "" if v is None else str(v)

    @field_validator("points", mode="before")
    @classmethod
    def convert_to_decimal(cls, v: Any) -> Decimal:
        if v is None:
            return Decimal(0)
        return _to_decimal(v)


class RuleList(RootModel[list[Any]]):
    """Canonical rule-generation response: a bare JSON array."""

    def entries(self) -> list[Any]:
        return self.root


class RulesWrapper(BaseModel):
    rules: list[Any]

    def entries(self) -> list[Any]:
        return self.rules


class ItemsWrapper(BaseModel):
    items: list[Any]

    def entries(self) -> list[Any]:
        return self.items


class DataWrapper(BaseModel):
    data: list[Any]

    def entries(self) -> list[Any]:
        return self.data


class GradingRulesWrapper(BaseModel):
    grading_rules: list[Any] = Field(..., alias="gradingRules")

    def entries(self) -> list[Any]:
        return self.grading_rules


class CriteriaWrapper(BaseModel):
    criteria: list[Any]

    def entries(self) -> list[Any]:
        return self.criteria
