"""
Grading Module.

Per-document grading pipeline and the concurrent scheduler that drives it.
"""

from docx_grader.grading.engine import GradingEngine
from docx_grader.grading.normalizer import ResponseNormalizer
from docx_grader.grading.prompt_builder import GradingMode, GradingPrompt, PromptBuilder
from docx_grader.grading.scheduler import GradingQueue, GradingScheduler, SchedulerState
from docx_grader.grading.scorer import ScoreAggregator
from docx_grader.grading.trimmer import trim, trim_parts

__all__ = [
    "GradingEngine",
    "GradingMode",
    "GradingPrompt",
    "GradingQueue",
    "GradingScheduler",
    "PromptBuilder",
    "ResponseNormalizer",
    "SchedulerState",
    "ScoreAggregator",
    "trim",
    "trim_parts",
]
