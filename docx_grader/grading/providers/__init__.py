"""
AI provider clients.

One implementation per provider kind behind the ProviderClient interface.
"""

from docx_grader.grading.providers.base import ProviderClient, ResponseShape
from docx_grader.grading.providers.factory import create_provider_client
from docx_grader.grading.providers.gemini import GeminiClient
from docx_grader.grading.providers.openai_compatible import OpenAICompatibleClient

__all__ = [
    "GeminiClient",
    "OpenAICompatibleClient",
    "ProviderClient",
    "ResponseShape",
    "create_provider_client",
]
