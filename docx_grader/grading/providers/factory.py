"""
Provider factory module.

Selects the client implementation for a provider kind once, at
construction, so call sites never branch on the provider.
"""

from docx_grader.config import ProviderConfig, ProviderKind
from docx_grader.errors import ConfigError
from docx_grader.grading.providers.base import ProviderClient
from docx_grader.grading.providers.gemini import GeminiClient
from docx_grader.grading.providers.openai_compatible import OpenAICompatibleClient

# Registry of client implementations by provider kind
_CLIENTS: dict[ProviderKind, type[ProviderClient]] = {
    ProviderKind.GEMINI: GeminiClient,
    ProviderKind.DEEPSEEK: OpenAICompatibleClient,
    ProviderKind.OPENAI: OpenAICompatibleClient,
}


def create_provider_client(config: ProviderConfig) -> ProviderClient:
    """
    Create the client for the configured provider.

    Raises:
        ConfigError: If the provider is unknown or its credential is missing.
    """
    client_cls = _CLIENTS.get(config.provider_kind)
    if client_cls is None:
        raise ConfigError(f"Unsupported provider: {config.provider_kind}")
    return client_cls(config)
