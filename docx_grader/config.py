"""
Configuration management for the Docx Grader system.

Uses Pydantic Settings for type-safe configuration loading from environment variables.
The grading core never reads settings directly: a run is handed an immutable
ProviderConfig produced by `Settings.provider_config()`.
"""

from enum import Enum
from functools import lru_cache

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ProviderKind(str, Enum):
    """AI backends the grader can dispatch to."""

    GEMINI = "gemini"  # Native SDK with enforced response schema
    DEEPSEEK = "deepseek"  # OpenAI-compatible chat completions
    OPENAI = "openai"  # Any other OpenAI-compatible endpoint


# Character budget per document part, keyed by provider
PART_CHAR_LIMITS: dict[ProviderKind, int] = {
    ProviderKind.GEMINI: 200_000,
    ProviderKind.DEEPSEEK: 50_000,
    ProviderKind.OPENAI: 50_000,
}

# Share of the student budget given to the reference document in differential mode
REFERENCE_BUDGET_RATIO = 0.4

# Placeholder credentials shipped in sample env files
PLACEHOLDER_API_KEYS = frozenset({"", "sk-placeholder"})


class ProviderConfig(BaseModel):
    """
    Immutable provider configuration for one grading run.

    Built once from Settings and passed into the pipeline; never mutated.
    """

    model_config = ConfigDict(frozen=True)

    provider_kind: ProviderKind
    model: str = Field(..., min_length=1)
    base_url: str | None = None
    api_key: str | None = Field(default=None, repr=False)
    concurrency_limit: int = Field(default=5, ge=1, le=20)
    timeout: float = Field(default=120.0, gt=0)
    max_retries: int = Field(default=2, ge=0, le=10)
    temperature: float = Field(default=0.0, ge=0.0, le=1.0)

    @property
    def part_char_limit(self) -> int:
        """Character budget for each document part sent to this provider."""
        return PART_CHAR_LIMITS[self.provider_kind]

    @property
    def has_credential(self) -> bool:
        return self.api_key is not None and self.api_key.strip() not in PLACEHOLDER_API_KEYS


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings are validated at startup. Credentials are optional here;
    a missing credential surfaces as a ConfigError when a provider is built.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ==========================================================================
    # Provider Selection
    # ==========================================================================
    provider: ProviderKind = Field(
        default=ProviderKind.GEMINI,
        description="AI backend used for grading and rule generation",
    )

    # ==========================================================================
    # Gemini
    # ==========================================================================
    gemini_api_key: str | None = Field(default=None, description="Google AI Studio API key")

    gemini_model: str = Field(
        default="gemini-2.0-flash-exp",
        description="Gemini model identifier",
    )

    # ==========================================================================
    # DeepSeek
    # ==========================================================================
    deepseek_api_key: str | None = Field(default=None, description="DeepSeek API key")

    deepseek_base_url: str = Field(
        default="https://api.deepseek.com",
        description="Base URL of the DeepSeek chat completions API",
    )

    deepseek_model: str = Field(
        default="deepseek-chat",
        description="DeepSeek model identifier (deepseek-chat or deepseek-reasoner)",
    )

    # ==========================================================================
    # Generic OpenAI-compatible endpoint
    # ==========================================================================
    openai_api_key: str | None = Field(default=None, description="API key for the endpoint")

    openai_base_url: str = Field(
        default="https://api.openai.com/v1",
        description="Base URL of the OpenAI-compatible API",
    )

    openai_model: str = Field(default="gpt-4o-mini", description="Model identifier")

    # ==========================================================================
    # Run Configuration
    # ==========================================================================
    concurrency_limit: int = Field(
        default=5,
        ge=1,
        le=20,
        description="Maximum number of documents graded concurrently",
    )

    request_timeout: float = Field(
        default=120.0,
        gt=0,
        description="Timeout in seconds for a single provider call",
    )

    max_retries: int = Field(
        default=2,
        ge=0,
        le=10,
        description="Retries for transport errors, 429 and 5xx responses",
    )

    llm_temperature: float = Field(
        default=0.0,
        ge=0.0,
        le=1.0,
        description="Temperature for LLM generation (0.0 = deterministic)",
    )

    log_level: str = Field(default="INFO", description="Root log level for the CLI")

    @field_validator("deepseek_base_url", "openai_base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        """Ensure base URL doesn't have trailing slash."""
        return v.rstrip("/")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        return v.upper()

    def provider_config(
        self,
        kind: ProviderKind | None = None,
        model: str | None = None,
        concurrency_limit: int | None = None,
    ) -> ProviderConfig:
        """
        Build the immutable configuration for one grading run.

        Args:
            kind: Override the configured provider.
            model: Override the provider's configured model.
            concurrency_limit: Override the configured concurrency limit.

        Returns:
            A frozen ProviderConfig.
        """
        kind = kind or self.provider

        if kind == ProviderKind.GEMINI:
            default_model, base_url, api_key = self.gemini_model, None, self.gemini_api_key
        elif kind == ProviderKind.DEEPSEEK:
            default_model, base_url, api_key = (
                self.deepseek_model,
                self.deepseek_base_url,
                self.deepseek_api_key,
            )
        else:
            default_model, base_url, api_key = (
                self.openai_model,
                self.openai_base_url,
                self.openai_api_key,
            )

        return ProviderConfig(
            provider_kind=kind,
            model=model or default_model,
            base_url=base_url,
            api_key=api_key,
            concurrency_limit=concurrency_limit or self.concurrency_limit,
            timeout=self.request_timeout,
            max_retries=self.max_retries,
            temperature=self.llm_temperature,
        )


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses LRU cache to ensure settings are only loaded once.
    """
    return Settings()
