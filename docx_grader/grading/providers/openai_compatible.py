"""
OpenAI-compatible chat completions client.

Used for DeepSeek and any other endpoint that speaks the OpenAI chat
completions protocol (POST {base_url}/chat/completions). These backends
cannot enforce a schema, so the expected shape is spelled out in the
system message and JSON mode is requested where the model supports it.
"""

import logging

import httpx
from openai import (
    APIConnectionError,
    APIStatusError,
    AuthenticationError,
    OpenAI,
    PermissionDeniedError,
)

from docx_grader.config import ProviderConfig
from docx_grader.errors import ConfigError, ProviderError
from docx_grader.grading.providers.base import ProviderClient, ResponseShape

logger = logging.getLogger(__name__)

SHAPE_INSTRUCTIONS: dict[ResponseShape, str] = {
    ResponseShape.GRADING: (
        "Return JSON format: an object "
        '{"details": [{"ruleId": string, "passed": boolean, "reasoning": string, '
        '"extractedValue": string, "originalValue": string}], "summary": string}.'
    ),
    ResponseShape.RULES: (
        "Return JSON format: an object "
        '{"rules": [{"id": string, "description": string, "points": number, "category": string}]}.'
    ),
}

# Reasoning models on these endpoints reject response_format
_NO_JSON_MODE_MARKERS = ("reasoner", "-r1")


class OpenAICompatibleClient(ProviderClient):
    """
    Provider client for OpenAI-style chat completion endpoints.

    Uses the OpenAI SDK with a custom base URL. The SDK's own retries are
    disabled; ProviderClient applies the retry policy.
    """

    def __init__(self, config: ProviderConfig, http_client: httpx.Client | None = None):
        """
        Initialize the client.

        Args:
            config: Run configuration.
            http_client: Optional preconfigured HTTP client (proxies, test transports).
        """
        super().__init__(config)
        if not config.base_url:
            raise ConfigError(f"No base URL configured for provider '{config.provider_kind.value}'")

        self._client = OpenAI(
            api_key=config.api_key,
            base_url=config.base_url,
            timeout=config.timeout,
            max_retries=0,
            http_client=http_client,
        )

    @property
    def supports_json_mode(self) -> bool:
        model = self._config.model.lower()
        return not any(marker in model for marker in _NO_JSON_MODE_MARKERS)

    def _complete(
        self,
        system_instruction: str | None,
        prompt: str,
        response_shape: ResponseShape | None,
    ) -> str:
        messages: list[dict[str, str]] = []

        system_parts: list[str] = []
        if system_instruction:
            system_parts.append(system_instruction)
        if response_shape is not None:
            system_parts.append(SHAPE_INSTRUCTIONS[response_shape])
        if system_parts:
            messages.append({"role": "system", "content": "\n\n".join(system_parts)})
        messages.append({"role": "user", "content": prompt})

        extra: dict[str, object] = {}
        if response_shape is not None and self.supports_json_mode:
            extra["response_format"] = {"type": "json_object"}

        logger.debug("POST %s/chat/completions model=%s", self._config.base_url, self._config.model)

        try:
            response = self._client.chat.completions.create(
                model=self._config.model,
                messages=messages,  # type: ignore[arg-type]
                temperature=self._config.temperature,
                stream=False,
                **extra,  # type: ignore[arg-type]
            )

        except (AuthenticationError, PermissionDeniedError) as e:
            raise ConfigError(
                f"{self.name} rejected the API key (HTTP {e.status_code})"
            ) from e

        except APIStatusError as e:
            # Don't retry on client errors (4xx except 429)
            retryable = e.status_code == 429 or e.status_code >= 500
            raise ProviderError(
                f"{self.name} API error",
                status_code=e.status_code,
                body=e.response.text,
                retryable=retryable,
                cause=e,
            ) from e

        except APIConnectionError as e:
            raise ProviderError(
                f"{self.name} request failed: {e}", retryable=True, cause=e
            ) from e

        if not response.choices or not response.choices[0].message.content:
            raise ProviderError(f"Empty response from {self.name}")

        return response.choices[0].message.content
