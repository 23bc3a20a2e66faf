"""
Gemini client using the Google GenAI SDK.

Gemini enforces the response schema natively, so the returned text is
expected to be valid JSON already. It still goes through the normalizer.
"""

import logging

import httpx
from google import genai
from google.genai import errors, types

from docx_grader.config import ProviderConfig
from docx_grader.errors import ConfigError, ProviderError
from docx_grader.grading.providers.base import ProviderClient, ResponseShape

logger = logging.getLogger(__name__)

_RULE_DETAIL_SCHEMA = types.Schema(
    type=types.Type.OBJECT,
    properties={
        "ruleId": types.Schema(type=types.Type.STRING),
        "passed": types.Schema(type=types.Type.BOOLEAN),
        "reasoning": types.Schema(type=types.Type.STRING),
        "extractedValue": types.Schema(type=types.Type.STRING),
        "originalValue": types.Schema(type=types.Type.STRING),
    },
    required=["ruleId", "passed", "reasoning"],
)

RESPONSE_SCHEMAS: dict[ResponseShape, types.Schema] = {
    ResponseShape.GRADING: types.Schema(
        type=types.Type.OBJECT,
        properties={
            "details": types.Schema(type=types.Type.ARRAY, items=_RULE_DETAIL_SCHEMA),
            "summary": types.Schema(type=types.Type.STRING),
        },
        required=["details", "summary"],
    ),
    ResponseShape.RULES: types.Schema(
        type=types.Type.OBJECT,
        properties={
            "rules": types.Schema(
                type=types.Type.ARRAY,
                items=types.Schema(
                    type=types.Type.OBJECT,
                    properties={
                        "id": types.Schema(type=types.Type.STRING),
                        "description": types.Schema(type=types.Type.STRING),
                        "points": types.Schema(type=types.Type.NUMBER),
                        "category": types.Schema(type=types.Type.STRING),
                    },
                    required=["id", "description", "points", "category"],
                ),
            ),
        },
        required=["rules"],
    ),
}

# Gemini answers an invalid key with HTTP 400 rather than 401
_INVALID_KEY_MARKERS = ("API_KEY_INVALID", "API key not valid")


class GeminiClient(ProviderClient):
    """Provider client for Google Gemini models."""

    def __init__(self, config: ProviderConfig, client: genai.Client | None = None):
        """
        Initialize the Gemini client.

        Args:
            config: Run configuration.
            client: Optional preconfigured SDK client.
        """
        super().__init__(config)
        self._client = client or genai.Client(
            api_key=config.api_key,
            http_options=types.HttpOptions(timeout=int(config.timeout * 1000)),
        )

    def _complete(
        self,
        system_instruction: str | None,
        prompt: str,
        response_shape: ResponseShape | None,
    ) -> str:
        config_kwargs: dict[str, object] = {"temperature": self._config.temperature}
        if system_instruction:
            config_kwargs["system_instruction"] = system_instruction
        if response_shape is not None:
            config_kwargs["response_mime_type"] = "application/json"
            config_kwargs["response_schema"] = RESPONSE_SCHEMAS[response_shape]
        generation_config = types.GenerateContentConfig(**config_kwargs)  # type: ignore[arg-type]

        logger.debug("generate_content model=%s shape=%s", self._config.model, response_shape)

        try:
            response = self._client.models.generate_content(
                model=self._config.model,
                contents=prompt,
                config=generation_config,
            )

        except errors.APIError as e:
            message = e.message or str(e)
            if e.code in (401, 403) or any(m in str(e) for m in _INVALID_KEY_MARKERS):
                raise ConfigError(f"{self.name} rejected the API key: {message}") from e

            retryable = e.code == 429 or isinstance(e, errors.ServerError)
            raise ProviderError(
                f"{self.name} API error",
                status_code=e.code,
                body=message,
                retryable=retryable,
                cause=e,
            ) from e

        except httpx.TransportError as e:
            raise ProviderError(
                f"{self.name} request failed: {e}", retryable=True, cause=e
            ) from e

        if not response.text:
            raise ProviderError(f"Empty response from {self.name}")

        return response.text
