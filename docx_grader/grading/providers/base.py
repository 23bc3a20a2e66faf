"""
Provider client base class.

Every AI backend exposes the same three operations: grade a document,
generate rules from requirements, and a connectivity self-test. Subclasses
implement one raw completion call and translate their SDK's errors into
ConfigError / ProviderError; retries and backoff live here.
"""

import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from enum import Enum

from docx_grader.config import ProviderConfig
from docx_grader.errors import ConfigError, ProviderError

logger = logging.getLogger(__name__)


class ResponseShape(str, Enum):
    """The JSON shape a provider is asked to produce."""

    GRADING = "grading"  # {details: [{ruleId, passed, reasoning, ...}], summary}
    RULES = "rules"  # [{id, description, points, category}]


CONNECTION_TEST_PROMPT = "Reply with the single word: pong"


class ProviderClient(ABC):
    """
    Client for one AI backend.

    Construction fails with ConfigError when the credential is missing, so
    no request is ever sent without one.
    """

    def __init__(self, config: ProviderConfig):
        if not config.has_credential:
            raise ConfigError(
                f"No API key configured for provider '{config.provider_kind.value}'. "
                f"Set {config.provider_kind.value.upper()}_API_KEY in the environment or .env file."
            )
        self._config = config

        # Retry configuration
        self._max_retries = config.max_retries
        self._base_delay = 1.0  # seconds
        self._max_delay = 30.0  # seconds

    @property
    def config(self) -> ProviderConfig:
        return self._config

    @property
    def name(self) -> str:
        return f"{self._config.provider_kind.value}:{self._config.model}"

    def grade(self, system_instruction: str, prompt: str, response_shape: ResponseShape) -> str:
        """
        Send a grading request.

        Args:
            system_instruction: Output contract and grading heuristics.
            prompt: Document XML and rules.
            response_shape: Expected JSON shape.

        Returns:
            Raw response text, to be passed through the normalizer.

        Raises:
            ConfigError: If the provider rejects the credential.
            ProviderError: If the call fails after all retries.
        """
        return self._call_with_retry(
            lambda: self._complete(system_instruction, prompt, response_shape)
        )

    def generate_rules(self, prompt: str, response_shape: ResponseShape) -> str:
        """Send a rule-generation request and return the raw response text."""
        return self._call_with_retry(lambda: self._complete(None, prompt, response_shape))

    def test_connection(self) -> str:
        """
        Send a minimal prompt to validate configuration.

        Returns:
            The raw reply.

        Raises:
            ConfigError / ProviderError: Same taxonomy as grading calls.
        """
        reply = self._call_with_retry(lambda: self._complete(None, CONNECTION_TEST_PROMPT, None))
        logger.info("Connection test to %s succeeded", self.name)
        return reply

    @abstractmethod
    def _complete(
        self,
        system_instruction: str | None,
        prompt: str,
        response_shape: ResponseShape | None,
    ) -> str:
        """
        Perform one request without retrying.

        Raises:
            ConfigError: Credential rejected.
            ProviderError: Any other failure, with `retryable` set for
                transport errors, 429 and 5xx.
        """
        ...

    def _call_with_retry(self, call: Callable[[], str]) -> str:
        """
        Run `call`, retrying retryable ProviderErrors with exponential backoff.

        Raises:
            ProviderError: If all attempts fail or the error is not retryable.
        """
        for attempt in range(self._max_retries + 1):
            try:
                started = time.monotonic()
                text = call()
                logger.debug(
                    "%s answered in %.1fs (%d chars)", self.name, time.monotonic() - started, len(text)
                )
                return text
            except ProviderError as e:
                if not e.retryable or attempt >= self._max_retries:
                    raise
                delay = self._calculate_delay(attempt)
                logger.warning(
                    "%s call failed (%s), retrying in %.0fs (%d/%d)",
                    self.name,
                    e,
                    delay,
                    attempt + 1,
                    self._max_retries,
                )
                time.sleep(delay)

        # Unreachable: the last attempt either returns or raises
        raise ProviderError(f"{self.name} failed after {self._max_retries} retries")

    def _calculate_delay(self, attempt: int) -> float:
        """Exponential backoff delay for a 0-indexed attempt."""
        delay = self._base_delay * (2**attempt)
        return min(delay, self._max_delay)
