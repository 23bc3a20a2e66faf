"""
Error taxonomy for the grading pipeline.

- FormatError: malformed input archive or unparseable model output.
- ConfigError: missing or invalid credential/endpoint. Fatal for a whole run.
- ProviderError: non-2xx response or transport failure. Scoped to one item.
"""

# Bodies of failed provider responses are surfaced verbatim up to this length
MAX_ERROR_BODY_LENGTH = 500


class GraderError(Exception):
    """Base class for all errors raised by the grading core."""


class FormatError(GraderError):
    """Raised when input data or model output cannot be interpreted."""


class ConfigError(GraderError):
    """Raised when provider configuration is missing or rejected."""


class ProviderError(GraderError):
    """
    Raised when a provider call fails.

    Carries the HTTP status (None for transport failures), the response
    body truncated to MAX_ERROR_BODY_LENGTH and whether a retry may help.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        body: str | None = None,
        retryable: bool = False,
        cause: Exception | None = None,
    ):
        self.status_code = status_code
        self.body = truncate(body) if body else None
        self.retryable = retryable
        self.cause = cause
        if status_code is not None:
            message = f"{message} (HTTP {status_code})"
        if self.body:
            message = f"{message}: {self.body}"
        super().__init__(message)


def truncate(text: str, limit: int = MAX_ERROR_BODY_LENGTH) -> str:
    """Cut text to at most `limit` characters, marking the cut."""
    if len(text) <= limit:
        return text
    return text[:limit] + "...(truncated)"
