"""Custom exception hierarchy for MetroCircuit.

All application exceptions inherit from :class:`MetroCircuitError`, which
carries an optional ``provider_name`` so handlers can tell which external
service (e.g. "gemini", "openai", "sqlite") caused the failure.

    MetroCircuitError  (base)
    +-- InputValidationError        (missing or malformed request parameters)
    |   +-- DocumentNotFoundError   (unknown document id)
    +-- SourceError                 (source file unreadable or missing)
    +-- ExtractionShortfallError    (no strategy produced enough text)
    +-- LLMError                    (text-generation call failed)
    +-- EmbeddingError              (embedding call failed)
    +-- ProviderUnavailableError    (provider not configured or unreachable)
    +-- ResponseParseError          (LLM output not valid JSON / schema)
    +-- AllAttemptsFailedError      (fallback chain exhausted)
    +-- PipelineError               (invalid phase transition, missing state)
    +-- ConfigurationError          (startup / missing config)

Only input and source errors are returned to HTTP callers as ``{"error"}``
payloads; the rest are absorbed into fallbacks at component boundaries.
"""

from __future__ import annotations


class MetroCircuitError(Exception):
    """Base exception for all MetroCircuit errors.

    ``__str__`` prefixes the provider name in brackets for log scanning,
    e.g. ``[gemini] HTTP 429``.
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        provider_name: str | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# Caller-facing errors
# ---------------------------------------------------------------------------

class InputValidationError(MetroCircuitError):
    """Raised when a request is missing a required parameter or has a bad value."""

    def __init__(self, message: str = "Invalid request", provider_name: str | None = None) -> None:
        super().__init__(message=message, provider_name=provider_name)


class DocumentNotFoundError(InputValidationError):
    """Raised when a document id does not resolve to a stored document."""

    def __init__(self, document_id: str) -> None:
        self.document_id = document_id
        super().__init__(message=f"Document '{document_id}' not found")


class SourceError(MetroCircuitError):
    """Raised when a document's source bytes cannot be fetched."""

    def __init__(
        self,
        message: str = "Source file could not be read",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ExtractionShortfallError(MetroCircuitError):
    """Raised when every text-extraction strategy yields below-threshold text."""

    def __init__(
        self,
        message: str = "No extraction strategy produced usable text",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Provider errors (absorbed by fallbacks)
# ---------------------------------------------------------------------------

class LLMError(MetroCircuitError):
    """Raised when an LLM text-generation call fails after all model combinations."""

    def __init__(self, message: str = "LLM call failed", provider_name: str | None = None) -> None:
        super().__init__(message=message, provider_name=provider_name)


class EmbeddingError(MetroCircuitError):
    """Raised when an embedding call fails on every configured endpoint."""

    def __init__(
        self,
        message: str = "Embedding call failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ProviderUnavailableError(MetroCircuitError):
    """Raised when a provider is not configured or its dependency is missing."""

    def __init__(
        self,
        message: str = "External service is unavailable",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ResponseParseError(MetroCircuitError):
    """Raised when an LLM response cannot be parsed into the expected shape."""

    def __init__(
        self,
        message: str = "Could not parse LLM response",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class AllAttemptsFailedError(MetroCircuitError):
    """Raised by the fallback runner when no attempt succeeded.

    ``failures`` maps each attempt name to the reason it was rejected.
    """

    def __init__(
        self,
        label: str,
        failures: dict[str, str],
        provider_name: str | None = None,
    ) -> None:
        self.failures = dict(failures)
        summary = "; ".join(f"{name}: {reason}" for name, reason in failures.items())
        super().__init__(
            message=f"All {label} attempts failed ({summary or 'no attempts configured'})",
            provider_name=provider_name,
        )


# ---------------------------------------------------------------------------
# Internal errors
# ---------------------------------------------------------------------------

class PipelineError(MetroCircuitError):
    """Raised on invalid ingestion phase transitions or missing ingestion state."""

    def __init__(
        self,
        message: str = "Ingestion pipeline error",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ConfigurationError(MetroCircuitError):
    """Raised when required configuration is missing or invalid at startup."""

    def __init__(
        self,
        message: str = "Invalid configuration",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
