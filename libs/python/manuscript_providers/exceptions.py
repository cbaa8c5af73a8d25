"""Custom exceptions used by provider adapters and the provider client."""

from __future__ import annotations


class ProviderError(RuntimeError):
    """Base error raised for provider failures."""


class ProviderConfigError(ProviderError):
    """Raised when configuration is missing or invalid."""


class ProviderResponseError(ProviderError):
    """Raised when a provider returns a 2xx response without usable content."""


class ProviderHTTPError(ProviderError):
    """Non-2xx response from a provider API."""

    def __init__(self, status_code: int, message: str = "") -> None:
        super().__init__(f"Provider returned HTTP {status_code}: {message}".rstrip(": "))
        self.status_code = status_code
        self.body = message

    @property
    def retryable(self) -> bool:
        return self.status_code == 429 or self.status_code >= 500


class ProviderTransportError(ProviderError):
    """Connection reset, DNS failure, timeout and similar."""


class ParseFailure(ProviderError):
    """Provider text could not be turned into a JSON object, even after repair."""

    def __init__(self, message: str, raw_text: str = "") -> None:
        super().__init__(message)
        self.raw_text = raw_text


class ProviderFailure(ProviderError):
    """A call gave up: retries were exhausted or the response was not retryable."""

    status_code = 502

    def __init__(self, message: str, *, attempts: int, upstream_status: int | None = None) -> None:
        super().__init__(message)
        self.attempts = attempts
        self.upstream_status = upstream_status
