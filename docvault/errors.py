"""
Error taxonomy shared by every pipeline stage.

  ConfigurationError -- missing credentials, dimension mismatch, bad chunk
                        parameters.  Fatal; surfaced verbatim to the operator.
  InputError         -- the caller sent something we refuse to process
                        (oversized file, no extractable text, no question).
  ProviderError      -- an embedding / generation / index call failed.
                        Carries a category so callers can decide whether a
                        retry makes sense.  The core itself never retries.
"""
from __future__ import annotations

from enum import Enum
from typing import Optional

RATE_LIMIT_MESSAGE = "API rate limit exceeded. Please try again in a few minutes."
TOO_LARGE_MESSAGE = "File too large."


class ProviderErrorCategory(str, Enum):
    RATE_LIMITED = "rate_limited"    # HTTP 429, quota / resource exhausted
    TOO_LARGE = "too_large"          # HTTP 413, context length exceeded
    TRANSIENT = "transient"          # connection reset, timeout, 5xx
    GENERIC = "generic"


# Category recorded on an IngestResult rejected before any provider call
INPUT_ERROR_CATEGORY = "input"

RETRYABLE_CATEGORIES = frozenset(
    {ProviderErrorCategory.RATE_LIMITED.value, ProviderErrorCategory.TRANSIENT.value}
)


def is_retryable_category(category: Optional[str]) -> bool:
    """True for failures worth retrying later: rate limits and transient faults."""
    return category in RETRYABLE_CATEGORIES


class DocVaultError(Exception):
    """Base class for all errors raised by the docvault core."""

    @property
    def user_message(self) -> str:
        return str(self) or "Request failed."


class ConfigurationError(DocVaultError):
    """Fatal misconfiguration. Never retried."""


class InputError(DocVaultError):
    """The request was rejected before any provider was called."""


class ProviderError(DocVaultError):
    """A call to an external provider (embedding, generation, index) failed."""

    def __init__(
        self,
        message: str,
        category: ProviderErrorCategory = ProviderErrorCategory.GENERIC,
        provider: str = "",
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.category = category
        self.provider = provider
        self.status_code = status_code

    @property
    def retryable(self) -> bool:
        return is_retryable_category(self.category.value)

    @property
    def user_message(self) -> str:
        if self.category == ProviderErrorCategory.RATE_LIMITED:
            return RATE_LIMIT_MESSAGE
        if self.category == ProviderErrorCategory.TOO_LARGE:
            return TOO_LARGE_MESSAGE
        return str(self) or "Request failed."

    def __repr__(self) -> str:
        return (
            f"ProviderError(provider={self.provider!r}, category={self.category.value}, "
            f"status={self.status_code}, message={str(self)!r})"
        )


def classify_provider_message(
    message: str, status_code: Optional[int] = None
) -> ProviderErrorCategory:
    """Map an HTTP status and/or error body onto a ProviderErrorCategory."""
    lower = (message or "").lower()
    if status_code == 413 or any(
        s in lower
        for s in ("file too large", "entity too large", "payload too large", "maximum context length")
    ):
        return ProviderErrorCategory.TOO_LARGE
    if status_code == 429 or any(
        s in lower for s in ("rate limit", "quota", "resource_exhausted", "429")
    ):
        return ProviderErrorCategory.RATE_LIMITED
    if status_code is not None and status_code >= 500:
        return ProviderErrorCategory.TRANSIENT
    if any(s in lower for s in ("timed out", "timeout", "connection")):
        return ProviderErrorCategory.TRANSIENT
    return ProviderErrorCategory.GENERIC
