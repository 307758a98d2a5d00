"""
Lazily-built provider client handles.

A handle is constructed once, on first use, and then shared.  Construction
is guarded by a lock so concurrent first calls from worker threads build
exactly one client; the lock is released before any request is sent.
"""
from __future__ import annotations

import os
import threading
from typing import Callable, Generic, Optional, TypeVar

from loguru import logger

from docvault.errors import (
    ConfigurationError,
    DocVaultError,
    ProviderError,
    ProviderErrorCategory,
    classify_provider_message,
)

T = TypeVar("T")


class LazyClient(Generic[T]):
    """Once-only, thread-safe lazy construction of an SDK client."""

    def __init__(self, factory: Callable[[], T], name: str = "client") -> None:
        self._factory = factory
        self._name = name
        self._client: Optional[T] = None
        self._lock = threading.Lock()

    def get(self) -> T:
        client = self._client
        if client is not None:
            return client
        with self._lock:
            if self._client is None:
                self._client = self._factory()
                logger.debug(f"[Clients] {self._name} client initialised")
            return self._client

    @property
    def initialised(self) -> bool:
        return self._client is not None


def require_env(var: str) -> str:
    """Read a credential from the environment or fail with ConfigurationError."""
    value = os.getenv(var)
    if not value:
        raise ConfigurationError(f"{var} is not set")
    return value


_TRANSIENT_SDK_ERRORS = {"APIConnectionError", "APITimeoutError", "InternalServerError"}


def translate_provider_error(exc: Exception, provider: str) -> DocVaultError:
    """
    Map an exception raised by the openai / anthropic SDKs (or an HTTP
    client) onto the docvault taxonomy.  Both SDKs expose `status_code` on
    status errors, so this does not need to import either of them.
    """
    if isinstance(exc, DocVaultError):
        return exc

    status = getattr(exc, "status_code", None)
    message = str(exc) or type(exc).__name__

    if status in (401, 403):
        return ConfigurationError(f"{provider} rejected the configured credentials: {message}")

    if type(exc).__name__ in _TRANSIENT_SDK_ERRORS:
        category = ProviderErrorCategory.TRANSIENT
    else:
        category = classify_provider_message(message, status)
    return ProviderError(
        f"{provider} request failed: {message}",
        category=category,
        provider=provider,
        status_code=status,
    )


def openai_client(api_key_env: str = "OPENAI_API_KEY") -> LazyClient:
    def _build():
        from openai import OpenAI  # lazy import keeps import graph clean
        # Retries belong to the calling layer, never to the core
        return OpenAI(api_key=require_env(api_key_env), max_retries=0)

    return LazyClient(_build, name="openai")


def anthropic_client(api_key_env: str = "ANTHROPIC_API_KEY") -> LazyClient:
    def _build():
        from anthropic import Anthropic  # lazy import
        return Anthropic(api_key=require_env(api_key_env), max_retries=0)

    return LazyClient(_build, name="anthropic")
