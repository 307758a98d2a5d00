"""
Text Generators
----------------
`TextGenerator` is the generation contract used by query condensation and
answer synthesis:

    generate(system, messages, max_tokens) -> str
    stream(system, messages, max_tokens)   -> Iterator[str]

Two implementations share it:

  OpenAIGenerator    -- OpenAI chat models (gpt-4o-mini, gpt-4o)
  AnthropicGenerator -- Anthropic (claude-haiku-4-5, claude-sonnet-4-6)

The serving pipeline and API server pick one at start-up from the config.
SDK failures are translated into ConfigurationError / ProviderError.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Iterator, Optional, Sequence, Union

from langsmith import traceable
from loguru import logger

from docvault.clients import (
    LazyClient,
    anthropic_client,
    openai_client,
    translate_provider_error,
)
from docvault.errors import InputError
from docvault.schemas import ConversationTurn, Role


# ---------------------------------------------------------------------------
# Model pricing table  (input_$/M, output_$/M)
# ---------------------------------------------------------------------------

_MODEL_PRICING: dict[str, tuple[float, float]] = {
    "gpt-4o-mini":               (0.150,  0.600),
    "gpt-4o":                    (2.500, 10.000),
    "claude-haiku-4-5-20251001": (0.800,  4.000),
    "claude-sonnet-4-6":         (3.000, 15.000),
}


def _cost_usd(model: str, prompt_tokens: int, completion_tokens: int) -> float:
    """Compute estimated cost in USD for a given model and token counts."""
    rates = _MODEL_PRICING.get(model, (0.150, 0.600))
    return (prompt_tokens * rates[0] + completion_tokens * rates[1]) / 1_000_000


Message = Union[ConversationTurn, dict]


def _as_dicts(messages: Sequence[Message]) -> list[dict]:
    """Normalise turns to {"role", "content"} dicts, dropping system turns."""
    out: list[dict] = []
    for m in messages:
        turn = m if isinstance(m, ConversationTurn) else ConversationTurn(**m)
        if turn.role == Role.SYSTEM.value:
            continue
        role = Role.USER.value if turn.role == Role.USER.value else Role.ASSISTANT.value
        out.append({"role": role, "content": turn.content})
    if not out:
        raise InputError("No messages to send to the model")
    return out


class TextGenerator(ABC):
    """Provider-agnostic text generation."""

    model: str

    @abstractmethod
    def generate(
        self,
        system: str,
        messages: Sequence[Message],
        max_tokens: Optional[int] = None,
    ) -> str:
        """Complete the conversation and return the full text."""

    @abstractmethod
    def stream(
        self,
        system: str,
        messages: Sequence[Message],
        max_tokens: Optional[int] = None,
    ) -> Iterator[str]:
        """
        Start the completion and return an iterator of text deltas.

        The request is sent by this call, so provider failures raise here
        rather than on the first next().
        """


# ---------------------------------------------------------------------------
# OpenAI Generator
# ---------------------------------------------------------------------------

class OpenAIGenerator(TextGenerator):
    """Generation via OpenAI chat completions."""

    def __init__(
        self,
        model: str = "gpt-4o-mini",
        max_tokens: int = 1024,
        temperature: float = 0.1,
        client: Optional[LazyClient] = None,
    ) -> None:
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self._client = client or openai_client()

    def _messages(self, system: str, messages: Sequence[Message]) -> list[dict]:
        return [{"role": "system", "content": system}, *_as_dicts(messages)]

    @traceable(name="generate_openai", run_type="llm")
    def generate(
        self,
        system: str,
        messages: Sequence[Message],
        max_tokens: Optional[int] = None,
    ) -> str:
        payload = self._messages(system, messages)
        try:
            response = self._client.get().chat.completions.create(
                model=self.model,
                messages=payload,
                max_tokens=max_tokens or self.max_tokens,
                temperature=self.temperature,
            )
        except Exception as exc:
            raise translate_provider_error(exc, "openai") from exc

        answer = response.choices[0].message.content or ""
        usage = response.usage
        if usage is not None:
            logger.info(
                f"[OpenAIGenerator] {self.model} | prompt={usage.prompt_tokens} "
                f"completion={usage.completion_tokens} | "
                f"cost=${_cost_usd(self.model, usage.prompt_tokens, usage.completion_tokens):.5f}"
            )
        return answer

    def stream(
        self,
        system: str,
        messages: Sequence[Message],
        max_tokens: Optional[int] = None,
    ) -> Iterator[str]:
        payload = self._messages(system, messages)
        # Opened here, not lazily, so request failures raise before any delta
        try:
            response = self._client.get().chat.completions.create(
                model=self.model,
                messages=payload,
                max_tokens=max_tokens or self.max_tokens,
                temperature=self.temperature,
                stream=True,
            )
        except Exception as exc:
            raise translate_provider_error(exc, "openai") from exc
        return self._deltas(response)

    @staticmethod
    def _deltas(response) -> Iterator[str]:
        try:
            for chunk in response:
                if chunk.choices and chunk.choices[0].delta.content:
                    yield chunk.choices[0].delta.content
        except Exception as exc:
            raise translate_provider_error(exc, "openai") from exc


# ---------------------------------------------------------------------------
# Anthropic Generator
# ---------------------------------------------------------------------------

class AnthropicGenerator(TextGenerator):
    """
    Generation via Anthropic Claude models.

    The Anthropic SDK passes the system prompt as a separate `system`
    parameter (not inside the messages list) -- handled here transparently.
    """

    def __init__(
        self,
        model: str = "claude-haiku-4-5-20251001",
        max_tokens: int = 1024,
        temperature: float = 0.1,
        client: Optional[LazyClient] = None,
    ) -> None:
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self._client = client or anthropic_client()

    @traceable(name="generate_anthropic", run_type="llm")
    def generate(
        self,
        system: str,
        messages: Sequence[Message],
        max_tokens: Optional[int] = None,
    ) -> str:
        payload = _as_dicts(messages)
        try:
            response = self._client.get().messages.create(
                model=self.model,
                max_tokens=max_tokens or self.max_tokens,
                temperature=self.temperature,
                system=system,
                messages=payload,
            )
        except Exception as exc:
            raise translate_provider_error(exc, "anthropic") from exc

        answer = "".join(
            block.text for block in response.content if getattr(block, "type", "") == "text"
        )
        prompt_tok = response.usage.input_tokens
        comp_tok = response.usage.output_tokens
        logger.info(
            f"[AnthropicGenerator] {self.model} | input={prompt_tok} output={comp_tok} | "
            f"cost=${_cost_usd(self.model, prompt_tok, comp_tok):.5f}"
        )
        return answer

    def stream(
        self,
        system: str,
        messages: Sequence[Message],
        max_tokens: Optional[int] = None,
    ) -> Iterator[str]:
        payload = _as_dicts(messages)
        # Opened here, not lazily, so request failures raise before any delta
        try:
            events = self._client.get().messages.create(
                model=self.model,
                max_tokens=max_tokens or self.max_tokens,
                temperature=self.temperature,
                system=system,
                messages=payload,
                stream=True,
            )
        except Exception as exc:
            raise translate_provider_error(exc, "anthropic") from exc
        return self._text_deltas(events)

    @staticmethod
    def _text_deltas(events) -> Iterator[str]:
        try:
            for event in events:
                if event.type == "content_block_delta" and getattr(event.delta, "type", "") == "text_delta":
                    yield event.delta.text
        except Exception as exc:
            raise translate_provider_error(exc, "anthropic") from exc


def make_generator(
    provider: str,
    model: str,
    max_tokens: int = 1024,
    temperature: float = 0.1,
) -> TextGenerator:
    """Instantiate the correct generator class for the given provider/model."""
    if provider == "anthropic":
        return AnthropicGenerator(model=model, max_tokens=max_tokens, temperature=temperature)
    return OpenAIGenerator(model=model, max_tokens=max_tokens, temperature=temperature)
