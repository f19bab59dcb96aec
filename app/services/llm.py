# =============================================================================
# Multi-Provider Streaming Generators - Pluggable AI Backend
# =============================================================================
#
# The answer orchestrator consumes the model as an opaque streaming text
# generator. Two implementations:
#
#   AnswerGenerator (Protocol)
#   ├── AnthropicGenerator        - Claude via native Anthropic SDK
#   │   └── system prompt as top-level kwarg
#   ├── OpenAICompatibleGenerator - Any OpenAI-compatible API (OpenAI,
#   │   Gemini's OpenAI endpoint, DeepSeek, Qwen, ...)
#   │   └── system prompt as first message
#   └── create_answer_generator(settings) - explicit factory, no singleton
#
# TWO-PHASE CALL:
#   stream = await generator.open_stream(system, messages)   # initial call
#   async for text in stream: ...                             # token stream
#   await stream.aclose()
#
# Awaiting open_stream() performs the HTTP request, so rate limits and
# request errors surface there. Errors raised while iterating belong to a
# stream that is already in flight.
# =============================================================================

from __future__ import annotations

import inspect
import logging
from collections.abc import Callable
from typing import Any, Protocol

from app.config import Settings

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Protocol Definitions
# ---------------------------------------------------------------------------


class ChunkStream(Protocol):
    """Async iterator of text chunks that can be closed early."""

    def __aiter__(self) -> ChunkStream:
        ...

    async def __anext__(self) -> str:
        ...

    async def aclose(self) -> None:
        ...


class AnswerGenerator(Protocol):
    """
    Protocol defining the streaming generator interface.

    Args (open_stream):
        system: System instruction (base prompt + reference info + context).
        messages: Conversation as dicts with "role" ("user"/"assistant") and
            "content"; the last entry is the new user turn.
    """

    async def open_stream(
        self,
        system: str,
        messages: list[dict[str, str]],
    ) -> ChunkStream:
        ...


# ---------------------------------------------------------------------------
# SDK stream adapter
# ---------------------------------------------------------------------------


class SDKTextStream:
    """
    Wraps an SDK event stream and yields only its text.

    `extract` maps one SDK event to its text (or None). Events without text
    (message start/stop, role-only deltas) are skipped.
    """

    def __init__(self, raw: Any, extract: Callable[[Any], str | None]) -> None:
        self._raw = raw
        self._iterator = raw.__aiter__()
        self._extract = extract
        self._closed = False

    def __aiter__(self) -> SDKTextStream:
        return self

    async def __anext__(self) -> str:
        while True:
            event = await self._iterator.__anext__()
            text = self._extract(event)
            if text:
                return text

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        close = getattr(self._raw, "close", None) or getattr(self._raw, "aclose", None)
        if close is None:
            return
        result = close()
        if inspect.isawaitable(result):
            await result


def _anthropic_text(event: Any) -> str | None:
    if getattr(event, "type", None) != "content_block_delta":
        return None
    delta = event.delta
    if getattr(delta, "type", None) != "text_delta":
        return None
    return delta.text


def _openai_text(chunk: Any) -> str | None:
    if not chunk.choices:
        return None
    return chunk.choices[0].delta.content


# ---------------------------------------------------------------------------
# Implementation 1: Anthropic (Claude)
# ---------------------------------------------------------------------------


class AnthropicGenerator:
    """
    Anthropic Claude generator using the native SDK.

    KEY API DIFFERENCE: Anthropic takes system prompts as a top-level
    `system=` kwarg, NOT as a message with role "system".

    SDK-level retries are disabled (max_retries=0); the orchestrator owns
    the retry policy.
    """

    def __init__(
        self,
        api_key: str,
        model: str,
        temperature: float = 0.2,
        max_tokens: int = 4096,
    ) -> None:
        from anthropic import AsyncAnthropic

        if not api_key:
            raise ValueError(
                "No Anthropic API key configured. Set LLM_API_KEY or "
                "ANTHROPIC_API_KEY in .env"
            )

        self._client = AsyncAnthropic(api_key=api_key, max_retries=0)
        self._model = model
        self._temperature = temperature
        self._max_tokens = max_tokens

        logger.info("Initialized AnthropicGenerator (model=%s)", self._model)

    async def open_stream(
        self,
        system: str,
        messages: list[dict[str, str]],
    ) -> SDKTextStream:
        kwargs: dict = {
            "model": self._model,
            "messages": messages,
            "max_tokens": self._max_tokens,
            "temperature": self._temperature,
            "stream": True,
        }
        if system:
            kwargs["system"] = system

        raw = await self._client.messages.create(**kwargs)
        return SDKTextStream(raw, _anthropic_text)


# ---------------------------------------------------------------------------
# Implementation 2: OpenAI-Compatible
# ---------------------------------------------------------------------------


class OpenAICompatibleGenerator:
    """
    Generator for any API that follows the OpenAI chat completions API.

    Switching providers is a config change:
        LLM_PROVIDER=openai_compatible
        LLM_BASE_URL=https://generativelanguage.googleapis.com/v1beta/openai/
        LLM_API_KEY=your-key
        LLM_MODEL=gemini-flash-latest
    """

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str | None = None,
        temperature: float = 0.2,
        max_tokens: int = 4096,
    ) -> None:
        from openai import AsyncOpenAI

        if not api_key:
            raise ValueError(
                "No API key configured for OpenAI-compatible provider. "
                "Set LLM_API_KEY in .env"
            )

        client_kwargs: dict = {"api_key": api_key, "max_retries": 0}
        if base_url:
            client_kwargs["base_url"] = base_url

        self._client = AsyncOpenAI(**client_kwargs)
        self._model = model
        self._temperature = temperature
        self._max_tokens = max_tokens

        logger.info(
            "Initialized OpenAICompatibleGenerator (model=%s, base_url=%s)",
            self._model,
            base_url or "https://api.openai.com/v1",
        )

    async def open_stream(
        self,
        system: str,
        messages: list[dict[str, str]],
    ) -> SDKTextStream:
        # OpenAI: system prompt goes as the first message
        all_messages: list[dict[str, str]] = []
        if system:
            all_messages.append({"role": "system", "content": system})
        all_messages.extend(messages)

        raw = await self._client.chat.completions.create(
            model=self._model,
            messages=all_messages,
            max_tokens=self._max_tokens,
            temperature=self._temperature,
            stream=True,
        )
        return SDKTextStream(raw, _openai_text)


# ---------------------------------------------------------------------------
# Factory Function
# ---------------------------------------------------------------------------


def create_answer_generator(
    settings: Settings,
) -> AnthropicGenerator | OpenAICompatibleGenerator:
    """
    Build the configured generator.

    Reads `llm_provider` from settings:
    - "anthropic" → AnthropicGenerator (Claude)
    - "openai_compatible" → OpenAICompatibleGenerator

    Raises:
        ValueError: Unknown provider or no API key.
    """
    if settings.llm_provider == "openai_compatible":
        return OpenAICompatibleGenerator(
            api_key=settings.llm_api_key or settings.openai_api_key,
            model=settings.llm_model,
            base_url=settings.llm_base_url,
            temperature=settings.llm_temperature,
            max_tokens=settings.llm_max_tokens,
        )
    if settings.llm_provider == "anthropic":
        return AnthropicGenerator(
            api_key=settings.llm_api_key or settings.anthropic_api_key,
            model=settings.llm_model,
            temperature=settings.llm_temperature,
            max_tokens=settings.llm_max_tokens,
        )
    raise ValueError(
        f"Unknown LLM provider '{settings.llm_provider}'. "
        "Supported: 'anthropic', 'openai_compatible'"
    )
