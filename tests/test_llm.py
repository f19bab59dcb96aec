# =============================================================================
# Unit Tests - Streaming Answer Generators
# =============================================================================
#
# SDK clients are constructed (no network) and their create() calls mocked.
# =============================================================================

from __future__ import annotations

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from app.config import Settings
from app.services.llm import (
    AnthropicGenerator,
    OpenAICompatibleGenerator,
    SDKTextStream,
    _anthropic_text,
    _openai_text,
    create_answer_generator,
)


def _run(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


class FakeRawStream:
    """Async-iterable SDK stream with a close() method."""

    def __init__(self, events):
        self._events = list(events)
        self.close_calls = 0

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for event in self._events:
            yield event

    async def close(self):
        self.close_calls += 1


def _anthropic_delta(text: str):
    return SimpleNamespace(
        type="content_block_delta",
        delta=SimpleNamespace(type="text_delta", text=text),
    )


def _openai_chunk(content):
    return SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=content))])


async def _drain(stream) -> list[str]:
    return [chunk async for chunk in stream]


class TestTextExtraction:
    def test_anthropic_only_text_deltas(self):
        assert _anthropic_text(_anthropic_delta("hi")) == "hi"
        assert _anthropic_text(SimpleNamespace(type="message_start")) is None
        input_json = SimpleNamespace(
            type="content_block_delta",
            delta=SimpleNamespace(type="input_json_delta"),
        )
        assert _anthropic_text(input_json) is None

    def test_openai_delta_content(self):
        assert _openai_text(_openai_chunk("hi")) == "hi"
        assert _openai_text(_openai_chunk(None)) is None
        assert _openai_text(SimpleNamespace(choices=[])) is None


class TestSDKTextStream:
    def test_skips_events_without_text(self):
        raw = FakeRawStream(
            [SimpleNamespace(type="message_start"), _anthropic_delta("A"), _anthropic_delta("B")]
        )
        assert _run(_drain(SDKTextStream(raw, _anthropic_text))) == ["A", "B"]

    def test_aclose_is_idempotent(self):
        raw = FakeRawStream([])
        stream = SDKTextStream(raw, _anthropic_text)
        _run(stream.aclose())
        _run(stream.aclose())
        assert raw.close_calls == 1


class TestGenerators:
    def test_anthropic_passes_system_kwarg(self):
        generator = AnthropicGenerator(api_key="sk-test", model="claude-test")
        create = AsyncMock(return_value=FakeRawStream([_anthropic_delta("ok")]))
        generator._client = SimpleNamespace(messages=SimpleNamespace(create=create))

        stream = _run(generator.open_stream("SYS", [{"role": "user", "content": "q"}]))

        assert _run(_drain(stream)) == ["ok"]
        kwargs = create.await_args.kwargs
        assert kwargs["system"] == "SYS"
        assert kwargs["stream"] is True
        assert kwargs["messages"] == [{"role": "user", "content": "q"}]

    def test_openai_sends_system_as_first_message(self):
        generator = OpenAICompatibleGenerator(api_key="sk-test", model="gpt-test")
        create = AsyncMock(return_value=FakeRawStream([_openai_chunk("ok")]))
        generator._client = SimpleNamespace(
            chat=SimpleNamespace(completions=SimpleNamespace(create=create))
        )

        stream = _run(generator.open_stream("SYS", [{"role": "user", "content": "q"}]))

        assert _run(_drain(stream)) == ["ok"]
        messages = create.await_args.kwargs["messages"]
        assert messages[0] == {"role": "system", "content": "SYS"}
        assert messages[1] == {"role": "user", "content": "q"}

    def test_missing_key_raises(self):
        with pytest.raises(ValueError):
            AnthropicGenerator(api_key="", model="claude-test")
        with pytest.raises(ValueError):
            OpenAICompatibleGenerator(api_key="", model="gpt-test")


class TestFactory:
    def test_anthropic_default(self):
        settings = Settings(llm_provider="anthropic", llm_api_key="sk-test")
        assert isinstance(create_answer_generator(settings), AnthropicGenerator)

    def test_openai_compatible(self):
        settings = Settings(
            llm_provider="openai_compatible",
            llm_api_key="sk-test",
            llm_base_url="https://example.invalid/v1/",
        )
        assert isinstance(create_answer_generator(settings), OpenAICompatibleGenerator)

    def test_unknown_provider(self):
        with pytest.raises(ValueError):
            create_answer_generator(Settings(llm_provider="mystery", llm_api_key="k"))
