# =============================================================================
# Answer Stream Orchestrator - Retry/Backoff State Machine
# =============================================================================
#
# One chat turn runs through these states:
#
#   BUILDING ──built──▶ ATTEMPTING ──call ok──▶ STREAMING ──finished────▶ COMPLETED
#                        │   ▲                        └──interrupted─▶ COMPLETED
#                429     │   │ backoff elapsed              (+ notice chunk)
#                        ▼   │
#                       RETRYING
#                        │
#        5th 429 / non-429 error
#                        ▼
#                     DEGRADED  (one fallback chunk)
#
# Transitions live in a table (next_transition); the backoff maths are pure
# functions.
#
# BACKOFF:
#   server hint "retry in N s"  → ceil(N * 1000) + 2000 ms
#   otherwise                   → 2000 * 2**attempt ms   (attempt from 0)
#
# Retries apply only to the initial call. Once chunks are flowing, an error
# appends the interruption notice and the turn ends; chunks already sent
# stay sent. Every exit path closes the upstream stream.
#
# The caller always gets text: a real answer, a partial answer plus notice,
# or exactly one fallback message. Nothing is raised to the HTTP layer.
# =============================================================================

from __future__ import annotations

import asyncio
import enum
import logging
import math
import re
from collections.abc import AsyncIterator, Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass, field

from app.config import Settings
from app.services.errors import (
    KnowledgeDeskError,
    RateLimited,
    StreamInterrupted,
    UpstreamFailure,
)
from app.services.llm import AnswerGenerator, ChunkStream

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 5
BASE_BACKOFF_MS = 2000
HINT_PADDING_MS = 2000

_STATUS_429_RE = re.compile(r"\b429\b")
_RETRY_HINT_RE = re.compile(r"retry in (\d+(?:\.\d+)?)\s*s", re.IGNORECASE)


# ---------------------------------------------------------------------------
# States, events, transitions
# ---------------------------------------------------------------------------


class ChatState(str, enum.Enum):
    BUILDING = "building"
    ATTEMPTING = "attempting"
    RETRYING = "retrying"
    STREAMING = "streaming"
    DEGRADED = "degraded"
    COMPLETED = "completed"


class ChatEvent(str, enum.Enum):
    BUILT = "built"
    CALL_SUCCEEDED = "call_succeeded"
    RATE_LIMITED = "rate_limited"
    CALL_FAILED = "call_failed"
    BACKOFF_ELAPSED = "backoff_elapsed"
    STREAM_FINISHED = "stream_finished"
    STREAM_INTERRUPTED = "stream_interrupted"


class DegradeReason(str, enum.Enum):
    RATE_LIMITED = "rate_limited"
    UPSTREAM_ERROR = "upstream_error"


@dataclass(frozen=True)
class Transition:
    state: ChatState
    degrade_reason: DegradeReason | None = None


_TRANSITIONS: dict[tuple[ChatState, ChatEvent], ChatState] = {
    (ChatState.BUILDING, ChatEvent.BUILT): ChatState.ATTEMPTING,
    (ChatState.ATTEMPTING, ChatEvent.CALL_SUCCEEDED): ChatState.STREAMING,
    (ChatState.ATTEMPTING, ChatEvent.RATE_LIMITED): ChatState.RETRYING,
    (ChatState.ATTEMPTING, ChatEvent.CALL_FAILED): ChatState.DEGRADED,
    (ChatState.RETRYING, ChatEvent.BACKOFF_ELAPSED): ChatState.ATTEMPTING,
    (ChatState.STREAMING, ChatEvent.STREAM_FINISHED): ChatState.COMPLETED,
    (ChatState.STREAMING, ChatEvent.STREAM_INTERRUPTED): ChatState.COMPLETED,
}


def next_transition(
    state: ChatState,
    event: ChatEvent,
    attempts: int = 0,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
) -> Transition:
    """
    Resolve the next state.

    `attempts` is the number of initial calls made so far, including the one
    that produced `event`. A rate limit on the last allowed attempt degrades
    instead of retrying.

    Raises:
        ValueError: `event` is not valid in `state`.
    """
    if (
        state is ChatState.ATTEMPTING
        and event is ChatEvent.RATE_LIMITED
        and attempts >= max_attempts
    ):
        return Transition(ChatState.DEGRADED, DegradeReason.RATE_LIMITED)

    target = _TRANSITIONS.get((state, event))
    if target is None:
        raise ValueError(f"No transition from {state.value} on {event.value}")

    reason = DegradeReason.UPSTREAM_ERROR if event is ChatEvent.CALL_FAILED else None
    return Transition(target, reason)


# ---------------------------------------------------------------------------
# Rate-limit detection and backoff
# ---------------------------------------------------------------------------


def _status_code(exc: BaseException) -> int | None:
    for candidate in (exc, getattr(exc, "response", None)):
        for attr in ("status_code", "status", "code"):
            value = getattr(candidate, attr, None)
            if isinstance(value, int):
                return value
    return None


def is_rate_limit_error(exc: BaseException) -> bool:
    """
    HTTP 429 on the error or its response.

    Without an HTTP status code, looks for markers in the message: a
    standalone "429", RESOURCE_EXHAUSTED or "rate limit".
    """
    if isinstance(exc, RateLimited):
        return True
    status = _status_code(exc)
    if status is not None and 100 <= status <= 599:
        return status == 429
    message = str(exc)
    return (
        _STATUS_429_RE.search(message) is not None
        or "RESOURCE_EXHAUSTED" in message
        or "rate limit" in message.lower()
    )


def parse_retry_hint(exc: BaseException) -> float | None:
    """
    Server-suggested delay in seconds, if the error carries one.

    Looks for "retry in N s" in the message, then a numeric Retry-After
    header on the attached response.
    """
    if isinstance(exc, RateLimited) and exc.retry_after is not None:
        return exc.retry_after

    match = _RETRY_HINT_RE.search(str(exc))
    if match:
        return float(match.group(1))

    headers = getattr(getattr(exc, "response", None), "headers", None)
    if headers is not None:
        value = headers.get("retry-after")
        if value is not None:
            try:
                return float(value)
            except (TypeError, ValueError):
                return None
    return None


def compute_backoff_ms(attempt: int, hint_seconds: float | None = None) -> int:
    """Wait before the next attempt; `attempt` counts failed calls from 0."""
    if hint_seconds is not None:
        return math.ceil(hint_seconds * 1000) + HINT_PADDING_MS
    return BASE_BACKOFF_MS * 2**attempt


# ---------------------------------------------------------------------------
# Requests and per-turn trace
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FallbackMessages:
    rate_limited: str
    error: str
    interrupted: str

    @classmethod
    def from_settings(cls, settings: Settings) -> FallbackMessages:
        return cls(
            rate_limited=settings.fallback_rate_limited_message,
            error=settings.fallback_error_message,
            interrupted=settings.stream_interrupted_notice,
        )


@dataclass(frozen=True)
class GenerationRequest:
    """Everything fixed at the end of BUILDING."""

    system: str
    history: list[dict[str, str]]
    user_message: str

    @property
    def messages(self) -> list[dict[str, str]]:
        return [*self.history, {"role": "user", "content": self.user_message}]


@dataclass
class ChatTrace:
    """What happened during one turn. Owned by a single request."""

    states: list[ChatState] = field(default_factory=list)
    attempts: int = 0
    waits_ms: list[int] = field(default_factory=list)
    degrade_reason: DegradeReason | None = None
    error: KnowledgeDeskError | None = None

    @property
    def final_state(self) -> ChatState | None:
        return self.states[-1] if self.states else None


def build_system_instruction(base_prompt: str, reference_info: str, context: str) -> str:
    return (
        f"{base_prompt}\n\n"
        f"REFERENCE / OWN COMPANY INFO:\n{reference_info}\n\n"
        f"CONTEXT:\n{context}\n"
        f"(End of Context)"
    )


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------


class AnswerOrchestrator:
    """
    Runs one chat turn against an injected generator.

    Holds no per-request state; concurrent turns share an instance safely.
    `sleep` is injectable so tests do not wait for real backoff delays.
    """

    def __init__(
        self,
        generator: AnswerGenerator,
        messages: FallbackMessages,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._generator = generator
        self._messages = messages
        self._max_attempts = max_attempts
        self._sleep = sleep

    @staticmethod
    def build_request(
        conversation: Sequence[Mapping[str, str]],
        context: str,
        base_prompt: str,
        reference_info: str = "",
    ) -> GenerationRequest:
        """
        BUILDING: fix the system instruction, history and new user turn.

        Raises:
            ValueError: Empty conversation or last message not from the user.
        """
        if not conversation:
            raise ValueError("Conversation must contain at least one message")
        last = conversation[-1]
        if last.get("role") != "user":
            raise ValueError("The last message must have role 'user'")

        history = [
            {"role": m["role"], "content": m["content"]} for m in conversation[:-1]
        ]
        return GenerationRequest(
            system=build_system_instruction(base_prompt, reference_info, context),
            history=history,
            user_message=last["content"],
        )

    async def stream(
        self,
        request: GenerationRequest,
        trace: ChatTrace | None = None,
    ) -> AsyncIterator[str]:
        """Run ATTEMPTING → … → COMPLETED/DEGRADED, yielding text chunks in order."""
        trace = trace if trace is not None else ChatTrace()
        trace.states.append(ChatState.BUILDING)
        state = self._advance(trace, ChatState.BUILDING, ChatEvent.BUILT)
        upstream: ChunkStream | None = None

        try:
            while state is ChatState.ATTEMPTING:
                trace.attempts += 1
                try:
                    upstream = await self._generator.open_stream(
                        request.system, request.messages
                    )
                except Exception as exc:
                    state = await self._on_call_failure(trace, exc)
                    continue
                state = self._advance(trace, state, ChatEvent.CALL_SUCCEEDED)

            if state is ChatState.DEGRADED:
                if trace.degrade_reason is DegradeReason.RATE_LIMITED:
                    yield self._messages.rate_limited
                else:
                    yield self._messages.error
                return

            try:
                async for chunk in upstream:
                    if chunk:
                        yield chunk
            except Exception as exc:
                logger.error("Stream reading error: %s", exc)
                trace.error = StreamInterrupted(str(exc))
                yield self._messages.interrupted
                self._advance(trace, state, ChatEvent.STREAM_INTERRUPTED)
            else:
                self._advance(trace, state, ChatEvent.STREAM_FINISHED)
        finally:
            if upstream is not None:
                await self._close(upstream)

    async def _on_call_failure(self, trace: ChatTrace, exc: Exception) -> ChatState:
        if not is_rate_limit_error(exc):
            logger.error("Non-retriable error from generator: %s", exc)
            trace.error = UpstreamFailure(str(exc))
            return self._advance(trace, ChatState.ATTEMPTING, ChatEvent.CALL_FAILED)

        trace.error = RateLimited(str(exc), parse_retry_hint(exc))
        state = self._advance(trace, ChatState.ATTEMPTING, ChatEvent.RATE_LIMITED)
        if state is ChatState.DEGRADED:
            logger.error(
                "Rate limited on attempt %d/%d; giving up",
                trace.attempts, self._max_attempts,
            )
            return state

        wait_ms = compute_backoff_ms(trace.attempts - 1, trace.error.retry_after)
        trace.waits_ms.append(wait_ms)
        logger.warning(
            "Rate limited (429). Waiting %dms... (%d/%d)",
            wait_ms, trace.attempts, self._max_attempts,
        )
        await self._sleep(wait_ms / 1000)
        return self._advance(trace, state, ChatEvent.BACKOFF_ELAPSED)

    def _advance(self, trace: ChatTrace, state: ChatState, event: ChatEvent) -> ChatState:
        transition = next_transition(state, event, trace.attempts, self._max_attempts)
        if transition.degrade_reason is not None:
            trace.degrade_reason = transition.degrade_reason
        trace.states.append(transition.state)
        return transition.state

    @staticmethod
    async def _close(upstream: ChunkStream) -> None:
        try:
            await upstream.aclose()
        except Exception as exc:
            logger.warning("Failed to close upstream stream: %s", exc)
