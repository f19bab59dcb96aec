# =============================================================================
# API Dependencies - FastAPI Dependency Injection
# =============================================================================
#
#   get_knowledge_store()   → KnowledgeStore on the application engine
#   get_answer_generator()  → configured streaming generator (503 if none)
#   get_orchestrator()      → AnswerOrchestrator around that generator
#
# Tests replace any of these through app.dependency_overrides.
# =============================================================================

from __future__ import annotations

import logging

from fastapi import Depends, HTTPException, Request

from app.config import Settings, get_settings
from app.db.engine import get_session_factory
from app.services.llm import AnswerGenerator, create_answer_generator
from app.services.orchestrator import AnswerOrchestrator, FallbackMessages
from app.services.store import KnowledgeStore

logger = logging.getLogger(__name__)


def get_knowledge_store() -> KnowledgeStore:
    return KnowledgeStore(get_session_factory())


def get_answer_generator(
    request: Request,
    settings: Settings = Depends(get_settings),
) -> AnswerGenerator:
    """
    Generator held on app.state, built on first use.

    Raises:
        HTTPException 503: No provider/API key configured.
    """
    generator = getattr(request.app.state, "answer_generator", None)
    if generator is None:
        try:
            generator = create_answer_generator(settings)
        except ValueError as e:
            logger.error("Configuration error: %s", e)
            raise HTTPException(
                status_code=503,
                detail=f"Service configuration error: {e}",
            ) from e
        request.app.state.answer_generator = generator
    return generator


def get_orchestrator(
    generator: AnswerGenerator = Depends(get_answer_generator),
    settings: Settings = Depends(get_settings),
) -> AnswerOrchestrator:
    return AnswerOrchestrator(
        generator,
        messages=FallbackMessages.from_settings(settings),
        max_attempts=settings.chat_max_attempts,
    )
