# =============================================================================
# Chat API - Streamed Answers over the Whole Knowledge Base
# =============================================================================
#
#   POST /chat   {"messages": [...]} → 200 text/plain, streamed
#
# FLOW:
#   1. Validate the conversation (last turn from the user, else 422)
#   2. Assemble the context from every stored document
#   3. Read the prompt configuration (base prompt + reference info)
#   4. Hand the fixed request to the orchestrator and stream its chunks
#
# The body is raw UTF-8 text with no framing; concatenating every chunk
# gives the full answer. Upstream failures arrive as text (fallback message
# or interruption notice), never as an error status.
# =============================================================================

from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from app.api.deps import get_knowledge_store, get_orchestrator
from app.config import Settings, get_settings
from app.models.requests import ChatRequest
from app.services.context import assemble_context
from app.services.orchestrator import AnswerOrchestrator
from app.services.prompt_config import load_prompt_config
from app.services.store import KnowledgeStore

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Chat"])

STREAM_MEDIA_TYPE = "text/plain; charset=utf-8"


@router.post(
    "/chat",
    response_class=StreamingResponse,
    summary="Ask a question about the knowledge base",
    description=(
        "Streams the answer as plain text. The whole knowledge base is sent "
        "to the model as context together with the conversation history."
    ),
)
async def chat_endpoint(
    request: ChatRequest,
    store: KnowledgeStore = Depends(get_knowledge_store),
    orchestrator: AnswerOrchestrator = Depends(get_orchestrator),
    settings: Settings = Depends(get_settings),
) -> StreamingResponse:
    logger.info(
        "Chat request: %d messages, question='%s'",
        len(request.messages),
        request.messages[-1].content[:80],
    )

    context = await assemble_context(store, settings.context_max_chars)
    prompt = await asyncio.to_thread(load_prompt_config, settings.prompt_config_path)

    generation_request = orchestrator.build_request(
        [m.model_dump() for m in request.messages],
        context=context,
        base_prompt=prompt.system_prompt,
        reference_info=prompt.reference_info,
    )

    return StreamingResponse(
        orchestrator.stream(generation_request),
        media_type=STREAM_MEDIA_TYPE,
    )
