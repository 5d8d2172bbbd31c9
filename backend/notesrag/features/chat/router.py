"""
Chat feature: Question answering API routes.
"""

import asyncio
import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import StreamingResponse

from notesrag.core.dependencies import get_current_user_id, get_services
from notesrag.core.exceptions import AppBaseError, app_error_to_http
from notesrag.features.chat.citations import parse_citations, render_segments
from notesrag.features.chat.schemas import ChatRequest
from notesrag.features.chat.streaming import sse_stream

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/")
async def chat(
    data: ChatRequest,
    user_id: str = Depends(get_current_user_id),
    services=Depends(get_services),
):
    """Answer a question from the user's notes as an SSE stream.

    Scope, retrieval and confidence are settled before the response starts,
    so their failures come back as plain HTTP errors.
    """
    orchestrator = services.orchestrator
    deadline = orchestrator.new_deadline()
    try:
        scope = await orchestrator.resolve_scope(user_id, data.subject_id, data.file_ids, data.chat_id)
        prepared = await orchestrator.prepare(user_id, data.message, scope, data.chat_id, deadline)
    except AppBaseError as e:
        logger.warning(f"Chat request rejected for user {user_id}: {e.message}")
        raise app_error_to_http(e)
    except Exception as e:
        logger.error(f"Error preparing answer: {str(e)}")
        raise HTTPException(status_code=500, detail=f"Chat failed: {str(e)}")

    return StreamingResponse(
        sse_stream(orchestrator.stream(prepared)),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@router.get("/{chat_id}/messages")
async def get_chat_messages(
    chat_id: str,
    user_id: str = Depends(get_current_user_id),
    services=Depends(get_services),
):
    """Messages of a chat; assistant messages come with their citations resolved to download URLs."""
    chat = await asyncio.to_thread(services.chat_store.get_chat, chat_id, user_id)
    if not chat:
        raise HTTPException(status_code=404, detail="Chat not found")

    messages = await asyncio.to_thread(services.chat_store.list_messages, chat_id)
    resolver = services.resolver

    def resolve_url(file_id: str) -> str | None:
        return resolver.resolve(user_id, file_id)

    def render(msg: dict) -> dict:
        if msg["role"] != "assistant":
            return {**msg, "segments": None}
        return {**msg, "segments": render_segments(parse_citations(msg["content"]), resolve_url)}

    rendered = await asyncio.to_thread(lambda: [render(m) for m in messages])
    return {"chat": chat, "messages": rendered}
