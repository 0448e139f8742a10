"""Website chat widget route."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from clientdesk.api.deps import get_db
from clientdesk.api.errors import APIError
from clientdesk.assistant.chat import ChatAssistant
from clientdesk.models.schemas import ChatRequest

router = APIRouter()


def get_chat_assistant() -> ChatAssistant:
    return ChatAssistant()


@router.post("/chat/ai")
async def chat(
    data: ChatRequest,
    request: Request,
    session: AsyncSession = Depends(get_db),
    assistant: ChatAssistant = Depends(get_chat_assistant),
):
    """Answer a visitor message."""
    if not data.message.strip():
        raise APIError(400, "Message is required")
    return await assistant.reply(session, data, source=request.headers.get("referer"))
