"""Chat with the finance assistant."""

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session as DBSession

from auth import get_current_user
from database import get_db
from dependencies import get_ai_service
from schemas import ChatRequest, ChatResponse, envelope
from services.ai_service import AIService
from services.chat_service import ChatService
from services.observability import metrics, log_chat_request


router = APIRouter(prefix="/api/chat", tags=["Chat"])


@router.post("")
async def chat(
    body: ChatRequest,
    request: Request,
    user_id: str = Depends(get_current_user),
    db: DBSession = Depends(get_db),
    ai_service: AIService = Depends(get_ai_service),
):
    """
    Send a message to the assistant and receive the complete reply.

    Rate limited per user (CHAT_RATE_LIMIT_PER_MINUTE) to protect the
    OpenAI budget. Without an API key the reply comes from the offline
    assistant.

    Raises:
        HTTPException: 400 if the message is blank, 429 if rate limited.
    """
    message = (body.message or "").strip()
    if not message:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Message is required")

    limiter = request.app.state.chat_rate_limiter
    if not limiter.is_allowed(user_id):
        remaining = limiter.get_remaining(user_id)
        reset_time = limiter.get_reset_time(user_id)
        metrics.increment("chat.rate_limited")
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=f"Rate limit exceeded. Try again in {reset_time:.0f} seconds.",
            headers={
                "X-RateLimit-Remaining": str(remaining),
                "X-RateLimit-Reset": str(int(reset_time)),
            },
        )

    log_chat_request(user_id, len(message))

    reply, source = await ChatService(db, ai_service).chat(user_id, message, body.context)
    return envelope(ChatResponse(reply=reply, source=source).model_dump(by_alias=True))


@router.get("/prompts")
async def get_suggested_prompts(
    user_id: str = Depends(get_current_user),
    db: DBSession = Depends(get_db),
    ai_service: AIService = Depends(get_ai_service),
):
    """Suggested prompts for the chat interface."""
    prompts = ChatService(db, ai_service).get_suggested_prompts(user_id)
    return envelope({"prompts": prompts})
