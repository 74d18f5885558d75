"""Conversation and message endpoints."""

from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Query, status

from ..core.config import settings
from ..core.context import UserContext
from ..models.schemas import (
    ChatMessage,
    Conversation,
    ConversationCreate,
    MessageCreate,
    Participant,
    ParticipantAdd,
)
from ..services.chat_service import ChatService
from .deps import get_chat_service, get_user_context

router = APIRouter(prefix="/conversations", tags=["Chat"])


@router.get("", response_model=List[Conversation])
async def list_conversations(
    ctx: UserContext = Depends(get_user_context),
    chat: ChatService = Depends(get_chat_service),
):
    """Conversations the caller participates in, most recent first."""
    return await chat.list_conversations(ctx)


@router.post("", response_model=Conversation, status_code=status.HTTP_201_CREATED)
async def create_conversation(
    request: ConversationCreate,
    ctx: UserContext = Depends(get_user_context),
    chat: ChatService = Depends(get_chat_service),
):
    return await chat.create_conversation(ctx, request)


@router.get("/{conversation_id}", response_model=Conversation)
async def get_conversation(
    conversation_id: str,
    ctx: UserContext = Depends(get_user_context),
    chat: ChatService = Depends(get_chat_service),
):
    return await chat.get_conversation(ctx, conversation_id)


@router.get("/{conversation_id}/messages", response_model=List[ChatMessage])
async def get_messages(
    conversation_id: str,
    limit: Optional[int] = Query(None, ge=1, le=200),
    ctx: UserContext = Depends(get_user_context),
    chat: ChatService = Depends(get_chat_service),
):
    """Most recent messages, oldest first."""
    await chat.get_conversation(ctx, conversation_id)
    return await chat.get_messages(ctx, conversation_id, limit or settings.messages_default_limit)


@router.post(
    "/{conversation_id}/messages",
    response_model=ChatMessage,
    status_code=status.HTTP_201_CREATED,
)
async def send_message(
    conversation_id: str,
    message: MessageCreate,
    ctx: UserContext = Depends(get_user_context),
    chat: ChatService = Depends(get_chat_service),
):
    await chat.get_conversation(ctx, conversation_id)
    return await chat.send_message(ctx, conversation_id, message)


@router.post(
    "/{conversation_id}/participants",
    response_model=Participant,
    status_code=status.HTTP_201_CREATED,
)
async def add_participant(
    conversation_id: str,
    request: ParticipantAdd,
    ctx: UserContext = Depends(get_user_context),
    chat: ChatService = Depends(get_chat_service),
):
    await chat.get_conversation(ctx, conversation_id)
    return await chat.add_participant(ctx, conversation_id, request)


@router.post("/{conversation_id}/read")
async def mark_as_read(
    conversation_id: str,
    ctx: UserContext = Depends(get_user_context),
    chat: ChatService = Depends(get_chat_service),
) -> Dict[str, str]:
    await chat.mark_as_read(ctx, conversation_id)
    return {"status": "ok"}
