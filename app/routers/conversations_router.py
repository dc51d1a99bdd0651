"""Conversations API: list, get and message history."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi_pagination import Page, Params
from fastapi_pagination.ext.sqlalchemy import paginate
from sqlalchemy.orm import Session

from app.db import get_db
from app.models.conversation import Conversation
from app.routers.utils.dependencies import get_conversation_by_id
from app.schemas.conversation import ConversationRead
from app.schemas.message import MessageRead
from app.services.conversation_service import ConversationService
from app.services.message_service import MessageService

router = APIRouter(prefix="/conversations", tags=["conversations"])


@router.get("", response_model=Page[ConversationRead])
def list_conversations(
    params: Params = Depends(),
    owner_id: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    db: Session = Depends(get_db),
) -> Page[ConversationRead]:
    """List conversations, most recently active first."""
    query = ConversationService(db).get_conversations_query(
        owner_id=owner_id, status=status
    )
    return paginate(query, params=params)


@router.get("/{conversation_id}", response_model=ConversationRead)
def get_conversation(
    conversation: Conversation = Depends(get_conversation_by_id),
) -> ConversationRead:
    """Get a conversation by ID."""
    return conversation


@router.get("/{conversation_id}/messages", response_model=Page[MessageRead])
def list_conversation_messages(
    params: Params = Depends(),
    conversation: Conversation = Depends(get_conversation_by_id),
    db: Session = Depends(get_db),
) -> Page[MessageRead]:
    """Messages of a conversation in chronological order."""
    query = MessageService(db).get_messages_query(conversation.id)
    return paginate(query, params=params)
