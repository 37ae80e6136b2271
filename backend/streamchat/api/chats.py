"""Chat persistence endpoints consumed by the turn orchestrator."""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Header, Request, Response
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from streamchat.config import get_settings
from streamchat.conversation import Conversation
from streamchat.core import NotFoundError, UnauthorizedError, get_logger
from streamchat.db import Chat, get_db
from streamchat.db.repositories import append_turn, create_chat, get_user_chat, list_user_chats
from streamchat.providers import ModelId

logger = get_logger(__name__)

router = APIRouter(prefix="/api", tags=["chats"])


class CreateChatRequest(BaseModel):
    text: str = Field(..., min_length=1)
    model: ModelId = ModelId.GPT_4O
    is_custom_chatbot: bool = Field(default=False, alias="isCustomChatbot")

    model_config = ConfigDict(populate_by_name=True)


class AppendTurnRequest(BaseModel):
    question: str | None = None
    answer: str
    img: str | None = None


class ChatIdResponse(BaseModel):
    id: str


class ChatSummary(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(alias="_id")
    title: str
    created_at: datetime = Field(alias="createdAt")


def get_current_user_id(request: Request) -> str:
    """
    Read the user id asserted by the identity gateway.

    The header is trusted as already verified; requests without it are
    rejected.
    """
    settings = getattr(request.app.state, "settings", None) or get_settings()
    user_id = request.headers.get(settings.identity_header)
    if not user_id:
        raise UnauthorizedError()
    return user_id


def _chat_to_conversation(chat: Chat) -> Conversation:
    return Conversation.model_validate(
        {
            "_id": chat.id,
            "userId": chat.user_id,
            "history": chat.history,
            "model": chat.model,
            "isCustomChatbot": chat.is_custom_chatbot,
            "createdAt": chat.created_at,
            "updatedAt": chat.updated_at,
        }
    )


@router.post("/chats", response_model=ChatIdResponse, status_code=201)
def create_chat_endpoint(
    body: CreateChatRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> ChatIdResponse:
    chat = create_chat(
        db,
        user_id=user_id,
        text=body.text,
        model=body.model.value,
        is_custom_chatbot=body.is_custom_chatbot,
    )
    logger.info("Chat created", data={"chat_id": chat.id, "model": chat.model})
    return ChatIdResponse(id=chat.id)


@router.get("/userchats", response_model=list[ChatSummary], response_model_by_alias=True)
def list_chats_endpoint(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> list[ChatSummary]:
    return [
        ChatSummary(id=chat.id, title=chat.title, created_at=chat.created_at)
        for chat in list_user_chats(db, user_id)
    ]


@router.get("/chats/{chat_id}", response_model=Conversation, response_model_by_alias=True)
def get_chat_endpoint(
    chat_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> Conversation:
    chat = get_user_chat(db, user_id, chat_id)
    if not chat:
        raise NotFoundError("Chat not found")
    return _chat_to_conversation(chat)


@router.put("/chats/{chat_id}", response_model=ChatIdResponse)
def append_turn_endpoint(
    chat_id: str,
    body: AppendTurnRequest,
    response: Response,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    idempotency_key: str | None = Header(default=None, alias="Idempotency-Key"),
) -> ChatIdResponse:
    chat = get_user_chat(db, user_id, chat_id)
    if not chat:
        raise NotFoundError("Chat not found")

    applied = append_turn(
        db,
        chat,
        question=body.question,
        answer=body.answer,
        img=body.img,
        idempotency_key=idempotency_key,
    )
    if not applied:
        response.headers["Idempotent-Replayed"] = "true"
        logger.info(
            "Replayed commit ignored",
            data={"chat_id": chat_id, "idempotency_key": idempotency_key},
        )
    return ChatIdResponse(id=chat.id)
