"""Repository helpers for chats."""

from __future__ import annotations

import hashlib
import json
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from streamchat.core import IdempotencyConflictError, get_logger
from streamchat.db.models import Chat, ChatCommit

logger = get_logger(__name__)

TITLE_LENGTH = 40


def create_chat(
    db: Session,
    user_id: str,
    text: str,
    model: str,
    is_custom_chatbot: bool = False,
) -> Chat:
    """Create a chat seeded with the user's first message."""
    chat = Chat(
        user_id=user_id,
        title=text.strip()[:TITLE_LENGTH] or "New Chat",
        history=[{"role": "user", "parts": [{"text": text}]}],
        model=model,
        is_custom_chatbot=is_custom_chatbot,
    )
    db.add(chat)
    db.commit()
    db.refresh(chat)
    return chat


def get_user_chat(db: Session, user_id: str, chat_id: str) -> Chat | None:
    """Fetch a chat owned by user."""
    stmt = select(Chat).where(Chat.id == chat_id, Chat.user_id == user_id)
    return db.execute(stmt).scalar_one_or_none()


def list_user_chats(db: Session, user_id: str) -> list[Chat]:
    """List chats belonging to the user, newest first."""
    stmt = (
        select(Chat)
        .where(Chat.user_id == user_id)
        .order_by(Chat.created_at.desc())
    )
    return list(db.execute(stmt).scalars().all())


def _find_commit(db: Session, chat_id: str, idempotency_key: str) -> ChatCommit | None:
    stmt = select(ChatCommit).where(
        ChatCommit.chat_id == chat_id,
        ChatCommit.idempotency_key == idempotency_key,
    )
    return db.execute(stmt).scalar_one_or_none()


def _check_replay(commit: ChatCommit, body_hash: str) -> None:
    if commit.body_hash != body_hash:
        raise IdempotencyConflictError(
            details={"idempotency_key": commit.idempotency_key, "chat_id": commit.chat_id}
        )


def hash_turn(answer: str, question: str | None, img: str | None) -> str:
    """Stable digest of an appended turn, compared when a key is replayed."""
    canonical = json.dumps(
        {"answer": answer, "question": question or None, "img": img or None},
        sort_keys=True,
        separators=(",", ":"),
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def append_turn(
    db: Session,
    chat: Chat,
    *,
    answer: str,
    question: str | None = None,
    img: str | None = None,
    idempotency_key: str | None = None,
) -> bool:
    """
    Append the question (if any) and the model's answer to the chat history.

    Returns False when ``idempotency_key`` was already applied to this chat
    with the same body, in which case nothing is written.

    Raises:
        IdempotencyConflictError: the key was applied with a different body.
    """
    body_hash = hash_turn(answer, question, img)
    if idempotency_key:
        existing = _find_commit(db, chat.id, idempotency_key)
        if existing is not None:
            _check_replay(existing, body_hash)
            return False

    entries: list[dict[str, Any]] = []
    if question:
        user_entry: dict[str, Any] = {"role": "user", "parts": [{"text": question}]}
        if img:
            user_entry["img"] = img
        entries.append(user_entry)
    entries.append({"role": "model", "parts": [{"text": answer}]})

    # Reassign so the JSON column is flagged dirty.
    chat.history = [*chat.history, *entries]
    if idempotency_key:
        db.add(ChatCommit(chat_id=chat.id, idempotency_key=idempotency_key, body_hash=body_hash))
    try:
        db.commit()
    except IntegrityError:
        # A concurrent request with the same key won the race.
        db.rollback()
        logger.info(
            "Duplicate commit rejected by constraint",
            data={"chat_id": chat.id, "idempotency_key": idempotency_key},
        )
        existing = _find_commit(db, chat.id, idempotency_key)
        if existing is not None:
            _check_replay(existing, body_hash)
        return False
    db.refresh(chat)
    return True
