from __future__ import annotations

import math

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.session import get_db
from app.models.chat import ChatSession, ChatSessionMessage
from app.models.common import utcnow
from app.models.user import User
from app.schemas.chat import (
    ChatMessageIn,
    ChatMessageOut,
    ChatMetadataIn,
    ChatMetadataOut,
    ChatSessionListData,
    ChatSessionOut,
    ChatSessionSaveIn,
    ChatSessionUpdateIn,
    PaginationOut,
)
from app.schemas.common import Envelope, MessageResponse
from app.services.auth import get_current_user

router = APIRouter(prefix="/chats", tags=["chats"])

LAST_MESSAGE_PREVIEW_CHARS = 50
SEARCH_RESULT_LIMIT = 50


def message_preview(text: str) -> str:
    clean = (text or "").strip()
    if len(clean) <= LAST_MESSAGE_PREVIEW_CHARS:
        return clean
    return clean[:LAST_MESSAGE_PREVIEW_CHARS] + "..."


def escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _session_out(row: ChatSession) -> ChatSessionOut:
    return ChatSessionOut(
        id=row.id,
        session_id=row.session_id,
        name=row.name,
        messages=[
            ChatMessageOut(id=m.id, text=m.text, sender=m.sender, timestamp=m.sent_at)
            for m in row.messages
        ],
        metadata=ChatMetadataOut(
            last_message=row.last_message,
            message_count=row.message_count,
            is_archived=row.is_archived,
            tags=list(row.tags or []),
            tokens_used=row.tokens_used,
        ),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _apply_messages(row: ChatSession, messages: list[ChatMessageIn]) -> None:
    row.messages = [
        ChatSessionMessage(position=index, sender=m.sender, text=m.text, sent_at=m.timestamp or utcnow())
        for index, m in enumerate(messages)
    ]
    row.message_count = len(messages)
    row.last_message = message_preview(messages[-1].text) if messages else ""


def _apply_metadata(row: ChatSession, metadata: ChatMetadataIn) -> None:
    if metadata.is_archived is not None:
        row.is_archived = metadata.is_archived
    if metadata.tags is not None:
        row.tags = [t.strip() for t in metadata.tags if t and t.strip()]
    if metadata.tokens_used is not None:
        row.tokens_used = metadata.tokens_used


async def _owned_session(db: AsyncSession, *, user_id: int, session_id: str) -> ChatSession | None:
    return (
        await db.execute(
            select(ChatSession).where(and_(ChatSession.user_id == user_id, ChatSession.session_id == session_id))
        )
    ).scalar_one_or_none()


async def _require_owned_session(db: AsyncSession, *, user_id: int, session_id: str) -> ChatSession:
    row = await _owned_session(db, user_id=user_id, session_id=session_id)
    if row is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return row


@router.get("/sessions", response_model=Envelope[ChatSessionListData])
async def list_sessions(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Envelope[ChatSessionListData]:
    active = and_(ChatSession.user_id == current_user.id, ChatSession.is_archived.is_(False))
    total = int((await db.execute(select(func.count(ChatSession.id)).where(active))).scalar_one())
    rows = (
        await db.execute(
            select(ChatSession)
            .where(active)
            .order_by(ChatSession.updated_at.desc(), ChatSession.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
    ).scalars().all()
    return Envelope[ChatSessionListData](
        data=ChatSessionListData(
            sessions=[_session_out(r) for r in rows],
            pagination=PaginationOut(page=page, limit=limit, total=total, pages=math.ceil(total / limit)),
        )
    )


@router.get("/session/{session_id}", response_model=Envelope[ChatSessionOut])
async def get_session(
    session_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Envelope[ChatSessionOut]:
    row = await _require_owned_session(db, user_id=current_user.id, session_id=session_id)
    return Envelope[ChatSessionOut](data=_session_out(row))


@router.get("/search", response_model=Envelope[list[ChatSessionOut]])
async def search_sessions(
    query: str = Query(default=""),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Envelope[list[ChatSessionOut]]:
    query = query.strip()
    if not query:
        raise HTTPException(status_code=400, detail="Search query is required")

    pattern = f"%{escape_like(query)}%"
    rows = (
        await db.execute(
            select(ChatSession)
            .where(
                ChatSession.user_id == current_user.id,
                or_(
                    ChatSession.name.ilike(pattern, escape="\\"),
                    ChatSession.messages.any(ChatSessionMessage.text.ilike(pattern, escape="\\")),
                    ChatSession.tags.contains([query]),
                ),
            )
            .order_by(ChatSession.updated_at.desc())
            .limit(SEARCH_RESULT_LIMIT)
        )
    ).scalars().all()
    return Envelope[list[ChatSessionOut]](data=[_session_out(r) for r in rows])


@router.post("/save", response_model=Envelope[ChatSessionOut])
async def save_session(
    payload: ChatSessionSaveIn,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Envelope[ChatSessionOut]:
    row = await _owned_session(db, user_id=current_user.id, session_id=payload.session_id)
    if row is None:
        row = ChatSession(user_id=current_user.id, session_id=payload.session_id, name=payload.name, tags=[])
        db.add(row)
    else:
        row.name = payload.name
        row.updated_at = utcnow()
    _apply_messages(row, payload.messages)
    _apply_metadata(row, payload.metadata)

    await db.commit()
    await db.refresh(row)
    return Envelope[ChatSessionOut](data=_session_out(row))


@router.put("/session/{session_id}", response_model=Envelope[ChatSessionOut])
async def update_session(
    session_id: str,
    payload: ChatSessionUpdateIn,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Envelope[ChatSessionOut]:
    row = await _require_owned_session(db, user_id=current_user.id, session_id=session_id)
    if payload.name is not None and payload.name.strip():
        row.name = payload.name.strip()
    if payload.messages is not None:
        _apply_messages(row, payload.messages)
    if payload.metadata is not None:
        _apply_metadata(row, payload.metadata)
    row.updated_at = utcnow()

    await db.commit()
    await db.refresh(row)
    return Envelope[ChatSessionOut](data=_session_out(row))


@router.delete("/session/{session_id}", response_model=MessageResponse, response_model_exclude_none=True)
async def delete_session(
    session_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> MessageResponse:
    row = await _require_owned_session(db, user_id=current_user.id, session_id=session_id)
    await db.delete(row)
    await db.commit()
    return MessageResponse(message="Session deleted successfully")


@router.patch("/session/{session_id}/archive", response_model=Envelope[ChatSessionOut])
async def archive_session(
    session_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Envelope[ChatSessionOut]:
    row = await _require_owned_session(db, user_id=current_user.id, session_id=session_id)
    row.is_archived = True
    await db.commit()
    await db.refresh(row)
    return Envelope[ChatSessionOut](data=_session_out(row))
