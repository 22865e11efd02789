"""
Persistence helpers for chat_threads / chat_messages over an AsyncSession.
Callers own the session; each write commits on its own.
"""
import logging
import uuid

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from command_center.models import ChatMessage, ChatThread, utcnow

LOG = logging.getLogger(__name__)

DEFAULT_THREAD_TITLE = "New Thread"


def parse_uuid(value: str | uuid.UUID | None) -> uuid.UUID | None:
    """UUID from a string id, or None when the value is not a valid UUID."""
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (ValueError, TypeError):
        return None


async def insert_message(
    db: AsyncSession,
    thread_id: uuid.UUID | None,
    agent_name: str,
    content: str,
    source: str,
) -> ChatMessage:
    """Insert one message row. Raises SQLAlchemyError after rolling back on failure."""
    now = utcnow()
    message = ChatMessage(
        thread_id=thread_id,
        agent_name=agent_name,
        content=content,
        created_at=now,
        metadata_={"source": source, "timestamp": now.isoformat()},
    )
    db.add(message)
    try:
        await db.commit()
        await db.refresh(message)
    except SQLAlchemyError:
        await db.rollback()
        raise
    return message


async def touch_thread(db: AsyncSession, thread_id: uuid.UUID) -> bool:
    """Best-effort updated_at refresh; failures are logged, never raised."""
    try:
        await db.execute(
            update(ChatThread).where(ChatThread.id == thread_id).values(updated_at=utcnow())
        )
        await db.commit()
        return True
    except SQLAlchemyError:
        LOG.exception("touch_thread failed for thread_id=%s", thread_id)
        await db.rollback()
        return False


async def list_threads(db: AsyncSession, agent_id: str | None = None) -> list[ChatThread]:
    """Pinned first, then most recently active."""
    query = select(ChatThread)
    if agent_id:
        query = query.where(ChatThread.agent_id == agent_id)
    query = query.order_by(ChatThread.pinned.desc(), ChatThread.updated_at.desc())
    result = await db.execute(query)
    return list(result.scalars().all())


async def get_thread(db: AsyncSession, thread_id: uuid.UUID) -> ChatThread | None:
    result = await db.execute(select(ChatThread).where(ChatThread.id == thread_id))
    return result.scalar_one_or_none()


async def create_thread(
    db: AsyncSession,
    agent_id: str,
    title: str | None = None,
) -> ChatThread:
    thread = ChatThread(agent_id=agent_id, title=(title or "").strip() or DEFAULT_THREAD_TITLE)
    db.add(thread)
    await db.commit()
    await db.refresh(thread)
    return thread


async def update_thread(
    db: AsyncSession,
    thread: ChatThread,
    title: str | None = None,
    pinned: bool | None = None,
) -> ChatThread:
    """Rename and/or pin. Does not bump updated_at: only new messages do."""
    if title is not None:
        thread.title = title.strip()
    if pinned is not None:
        thread.pinned = pinned
    await db.commit()
    await db.refresh(thread)
    return thread


async def delete_thread(db: AsyncSession, thread_id: uuid.UUID) -> None:
    # Messages are kept with a NULL thread_id (ON DELETE SET NULL on Postgres).
    await db.execute(
        update(ChatMessage).where(ChatMessage.thread_id == thread_id).values(thread_id=None)
    )
    await db.execute(delete(ChatThread).where(ChatThread.id == thread_id))
    await db.commit()


async def list_messages(db: AsyncSession, thread_id: uuid.UUID) -> list[ChatMessage]:
    result = await db.execute(
        select(ChatMessage)
        .where(ChatMessage.thread_id == thread_id)
        .order_by(ChatMessage.created_at.asc(), ChatMessage.id.asc())
    )
    return list(result.scalars().all())


async def clear_messages(db: AsyncSession, thread_id: uuid.UUID) -> int:
    """Bulk-delete a thread's history. Returns the number of rows removed."""
    result = await db.execute(delete(ChatMessage).where(ChatMessage.thread_id == thread_id))
    await db.commit()
    return result.rowcount or 0
