"""
Threads API: the CRUD the chat pane needs (list, create, rename/pin, delete,
history, clear).
"""
import logging
import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Response, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from command_center.core.database import get_db
from command_center.models import ChatThread
from command_center.services import store

LOG = logging.getLogger(__name__)

router = APIRouter(prefix="/threads", tags=["threads"])


class ThreadCreate(BaseModel):
    """POST /api/threads body."""

    agent_id: str = Field(..., min_length=1, description="Owning agent (titus, looty, bolt)")
    title: str | None = Field(default=None, description="Display title; defaults to 'New Thread'")


class ThreadUpdate(BaseModel):
    """PATCH /api/threads/{thread_id} body."""

    title: str | None = None
    pinned: bool | None = None


def _thread_uuid(thread_id: str) -> uuid.UUID:
    thread_uuid = store.parse_uuid(thread_id)
    if thread_uuid is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid thread_id")
    return thread_uuid


async def _get_thread_or_404(db: AsyncSession, thread_id: str) -> ChatThread:
    thread = await store.get_thread(db, _thread_uuid(thread_id))
    if thread is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Thread not found")
    return thread


@router.get("")
async def list_threads(
    db: Annotated[AsyncSession, Depends(get_db)],
    agent_id: str | None = None,
) -> list[dict]:
    """Threads for an agent: pinned first, then most recently active."""
    threads = await store.list_threads(db, agent_id)
    return [t.to_dict() for t in threads]


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_thread(
    body: ThreadCreate,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> dict:
    thread = await store.create_thread(db, body.agent_id, body.title)
    LOG.info("thread created id=%s agent_id=%s", thread.id, thread.agent_id)
    return thread.to_dict()


@router.patch("/{thread_id}")
async def update_thread(
    thread_id: str,
    body: ThreadUpdate,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> dict:
    """Rename and/or pin. A blank title is rejected."""
    if body.title is not None and not body.title.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="title must not be blank")
    thread = await _get_thread_or_404(db, thread_id)
    thread = await store.update_thread(db, thread, title=body.title, pinned=body.pinned)
    return thread.to_dict()


@router.delete("/{thread_id}")
async def delete_thread(
    thread_id: str,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Delete a thread. Its messages stay as orphans (thread_id NULL). 204 on success."""
    thread = await _get_thread_or_404(db, thread_id)
    await store.delete_thread(db, thread.id)
    LOG.info("thread deleted id=%s", thread.id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{thread_id}/messages")
async def list_messages(
    thread_id: str,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> list[dict]:
    """Message history, oldest first."""
    messages = await store.list_messages(db, _thread_uuid(thread_id))
    return [m.to_dict() for m in messages]


@router.delete("/{thread_id}/messages")
async def clear_messages(
    thread_id: str,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> dict:
    """Clear a thread's history (the /clear command)."""
    deleted = await store.clear_messages(db, _thread_uuid(thread_id))
    LOG.info("thread cleared id=%s deleted=%s", thread_id, deleted)
    return {"deleted": deleted}
