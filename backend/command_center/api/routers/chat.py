"""
Chat relay: persist the user turn, forward it to the gateway, then return or
stream the reply while persisting it.
"""
import asyncio
import logging
import uuid
from typing import Annotated, Any, AsyncGenerator

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from command_center.api.deps import get_gateway
from command_center.core.config import ASSISTANT_SENDER, HUMAN_SENDER
from command_center.core.database import AsyncSessionLocal, get_db
from command_center.services import store
from command_center.services.gateway import GatewayClient, GatewayError
from command_center.services.sse import format_frame

LOG = logging.getLogger(__name__)
FLOW = "[FLOW]"

USER_SOURCE = "command-center-api"
GATEWAY_SOURCE = "gateway"

router = APIRouter(prefix="/chat", tags=["chat"])


class RelayRequest(BaseModel):
    """POST /api/chat body."""

    model_config = ConfigDict(populate_by_name=True)

    thread_id: str | None = Field(default=None, alias="threadId", description="Thread UUID")
    message: str | None = Field(default=None, description="User message body")
    agent_name: str | None = Field(default=None, alias="agentName", description="Sender label for the user turn")
    agent_id: str | None = Field(default=None, alias="agentId", description="Dashboard agent (titus, looty, bolt)")
    stream: bool = Field(default=False, description="Reply as text/event-stream")


def _error(status_code: int, error: str, **extra: Any) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": error, **extra})


async def _relay_stream(
    gateway: GatewayClient,
    thread_uuid: uuid.UUID,
    messages: list[dict[str, str]],
    agent_id: str | None,
) -> AsyncGenerator[str, None]:
    """
    Re-emit gateway deltas as `data: {"content": ...}` frames, then persist the
    accumulated text as one assistant row and finish with `data: {"done": true}`.
    A gateway failure ends the stream with a single `data: {"error": ...}` frame
    and nothing is persisted.
    """
    LOG.info("%s stream START thread_id=%s", FLOW, thread_uuid)
    chunks: list[str] = []
    try:
        async for delta in gateway.stream(messages, agent_id):
            chunks.append(delta)
            yield format_frame({"content": delta})
    except asyncio.CancelledError:
        raise
    except GatewayError as e:
        LOG.warning("%s stream FAILED thread_id=%s chunk_count=%s error=%s", FLOW, thread_uuid, len(chunks), e)
        yield format_frame({"error": str(e)})
        return
    except Exception:
        LOG.exception("%s stream FAILED thread_id=%s", FLOW, thread_uuid)
        yield format_frame({"error": "Stream failed"})
        return
    LOG.info("%s stream END thread_id=%s chunk_count=%s", FLOW, thread_uuid, len(chunks))

    full_text = "".join(chunks)
    if full_text:
        # The request-scoped session is gone once the response starts streaming.
        async with AsyncSessionLocal() as db:
            try:
                await store.insert_message(db, thread_uuid, ASSISTANT_SENDER, full_text, GATEWAY_SOURCE)
            except SQLAlchemyError:
                LOG.exception("%s failed to save streamed reply thread_id=%s", FLOW, thread_uuid)
            else:
                await store.touch_thread(db, thread_uuid)
    yield format_frame({"done": True})


@router.post("")
async def relay_chat(
    body: RelayRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
    gateway: Annotated[GatewayClient, Depends(get_gateway)],
):
    """
    Persist the user turn, then ask the gateway for a reply.
    The user row is committed before the gateway is called, so a gateway
    failure (503) still returns the saved userMessage.
    """
    thread_id = (body.thread_id or "").strip()
    message = body.message or ""
    if not thread_id or not message.strip():
        return _error(status.HTTP_400_BAD_REQUEST, "Missing required fields: threadId, message")
    thread_uuid = store.parse_uuid(thread_id)
    if thread_uuid is None:
        return _error(status.HTTP_400_BAD_REQUEST, "Invalid threadId")

    LOG.info("%s relay IN thread_id=%s stream=%s", FLOW, thread_id, body.stream)
    try:
        user_row = await store.insert_message(
            db,
            thread_uuid,
            body.agent_name or HUMAN_SENDER,
            message,
            USER_SOURCE,
        )
    except SQLAlchemyError:
        LOG.exception("%s failed to save user message thread_id=%s", FLOW, thread_id)
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to save message")
    user_message = user_row.to_dict()
    await store.touch_thread(db, thread_uuid)

    messages = [{"role": "user", "content": message}]

    if body.stream:
        return StreamingResponse(
            _relay_stream(gateway, thread_uuid, messages, body.agent_id),
            media_type="text/event-stream",
            headers={
                "Cache-Control": "no-cache",
                "Connection": "keep-alive",
                "X-Thread-Id": str(thread_uuid),
            },
        )

    try:
        ai_response = await gateway.complete(messages, body.agent_id)
    except GatewayError as e:
        LOG.warning("%s gateway FAILED thread_id=%s error=%s", FLOW, thread_id, e)
        error = "Gateway unavailable" if e.status_code is not None else "Gateway call failed"
        return _error(status.HTTP_503_SERVICE_UNAVAILABLE, error, userMessage=user_message)

    if ai_response:
        try:
            await store.insert_message(db, thread_uuid, ASSISTANT_SENDER, ai_response, GATEWAY_SOURCE)
        except SQLAlchemyError:
            LOG.exception("%s failed to save AI response thread_id=%s", FLOW, thread_id)
        else:
            await store.touch_thread(db, thread_uuid)

    LOG.info("%s relay OUT thread_id=%s reply_chars=%s", FLOW, thread_id, len(ai_response))
    return {"success": True, "userMessage": user_message, "aiResponse": ai_response}
