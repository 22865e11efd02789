"""
ChatStore over supabase-py's async client: PostgREST tables, Realtime
postgres_changes for chat_messages inserts, Storage for attachments.
"""
import logging
from datetime import datetime, timezone
from typing import Any

import httpx
from postgrest.exceptions import APIError
from supabase import AsyncClient, acreate_client

from command_center.client.attachments import Attachment, storage_key
from command_center.client.errors import AttachmentUploadError, StoreError
from command_center.client.store import InsertCallback, StatusCallback
from command_center.core.config import STORAGE_BUCKET, SUPABASE_KEY, SUPABASE_URL

LOG = logging.getLogger(__name__)

THREADS_TABLE = "chat_threads"
MESSAGES_TABLE = "chat_messages"
UPLOADS_TABLE = "file_uploads"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _record(payload: Any) -> dict[str, Any] | None:
    """Inserted row from a postgres_changes payload (shape differs across realtime versions)."""
    if not isinstance(payload, dict):
        return None
    for candidate in (payload.get("new"), payload.get("record"), (payload.get("data") or {}).get("record")):
        if isinstance(candidate, dict):
            return candidate
    return None


class SupabaseChatStore:
    def __init__(self, client: AsyncClient, bucket: str = STORAGE_BUCKET) -> None:
        self._client = client
        self._bucket = bucket

    @classmethod
    async def connect(cls, url: str = SUPABASE_URL, key: str = SUPABASE_KEY) -> "SupabaseChatStore":
        if not url or not key:
            raise StoreError("SUPABASE_URL and SUPABASE_KEY are required")
        return cls(await acreate_client(url, key))

    async def _execute(self, query: Any, what: str) -> list[dict[str, Any]]:
        try:
            response = await query.execute()
        except APIError as e:
            raise StoreError(f"{what} failed: {e.message}") from e
        except httpx.HTTPError as e:
            # postgrest lets transport failures through unwrapped.
            raise StoreError(f"{what} failed: {e!s}") from e
        return response.data or []

    async def list_threads(self, agent_id: str) -> list[dict[str, Any]]:
        return await self._execute(
            self._client.table(THREADS_TABLE)
            .select("*")
            .eq("agent_id", agent_id)
            .order("pinned", desc=True)
            .order("updated_at", desc=True),
            "list_threads",
        )

    async def create_thread(self, agent_id: str, title: str) -> dict[str, Any]:
        rows = await self._execute(
            self._client.table(THREADS_TABLE).insert({"agent_id": agent_id, "title": title}),
            "create_thread",
        )
        if not rows:
            raise StoreError("create_thread returned no row")
        return rows[0]

    async def update_thread(self, thread_id: str, **fields: Any) -> None:
        await self._execute(
            self._client.table(THREADS_TABLE).update(fields).eq("id", thread_id),
            "update_thread",
        )

    async def delete_thread(self, thread_id: str) -> None:
        await self._execute(
            self._client.table(THREADS_TABLE).delete().eq("id", thread_id),
            "delete_thread",
        )

    async def fetch_messages(self, thread_id: str) -> list[dict[str, Any]]:
        return await self._execute(
            self._client.table(MESSAGES_TABLE)
            .select("*")
            .eq("thread_id", thread_id)
            .order("created_at"),
            "fetch_messages",
        )

    async def insert_message(
        self,
        thread_id: str,
        agent_name: str,
        content: str,
        source: str,
    ) -> dict[str, Any]:
        rows = await self._execute(
            self._client.table(MESSAGES_TABLE).insert(
                {
                    "thread_id": thread_id,
                    "agent_name": agent_name,
                    "content": content,
                    "metadata": {"source": source, "timestamp": _now_iso()},
                }
            ),
            "insert_message",
        )
        if not rows:
            raise StoreError("insert_message returned no row")
        return rows[0]

    async def touch_thread(self, thread_id: str) -> None:
        try:
            await self.update_thread(thread_id, updated_at=_now_iso())
        except StoreError:
            LOG.exception("touch_thread failed for thread_id=%s", thread_id)

    async def clear_messages(self, thread_id: str) -> None:
        await self._execute(
            self._client.table(MESSAGES_TABLE).delete().eq("thread_id", thread_id),
            "clear_messages",
        )

    async def upload_attachment(self, attachment: Attachment) -> str:
        """Store the bytes, record file_uploads metadata, return the public URL."""
        path = storage_key(attachment.name)
        bucket = self._client.storage.from_(self._bucket)
        try:
            await bucket.upload(
                path=path,
                file=attachment.data,
                file_options={"content-type": attachment.content_type},
            )
            public_url = await bucket.get_public_url(path)
        except Exception as e:  # noqa: BLE001 - storage3 raises several unrelated types
            raise AttachmentUploadError(attachment.name, str(e)) from e
        try:
            await self._execute(
                self._client.table(UPLOADS_TABLE).insert(
                    {
                        "filename": attachment.name,
                        "storage_path": path,
                        "content_type": attachment.content_type,
                        "size_bytes": attachment.size,
                        "uploaded_by": "user",
                    }
                ),
                "record_upload",
            )
        except StoreError:
            LOG.exception("file_uploads insert failed for %s", path)
        return public_url

    async def subscribe_messages(
        self,
        thread_id: str,
        on_insert: InsertCallback,
        on_status: StatusCallback,
    ) -> Any:
        def _on_change(payload: Any) -> None:
            row = _record(payload)
            if row is not None:
                on_insert(row)

        def _on_subscribe(state: Any, error: Exception | None = None) -> None:
            on_status(str(getattr(state, "value", state)), error)

        channel = self._client.channel(f"chat-realtime-{thread_id}")
        channel.on_postgres_changes(
            "INSERT",
            callback=_on_change,
            table=MESSAGES_TABLE,
            schema="public",
            filter=f"thread_id=eq.{thread_id}",
        )
        try:
            await channel.subscribe(_on_subscribe)
        except Exception as e:  # noqa: BLE001 - realtime raises transport errors as-is
            raise StoreError(f"subscribe failed: {e!s}") from e
        return channel

    async def unsubscribe(self, channel: Any) -> None:
        try:
            await self._client.remove_channel(channel)
        except Exception:  # noqa: BLE001
            LOG.warning("remove_channel failed", exc_info=True)
