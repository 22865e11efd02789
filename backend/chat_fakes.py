"""
Test doubles: gateway responses for httpx.MockTransport, an in-memory ChatStore,
a scripted relay and a manual timer scheduler.
"""
import asyncio
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

import httpx

from command_center.client.attachments import Attachment, storage_key
from command_center.client.errors import AttachmentUploadError, RelayError

_EPOCH = datetime(2026, 1, 1, tzinfo=timezone.utc)


def sse_response(*chunks: str | bytes, status_code: int = 200) -> httpx.Response:
    """Streaming gateway response delivered in exactly the given chunks."""

    async def body():
        for chunk in chunks:
            yield chunk.encode() if isinstance(chunk, str) else chunk

    return httpx.Response(status_code, headers={"content-type": "text/event-stream"}, content=body())


def completion_response(content: str | None) -> httpx.Response:
    message: dict[str, Any] = {"role": "assistant"}
    if content is not None:
        message["content"] = content
    return httpx.Response(200, json={"choices": [{"index": 0, "message": message}]})


def delta_frame(text: str) -> str:
    return 'data: {"choices":[{"delta":{"content":"%s"}}]}\n' % text


class FakeChannel:
    def __init__(self, thread_id: str, on_insert: Callable, on_status: Callable) -> None:
        self.thread_id = thread_id
        self.on_insert = on_insert
        self.on_status = on_status
        self.closed = False


class FakeStore:
    """In-memory ChatStore. Timestamps advance one second per write."""

    def __init__(self) -> None:
        self.threads: dict[str, dict[str, Any]] = {}
        self.messages: list[dict[str, Any]] = []
        self.uploads: list[dict[str, Any]] = []
        self.channels: list[FakeChannel] = []
        self.fail_uploads: set[str] = set()
        self.subscribe_error: Exception | None = None
        # Raised, one per call, by fetch_messages before it succeeds again.
        self.fetch_errors: list[Exception] = []
        self._tick = 0

    def now(self) -> str:
        self._tick += 1
        return (_EPOCH + timedelta(seconds=self._tick)).isoformat()

    def add_thread(self, agent_id: str = "titus", title: str = "General", pinned: bool = False) -> dict[str, Any]:
        stamp = self.now()
        row = {
            "id": str(uuid.uuid4()),
            "agent_id": agent_id,
            "title": title,
            "pinned": pinned,
            "created_at": stamp,
            "updated_at": stamp,
        }
        self.threads[row["id"]] = row
        return row

    def make_message(self, thread_id: str, agent_name: str, content: str) -> dict[str, Any]:
        return {
            "id": str(uuid.uuid4()),
            "thread_id": thread_id,
            "agent_name": agent_name,
            "content": content,
            "created_at": self.now(),
            "metadata": {},
        }

    def thread_messages(self, thread_id: str) -> list[dict[str, Any]]:
        return [m for m in self.messages if m["thread_id"] == thread_id]

    @property
    def live_channels(self) -> list[FakeChannel]:
        return [c for c in self.channels if not c.closed]

    # --- ChatStore ---

    async def list_threads(self, agent_id: str) -> list[dict[str, Any]]:
        rows = [dict(t) for t in self.threads.values() if t["agent_id"] == agent_id]
        return sorted(rows, key=lambda t: (t["pinned"], t["updated_at"]), reverse=True)

    async def create_thread(self, agent_id: str, title: str) -> dict[str, Any]:
        return dict(self.add_thread(agent_id, title))

    async def update_thread(self, thread_id: str, **fields: Any) -> None:
        self.threads[thread_id].update(fields)

    async def delete_thread(self, thread_id: str) -> None:
        self.threads.pop(thread_id, None)
        for message in self.messages:
            if message["thread_id"] == thread_id:
                message["thread_id"] = None

    async def fetch_messages(self, thread_id: str) -> list[dict[str, Any]]:
        if self.fetch_errors:
            raise self.fetch_errors.pop(0)
        return [dict(m) for m in self.thread_messages(thread_id)]

    async def insert_message(self, thread_id: str, agent_name: str, content: str, source: str) -> dict[str, Any]:
        row = self.make_message(thread_id, agent_name, content)
        row["metadata"] = {"source": source}
        self.messages.append(row)
        return dict(row)

    async def touch_thread(self, thread_id: str) -> None:
        if thread_id in self.threads:
            self.threads[thread_id]["updated_at"] = self.now()

    async def clear_messages(self, thread_id: str) -> None:
        self.messages = [m for m in self.messages if m["thread_id"] != thread_id]

    async def upload_attachment(self, attachment: Attachment) -> str:
        if attachment.name in self.fail_uploads:
            raise AttachmentUploadError(attachment.name, "bucket rejected the object")
        path = storage_key(attachment.name)
        self.uploads.append({"filename": attachment.name, "storage_path": path})
        return f"https://storage.test/uploads/{path}"

    async def subscribe_messages(self, thread_id: str, on_insert: Callable, on_status: Callable) -> FakeChannel:
        if self.subscribe_error is not None:
            raise self.subscribe_error
        channel = FakeChannel(thread_id, on_insert, on_status)
        self.channels.append(channel)
        return channel

    async def unsubscribe(self, channel: FakeChannel) -> None:
        channel.closed = True


class FakeRelay:
    """Stands in for RelayClient; persists into a FakeStore like the real relay would."""

    def __init__(
        self,
        store: FakeStore,
        reply: str = "On it.",
        frames: list[dict[str, Any]] | None = None,
        error: RelayError | None = None,
        gate: asyncio.Event | None = None,
    ) -> None:
        self.store = store
        self.reply = reply
        self.frames = frames or []
        self.error = error
        self.gate = gate
        self.calls: list[dict[str, Any]] = []

    async def send(self, thread_id: str, message: str, agent_name: str | None = None, agent_id: str | None = None):
        self.calls.append({"thread_id": thread_id, "message": message, "agent_name": agent_name})
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        user = await self.store.insert_message(thread_id, agent_name or "Cody", message, "command-center-api")
        await self.store.insert_message(thread_id, "Titus", self.reply, "gateway")
        return {"success": True, "userMessage": user, "aiResponse": self.reply}

    async def stream(self, thread_id: str, message: str, agent_name: str | None = None, agent_id: str | None = None):
        self.calls.append({"thread_id": thread_id, "message": message, "agent_name": agent_name})
        if self.error is not None:
            raise self.error
        await self.store.insert_message(thread_id, agent_name or "Cody", message, "command-center-api")
        text = ""
        for frame in self.frames:
            if "content" in frame:
                text += frame["content"]
            if frame.get("done") and text:
                await self.store.insert_message(thread_id, "Titus", text, "gateway")
            yield frame


class ManualTimer:
    def __init__(self, delay: float, callback: Callable[[], None]) -> None:
        self.delay = delay
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Records timers instead of running them; tests fire them explicitly."""

    def __init__(self) -> None:
        self.timers: list[ManualTimer] = []

    def __call__(self, delay: float, callback: Callable[[], None]) -> ManualTimer:
        timer = ManualTimer(delay, callback)
        self.timers.append(timer)
        return timer

    @property
    def delays(self) -> list[float]:
        return [t.delay for t in self.timers]

    def fire_last(self) -> None:
        timer = self.timers[-1]
        assert not timer.cancelled
        timer.callback()
