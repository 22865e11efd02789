"""
What the chat session needs from the backing store. SupabaseChatStore is the
production implementation; tests provide an in-memory one.
"""
from typing import Any, Callable, Protocol

from command_center.client.attachments import Attachment

InsertCallback = Callable[[dict[str, Any]], None]
# (status, error): status is SUBSCRIBED, CHANNEL_ERROR, TIMED_OUT or CLOSED
StatusCallback = Callable[[str, Exception | None], None]

SUBSCRIBED = "SUBSCRIBED"
CHANNEL_ERROR = "CHANNEL_ERROR"
TIMED_OUT = "TIMED_OUT"
CLOSED = "CLOSED"


class ChatStore(Protocol):
    async def list_threads(self, agent_id: str) -> list[dict[str, Any]]: ...

    async def create_thread(self, agent_id: str, title: str) -> dict[str, Any]: ...

    async def update_thread(self, thread_id: str, **fields: Any) -> None: ...

    async def delete_thread(self, thread_id: str) -> None: ...

    async def fetch_messages(self, thread_id: str) -> list[dict[str, Any]]: ...

    async def insert_message(
        self,
        thread_id: str,
        agent_name: str,
        content: str,
        source: str,
    ) -> dict[str, Any]: ...

    async def touch_thread(self, thread_id: str) -> None: ...

    async def clear_messages(self, thread_id: str) -> None: ...

    async def upload_attachment(self, attachment: Attachment) -> str: ...

    async def subscribe_messages(
        self,
        thread_id: str,
        on_insert: InsertCallback,
        on_status: StatusCallback,
    ) -> Any: ...

    async def unsubscribe(self, channel: Any) -> None: ...
