"""
ChatSession: owns what the chat pane shows for one agent.

- threads for the agent and the active selection
- the active thread's messages, kept in sync by realtime push, a poll
  fallback and local echo (all reconciled by merge_messages)
- the realtime connection, re-established with exponential backoff
- the compose box (text, staged attachments, slash-command completion)
- the "assistant is typing" indicator and the streaming reply

Everything runs on one asyncio loop. Work issued for a thread is tagged with
that thread's id; results that come back after the selection moved on are
discarded.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from command_center.client.attachments import Attachment, attachment_reference, compose_body
from command_center.client.commands import CLEAR_COMMAND, SlashCommand, match_commands
from command_center.client.errors import ChatClientError, RelayError
from command_center.client.reconnect import ReconnectController, Scheduler
from command_center.client.relay import RelayClient
from command_center.client.state import (
    STREAMING_MESSAGE_ID,
    ConnectionState,
    ThreadState,
    is_human_sender,
)
from command_center.client.store import CHANNEL_ERROR, CLOSED, SUBSCRIBED, TIMED_OUT, ChatStore
from command_center.core.config import (
    ASSISTANT_SENDER,
    HUMAN_SENDER,
    POLL_INTERVAL_SECONDS,
    RECONNECT_BASE_SECONDS,
    RECONNECT_MAX_SECONDS,
)

LOG = logging.getLogger(__name__)

NEW_THREAD_TITLE = "New Thread"
FALLBACK_THREAD_TITLE = "General"
DIRECT_SOURCE = "command-center"

_LOST_STATUSES = frozenset({CHANNEL_ERROR, TIMED_OUT, CLOSED})


@dataclass
class Compose:
    """The input box: typed text, staged attachments, highlighted slash suggestion."""

    text: str = ""
    attachments: list[Attachment] = field(default_factory=list)
    slash_index: int = 0

    def matches(self) -> list[SlashCommand]:
        return match_commands(self.text)

    def move_selection(self, step: int) -> None:
        count = len(self.matches())
        if count:
            self.slash_index = max(0, min(count - 1, self.slash_index + step))

    def complete(self) -> bool:
        """Replace a bare `/partial` with the highlighted command plus a space."""
        matches = self.matches()
        if not matches:
            return False
        self.text = matches[min(self.slash_index, len(matches) - 1)].name + " "
        self.slash_index = 0
        return True

    def clear(self) -> None:
        self.text = ""
        self.attachments = []
        self.slash_index = 0


def _thread_sort_key(thread: dict[str, Any]) -> tuple[bool, str]:
    # Sorted descending: pinned first, then most recently active.
    return (bool(thread.get("pinned")), str(thread.get("updated_at") or ""))


class ChatSession:
    def __init__(
        self,
        store: ChatStore,
        relay: RelayClient | None = None,
        *,
        agent_id: str = "titus",
        human_sender: str = HUMAN_SENDER,
        assistant_sender: str = ASSISTANT_SENDER,
        stream: bool = True,
        poll_interval: float = POLL_INTERVAL_SECONDS,
        scheduler: Scheduler | None = None,
        reconnect_base: float = RECONNECT_BASE_SECONDS,
        reconnect_max: float = RECONNECT_MAX_SECONDS,
    ) -> None:
        self.store = store
        self.relay = relay
        self.agent_id = agent_id
        self.human_sender = human_sender
        self.assistant_sender = assistant_sender
        self.stream = stream
        self.poll_interval = poll_interval

        self.threads: list[dict[str, Any]] = []
        self.state = ThreadState()
        self.compose = Compose()
        self.typing = False
        self.sending = False
        self.renaming_id: str | None = None
        self.last_error: str | None = None

        self._reconnect = ReconnectController(
            self._connect,
            schedule=scheduler,
            base_delay=reconnect_base,
            max_delay=reconnect_max,
            on_state_change=self._on_connection_state,
        )
        self._channel: Any = None
        self._poll_task: asyncio.Task | None = None
        self._tasks: set[asyncio.Task] = set()

    # --- read-only views ---

    @property
    def active_thread_id(self) -> str | None:
        return self.state.thread_id

    @property
    def connection(self) -> ConnectionState:
        return self.state.connection

    @property
    def reconnect(self) -> ReconnectController:
        return self._reconnect

    def visible_messages(self) -> list[dict[str, Any]]:
        return self.state.visible_messages()

    # --- background tasks ---

    def _spawn(self, coro: Any) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self) -> None:
        """Wait for in-flight subscribe tasks (not the poll loop)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # --- realtime channel ---

    def _on_connection_state(self, state: ConnectionState) -> None:
        self.state.connection = state

    def _connect(self, thread_id: str, generation: int) -> None:
        self._spawn(self._subscribe(thread_id, generation))

    async def _remove_channel(self) -> None:
        channel, self._channel = self._channel, None
        if channel is not None:
            await self.store.unsubscribe(channel)

    async def _subscribe(self, thread_id: str, generation: int) -> None:
        await self._remove_channel()
        if generation != self._reconnect.generation:
            return
        try:
            channel = await self.store.subscribe_messages(
                thread_id,
                on_insert=lambda row: self.handle_insert(thread_id, row),
                on_status=lambda status, error=None: self.handle_channel_status(generation, status, error),
            )
        except ChatClientError as e:
            LOG.warning("subscribe failed thread_id=%s: %s", thread_id, e)
            self._reconnect.channel_error(generation, str(e))
            return
        if generation != self._reconnect.generation:
            await self.store.unsubscribe(channel)
            return
        self._channel = channel

    def handle_channel_status(self, generation: int, status: str, error: Exception | None = None) -> None:
        if status == SUBSCRIBED:
            self._reconnect.subscribed(generation)
        elif status in _LOST_STATUSES:
            self._reconnect.channel_error(generation, f"{status} {error or ''}".strip())

    def handle_insert(self, thread_id: str, row: dict[str, Any]) -> None:
        """Realtime insert for thread_id; ignored unless it is still the active thread."""
        if thread_id != self.active_thread_id:
            return
        if str(row.get("thread_id") or thread_id) != thread_id:
            return
        new_rows = self.state.merge([row])
        if new_rows and not is_human_sender(row.get("agent_name"), self.human_sender):
            self.typing = False
            self._drop_finished_stream(row)

    def _drop_finished_stream(self, row: dict[str, Any] | None = None) -> None:
        """
        Remove the streaming pseudo-message once its text is persisted: after the
        done frame, or earlier when the pushed assistant row already carries the
        full streamed text.
        """
        streaming = self.state.streaming
        if streaming is None:
            return
        if streaming.get("complete") or (
            row is not None and streaming["content"] and row.get("content") == streaming["content"]
        ):
            self.state.streaming = None

    # --- polling fallback ---

    async def refresh_messages(self) -> None:
        thread_id = self.active_thread_id
        if thread_id is None:
            self.state.replace([])
            return
        rows = await self.store.fetch_messages(thread_id)
        if thread_id == self.active_thread_id:
            self.state.replace(rows)

    async def poll_once(self) -> bool:
        """
        Refetch the active thread; if the row count differs from the cache,
        replace it wholesale and clear the typing indicator. Returns True when replaced.
        """
        thread_id = self.active_thread_id
        if thread_id is None:
            return False
        rows = await self.store.fetch_messages(thread_id)
        if thread_id != self.active_thread_id or len(rows) == len(self.state.messages):
            return False
        self.state.replace(rows)
        self.typing = False
        self._drop_finished_stream()
        return True

    async def _poll_loop(self) -> None:
        while True:
            await asyncio.sleep(self.poll_interval)
            try:
                await self.poll_once()
            except asyncio.CancelledError:
                raise
            except Exception as e:  # noqa: BLE001 - the fallback must outlive any single failure
                LOG.warning("poll failed thread_id=%s: %s", self.active_thread_id, e)

    async def _stop_polling(self) -> None:
        task, self._poll_task = self._poll_task, None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception:  # noqa: BLE001
                LOG.warning("poll task ended with an error", exc_info=True)

    # --- threads ---

    async def select_thread(self, thread_id: str | None) -> None:
        if thread_id == self.active_thread_id:
            return
        await self._stop_polling()
        self.state = ThreadState(thread_id=thread_id, connection=self.state.connection)
        self.typing = False
        self._reconnect.thread_changed(thread_id)
        if thread_id is None:
            await self._remove_channel()
            return
        try:
            await self.refresh_messages()
        except (ChatClientError, httpx.HTTPError) as e:
            LOG.warning("initial fetch failed thread_id=%s: %s", thread_id, e)
        if thread_id == self.active_thread_id:
            self._poll_task = asyncio.ensure_future(self._poll_loop())

    async def load_threads(self) -> list[dict[str, Any]]:
        """Fetch the agent's threads; keep the selection if it still exists, else pick the first."""
        rows = await self.store.list_threads(self.agent_id)
        self.threads = sorted(rows, key=_thread_sort_key, reverse=True)
        if not any(t.get("id") == self.active_thread_id for t in self.threads):
            await self.select_thread(self.threads[0]["id"] if self.threads else None)
        return self.threads

    async def select_agent(self, agent_id: str) -> None:
        if agent_id == self.agent_id:
            return
        self.agent_id = agent_id
        await self.select_thread(None)
        self.threads = []
        await self.load_threads()

    async def create_thread(self, title: str = NEW_THREAD_TITLE) -> dict[str, Any]:
        """Insert a thread, select it and mark it for rename."""
        row = await self.store.create_thread(self.agent_id, title)
        self.threads.insert(0, row)
        await self.select_thread(row["id"])
        self.renaming_id = row["id"]
        return row

    async def rename_thread(self, thread_id: str, title: str) -> None:
        title = title.strip()
        if title:
            await self.store.update_thread(thread_id, title=title)
            for thread in self.threads:
                if thread.get("id") == thread_id:
                    thread["title"] = title
        self.renaming_id = None

    async def toggle_pin(self, thread_id: str) -> None:
        for thread in self.threads:
            if thread.get("id") == thread_id:
                pinned = not thread.get("pinned")
                await self.store.update_thread(thread_id, pinned=pinned)
                thread["pinned"] = pinned
                return

    async def delete_thread(self, thread_id: str) -> None:
        """
        Delete a thread. If it was active, select the next most recent one, or
        create a fallback thread when none are left so something stays selected.
        """
        await self.store.delete_thread(thread_id)
        remaining = sorted(
            (t for t in self.threads if t.get("id") != thread_id),
            key=_thread_sort_key,
            reverse=True,
        )
        self.threads = remaining
        if self.active_thread_id != thread_id:
            return
        if remaining:
            await self.select_thread(remaining[0]["id"])
            return
        row = await self.store.create_thread(self.agent_id, FALLBACK_THREAD_TITLE)
        self.threads = [row]
        await self.select_thread(row["id"])

    async def clear_history(self) -> None:
        thread_id = self.active_thread_id
        if thread_id is None:
            return
        await self.store.clear_messages(thread_id)
        if thread_id == self.active_thread_id:
            self.state.replace([])
            self.state.streaming = None

    # --- compose & send ---

    def stage_attachment(self, attachment: Attachment) -> None:
        self.compose.attachments.append(attachment)

    def remove_attachment(self, index: int) -> None:
        if 0 <= index < len(self.compose.attachments):
            del self.compose.attachments[index]

    async def send(self, stream: bool | None = None) -> dict[str, Any] | None:
        """
        Send the compose box to the active thread.

        Returns the persisted user message (None when nothing was sent). Any
        failure before the relay accepted the turn restores the compose box
        exactly as it was and clears the typing indicator.
        """
        raw_text = self.compose.text
        text = raw_text.strip()
        attachments = list(self.compose.attachments)
        thread_id = self.active_thread_id
        if (not text and not attachments) or thread_id is None or self.sending:
            return None

        if raw_text.startswith("/") and " " not in raw_text and self.compose.complete():
            return None
        if text == CLEAR_COMMAND and not attachments:
            self.compose.clear()
            await self.clear_history()
            return None

        self.compose.clear()
        self.sending = True
        self.typing = True
        self.last_error = None
        try:
            references = []
            for attachment in attachments:
                public_url = await self.store.upload_attachment(attachment)
                references.append(attachment_reference(attachment, public_url))
            body = compose_body(text, references)
            use_stream = self.stream if stream is None else stream
            return await self._deliver(thread_id, body, use_stream)
        except (ChatClientError, httpx.HTTPError) as e:
            LOG.warning("send failed thread_id=%s: %s", thread_id, e)
            self.last_error = str(e)
            if isinstance(e, RelayError) and e.user_message and thread_id == self.active_thread_id:
                self.state.merge([e.user_message])
            self.compose.text = raw_text
            self.compose.attachments = attachments
            self.typing = False
            return None
        finally:
            self.sending = False

    async def _deliver(self, thread_id: str, body: str, stream: bool) -> dict[str, Any] | None:
        if self.relay is None:
            row = await self.store.insert_message(thread_id, self.human_sender, body, DIRECT_SOURCE)
            await self.store.touch_thread(thread_id)
            if thread_id == self.active_thread_id:
                self.state.merge([row])
            return row
        if stream:
            await self._deliver_streaming(thread_id, body)
            return None
        result = await self.relay.send(thread_id, body, self.human_sender, self.agent_id)
        user_message = result.get("userMessage")
        if thread_id != self.active_thread_id:
            LOG.info("discarding relay reply for inactive thread_id=%s", thread_id)
            return user_message
        if user_message:
            self.state.merge([user_message])
        self.typing = False
        return user_message

    async def _deliver_streaming(self, thread_id: str, body: str) -> None:
        """
        Render the reply as it streams. On done the persisted row replaces the
        pseudo-message; on error the partial text stays visible, unpersisted.
        """
        pseudo = {
            "id": STREAMING_MESSAGE_ID,
            "thread_id": thread_id,
            "agent_name": self.assistant_sender,
            "content": "",
            "created_at": None,
        }
        state = self.state
        state.streaming = pseudo
        try:
            finished = await self._consume_stream(thread_id, body, pseudo)
        except ChatClientError:
            # Refused before or during the stream: the compose box is restored instead.
            if state.streaming is pseudo:
                state.streaming = None
            raise
        if not finished and thread_id == self.active_thread_id:
            pseudo["partial"] = True
            self.last_error = "Stream ended unexpectedly"
            self.typing = False

    async def _consume_stream(self, thread_id: str, body: str, pseudo: dict[str, Any]) -> bool:
        """Apply relay frames to the pseudo-message; True once a done or error frame arrived."""
        # Keep reading after a thread switch so the relay can persist the reply.
        async for frame in self.relay.stream(thread_id, body, self.human_sender, self.agent_id):
            active = thread_id == self.active_thread_id
            if "content" in frame:
                pseudo["content"] += str(frame.get("content") or "")
            elif "error" in frame:
                if active:
                    pseudo["partial"] = True
                    self.last_error = str(frame["error"])
                    self.typing = False
                return True
            elif frame.get("done"):
                if active:
                    pseudo["complete"] = True
                    self.typing = False
                    try:
                        await self.refresh_messages()
                    except ChatClientError as e:
                        LOG.warning("refresh after stream failed thread_id=%s: %s", thread_id, e)
                    else:
                        self._drop_finished_stream()
                return True
        return False

    # --- lifecycle ---

    async def close(self) -> None:
        """Tear down the channel, the poll loop and any pending reconnect timer."""
        self._reconnect.teardown()
        await self._stop_polling()
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*list(self._tasks), return_exceptions=True)
        await self._remove_channel()

