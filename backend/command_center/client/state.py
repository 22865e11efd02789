"""
Client-side cache for the active thread.

Rows arrive from three places (realtime push, poll, local echo) in any order
and possibly more than once. merge_messages is the single reconciliation rule:
insert a row only if its id is unseen, then sort by creation time.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterable

from command_center.client.formatting import parse_timestamp
from command_center.core.config import HUMAN_SENDERS

STREAMING_MESSAGE_ID = "streaming"

# Rows without a timestamp sort last.
_FAR_FUTURE = datetime.max.replace(tzinfo=timezone.utc)


class ConnectionState(str, Enum):
    """Realtime channel state for the active thread."""

    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    RECONNECTING = "reconnecting"


def message_sort_key(row: dict[str, Any]) -> tuple[datetime, str]:
    return (parse_timestamp(row.get("created_at")) or _FAR_FUTURE, str(row.get("id", "")))


def merge_messages(
    existing: Iterable[dict[str, Any]],
    incoming: Iterable[dict[str, Any]],
) -> list[dict[str, Any]]:
    """
    Id-keyed merge: duplicates are dropped (first copy wins, rows are immutable),
    result is ordered by created_at ascending. Idempotent, and the order of
    delivery does not change the result.
    """
    by_id: dict[str, dict[str, Any]] = {}
    for row in (*existing, *incoming):
        row_id = row.get("id")
        if row_id is None:
            continue
        by_id.setdefault(str(row_id), row)
    return sorted(by_id.values(), key=message_sort_key)


def is_human_sender(agent_name: str | None, human_sender: str | None = None) -> bool:
    name = (agent_name or "").strip().lower()
    return name in HUMAN_SENDERS or (human_sender is not None and name == human_sender.lower())


@dataclass
class ThreadState:
    """Messages and live-connection state for one selected thread."""

    thread_id: str | None = None
    messages: list[dict[str, Any]] = field(default_factory=list)
    connection: ConnectionState = ConnectionState.DISCONNECTED
    # Assistant reply being streamed; rendered after the persisted rows.
    streaming: dict[str, Any] | None = None

    def merge(self, rows: Iterable[dict[str, Any]]) -> list[dict[str, Any]]:
        """Merge rows in; returns the ones that were new."""
        rows = list(rows)
        known = {str(m.get("id")) for m in self.messages}
        self.messages = merge_messages(self.messages, rows)
        return [r for r in rows if r.get("id") is not None and str(r.get("id")) not in known]

    def replace(self, rows: Iterable[dict[str, Any]]) -> None:
        self.messages = merge_messages([], rows)

    def visible_messages(self) -> list[dict[str, Any]]:
        if self.streaming is None:
            return list(self.messages)
        return [*self.messages, self.streaming]
