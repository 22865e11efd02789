"""Command Center chat client: session state, realtime sync and relay access."""

from command_center.client.attachments import Attachment
from command_center.client.relay import RelayClient
from command_center.client.session import ChatSession, Compose
from command_center.client.state import ConnectionState, ThreadState, merge_messages

__all__ = [
    "Attachment",
    "ChatSession",
    "Compose",
    "ConnectionState",
    "RelayClient",
    "ThreadState",
    "merge_messages",
]
