"""Command Center tables: chat_threads, chat_messages, file_uploads."""

from command_center.models.message import ChatMessage, FileUpload
from command_center.models.thread import Base, ChatThread, utcnow

__all__ = ["Base", "ChatMessage", "ChatThread", "FileUpload", "utcnow"]
