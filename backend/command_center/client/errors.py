"""Exceptions raised by the chat client. The session catches them at the send boundary."""


class ChatClientError(Exception):
    """Base class for chat client failures."""


class StoreError(ChatClientError):
    """A Supabase table or realtime call failed."""


class AttachmentUploadError(ChatClientError):
    """An attachment could not be stored; the whole send is aborted."""

    def __init__(self, filename: str, reason: str = "") -> None:
        super().__init__(f"Upload failed for {filename}" + (f": {reason}" if reason else ""))
        self.filename = filename


class RelayError(ChatClientError):
    """The relay answered with an error status or an error frame."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        user_message: dict | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        # Set when the relay saved the user turn before the gateway failed.
        self.user_message = user_message
