"""
Staged attachments: bytes waiting to be uploaded to Supabase Storage before a send.
An uploaded attachment becomes one markdown reference line in the message body.
"""
import re
import secrets
import time
from dataclasses import dataclass

from command_center.client.formatting import format_bytes

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9._-]")


@dataclass
class Attachment:
    name: str
    content_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def is_image(self) -> bool:
        return self.content_type.startswith("image/")


def storage_key(filename: str) -> str:
    """Collision-resistant object key: <epoch-ms>-<random hex>-<sanitised name>."""
    safe_name = _UNSAFE_CHARS.sub("_", filename) or "file"
    return f"{int(time.time() * 1000)}-{secrets.token_hex(4)}-{safe_name}"


def attachment_reference(attachment: Attachment, public_url: str) -> str:
    kind = "Image" if attachment.is_image else "File"
    return f"[{kind}: {attachment.name}]({public_url}) ({format_bytes(attachment.size)})"


def compose_body(text: str, references: list[str]) -> str:
    """Typed text, a blank line, then one reference per attachment."""
    parts = []
    if text:
        parts.append(text)
    if references:
        parts.append("\n".join(references))
    return "\n\n".join(parts)
