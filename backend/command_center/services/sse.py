"""
Server-sent-event framing shared by the relay (upstream gateway stream) and the
chat client (relay stream).

SSELineDecoder is a pure line-framing decoder: feed it arbitrary text or byte
chunks and it returns the payloads of the complete `data: ...` lines seen so
far. A line split across two chunks is held back until its newline arrives.
"""
import codecs
import json
import logging
from typing import Any

LOG = logging.getLogger(__name__)

DONE_SENTINEL = "[DONE]"


def _data_payload(line: str) -> str | None:
    """Return the payload of a `data:` line, or None for blank/comment/other fields."""
    line = line.strip()
    if not line.startswith("data:"):
        return None
    return line[len("data:"):].lstrip()


class SSELineDecoder:
    """Incremental `data:` line decoder, independent of any HTTP client."""

    def __init__(self) -> None:
        self._buffer = ""
        # UTF-8 sequences can also be split across byte chunks.
        self._utf8 = codecs.getincrementaldecoder("utf-8")(errors="replace")

    def feed(self, chunk: str | bytes) -> list[str]:
        if isinstance(chunk, bytes):
            chunk = self._utf8.decode(chunk)
        self._buffer += chunk
        *lines, self._buffer = self._buffer.split("\n")
        payloads = []
        for line in lines:
            payload = _data_payload(line)
            if payload is not None:
                payloads.append(payload)
        return payloads

    def flush(self) -> list[str]:
        """Return the payload of a trailing line that never got its newline."""
        tail = self._buffer + self._utf8.decode(b"", final=True)
        self._buffer = ""
        payload = _data_payload(tail)
        return [payload] if payload is not None else []


def parse_payload(payload: str) -> dict[str, Any] | None:
    """Parse one frame's JSON defensively; malformed or non-object frames are logged and return None."""
    try:
        data = json.loads(payload)
    except (json.JSONDecodeError, ValueError):
        LOG.warning("skipping malformed stream frame: %.200r", payload)
        return None
    if not isinstance(data, dict):
        LOG.warning("skipping non-object stream frame: %.200r", payload)
        return None
    return data


def _first_choice(data: dict[str, Any]) -> dict[str, Any]:
    choices = data.get("choices")
    if isinstance(choices, list) and choices and isinstance(choices[0], dict):
        return choices[0]
    return {}


def extract_delta(data: dict[str, Any]) -> str:
    """choices[0].delta.content of a streaming chunk, "" when absent."""
    delta = _first_choice(data).get("delta")
    if not isinstance(delta, dict):
        return ""
    content = delta.get("content")
    return content if isinstance(content, str) else ""


def extract_message_content(data: dict[str, Any]) -> str:
    """choices[0].message.content of a non-streaming completion, "" when absent."""
    message = _first_choice(data).get("message")
    if not isinstance(message, dict):
        return ""
    content = message.get("content")
    return content if isinstance(content, str) else ""


def format_frame(payload: dict[str, Any]) -> str:
    """One relay frame: `data: <json>` followed by a blank line."""
    return f"data: {json.dumps(payload)}\n\n"
