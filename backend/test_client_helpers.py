"""
Tests for compose-box helpers: byte/time formatting, attachment references, slash commands.
Run: python -m pytest test_client_helpers.py -v
"""
import re
from datetime import datetime, timedelta, timezone

from command_center.client.attachments import Attachment, attachment_reference, compose_body, storage_key
from command_center.client.commands import SLASH_COMMANDS, match_commands
from command_center.client.formatting import format_bytes, relative_time


def test_format_bytes():
    assert format_bytes(0) == "0 B"
    assert format_bytes(512) == "512 B"
    assert format_bytes(1024) == "1 KB"
    assert format_bytes(1536) == "1.5 KB"
    assert format_bytes(5 * 1024 * 1024) == "5 MB"
    assert format_bytes(int(3.3 * 1024 ** 3)) == "3.3 GB"


def test_relative_time():
    now = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
    assert relative_time(now - timedelta(seconds=20), now) == "now"
    assert relative_time(now - timedelta(minutes=5), now) == "5m"
    assert relative_time((now - timedelta(hours=3)).isoformat(), now) == "3h"
    assert relative_time("2026-02-27T12:00:00", now) == "2d"
    assert relative_time(None, now) == ""
    assert relative_time("yesterday", now) == ""


def test_storage_key_is_unique_and_safe():
    first, second = storage_key("my photo (1).png"), storage_key("my photo (1).png")
    assert first != second
    assert re.fullmatch(r"\d+-[0-9a-f]{8}-my_photo__1_\.png", first)


def test_attachment_reference_and_body():
    image = Attachment("shot.png", "image/png", b"x" * 2048)
    doc = Attachment("notes.pdf", "application/pdf", b"y" * 100)
    refs = [
        attachment_reference(image, "https://cdn.test/shot.png"),
        attachment_reference(doc, "https://cdn.test/notes.pdf"),
    ]
    assert refs == [
        "[Image: shot.png](https://cdn.test/shot.png) (2 KB)",
        "[File: notes.pdf](https://cdn.test/notes.pdf) (100 B)",
    ]
    assert compose_body("look", refs) == "look\n\n" + "\n".join(refs)
    assert compose_body("", refs[:1]) == refs[0]
    assert compose_body("just text", []) == "just text"


def test_match_commands():
    assert [c.name for c in match_commands("/cl")] == ["/clear"]
    assert "/email" in [c.name for c in match_commands("/inbox")]
    assert len(match_commands("/")) == len(SLASH_COMMANDS)
    assert match_commands("hello") == []
