"""
Tests for the SSE line decoder and frame helpers.
Run: python -m pytest test_sse.py -v
"""
import json

from command_center.services.sse import (
    SSELineDecoder,
    extract_delta,
    extract_message_content,
    format_frame,
    parse_payload,
)


def test_decoder_holds_partial_line_until_newline():
    """A data line split across chunks is emitted once, when its newline arrives."""
    decoder = SSELineDecoder()
    assert decoder.feed('data: {"a"') == []
    assert decoder.feed(': 1}\n') == ['{"a": 1}']
    assert decoder.feed("\n") == []


def test_decoder_ignores_comments_and_other_fields():
    decoder = SSELineDecoder()
    payloads = decoder.feed(": keep-alive\nevent: message\nid: 4\ndata: [DONE]\n")
    assert payloads == ["[DONE]"]


def test_decoder_handles_crlf_and_several_lines_per_chunk():
    decoder = SSELineDecoder()
    assert decoder.feed("data: one\r\n\r\ndata: two\r\n") == ["one", "two"]


def test_decoder_joins_utf8_split_across_byte_chunks():
    """A multi-byte character cut between two byte chunks decodes intact."""
    encoded = 'data: {"content": "café"}\n'.encode()
    cut = encoded.index("é".encode()) + 1
    decoder = SSELineDecoder()
    assert decoder.feed(encoded[:cut]) == []
    assert decoder.feed(encoded[cut:]) == ['{"content": "café"}']


def test_decoder_flush_returns_unterminated_tail():
    decoder = SSELineDecoder()
    assert decoder.feed("data: last") == []
    assert decoder.flush() == ["last"]
    assert decoder.flush() == []


def test_parse_payload_skips_malformed_and_non_objects():
    assert parse_payload('{"content": "x"}') == {"content": "x"}
    assert parse_payload("{not json") is None
    assert parse_payload("[1, 2]") is None
    assert parse_payload('"text"') is None


def test_extract_delta_and_message_content():
    chunk = {"choices": [{"delta": {"content": "Hel"}}]}
    assert extract_delta(chunk) == "Hel"
    assert extract_delta({"choices": [{"delta": {"role": "assistant"}}]}) == ""
    assert extract_delta({"choices": []}) == ""
    assert extract_delta({}) == ""

    completion = {"choices": [{"message": {"role": "assistant", "content": "Hello"}}]}
    assert extract_message_content(completion) == "Hello"
    assert extract_message_content({"choices": [{"message": {"content": None}}]}) == ""
    assert extract_message_content({"error": "x"}) == ""


def test_format_frame_is_data_line_plus_blank_line():
    frame = format_frame({"content": "hi"})
    assert frame.startswith("data: ")
    assert frame.endswith("\n\n")
    assert json.loads(frame[len("data: "):]) == {"content": "hi"}
