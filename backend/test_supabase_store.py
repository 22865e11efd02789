"""
Tests for SupabaseChatStore error mapping, with a stub query builder in place of supabase-py.
Run: python -m pytest test_supabase_store.py -v
"""
import asyncio

import httpx

from command_center.client.errors import StoreError
from command_center.client.supabase_store import SupabaseChatStore, _record


class _Query:
    """Chainable stand-in for a postgrest request builder."""

    def __init__(self, error: Exception | None = None, data: list | None = None) -> None:
        self.error = error
        self.data = data or []

    def __getattr__(self, name):
        return lambda *args, **kwargs: self

    async def execute(self):
        if self.error is not None:
            raise self.error
        return self


class _Client:
    def __init__(self, query: _Query) -> None:
        self.query = query

    def table(self, name: str) -> _Query:
        return self.query


def test_transport_error_becomes_store_error():
    """httpx failures from postgrest surface as StoreError, which the session handles."""
    store = SupabaseChatStore(_Client(_Query(error=httpx.ConnectError("connection refused"))))
    try:
        asyncio.run(store.fetch_messages("t1"))
    except StoreError as e:
        assert "fetch_messages failed" in str(e)
    else:
        raise AssertionError("expected StoreError")


def test_touch_thread_swallows_transport_error():
    store = SupabaseChatStore(_Client(_Query(error=httpx.ReadTimeout("slow"))))
    assert asyncio.run(store.touch_thread("t1")) is None


def test_rows_returned_from_execute():
    rows = [{"id": "m1", "content": "hi"}]
    store = SupabaseChatStore(_Client(_Query(data=rows)))
    assert asyncio.run(store.fetch_messages("t1")) == rows


def test_record_handles_payload_shapes():
    row = {"id": "m1"}
    assert _record({"new": row}) == row
    assert _record({"record": row}) == row
    assert _record({"data": {"record": row}}) == row
    assert _record({"data": {}}) is None
    assert _record("nope") is None
