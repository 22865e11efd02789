"""
Tests for POST /api/chat (the relay) against in-memory SQLite and a mocked gateway.
Run: python -m pytest test_relay.py -v
"""
import json
import uuid

import httpx
import pytest
from sqlalchemy.exc import SQLAlchemyError

from chat_fakes import completion_response, delta_frame, sse_response


def _new_thread(client, agent_id: str = "titus") -> str:
    resp = client.post("/api/threads", json={"agent_id": agent_id})
    assert resp.status_code == 201
    return resp.json()["id"]


def _history(client, thread_id: str) -> list[dict]:
    resp = client.get(f"/api/threads/{thread_id}/messages")
    assert resp.status_code == 200
    return resp.json()


def _frames(body: str) -> list[dict]:
    return [
        json.loads(block[len("data: "):])
        for block in body.split("\n\n")
        if block.startswith("data: ")
    ]


def _never_called(request):
    raise AssertionError(f"gateway must not be called: {request.url}")


def test_missing_fields_rejected_without_writes(api):
    """Blank message or missing threadId → 400, nothing stored, gateway untouched."""
    client = api(_never_called)
    thread_id = _new_thread(client)

    for body in (
        {"threadId": thread_id, "message": "   "},
        {"threadId": thread_id},
        {"message": "hello"},
        {"threadId": "", "message": "hello"},
    ):
        resp = client.post("/api/chat", json=body)
        assert resp.status_code == 400
        assert resp.json() == {"error": "Missing required fields: threadId, message"}

    assert _history(client, thread_id) == []


def test_invalid_thread_id_rejected(api):
    client = api(_never_called)
    resp = client.post("/api/chat", json={"threadId": "not-a-uuid", "message": "hello"})
    assert resp.status_code == 400
    assert resp.json()["error"] == "Invalid threadId"


def test_malformed_body_is_400(api):
    client = api(_never_called)
    resp = client.post("/api/chat", content=b"{broken", headers={"content-type": "application/json"})
    assert resp.status_code == 400
    assert "error" in resp.json()


def test_success_persists_both_turns(api):
    """Non-streaming: user row then assistant row, response carries both."""
    seen: dict = {}

    def handler(request):
        seen["body"] = json.loads(request.content)
        return completion_response("Hi Cody")

    client = api(handler)
    thread_id = _new_thread(client)
    resp = client.post("/api/chat", json={"threadId": thread_id, "message": "hello"})

    assert resp.status_code == 200
    data = resp.json()
    assert data["success"] is True
    assert data["aiResponse"] == "Hi Cody"
    assert data["userMessage"]["content"] == "hello"
    assert data["userMessage"]["agent_name"] == "Cody"
    assert data["userMessage"]["thread_id"] == thread_id
    assert seen["body"]["messages"] == [{"role": "user", "content": "hello"}]

    rows = _history(client, thread_id)
    assert [(r["agent_name"], r["content"]) for r in rows] == [("Cody", "hello"), ("Titus", "Hi Cody")]
    assert rows[0]["metadata"]["source"] == "command-center-api"
    assert rows[1]["metadata"]["source"] == "gateway"
    assert rows[0]["created_at"] <= rows[1]["created_at"]


def test_custom_agent_name_labels_user_turn(api):
    client = api(lambda r: completion_response("ok"))
    thread_id = _new_thread(client)
    resp = client.post("/api/chat", json={"threadId": thread_id, "message": "hi", "agentName": "user"})
    assert resp.json()["userMessage"]["agent_name"] == "user"


def _bad_gateway(request):
    return httpx.Response(502, text="bad gateway")


def _refused(request):
    raise httpx.ConnectError("connection refused", request=request)


@pytest.mark.parametrize(
    "handler,error",
    [(_bad_gateway, "Gateway unavailable"), (_refused, "Gateway call failed")],
)
def test_gateway_failure_keeps_user_message(api, handler, error):
    """502 upstream or a refused connection → 503 with the already-saved userMessage."""
    client = api(handler)
    thread_id = _new_thread(client)
    resp = client.post("/api/chat", json={"threadId": thread_id, "message": "are you there?"})

    assert resp.status_code == 503
    data = resp.json()
    assert data["error"] == error
    assert data["userMessage"]["content"] == "are you there?"
    rows = _history(client, thread_id)
    assert [r["content"] for r in rows] == ["are you there?"]
    assert rows[0]["id"] == data["userMessage"]["id"]


def test_empty_reply_stores_only_user_turn(api):
    client = api(lambda r: completion_response(None))
    thread_id = _new_thread(client)
    resp = client.post("/api/chat", json={"threadId": thread_id, "message": "hello"})

    assert resp.status_code == 200
    assert resp.json()["aiResponse"] == ""
    assert [r["agent_name"] for r in _history(client, thread_id)] == ["Cody"]


def test_streaming_relays_deltas_and_persists_one_row(api):
    """Chunks split mid-line still give 'Hel' + 'lo', then a single 'Hello' row and a done frame."""
    first, second = delta_frame("Hel"), delta_frame("lo")

    def handler(request):
        return sse_response(
            first[:15],
            first[15:] + "\n" + second[:9],
            second[9:] + "\n",
            "data: [DONE]\n\n",
        )

    client = api(handler)
    thread_id = _new_thread(client)
    resp = client.post("/api/chat", json={"threadId": thread_id, "message": "hello", "stream": True})

    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/event-stream")
    assert resp.headers["cache-control"] == "no-cache"
    assert resp.headers["x-thread-id"] == thread_id
    assert _frames(resp.text) == [{"content": "Hel"}, {"content": "lo"}, {"done": True}]

    rows = _history(client, thread_id)
    assert [(r["agent_name"], r["content"]) for r in rows] == [("Cody", "hello"), ("Titus", "Hello")]


def test_streaming_skips_malformed_frames(api):
    def handler(request):
        return sse_response(
            delta_frame("A") + "\n",
            "data: {not json}\n\n",
            "data: 42\n\n",
            delta_frame("B") + "\n",
            "data: [DONE]\n\n",
        )

    client = api(handler)
    thread_id = _new_thread(client)
    resp = client.post("/api/chat", json={"threadId": thread_id, "message": "x", "stream": True})

    assert _frames(resp.text) == [{"content": "A"}, {"content": "B"}, {"done": True}]
    assert _history(client, thread_id)[-1]["content"] == "AB"


def test_streaming_upstream_error_sends_error_frame(api):
    """Upstream 500 → one error frame, no done frame, no assistant row."""
    client = api(lambda r: sse_response("internal", status_code=500))
    thread_id = _new_thread(client)
    resp = client.post("/api/chat", json={"threadId": thread_id, "message": "hello", "stream": True})

    assert resp.status_code == 200
    frames = _frames(resp.text)
    assert len(frames) == 1
    assert "error" in frames[0]
    assert [r["agent_name"] for r in _history(client, thread_id)] == ["Cody"]


def test_user_turn_store_failure_is_500_without_gateway_call(api, monkeypatch):
    async def failing_insert(*args, **kwargs):
        raise SQLAlchemyError("database unavailable")

    monkeypatch.setattr("command_center.services.store.insert_message", failing_insert)
    client = api(_never_called)
    resp = client.post("/api/chat", json={"threadId": str(uuid.uuid4()), "message": "hello"})

    assert resp.status_code == 500
    assert resp.json() == {"error": "Failed to save message"}


def test_relay_bumps_thread_updated_at(api):
    """A thread that just received a message sorts first among unpinned threads."""
    client = api(lambda r: completion_response("ok"))
    older = _new_thread(client)
    newer = _new_thread(client)
    assert [t["id"] for t in client.get("/api/threads", params={"agent_id": "titus"}).json()] == [newer, older]

    client.post("/api/chat", json={"threadId": older, "message": "bump"})

    threads = client.get("/api/threads", params={"agent_id": "titus"}).json()
    assert [t["id"] for t in threads] == [older, newer]


def test_agent_id_routes_to_gateway_agent(api):
    seen: dict = {}

    def handler(request):
        seen["body"] = json.loads(request.content)
        return completion_response("zap")

    client = api(handler)
    thread_id = _new_thread(client, "bolt")
    client.post("/api/chat", json={"threadId": thread_id, "message": "go", "agentId": "bolt"})

    assert seen["body"]["model"] == "openclaw:minibolt"
    assert seen["body"]["user"] == "command-center-minibolt"


def test_gateway_status_endpoint(api):
    client = api(lambda r: httpx.Response(401, json={"error": "unauthorized"}))
    resp = client.get("/api/gateway/status")
    assert resp.status_code == 200
    assert resp.json()["ok"] is True


def test_unexpected_error_is_json_500(api, monkeypatch):
    """Anything the handlers do not anticipate comes back as {error} with status 500."""

    async def broken_touch(*args, **kwargs):
        raise RuntimeError("unexpected")

    monkeypatch.setattr("command_center.services.store.touch_thread", broken_touch)
    client = api(lambda r: completion_response("ok"))
    thread_id = _new_thread(client)
    resp = client.post("/api/chat", json={"threadId": thread_id, "message": "hello"})

    assert resp.status_code == 500
    assert resp.json() == {"error": "Internal server error"}
