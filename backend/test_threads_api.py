"""
Tests for the threads API (list / create / rename / pin / delete / history / clear).
Run: python -m pytest test_threads_api.py -v
"""
from chat_fakes import completion_response


def _client(api):
    return api(lambda r: completion_response("ok"))


def test_create_defaults_title(api):
    client = _client(api)
    resp = client.post("/api/threads", json={"agent_id": "looty"})
    assert resp.status_code == 201
    thread = resp.json()
    assert thread["title"] == "New Thread"
    assert thread["agent_id"] == "looty"
    assert thread["pinned"] is False

    named = client.post("/api/threads", json={"agent_id": "looty", "title": "  Deals  "}).json()
    assert named["title"] == "Deals"


def test_create_requires_agent_id(api):
    client = _client(api)
    assert client.post("/api/threads", json={"agent_id": ""}).status_code == 422
    assert client.post("/api/threads", json={}).status_code == 422


def test_list_is_scoped_to_agent_and_pinned_first(api):
    client = _client(api)
    first = client.post("/api/threads", json={"agent_id": "titus", "title": "First"}).json()
    second = client.post("/api/threads", json={"agent_id": "titus", "title": "Second"}).json()
    client.post("/api/threads", json={"agent_id": "bolt", "title": "Other agent"})

    resp = client.patch(f"/api/threads/{first['id']}", json={"pinned": True})
    assert resp.status_code == 200
    assert resp.json()["pinned"] is True

    titles = [t["title"] for t in client.get("/api/threads", params={"agent_id": "titus"}).json()]
    assert titles == ["First", "Second"]
    assert second["id"] != first["id"]


def test_rename_rejects_blank_and_unknown(api):
    client = _client(api)
    thread = client.post("/api/threads", json={"agent_id": "titus"}).json()

    assert client.patch(f"/api/threads/{thread['id']}", json={"title": "   "}).status_code == 400
    renamed = client.patch(f"/api/threads/{thread['id']}", json={"title": "Roadmap"}).json()
    assert renamed["title"] == "Roadmap"

    missing = "00000000-0000-0000-0000-000000000000"
    assert client.patch(f"/api/threads/{missing}", json={"title": "x"}).status_code == 404
    assert client.patch("/api/threads/not-a-uuid", json={"title": "x"}).status_code == 400


def test_delete_keeps_orphaned_messages(api):
    """Deleting a thread removes it from the list; its messages lose their thread_id."""
    client = _client(api)
    thread = client.post("/api/threads", json={"agent_id": "titus"}).json()
    client.post("/api/chat", json={"threadId": thread["id"], "message": "hello"})

    resp = client.delete(f"/api/threads/{thread['id']}")
    assert resp.status_code == 204
    assert client.get("/api/threads", params={"agent_id": "titus"}).json() == []
    assert client.get(f"/api/threads/{thread['id']}/messages").json() == []
    assert client.delete(f"/api/threads/{thread['id']}").status_code == 404


def test_clear_messages(api):
    client = _client(api)
    thread = client.post("/api/threads", json={"agent_id": "titus"}).json()
    client.post("/api/chat", json={"threadId": thread["id"], "message": "one"})

    assert len(client.get(f"/api/threads/{thread['id']}/messages").json()) == 2
    resp = client.delete(f"/api/threads/{thread['id']}/messages")
    assert resp.status_code == 200
    assert resp.json() == {"deleted": 2}
    assert client.get(f"/api/threads/{thread['id']}/messages").json() == []
    assert client.get("/api/threads", params={"agent_id": "titus"}).json()[0]["id"] == thread["id"]


def test_health(api):
    assert _client(api).get("/health").json() == {"status": "ok"}
