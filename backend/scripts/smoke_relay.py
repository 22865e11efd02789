#!/usr/bin/env python3
"""
Smoke-test a running relay: gateway status, create a thread, non-streaming and
streaming turns, then read the history back.

Usage:
  cd backend
  python scripts/smoke_relay.py [agent_id]

Backend must be running: uvicorn command_center.main:app --reload (default http://127.0.0.1:8000).
"""
import json
import os
import sys
from pathlib import Path

# Load backend .env
backend_dir = Path(__file__).resolve().parent.parent
env_path = backend_dir / ".env"
if env_path.exists():
    from dotenv import load_dotenv
    load_dotenv(env_path)

import httpx

BASE_URL = os.getenv("RELAY_URL", "http://127.0.0.1:8000")


def main():
    agent_id = sys.argv[1] if len(sys.argv) > 1 else "titus"

    # 1) GET /api/gateway/status
    print(f"\n1) GET {BASE_URL}/api/gateway/status")
    r = httpx.get(f"{BASE_URL}/api/gateway/status", timeout=10)
    print(f"   {r.status_code}: {r.json()}")

    # 2) POST /api/threads
    print(f"\n2) POST {BASE_URL}/api/threads")
    r = httpx.post(f"{BASE_URL}/api/threads", json={"agent_id": agent_id, "title": "Smoke test"}, timeout=10)
    if r.status_code != 201:
        print(f"   FAIL: {r.status_code} - {r.text}")
        sys.exit(1)
    thread_id = r.json()["id"]
    print(f"   OK: thread {thread_id}")

    # 3) POST /api/chat (non-streaming)
    print(f"\n3) POST {BASE_URL}/api/chat")
    r = httpx.post(
        f"{BASE_URL}/api/chat",
        json={"threadId": thread_id, "message": "Reply with just OK.", "agentId": agent_id},
        timeout=130,
    )
    print(f"   {r.status_code}: {r.text[:300]}")

    # 4) POST /api/chat (streaming)
    print(f"\n4) POST {BASE_URL}/api/chat (streaming)")
    with httpx.stream(
        "POST",
        f"{BASE_URL}/api/chat",
        headers={"Accept": "text/event-stream"},
        json={"threadId": thread_id, "message": "Count to three.", "agentId": agent_id, "stream": True},
        timeout=130,
    ) as r:
        if r.status_code != 200:
            body = r.read().decode(errors="replace")
            print(f"   FAIL: {r.status_code} - {body[:500]}")
            sys.exit(1)
        for line in r.iter_lines():
            if line.startswith("data: "):
                frame = json.loads(line[len("data: "):])
                print(f"   {frame}")

    # 5) GET history
    r = httpx.get(f"{BASE_URL}/api/threads/{thread_id}/messages", timeout=10)
    print(f"\n5) history: {len(r.json())} messages")
    for msg in r.json():
        print(f"   {msg['agent_name']}: {msg['content'][:80]}")

    print("\nRelay smoke test finished.")


if __name__ == "__main__":
    main()
