"""
Terminal chat against the Command Center: Supabase for threads/messages/realtime,
the relay for replies. Loads backend/.env.
Usage: python scripts/cli_chat.py [agent_id] ["first message"]
Lines starting with ':' are local commands (:threads, :new, :use <n>, :delete, :quit).
"""
import asyncio
import logging
import sys
from pathlib import Path

backend_dir = Path(__file__).resolve().parent.parent

from dotenv import load_dotenv
load_dotenv(backend_dir / ".env")

import httpx

from command_center.client import ChatSession, RelayClient
from command_center.client.formatting import relative_time
from command_center.client.supabase_store import SupabaseChatStore
from command_center.core.config import RELAY_URL


def _print_threads(session: ChatSession) -> None:
    for i, thread in enumerate(session.threads):
        marker = "*" if thread["id"] == session.active_thread_id else " "
        pin = "^" if thread.get("pinned") else " "
        print(f"{marker}{pin}{i}: {thread['title']} ({relative_time(thread.get('updated_at'))})")


def _print_new(session: ChatSession, seen: set[str]) -> None:
    for msg in session.visible_messages():
        if msg["id"] in seen or msg.get("id") == "streaming":
            continue
        seen.add(msg["id"])
        print(f"{msg['agent_name']}: {msg['content']}\n")


async def main():
    logging.basicConfig(level=logging.WARNING)
    agent_id = sys.argv[1] if len(sys.argv) > 1 else "titus"
    first = sys.argv[2] if len(sys.argv) > 2 else None

    store = await SupabaseChatStore.connect()
    async with httpx.AsyncClient(base_url=RELAY_URL, timeout=httpx.Timeout(130, connect=10)) as http:
        session = ChatSession(store, RelayClient(http), agent_id=agent_id)
        await session.load_threads()
        if session.active_thread_id is None:
            await session.create_thread()
        _print_threads(session)
        seen: set[str] = set()
        _print_new(session, seen)
        try:
            while True:
                line = first if first is not None else await asyncio.to_thread(input, "> ")
                first = None
                if line in (":quit", ":q"):
                    break
                if line == ":threads":
                    await session.load_threads()
                    _print_threads(session)
                    continue
                if line == ":new":
                    await session.create_thread()
                    _print_threads(session)
                    continue
                if line.startswith(":use "):
                    await session.select_thread(session.threads[int(line.split()[1])]["id"])
                    seen.clear()
                    _print_new(session, seen)
                    continue
                if line == ":delete" and session.active_thread_id:
                    await session.delete_thread(session.active_thread_id)
                    _print_threads(session)
                    continue
                session.compose.text = line
                await session.send()
                if session.compose.text:
                    # Slash completion or a restored failed send.
                    print(f"[{session.last_error or 'completed'}] {session.compose.text}")
                    continue
                await session.poll_once()
                _print_new(session, seen)
                print(f"[{session.connection.value}]")
        finally:
            await session.close()


if __name__ == "__main__":
    asyncio.run(main())
