"""
HTTP client for the chat relay (POST /api/chat), plain JSON or event stream.
"""
import logging
from typing import Any, AsyncIterator

import httpx

from command_center.client.errors import RelayError
from command_center.services.sse import SSELineDecoder, parse_payload

LOG = logging.getLogger(__name__)

CHAT_PATH = "/api/chat"


def _error_body(resp: httpx.Response) -> dict[str, Any]:
    try:
        data = resp.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


class RelayClient:
    def __init__(self, http: httpx.AsyncClient) -> None:
        self._http = http

    @staticmethod
    def _body(
        thread_id: str,
        message: str,
        agent_name: str | None,
        agent_id: str | None,
        stream: bool,
    ) -> dict[str, Any]:
        body: dict[str, Any] = {"threadId": thread_id, "message": message, "stream": stream}
        if agent_name:
            body["agentName"] = agent_name
        if agent_id:
            body["agentId"] = agent_id
        return body

    async def send(
        self,
        thread_id: str,
        message: str,
        agent_name: str | None = None,
        agent_id: str | None = None,
    ) -> dict[str, Any]:
        """Returns {success, userMessage, aiResponse}; raises RelayError on any error status."""
        try:
            resp = await self._http.post(
                CHAT_PATH,
                json=self._body(thread_id, message, agent_name, agent_id, stream=False),
            )
        except httpx.HTTPError as e:
            raise RelayError(f"Relay unreachable: {e!s}") from e
        data = _error_body(resp)
        if not resp.is_success:
            raise RelayError(
                data.get("error") or f"Relay error {resp.status_code}",
                status_code=resp.status_code,
                user_message=data.get("userMessage"),
            )
        return data

    async def stream(
        self,
        thread_id: str,
        message: str,
        agent_name: str | None = None,
        agent_id: str | None = None,
    ) -> AsyncIterator[dict[str, Any]]:
        """
        Yield the relay's frames ({content}, {error} or {done}) in order.
        Malformed frames are skipped. Raises RelayError if the relay refuses the request.
        """
        decoder = SSELineDecoder()
        try:
            async with self._http.stream(
                "POST",
                CHAT_PATH,
                json=self._body(thread_id, message, agent_name, agent_id, stream=True),
                headers={"Accept": "text/event-stream"},
            ) as resp:
                if not resp.is_success:
                    await resp.aread()
                    data = _error_body(resp)
                    raise RelayError(
                        data.get("error") or f"Relay error {resp.status_code}",
                        status_code=resp.status_code,
                        user_message=data.get("userMessage"),
                    )
                async for chunk in resp.aiter_text():
                    for payload in decoder.feed(chunk):
                        frame = parse_payload(payload)
                        if frame is not None:
                            yield frame
                for payload in decoder.flush():
                    frame = parse_payload(payload)
                    if frame is not None:
                        yield frame
        except httpx.HTTPError as e:
            raise RelayError(f"Relay stream failed: {e!s}") from e
