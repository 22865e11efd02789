"""
OpenClaw gateway client: OpenAI-compatible /v1/chat/completions, plain or streamed.
Every call carries an explicit httpx timeout so a hung upstream cannot hold a relay open.
"""
import logging
import time
from typing import Any, AsyncIterator

import httpx

from command_center.core.config import (
    GATEWAY_AGENT_MAP,
    GATEWAY_CONNECT_TIMEOUT_SECONDS,
    GATEWAY_MODEL,
    GATEWAY_PING_TIMEOUT_SECONDS,
    GATEWAY_TIMEOUT_SECONDS,
    GATEWAY_TOKEN,
    GATEWAY_URL,
)
from command_center.services.sse import (
    DONE_SENTINEL,
    SSELineDecoder,
    extract_delta,
    extract_message_content,
    parse_payload,
)

LOG = logging.getLogger(__name__)

COMPLETIONS_PATH = "/v1/chat/completions"


class GatewayError(Exception):
    """Gateway unreachable, timed out, or answered with a non-2xx status."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


def resolve_agent(agent_id: str | None) -> tuple[str, str | None]:
    """
    Map a dashboard agent id to (model, user) for the gateway request.
    No agent → configured default model and no user tag.
    """
    if not agent_id or not agent_id.strip():
        return GATEWAY_MODEL, None
    gateway_agent = GATEWAY_AGENT_MAP.get(agent_id.strip().lower(), agent_id.strip())
    return f"openclaw:{gateway_agent}", f"command-center-{gateway_agent}"


def create_http_client(base_url: str = GATEWAY_URL, **kwargs: Any) -> httpx.AsyncClient:
    """Shared AsyncClient for the app lifespan (connection pooling + explicit timeouts)."""
    kwargs.setdefault(
        "timeout",
        httpx.Timeout(GATEWAY_TIMEOUT_SECONDS, connect=GATEWAY_CONNECT_TIMEOUT_SECONDS),
    )
    return httpx.AsyncClient(base_url=base_url.rstrip("/"), **kwargs)


class GatewayClient:
    """Thin wrapper over an httpx.AsyncClient pointed at the gateway."""

    def __init__(self, http: httpx.AsyncClient, token: str = GATEWAY_TOKEN) -> None:
        self._http = http
        self._token = token

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    def _body(
        self,
        messages: list[dict[str, str]],
        agent_id: str | None,
        stream: bool,
        **extra: Any,
    ) -> dict[str, Any]:
        model, user = resolve_agent(agent_id)
        body: dict[str, Any] = {"model": model, "messages": messages, "stream": stream}
        if user:
            body["user"] = user
        body.update(extra)
        return body

    async def complete(self, messages: list[dict[str, str]], agent_id: str | None = None) -> str:
        """Single JSON reply; returns choices[0].message.content ("" when absent)."""
        try:
            resp = await self._http.post(
                COMPLETIONS_PATH,
                headers=self._headers(),
                json=self._body(messages, agent_id, stream=False),
            )
        except httpx.HTTPError as e:
            raise GatewayError(f"Gateway call failed: {e!s}") from e
        if not resp.is_success:
            raise GatewayError(
                f"Gateway error {resp.status_code}: {resp.reason_phrase}",
                status_code=resp.status_code,
            )
        try:
            data = resp.json()
        except ValueError as e:
            raise GatewayError("Gateway returned a non-JSON body") from e
        return extract_message_content(data) if isinstance(data, dict) else ""

    async def stream(
        self,
        messages: list[dict[str, str]],
        agent_id: str | None = None,
    ) -> AsyncIterator[str]:
        """
        Yield incremental text deltas until `data: [DONE]` (or end of body).
        Malformed frames are skipped; transport failures raise GatewayError.
        """
        decoder = SSELineDecoder()
        try:
            async with self._http.stream(
                "POST",
                COMPLETIONS_PATH,
                headers=self._headers(),
                json=self._body(messages, agent_id, stream=True),
            ) as resp:
                if not resp.is_success:
                    text = (await resp.aread()).decode(errors="replace")
                    raise GatewayError(
                        f"Gateway error {resp.status_code}: {text[:200]}",
                        status_code=resp.status_code,
                    )
                async for chunk in resp.aiter_text():
                    for payload in decoder.feed(chunk):
                        if payload == DONE_SENTINEL:
                            return
                        data = parse_payload(payload)
                        if data is None:
                            continue
                        delta = extract_delta(data)
                        if delta:
                            yield delta
                for payload in decoder.flush():
                    if payload == DONE_SENTINEL:
                        return
                    data = parse_payload(payload)
                    delta = extract_delta(data) if data else ""
                    if delta:
                        yield delta
        except httpx.HTTPError as e:
            raise GatewayError(f"Gateway stream failed: {e!s}") from e

    async def ping(self) -> dict[str, Any]:
        """
        One-token request with a short timeout. A 401 still counts as reachable
        (gateway up, token rejected).
        """
        start = time.monotonic()
        try:
            resp = await self._http.post(
                COMPLETIONS_PATH,
                headers=self._headers(),
                json=self._body(
                    [{"role": "user", "content": "ping"}],
                    "titus",
                    stream=False,
                    max_tokens=1,
                ),
                timeout=GATEWAY_PING_TIMEOUT_SECONDS,
            )
            ok = resp.is_success or resp.status_code == 401
        except httpx.HTTPError as e:
            LOG.info("gateway ping failed: %s", e)
            ok = False
        return {"ok": ok, "latencyMs": int((time.monotonic() - start) * 1000)}
