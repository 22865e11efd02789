"""
Reconnect state machine for the realtime channel.

States: connected | disconnected | reconnecting. Events: thread_changed,
subscribed, channel_error, teardown. Each connection attempt gets a
generation number; events carrying an older generation come from a
superseded channel and are ignored.
"""
import asyncio
import logging
from typing import Any, Callable, Protocol

from command_center.client.state import ConnectionState
from command_center.core.config import RECONNECT_BASE_SECONDS, RECONNECT_MAX_SECONDS

LOG = logging.getLogger(__name__)


class TimerHandle(Protocol):
    def cancel(self) -> Any: ...


Scheduler = Callable[[float, Callable[[], None]], TimerHandle]
ConnectFn = Callable[[str, int], None]


def loop_scheduler(delay: float, callback: Callable[[], None]) -> TimerHandle:
    """Default scheduler: loop.call_later on the running event loop."""
    return asyncio.get_running_loop().call_later(delay, callback)


class ReconnectController:
    """
    Drives connect attempts with exponential backoff:
    delay = min(base * 2**attempt, cap), attempt reset on every successful subscribe.
    """

    def __init__(
        self,
        connect: ConnectFn,
        schedule: Scheduler | None = None,
        base_delay: float = RECONNECT_BASE_SECONDS,
        max_delay: float = RECONNECT_MAX_SECONDS,
        on_state_change: Callable[[ConnectionState], None] | None = None,
    ) -> None:
        self._connect = connect
        self._schedule = schedule or loop_scheduler
        self.base_delay = base_delay
        self.max_delay = max_delay
        self._on_state_change = on_state_change
        self.state = ConnectionState.DISCONNECTED
        self.thread_id: str | None = None
        self.attempt = 0
        self.generation = 0
        self._timer: TimerHandle | None = None

    @property
    def pending(self) -> bool:
        return self._timer is not None

    def next_delay(self) -> float:
        return min(self.base_delay * (2 ** self.attempt), self.max_delay)

    def _set_state(self, state: ConnectionState) -> None:
        if state is self.state:
            return
        self.state = state
        if self._on_state_change is not None:
            self._on_state_change(state)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _attempt(self) -> None:
        self.generation += 1
        self._set_state(ConnectionState.RECONNECTING)
        self._connect(self.thread_id, self.generation)

    def thread_changed(self, thread_id: str | None) -> None:
        """New selection: drop any pending retry and start over at the base delay."""
        self._cancel_timer()
        self.thread_id = thread_id
        self.attempt = 0
        if thread_id is None:
            self.generation += 1
            self._set_state(ConnectionState.DISCONNECTED)
            return
        self._attempt()

    def subscribed(self, generation: int) -> None:
        if generation != self.generation or self.thread_id is None:
            return
        self.attempt = 0
        self._set_state(ConnectionState.CONNECTED)

    def channel_error(self, generation: int, reason: str = "") -> float | None:
        """
        Error, timeout or unexpected close: go disconnected and schedule the next
        attempt. Returns the delay used, or None when the event was ignored.
        """
        if generation != self.generation or self.thread_id is None or self._timer is not None:
            return None
        self._set_state(ConnectionState.DISCONNECTED)
        delay = self.next_delay()
        self.attempt += 1
        LOG.info(
            "realtime channel lost thread_id=%s reason=%s; retry %s in %.1fs",
            self.thread_id, reason or "?", self.attempt, delay,
        )
        self._timer = self._schedule(delay, self._fire)
        self._set_state(ConnectionState.RECONNECTING)
        return delay

    def _fire(self) -> None:
        self._timer = None
        if self.thread_id is not None:
            self._attempt()

    def teardown(self) -> None:
        self._cancel_timer()
        self.thread_id = None
        self.generation += 1
        self._set_state(ConnectionState.DISCONNECTED)
