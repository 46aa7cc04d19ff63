"""Subscriber registry and broadcaster: fan-out between the engine and WebSocket clients."""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Protocol

from ..config import SEND_TIMEOUT
from ..player import AudioState

logger = logging.getLogger(__name__)


class PushChannel(Protocol):
    """Anything that can push a JSON frame and be closed (a Starlette WebSocket)."""

    async def send_json(self, data: Any) -> None: ...

    async def close(self, code: int = 1000) -> None: ...


class Subscriber:
    """One connected client. ``since`` is the last broadcast it must not receive."""

    def __init__(self, client_id: str, channel: PushChannel):
        self.client_id = client_id
        self.channel = channel
        self.since: int = 0
        # Serializes writes: the connect snapshot and broadcasts never interleave
        self.write_lock = asyncio.Lock()

    async def deliver(self, seq: int, payload: dict, timeout: float):
        if seq <= self.since:
            return

        async def _write():
            async with self.write_lock:
                await self.channel.send_json(payload)

        await asyncio.wait_for(_write(), timeout)

    async def close(self):
        try:
            await self.channel.close()
        except Exception as e:
            logger.debug("Close %s: %s", self.client_id, e)

    def __repr__(self) -> str:
        return f"Subscriber({self.client_id!r})"


class SubscriberRegistry:
    def __init__(self):
        self._subscribers: dict[str, Subscriber] = {}

    def attach(self, sub: Subscriber):
        self._subscribers[sub.client_id] = sub

    def detach(self, sub: Subscriber) -> bool:
        """Remove a subscriber. Returns False if it was already gone."""
        if self._subscribers.get(sub.client_id) is sub:
            del self._subscribers[sub.client_id]
            return True
        return False

    def __contains__(self, sub: Subscriber) -> bool:
        return self._subscribers.get(sub.client_id) is sub

    @property
    def client_count(self) -> int:
        return len(self._subscribers)

    async def for_each(self, send: Callable[[Subscriber], Awaitable[None]]):
        """Call ``send`` for every subscriber; a failed send evicts that subscriber.

        Works on a copy of the set taken on entry, so attach/detach during the
        sends is safe. Subscribers removed meanwhile are skipped.
        """
        targets = list(self._subscribers.values())
        if targets:
            await asyncio.gather(*(self._send_one(sub, send) for sub in targets))

    async def _send_one(self, sub: Subscriber, send: Callable[[Subscriber], Awaitable[None]]):
        if sub not in self:
            return
        try:
            await send(sub)
        except Exception as e:
            if self.detach(sub):
                reason = "timed out" if isinstance(e, asyncio.TimeoutError) else (str(e) or type(e).__name__)
                logger.warning("Dropping client %s: send failed (%s)", sub.client_id, reason)
                await sub.close()


class Broadcaster:
    """Single consumer of an unbounded FIFO of snapshots.

    ``publish`` never blocks, so producers can call it right after leaving the
    store's lock. ``run`` drains the queue and hands each snapshot to every
    registered subscriber before moving on to the next.
    """

    def __init__(self, registry: SubscriberRegistry, send_timeout: float = SEND_TIMEOUT):
        self.registry = registry
        self.send_timeout = send_timeout
        self._queue: asyncio.Queue[tuple[int, AudioState]] = asyncio.Queue()
        self._last_seq = 0

    @property
    def last_seq(self) -> int:
        return self._last_seq

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def publish(self, snapshot: AudioState) -> int:
        self._last_seq += 1
        self._queue.put_nowait((self._last_seq, snapshot.copy()))
        return self._last_seq

    async def run(self):
        while True:
            seq, snapshot = await self._queue.get()
            try:
                await self.dispatch(seq, snapshot)
            finally:
                self._queue.task_done()

    async def dispatch(self, seq: int, snapshot: AudioState):
        payload = snapshot.to_dict()
        await self.registry.for_each(
            lambda sub: sub.deliver(seq, payload, self.send_timeout)
        )

    async def drain(self):
        """Wait until every published snapshot has been dispatched."""
        await self._queue.join()
