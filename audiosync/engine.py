"""Core player engine. Owns the state store, the clock and the broadcaster.

Receives commands via methods, broadcasts snapshots via Broadcaster.
Every mutation follows the same shape: change the record under the store's
lock, release it, then publish the snapshot. Nothing awaits in between, so
the broadcast order is the order mutations were serialized at the store.
"""
import asyncio
import logging
import time
from typing import Optional

from .commands import Command, advance_clock, apply_command
from .config import TICK_HEARTBEAT, TICK_INTERVAL
from .errors import record_error
from .player import AudioState, AudioStateStore
from .utils import fmt_time
from .web.state import Broadcaster, Subscriber, SubscriberRegistry

logger = logging.getLogger(__name__)


class PlayerEngine:
    def __init__(
        self,
        store: Optional[AudioStateStore] = None,
        registry: Optional[SubscriberRegistry] = None,
        broadcaster: Optional[Broadcaster] = None,
        tick_interval: float = TICK_INTERVAL,
        heartbeat: bool = TICK_HEARTBEAT,
    ):
        self.store = store or AudioStateStore()
        self.registry = registry or SubscriberRegistry()
        self.broadcaster = broadcaster or Broadcaster(self.registry)
        self.tick_interval = tick_interval
        self.heartbeat = heartbeat

        self._running = False
        self._started_at: float = 0.0
        self._tick_task: Optional[asyncio.Task] = None
        self._broadcast_task: Optional[asyncio.Task] = None

    # ── Public API (called from HTTP / WebSocket handlers) ───────────────────

    def get_snapshot(self) -> AudioState:
        return self.store.snapshot()

    def dispatch(self, command: Optional[Command]) -> AudioState:
        """Apply a command and broadcast the result. ``None`` (unknown) is a no-op."""
        if command is None:
            return self.store.snapshot()
        snapshot = self.store.with_exclusive(lambda state: apply_command(state, command))
        self.broadcaster.publish(snapshot)
        logger.debug("Command %s -> %s", command.action, snapshot)
        return snapshot

    def tick(self) -> AudioState:
        """Advance the virtual clock by one step and publish the result."""
        before: dict = {}

        def _advance(state: AudioState) -> AudioState:
            before["playing"] = state.is_playing
            return advance_clock(state)

        snapshot = self.store.with_exclusive(_advance)
        if before["playing"] and not snapshot.is_playing:
            logger.info("Track finished, rewound to %s", fmt_time(0))
        if before["playing"] or self.heartbeat:
            self.broadcaster.publish(snapshot)
        return snapshot

    def connect(self, sub: Subscriber) -> AudioState:
        """Register a subscriber and return the snapshot it should start from.

        The subscriber only receives broadcasts published after this call; the
        returned snapshot already covers everything before it.
        """
        sub.since = self.broadcaster.last_seq
        self.registry.attach(sub)
        return self.store.snapshot()

    def disconnect(self, sub: Subscriber) -> bool:
        return self.registry.detach(sub)

    @property
    def uptime(self) -> float:
        return time.monotonic() - self._started_at if self._started_at else 0.0

    # ── Lifecycle ────────────────────────────────────────────────────────────

    async def run(self):
        """Start the clock and the broadcaster as background tasks."""
        if self._running:
            return
        self._running = True
        self._started_at = time.monotonic()
        self._broadcast_task = asyncio.create_task(self.broadcaster.run())
        self._tick_task = asyncio.create_task(self._tick_loop())
        logger.info("Player engine started (tick every %.1fs)", self.tick_interval)

    async def stop(self):
        """Cancel background tasks without draining the queue."""
        self._running = False
        for task in (self._tick_task, self._broadcast_task):
            if task and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._tick_task = None
        self._broadcast_task = None

    async def _tick_loop(self):
        """Advance the clock every interval. Wall-clock driven, no catch-up."""
        while self._running:
            await asyncio.sleep(self.tick_interval)
            try:
                snapshot = self.tick()
            except Exception as e:
                record_error("tick", str(e))
                continue
            if snapshot.is_playing:
                logger.debug(
                    "Position %s / %s",
                    fmt_time(snapshot.current_time),
                    fmt_time(snapshot.duration),
                )
