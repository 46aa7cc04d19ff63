"""Virtual audio player: the single shared AudioState and its store.

No audio is decoded or played here. The record only describes what every
connected client should show; the engine's clock moves ``current_time``.
"""
import threading
from dataclasses import dataclass, replace
from typing import Callable

from .config import DEFAULT_VOLUME, TRACK_DURATION


@dataclass
class AudioState:
    is_playing: bool = False
    volume: float = DEFAULT_VOLUME
    is_muted: bool = False
    current_time: int = 0
    duration: int = TRACK_DURATION

    def copy(self) -> "AudioState":
        return replace(self)

    def to_dict(self) -> dict:
        """Wire shape shared by HTTP responses and WebSocket frames."""
        return {
            "isPlaying": self.is_playing,
            "volume": self.volume,
            "isMuted": self.is_muted,
            "currentTime": self.current_time,
            "duration": self.duration,
        }


class AudioStateStore:
    """Owns the one AudioState record; all access goes through the lock.

    Callers get value copies only, so a snapshot can be serialized or queued
    without ever seeing a half-applied mutation.
    """

    def __init__(self, initial: AudioState | None = None):
        self._state = initial.copy() if initial else AudioState()
        if self._state.duration <= 0:
            raise ValueError(f"duration must be positive, got {self._state.duration}")
        self._lock = threading.Lock()

    def snapshot(self) -> AudioState:
        with self._lock:
            return self._state.copy()

    def with_exclusive(self, mutate: Callable[[AudioState], AudioState | None]) -> AudioState:
        """Run ``mutate`` under the lock and return the post-mutation snapshot.

        ``mutate`` may change the record in place or return a replacement.
        It must not block, await, send to subscribers or touch the store again.
        """
        with self._lock:
            result = mutate(self._state)
            if result is not None:
                self._state = result
            return self._state.copy()

    @property
    def duration(self) -> int:
        # Fixed for the process lifetime, safe to read without the lock
        return self._state.duration
