"""Command processor. Every AudioState transition lives here.

Functions in this module are pure: they take a state and return the next
one without touching the store, the clock or any subscriber.
"""
import math
import sys
from dataclasses import dataclass, replace
from typing import Any, Callable, Optional

from .config import DEFAULT_VOLUME
from .player import AudioState

# Sentinel for "no payload sent" as opposed to an explicit null
MISSING = object()


@dataclass(frozen=True)
class Command:
    action: str
    value: Any = MISSING


def is_number(value: Any) -> bool:
    # JSON true/false decode to bool, which is an int subclass
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _as_real(value: Any) -> Optional[float]:
    """Return value as a finite float, or None when it is not a usable number."""
    if not is_number(value):
        return None
    try:
        value = float(value)
    except OverflowError:
        # JSON integers have no size limit; saturate so the handlers clamp
        return sys.float_info.max if value > 0 else -sys.float_info.max
    if not math.isfinite(value):
        return None
    return value


def _play(state: AudioState, _value) -> AudioState:
    return replace(state, is_playing=True)


def _pause(state: AudioState, _value) -> AudioState:
    return replace(state, is_playing=False)


def _toggle_play(state: AudioState, _value) -> AudioState:
    return replace(state, is_playing=not state.is_playing)


def _set_volume(state: AudioState, value) -> AudioState:
    level = _as_real(value)
    if level is None:
        return replace(state)
    level = min(1.0, max(0.0, level))
    return replace(state, volume=level, is_muted=level == 0)


def _toggle_mute(state: AudioState, _value) -> AudioState:
    muted = not state.is_muted
    return replace(state, is_muted=muted, volume=0.0 if muted else DEFAULT_VOLUME)


def _reset(state: AudioState, _value) -> AudioState:
    return replace(state, is_playing=False, current_time=0)


def _set_position(state: AudioState, value) -> AudioState:
    pos = _as_real(value)
    if pos is None:
        return replace(state)
    return replace(state, current_time=min(state.duration, max(0, math.floor(pos))))


_HANDLERS: dict[str, Callable[[AudioState, Any], AudioState]] = {
    "play": _play,
    "pause": _pause,
    "togglePlay": _toggle_play,
    "setVolume": _set_volume,
    "toggleMute": _toggle_mute,
    "reset": _reset,
    "setPosition": _set_position,
}

ACTIONS = frozenset(_HANDLERS)


def parse_command(action: Any, value: Any = MISSING) -> Optional[Command]:
    """Build a Command from wire fields. Unknown actions give None."""
    if not isinstance(action, str) or action not in _HANDLERS:
        return None
    return Command(action, value)


def apply_command(state: AudioState, command: Command) -> AudioState:
    """Return the state that results from ``command``.

    A payload of the wrong kind leaves the state as it was; the command is
    still considered accepted.
    """
    handler = _HANDLERS.get(command.action)
    if handler is None:
        return replace(state)
    return handler(state, command.value)


def advance_clock(state: AudioState) -> AudioState:
    """One tick of the virtual clock.

    A playing track counts up to ``duration``; the tick after reaching it
    stops playback and rewinds to zero in the same step.
    """
    if not state.is_playing:
        return replace(state)
    if state.current_time >= state.duration:
        return replace(state, is_playing=False, current_time=0)
    return replace(state, current_time=state.current_time + 1)
