# voice.py — the audio-graph side of the contract
# ------------------------------------------------------
# The engine never touches oscillators or filters itself. It hands
# resolved parameters to a VoiceBackend and tells it when to release.
# Backends may raise StaleVoiceError (voice already gone) or
# ResourceUnavailableError (primitive could not be built); the core
# treats both as non-fatal.
# ------------------------------------------------------
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from .engine import NoteParameters
    from .transients import TransientSpec

__all__ = ["VoiceBackend", "GainParam", "NullVoiceBackend"]

_LOGGER = logging.getLogger("pianophysics.voice")


class VoiceBackend(Protocol):
    def trigger_attack(self, note_name: str, params: "NoteParameters") -> None: ...

    def trigger_release(self, note_name: str) -> None: ...

    def set_release_time(self, note_name: str, seconds: float) -> None: ...

    def dispose_resources(self, note_name: str) -> None: ...

    def play_transient(self, note_name: str, spec: "TransientSpec") -> None: ...


class GainParam(Protocol):
    """A single automatable gain (dB) on the output filter."""

    def cancel_and_hold(self, at: float, value: float) -> None: ...

    def linear_ramp_to(self, value: float, end_time: float) -> None: ...


class NullVoiceBackend:
    """Backend that only logs; useful when the graph is not up yet."""

    def __init__(self) -> None:
        self.release_times: dict[str, float] = {}

    def trigger_attack(self, note_name: str, params: "NoteParameters") -> None:
        _LOGGER.debug("attack %s amp=%.3f", note_name, params.amplitude)

    def trigger_release(self, note_name: str) -> None:
        _LOGGER.debug("release %s", note_name)

    def set_release_time(self, note_name: str, seconds: float) -> None:
        self.release_times[note_name] = seconds

    def dispose_resources(self, note_name: str) -> None:
        self.release_times.pop(note_name, None)

    def play_transient(self, note_name: str, spec: "TransientSpec") -> None:
        _LOGGER.debug("transient %s %s amp=%.4f", note_name, spec.kind, spec.amplitude)
