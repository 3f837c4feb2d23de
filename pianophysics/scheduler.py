# scheduler.py — note lifecycle and pedal sustain decay
# ------------------------------------------------------
# States per note
#   IDLE → HELD → RELEASED_IMMEDIATE → RELEASED   (key-up, pedal up)
#   IDLE → HELD → SUSTAIN_PENDING   → RELEASED   (key-up under pedal,
#                                                  scheduled release fires)
# Rules
#   • at most one ScheduledRelease per note; it is cancelled before
#     anything else is scheduled for that note
#   • re-strike cancels the pending release and starts a fresh HELD note
#   • lifting the pedal leaves an already scheduled release alone; notes
#     pedalled without a schedule (sustain decay off) release right away
#   • backend calls are best effort: a detached voice never stops the
#     scheduler
# ------------------------------------------------------
from __future__ import annotations

import enum
import logging
from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Callable, Final, Optional

from .clock import Clock, ScheduleHandle
from .errors import ResourceUnavailableError, StaleVoiceError
from .settings import read_setting
from .utils import A0_MIDI, clamp, note_name
from .voice import VoiceBackend

__all__ = [
    "NoteState",
    "ActiveNote",
    "ActiveNoteRegistry",
    "ScheduledRelease",
    "SustainScheduler",
    "sustain_decay_time",
    "pedal_sustain_time",
    "sustain_release_time",
]

_LOGGER = logging.getLogger("pianophysics.scheduler")

_BASE_TIME: Final = 12.0
_DECAY_FACTOR: Final = 2.5
_PEDAL_MULT: Final = 2.5
_MIN_TIME: Final = 0.5
_MAX_TIME: Final = 15.0
_MIN_RELEASE: Final = 1.0
_MAX_RELEASE: Final = 8.0


class NoteState(str, enum.Enum):
    IDLE = "idle"
    HELD = "held"
    SUSTAIN_PENDING = "sustain_pending"
    RELEASED_IMMEDIATE = "released_immediate"
    RELEASED = "released"

# ------------------------------------------------------------------
# Sustain decay times
# ------------------------------------------------------------------

def sustain_decay_time(midi_note: float, *, settings: Any = None) -> float:
    """τ_base = T0 · 2^(-(n-21)/12 · k), clamped; lower notes ring longer."""
    t0 = float(read_setting(settings, "base_time", _BASE_TIME))
    k = float(read_setting(settings, "decay_factor", _DECAY_FACTOR))
    lo = float(read_setting(settings, "min_time", _MIN_TIME))
    hi = float(read_setting(settings, "max_time", _MAX_TIME))
    tau = t0 * 2 ** (-(midi_note - A0_MIDI) / 12 * k)
    return clamp(tau, lo, hi)


def pedal_sustain_time(midi_note: float, *, settings: Any = None) -> float:
    """τ = τ_base × pedal multiplier: delay before a pedalled note releases."""
    mult = float(read_setting(settings, "pedal_multiplier", _PEDAL_MULT))
    return sustain_decay_time(midi_note, settings=settings) * mult


def sustain_release_time(tau: float, *, settings: Any = None) -> float:
    """Release envelope for a pedalled note: about half of τ, clamped."""
    lo = float(read_setting(settings, "min_release", _MIN_RELEASE))
    hi = float(read_setting(settings, "max_release", _MAX_RELEASE))
    return clamp(tau * 0.5, lo, hi)

# ------------------------------------------------------------------
# Bookkeeping types
# ------------------------------------------------------------------

@dataclass(slots=True, eq=False)
class ActiveNote:
    midi_note: int
    frequency: float
    attack_time: float
    velocity: int = 0
    amplitude: float = 0.0
    held_physically: bool = True
    sustained_by_pedal: bool = False
    state: NoteState = NoteState.HELD

    @property
    def name(self) -> str:
        return note_name(self.midi_note)


@dataclass(slots=True, eq=False)
class ScheduledRelease:
    midi_note: int
    scheduled_at: float
    fire_at: float
    handle: Optional[ScheduleHandle] = None

    @property
    def pending(self) -> bool:
        return self.handle is not None and self.handle.pending

    def cancel(self) -> None:
        if self.handle is not None:
            self.handle.cancel()


class ActiveNoteRegistry(Mapping[int, ActiveNote]):
    """midi note → ActiveNote for every sounding note."""

    def __init__(self) -> None:
        self._notes: dict[int, ActiveNote] = {}

    def __getitem__(self, midi_note: int) -> ActiveNote:
        return self._notes[midi_note]

    def __iter__(self) -> Iterator[int]:
        return iter(self._notes)

    def __len__(self) -> int:
        return len(self._notes)

    def add(self, note: ActiveNote) -> None:
        self._notes[note.midi_note] = note

    def remove(self, midi_note: int) -> Optional[ActiveNote]:
        return self._notes.pop(midi_note, None)

    def clear(self) -> None:
        self._notes.clear()

    def view(self) -> Mapping[int, ActiveNote]:
        """Live read-only view for callers outside the scheduler."""
        return MappingProxyType(self._notes)

# ------------------------------------------------------------------
# Scheduler
# ------------------------------------------------------------------

def _best_effort(action: Callable[..., Any], *args: Any) -> None:
    try:
        action(*args)
    except (StaleVoiceError, ResourceUnavailableError) as exc:
        _LOGGER.debug("ignored %s(%s): %s", getattr(action, "__name__", action), args, exc)


class SustainScheduler:
    """Owns the registry and every pending timed release."""

    def __init__(
        self,
        clock: Clock,
        backend: VoiceBackend,
        registry: Optional[ActiveNoteRegistry] = None,
        *,
        settings: Any = None,
        physics: Any = None,
        on_scheduled_release: Optional[Callable[[int], Any]] = None,
    ):
        self.clock = clock
        self.backend = backend
        self.registry = registry if registry is not None else ActiveNoteRegistry()
        self.settings = settings
        self.physics = physics
        self.on_scheduled_release = on_scheduled_release
        self.pedal_down = False
        self._releases: dict[int, ScheduledRelease] = {}

    # ------------------------------------------------------------------
    @property
    def pending_releases(self) -> Mapping[int, ScheduledRelease]:
        return MappingProxyType(self._releases)

    def scheduled(self, midi_note: int) -> Optional[ScheduledRelease]:
        return self._releases.get(midi_note)

    def state(self, midi_note: int) -> NoteState:
        note = self.registry.get(midi_note)
        return NoteState.IDLE if note is None else note.state

    # ------------------------------------------------------------------
    def note_on(self, midi_note: int, velocity: int, frequency: float,
                amplitude: float = 0.0) -> ActiveNote:
        """Register a fresh HELD note, retiring any earlier instance first."""
        previous = self.registry.get(midi_note)
        if previous is not None:
            _LOGGER.debug("re-strike %s from %s", previous.name, previous.state.value)
            self._finish(previous)

        note = ActiveNote(
            midi_note=midi_note,
            frequency=frequency,
            attack_time=self.clock.now(),
            velocity=velocity,
            amplitude=amplitude,
        )
        self.registry.add(note)
        return note

    def note_off(self, midi_note: int) -> Optional[NoteState]:
        """Key-up. Returns the note's new state, None if it was not sounding."""
        note = self.registry.get(midi_note)
        if note is None:
            return None
        if not note.held_physically:
            return note.state
        note.held_physically = False

        if self.pedal_down:
            note.sustained_by_pedal = True
            note.state = NoteState.SUSTAIN_PENDING
            if read_setting(self.physics, "sustain_decay", True):
                self._schedule(note)
            return note.state

        note.state = NoteState.RELEASED_IMMEDIATE
        self._finish(note)
        return NoteState.RELEASED_IMMEDIATE

    def set_pedal(self, down: bool) -> list[int]:
        """Pedal flip. Returns the notes released immediately by it."""
        if down == self.pedal_down:
            return []
        self.pedal_down = down
        if down:
            return []

        released = []
        for note in list(self.registry.values()):
            if note.state is NoteState.SUSTAIN_PENDING and note.midi_note not in self._releases:
                self._finish(note)
                released.append(note.midi_note)
        return released

    def release_all(self) -> None:
        for note in list(self.registry.values()):
            self._finish(note)
        for release in list(self._releases.values()):
            release.cancel()
        self._releases.clear()

    # ------------------------------------------------------------------
    def _cancel(self, midi_note: int) -> None:
        release = self._releases.pop(midi_note, None)
        if release is not None:
            release.cancel()

    def _schedule(self, note: ActiveNote) -> ScheduledRelease:
        self._cancel(note.midi_note)

        tau = pedal_sustain_time(note.midi_note, settings=self.settings)
        _best_effort(self.backend.set_release_time, note.name,
                     sustain_release_time(tau, settings=self.settings))

        now = self.clock.now()
        release = ScheduledRelease(midi_note=note.midi_note, scheduled_at=now, fire_at=now + tau)
        release.handle = self.clock.call_at(release.fire_at, lambda: self._fire(release))
        self._releases[note.midi_note] = release
        _LOGGER.debug("%s release scheduled in %.2fs", note.name, tau)
        return release

    def _fire(self, release: ScheduledRelease) -> None:
        if self._releases.get(release.midi_note) is not release:
            return  # superseded
        del self._releases[release.midi_note]

        note = self.registry.get(release.midi_note)
        if note is None or note.held_physically or note.state is not NoteState.SUSTAIN_PENDING:
            return
        self._finish(note)
        if self.on_scheduled_release is not None:
            self.on_scheduled_release(release.midi_note)

    def _finish(self, note: ActiveNote) -> None:
        """→ RELEASED: drop the schedule, release the voice, free resources."""
        self._cancel(note.midi_note)
        _best_effort(self.backend.trigger_release, note.name)
        _best_effort(self.backend.dispose_resources, note.name)
        if self.registry.get(note.midi_note) is note:
            self.registry.remove(note.midi_note)
        note.state = NoteState.RELEASED
        note.held_physically = False
        note.sustained_by_pedal = False
        _LOGGER.debug("%s released", note.name)
