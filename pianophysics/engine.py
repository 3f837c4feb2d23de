# engine.py — note parameter engine
# ------------------------------------------------------
# Public API
#   engine = PianoEngine(Settings(), ManualClock(), backend)
#   params = engine.note_on(60, 100)      -> NoteParameters
#   engine.control_change(64, 127)        # sustain pedal down
#   rel = engine.note_off(60)             -> ReleaseParameters | None
# Flow on note-on
#   1. pitch: equal temperament → inharmonic fundamental + partials,
#      pitch envelope (drift, vibrato, release sag)
#   2. level: velocity curve, equal-loudness compensation
#      (+ pedal coupling, capped at 1)
#   3. colour: brightness index, timbre class, dynamic low-pass
#   4. time: attack, two-stage/per-partial decay, pitch release
#   5. hand the bundle to the backend, then the attack-noise burst
# Settings are read on every call; swap or mutate them at will.
# ------------------------------------------------------
from __future__ import annotations

import logging
import pathlib
from collections.abc import Mapping
from dataclasses import dataclass, replace
from typing import Any, Callable, Final, Optional

from . import brightness as _brightness
from .automation import PedalGainAutomation
from .clock import Clock, ManualClock
from .compensation import apply_compensation
from .coupling import total_coupling
from .decay import TwoStageDecay, partial_amplitude_at, per_partial_envelope, release_time, two_stage_decay
from .errors import ResourceUnavailableError, StaleVoiceError
from .frequency_envelope import FrequencyEnvelope, frequency_envelope
from .inharmonicity import inharmonic_fundamental, partial_series
from .scheduler import ActiveNote, NoteState, SustainScheduler, pedal_sustain_time, sustain_release_time
from .settings import Settings, read_setting
from .timbre import TimbreClass, brightness_index, dynamic_waveform, harmonic_rolloff, timbre_class
from .trace import ParameterTrace
from .transients import TransientSpec, attack_noise, release_transient
from .unison import UnisonConfig, unison_configuration
from .utils import clamp_midi, clamp_velocity, midi2freq, note_name, velocity_to_amplitude
from .voice import GainParam, NullVoiceBackend, VoiceBackend

__all__ = ["EnvelopeSpec", "NoteParameters", "ReleaseParameters", "PianoEngine"]

_LOGGER = logging.getLogger("pianophysics.engine")

_HARMONIC_PARTIALS: Final = 8  # plain-oscillator fallback when inharmonicity is off
_PER_PARTIAL_SPAN: Final = 10
_OPEN_CUTOFF: Final = 20_000.0


@dataclass(slots=True, frozen=True)
class EnvelopeSpec:
    attack: float
    decay: float
    sustain: float
    release: float
    two_stage: TwoStageDecay


@dataclass(slots=True, frozen=True)
class NoteParameters:
    """Everything a backend needs to start one note."""

    midi_note: int
    frequency: float       # equal-tempered pitch
    fundamental: float     # sounding (inharmonic) fundamental = partial 1
    velocity: int
    amplitude: float
    partial_frequencies: tuple[float, ...]
    partial_amplitudes: tuple[float, ...]
    brightness: float
    attack_time: float
    envelope: EnvelopeSpec
    timbre: TimbreClass
    filter_cutoff: float
    filter_q: float
    unison: UnisonConfig
    transient: Optional[TransientSpec] = None
    pitch: Optional[FrequencyEnvelope] = None  # Hz offsets on the fundamental

    def simplified(self) -> "NoteParameters":
        """Fundamental-only copy for backends short on resources."""
        return replace(
            self,
            partial_frequencies=(self.fundamental,),
            partial_amplitudes=(1.0,),
            unison=UnisonConfig(frequencies=(self.fundamental,), amplitudes=(1.0,)),
        )


@dataclass(slots=True, frozen=True)
class ReleaseParameters:
    midi_note: int
    state: NoteState
    release_time: float
    transient: Optional[TransientSpec] = None


class PianoEngine:
    def __init__(
        self,
        settings: Optional[Settings] = None,
        clock: Optional[Clock] = None,
        backend: Optional[VoiceBackend] = None,
        *,
        gain_param: Optional[GainParam] = None,
        on_scheduled_release: Optional[Callable[[int], Any]] = None,
        trace_path: Optional[str | pathlib.Path] = None,
    ):
        self.settings = settings if settings is not None else Settings()
        self.clock = clock if clock is not None else ManualClock()
        self.backend = backend if backend is not None else NullVoiceBackend()
        self.on_scheduled_release = on_scheduled_release
        self.trace = ParameterTrace(trace_path) if trace_path is not None else None

        self.scheduler = SustainScheduler(
            self.clock, self.backend, on_scheduled_release=self._scheduled_release,
        )
        self.automation = PedalGainAutomation(self.clock, param=gain_param)
        self.pedal_position = 0.0
        self._params: dict[int, NoteParameters] = {}
        self._released_at: dict[int, float] = {}
        self._bind()

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------
    @property
    def active_notes(self) -> Mapping[int, ActiveNote]:
        return self.scheduler.registry.view()

    @property
    def pedal_down(self) -> bool:
        return self.scheduler.pedal_down

    def parameters(self, midi_note: int) -> Optional[NoteParameters]:
        """Bundle the sounding instance of *midi_note* was started with."""
        return self._params.get(midi_note)

    def spectral_gain(self, now: Optional[float] = None) -> float:
        self._bind()
        return self.automation.value(now)

    def _bind(self) -> None:
        # collaborators follow whatever settings objects are current
        s = self.settings
        self.scheduler.settings = s.sustain_decay
        self.scheduler.physics = s.physics
        self.automation.settings = s.spectral_balance
        self.automation.physics = s.physics

    # ------------------------------------------------------------------
    # Note-on
    # ------------------------------------------------------------------
    def note_on(self, midi_note: int, velocity: int) -> NoteParameters:
        self._bind()
        midi = clamp_midi(midi_note)
        vel = clamp_velocity(velocity)
        params = self._build(midi, vel)

        self.scheduler.note_on(midi, vel, params.frequency, params.amplitude)
        self._params[midi] = params
        self._released_at.pop(midi, None)
        name = note_name(midi)

        try:
            self.backend.trigger_attack(name, params)
        except ResourceUnavailableError as exc:
            _LOGGER.warning("%s: %s; retrying with the fundamental only", name, exc)
            try:
                self.backend.trigger_attack(name, params.simplified())
            except ResourceUnavailableError as exc2:
                _LOGGER.error("%s: attack dropped (%s)", name, exc2)

        if params.transient is not None:
            self._play_transient(name, params.transient)

        _LOGGER.debug("note_on %s vel=%d amp=%.3f partials=%d", name, vel,
                      params.amplitude, len(params.partial_frequencies))
        if self.trace is not None:
            self.trace.log(
                "note_on", midi, vel, self.clock.now(),
                frequency=params.frequency, fundamental=params.fundamental,
                amplitude=params.amplitude, brightness=params.brightness,
                attack=params.attack_time, decay=params.envelope.decay,
                sustain=params.envelope.sustain, release=params.envelope.release,
                cutoff=params.filter_cutoff, timbre=params.timbre.value,
                partials=len(params.partial_frequencies), strings=params.unison.string_count,
            )
        return params

    def _build(self, midi: int, velocity: int) -> NoteParameters:
        s = self.settings
        phys = s.physics
        f0 = midi2freq(midi)

        fundamental = inharmonic_fundamental(f0, midi, settings=s.inharmonicity, physics=phys)
        exponent = float(read_setting(s.velocity_mapping, "velocity_exponent", 2.0))
        amplitude = apply_compensation(velocity_to_amplitude(velocity, exponent), f0,
                                       settings=s.velocity_mapping, physics=phys)
        if self.pedal_down:
            coupling = total_coupling(f0, velocity, self.pedal_position,
                                      self.scheduler.registry, exclude=midi, physics=phys)
            amplitude = min(1.0, amplitude + coupling)

        series = partial_series(f0, midi, velocity, settings=s.inharmonicity, physics=phys,
                                rolloff=s.pitch_rolloff)
        timbre = timbre_class(velocity, physics=phys)
        if series is not None:
            # partial 1 sounds at the sharpened fundamental
            freqs = (fundamental,) + tuple(float(f) for f in series.frequencies[1:])
            amps = tuple(float(a) for a in series.amplitudes)
        else:
            amps = dynamic_waveform(velocity, physics=phys)
            if amps is None:
                n = 1 if timbre is TimbreClass.PURE else _HARMONIC_PARTIALS
                amps = tuple(harmonic_rolloff(k, velocity, physics=phys) for k in range(1, n + 1))
            freqs = tuple(fundamental * k for k in range(1, len(amps) + 1))

        attack = _brightness.attack_time_for_velocity(velocity, envelope=s.envelope, physics=phys)
        envelope = self._envelope(midi, velocity, attack)

        return NoteParameters(
            midi_note=midi,
            frequency=f0,
            fundamental=fundamental,
            velocity=velocity,
            amplitude=amplitude,
            partial_frequencies=freqs,
            partial_amplitudes=amps,
            brightness=brightness_index(velocity, physics=phys),
            attack_time=attack,
            envelope=envelope,
            timbre=timbre,
            filter_cutoff=_brightness.initial_filter_cutoff(
                velocity, f0, settings=s.dynamic_filter, physics=phys),
            filter_q=float(read_setting(s.dynamic_filter, "q", 1.0)),
            unison=unison_configuration(midi, fundamental, physics=phys),
            transient=attack_noise(velocity, f0, physics=phys),
            pitch=frequency_envelope(attack, settings=s.frequency_envelope, physics=phys),
        )

    def _envelope(self, midi: int, velocity: int, attack: float) -> EnvelopeSpec:
        s = self.settings
        phys = s.physics
        stages = two_stage_decay(velocity, settings=s.two_stage_decay, physics=phys)
        sustain = float(read_setting(s.envelope, "sustain", 0.3))
        if read_setting(phys, "two_stage_decay", True):
            decay = stages.decay1
            sustain *= stages.amplitude_ratio
        else:
            decay = float(read_setting(s.envelope, "decay", 0.1))
        if read_setting(phys, "per_partial_decay", True):
            decay = per_partial_envelope(decay, _PER_PARTIAL_SPAN, physics=phys).decay
        return EnvelopeSpec(
            attack=attack,
            decay=decay,
            sustain=sustain,
            release=release_time(midi),
            two_stage=stages,
        )

    # ------------------------------------------------------------------
    # Note-off
    # ------------------------------------------------------------------
    def note_off(self, midi_note: int, release_velocity: Optional[int] = None) -> Optional[ReleaseParameters]:
        self._bind()
        midi = clamp_midi(midi_note)
        note = self.scheduler.registry.get(midi)
        if note is None or not note.held_physically:
            return None
        params = self._params.get(midi)
        level = self._current_level(note, params)

        state = self.scheduler.note_off(midi)
        if state is None:
            return None

        # the key always thumps back, pedal or not
        transient = release_transient(
            note.frequency, level,
            None if release_velocity is None else clamp_velocity(release_velocity),
            physics=self.settings.physics,
        )
        if transient is not None:
            self._play_transient(note.name, transient)

        rel = params.envelope.release if params is not None else release_time(midi)
        if state is NoteState.SUSTAIN_PENDING:
            # the damper stays up; the backend release is widened if a
            # timed release was scheduled
            self._released_at[midi] = self.clock.now()
            if self.scheduler.scheduled(midi) is not None:
                rel = sustain_release_time(
                    pedal_sustain_time(midi, settings=self.settings.sustain_decay),
                    settings=self.settings.sustain_decay,
                )
        else:
            self._forget(midi)

        result = ReleaseParameters(midi_note=midi, state=state, release_time=rel,
                                   transient=transient)
        _LOGGER.debug("note_off %s → %s", note.name, result.state.value)
        if self.trace is not None:
            self.trace.log("note_off", midi, release_velocity, self.clock.now(),
                           state=result.state.value, release=rel,
                           transient=transient.amplitude if transient is not None else 0.0)
        return result

    def _current_level(self, note: ActiveNote, params: Optional[NoteParameters]) -> float:
        if params is None:
            return note.amplitude
        env = params.envelope
        elapsed = max(0.0, self.clock.now() - note.attack_time)
        ring = partial_amplitude_at(1, elapsed, env.two_stage.decay2, physics=self.settings.physics)
        return note.amplitude * max(env.sustain, ring)

    # ------------------------------------------------------------------
    # Pedal / controllers
    # ------------------------------------------------------------------
    def control_change(self, controller: int, value: int) -> bool:
        """Handle a MIDI CC; returns True when it flipped the sustain pedal."""
        self._bind()
        pedal = self.settings.pedal
        if controller != int(read_setting(pedal, "controller", 64)):
            return False

        value = clamp_velocity(value)
        self.pedal_position = value / 127.0
        down = value >= int(read_setting(pedal, "threshold", 64))
        if down == self.scheduler.pedal_down:
            return False

        released = self.scheduler.set_pedal(down)
        for midi in released:
            self._forget(midi)
        self.automation.on_pedal(down)
        _LOGGER.debug("pedal %s (%d released)", "down" if down else "up", len(released))
        if self.trace is not None:
            self.trace.log("pedal", controller, value, self.clock.now(),
                           down=down, released=len(released), gain=self.automation.value())
        return True

    def release_all(self) -> None:
        """Panic: cancel every schedule, release every voice, clear the registry."""
        self._bind()
        count = len(self.scheduler.registry)
        self.scheduler.release_all()
        self._params.clear()
        self._released_at.clear()
        _LOGGER.info("release_all: %d notes released", count)

    # ------------------------------------------------------------------
    # Time-varying queries
    # ------------------------------------------------------------------
    def brightness_at(self, midi_note: int, now: Optional[float] = None) -> float:
        note = self.scheduler.registry.get(clamp_midi(midi_note))
        if note is None:
            return 1.0
        s = self.settings
        params = self._params.get(note.midi_note)
        elapsed = (self.clock.now() if now is None else now) - note.attack_time
        mult = _brightness.brightness_multiplier(
            note.velocity, elapsed,
            settings=s.brightness, envelope=s.envelope, physics=s.physics,
            attack_time=params.attack_time if params is not None else None,
        )
        return brightness_index(note.velocity, physics=s.physics) * mult

    def filter_cutoff_at(self, midi_note: int, now: Optional[float] = None) -> float:
        """Dynamic low-pass cutoff of a sounding note (20 kHz when silent)."""
        midi = clamp_midi(midi_note)
        params = self._params.get(midi)
        note = self.scheduler.registry.get(midi)
        if params is None or note is None:
            return _OPEN_CUTOFF
        elapsed = (self.clock.now() if now is None else now) - note.attack_time
        return _brightness.filter_cutoff_at(
            params.filter_cutoff, max(0.0, elapsed), note.frequency,
            settings=self.settings.dynamic_filter, physics=self.settings.physics,
        )

    def frequency_at(self, midi_note: int, now: Optional[float] = None) -> Optional[float]:
        """Sounding fundamental including pitch drift/vibrato; None when silent."""
        midi = clamp_midi(midi_note)
        params = self._params.get(midi)
        note = self.scheduler.registry.get(midi)
        if params is None or note is None:
            return None
        if params.pitch is None:
            return params.fundamental
        t = self.clock.now() if now is None else now
        released = self._released_at.get(midi)
        since_release = 0.0 if released is None else t - released
        return float(params.fundamental + params.pitch.offset(t - note.attack_time, since_release))

    # ------------------------------------------------------------------
    def _play_transient(self, name: str, spec: TransientSpec) -> None:
        try:
            self.backend.play_transient(name, spec)
        except (ResourceUnavailableError, StaleVoiceError) as exc:
            _LOGGER.info("%s transient skipped for %s: %s", spec.kind, name, exc)

    def _forget(self, midi_note: int) -> None:
        self._params.pop(midi_note, None)
        self._released_at.pop(midi_note, None)

    def _scheduled_release(self, midi_note: int) -> None:
        self._forget(midi_note)
        if self.trace is not None:
            self.trace.log("scheduled_release", midi_note, None, self.clock.now())
        if self.on_scheduled_release is not None:
            self.on_scheduled_release(midi_note)
