# render.py — offline preview of parameter bundles
# ------------------------------------------------------
# A VoiceBackend that records attacks, releases and transients against
# the engine's clock and turns them into a mono buffer afterwards.
#   • additive voice: partials × unison strings, two-stage amplitude
#     envelope, per-partial decay, pitch envelope folded into the phase,
#     static dynamic-filter low-pass
#   • transients: filtered white-noise or sine bursts per FilterSpec
#   • optional spectral-balance shelf driven by a gain(t) callback
# Meant for auditioning and smoke tests, not sample-accurate playback.
# ------------------------------------------------------
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Final, Optional

import numpy as np
from scipy.signal import sosfilt

from .clock import Clock
from .decay import partial_decay_time
from .errors import ResourceUnavailableError, StaleVoiceError
from .filters import Biquad, design, design_lowpass
from .transients import TransientSpec

if TYPE_CHECKING:
    from .engine import NoteParameters

__all__ = ["OfflineRenderer", "GainTimeline"]

_LOGGER = logging.getLogger("pianophysics.render")

_FS: Final = 44_100
_T60: Final = math.log(1000.0)  # e-folds for -60 dB
_HELD_TAIL: Final = 2.0         # s rendered for voices never released
_BLOCK: Final = 0.05            # s per shelf-gain update


class GainTimeline:
    """GainParam that records its automation so a render can replay it.

    Breakpoints are (time, value) pairs joined by straight lines; a
    cancel_and_hold drops everything scheduled after *at*.
    """

    def __init__(self, initial: float = 0.0):
        self.points: list[tuple[float, float]] = [(0.0, float(initial))]

    def cancel_and_hold(self, at: float, value: float) -> None:
        self.points = [pt for pt in self.points if pt[0] < at]
        self.points.append((at, float(value)))

    def linear_ramp_to(self, value: float, end_time: float) -> None:
        self.points.append((max(end_time, self.points[-1][0]), float(value)))

    def __call__(self, t: float) -> float:
        times = [pt[0] for pt in self.points]
        values = [pt[1] for pt in self.points]
        return float(np.interp(t, times, values))


@dataclass(slots=True)
class _Voice:
    name: str
    params: "NoteParameters"
    start: float
    release_time: float
    release_at: Optional[float] = None

    def stop(self, end: float) -> float:
        if self.release_at is None:
            return end
        return min(end, self.release_at + self.release_time)


@dataclass(slots=True)
class _Burst:
    name: str
    spec: TransientSpec
    start: float


class OfflineRenderer:
    """Records backend calls; `render()` mixes them into a buffer.

    Parameters
    ----------
    clock : the engine's clock (event times are read from it)
    fs : sample rate
    max_partials : oscillator budget per voice; a bundle needing more
        (partials × strings) raises ResourceUnavailableError
    seed : seed for the noise bursts
    """

    def __init__(self, clock: Clock, fs: int = _FS, max_partials: int = 64, seed: int = 0,
                 physics: Any = None):
        self.clock = clock
        self.fs = fs
        self.max_partials = max_partials
        self.physics = physics
        self.release_times: dict[str, float] = {}
        self._rng = np.random.default_rng(seed)
        self._live: dict[str, _Voice] = {}
        self._voices: list[_Voice] = []
        self._bursts: list[_Burst] = []

    # ------------------------------------------------------------------
    # VoiceBackend
    # ------------------------------------------------------------------
    def trigger_attack(self, note_name: str, params: "NoteParameters") -> None:
        needed = len(params.partial_frequencies) * params.unison.string_count
        if needed > self.max_partials:
            raise ResourceUnavailableError(
                f"{note_name} needs {needed} oscillators, budget is {self.max_partials}")
        voice = _Voice(note_name, params, self.clock.now(), params.envelope.release)
        self._live[note_name] = voice
        self._voices.append(voice)

    def trigger_release(self, note_name: str) -> None:
        voice = self._live.pop(note_name, None)
        if voice is None:
            raise StaleVoiceError(f"no live voice {note_name}")
        voice.release_at = self.clock.now()
        voice.release_time = self.release_times.get(note_name, voice.release_time)

    def set_release_time(self, note_name: str, seconds: float) -> None:
        if note_name not in self._live:
            raise StaleVoiceError(f"no live voice {note_name}")
        self.release_times[note_name] = seconds

    def dispose_resources(self, note_name: str) -> None:
        self.release_times.pop(note_name, None)

    def play_transient(self, note_name: str, spec: TransientSpec) -> None:
        self._bursts.append(_Burst(note_name, spec, self.clock.now()))

    # ------------------------------------------------------------------
    @property
    def voice_count(self) -> int:
        return len(self._voices)

    @property
    def transient_count(self) -> int:
        return len(self._bursts)

    def end_time(self) -> float:
        ends = [v.stop(v.start + _HELD_TAIL if v.release_at is None else math.inf)
                for v in self._voices]
        ends += [b.start + b.spec.duration for b in self._bursts]
        return max(ends, default=0.0)

    def render(
        self,
        duration: Optional[float] = None,
        *,
        gain_db: Optional[Callable[[float], float]] = None,
        shelf_frequency: float = 2000.0,
        shelf_q: float = 0.7,
    ) -> np.ndarray:
        """Mix everything recorded so far into a float32 buffer.

        Parameters
        ----------
        duration : seconds from t=0; defaults to the end of the last event
        gain_db : spectral-balance gain at time t; None skips the shelf
        """
        end = self.end_time() if duration is None else float(duration)
        out = np.zeros(int(round(end * self.fs)), dtype=np.float64)
        if out.size == 0:
            return out.astype(np.float32)

        for voice in self._voices:
            self._mix(out, voice.start, self._voice_signal(voice, end))
        for burst in self._bursts:
            self._mix(out, burst.start, self._burst_signal(burst.spec))

        if gain_db is not None:
            out = self._shelf(out, gain_db, shelf_frequency, shelf_q)

        peak = float(np.max(np.abs(out)))
        if peak > 0.99:
            out *= 0.99 / peak
        _LOGGER.debug("rendered %.2fs: %d voices, %d transients (peak %.3f)",
                      end, len(self._voices), len(self._bursts), peak)
        return out.astype(np.float32)

    # ------------------------------------------------------------------
    def _mix(self, out: np.ndarray, start: float, y: np.ndarray) -> None:
        i0 = int(round(start * self.fs))
        if i0 >= out.size or y.size == 0:
            return
        n = min(y.size, out.size - i0)
        out[i0:i0 + n] += y[:n]

    def _voice_signal(self, voice: _Voice, end: float) -> np.ndarray:
        p = voice.params
        env = p.envelope
        n = int(max(0.0, voice.stop(end) - voice.start) * self.fs)
        if n == 0:
            return np.zeros(0)
        t = np.arange(n) / self.fs

        # two-stage amplitude: prompt sound over `decay`, aftersound over decay2
        after = np.maximum(0.0, t - env.attack)
        tau1 = max(env.two_stage.decay2, 1e-3)
        level = (1 - env.sustain) * np.exp(-after / max(env.decay, 1e-4)) \
            + env.sustain * np.exp(-after / tau1)
        if env.attack > 0:
            level = np.where(t < env.attack, t / env.attack, level)
        since_release = 0.0
        if voice.release_at is not None:
            r = voice.release_at - voice.start
            since_release = t - r
            level = np.where(t >= r, level * np.exp(-_T60 * (t - r) / max(voice.release_time, 1e-3)),
                             level)

        # pitch envelope scales every partial; integrate it into the phase
        if p.pitch is not None and p.fundamental > 0:
            ratio = 1.0 + p.pitch.offset(t, since_release) / p.fundamental
            phase = 2 * math.pi * np.cumsum(ratio) / self.fs
        else:
            phase = 2 * math.pi * t

        nyquist = 0.5 * self.fs
        y = np.zeros(n)
        for k, (f, a) in enumerate(zip(p.partial_frequencies, p.partial_amplitudes), start=1):
            tau_k = partial_decay_time(k, tau1, physics=self.physics)
            shape = a * np.exp(-t * (1.0 / tau_k - 1.0 / tau1))
            for uf, ua in zip(p.unison.frequencies, p.unison.amplitudes):
                fk = f * uf / p.fundamental if p.fundamental > 0 else f
                if fk < nyquist:
                    y += ua * shape * np.sin(fk * phase)

        norm = max(1.0, float(sum(p.partial_amplitudes)))
        y *= level * p.amplitude / norm
        if p.filter_cutoff < 0.45 * self.fs:
            y = sosfilt(design_lowpass(p.filter_cutoff, q=p.filter_q, fs=self.fs), y)
        return y

    def _burst_signal(self, spec: TransientSpec) -> np.ndarray:
        n = int(spec.duration * self.fs)
        if n == 0:
            return np.zeros(0)
        t = np.arange(n) / self.fs
        if spec.source == "noise":
            src = self._rng.standard_normal(n)
        else:
            src = np.sin(2 * math.pi * spec.frequency * t)
        env = np.where(
            t < spec.attack,
            t / max(spec.attack, 1e-6),
            np.exp(-_T60 * (t - spec.attack) / max(spec.duration - spec.attack, 1e-4)),
        )
        return spec.amplitude * env * sosfilt(design(spec.filter, self.fs), src)

    def _shelf(self, x: np.ndarray, gain_db: Callable[[float], float], fc: float,
               q: float) -> np.ndarray:
        shelf = Biquad("highshelf", fc, q=q, gain_db=gain_db(0.0), fs=self.fs)
        step = max(1, int(_BLOCK * self.fs))
        y = np.empty_like(x)
        for i0 in range(0, x.size, step):
            shelf.set_gain(gain_db(i0 / self.fs))
            y[i0:i0 + step] = shelf.process(x[i0:i0 + step])
        return y
