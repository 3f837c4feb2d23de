# decay.py — per-partial and two-stage amplitude decay
# ------------------------------------------------------
# Purpose
#   • τ_k = τ_1 · exp(-δ(k-1)), δ = 0.25, floored at 0.1·τ_1
#   • collapse per-partial decay into one envelope decay for backends
#     without per-partial control (50 % fundamental / 50 % mean)
#   • velocity-dependent two-stage decay (prompt + aftersound)
#   • pitch-dependent release time
# ------------------------------------------------------
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Final

from .settings import read_setting
from .utils import A0_MIDI, clamp, normalize_velocity

__all__ = [
    "partial_decay_time",
    "partial_amplitude_at",
    "per_partial_envelope",
    "two_stage_decay",
    "release_time",
    "DecayEnvelope",
    "TwoStageDecay",
]

_DELTA: Final = 0.25
_FLOOR_RATIO: Final = 0.1
_SUSTAIN_LEVEL: Final = 0.3

_RELEASE_BASE: Final = 2.0      # s, A0
_RELEASE_FACTOR: Final = 3.0    # halves every 4 semitones
_RELEASE_MIN: Final = 0.01
_RELEASE_MAX: Final = 2.0


@dataclass(slots=True, frozen=True)
class DecayEnvelope:
    decay: float
    sustain: float


@dataclass(slots=True, frozen=True)
class TwoStageDecay:
    decay1: float           # prompt sound time constant [s]
    decay2: float           # aftersound time constant [s]
    amplitude_ratio: float  # A1/A2


def _enabled(physics: Any) -> bool:
    return bool(read_setting(physics, "per_partial_decay", True))


def partial_decay_time(k: int, fundamental_decay: float, *, physics: Any = None) -> float:
    """Decay time constant of partial *k*; higher partials decay faster."""
    if not _enabled(physics):
        return fundamental_decay
    tau = fundamental_decay * math.exp(-_DELTA * (k - 1))
    return max(fundamental_decay * _FLOOR_RATIO, tau)


def partial_amplitude_at(
    k: int,
    elapsed: float,
    fundamental_decay: float,
    initial: float = 1.0,
    *,
    physics: Any = None,
) -> float:
    """A_k(t) = A_0 · exp(-t / τ_k)."""
    if fundamental_decay <= 0:
        return 0.0
    tau = partial_decay_time(k, fundamental_decay, physics=physics)
    return initial * math.exp(-max(0.0, elapsed) / tau)


def per_partial_envelope(fundamental_decay: float, max_partials: int = 10, *,
                         physics: Any = None) -> DecayEnvelope:
    if not _enabled(physics) or max_partials < 1:
        return DecayEnvelope(decay=fundamental_decay, sustain=_SUSTAIN_LEVEL)
    mean = sum(
        partial_decay_time(k, fundamental_decay, physics=physics)
        for k in range(1, max_partials + 1)
    ) / max_partials
    return DecayEnvelope(decay=0.5 * fundamental_decay + 0.5 * mean, sustain=_SUSTAIN_LEVEL)


def two_stage_decay(velocity: float, *, settings: Any = None, physics: Any = None) -> TwoStageDecay:
    """Velocity-dependent prompt/aftersound decay pair.

    Louder notes lose their prompt energy faster and carry more of it
    (higher A1/A2). Results are clamped to 10–200 ms, 0.5–5 s and 0.3–1.
    """
    b1 = float(read_setting(settings, "base_decay1", 0.05))
    b2 = float(read_setting(settings, "base_decay2", 2.0))
    if not read_setting(physics, "two_stage_decay", True):
        return TwoStageDecay(decay1=b1, decay2=b2, amplitude_ratio=0.7)

    m1 = float(read_setting(settings, "velocity_multiplier1", 0.5))
    m2 = float(read_setting(settings, "velocity_multiplier2", 0.2))
    r = float(read_setting(settings, "amplitude_ratio_base", 0.7))
    v = normalize_velocity(velocity)

    return TwoStageDecay(
        decay1=clamp(b1 * (1 + m1 * v ** 0.5), 0.01, 0.2),
        decay2=clamp(b2 * (1 + m2 * v ** 0.3), 0.5, 5.0),
        amplitude_ratio=clamp(r * v ** 0.4, 0.3, 1.0),
    )


def release_time(midi_note: float) -> float:
    """Envelope release for a key-up without pedal; bass rings longer."""
    t = _RELEASE_BASE * 2 ** (-(midi_note - A0_MIDI) / 12 * _RELEASE_FACTOR)
    return clamp(t, _RELEASE_MIN, _RELEASE_MAX)
