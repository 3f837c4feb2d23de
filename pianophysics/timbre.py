# timbre.py — velocity-dependent spectral content
# ------------------------------------------------------
# Purpose
#   • brightness index 1.0–1.5 from strike velocity
#   • per-harmonic rolloff with a velocity boost on the upper partials
#   • discrete timbre class (sine / triangle / square-like spectrum)
#     for backends that only offer stock oscillator shapes
#   • optional velocity-shaped custom waveform (advanced timbre)
# Usage
#   idx = brightness_index(velocity, physics=settings.physics)
#   amp = harmonic_rolloff(k, velocity, physics=settings.physics)
# ------------------------------------------------------
from __future__ import annotations

import enum
import math
import random
from typing import Any, Final, Optional

from .settings import read_setting
from .utils import normalize_velocity

__all__ = [
    "TimbreClass",
    "brightness_index",
    "harmonic_rolloff",
    "timbre_class",
    "blended_timbre_class",
    "dynamic_waveform",
]

_BASE_ALPHA: Final = 0.15
_SOME_HARMONICS_AT: Final = 0.4
_MODERATE_HARMONICS_AT: Final = 0.75


class TimbreClass(str, enum.Enum):
    PURE = "sine"
    SOME_HARMONICS = "triangle"
    MODERATE_HARMONICS = "square"

    @property
    def odd_only(self) -> bool:
        """True when the spectrum carries odd harmonics only."""
        return self is TimbreClass.MODERATE_HARMONICS


def _enabled(physics: Any) -> bool:
    return bool(read_setting(physics, "velocity_timbre", True))


def brightness_index(velocity: float, *, physics: Any = None) -> float:
    """1 + 0.5 · vNorm^0.7  (1.0 when velocity timbre is off)."""
    if not _enabled(physics):
        return 1.0
    return 1.0 + 0.5 * normalize_velocity(velocity) ** 0.7


def timbre_class(velocity: float, *, physics: Any = None) -> TimbreClass:
    """Three-way step on normalised velocity, thresholds 0.4 / 0.75."""
    if not _enabled(physics):
        return TimbreClass.PURE
    v = normalize_velocity(velocity)
    if v < _SOME_HARMONICS_AT:
        return TimbreClass.PURE
    if v < _MODERATE_HARMONICS_AT:
        return TimbreClass.SOME_HARMONICS
    return TimbreClass.MODERATE_HARMONICS


def blended_timbre_class(
    velocity: float,
    rng: Optional[random.Random] = None,
    width: float = 0.05,
    *,
    physics: Any = None,
) -> TimbreClass:
    """Cosmetic variant of `timbre_class` that dithers near the thresholds.

    Inside ±*width* of a threshold the class on either side is chosen with
    a probability that ramps linearly across the window. Without an *rng*
    (or with width ≤ 0) this is exactly `timbre_class`.
    """
    if rng is None or width <= 0 or not _enabled(physics):
        return timbre_class(velocity, physics=physics)

    v = normalize_velocity(velocity)
    order = list(TimbreClass)
    for i, edge in enumerate((_SOME_HARMONICS_AT, _MODERATE_HARMONICS_AT)):
        if abs(v - edge) < width:
            p_upper = (v - edge + width) / (2 * width)
            return order[i + 1] if rng.random() < p_upper else order[i]
    return timbre_class(velocity, physics=physics)


def harmonic_rolloff(k: int, velocity: float, *, physics: Any = None) -> float:
    """Amplitude multiplier for harmonic *k* in [0, 1].

    exp(-0.15k) · (1 + 0.3·v·e^(-k/10)) · (1 + 0.2·v), and for the
    odd-only class even harmonics are dropped and a 1/k envelope applied.
    """
    base = math.exp(-k * _BASE_ALPHA)
    if not _enabled(physics):
        return base

    v = normalize_velocity(velocity)
    boost = 1.0 + v * 0.3 * math.exp(-k / 10.0)
    shape = 1.0
    if timbre_class(velocity, physics=physics).odd_only:
        if k % 2 == 0:
            return 0.0
        shape = 1.0 / k
    return min(1.0, base * boost * shape * (1.0 + v * 0.2))


def dynamic_waveform(velocity: float, *, physics: Any = None) -> Optional[tuple[float, ...]]:
    """Harmonic amplitudes (k = 1..n) of a velocity-shaped custom waveform.

    Up to 21 harmonics at full velocity; soft strikes roll off fast, loud
    ones are brighter with a touch of simulated stiffness. None when
    advanced timbre is off, so the caller uses the stock oscillator shape.
    """
    if not read_setting(physics, "advanced_timbre", True):
        return None
    v = normalize_velocity(velocity)
    n = int(1 + v * 20)
    brighten = 1.0 + 0.4 * v ** 0.8
    amps = [1.0]
    for k in range(2, n + 1):
        if v < 0.3:
            a = math.exp(-k * 0.25)
        elif v < 0.7:
            a = math.exp(-k * 0.15) * (1.0 + 0.3 * v)
        else:
            a = math.exp(-k * 0.12) * (1.0 + 0.5 * v) / (1.0 + 0.001 * k * k * v)
        amps.append(min(1.0, a * brighten))
    return tuple(amps)
