# rolloff.py — pitch-dependent harmonic rolloff
# ----------------------------------------------
# Bass strings carry many audible harmonics, treble strings only a few.
#   a_k(f0) = exp(-k·α(f0)) · (1 + boost·v·e^(-k/8))
#   band      <100   100–500   500–1k   1k–2k   >2k  Hz
#   α         0.10    0.12      0.18     0.25    0.30
#   audible   10–15   8–12      6–10     4–6     2–3   (grows with velocity)
# Harmonics past the audible count fall off a further e^(-2) per step.
# ----------------------------------------------
from __future__ import annotations

import math
from typing import Any, Final, Sequence

from .settings import read_setting
from .utils import normalize_velocity

__all__ = ["rolloff_rate", "max_audible_harmonics", "pitch_harmonic_amplitude"]

_BAND_EDGES: Final = (100.0, 500.0, 1000.0, 2000.0)
_RATES: Final = (0.10, 0.12, 0.18, 0.25, 0.30)
_MIN_HARMONICS: Final = (10, 8, 6, 4, 2)
_MAX_HARMONICS: Final = (15, 12, 10, 6, 3)
_VELOCITY_BOOST: Final = 0.3
_BEYOND_AUDIBLE: Final = 2.0

# flat values when the feature is off
_PLAIN_RATE: Final = 0.15
_PLAIN_HARMONICS: Final = 20


def _enabled(physics: Any) -> bool:
    return bool(read_setting(physics, "pitch_harmonic_rolloff", True))


def _band(frequency: float) -> int:
    for i, edge in enumerate(_BAND_EDGES):
        if frequency < edge:
            return i
    return len(_BAND_EDGES)


def _pick(values: Sequence, band: int, fallback: Sequence):
    values = values if len(values) > band else fallback
    return values[band]


def rolloff_rate(frequency: float, *, settings: Any = None, physics: Any = None) -> float:
    """α for the band *frequency* falls in; steeper toward the treble."""
    if not _enabled(physics):
        return _PLAIN_RATE
    rates = read_setting(settings, "rates", _RATES)
    return float(_pick(rates, _band(frequency), _RATES))


def max_audible_harmonics(frequency: float, velocity: float, *, settings: Any = None,
                          physics: Any = None) -> int:
    if not _enabled(physics):
        return _PLAIN_HARMONICS
    band = _band(frequency)
    lo = int(_pick(read_setting(settings, "min_harmonics", _MIN_HARMONICS), band, _MIN_HARMONICS))
    hi = int(_pick(read_setting(settings, "max_harmonics", _MAX_HARMONICS), band, _MAX_HARMONICS))
    return lo + int(normalize_velocity(velocity) * max(0, hi - lo))


def pitch_harmonic_amplitude(k: int, frequency: float, velocity: float, *, settings: Any = None,
                             physics: Any = None) -> float:
    """Amplitude of harmonic *k* of a note at *frequency*, in [0, 1]."""
    if not _enabled(physics):
        return math.exp(-k * _PLAIN_RATE)

    v = normalize_velocity(velocity)
    boost = float(read_setting(settings, "velocity_boost", _VELOCITY_BOOST))
    amp = math.exp(-k * rolloff_rate(frequency, settings=settings, physics=physics))
    amp *= 1.0 + v * boost * math.exp(-k / 8.0)

    audible = max_audible_harmonics(frequency, velocity, settings=settings, physics=physics)
    if k > audible:
        amp *= math.exp(-(k - audible) * _BEYOND_AUDIBLE)
    return min(1.0, amp)
