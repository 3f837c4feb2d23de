# inharmonicity.py — stiff-string partial sharpening
# ---------------------------------------------------
#  * B(note): exponential interpolation bMin (A0) → bMax (C8)
#  * optional bass boost below a threshold frequency
#  * f_k = k · f0 · √(1 + B·k²)
#  * band-dependent partial series for additive voices (pitch-dependent
#    rolloff when enabled, see rolloff.py)
# ---------------------------------------------------
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Final, Optional

import numpy as np

from .rolloff import pitch_harmonic_amplitude
from .settings import read_setting
from .utils import A0_MIDI, C8_MIDI, clamp, freq2midi, midi2freq, normalize_velocity

__all__ = [
    "coefficient",
    "partial_frequency",
    "inharmonic_fundamental",
    "partial_series",
    "PartialSeries",
]

_B_MIN: Final = 0.0001
_B_MAX: Final = 0.02
_CURVE_EXP: Final = 1.5
_BASS_BOOST: Final = 1.0
_BASS_BOOST_HZ: Final = 262.0

# fundamental sharpening used when only a single oscillator is available
_FUNDAMENTAL_SHARPEN: Final = 0.1


def _enabled(physics: Any) -> bool:
    return bool(read_setting(physics, "inharmonicity", True))


def coefficient(midi_note: float, *, settings: Any = None, physics: Any = None) -> float:
    """Inharmonicity coefficient B for *midi_note*.

    B = bMin · (bMax/bMin) ** (t ** curveExponent), t = clamped position
    of the note between A0 and C8. Returns 0 when the feature is off.
    """
    if not _enabled(physics):
        return 0.0

    b_min = float(read_setting(settings, "b_min", _B_MIN))
    b_max = float(read_setting(settings, "b_max", _B_MAX))
    curve = float(read_setting(settings, "curve_exponent", _CURVE_EXP))
    boost = float(read_setting(settings, "bass_boost", _BASS_BOOST))
    threshold = float(read_setting(settings, "bass_boost_threshold", _BASS_BOOST_HZ))

    t = clamp((midi_note - A0_MIDI) / (C8_MIDI - A0_MIDI), 0.0, 1.0)
    if b_min <= 0.0:
        # ratio undefined; degrade to a linear blend
        b = b_min + (b_max - b_min) * t ** curve
    else:
        b = b_min * (b_max / b_min) ** (t ** curve)

    f0 = midi2freq(midi_note)
    if boost > 1.0 and f0 < threshold:
        b *= 1.0 + (boost - 1.0) * (1.0 - f0 / threshold)
    return b


def partial_frequency(
    f0: float,
    k: int,
    b: Optional[float] = None,
    *,
    midi_note: Optional[float] = None,
    settings: Any = None,
    physics: Any = None,
) -> float:
    """Frequency of partial *k* (k=1 is the fundamental).

    With *b* omitted, B is derived from *midi_note* (or from f0 rounded to
    the nearest note). Disabled inharmonicity, or B == 0, returns ``k*f0``
    exactly without going through the square root. f0 is taken as the
    sounding fundamental, so k == 1 always returns f0 unchanged.
    """
    if not _enabled(physics) or k == 1:
        return f0 * k
    if b is None:
        if midi_note is None:
            midi_note = round(freq2midi(f0))
        b = coefficient(midi_note, settings=settings, physics=physics)
    if b == 0:
        return f0 * k
    return k * f0 * math.sqrt(1.0 + b * k * k)


def inharmonic_fundamental(f0: float, midi_note: float, *, settings: Any = None,
                           physics: Any = None) -> float:
    """Slightly sharpened fundamental for single-oscillator voices."""
    if not _enabled(physics):
        return f0
    b = coefficient(midi_note, settings=settings, physics=physics)
    return f0 * (1.0 + b * _FUNDAMENTAL_SHARPEN)

# ------------------------------------------------------------------
# Partial series (additive synthesis input)
# ------------------------------------------------------------------

@dataclass(slots=True)
class PartialSeries:
    frequencies: np.ndarray  # Hz, float64
    amplitudes: np.ndarray   # linear, ≤ 1
    b: float

    def __len__(self) -> int:
        return len(self.frequencies)


def _partial_count(f0: float, v_norm: float, max_partials: int) -> int:
    if f0 < 100:
        n = min(20, int(1 + v_norm * 15))
    elif f0 < 1000:
        n = min(15, int(1 + v_norm * 10))
    else:
        n = min(8, int(1 + v_norm * 4))
    return max(1, min(n, max_partials))


def partial_series(
    f0: float,
    midi_note: float,
    velocity: float,
    max_partials: int = 20,
    *,
    settings: Any = None,
    physics: Any = None,
    rolloff: Any = None,
) -> Optional[PartialSeries]:
    """Inharmonic partials with a band-dependent count and rolloff.

    Bass notes get up to 20 partials, mid up to 15, treble up to 8; louder
    notes get more. Amplitudes follow `pitch_harmonic_amplitude` (tuned by
    *rolloff*) or, with that feature off, a fixed three-band exponential.
    Returns None when inharmonicity is disabled or no partial fits, so the
    caller falls back to its plain oscillator.
    """
    if not _enabled(physics) or max_partials < 1:
        return None

    v = normalize_velocity(velocity)
    b = coefficient(midi_note, settings=settings, physics=physics)
    n = _partial_count(f0, v, max_partials)
    k = np.arange(1, n + 1, dtype=np.float64)

    freqs = k * f0 * np.sqrt(1.0 + b * k * k)
    freqs[0] = f0

    if read_setting(physics, "pitch_harmonic_rolloff", True):
        amps = np.array([pitch_harmonic_amplitude(int(i), f0, velocity, settings=rolloff, physics=physics)
                         for i in k])
    else:
        alpha = 0.12 if f0 < 100 else (0.15 if f0 < 1000 else 0.25)
        amps = np.exp(-k * alpha) * (1.0 + v * 0.4 * np.exp(-k / 8.0))
    if read_setting(physics, "odd_even_harmonic_balance", False):
        amps[1::2] *= 0.5  # even partials
    amps = np.minimum(amps, 1.0)

    return PartialSeries(frequencies=freqs, amplitudes=amps, b=b)
