# coupling.py — sympathetic resonance under the sustain pedal
# -------------------------------------------------------------
# Purpose
#   • Pairwise coupling C(f_i, f_j) = exp(-|Δf| / 100 Hz), ×1.5 near a
#     unison / fifth / octave / twelfth ratio, × pedal × 0.1.
#   • Aggregate over the 8 frequency-nearest sounding notes within 2 kHz,
#     × min(1, n/10) × 0.3. The 8-note bound keeps note-on cost flat
#     with a full pedalled chord; it is part of the output contract.
#   • Nothing couples below half pedal or with the feature off.
# -------------------------------------------------------------
from __future__ import annotations

import math
from collections.abc import Iterable, Mapping
from typing import Any, Final, Optional

from .settings import read_setting
from .utils import midi2freq

__all__ = ["coupling_gain", "total_coupling", "MAX_COUPLED_NOTES"]

MAX_COUPLED_NOTES: Final = 8
_F_BAND_HZ: Final = 100.0
_MAX_SPAN_HZ: Final = 2000.0
_HARMONIC_BOOST: Final = 1.5
_HARMONIC_RATIOS: Final = (1.0, 1.5, 2.0, 3.0)
_RATIO_TOLERANCE: Final = 0.1
_PAIR_SCALE: Final = 0.1
_TOTAL_SCALE: Final = 0.3
_FULL_CHORD: Final = 10
_HALF_PEDAL: Final = 0.5


def _active(physics: Any, pedal_position: float) -> bool:
    return bool(read_setting(physics, "pedal_coupling", True)) and pedal_position >= _HALF_PEDAL


def _harmonic(freq: float, other: float) -> bool:
    lo, hi = min(freq, other), max(freq, other)
    if lo <= 0:
        return False
    ratio = hi / lo
    return any(abs(ratio - r) <= _RATIO_TOLERANCE for r in _HARMONIC_RATIOS)


def coupling_gain(freq: float, other_freq: float, pedal_position: float, *, physics: Any = None) -> float:
    """Coupling between two sounding strings, in [0, 1)."""
    if not _active(physics, pedal_position):
        return 0.0
    gain = math.exp(-abs(freq - other_freq) / _F_BAND_HZ)
    if _harmonic(freq, other_freq):
        gain *= _HARMONIC_BOOST
    return gain * pedal_position * _PAIR_SCALE


def total_coupling(
    freq: float,
    velocity: float,
    pedal_position: float,
    active_notes: Mapping[int, Any] | Iterable[int] | None,
    *,
    exclude: Optional[int] = None,
    physics: Any = None,
) -> float:
    """Extra gain a newly struck note at *freq* picks up from sounding notes.

    *active_notes* is keyed (or iterated) by MIDI note; *exclude* drops the
    struck note's own earlier instance. *velocity* is accepted for the
    call contract but does not enter the current model.
    """
    if not _active(physics, pedal_position) or not active_notes:
        return 0.0

    notes = [n for n in active_notes if n != exclude]
    if not notes:
        return 0.0

    others = sorted((midi2freq(n) for n in notes), key=lambda f: abs(f - freq))
    total = 0.0
    for other in others[:MAX_COUPLED_NOTES]:
        if abs(other - freq) < _MAX_SPAN_HZ:
            total += coupling_gain(freq, other, pedal_position, physics=physics)

    return total * min(1.0, len(notes) / _FULL_CHORD) * _TOTAL_SCALE
