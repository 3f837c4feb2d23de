# utils.py — note math shared by every model
# -----------------------------------
# • MIDI ↔ frequency conversion
# • velocity normalisation / amplitude curve
# • dB / linear helpers
# • three-band frequency classification used by the transient models
# • value clamping utilities
# -----------------------------------
from __future__ import annotations

import math
from typing import Final, Literal

__all__ = [
    "midi2freq",
    "freq2midi",
    "db_to_lin",
    "lin_to_db",
    "clamp",
    "clamp_midi",
    "clamp_velocity",
    "normalize_velocity",
    "velocity_to_amplitude",
    "note_name",
    "frequency_band",
    "A0_MIDI",
    "C8_MIDI",
]

_A4_MIDI: Final = 69
_A4_FREQ: Final = 440.0
_MAX_MIDI: Final = 127

A0_MIDI: Final = 21   # lowest piano key
C8_MIDI: Final = 108  # highest piano key

_LOW_BAND_HZ: Final = 200.0
_HIGH_BAND_HZ: Final = 1000.0

_NOTE_NAMES: Final = ("C", "C#", "D", "D#", "E", "F", "F#", "G", "G#", "A", "A#", "B")

Band = Literal["low", "mid", "high"]

# ------------------------------------------------------------------
# Misc util
# ------------------------------------------------------------------

def clamp(x: float, lo: float, hi: float) -> float:
    return min(max(x, lo), hi)


def clamp_midi(note: float) -> int:
    """Round and clamp a note number into [0, 127]."""
    return int(clamp(round(note), 0, _MAX_MIDI))


def clamp_velocity(velocity: float) -> int:
    return int(clamp(round(velocity), 0, _MAX_MIDI))

# ------------------------------------------------------------------
# MIDI ↔ Hz
# ------------------------------------------------------------------

def midi2freq(note: float) -> float:
    """Convert MIDI note to frequency in Hz (equal temperament, A4 = 440)."""
    return _A4_FREQ * 2 ** ((note - _A4_MIDI) / 12)


def freq2midi(freq: float) -> float:
    """Convert frequency in Hz to fractional MIDI note."""
    return 12 * math.log2(freq / _A4_FREQ) + _A4_MIDI


def note_name(note: int) -> str:
    """MIDI note → scientific pitch name, e.g. 60 → ``"C4"``."""
    note = clamp_midi(note)
    return f"{_NOTE_NAMES[note % 12]}{note // 12 - 1}"

# ------------------------------------------------------------------
# Velocity
# ------------------------------------------------------------------

def normalize_velocity(velocity: float) -> float:
    """MIDI velocity (clamped to 0–127) → [0, 1]."""
    return clamp(velocity, 0, _MAX_MIDI) / float(_MAX_MIDI)


def velocity_to_amplitude(velocity: float, exponent: float = 2.0) -> float:
    """Perceptual velocity curve: ``(v/127) ** exponent``."""
    return normalize_velocity(velocity) ** exponent

# ------------------------------------------------------------------
# dB helpers
# ------------------------------------------------------------------

def db_to_lin(db: float) -> float:
    return 10 ** (db / 20.0)


def lin_to_db(lin: float, eps: float = 1e-12) -> float:
    return 20.0 * math.log10(max(eps, lin))

# ------------------------------------------------------------------
# Frequency bands (<200 Hz, 200–1000 Hz, ≥1000 Hz)
# ------------------------------------------------------------------

def frequency_band(freq: float) -> Band:
    if freq < _LOW_BAND_HZ:
        return "low"
    if freq < _HIGH_BAND_HZ:
        return "mid"
    return "high"
