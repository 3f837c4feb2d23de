# unison.py — 1 / 2 / 3 strings per key
# ------------------------------------------------------
#  • Bass (≤ B1) 1 string, up to B3 2 strings, C4 and above 3 strings
#  • fixed symmetric detuning, amplitudes 1/√n so total energy is constant
# ------------------------------------------------------
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Final

from .settings import read_setting

__all__ = ["UnisonConfig", "string_count", "string_detuning", "unison_configuration"]

_B1_MIDI: Final = 35
_C4_MIDI: Final = 60
_MAX_DETUNE: Final = 0.003
_DETUNE_2: Final = (-0.0015, 0.0015)
_DETUNE_3: Final = (-0.002, 0.0, 0.002)


@dataclass(slots=True, frozen=True)
class UnisonConfig:
    frequencies: tuple[float, ...]
    amplitudes: tuple[float, ...]

    @property
    def string_count(self) -> int:
        return len(self.frequencies)


def _enabled(physics: Any) -> bool:
    return bool(read_setting(physics, "multi_string_unison", True))


def string_count(midi_note: int, *, physics: Any = None) -> int:
    if not _enabled(physics) or midi_note <= _B1_MIDI:
        return 1
    return 2 if midi_note < _C4_MIDI else 3


def string_detuning(index: int, total: int, *, physics: Any = None) -> float:
    """Frequency ratio of string *index* out of *total*."""
    if not _enabled(physics) or total <= 1:
        return 1.0
    if total == 2:
        return 1.0 + _DETUNE_2[min(index, 1)]
    if total == 3:
        return 1.0 + _DETUNE_3[min(index, 2)]
    return 1.0 + (index - (total - 1) / 2) * (_MAX_DETUNE / (total - 1))


def unison_configuration(midi_note: int, fundamental: float, *, physics: Any = None) -> UnisonConfig:
    n = string_count(midi_note, physics=physics)
    amp = 1.0 / math.sqrt(n)
    return UnisonConfig(
        frequencies=tuple(fundamental * string_detuning(i, n, physics=physics) for i in range(n)),
        amplitudes=(amp,) * n,
    )
