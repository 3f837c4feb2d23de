# compensation.py — equal-loudness level compensation
# -----------------------------------------------------
# Purpose
#   • Second stage of the velocity → level mapping: a gain in dB that
#     lifts bass and treble relative to 1 kHz so every key sounds about
#     equally loud (ISO 226 style contours, heavily simplified).
#   • Three listening-level regimes keyed on the target SPL:
#       < 60 dB  : bass +20·(1 - r^0.3), treble +10·(r^0.2 - 1)
#       < 80 dB  : bass +10·(1 - r^0.2), treble  +5·(r^0.1 - 1)
#       else     : bass  +3·(1 - r^0.1), treble  +2·(r^0.05 - 1)
#     with r = f / 1 kHz.
#   • Compensated amplitude is clamped to [0, 1].
# -----------------------------------------------------
from __future__ import annotations

from typing import Any, Final, Optional

from .settings import read_setting
from .utils import clamp, db_to_lin

__all__ = ["compensation_db", "apply_compensation"]

_F_REF: Final = 1000.0
_TARGET_SPL: Final = 85.0

#            (spl below, bass dB, bass exp, treble dB, treble exp)
_REGIMES: Final = (
    (60.0, 20.0, 0.3, 10.0, 0.2),
    (80.0, 10.0, 0.2, 5.0, 0.1),
)
_LOUD: Final = (3.0, 0.1, 2.0, 0.05)


def _enabled(physics: Any) -> bool:
    return bool(read_setting(physics, "frequency_compensation", True))


def compensation_db(
    frequency: float,
    target_spl: Optional[float] = None,
    *,
    settings: Any = None,
    physics: Any = None,
) -> float:
    """Gain in dB for a note at *frequency* (0 at 1 kHz, ≥ 0 elsewhere)."""
    if not _enabled(physics) or frequency <= 0:
        return 0.0
    if target_spl is None:
        target_spl = float(read_setting(settings, "target_spl", _TARGET_SPL))

    bass_db, bass_exp, treble_db, treble_exp = _LOUD
    for below, *regime in _REGIMES:
        if target_spl < below:
            bass_db, bass_exp, treble_db, treble_exp = regime
            break

    r = frequency / _F_REF
    if frequency < _F_REF:
        return bass_db * (1.0 - r ** bass_exp)
    return treble_db * (r ** treble_exp - 1.0)


def apply_compensation(
    amplitude: float,
    frequency: float,
    *,
    settings: Any = None,
    physics: Any = None,
) -> float:
    if not _enabled(physics):
        return amplitude
    gain = db_to_lin(compensation_db(frequency, settings=settings, physics=physics))
    return clamp(amplitude * gain, 0.0, 1.0)
