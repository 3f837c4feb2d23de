# transients.py — hammer noise at key-down, damper transient at key-up
# -----------------------------------------------------------
#  Attack noise
#    amplitude  = 0.15 · v^1.5
#    duration   = (5 + 15v) ms × band factor (1.0 / 0.8 / 0.6)
#    low-pass   = f0 × (2 / 3 / 5), capped at 20 kHz
#  Release transient
#    amplitude  = 10 % of the current note level, × (0.5 + 0.5v) when the
#                 release velocity is known (5–15 %)
#    duration   = 30 ms × band factor (1.2 / 1.0 / 0.7)
#    band-pass  = f0, Q 2.5
#  Both are computed once at the event instant; no state is kept.
# -----------------------------------------------------------
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Final, Literal, Optional

from .settings import read_setting
from .utils import frequency_band, normalize_velocity

__all__ = [
    "FilterSpec",
    "TransientSpec",
    "attack_noise_amplitude",
    "attack_noise_duration",
    "attack_noise_filter",
    "attack_noise",
    "release_transient_amplitude",
    "release_transient_duration",
    "release_transient_filter",
    "release_transient",
]

_NOISE_MAX_AMP: Final = 0.15
_NOISE_CUTOFF_MULT: Final = {"low": 2.0, "mid": 3.0, "high": 5.0}
_NOISE_DURATION_MULT: Final = {"low": 1.0, "mid": 0.8, "high": 0.6}
_NYQUIST_CAP: Final = 20_000.0

_RELEASE_RATIO: Final = 0.1
_RELEASE_BASE_S: Final = 0.03
_RELEASE_DURATION_MULT: Final = {"low": 1.2, "mid": 1.0, "high": 0.7}
_RELEASE_Q: Final = 2.5


@dataclass(slots=True, frozen=True)
class FilterSpec:
    type: Literal["lowpass", "bandpass"]
    frequency: float
    q: float


@dataclass(slots=True, frozen=True)
class TransientSpec:
    """A short burst for the audio graph to realise.

    source : "noise" (broadband) or "sine" at *frequency*
    attack / decay / release : envelope segments [s]
    """

    kind: Literal["attack_noise", "release"]
    source: Literal["noise", "sine"]
    amplitude: float
    duration: float
    frequency: float
    filter: FilterSpec
    attack: float
    decay: float
    release: float

# ------------------------------------------------------------------
# Attack noise
# ------------------------------------------------------------------

def _noise_on(physics: Any) -> bool:
    return bool(read_setting(physics, "attack_noise", True))


def attack_noise_amplitude(velocity: float, *, physics: Any = None) -> float:
    if not _noise_on(physics):
        return 0.0
    return _NOISE_MAX_AMP * normalize_velocity(velocity) ** 1.5


def attack_noise_duration(velocity: float, frequency: float, *, physics: Any = None) -> float:
    if not _noise_on(physics):
        return 0.0
    base = 0.005 + normalize_velocity(velocity) * 0.015
    return base * _NOISE_DURATION_MULT[frequency_band(frequency)]


def attack_noise_filter(frequency: float, *, physics: Any = None) -> Optional[FilterSpec]:
    if not _noise_on(physics):
        return None
    cutoff = frequency * _NOISE_CUTOFF_MULT[frequency_band(frequency)]
    return FilterSpec(type="lowpass", frequency=min(_NYQUIST_CAP, cutoff), q=1.0)


def attack_noise(velocity: float, frequency: float, *, physics: Any = None) -> Optional[TransientSpec]:
    """Noise burst for a note-on, or None when it would be silent."""
    amp = attack_noise_amplitude(velocity, physics=physics)
    dur = attack_noise_duration(velocity, frequency, physics=physics)
    filt = attack_noise_filter(frequency, physics=physics)
    if amp <= 0 or dur <= 0 or filt is None:
        return None
    return TransientSpec(
        kind="attack_noise", source="noise", amplitude=amp, duration=dur,
        frequency=frequency, filter=filt,
        attack=0.001, decay=dur * 0.7, release=dur * 0.3,
    )

# ------------------------------------------------------------------
# Release transient
# ------------------------------------------------------------------

def _release_on(physics: Any) -> bool:
    return bool(read_setting(physics, "release_transient", True))


def release_transient_amplitude(current_amplitude: float, release_velocity: Optional[float] = None,
                                *, physics: Any = None) -> float:
    if not _release_on(physics):
        return 0.0
    amp = max(0.0, current_amplitude) * _RELEASE_RATIO
    if release_velocity is not None:
        amp *= 0.5 + 0.5 * normalize_velocity(release_velocity)
    return amp


def release_transient_duration(frequency: float, *, physics: Any = None) -> float:
    if not _release_on(physics):
        return 0.0
    return _RELEASE_BASE_S * _RELEASE_DURATION_MULT[frequency_band(frequency)]


def release_transient_filter(frequency: float, *, physics: Any = None) -> Optional[FilterSpec]:
    if not _release_on(physics):
        return None
    return FilterSpec(type="bandpass", frequency=frequency, q=_RELEASE_Q)


def release_transient(
    frequency: float,
    current_amplitude: float,
    release_velocity: Optional[float] = None,
    *,
    physics: Any = None,
) -> Optional[TransientSpec]:
    """Damper transient for a note-off, or None when it would be silent."""
    amp = release_transient_amplitude(current_amplitude, release_velocity, physics=physics)
    dur = release_transient_duration(frequency, physics=physics)
    filt = release_transient_filter(frequency, physics=physics)
    if amp <= 0 or dur <= 0 or filt is None:
        return None
    return TransientSpec(
        kind="release", source="sine", amplitude=amp, duration=dur,
        frequency=frequency, filter=filt,
        attack=0.001, decay=dur * 0.8, release=dur * 0.2,
    )
