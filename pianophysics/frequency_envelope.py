# frequency_envelope.py — pitch movement over a note's life
# ----------------------------------------------------------
#   f(t) = f0 + Δf·e^(-t/τ_drift)                 initial drift
#             + A_v·sin(2π f_v t)·fade(t)          vibrato, after the attack
#             + Δf_rel·(1 - e^(-t_rel/τ_rel))       release drift, after key-up
# Vibrato stops at key-up and the release drift takes over.
# All offsets are in Hz and work on scalars or numpy arrays, so a backend
# can sample a whole block at once.
# ----------------------------------------------------------
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Final, Optional

import numpy as np

from .settings import read_setting

__all__ = [
    "FrequencyEnvelope",
    "frequency_envelope",
    "initial_pitch_drift",
    "vibrato",
    "release_pitch_drift",
    "modulated_frequency",
]

_DRIFT_AMOUNT: Final = 2.0
_DRIFT_TIME: Final = 0.05
_VIBRATO_RATE: Final = 6.0
_VIBRATO_DEPTH: Final = 5.0
_VIBRATO_FADE: Final = 0.1
_RELEASE_AMOUNT: Final = -3.0
_RELEASE_TIME: Final = 0.1


def _enabled(physics: Any) -> bool:
    return bool(read_setting(physics, "frequency_envelope", True))


def _setting(settings: Any, name: str, default: float) -> float:
    return float(read_setting(settings, name, default))


def initial_pitch_drift(since_attack, *, settings: Any = None, physics: Any = None):
    """Offset that starts at the drift amount and settles to 0."""
    if not _enabled(physics):
        return 0.0
    amount = _setting(settings, "initial_drift_amount", _DRIFT_AMOUNT)
    tau = max(_setting(settings, "initial_drift_time", _DRIFT_TIME), 1e-6)
    return amount * np.exp(-np.maximum(since_attack, 0.0) / tau)


def vibrato(since_attack, attack_time: float, *, settings: Any = None, physics: Any = None):
    """Periodic offset, silent during the attack then faded in linearly."""
    if not _enabled(physics):
        return 0.0
    rate = _setting(settings, "vibrato_rate", _VIBRATO_RATE)
    depth = _setting(settings, "vibrato_depth", _VIBRATO_DEPTH)
    fade_time = _setting(settings, "vibrato_fade", _VIBRATO_FADE)

    t = np.asarray(since_attack, dtype=np.float64)
    into = t - attack_time
    if fade_time > 0:
        gain = np.clip(into / fade_time, 0.0, 1.0)
    else:
        gain = (into >= 0).astype(np.float64)
    return depth * np.sin(2 * np.pi * rate * t) * gain


def release_pitch_drift(since_release, *, settings: Any = None, physics: Any = None):
    """Sag from 0 toward the release drift amount once the key is up."""
    if not _enabled(physics):
        return 0.0
    amount = _setting(settings, "release_drift_amount", _RELEASE_AMOUNT)
    tau = max(_setting(settings, "release_drift_time", _RELEASE_TIME), 1e-6)
    return amount * (1.0 - np.exp(-np.maximum(since_release, 0.0) / tau))


def modulated_frequency(
    base: float,
    since_attack,
    since_release,
    attack_time: float,
    *,
    settings: Any = None,
    physics: Any = None,
):
    """*base* plus every pitch offset; ``since_release <= 0`` means still held."""
    if not _enabled(physics):
        return base
    held = np.asarray(since_release) <= 0
    return (
        base
        + initial_pitch_drift(since_attack, settings=settings, physics=physics)
        + np.where(held, vibrato(since_attack, attack_time, settings=settings, physics=physics), 0.0)
        + release_pitch_drift(since_release, settings=settings, physics=physics)
    )


@dataclass(slots=True, frozen=True)
class FrequencyEnvelope:
    """Resolved pitch-movement parameters for one note."""

    attack_time: float
    initial_drift_amount: float = _DRIFT_AMOUNT
    initial_drift_time: float = _DRIFT_TIME
    vibrato_rate: float = _VIBRATO_RATE
    vibrato_depth: float = _VIBRATO_DEPTH
    vibrato_fade: float = _VIBRATO_FADE
    release_drift_amount: float = _RELEASE_AMOUNT
    release_drift_time: float = _RELEASE_TIME

    def offset(self, since_attack, since_release=0.0):
        """Hz to add to the sounding fundamental."""
        return modulated_frequency(0.0, since_attack, since_release, self.attack_time, settings=self)


def frequency_envelope(attack_time: float, *, settings: Any = None,
                       physics: Any = None) -> Optional[FrequencyEnvelope]:
    """Snapshot the current settings for a note; None when the feature is off."""
    if not _enabled(physics):
        return None
    return FrequencyEnvelope(
        attack_time=attack_time,
        initial_drift_amount=_setting(settings, "initial_drift_amount", _DRIFT_AMOUNT),
        initial_drift_time=_setting(settings, "initial_drift_time", _DRIFT_TIME),
        vibrato_rate=_setting(settings, "vibrato_rate", _VIBRATO_RATE),
        vibrato_depth=_setting(settings, "vibrato_depth", _VIBRATO_DEPTH),
        vibrato_fade=_setting(settings, "vibrato_fade", _VIBRATO_FADE),
        release_drift_amount=_setting(settings, "release_drift_amount", _RELEASE_AMOUNT),
        release_drift_time=_setting(settings, "release_drift_time", _RELEASE_TIME),
    )
