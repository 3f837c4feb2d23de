# brightness.py — attack time and brightness over the life of a note
# -------------------------------------------------------------
# Purpose
#   • velocity-dependent attack time (harder strike → faster attack)
#   • brightness multiplier vs. time since attack:
#       attack window  : 1 + peak · sin(π·t/T_att) · v
#       after attack   : 1 + decay · (1 - progress) · v, linear over a
#                        window that grows with velocity
#   • keytracked low-pass cutoff that closes as the note decays
# -------------------------------------------------------------
from __future__ import annotations

import math
from typing import Any, Final, Optional

from .settings import read_setting
from .utils import clamp, normalize_velocity

__all__ = [
    "attack_time_for_velocity",
    "brightness_multiplier",
    "initial_filter_cutoff",
    "filter_cutoff_at",
]

_DEFAULT_ATTACK: Final = 0.01
_FIXED_ATTACK: Final = 0.002  # piano-like attack when velocity attack is off
_FASTEST: Final = 0.3         # × base at velocity 127
_SLOWEST: Final = 1.3         # × base at velocity 0

_CUTOFF_MIN: Final = 200.0
_CUTOFF_MAX: Final = 20_000.0

# ------------------------------------------------------------------
# Attack time
# ------------------------------------------------------------------

def attack_time_for_velocity(
    velocity: float,
    primary_attack: Optional[float] = None,
    *,
    envelope: Any = None,
    physics: Any = None,
) -> float:
    """Attack time scaled 0.3×–1.3× around the primary envelope attack."""
    if primary_attack is None:
        primary_attack = read_setting(envelope, "attack", None)

    if not read_setting(physics, "velocity_attack", True):
        return _FIXED_ATTACK if primary_attack is None else float(primary_attack)

    base = _DEFAULT_ATTACK if primary_attack is None else float(primary_attack)
    v = normalize_velocity(velocity)
    return base * (_FASTEST + (1.0 - v) * (_SLOWEST - _FASTEST))

# ------------------------------------------------------------------
# Time-varying brightness
# ------------------------------------------------------------------

def brightness_multiplier(
    velocity: float,
    elapsed: float,
    *,
    settings: Any = None,
    envelope: Any = None,
    physics: Any = None,
    attack_time: Optional[float] = None,
) -> float:
    """Brightness multiplier at *elapsed* seconds after the attack.

    Parameters
    ----------
    velocity : MIDI velocity (clamped)
    elapsed : seconds since note-on; negative values count as 0
    attack_time : attack window, defaults to `attack_time_for_velocity`
    """
    if not read_setting(physics, "time_varying_brightness", True):
        return 1.0

    peak = float(read_setting(settings, "attack_brightness_peak", 0.3))
    tail = float(read_setting(settings, "decay_brightness", 0.2))
    base_window = float(read_setting(settings, "base_decay_time", 0.5))
    window_range = float(read_setting(settings, "decay_time_range", 1.0))

    v = normalize_velocity(velocity)
    if attack_time is None:
        attack_time = attack_time_for_velocity(velocity, envelope=envelope, physics=physics)
    t = max(0.0, elapsed)

    if attack_time > 0 and t < attack_time:
        return 1.0 + peak * math.sin(t / attack_time * math.pi) * v

    window = base_window + v * window_range  # louder → slower decay
    progress = 1.0 if window <= 0 else min(1.0, (t - attack_time) / window)
    return max(0.0, 1.0 + tail * (1.0 - progress) * v)

# ------------------------------------------------------------------
# Dynamic low-pass
# ------------------------------------------------------------------

def initial_filter_cutoff(velocity: float, frequency: float, *, settings: Any = None,
                          physics: Any = None) -> float:
    if not read_setting(physics, "dynamic_filter", True):
        return _CUTOFF_MAX
    keytrack = float(read_setting(settings, "keytracked_multiplier", 20.0))
    lo = float(read_setting(settings, "velocity_min_multiplier", 0.3))
    hi = float(read_setting(settings, "velocity_max_multiplier", 1.0))

    base = min(_CUTOFF_MAX, frequency * keytrack)
    v = normalize_velocity(velocity)
    return clamp(base * (lo + (hi - lo) * v), _CUTOFF_MIN, _CUTOFF_MAX)


def filter_cutoff_at(initial: float, elapsed: float, frequency: float, *, settings: Any = None,
                     physics: Any = None) -> float:
    """Exponential close from *initial* toward target·f0; treble closes faster."""
    if not read_setting(physics, "dynamic_filter", True):
        return initial
    base_decay = float(read_setting(settings, "base_decay_time", 0.5))
    target_mult = float(read_setting(settings, "target_cutoff_multiplier", 2.0))

    decay = base_decay / math.sqrt(max(frequency, 1e-6) / 440.0)
    target = max(_CUTOFF_MIN, frequency * target_mult)
    if decay <= 0:
        return max(target, min(initial, target))
    current = target + (initial - target) * math.exp(-max(0.0, elapsed) / decay)
    return max(target, min(initial, current))
