# settings.py — externally owned, mutable configuration
# ------------------------------------------------------
# Purpose
#   • One dataclass per model, fields = tunable parameters with the
#     documented defaults.
#   • Objects are shared by reference: a settings UI mutates them in
#     place and every computation reads the latest value.
#   • `read_setting` is the only accessor the models use, so a plain
#     dict (or an object missing a field) works too and falls back to
#     the default instead of raising.
# ------------------------------------------------------
from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, fields
from typing import Any, TypeVar

__all__ = [
    "read_setting",
    "PhysicsSettings",
    "InharmonicitySettings",
    "EnvelopeSettings",
    "TwoStageDecaySettings",
    "TimeVaryingBrightnessSettings",
    "SustainDecaySettings",
    "SpectralBalanceSettings",
    "DynamicFilterSettings",
    "VelocityMappingSettings",
    "FrequencyEnvelopeSettings",
    "PitchRolloffSettings",
    "PedalSettings",
    "Settings",
]

T = TypeVar("T")


def read_setting(obj: Any, name: str, default: T) -> T:
    """Return ``obj.name`` (or ``obj[name]``), *default* if absent or None."""
    if obj is None:
        return default
    if isinstance(obj, Mapping):
        value = obj.get(name)
    else:
        value = getattr(obj, name, None)
    return default if value is None else value


def _from_mapping(cls, data: Mapping[str, Any] | None):
    known = {f.name for f in fields(cls)}
    return cls(**{k: v for k, v in (data or {}).items() if k in known})


@dataclass(slots=True)
class PhysicsSettings:
    """Global feature flags. A disabled feature yields its neutral value."""

    inharmonicity: bool = True
    velocity_timbre: bool = True
    per_partial_decay: bool = True
    time_varying_brightness: bool = True
    attack_noise: bool = True
    release_transient: bool = True
    pedal_coupling: bool = True
    sustain_decay: bool = True
    spectral_balance: bool = True
    velocity_attack: bool = True
    two_stage_decay: bool = True
    dynamic_filter: bool = True
    multi_string_unison: bool = True
    advanced_timbre: bool = True
    odd_even_harmonic_balance: bool = False
    frequency_compensation: bool = True
    frequency_envelope: bool = True
    pitch_harmonic_rolloff: bool = True


@dataclass(slots=True)
class InharmonicitySettings:
    """
    b_min / b_max : B at A0 / C8
    curve_exponent : shape of the A0→C8 interpolation (1 = plain exponential)
    bass_boost : multiplier on B below *bass_boost_threshold* (1.0 = off)
    bass_boost_threshold : Hz, boost fades to 1× at this frequency
    """

    b_min: float = 0.0001
    b_max: float = 0.02
    curve_exponent: float = 1.5
    bass_boost: float = 1.0
    bass_boost_threshold: float = 262.0


@dataclass(slots=True)
class EnvelopeSettings:
    attack: float = 0.01
    decay: float = 0.1
    sustain: float = 0.3


@dataclass(slots=True)
class TwoStageDecaySettings:
    base_decay1: float = 0.05
    base_decay2: float = 2.0
    velocity_multiplier1: float = 0.5
    velocity_multiplier2: float = 0.2
    amplitude_ratio_base: float = 0.7


@dataclass(slots=True)
class TimeVaryingBrightnessSettings:
    attack_brightness_peak: float = 0.3  # +30 % at the attack peak
    decay_brightness: float = 0.2        # +20 % right after the attack
    base_decay_time: float = 0.5         # s, decay window at velocity 0
    decay_time_range: float = 1.0        # s, added at velocity 127


@dataclass(slots=True)
class SustainDecaySettings:
    """
    base_time : T0, sustain decay time for A0 [s]
    decay_factor : k, T halves every 12/k semitones
    pedal_multiplier : extension applied while the pedal holds the note
    min_time / max_time : clamp range for the un-extended time [s]
    min_release / max_release : clamp range for the widened release [s]
    """

    base_time: float = 12.0
    decay_factor: float = 2.5
    pedal_multiplier: float = 2.5
    min_time: float = 0.5
    max_time: float = 15.0
    min_release: float = 1.0
    max_release: float = 8.0


@dataclass(slots=True)
class SpectralBalanceSettings:
    """High-shelf on the master output; its gain is pedal-automated."""

    frequency: float = 2000.0
    gain: float = -6.0           # dB with the pedal up
    q: float = 0.7
    pedal_down_ramp: float = 16.0  # s, ramp toward 0 dB
    pedal_up_ramp: float = 0.2     # s, ramp back to *gain*


@dataclass(slots=True)
class DynamicFilterSettings:
    base_decay_time: float = 0.5
    keytracked_multiplier: float = 20.0
    velocity_min_multiplier: float = 0.3
    velocity_max_multiplier: float = 1.0
    target_cutoff_multiplier: float = 2.0
    q: float = 1.0


@dataclass(slots=True)
class VelocityMappingSettings:
    velocity_exponent: float = 2.0
    target_spl: float = 85.0  # dB SPL the equal-loudness compensation aims at


@dataclass(slots=True)
class FrequencyEnvelopeSettings:
    """
    Pitch offsets in Hz on top of the sounding fundamental.
    initial_drift_amount / initial_drift_time : settles from sharp after the strike
    vibrato_rate / vibrato_depth : Hz / ±Hz after the attack
    vibrato_fade : s over which vibrato fades in once the attack is over
    release_drift_amount / release_drift_time : sag after key-up
    """

    initial_drift_amount: float = 2.0
    initial_drift_time: float = 0.05
    vibrato_rate: float = 6.0
    vibrato_depth: float = 5.0
    vibrato_fade: float = 0.1
    release_drift_amount: float = -3.0
    release_drift_time: float = 0.1


@dataclass(slots=True)
class PitchRolloffSettings:
    """Per-band harmonic rolloff; bands split at 100/500/1000/2000 Hz."""

    rates: tuple[float, ...] = (0.10, 0.12, 0.18, 0.25, 0.30)
    min_harmonics: tuple[int, ...] = (10, 8, 6, 4, 2)   # audible at velocity 0
    max_harmonics: tuple[int, ...] = (15, 12, 10, 6, 3)  # audible at velocity 127
    velocity_boost: float = 0.3


@dataclass(slots=True)
class PedalSettings:
    controller: int = 64  # CC number of the sustain pedal
    threshold: int = 64   # value >= threshold ⇒ pedal down


@dataclass(slots=True)
class Settings:
    """Bundle handed to the engine; each member is mutated independently."""

    physics: PhysicsSettings = field(default_factory=PhysicsSettings)
    inharmonicity: InharmonicitySettings = field(default_factory=InharmonicitySettings)
    envelope: EnvelopeSettings = field(default_factory=EnvelopeSettings)
    two_stage_decay: TwoStageDecaySettings = field(default_factory=TwoStageDecaySettings)
    brightness: TimeVaryingBrightnessSettings = field(default_factory=TimeVaryingBrightnessSettings)
    sustain_decay: SustainDecaySettings = field(default_factory=SustainDecaySettings)
    spectral_balance: SpectralBalanceSettings = field(default_factory=SpectralBalanceSettings)
    dynamic_filter: DynamicFilterSettings = field(default_factory=DynamicFilterSettings)
    velocity_mapping: VelocityMappingSettings = field(default_factory=VelocityMappingSettings)
    frequency_envelope: FrequencyEnvelopeSettings = field(default_factory=FrequencyEnvelopeSettings)
    pitch_rolloff: PitchRolloffSettings = field(default_factory=PitchRolloffSettings)
    pedal: PedalSettings = field(default_factory=PedalSettings)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Mapping[str, Any]] | None) -> "Settings":
        """Build from nested dicts; unknown keys are ignored, missing ones default."""
        data = data or {}
        defaults = cls()
        return cls(**{
            f.name: _from_mapping(type(getattr(defaults, f.name)), data.get(f.name))
            for f in fields(cls)
        })
