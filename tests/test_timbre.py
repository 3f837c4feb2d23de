import math
import random

import pytest

from pianophysics.settings import PhysicsSettings
from pianophysics.timbre import (
    TimbreClass,
    blended_timbre_class,
    brightness_index,
    dynamic_waveform,
    harmonic_rolloff,
    timbre_class,
)

OFF = PhysicsSettings(velocity_timbre=False)


def test_brightness_index_range() -> None:
    assert brightness_index(0) == 1.0
    assert brightness_index(127) == pytest.approx(1.5)
    assert brightness_index(64) == pytest.approx(1 + 0.5 * (64 / 127) ** 0.7)
    assert brightness_index(127, physics=OFF) == 1.0


@pytest.mark.parametrize(
    "velocity, expected",
    [
        (0, TimbreClass.PURE),
        (50, TimbreClass.PURE),
        (51, TimbreClass.SOME_HARMONICS),
        (95, TimbreClass.SOME_HARMONICS),
        (96, TimbreClass.MODERATE_HARMONICS),
        (127, TimbreClass.MODERATE_HARMONICS),
    ],
)
def test_timbre_class_thresholds(velocity: int, expected: TimbreClass) -> None:
    assert timbre_class(velocity) is expected


def test_timbre_class_values_name_oscillator_shapes() -> None:
    assert TimbreClass.PURE.value == "sine"
    assert TimbreClass.SOME_HARMONICS.value == "triangle"
    assert TimbreClass.MODERATE_HARMONICS.value == "square"
    assert TimbreClass.MODERATE_HARMONICS.odd_only
    assert not TimbreClass.SOME_HARMONICS.odd_only


def test_timbre_class_disabled_is_pure() -> None:
    assert timbre_class(127, physics=OFF) is TimbreClass.PURE


def test_rolloff_never_exceeds_one() -> None:
    for velocity in range(0, 128, 7):
        for k in range(1, 30):
            assert 0.0 <= harmonic_rolloff(k, velocity) <= 1.0


def test_rolloff_odd_only_class_drops_even_harmonics() -> None:
    assert harmonic_rolloff(2, 127) == 0.0
    assert harmonic_rolloff(4, 127) == 0.0
    assert harmonic_rolloff(3, 127) > 0.0
    assert harmonic_rolloff(2, 80) > 0.0


def test_rolloff_formula_mid_velocity() -> None:
    v = 80 / 127
    k = 3
    expected = math.exp(-0.15 * k) * (1 + 0.3 * v * math.exp(-k / 10)) * (1 + 0.2 * v)
    assert harmonic_rolloff(k, 80) == pytest.approx(min(1.0, expected))


def test_rolloff_disabled_is_plain_exponential() -> None:
    assert harmonic_rolloff(4, 127, physics=OFF) == pytest.approx(math.exp(-0.6))


def test_blended_class_without_rng_is_deterministic() -> None:
    for velocity in (0, 50, 51, 95, 96, 127):
        assert blended_timbre_class(velocity) is timbre_class(velocity)


def test_blended_class_only_varies_near_a_threshold() -> None:
    rng = random.Random(7)
    assert {blended_timbre_class(20, rng) for _ in range(50)} == {TimbreClass.PURE}
    near_edge = {blended_timbre_class(51, rng, width=0.05) for _ in range(200)}
    assert near_edge == {TimbreClass.PURE, TimbreClass.SOME_HARMONICS}


def test_dynamic_waveform_grows_with_velocity() -> None:
    assert dynamic_waveform(0) == (1.0,)
    soft = dynamic_waveform(20)
    loud = dynamic_waveform(127)
    assert len(soft) == 4
    assert len(loud) == 21
    assert loud[0] == 1.0
    assert all(0.0 < a <= 1.0 for a in loud)
    assert loud[3] > soft[3]


def test_dynamic_waveform_soft_regime() -> None:
    v = 20 / 127
    assert dynamic_waveform(20)[1] == pytest.approx(math.exp(-0.5) * (1 + 0.4 * v ** 0.8))


def test_dynamic_waveform_needs_advanced_timbre() -> None:
    assert dynamic_waveform(127, physics=PhysicsSettings(advanced_timbre=False)) is None
