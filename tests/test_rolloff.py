import math

import pytest

from pianophysics.rolloff import max_audible_harmonics, pitch_harmonic_amplitude, rolloff_rate
from pianophysics.settings import PhysicsSettings, PitchRolloffSettings

OFF = PhysicsSettings(pitch_harmonic_rolloff=False)


@pytest.mark.parametrize(
    "frequency, rate",
    [(55.0, 0.10), (100.0, 0.12), (440.0, 0.12), (880.0, 0.18), (1500.0, 0.25), (4000.0, 0.30)],
)
def test_rate_by_band(frequency: float, rate: float) -> None:
    assert rolloff_rate(frequency) == rate


def test_audible_harmonics_grow_with_velocity() -> None:
    assert max_audible_harmonics(55.0, 0) == 10
    assert max_audible_harmonics(55.0, 127) == 15
    assert max_audible_harmonics(4000.0, 0) == 2
    assert max_audible_harmonics(4000.0, 127) == 3
    assert max_audible_harmonics(440.0, 64) in range(8, 13)


def test_amplitude_formula_inside_the_audible_range() -> None:
    expected = math.exp(-3 * 0.12) * (1 + 1.0 * 0.3 * math.exp(-3 / 8))
    assert pitch_harmonic_amplitude(3, 440.0, 127) == pytest.approx(min(1.0, expected))


def test_harmonics_past_the_audible_count_fall_away() -> None:
    inside = pitch_harmonic_amplitude(3, 4000.0, 127)
    outside = pitch_harmonic_amplitude(5, 4000.0, 127)
    plain = math.exp(-5 * 0.30) * (1 + 0.3 * math.exp(-5 / 8))
    assert outside == pytest.approx(plain * math.exp(-2 * 2))
    assert outside < inside


def test_treble_is_duller_than_bass() -> None:
    assert pitch_harmonic_amplitude(6, 3000.0, 100) < pitch_harmonic_amplitude(6, 60.0, 100)


def test_settings_override_the_tables() -> None:
    s = PitchRolloffSettings(rates=(0.5, 0.5, 0.5, 0.5, 0.5), velocity_boost=0.0)
    assert rolloff_rate(55.0, settings=s) == 0.5
    assert pitch_harmonic_amplitude(2, 55.0, 127, settings=s) == pytest.approx(math.exp(-1.0))


def test_disabled_is_flat() -> None:
    assert rolloff_rate(4000.0, physics=OFF) == 0.15
    assert max_audible_harmonics(4000.0, 127, physics=OFF) == 20
    assert pitch_harmonic_amplitude(4, 4000.0, 127, physics=OFF) == pytest.approx(math.exp(-0.6))
