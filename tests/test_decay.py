import math

import pytest

from pianophysics.decay import (
    partial_amplitude_at,
    partial_decay_time,
    per_partial_envelope,
    release_time,
    two_stage_decay,
)
from pianophysics.settings import PhysicsSettings, TwoStageDecaySettings


def test_partial_decay_time_falls_with_partial_number() -> None:
    taus = [partial_decay_time(k, 2.0) for k in range(1, 40)]
    assert taus[0] == 2.0
    assert taus[1] == pytest.approx(2.0 * math.exp(-0.25))
    assert all(b <= a for a, b in zip(taus, taus[1:]))


def test_partial_decay_time_floor() -> None:
    assert partial_decay_time(50, 2.0) == pytest.approx(0.2)
    assert min(partial_decay_time(k, 3.0) for k in range(1, 100)) >= 0.3


def test_partial_decay_time_disabled() -> None:
    off = PhysicsSettings(per_partial_decay=False)
    assert partial_decay_time(10, 2.0, physics=off) == 2.0


def test_partial_amplitude_at() -> None:
    assert partial_amplitude_at(1, 0.0, 2.0) == 1.0
    assert partial_amplitude_at(1, 2.0, 2.0) == pytest.approx(math.exp(-1))
    assert partial_amplitude_at(3, 1.0, 2.0, initial=0.5) == pytest.approx(
        0.5 * math.exp(-1.0 / partial_decay_time(3, 2.0)))
    assert partial_amplitude_at(1, 1.0, 0.0) == 0.0


def test_per_partial_envelope_weights_fundamental_and_mean() -> None:
    env = per_partial_envelope(1.0, 10)
    mean = sum(partial_decay_time(k, 1.0) for k in range(1, 11)) / 10
    assert env.decay == pytest.approx(0.5 + 0.5 * mean)
    assert env.sustain == 0.3
    assert 0.5 < env.decay < 1.0


def test_per_partial_envelope_disabled() -> None:
    env = per_partial_envelope(1.0, physics=PhysicsSettings(per_partial_decay=False))
    assert env.decay == 1.0


def test_two_stage_decay_velocity_extremes() -> None:
    soft = two_stage_decay(0)
    assert soft.decay1 == pytest.approx(0.05)
    assert soft.decay2 == pytest.approx(2.0)
    assert soft.amplitude_ratio == pytest.approx(0.3)

    loud = two_stage_decay(127)
    assert loud.decay1 == pytest.approx(0.075)
    assert loud.decay2 == pytest.approx(2.4)
    assert loud.amplitude_ratio == pytest.approx(0.7)


def test_two_stage_decay_clamps() -> None:
    wild = TwoStageDecaySettings(base_decay1=1.0, base_decay2=50.0, amplitude_ratio_base=5.0)
    d = two_stage_decay(127, settings=wild)
    assert d.decay1 == 0.2
    assert d.decay2 == 5.0
    assert d.amplitude_ratio == 1.0


def test_two_stage_decay_disabled_returns_bases() -> None:
    d = two_stage_decay(127, physics=PhysicsSettings(two_stage_decay=False))
    assert (d.decay1, d.decay2, d.amplitude_ratio) == (0.05, 2.0, 0.7)


def test_release_time_is_longer_in_the_bass() -> None:
    assert release_time(21) == pytest.approx(2.0)
    assert release_time(108) == pytest.approx(0.01)
    assert release_time(25) == pytest.approx(1.0)
    assert release_time(30) > release_time(40) > release_time(50) > release_time(60)
