import pytest

from pianophysics.automation import GainAutomation, PedalGainAutomation
from pianophysics.clock import ManualClock
from pianophysics.settings import PhysicsSettings, SpectralBalanceSettings


class FakeParam:
    def __init__(self) -> None:
        self.calls: list[tuple] = []

    def cancel_and_hold(self, at: float, value: float) -> None:
        self.calls.append(("hold", at, value))

    def linear_ramp_to(self, value: float, end_time: float) -> None:
        self.calls.append(("ramp", value, end_time))


def test_gain_automation_interpolates() -> None:
    ramp = GainAutomation(-6.0, 0.0, 0.0, 16.0)
    assert ramp.value_at(-1.0) == -6.0
    assert ramp.value_at(8.0) == pytest.approx(-3.0)
    assert ramp.value_at(16.0) == 0.0
    ramp.active = False
    assert ramp.value_at(1.0) == 0.0


def test_pedal_down_ramps_slowly_to_flat() -> None:
    clock = ManualClock()
    auto = PedalGainAutomation(clock, SpectralBalanceSettings(), PhysicsSettings())
    assert auto.value() == -6.0

    auto.on_pedal(True)
    clock.advance_to(8.0)
    assert auto.value() == pytest.approx(-3.0)
    clock.advance_to(20.0)
    assert not auto.ramp.active
    assert auto.value() == 0.0


def test_pedal_up_ramps_back_quickly() -> None:
    clock = ManualClock()
    auto = PedalGainAutomation(clock, SpectralBalanceSettings(), PhysicsSettings())
    auto.on_pedal(True)
    clock.advance_to(20.0)
    auto.on_pedal(False)
    clock.advance_to(20.1)
    assert auto.value() == pytest.approx(-3.0)
    clock.advance_to(21.0)
    assert auto.value() == pytest.approx(-6.0)


def test_retrigger_mid_ramp_starts_from_live_value() -> None:
    clock = ManualClock()
    param = FakeParam()
    auto = PedalGainAutomation(clock, SpectralBalanceSettings(), PhysicsSettings(), param)
    auto.on_pedal(True)
    clock.advance_to(4.0)
    live = auto.value()
    assert live == pytest.approx(-4.5)

    ramp = auto.on_pedal(False)
    assert ramp.start_value == pytest.approx(live)
    assert auto.value() == pytest.approx(live)
    assert param.calls[-2] == ("hold", 4.0, pytest.approx(live))
    assert param.calls[-1] == ("ramp", -6.0, pytest.approx(4.2))

    clock.advance_to(4.1)
    assert auto.value() == pytest.approx((live - 6.0) / 2)
    # the superseded down-ramp completion never lands
    clock.advance_to(30.0)
    assert auto.value() == pytest.approx(-6.0)
    assert clock.pending_count == 0


def test_repeated_state_is_ignored() -> None:
    clock = ManualClock()
    auto = PedalGainAutomation(clock, SpectralBalanceSettings(), PhysicsSettings())
    assert auto.on_pedal(False) is None
    assert auto.on_pedal(True) is not None
    assert auto.on_pedal(True) is None


def test_disabled_is_flat_and_inert() -> None:
    clock = ManualClock()
    param = FakeParam()
    auto = PedalGainAutomation(clock, SpectralBalanceSettings(),
                               PhysicsSettings(spectral_balance=False), param)
    assert auto.value() == 0.0
    assert auto.on_pedal(True) is None
    assert auto.pedal_down
    assert param.calls == [("hold", 0.0, 0.0)]
    assert clock.pending_count == 0


def test_settled_gain_follows_user_setting() -> None:
    clock = ManualClock()
    cfg = SpectralBalanceSettings()
    auto = PedalGainAutomation(clock, cfg, PhysicsSettings())
    cfg.gain = -9.0
    assert auto.value() == -9.0


def test_cancel_freezes_gain() -> None:
    clock = ManualClock()
    auto = PedalGainAutomation(clock, SpectralBalanceSettings(), PhysicsSettings())
    auto.on_pedal(True)
    clock.advance_to(8.0)
    auto.cancel()
    clock.advance_to(30.0)
    assert auto.value() == pytest.approx(-3.0)


def test_pedal_flip_while_disabled_drops_the_running_ramp() -> None:
    clock = ManualClock()
    param = FakeParam()
    physics = PhysicsSettings()
    auto = PedalGainAutomation(clock, SpectralBalanceSettings(), physics, param)
    auto.on_pedal(True)
    clock.advance_to(2.0)

    physics.spectral_balance = False
    assert auto.on_pedal(False) is None
    assert clock.pending_count == 0
    assert param.calls[-1] == ("hold", 2.0, -6.0)

    physics.spectral_balance = True
    clock.advance_to(4.0)
    assert auto.value() == pytest.approx(-6.0)
    clock.advance_to(30.0)
    assert auto.value() == pytest.approx(-6.0)

    # and back down again ramps from the settled pedal-up gain
    ramp = auto.on_pedal(True)
    assert ramp.start_value == pytest.approx(-6.0)
