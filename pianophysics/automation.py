# automation.py — pedal-linked spectral-balance gain
# ---------------------------------------------------
# Purpose
#   • One global high-shelf gain (dB). Pedal down ramps it slowly toward
#     0 dB (strings ringing freely open the top end), pedal up ramps it
#     quickly back to the configured gain.
#   • A flip in mid-ramp samples the live interpolated value first and
#     starts the new ramp from there, so the gain never jumps.
#   • When a ramp completes it is marked inactive and its end value
#     becomes the effective baseline.
# Usage
#   auto = PedalGainAutomation(clock, settings.spectral_balance, settings.physics)
#   auto.on_pedal(True)
#   auto.value()
# ---------------------------------------------------
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Final, Optional

from .clock import Clock, ScheduleHandle
from .settings import read_setting
from .voice import GainParam

__all__ = ["GainAutomation", "PedalGainAutomation"]

_LOGGER = logging.getLogger("pianophysics.automation")

_PEDAL_DOWN_TARGET_DB: Final = 0.0
_DEFAULT_GAIN_DB: Final = -6.0
_DEFAULT_DOWN_RAMP: Final = 16.0
_DEFAULT_UP_RAMP: Final = 0.2


@dataclass(slots=True)
class GainAutomation:
    """Linear ramp start_value → target_value over [start_time, end_time]."""

    start_value: float
    target_value: float
    start_time: float
    end_time: float
    active: bool = True

    def value_at(self, t: float) -> float:
        if not self.active or t >= self.end_time:
            return self.target_value
        if t <= self.start_time:
            return self.start_value
        frac = (t - self.start_time) / (self.end_time - self.start_time)
        return self.start_value + (self.target_value - self.start_value) * frac


class PedalGainAutomation:
    def __init__(
        self,
        clock: Clock,
        settings: Any = None,
        physics: Any = None,
        param: Optional[GainParam] = None,
    ):
        self.clock = clock
        self.settings = settings
        self.physics = physics
        self.param = param

        now = clock.now()
        gain = self._user_gain()
        self.ramp = GainAutomation(gain, gain, now, now, active=False)
        self.effective_gain = gain
        self.pedal_down = False
        self._completion: Optional[ScheduleHandle] = None

    # ------------------------------------------------------------------
    def _enabled(self) -> bool:
        return bool(read_setting(self.physics, "spectral_balance", True))

    def _user_gain(self) -> float:
        return float(read_setting(self.settings, "gain", _DEFAULT_GAIN_DB))

    def _target(self, down: bool) -> float:
        return _PEDAL_DOWN_TARGET_DB if down else self._user_gain()

    def value(self, now: Optional[float] = None) -> float:
        """Current shelf gain in dB (0 dB, i.e. flat, when disabled)."""
        if not self._enabled():
            return 0.0
        if self.ramp.active:
            return self.ramp.value_at(self.clock.now() if now is None else now)
        if not self.pedal_down:
            # settled with the pedal up: follow the user setting live
            self.effective_gain = self._user_gain()
        return self.effective_gain

    # ------------------------------------------------------------------
    def on_pedal(self, down: bool) -> Optional[GainAutomation]:
        """Retarget on a pedal flip; returns the new ramp (None if ignored)."""
        if down == self.pedal_down:
            return None

        now = self.clock.now()
        if not self._enabled():
            # no ramp while bypassed; settle on the new state's target so
            # re-enabling starts from where the pedal actually is
            self._cancel_completion()
            self.pedal_down = down
            target = self._target(down)
            self.ramp = GainAutomation(target, target, now, now, active=False)
            self.effective_gain = target
            if self.param is not None:
                self.param.cancel_and_hold(now, target)
            return None

        # sample before cancelling; afterwards the old ramp is frozen
        current = self.value(now)
        self._cancel_completion()
        self.pedal_down = down

        target = self._target(down)
        if down:
            duration = float(read_setting(self.settings, "pedal_down_ramp", _DEFAULT_DOWN_RAMP))
        else:
            duration = float(read_setting(self.settings, "pedal_up_ramp", _DEFAULT_UP_RAMP))
        duration = max(0.0, duration)

        self.ramp = GainAutomation(current, target, now, now + duration, active=duration > 0)
        if self.param is not None:
            self.param.cancel_and_hold(now, current)
            self.param.linear_ramp_to(target, now + duration)

        if duration > 0:
            self._completion = self.clock.call_at(now + duration, self._complete)
        else:
            self.effective_gain = target
        _LOGGER.debug("gain ramp %.2f → %.2f dB over %.2fs (pedal %s)",
                      current, target, duration, "down" if down else "up")
        return self.ramp

    def cancel(self) -> None:
        """Freeze the gain at its live value and drop any pending ramp."""
        if not self.ramp.active:
            return
        now = self.clock.now()
        held = self.ramp.value_at(now)
        self._cancel_completion()
        self.ramp = GainAutomation(held, held, now, now, active=False)
        self.effective_gain = held
        if self.param is not None:
            self.param.cancel_and_hold(now, held)

    # ------------------------------------------------------------------
    def _cancel_completion(self) -> None:
        if self._completion is not None:
            self._completion.cancel()
            self._completion = None

    def _complete(self) -> None:
        self._completion = None
        self.ramp.active = False
        self.effective_gain = self.ramp.target_value
