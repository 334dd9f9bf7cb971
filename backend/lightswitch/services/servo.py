from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional, Protocol

from lightswitch.schemas.common import SwitchState
from lightswitch.schemas.settings import Calibration
from lightswitch.settings import debug_enabled


def _log(msg: str) -> None:
    if debug_enabled():
        print(msg)


class PwmOutput(Protocol):
    def enable(self, pulse_width_us: float) -> None: ...

    def set_pulse_width(self, pulse_width_us: float) -> None: ...

    def disable(self) -> None: ...


@dataclass(frozen=True)
class MoveResult:
    state: SwitchState
    pulse_width_us: float


class ServoController:
    """
    Moves the switch servo to its on/off position.

    Calibration is read through `get_calibration` on every move, so a settings
    update takes effect on the next press without restarting anything.
    All hardware access goes through one lock: an immediate /switch and a
    scheduled flip never interleave pulse writes (last writer wins).
    """

    def __init__(
        self,
        driver: PwmOutput,
        get_calibration: Callable[[], Calibration],
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.driver = driver
        self._get_calibration = get_calibration
        self._sleep = sleep
        self._drive_lock = threading.Lock()
        self.last_state: Optional[SwitchState] = None

    def set_state(self, state: SwitchState) -> MoveResult:
        result = self._move(state, self._get_calibration())
        self.last_state = state
        return result

    def test_move(self, state: SwitchState, calibration: Calibration) -> MoveResult:
        """Press with a candidate calibration; neither it nor the state is kept."""
        return self._move(state, calibration)

    def park(self, calibration: Calibration) -> Optional[float]:
        """Move straight to `calibration.idle_angle`; returns the pulse used, or None if idle is off."""
        if calibration.idle_angle is None:
            return None
        pulse = calibration.pulse_width_for_angle(calibration.idle_angle)

        with self._drive_lock:
            _log(f"[SERVO] idle: {calibration.idle_angle:g}deg -> {pulse:.0f}us")
            self.driver.enable(pulse)
            try:
                self._sleep(calibration.settle_ms / 1000.0)
            finally:
                if calibration.disable_after_move:
                    self.driver.disable()
        return pulse

    def _move(self, state: SwitchState, calibration: Calibration) -> MoveResult:
        pulse = calibration.pulse_width_for(state)
        hold_s = calibration.hold_ms_for(state) / 1000.0
        settle_s = calibration.settle_ms / 1000.0

        with self._drive_lock:
            _log(f"[SERVO] {state.value}: {calibration.angle_for(state):g}deg -> {pulse:.0f}us")
            self.driver.enable(pulse)
            try:
                self._sleep(hold_s)

                if calibration.idle_angle is not None:
                    self.driver.set_pulse_width(calibration.pulse_width_for_angle(calibration.idle_angle))
                    self._sleep(settle_s)
            finally:
                # Once enabled, never leave the horn pushing against the rocker.
                if calibration.disable_after_move:
                    self.driver.disable()

        return MoveResult(state=state, pulse_width_us=pulse)
