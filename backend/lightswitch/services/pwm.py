from __future__ import annotations

from typing import Optional

from rpi_hardware_pwm import HardwarePWM, HardwarePWMException

from lightswitch.errors import DriveError
from lightswitch.settings import debug_enabled


def _log(msg: str) -> None:
    if debug_enabled():
        print(msg)


class PwmDriver:
    """
    Thin wrapper around :class:`rpi_hardware_pwm.HardwarePWM` that speaks pulse
    widths (microseconds) instead of duty-cycle percentages.

    The sysfs handle is opened lazily on the first `enable()` so the API can start
    (and report a DriveError per request) even if the PWM overlay is missing.
    """

    def __init__(self, channel: int = 0, chip: int = 0, frequency_hz: float = 50.0):
        self.channel = channel
        self.chip = chip
        self.frequency_hz = frequency_hz
        self._pwm: Optional[HardwarePWM] = None

    @property
    def period_us(self) -> float:
        return 1_000_000.0 / self.frequency_hz

    def duty_cycle_for(self, pulse_width_us: float) -> float:
        duty = (pulse_width_us / self.period_us) * 100.0
        if not 0.0 <= duty <= 100.0:
            raise DriveError(f"Pulse width {pulse_width_us:g}us does not fit a {self.period_us:g}us period")
        return duty

    def _handle(self) -> HardwarePWM:
        if self._pwm is None:
            try:
                self._pwm = HardwarePWM(pwm_channel=self.channel, hz=self.frequency_hz, chip=self.chip)
            except (HardwarePWMException, OSError) as e:
                raise DriveError(f"PWM chip {self.chip} channel {self.channel} unavailable: {e}")
        return self._pwm

    def enable(self, pulse_width_us: float) -> None:
        duty = self.duty_cycle_for(pulse_width_us)
        try:
            self._handle().start(duty)
        except (HardwarePWMException, OSError) as e:
            raise DriveError(f"Failed to start PWM: {e}")
        _log(f"[PWM] enable {pulse_width_us:.0f}us ({duty:.2f}%)")

    def set_pulse_width(self, pulse_width_us: float) -> None:
        duty = self.duty_cycle_for(pulse_width_us)
        try:
            self._handle().change_duty_cycle(duty)
        except (HardwarePWMException, OSError) as e:
            raise DriveError(f"Failed to set PWM duty cycle: {e}")
        _log(f"[PWM] set {pulse_width_us:.0f}us ({duty:.2f}%)")

    def disable(self) -> None:
        if self._pwm is None:
            return
        try:
            self._pwm.stop()
        except (HardwarePWMException, OSError) as e:
            raise DriveError(f"Failed to stop PWM: {e}")
        _log("[PWM] disable")


class MockPwmDriver:
    """
    Records pulses instead of writing hardware (USE_MOCK_PWM=true).

    `calls` holds ("enable" | "set" | "disable", pulse_width_us or None) tuples.
    Set `fail_with` to make every write raise a DriveError until it is cleared.
    """

    def __init__(self, frequency_hz: float = 50.0):
        self.frequency_hz = frequency_hz
        self.calls: list[tuple[str, Optional[float]]] = []
        self.enabled = False
        self.pulse_width_us: Optional[float] = None
        self.fail_with: Optional[str] = None

    def _check(self) -> None:
        if self.fail_with:
            raise DriveError(self.fail_with)

    def enable(self, pulse_width_us: float) -> None:
        self._check()
        self.enabled = True
        self.pulse_width_us = pulse_width_us
        self.calls.append(("enable", pulse_width_us))

    def set_pulse_width(self, pulse_width_us: float) -> None:
        self._check()
        self.pulse_width_us = pulse_width_us
        self.calls.append(("set", pulse_width_us))

    def disable(self) -> None:
        self._check()
        self.enabled = False
        self.calls.append(("disable", None))

    def pulses(self) -> list[float]:
        return [p for action, p in self.calls if p is not None]
