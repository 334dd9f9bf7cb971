from __future__ import annotations

from pydantic import Field, ValidationInfo, field_validator

from lightswitch.schemas.common import APIModel, SwitchState, _lower_or_none


# 50 Hz servo frame; a pulse can never be as long as the frame itself.
PWM_PERIOD_US = 20_000


class Calibration(APIModel):
    """
    Servo calibration.

    Angles map linearly onto the pulse range:
      pulse_us = min_pulse_width_us + (max - min) * angle / travel_range_deg

    on/off angles must sit strictly inside the travel range so a commanded
    press never drives the horn into its mechanical end stop.

    After a press the servo holds for on_hold_ms/off_hold_ms (settle_ms when
    unset), returns to idle_angle and waits settle_ms. idle_angle=null leaves
    the horn at the pressed position.
    """

    min_pulse_width_us: float = Field(..., gt=0, lt=PWM_PERIOD_US)
    max_pulse_width_us: float = Field(..., gt=0, lt=PWM_PERIOD_US)
    travel_range_deg: float = Field(default=180.0, gt=0, le=360)
    on_angle: float = Field(..., gt=0)
    off_angle: float = Field(..., gt=0)

    idle_angle: float | None = Field(default=90.0, ge=0, validate_default=True)
    settle_ms: int = Field(default=500, ge=0, le=1000)
    on_hold_ms: int | None = Field(default=None, ge=0, le=1000)
    off_hold_ms: int | None = Field(default=None, ge=0, le=1000)
    disable_after_move: bool = True

    # Cross-field checks are per-field so a 422 names the offending field.
    # They rely on declaration order: min/max/travel are validated first.

    @field_validator("max_pulse_width_us")
    @classmethod
    def _validate_max_above_min(cls, v: float, info: ValidationInfo):
        lo = info.data.get("min_pulse_width_us")
        if lo is not None and v <= lo:
            raise ValueError(f"must be greater than min_pulse_width_us ({lo:g})")
        return v

    @field_validator("on_angle", "off_angle")
    @classmethod
    def _validate_inside_travel(cls, v: float, info: ValidationInfo):
        travel = info.data.get("travel_range_deg")
        if travel is not None and v >= travel:
            raise ValueError(f"must be below travel_range_deg ({travel:g})")
        return v

    @field_validator("idle_angle")
    @classmethod
    def _validate_idle_within_travel(cls, v: float | None, info: ValidationInfo):
        travel = info.data.get("travel_range_deg")
        if v is not None and travel is not None and v > travel:
            raise ValueError(f"must not exceed travel_range_deg ({travel:g})")
        return v

    def angle_for(self, state: SwitchState) -> float:
        return self.on_angle if state == SwitchState.ON else self.off_angle

    def hold_ms_for(self, state: SwitchState) -> int:
        hold = self.on_hold_ms if state == SwitchState.ON else self.off_hold_ms
        return self.settle_ms if hold is None else hold

    def pulse_width_for_angle(self, angle: float) -> float:
        span = self.max_pulse_width_us - self.min_pulse_width_us
        return self.min_pulse_width_us + span * (angle / self.travel_range_deg)

    def pulse_width_for(self, state: SwitchState) -> float:
        return self.pulse_width_for_angle(self.angle_for(state))


DEFAULT_CALIBRATION = Calibration(
    min_pulse_width_us=1000,
    max_pulse_width_us=2000,
    on_angle=135,
    off_angle=45,
)


class SettingsTestRequest(APIModel):
    """Drive the servo with a candidate calibration without saving it."""

    state: SwitchState
    calibration: Calibration

    _lower_state = field_validator("state", mode="before")(_lower_or_none)
