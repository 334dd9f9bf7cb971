from __future__ import annotations

from pydantic import field_validator

from lightswitch.schemas.common import APIModel, SwitchState, _lower_or_none
from lightswitch.schemas.schedule import ScheduleResponse


class SwitchRequest(APIModel):
    state: SwitchState

    _lower_state = field_validator("state", mode="before")(_lower_or_none)


class SwitchResponse(APIModel):
    state: SwitchState
    pulse_width_us: float


class StateResponse(APIModel):
    # None until the first successful move since startup.
    state: SwitchState | None = None
    schedule: ScheduleResponse | None = None
