from __future__ import annotations

from datetime import datetime, timezone

from pydantic import field_validator

from lightswitch.schemas.common import APIModel, SwitchState, _lower_or_none


def _as_utc(v: datetime) -> datetime:
    if v.tzinfo is None:
        return v.replace(tzinfo=timezone.utc)
    return v.astimezone(timezone.utc)


class ScheduleRequest(APIModel):
    """
    One-shot flip at `time`.

    `time` accepts ISO 8601 or unix seconds; naive values are read as UTC.
    Whether it lies in the future is checked by the scheduler, not here.
    """

    state: SwitchState
    time: datetime

    _lower_state = field_validator("state", mode="before")(_lower_or_none)

    @field_validator("time")
    @classmethod
    def _normalize_time(cls, v: datetime):
        return _as_utc(v)


class ScheduleResponse(APIModel):
    state: SwitchState
    time: datetime


class PendingScheduleResponse(APIModel):
    schedule: ScheduleResponse | None = None


class CancelScheduleResponse(APIModel):
    cancelled: ScheduleResponse | None = None
