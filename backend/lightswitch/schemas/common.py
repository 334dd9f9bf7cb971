from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict


class APIModel(BaseModel):
    """
    Common base for API schemas:
    - forbid unknown keys (prevents silent typos in payloads)
    - keep things predictable across endpoints
    """

    model_config = ConfigDict(extra="forbid")


class SwitchState(str, Enum):
    ON = "on"
    OFF = "off"


def _lower_or_none(v: object) -> object:
    if v is None:
        return None
    if isinstance(v, str):
        return v.strip().lower()
    return v
