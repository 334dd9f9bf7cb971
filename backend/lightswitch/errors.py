"""
Error kinds raised by the services and rendered by the API layer.

Every error carries the HTTP status it maps to and a short machine-readable
code; `main.py` renders them as {"error": code, "detail": message, "fields": [...]}.
"""
from __future__ import annotations


class SwitchError(Exception):
    status_code = 500
    error = "internal_error"

    def __init__(self, message: str, fields: list[str] | None = None):
        super().__init__(message)
        self.message = message
        self.fields = list(fields or [])


class Unauthorized(SwitchError):
    status_code = 401
    error = "unauthorized"


class ValidationError(SwitchError):
    status_code = 422
    error = "validation_error"


class ScheduleError(ValidationError):
    """Invalid schedule request (e.g. a fire time that is not in the future)."""

    error = "invalid_time"


class DriveError(SwitchError):
    """The PWM channel could not be written (overlay not enabled, permissions, ...)."""

    status_code = 500
    error = "drive_error"


class ConfigIOError(SwitchError):
    """Config file could not be read, parsed or written."""

    status_code = 500
    error = "config_io_error"
