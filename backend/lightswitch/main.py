from __future__ import annotations

import hmac
import traceback
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Request, Security
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.security import APIKeyHeader

from lightswitch.context import SwitchContext
from lightswitch.errors import SwitchError, Unauthorized
from lightswitch.schemas.schedule import (
    CancelScheduleResponse,
    PendingScheduleResponse,
    ScheduleRequest,
    ScheduleResponse,
)
from lightswitch.schemas.settings import Calibration, SettingsTestRequest
from lightswitch.schemas.switch import StateResponse, SwitchRequest, SwitchResponse
from lightswitch.services.scheduler import Schedule
from lightswitch.settings import load_settings


API_KEY_HEADER = "x-api-key"

_api_key_header = APIKeyHeader(name=API_KEY_HEADER, auto_error=False)


def get_context(request: Request) -> SwitchContext:
    return request.app.state.context


def _check_api_key(key: Optional[str], ctx: SwitchContext) -> None:
    if not key:
        raise Unauthorized(f"missing {API_KEY_HEADER}", fields=[API_KEY_HEADER])
    if not hmac.compare_digest(key.encode("utf-8"), ctx.api_key.encode("utf-8")):
        raise Unauthorized(f"{API_KEY_HEADER} invalid", fields=[API_KEY_HEADER])


def require_api_key(
    key: Optional[str] = Security(_api_key_header),
    ctx: SwitchContext = Depends(get_context),
) -> None:
    _check_api_key(key, ctx)


def _schedule_out(s: Optional[Schedule]) -> Optional[ScheduleResponse]:
    if s is None:
        return None
    return ScheduleResponse(state=s.state, time=s.time)


def _error_response(status_code: int, error: str, detail: str, fields: list[str], **extra) -> JSONResponse:
    body = {"error": error, "detail": detail, "fields": fields}
    body.update(extra)
    return JSONResponse(status_code=status_code, content=jsonable_encoder(body))


def create_app(context: Optional[SwitchContext] = None) -> FastAPI:
    """
    Build the API. With no `context`, the config file and PWM driver are loaded on
    startup from the environment (see `lightswitch.settings`).
    """
    app = FastAPI(title="Servo Light Switch", dependencies=[Depends(require_api_key)])
    app.state.context = context

    @app.on_event("startup")
    async def _load_context() -> None:
        if app.state.context is None:
            settings = load_settings()
            # A missing/broken config is fatal: without the API key nothing can be served.
            app.state.context = SwitchContext.from_settings(settings)
            print(f"[STARTUP] Config loaded from {settings.config_path}")
        restored = app.state.context.restore_schedule()
        if restored is not None:
            print(f"[STARTUP] Restored schedule: {restored.state.value} at {restored.time.isoformat()}")

    @app.on_event("shutdown")
    async def _stop_timer() -> None:
        if app.state.context is not None:
            app.state.context.shutdown()

    @app.exception_handler(SwitchError)
    async def _switch_error(request: Request, exc: SwitchError) -> JSONResponse:
        if exc.status_code >= 500:
            print(f"[API] {request.method} {request.url.path} failed: {exc.message}")
        return _error_response(exc.status_code, exc.error, exc.message, exc.fields)

    @app.exception_handler(RequestValidationError)
    async def _request_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        # Malformed JSON is rejected before dependencies run; still answer 401 first.
        ctx = app.state.context
        try:
            _check_api_key(request.headers.get(API_KEY_HEADER), ctx)
        except Unauthorized as e:
            return _error_response(e.status_code, e.error, e.message, e.fields)

        errors = exc.errors()
        fields = []
        for err in errors:
            loc = [str(p) for p in err.get("loc", ()) if p != "body"]
            fields.append(".".join(loc) or "body")
        return _error_response(422, "validation_error", "Request validation failed", fields, errors=errors)

    @app.post("/switch", response_model=SwitchResponse)
    def switch(request: SwitchRequest, ctx: SwitchContext = Depends(get_context)):
        try:
            result = ctx.switch(request.state)
        except SwitchError:
            raise
        except Exception as e:
            print(f"[API] Unexpected error in /switch: {e}")
            traceback.print_exc()
            raise HTTPException(status_code=500, detail=f"Internal server error during switch: {e}")
        return SwitchResponse(state=result.state, pulse_width_us=result.pulse_width_us)

    @app.get("/state", response_model=StateResponse)
    def state(ctx: SwitchContext = Depends(get_context)):
        return StateResponse(state=ctx.servo.last_state, schedule=_schedule_out(ctx.pending_schedule()))

    @app.post("/schedule", response_model=ScheduleResponse)
    def create_schedule(request: ScheduleRequest, ctx: SwitchContext = Depends(get_context)):
        """Arm a one-shot flip, replacing whatever was pending."""
        return _schedule_out(ctx.schedule(request.state, request.time))

    @app.get("/schedule", response_model=PendingScheduleResponse)
    def get_schedule(ctx: SwitchContext = Depends(get_context)):
        return PendingScheduleResponse(schedule=_schedule_out(ctx.pending_schedule()))

    @app.delete("/schedule", response_model=CancelScheduleResponse)
    def delete_schedule(ctx: SwitchContext = Depends(get_context)):
        return CancelScheduleResponse(cancelled=_schedule_out(ctx.cancel_schedule()))

    @app.get("/settings", response_model=Calibration)
    def get_settings(ctx: SwitchContext = Depends(get_context)):
        return ctx.config.calibration

    @app.patch("/settings", response_model=Calibration)
    def update_settings(calibration: Calibration, ctx: SwitchContext = Depends(get_context)):
        """Replace the calibration and persist it. Every required field must be present."""
        return ctx.update_calibration(calibration)

    @app.patch("/settings/test", response_model=SwitchResponse)
    def test_settings(request: SettingsTestRequest, ctx: SwitchContext = Depends(get_context)):
        """
        Press the switch using a candidate calibration without saving it.

        Lets an operator tune angles/pulse widths before committing them with PATCH /settings.
        """
        try:
            result = ctx.test_calibration(request.state, request.calibration)
        except SwitchError:
            raise
        except Exception as e:
            print(f"[API] Unexpected error in /settings/test: {e}")
            traceback.print_exc()
            raise HTTPException(status_code=500, detail=f"Internal server error during settings test: {e}")
        return SwitchResponse(state=result.state, pulse_width_us=result.pulse_width_us)

    return app


app = create_app()
