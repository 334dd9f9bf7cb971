"""
Process-wide state for the API: config store + current config, servo, scheduler.

One `SwitchContext` is built at startup and handed to handlers through a FastAPI
dependency. Config mutations (settings, schedule persistence) go through
`_config_lock`; hardware access is serialized inside `ServoController`.
"""
from __future__ import annotations

import threading
import time
import traceback
from datetime import datetime
from typing import Callable, Optional

from lightswitch.errors import ConfigIOError, ScheduleError, SwitchError
from lightswitch.schemas.common import SwitchState
from lightswitch.schemas.schedule import ScheduleResponse
from lightswitch.schemas.settings import Calibration
from lightswitch.services.config_store import Config, ConfigStore
from lightswitch.services.pwm import MockPwmDriver, PwmDriver
from lightswitch.services.scheduler import Schedule, ScheduleTimer, TimerFactory, thread_timer, utc_now
from lightswitch.services.servo import MoveResult, PwmOutput, ServoController
from lightswitch.settings import Settings


class SwitchContext:
    def __init__(
        self,
        store: ConfigStore,
        config: Config,
        driver: PwmOutput,
        sleep: Callable[[float], None] = time.sleep,
        timer_factory: TimerFactory = thread_timer,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.config = config
        self._config_lock = threading.Lock()
        self.servo = ServoController(driver, lambda: self.config.calibration, sleep=sleep)
        self.scheduler = ScheduleTimer(self._run_scheduled, timer_factory=timer_factory, clock=clock)

    @classmethod
    def from_settings(cls, settings: Settings) -> "SwitchContext":
        """Load (or create) the config file; raises ConfigIOError if that fails."""
        store = ConfigStore(settings.config_path)
        config = store.load()
        if settings.use_mock_pwm:
            print("[STARTUP] USE_MOCK_PWM=true: pulses are recorded, not sent to hardware")
            driver: PwmOutput = MockPwmDriver(frequency_hz=settings.pwm_frequency_hz)
        else:
            driver = PwmDriver(
                channel=settings.pwm_channel,
                chip=settings.pwm_chip,
                frequency_hz=settings.pwm_frequency_hz,
            )
        return cls(store, config, driver)

    @property
    def api_key(self) -> str:
        return self.config.api_key

    # ---- switch ----

    def switch(self, state: SwitchState) -> MoveResult:
        return self.servo.set_state(state)

    # ---- schedule ----

    def pending_schedule(self) -> Optional[Schedule]:
        return self.scheduler.pending()

    def schedule(self, state: SwitchState, fire_time: datetime) -> Schedule:
        scheduled = self.scheduler.schedule(state, fire_time)
        try:
            self._persist_schedule()
        except ConfigIOError:
            # Memory and disk must agree on what is pending.
            self.scheduler.cancel()
            raise
        return scheduled

    def cancel_schedule(self) -> Optional[Schedule]:
        cancelled = self.scheduler.cancel()
        if cancelled is not None:
            self._persist_schedule()
        return cancelled

    def restore_schedule(self) -> Optional[Schedule]:
        """
        Re-arm a schedule persisted by a previous run.

        One whose time passed while the process was down fires now, once, and is
        cleared; a failure is reported, not retried. Returns the re-armed schedule.
        """
        saved = self.config.scheduled
        if saved is None:
            return None
        try:
            return self.scheduler.schedule(saved.state, saved.time)
        except ScheduleError:
            pass

        print(f"[SCHEDULE] Firing missed schedule: {saved.state.value} at {saved.time.isoformat()}")
        try:
            self._run_scheduled(Schedule(state=saved.state, time=saved.time))
        except SwitchError as e:
            print(f"[SCHEDULE] Missed schedule failed: {e}")
            traceback.print_exc()
        return None

    def _run_scheduled(self, fired: Schedule) -> None:
        try:
            self._persist_schedule()
        except ConfigIOError as e:
            print(f"[SCHEDULE] Could not clear fired schedule from config: {e}")
        result = self.servo.set_state(fired.state)
        print(f"[SCHEDULE] Switched {result.state.value} ({result.pulse_width_us:.0f}us)")

    def _persist_schedule(self) -> None:
        with self._config_lock:
            pending = self.scheduler.pending()
            scheduled = None if pending is None else ScheduleResponse(state=pending.state, time=pending.time)
            if scheduled == self.config.scheduled:
                return
            updated = self.config.model_copy(update={"scheduled": scheduled})
            self.store.save(updated)
            self.config = updated

    # ---- settings ----

    def update_calibration(self, calibration: Calibration) -> Calibration:
        """Persist a new calibration; a changed idle angle moves the servo there first."""
        previous = self.config.calibration
        if calibration.idle_angle is not None and calibration.idle_angle != previous.idle_angle:
            self.servo.park(calibration)

        with self._config_lock:
            updated = self.config.model_copy(update={"calibration": calibration})
            self.store.save(updated)
            self.config = updated
        print("[CONFIG] Calibration updated")
        return calibration

    def test_calibration(self, state: SwitchState, calibration: Calibration) -> MoveResult:
        return self.servo.test_move(state, calibration)

    def shutdown(self) -> None:
        # The persisted schedule stays on disk and is re-armed on next start.
        self.scheduler.stop()
