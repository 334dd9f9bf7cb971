from __future__ import annotations

from datetime import timedelta

import pytest

from lightswitch.context import SwitchContext
from lightswitch.errors import ConfigIOError, DriveError
from lightswitch.schemas.common import SwitchState
from lightswitch.schemas.schedule import ScheduleResponse
from lightswitch.services.pwm import MockPwmDriver, PwmDriver
from lightswitch.settings import load_settings

from conftest import NOW


def _context(store, driver, timers, clock):
    return SwitchContext(store, store.load(), driver, sleep=lambda s: None, timer_factory=timers, clock=clock)


def test_schedule_is_persisted_and_cleared_on_fire(ctx, store, timers, driver):
    ctx.schedule(SwitchState.ON, NOW + timedelta(minutes=5))
    assert store.load().scheduled.state == SwitchState.ON

    timers.last.fire()

    assert store.load().scheduled is None
    assert driver.calls[0] == ("enable", 1750)
    assert ctx.servo.last_state == SwitchState.ON


def test_cancel_clears_persisted_schedule(ctx, store, timers, driver):
    ctx.schedule(SwitchState.OFF, NOW + timedelta(minutes=5))

    ctx.cancel_schedule()

    assert store.load().scheduled is None
    timers.last.fire(ignore_cancel=True)
    assert driver.calls == []


def test_restore_rearms_future_schedule(store, driver, timers, clock):
    config = store.load()
    when = NOW + timedelta(hours=2)
    store.save(config.model_copy(update={"scheduled": ScheduleResponse(state=SwitchState.OFF, time=when)}))

    ctx = _context(store, driver, timers, clock)
    restored = ctx.restore_schedule()

    assert restored.time == when
    assert timers.last.delay_s == pytest.approx(7200)


def test_restore_fires_missed_schedule_once(store, driver, timers, clock):
    config = store.load()
    stale = ScheduleResponse(state=SwitchState.ON, time=NOW - timedelta(minutes=1))
    store.save(config.model_copy(update={"scheduled": stale}))

    ctx = _context(store, driver, timers, clock)

    assert ctx.restore_schedule() is None
    assert timers.created == []
    assert driver.calls[0] == ("enable", 1750)
    assert ctx.servo.last_state == SwitchState.ON
    assert store.load().scheduled is None
    assert ctx.pending_schedule() is None


def test_restore_missed_schedule_failure_is_reported(store, driver, timers, clock, capsys):
    config = store.load()
    stale = ScheduleResponse(state=SwitchState.OFF, time=NOW - timedelta(hours=3))
    store.save(config.model_copy(update={"scheduled": stale}))
    driver.fail_with = "pwm not enabled"

    ctx = _context(store, driver, timers, clock)

    assert ctx.restore_schedule() is None
    assert "pwm not enabled" in capsys.readouterr().out
    assert store.load().scheduled is None
    assert ctx.servo.last_state is None


def test_failed_persist_disarms_schedule(ctx, monkeypatch, timers):
    def fail(config):
        raise ConfigIOError("disk full")

    monkeypatch.setattr(ctx.store, "save", fail)

    with pytest.raises(ConfigIOError):
        ctx.schedule(SwitchState.ON, NOW + timedelta(minutes=1))
    assert ctx.pending_schedule() is None
    assert timers.last.cancelled


def test_scheduled_drive_failure_is_logged(ctx, timers, driver, capsys):
    driver.fail_with = "pwm not enabled"
    ctx.schedule(SwitchState.ON, NOW + timedelta(minutes=1))

    timers.last.fire()

    assert "pwm not enabled" in capsys.readouterr().out
    assert ctx.pending_schedule() is None


def test_update_calibration_persists(ctx, store):
    cal = ctx.config.calibration.model_copy(update={"off_angle": 30.0})

    ctx.update_calibration(cal)

    assert ctx.config.calibration.off_angle == 30.0
    assert store.load().calibration.off_angle == 30.0


def test_from_settings_picks_driver(tmp_path, monkeypatch):
    monkeypatch.setenv("SWITCH_CONFIG_PATH", str(tmp_path / "c.yaml"))
    monkeypatch.setenv("USE_MOCK_PWM", "true")
    assert isinstance(SwitchContext.from_settings(load_settings()).servo.driver, MockPwmDriver)

    monkeypatch.setenv("USE_MOCK_PWM", "false")
    monkeypatch.setenv("PWM_CHANNEL", "1")
    driver = SwitchContext.from_settings(load_settings()).servo.driver
    assert isinstance(driver, PwmDriver)
    assert driver.channel == 1


def test_from_settings_fails_on_broken_config(tmp_path, monkeypatch):
    path = tmp_path / "c.yaml"
    path.write_text("api_key: [", encoding="utf-8")
    monkeypatch.setenv("SWITCH_CONFIG_PATH", str(path))

    with pytest.raises(ConfigIOError):
        SwitchContext.from_settings(load_settings())


def test_changed_idle_angle_parks_servo(ctx, driver, store):
    cal = ctx.config.calibration.model_copy(update={"idle_angle": 60.0})

    ctx.update_calibration(cal)

    assert driver.calls == [("enable", pytest.approx(1000 + 1000 * 60 / 180)), ("disable", None)]
    assert store.load().calibration.idle_angle == 60.0


def test_park_failure_keeps_old_calibration(ctx, driver, store):
    driver.fail_with = "pwm not enabled"
    cal = ctx.config.calibration.model_copy(update={"idle_angle": 60.0})

    with pytest.raises(DriveError):
        ctx.update_calibration(cal)

    assert store.load().calibration.idle_angle == 90.0
