from __future__ import annotations

from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from lightswitch.context import SwitchContext
from lightswitch.main import create_app
from lightswitch.services.config_store import ConfigStore
from lightswitch.services.pwm import MockPwmDriver


NOW = datetime(2030, 1, 1, 12, 0, tzinfo=timezone.utc)


class FakeTimer:
    def __init__(self, delay_s, fn):
        self.delay_s = delay_s
        self.fn = fn
        self.started = False
        self.cancelled = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self, ignore_cancel: bool = False):
        # ignore_cancel simulates a timer thread that woke up just before cancel()
        if self.cancelled and not ignore_cancel:
            return
        self.fn()


class FakeTimers:
    def __init__(self):
        self.created: list[FakeTimer] = []

    def __call__(self, delay_s, fn):
        t = FakeTimer(delay_s, fn)
        self.created.append(t)
        return t

    @property
    def last(self) -> FakeTimer:
        return self.created[-1]


@pytest.fixture
def timers():
    return FakeTimers()


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def driver():
    return MockPwmDriver()


@pytest.fixture
def config_path(tmp_path):
    return tmp_path / "config.yaml"


@pytest.fixture
def store(config_path):
    return ConfigStore(config_path)


@pytest.fixture
def ctx(store, driver, timers, clock):
    return SwitchContext(
        store,
        store.load(),
        driver,
        sleep=lambda s: None,
        timer_factory=timers,
        clock=clock,
    )


@pytest.fixture
def client(ctx):
    return TestClient(create_app(ctx))


@pytest.fixture
def auth(ctx):
    return {"x-api-key": ctx.api_key}
