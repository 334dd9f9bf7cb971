"""
Single pending one-shot flip.

State machine:
  Idle  --schedule-->  Armed
  Armed --schedule-->  Armed   (old timer cancelled, new one armed)
  Armed --fire/cancel--> Idle

Firing is atomic with clearing: the timer callback only runs its action if it is
still the armed timer when it takes the lock, so a cancelled or replaced timer
that already woke up does nothing.
"""
from __future__ import annotations

import itertools
import threading
import traceback
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from lightswitch.errors import ScheduleError
from lightswitch.schemas.common import SwitchState


TimerFactory = Callable[[float, Callable[[], None]], Any]

# Longest single wait handed to a timer. Far-future schedules wait in steps of
# this size and re-arm until the fire time is within reach.
MAX_TIMER_WAIT_S = 86_400.0


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def thread_timer(delay_s: float, fn: Callable[[], None]) -> threading.Timer:
    t = threading.Timer(delay_s, fn)
    t.daemon = True
    return t


@dataclass(frozen=True)
class Schedule:
    state: SwitchState
    time: datetime


class ScheduleTimer:
    def __init__(
        self,
        on_fire: Callable[[Schedule], None],
        timer_factory: TimerFactory = thread_timer,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._on_fire = on_fire
        self._timer_factory = timer_factory
        self._clock = clock
        self._lock = threading.Lock()
        self._generation = itertools.count(1)

        self._pending: Optional[Schedule] = None
        self._timer: Any = None
        self._token = 0

    def pending(self) -> Optional[Schedule]:
        with self._lock:
            return self._pending

    def schedule(self, state: SwitchState, fire_time: datetime) -> Schedule:
        if fire_time.tzinfo is None:
            fire_time = fire_time.replace(tzinfo=timezone.utc)

        with self._lock:
            now = self._clock()
            if fire_time <= now:
                raise ScheduleError(
                    f"Schedule time {fire_time.isoformat()} must be in the future (now {now.isoformat()})",
                    fields=["time"],
                )

            self._disarm_locked()
            token = next(self._generation)
            self._pending = Schedule(state=state, time=fire_time)
            self._token = token
            self._arm_locked(token, (fire_time - now).total_seconds())
            print(f"[SCHEDULE] Armed: {state.value} at {fire_time.isoformat()}")
            return self._pending

    def cancel(self) -> Optional[Schedule]:
        with self._lock:
            cancelled = self._pending
            self._disarm_locked()
        if cancelled is not None:
            print(f"[SCHEDULE] Cancelled: {cancelled.state.value} at {cancelled.time.isoformat()}")
        return cancelled

    def stop(self) -> None:
        """Disarm without reporting a cancellation (process shutdown)."""
        with self._lock:
            self._disarm_locked()

    def _arm_locked(self, token: int, delay_s: float) -> None:
        final = delay_s <= MAX_TIMER_WAIT_S
        timer = self._timer_factory(min(delay_s, MAX_TIMER_WAIT_S), lambda: self._fire(token, final))
        self._timer = timer
        timer.start()

    def _disarm_locked(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
        self._timer = None
        self._pending = None
        self._token = 0

    def _fire(self, token: int, final: bool = True) -> None:
        with self._lock:
            if token != self._token or self._pending is None:
                # Replaced or cancelled after this timer woke up.
                return
            if not final:
                remaining = (self._pending.time - self._clock()).total_seconds()
                if remaining > 0:
                    self._arm_locked(token, remaining)
                    return
            fired = self._pending
            self._timer = None
            self._pending = None
            self._token = 0

        print(f"[SCHEDULE] Firing: {fired.state.value} (scheduled for {fired.time.isoformat()})")
        try:
            self._on_fire(fired)
        except Exception as e:
            # No retries: a failed scheduled flip is reported and dropped.
            print(f"[SCHEDULE] Scheduled flip failed: {e}")
            traceback.print_exc()
