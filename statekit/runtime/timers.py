# statekit/runtime/timers.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from statekit.core.diagnostics import DiagnosticKind, DiagnosticReporter
from statekit.core.errors import CapabilityNotEnabledError
from statekit.core.events import Event, normalize_event
from statekit.runtime.scheduler import Scheduler

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TimerConfig:
    """
    :param id: Key of the timer; starting another timer with the same id
        replaces this one.
    :param delay: Seconds until the callback fires.
    :param interval: Fire repeatedly every ``delay`` seconds until cleared.
    """

    id: str
    delay: float
    interval: bool = False


class _Timer:
    """Internal record of a live timer and its current scheduler handle."""

    def __init__(self, config: TimerConfig, callback: Callable[[], None]) -> None:
        self.config = config
        self.callback = callback
        self.handle: Any = None


class TimerManager:
    """
    Owns every timer and delayed event of one machine. Each live entry has a
    unique id; firing a one-shot entry or cancelling any entry removes it.

    Bookkeeping is guarded by a lock held across ``scheduler.after`` so a
    callback firing on another thread always finds its entry registered.
    Callbacks themselves run outside the lock.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        send: Callable[[Event], None],
        reporter: DiagnosticReporter,
        enabled: bool = True,
    ) -> None:
        """
        :param scheduler: Where callbacks are scheduled.
        :param send: Delivery function for delayed events (the machine's send).
        :param reporter: Diagnostic channel.
        :param enabled: When False every operation is a reported no-op.
        """
        self._scheduler = scheduler
        self._send = send
        self._reporter = reporter
        self._enabled = enabled
        self._closed = False
        self._timers: Dict[str, _Timer] = {}
        self._delayed: Dict[str, Any] = {}
        self._lock = threading.RLock()

    @property
    def enabled(self) -> bool:
        return self._enabled

    def _check_enabled(self, operation: str) -> bool:
        if self._closed:
            self._reporter.report(DiagnosticKind.MACHINE_DESTROYED, f"{operation} ignored: machine destroyed")
            return False
        if not self._enabled:
            self._reporter.report(
                DiagnosticKind.CAPABILITY_NOT_ENABLED,
                f"{operation} ignored: timers are not enabled, construct the machine with timers=True",
                error=CapabilityNotEnabledError("timers"),
            )
            return False
        return True

    # -------------------------------------------------------------------------
    # Timers
    # -------------------------------------------------------------------------

    def start_timer(self, config: TimerConfig, callback: Callable[[], None]) -> bool:
        """
        Schedule ``callback`` under ``config.id``, cancelling any timer already
        registered with that id.

        :return: True if the timer was scheduled.
        """
        if not self._check_enabled("start_timer"):
            return False

        with self._lock:
            self.clear_timer(config.id)
            timer = _Timer(config, callback)
            self._timers[config.id] = timer
            timer.handle = self._scheduler.after(config.delay, lambda: self._fire_timer(timer))
        logger.debug("Timer '%s' scheduled in %ss (interval=%s)", config.id, config.delay, config.interval)
        return True

    def clear_timer(self, timer_id: str) -> bool:
        with self._lock:
            timer = self._timers.pop(timer_id, None)
            if timer is None:
                return False
            self._scheduler.cancel(timer.handle)
            return True

    def _fire_timer(self, timer: _Timer) -> None:
        with self._lock:
            # A replaced or cleared timer may still fire if cancellation raced with it.
            if self._closed or self._timers.get(timer.config.id) is not timer:
                return
            if timer.config.interval:
                timer.handle = self._scheduler.after(timer.config.delay, lambda: self._fire_timer(timer))
            else:
                del self._timers[timer.config.id]

        try:
            timer.callback()
        except Exception as e:
            self._reporter.report(
                DiagnosticKind.TIMER_FAILED,
                f"Timer '{timer.config.id}' callback failed: {e}",
                error=e,
            )

    def active_timers(self) -> List[str]:
        with self._lock:
            return list(self._timers)

    # -------------------------------------------------------------------------
    # Delayed events
    # -------------------------------------------------------------------------

    def send_delayed(self, event: Any, delay: float) -> Optional[str]:
        """
        Deliver ``event`` through the machine's normal ``send`` after ``delay``
        seconds.

        :return: Id usable with :meth:`cancel_delayed`, or None when timers are
            not enabled.
        """
        if not self._check_enabled("send_delayed"):
            return None

        event = normalize_event(event)
        delayed_id = f"delayed_{uuid.uuid4().hex}"
        with self._lock:
            self._delayed[delayed_id] = self._scheduler.after(delay, lambda: self._fire_delayed(delayed_id, event))
        logger.debug("Event '%s' scheduled in %ss as %s", event.type, delay, delayed_id)
        return delayed_id

    def cancel_delayed(self, delayed_id: str) -> bool:
        """
        :return: True if the event was still pending and is now cancelled.
        """
        with self._lock:
            handle = self._delayed.pop(delayed_id, None)
            if handle is None:
                return False
            self._scheduler.cancel(handle)
            return True

    def _fire_delayed(self, delayed_id: str, event: Event) -> None:
        with self._lock:
            if self._closed or self._delayed.pop(delayed_id, None) is None:
                return
        self._send(event)

    def pending_delayed(self) -> List[str]:
        with self._lock:
            return list(self._delayed)

    def cancel_all(self) -> None:
        """Cancel every timer and delayed event and refuse further scheduling."""
        with self._lock:
            self._closed = True
            for timer in self._timers.values():
                self._scheduler.cancel(timer.handle)
            for handle in self._delayed.values():
                self._scheduler.cancel(handle)
            self._timers.clear()
            self._delayed.clear()
