# statekit/runtime/monitor.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

import bisect
import logging
import threading
import time
from typing import Any, Dict, List, Optional

from statekit.core.snapshot import Snapshot

logger = logging.getLogger(__name__)


class SnapshotMonitor:
    """Observer recording every snapshot a machine publishes.

    Attached through the ordinary listener interface when a machine is built
    with ``dev_tools=True``; it is not needed for correctness.

    Class Invariants:
    1. Records are kept in publication order
    2. At most ``max_events`` records are retained
    3. Time index stays sorted and aligned with the records
    """

    def __init__(self, max_events: int = 1000):
        """Initialize the monitor.

        Args:
            max_events: Maximum number of records retained before the oldest
                are dropped
        """
        self._max_events = max_events
        self._metrics: Dict[str, int] = {}
        self._history: List[Dict[str, Any]] = []
        self._event_count = 0
        self._metrics_lock = threading.Lock()
        self._history_lock = threading.Lock()

    def __call__(self, snapshot: Snapshot) -> None:
        logger.debug(
            "event=%s value=%s changed=%s context=%r",
            snapshot.event.type,
            snapshot.value,
            snapshot.changed,
            snapshot.context,
        )
        self.track_event(
            {
                "type": snapshot.event.type,
                "value": snapshot.value,
                "changed": snapshot.changed,
                "timestamp": time.time(),
            }
        )
        self.update_metric("events", 1)
        if snapshot.changed:
            self.update_metric("changes", 1)

    @property
    def metrics(self) -> Dict[str, int]:
        """Get a copy of the current metrics."""
        with self._metrics_lock:
            return self._metrics.copy()

    @property
    def history(self) -> List[Dict[str, Any]]:
        """Get a copy of the recorded events."""
        with self._history_lock:
            return list(self._history)

    @property
    def event_count(self) -> int:
        """Total number of events tracked, including dropped ones."""
        with self._history_lock:
            return self._event_count

    def track_event(self, event: Dict[str, Any]) -> None:
        """Record an event.

        Args:
            event: Event data dictionary with at least a ``timestamp`` key
        """
        with self._history_lock:
            self._history.append(dict(event))
            self._event_count += 1
            if len(self._history) > self._max_events:
                del self._history[: len(self._history) - self._max_events]

    def update_metric(self, name: str, value: int) -> None:
        """Add ``value`` to a metric, creating it at zero if needed."""
        with self._metrics_lock:
            self._metrics[name] = self._metrics.get(name, 0) + value

    def get_metric(self, name: str) -> int:
        """Get a metric value.

        Raises:
            KeyError: If metric does not exist
        """
        with self._metrics_lock:
            return self._metrics[name]

    def query_events(self, event_type: Any = None, start_time: Optional[float] = None) -> List[Dict[str, Any]]:
        """Query recorded events with optional filtering.

        Args:
            event_type: Only events of this type
            start_time: Only events at or after this timestamp

        Returns:
            Matching events in publication order
        """
        with self._history_lock:
            events = self._history
            if start_time is not None:
                timestamps = [e["timestamp"] for e in events]
                events = events[bisect.bisect_left(timestamps, start_time) :]
            if event_type is not None:
                events = [e for e in events if e["type"] == event_type]
            return [dict(e) for e in events]

    def clear_history(self, before_time: Optional[float] = None) -> None:
        """Clear recorded events.

        Args:
            before_time: Optional timestamp; only events before it are removed
        """
        with self._history_lock:
            if before_time is None:
                self._history.clear()
                self._event_count = 0
            else:
                timestamps = [e["timestamp"] for e in self._history]
                del self._history[: bisect.bisect_left(timestamps, before_time)]
                self._event_count = len(self._history)
