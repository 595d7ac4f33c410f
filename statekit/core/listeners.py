# statekit/core/listeners.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

from typing import Callable, Dict

from statekit.core.diagnostics import DiagnosticKind, DiagnosticReporter
from statekit.core.errors import ListenerError
from statekit.core.snapshot import Snapshot

Listener = Callable[[Snapshot], None]
Unsubscribe = Callable[[], None]


class ListenerRegistry:
    """
    Synchronous publish/subscribe of snapshots. Listeners are called in
    registration order; a failing listener is reported on its own and does not
    stop delivery to the rest.
    """

    def __init__(self, reporter: DiagnosticReporter) -> None:
        # dict keeps insertion order and ignores duplicate registrations
        self._listeners: Dict[Listener, None] = {}
        self._reporter = reporter

    def subscribe(self, listener: Listener, initial: Snapshot = None) -> Unsubscribe:
        """
        Register a listener, delivering ``initial`` to it right away if given.

        :param listener: Callable receiving Snapshots.
        :param initial: Snapshot to deliver immediately.
        :return: A function removing the listener; safe to call more than once.
        """
        self._listeners[listener] = None
        if initial is not None:
            self._deliver(listener, initial)

        def unsubscribe() -> None:
            self._listeners.pop(listener, None)

        return unsubscribe

    def notify(self, snapshot: Snapshot) -> None:
        for listener in list(self._listeners):
            self._deliver(listener, snapshot)

    def _deliver(self, listener: Listener, snapshot: Snapshot) -> None:
        try:
            listener(snapshot)
        except Exception as e:
            name = getattr(listener, "__name__", repr(listener))
            error = ListenerError(f"Listener {name} failed: {e}")
            error.__cause__ = e
            self._reporter.report(DiagnosticKind.LISTENER_FAILED, str(error), error=error, event=snapshot.event)

    def clear(self) -> None:
        self._listeners.clear()

    def __len__(self) -> int:
        return len(self._listeners)

    def __contains__(self, listener: Listener) -> bool:
        return listener in self._listeners
