# statekit/core/machine.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Any, Callable, Hashable, Iterator, List, Mapping, Optional, Union

from statekit.core.config import MachineConfig, MachineOptions, StateDefinition
from statekit.core.diagnostics import DiagnosticKind, DiagnosticReporter
from statekit.core.errors import ActionExecutionError, ReentrantSendError
from statekit.core.events import HYDRATE, INIT, REDO, UNDO, Event, normalize_event
from statekit.core.handlers import HandlerResolver, _ActionExecutor, _GuardEvaluator
from statekit.core.history import HistoryManager, HistoryView
from statekit.core.listeners import Listener, ListenerRegistry, Unsubscribe
from statekit.core.snapshot import Snapshot
from statekit.persistence.manager import PersistenceManager
from statekit.persistence.serializer import SerializedState
from statekit.runtime.monitor import SnapshotMonitor
from statekit.runtime.scheduler import ThreadingScheduler
from statekit.runtime.timers import TimerConfig, TimerManager

logger = logging.getLogger(__name__)


class StateMachine:
    """
    Event-driven finite state machine over a mutable application context.

    Events are processed synchronously, one at a time. Sends from other
    threads (timer callbacks, delayed events) wait for the running transition
    to finish; a ``send`` made by the transitioning thread itself (from an
    action or a listener, say) is dropped and reported, never queued. Nothing
    raises out of ``send``; failures are reported through the diagnostic
    channel and the machine is left in its pre-transition state.

    Example:
        machine = StateMachine({
            "initial": "off",
            "states": {
                "off": {"on": {"TOGGLE": {"target": "on"}}},
                "on": {"on": {"TOGGLE": {"target": "off"}}},
            },
        })
        machine.send("TOGGLE")
        assert machine.matches("on")
    """

    def __init__(
        self,
        config: Union[MachineConfig, Mapping[str, Any]],
        options: Union[MachineOptions, Mapping[str, Any], None] = None,
        *,
        hydrate: bool = True,
        name: str = "StateMachine",
    ) -> None:
        """
        :param config: The state table, as a MachineConfig or its mapping form.
        :param options: Registries and optional capabilities.
        :param hydrate: Load previously persisted state when persistence is
            configured. Hydration from an asynchronous adapter completes in the
            background and may land after the first events have been sent.
        :param name: Label used in log records and diagnostics.
        :raises ConfigurationError: If the configuration or options are invalid.
        """
        self._config = MachineConfig.from_dict(config)
        self._options = MachineOptions.from_dict(options)
        self._name = name
        self._reporter = DiagnosticReporter(self._options.on_diagnostic, name)
        self._actions = _ActionExecutor(HandlerResolver(self._options.actions, "action", self._reporter))
        self._guards = _GuardEvaluator(HandlerResolver(self._options.guards, "guard", self._reporter))

        self._current_state: Hashable = self._config.initial
        self._context: Any = self._config.context
        self._is_transitioning = False
        self._lock = threading.RLock()
        self._destroyed = False

        self._listeners = ListenerRegistry(self._reporter)
        self._history: Optional[HistoryManager] = None
        if self._options.history_enabled:
            self._history = HistoryManager(self.get_snapshot(), self._options.history.max_size)

        self._scheduler = self._options.scheduler or ThreadingScheduler()
        self._timers = TimerManager(self._scheduler, self.send, self._reporter, enabled=self._options.timers)

        self._monitor: Optional[SnapshotMonitor] = None
        if self._options.dev_tools:
            self._monitor = SnapshotMonitor()
            self._listeners.subscribe(self._monitor)

        self._persistence: Optional[PersistenceManager] = None
        if self._options.persistence is not None:
            self._persistence = PersistenceManager(self._options.persistence, self._scheduler, self._reporter)
            if hydrate:
                self._persistence.load(self._hydrate)

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def config(self) -> MachineConfig:
        return self._config

    @property
    def options(self) -> MachineOptions:
        return self._options

    @property
    def current_state(self) -> Hashable:
        return self._current_state

    @property
    def context(self) -> Any:
        return self._context

    @property
    def is_transitioning(self) -> bool:
        return self._is_transitioning

    @property
    def is_destroyed(self) -> bool:
        return self._destroyed

    @property
    def monitor(self) -> Optional[SnapshotMonitor]:
        """The devtools observer, present when built with ``dev_tools=True``."""
        return self._monitor

    def _definition(self) -> StateDefinition:
        return self._config.states[self._current_state]

    # -------------------------------------------------------------------------
    # Snapshot & queries
    # -------------------------------------------------------------------------

    def get_snapshot(self) -> Snapshot:
        """Current state as an unchanged snapshot carrying a synthetic INIT event."""
        return Snapshot(
            value=self._current_state,
            context=self._context,
            changed=False,
            event=Event(INIT),
            meta=dict(self._definition().meta),
        )

    def can(self, event: Any) -> bool:
        """
        Whether ``event`` would currently trigger a transition: one is declared
        for it in the current state and its guard, if any, passes.
        """
        if self._destroyed:
            return False
        event = normalize_event(event)
        transition = self._definition().on.get(event.type)
        if transition is None:
            return False
        try:
            return self._guards.evaluate(transition.guard, self._context, event)
        except Exception as e:
            error = ActionExecutionError(
                f"Guard for '{event.type}' in state '{self._current_state}' raised: {e}",
                state=self._current_state,
                event_type=event.type,
            )
            error.__cause__ = e
            self._reporter.report(DiagnosticKind.ACTION_FAILED, str(error), error=error, event=event)
            return False

    def get_next_events(self) -> List[Hashable]:
        """Declared event types of the current state that :meth:`can` accepts."""
        return [event_type for event_type in self._definition().on if self.can(event_type)]

    def matches(self, pattern: Any) -> bool:
        """
        :param pattern: A state id, or a list/tuple/set of state ids.
        :return: True if the current state equals or is a member of ``pattern``.
        """
        if pattern == self._current_state:
            return True
        if isinstance(pattern, (list, tuple, set, frozenset)):
            return self._current_state in pattern
        return False

    def has_tag(self, tag: str) -> bool:
        return tag in self._definition().tags

    # -------------------------------------------------------------------------
    # Event processing
    # -------------------------------------------------------------------------

    @contextmanager
    def _transitioning(self) -> Iterator[None]:
        self._is_transitioning = True
        try:
            yield
        finally:
            self._is_transitioning = False

    def _reject_reentrant(self, operation: str, event: Any) -> None:
        event_type = getattr(event, "type", event)
        self._reporter.report(
            DiagnosticKind.REENTRANT_SEND_REJECTED,
            f"{operation} '{event_type}' ignored: machine is transitioning",
            error=ReentrantSendError(f"{operation} while transitioning"),
            event=event,
        )

    def send(self, event: Any) -> None:
        """
        Process an event.

        :param event: A bare event type, an Event, or a mapping with a
            ``"type"`` key (plus optional ``"payload"`` and extra fields).
        """
        event = normalize_event(event)
        with self._lock:
            if self._destroyed:
                self._reporter.report(
                    DiagnosticKind.MACHINE_DESTROYED, f"Event '{event.type}' ignored: machine destroyed", event=event
                )
                return
            # Only the thread holding the lock can observe the flag set.
            if self._is_transitioning:
                self._reject_reentrant("Event", event)
                return
            self._transition(event)

    def _transition(self, event: Event) -> None:
        with self._transitioning():
            definition = self._definition()
            transition = definition.on.get(event.type)
            if transition is None:
                logger.debug("%s: no transition for '%s' in state '%s'", self._name, event.type, self._current_state)
                return

            previous_state = self._current_state
            previous_context = self._context
            try:
                if not self._guards.evaluate(transition.guard, self._context, event):
                    logger.debug("%s: guard rejected '%s' in state '%s'", self._name, event.type, previous_state)
                    return

                context, exit_replaced = self._actions.execute(definition.exit, self._context, event)
                context, action_replaced = self._actions.execute(transition.actions, context, event)
                if transition.target is not None:
                    self._current_state = transition.target
                target_definition = self._definition()
                context, entry_replaced = self._actions.execute(target_definition.entry, context, event)
                self._context = context
            except Exception as e:
                self._current_state = previous_state
                self._context = previous_context
                error = ActionExecutionError(
                    f"Transition '{event.type}' from state '{previous_state}' failed: {e}",
                    state=previous_state,
                    event_type=event.type,
                )
                error.__cause__ = e
                self._reporter.report(DiagnosticKind.ACTION_FAILED, str(error), error=error, event=event)
                return

            changed = (
                self._current_state != previous_state or exit_replaced or action_replaced or entry_replaced
            )
            snapshot = Snapshot(
                value=self._current_state,
                context=self._context,
                changed=changed,
                event=event,
                meta=dict(target_definition.meta),
            )
            logger.debug(
                "%s: '%s' %s -> %s (changed=%s)", self._name, event.type, previous_state, self._current_state, changed
            )

            if changed:
                if self._history is not None:
                    self._history.append(snapshot)
                if self._persistence is not None:
                    self._persistence.save(self._current_state, self._context)
            self._listeners.notify(snapshot)

    # -------------------------------------------------------------------------
    # Listeners
    # -------------------------------------------------------------------------

    def subscribe(self, listener: Listener) -> Unsubscribe:
        """
        Register ``listener`` and deliver the current snapshot to it at once.

        :return: Function that removes the listener.
        """
        if self._destroyed:
            self._reporter.report(DiagnosticKind.MACHINE_DESTROYED, "subscribe ignored: machine destroyed")
            return lambda: None
        return self._listeners.subscribe(listener, initial=self.get_snapshot())

    # -------------------------------------------------------------------------
    # History
    # -------------------------------------------------------------------------

    def can_undo(self) -> bool:
        return self._history is not None and self._history.can_undo()

    def can_redo(self) -> bool:
        return self._history is not None and self._history.can_redo()

    def undo(self) -> bool:
        """
        Restore the previous history entry without re-running actions.

        :return: True if the machine moved back one entry.
        """
        return self._step_history(UNDO)

    def redo(self) -> bool:
        """
        Re-apply the entry after the current one.

        :return: True if the machine moved forward one entry.
        """
        return self._step_history(REDO)

    def _step_history(self, event_type: str) -> bool:
        with self._lock:
            if self._history is None or self._destroyed:
                logger.debug("%s: %s ignored, history unavailable", self._name, event_type)
                return False
            if self._is_transitioning:
                self._reject_reentrant("History step", Event(event_type))
                return False

            with self._transitioning():
                entry = self._history.undo() if event_type == UNDO else self._history.redo()
                if entry is None:
                    return False
                self._current_state = entry.value
                self._context = entry.context
                if self._persistence is not None:
                    self._persistence.save(self._current_state, self._context)
                self._listeners.notify(entry.republish(Event(event_type)))
            return True

    def get_history(self) -> Optional[HistoryView]:
        return self._history.view() if self._history is not None else None

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def _hydrate(self, state: SerializedState) -> None:
        with self._lock:
            if self._destroyed:
                return
            if state.value not in self._config.states:
                self._reporter.report(
                    DiagnosticKind.PERSISTENCE_FAILED,
                    f"Persisted state '{state.value}' is not declared; keeping '{self._current_state}'",
                )
                return
            if self._is_transitioning:
                self._reporter.report(
                    DiagnosticKind.PERSISTENCE_FAILED,
                    f"Persisted state '{state.value}' arrived during a transition and was not applied",
                )
                return

            with self._transitioning():
                self._current_state = state.value
                if state.context is not None:
                    self._context = state.context
                snapshot = self.get_snapshot()
                if self._history is not None:
                    self._history.reset(snapshot)
                logger.info("%s: hydrated state '%s' from persistence", self._name, state.value)
                self._listeners.notify(snapshot.republish(Event(HYDRATE)))

    def flush_persistence(self) -> bool:
        """
        Write a pending throttled save immediately.

        :return: True if something was written.
        """
        return self._persistence is not None and self._persistence.flush()

    def clear_persisted_state(self) -> None:
        """Remove the stored state through the adapter's ``remove``."""
        if self._persistence is None:
            self._reporter.report(
                DiagnosticKind.CAPABILITY_NOT_ENABLED, "clear_persisted_state ignored: persistence is not configured"
            )
            return
        self._persistence.clear()

    # -------------------------------------------------------------------------
    # Timers & delayed events
    # -------------------------------------------------------------------------

    def start_timer(self, config: Union[TimerConfig, Mapping[str, Any]], callback: Callable[[], None]) -> bool:
        """
        Schedule ``callback`` under ``config.id``; an existing timer with the
        same id is cancelled first. Requires ``timers=True``.
        """
        if isinstance(config, Mapping):
            config = TimerConfig(**config)
        return self._timers.start_timer(config, callback)

    def clear_timer(self, timer_id: str) -> bool:
        return self._timers.clear_timer(timer_id)

    def send_delayed(self, event: Any, delay: float) -> Optional[str]:
        """
        Send ``event`` after ``delay`` seconds. Requires ``timers=True``.

        :return: Id for :meth:`cancel_delayed`, or None if timers are disabled.
        """
        return self._timers.send_delayed(event, delay)

    def cancel_delayed(self, delayed_id: str) -> bool:
        return self._timers.cancel_delayed(delayed_id)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def with_context(self, context: Mapping[str, Any]) -> "StateMachine":
        """
        Create an independent machine in the current state whose context is the
        shallow merge of this machine's context and ``context``. Options are
        shared; history, timers and listeners are not. The clone does not load
        from persistence.

        :raises TypeError: If the current context is not a mapping.
        """
        with self._lock:
            if not isinstance(self._context, Mapping):
                raise TypeError(f"with_context requires a mapping context, got {type(self._context).__name__}")
            merged = {**self._context, **context}
            config = self._config.with_context(merged, initial=self._current_state)
        return type(self)(config, self._options, hydrate=False, name=self._name)

    def destroy(self) -> None:
        """
        Cancel every timer, delayed event and pending save, drop all listeners,
        and make the machine inert. Safe to call more than once.
        """
        with self._lock:
            if self._destroyed:
                return
            self._destroyed = True
            self._timers.cancel_all()
            if self._persistence is not None:
                self._persistence.close()
            self._listeners.clear()
        logger.debug("%s: destroyed", self._name)

    def __enter__(self) -> "StateMachine":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.destroy()

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self._name} state={self._current_state!r}>"
