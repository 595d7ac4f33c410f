# statekit/core/config.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any, Callable, Dict, Hashable, Mapping, Optional, Tuple, Union

from statekit.core.errors import ConfigurationError
from statekit.core.handlers import DirectHandler, Handler, NamedHandler, as_handler

if TYPE_CHECKING:
    from statekit.core.diagnostics import DiagnosticHook
    from statekit.persistence.adapter import PersistenceAdapter
    from statekit.runtime.scheduler import Scheduler

StateId = Hashable
EventType = Hashable


def _handlers(values: Any) -> Tuple[Handler, ...]:
    if values is None:
        return ()
    if isinstance(values, (str, DirectHandler, NamedHandler)) or callable(values):
        return (as_handler(values),)
    return tuple(as_handler(v) for v in values)


@dataclass(frozen=True)
class TransitionDefinition:
    """
    A possible move out of a state. With no ``target`` the transition is
    internal: actions run and context may change, but the state id does not.
    """

    target: Optional[StateId] = None
    actions: Tuple[Handler, ...] = ()
    guard: Optional[Handler] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "actions", _handlers(self.actions))
        if self.guard is not None:
            object.__setattr__(self, "guard", as_handler(self.guard))

    @classmethod
    def from_dict(cls, data: Union["TransitionDefinition", Mapping[str, Any]]) -> "TransitionDefinition":
        if isinstance(data, TransitionDefinition):
            return data
        if not isinstance(data, Mapping):
            raise ConfigurationError(f"Transition must be a mapping, got {data!r}")
        return cls(target=data.get("target"), actions=data.get("actions"), guard=data.get("guard"))


@dataclass(frozen=True)
class StateDefinition:
    on: Dict[EventType, TransitionDefinition] = field(default_factory=dict)
    entry: Tuple[Handler, ...] = ()
    exit: Tuple[Handler, ...] = ()
    meta: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        on = {event_type: TransitionDefinition.from_dict(t) for event_type, t in (self.on or {}).items()}
        object.__setattr__(self, "on", on)
        object.__setattr__(self, "entry", _handlers(self.entry))
        object.__setattr__(self, "exit", _handlers(self.exit))
        object.__setattr__(self, "meta", dict(self.meta or {}))

    @property
    def tags(self) -> Tuple[str, ...]:
        tags = self.meta.get("tags") or ()
        if isinstance(tags, str):
            return (tags,)
        return tuple(tags)

    @classmethod
    def from_dict(cls, data: Union["StateDefinition", Mapping[str, Any], None]) -> "StateDefinition":
        if isinstance(data, StateDefinition):
            return data
        if data is None:
            return cls()
        if not isinstance(data, Mapping):
            raise ConfigurationError(f"State definition must be a mapping, got {data!r}")
        return cls(on=data.get("on"), entry=data.get("entry"), exit=data.get("exit"), meta=data.get("meta"))


@dataclass(frozen=True)
class MachineConfig:
    """
    Immutable description of a machine: its initial state, the state table and
    the starting context. Validated on construction.
    """

    initial: StateId
    states: Dict[StateId, StateDefinition]
    context: Any = None

    def __post_init__(self) -> None:
        if not self.states:
            raise ConfigurationError("Configuration must declare at least one state")
        states = {state_id: StateDefinition.from_dict(d) for state_id, d in self.states.items()}
        object.__setattr__(self, "states", states)
        if self.context is None:
            object.__setattr__(self, "context", {})

        if self.initial not in states:
            raise ConfigurationError(f"Initial state '{self.initial}' is not declared")
        for state_id, definition in states.items():
            for event_type, transition in definition.on.items():
                if transition.target is not None and transition.target not in states:
                    raise ConfigurationError(
                        f"Transition '{event_type}' from '{state_id}' targets undeclared state '{transition.target}'"
                    )

    def with_context(self, context: Any, initial: Optional[StateId] = None) -> "MachineConfig":
        return replace(self, context=context, initial=self.initial if initial is None else initial)

    @classmethod
    def from_dict(cls, data: Union["MachineConfig", Mapping[str, Any]]) -> "MachineConfig":
        """
        Build a configuration from its plain nested-mapping form::

            {"initial": "off",
             "states": {"off": {"on": {"TOGGLE": {"target": "on"}}},
                        "on": {"on": {"TOGGLE": {"target": "off"}}}},
             "context": {}}
        """
        if isinstance(data, MachineConfig):
            return data
        if not isinstance(data, Mapping):
            raise ConfigurationError(f"Configuration must be a mapping, got {type(data).__name__}")
        try:
            return cls(initial=data["initial"], states=dict(data["states"]), context=data.get("context"))
        except KeyError as e:
            raise ConfigurationError(f"Configuration is missing required key {e}")


@dataclass(frozen=True)
class HistoryOptions:
    enabled: bool = True
    max_size: int = 50

    def __post_init__(self) -> None:
        if self.max_size < 1:
            raise ConfigurationError("History max_size must be at least 1")


@dataclass(frozen=True)
class PersistenceOptions:
    key: str
    adapter: "PersistenceAdapter"
    throttle: Optional[float] = None  # seconds

    def __post_init__(self) -> None:
        if self.throttle is not None and self.throttle < 0:
            raise ConfigurationError("Persistence throttle must not be negative")


@dataclass(frozen=True)
class MachineOptions:
    """
    Optional capabilities and registries for a machine.

    :param actions: Registry of named actions.
    :param guards: Registry of named guards.
    :param history: Undo/redo settings; disabled when None.
    :param persistence: Adapter settings; disabled when None.
    :param timers: Enables timers and delayed events.
    :param dev_tools: Attaches a SnapshotMonitor observer.
    :param scheduler: Scheduler for timers and the persistence debounce.
        A ThreadingScheduler is created when omitted.
    :param on_diagnostic: Hook receiving every Diagnostic.
    """

    actions: Mapping[str, Callable[..., Any]] = field(default_factory=dict)
    guards: Mapping[str, Callable[..., Any]] = field(default_factory=dict)
    history: Optional[HistoryOptions] = None
    persistence: Optional[PersistenceOptions] = None
    timers: bool = False
    dev_tools: bool = False
    scheduler: Optional["Scheduler"] = None
    on_diagnostic: Optional["DiagnosticHook"] = None

    @property
    def history_enabled(self) -> bool:
        return self.history is not None and self.history.enabled

    @classmethod
    def from_dict(cls, data: Union["MachineOptions", Mapping[str, Any], None]) -> "MachineOptions":
        if data is None:
            return cls()
        if isinstance(data, MachineOptions):
            return data
        values = dict(data)
        history = values.pop("history", None)
        persistence = values.pop("persistence", None)
        try:
            if isinstance(history, Mapping):
                history = HistoryOptions(**history)
            if isinstance(persistence, Mapping):
                persistence = PersistenceOptions(**persistence)
            return cls(
                actions=values.pop("actions", None) or {},
                guards=values.pop("guards", None) or {},
                history=history,
                persistence=persistence,
                **values,
            )
        except TypeError as e:
            raise ConfigurationError(f"Invalid machine options: {e}")
