"""statekit: event-driven finite state machine engine

Drives a declarative table of states, transitions, guards and actions over a
mutable application context, publishing a snapshot to observers after every
processed event.

Responsibilities:
    - State machine definition and validation
    - Event processing with guard evaluation and ordered exit/transition/entry actions
    - Snapshot publication to listeners
    - Optional undo/redo history
    - Optional throttled persistence through a pluggable adapter
    - Optional timers and delayed events on a pluggable scheduler

Cross-cutting Concerns:
    Concurrency:
        - One logical thread of control per machine
        - Re-entrant sends are rejected, not queued

    Error Handling:
        - Structured error hierarchy
        - Runtime failures are reported as diagnostics, never raised from send()
        - Failed transitions roll back state and context

    Logging:
        - Standard library logging, one logger per module
        - Optional diagnostic hook for telemetry
"""

from statekit.core import (
    HYDRATE,
    INIT,
    REDO,
    UNDO,
    ActionExecutionError,
    CapabilityNotEnabledError,
    ConfigurationError,
    Diagnostic,
    DiagnosticKind,
    Event,
    HandlerNotFoundError,
    HistoryOptions,
    HistoryView,
    ListenerError,
    MachineConfig,
    MachineOptions,
    PersistenceError,
    PersistenceOptions,
    ReentrantSendError,
    Snapshot,
    StateDefinition,
    StateKitError,
    StateMachine,
    TransitionDefinition,
    TransitionError,
)
from statekit.persistence import PersistenceAdapter, SerializedState
from statekit.runtime import AsyncioScheduler, ManualScheduler, Scheduler, SnapshotMonitor, ThreadingScheduler, TimerConfig

__version__ = "0.1.0"

__all__ = [
    "StateMachine",
    "MachineConfig",
    "StateDefinition",
    "TransitionDefinition",
    "MachineOptions",
    "HistoryOptions",
    "PersistenceOptions",
    "Event",
    "Snapshot",
    "HistoryView",
    "Diagnostic",
    "DiagnosticKind",
    "INIT",
    "UNDO",
    "REDO",
    "HYDRATE",
    "PersistenceAdapter",
    "SerializedState",
    "Scheduler",
    "ThreadingScheduler",
    "AsyncioScheduler",
    "ManualScheduler",
    "TimerConfig",
    "SnapshotMonitor",
    "StateKitError",
    "ConfigurationError",
    "TransitionError",
    "ActionExecutionError",
    "ReentrantSendError",
    "ListenerError",
    "PersistenceError",
    "CapabilityNotEnabledError",
    "HandlerNotFoundError",
]
