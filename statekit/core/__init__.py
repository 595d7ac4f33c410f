"""
Core package providing the transition engine and its building blocks.

Architecture:
- Immutable configuration model (states, transitions, handlers)
- Action/guard resolution against named registries
- Synchronous transition engine with rollback on failure
- Listener registry and bounded undo/redo history

Cross-cutting:
- Recoverable failures are reported through DiagnosticReporter, never raised
  out of ``send``
- Configuration errors are raised at construction time
"""

# Import order matters to avoid circular dependencies
from .errors import (
    ActionExecutionError,
    CapabilityNotEnabledError,
    ConfigurationError,
    HandlerNotFoundError,
    ListenerError,
    PersistenceError,
    ReentrantSendError,
    StateKitError,
    TransitionError,
)
from .events import HYDRATE, INIT, REDO, UNDO, Event, normalize_event
from .handlers import DirectHandler, HandlerResolver, NamedHandler, as_handler
from .config import (
    HistoryOptions,
    MachineConfig,
    MachineOptions,
    PersistenceOptions,
    StateDefinition,
    TransitionDefinition,
)
from .snapshot import Snapshot
from .diagnostics import Diagnostic, DiagnosticKind, DiagnosticReporter
from .listeners import ListenerRegistry
from .history import HistoryManager, HistoryView
from .machine import StateMachine

__all__ = [
    # Errors
    "StateKitError",
    "ConfigurationError",
    "TransitionError",
    "ActionExecutionError",
    "ReentrantSendError",
    "ListenerError",
    "PersistenceError",
    "CapabilityNotEnabledError",
    "HandlerNotFoundError",
    # Events
    "Event",
    "normalize_event",
    "INIT",
    "UNDO",
    "REDO",
    "HYDRATE",
    # Configuration
    "MachineConfig",
    "StateDefinition",
    "TransitionDefinition",
    "MachineOptions",
    "HistoryOptions",
    "PersistenceOptions",
    "DirectHandler",
    "NamedHandler",
    "HandlerResolver",
    "as_handler",
    # Runtime objects
    "Snapshot",
    "Diagnostic",
    "DiagnosticKind",
    "DiagnosticReporter",
    "ListenerRegistry",
    "HistoryManager",
    "HistoryView",
    "StateMachine",
]
