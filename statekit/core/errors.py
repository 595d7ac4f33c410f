# statekit/core/errors.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details


class StateKitError(Exception):
    """
    Base exception class for errors within the state machine library.
    """


class ConfigurationError(StateKitError):
    """
    Raised when a machine configuration or its options are malformed, e.g. an
    initial state or a transition target that is not declared.
    """


class TransitionError(StateKitError):
    """
    Raised when an attempted state transition cannot be completed.
    """


class ActionExecutionError(TransitionError):
    """
    Raised when an action or guard fails while a transition is executing.
    """

    def __init__(self, message: str, state: object = None, event_type: object = None) -> None:
        super().__init__(message)
        self.state = state
        self.event_type = event_type


class ReentrantSendError(TransitionError):
    """
    Raised when an event is sent while another transition is in progress.
    """


class ListenerError(StateKitError):
    """
    Raised when a subscribed listener fails during notification.
    """


class PersistenceError(StateKitError):
    """
    Raised when a persistence adapter fails to save, load, or remove data, or
    returns data that cannot be restored.
    """


class CapabilityNotEnabledError(StateKitError):
    """
    Raised when an optional capability (timers, history, persistence) is used
    on a machine that was constructed without it.
    """


class HandlerNotFoundError(CapabilityNotEnabledError):
    """
    Raised when a named action or guard is missing from its registry.
    """
