# statekit/core/diagnostics.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


class DiagnosticKind(Enum):
    """Categories of recoverable runtime problems.

    None of these are raised out of the machine; they are logged and handed to
    the optional ``on_diagnostic`` hook.
    """

    REENTRANT_SEND_REJECTED = auto()  # send() during a transition
    ACTION_FAILED = auto()  # action or guard raised, transition rolled back
    LISTENER_FAILED = auto()  # subscriber raised during notification
    PERSISTENCE_FAILED = auto()  # adapter save/load/remove failed
    CAPABILITY_NOT_ENABLED = auto()  # optional feature used but not configured
    HANDLER_NOT_FOUND = auto()  # named action/guard missing from registry
    TIMER_FAILED = auto()  # timer callback raised
    MACHINE_DESTROYED = auto()  # operation on a destroyed machine


_ERROR_KINDS = {DiagnosticKind.ACTION_FAILED, DiagnosticKind.LISTENER_FAILED, DiagnosticKind.TIMER_FAILED}


@dataclass(frozen=True)
class Diagnostic:
    kind: DiagnosticKind
    message: str
    error: Optional[BaseException] = None
    event: Any = None


DiagnosticHook = Callable[[Diagnostic], None]


class DiagnosticReporter:
    """
    Single outlet for every recoverable failure inside a machine. Reports go to
    the module logger and then to the user-supplied hook, if any.
    """

    def __init__(self, hook: Optional[DiagnosticHook] = None, name: str = "StateMachine") -> None:
        """
        :param hook: Optional callable receiving each Diagnostic.
        :param name: Label used as a prefix in log records.
        """
        self._hook = hook
        self._name = name

    def report(
        self,
        kind: DiagnosticKind,
        message: str,
        error: Optional[BaseException] = None,
        event: Any = None,
    ) -> Diagnostic:
        diagnostic = Diagnostic(kind=kind, message=message, error=error, event=event)
        if kind in _ERROR_KINDS and error is not None:
            logger.error("%s: %s", self._name, message, exc_info=(type(error), error, error.__traceback__))
        else:
            logger.warning("%s: %s", self._name, message)

        if self._hook is not None:
            try:
                self._hook(diagnostic)
            except Exception:
                logger.exception("%s: diagnostic hook failed", self._name)
        return diagnostic
