# statekit/core/handlers.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional, Union

from statekit.core.diagnostics import DiagnosticKind, DiagnosticReporter
from statekit.core.errors import ConfigurationError, HandlerNotFoundError
from statekit.core.events import Event

ActionFn = Callable[[Any, Event], Any]
GuardFn = Callable[[Any, Event], bool]


@dataclass(frozen=True)
class DirectHandler:
    """A handler given as the function itself."""

    fn: Callable[..., Any]

    def __str__(self) -> str:
        return getattr(self.fn, "__name__", repr(self.fn))


@dataclass(frozen=True)
class NamedHandler:
    """A handler referenced by name and looked up in a registry at send time."""

    name: str

    def __str__(self) -> str:
        return self.name


Handler = Union[DirectHandler, NamedHandler]


def as_handler(value: Any) -> Handler:
    """
    Wrap a callable or registry name as a handler.

    :param value: A callable, a string name, or an existing handler.
    :raises ConfigurationError: For any other value.
    """
    if isinstance(value, (DirectHandler, NamedHandler)):
        return value
    if isinstance(value, str):
        return NamedHandler(value)
    if callable(value):
        return DirectHandler(value)
    raise ConfigurationError(f"Handler must be a callable or a registry name, got {value!r}")


class HandlerResolver:
    """
    Maps handlers to executable functions. Direct handlers resolve to their
    function; named handlers are looked up in the registry supplied at machine
    construction.
    """

    def __init__(
        self,
        registry: Optional[Mapping[str, Callable[..., Any]]],
        kind: str,
        reporter: DiagnosticReporter,
    ) -> None:
        """
        :param registry: Name to function mapping, may be None.
        :param kind: "action" or "guard", used in diagnostics.
        :param reporter: Where unknown names are reported.
        """
        self._registry = dict(registry or {})
        self._kind = kind
        self._reporter = reporter

    def resolve(self, handler: Handler) -> Optional[Callable[..., Any]]:
        """
        Return the function behind ``handler``, or None if a named handler is
        not registered.
        """
        if isinstance(handler, DirectHandler):
            return handler.fn

        fn = self._registry.get(handler.name)
        if fn is None:
            self._reporter.report(
                DiagnosticKind.HANDLER_NOT_FOUND,
                f"No {self._kind} registered under name '{handler.name}'",
                error=HandlerNotFoundError(handler.name),
            )
            return None
        if not callable(fn):
            # Registries may alias one name to another.
            return self.resolve(as_handler(fn))
        return fn

    def __contains__(self, name: str) -> bool:
        return name in self._registry


class _GuardEvaluator:
    """
    Internal helper to evaluate a transition guard against the current context.
    """

    def __init__(self, resolver: HandlerResolver) -> None:
        self._resolver = resolver

    def evaluate(self, guard: Optional[Handler], context: Any, event: Event) -> bool:
        """
        :return: True if there is no guard, the guard cannot be resolved, or it passes.
        """
        if guard is None:
            return True
        fn = self._resolver.resolve(guard)
        if fn is None:
            return True
        return bool(fn(context, event))


class _ActionExecutor:
    """
    Internal helper running a list of actions in order, threading the context
    through them.
    """

    def __init__(self, resolver: HandlerResolver) -> None:
        self._resolver = resolver

    def execute(self, actions, context: Any, event: Event):
        """
        :return: ``(context, replaced)`` where ``replaced`` is True if at least
            one action returned a new context.
        """
        replaced = False
        for action in actions:
            fn = self._resolver.resolve(action)
            if fn is None:
                continue
            result = fn(context, event)
            if result is not None:
                context = result
                replaced = True
        return context, replaced
