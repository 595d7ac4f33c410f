# tests/conftest.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

import copy
from typing import Any, Dict, List

import pytest

from statekit.core.diagnostics import Diagnostic
from statekit.runtime.scheduler import ManualScheduler


class MemoryAdapter:
    """Synchronous in-memory persistence adapter recording every call."""

    def __init__(self, initial: Dict[str, Any] = None):
        self.store: Dict[str, Any] = dict(initial or {})
        self.saves: List[tuple] = []
        self.removed: List[str] = []
        self.fail_on = set()

    def save(self, key: str, data: Any) -> None:
        if "save" in self.fail_on:
            raise IOError("disk full")
        self.saves.append((key, copy.deepcopy(data)))
        self.store[key] = copy.deepcopy(data)

    def load(self, key: str) -> Any:
        if "load" in self.fail_on:
            raise IOError("unreadable")
        return copy.deepcopy(self.store.get(key))

    def remove(self, key: str) -> None:
        self.removed.append(key)
        self.store.pop(key, None)


class AsyncMemoryAdapter(MemoryAdapter):
    """Same as MemoryAdapter but every operation is a coroutine."""

    async def save(self, key: str, data: Any) -> None:
        MemoryAdapter.save(self, key, data)

    async def load(self, key: str) -> Any:
        return MemoryAdapter.load(self, key)

    async def remove(self, key: str) -> None:
        MemoryAdapter.remove(self, key)


# -----------------------------------------------------------------------------
# FIXTURES
# -----------------------------------------------------------------------------


@pytest.fixture
def scheduler():
    """A deterministic scheduler driven by advance()."""
    return ManualScheduler()


@pytest.fixture
def diagnostics():
    """Collects every Diagnostic reported through on_diagnostic."""
    collected: List[Diagnostic] = []
    return collected


@pytest.fixture
def adapter():
    return MemoryAdapter()


@pytest.fixture
def async_adapter():
    return AsyncMemoryAdapter()


@pytest.fixture
def toggle_config():
    return {
        "initial": "off",
        "states": {
            "off": {"on": {"TOGGLE": {"target": "on"}}, "meta": {"tags": ["idle"]}},
            "on": {"on": {"TOGGLE": {"target": "off"}}, "meta": {"tags": ["active", "powered"]}},
        },
    }


@pytest.fixture
def counter_config():
    def increment(ctx, event):
        return {**ctx, "count": ctx["count"] + (event.payload or 1)}

    def decrement(ctx, event):
        return {**ctx, "count": ctx["count"] - 1}

    return {
        "initial": "active",
        "context": {"count": 0},
        "states": {
            "active": {
                "on": {
                    "INCREMENT": {"actions": [increment]},
                    "DECREMENT": {"actions": [decrement], "guard": lambda ctx, e: ctx["count"] > 0},
                    "NOOP": {},
                }
            }
        },
    }


@pytest.fixture
def machine_factory(scheduler, diagnostics):
    """Returns a factory building machines on the manual scheduler; all are destroyed at teardown."""
    from statekit.core.config import MachineOptions
    from statekit.core.machine import StateMachine

    machines = []

    def _factory(config, **options):
        options.setdefault("scheduler", scheduler)
        options.setdefault("on_diagnostic", diagnostics.append)
        machine = StateMachine(config, MachineOptions.from_dict(options))
        machines.append(machine)
        return machine

    yield _factory
    for machine in machines:
        machine.destroy()
