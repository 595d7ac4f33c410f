# tests/unit/core/test_state_machine.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from typing import List

import pytest

from statekit.core.diagnostics import DiagnosticKind
from statekit.core.errors import ActionExecutionError, ConfigurationError
from statekit.core.events import INIT, Event
from statekit.core.machine import StateMachine
from statekit.core.snapshot import Snapshot

# -----------------------------------------------------------------------------
# HELPERS
# -----------------------------------------------------------------------------


def kinds(diagnostics) -> List[DiagnosticKind]:
    return [d.kind for d in diagnostics]


@pytest.fixture
def recorded(machine_factory):
    """A machine whose handlers append their names to a shared call log."""
    calls: List[str] = []

    def log(name):
        def _action(ctx, event):
            calls.append(name)

        return _action

    config = {
        "initial": "a",
        "states": {
            "a": {"on": {"GO": {"target": "b", "actions": [log("t1"), log("t2")]}}, "exit": [log("exit_a")]},
            "b": {"entry": [log("entry_b1"), log("entry_b2")], "on": {"STAY": {"actions": [log("stay")]}}},
        },
    }
    return machine_factory(config), calls


# -----------------------------------------------------------------------------
# CONSTRUCTION TESTS
# -----------------------------------------------------------------------------


def test_undeclared_initial_state_raises():
    with pytest.raises(ConfigurationError, match="Initial state"):
        StateMachine({"initial": "missing", "states": {"a": {}}})


def test_undeclared_target_raises():
    with pytest.raises(ConfigurationError, match="undeclared state"):
        StateMachine({"initial": "a", "states": {"a": {"on": {"GO": {"target": "nowhere"}}}}})


def test_context_defaults_to_empty_mapping(machine_factory, toggle_config):
    machine = machine_factory(toggle_config)
    assert machine.context == {}
    assert machine.current_state == "off"


# -----------------------------------------------------------------------------
# TRANSITION TESTS
# -----------------------------------------------------------------------------


def test_toggle_twice_returns_to_initial(machine_factory, toggle_config):
    machine = machine_factory(toggle_config)
    seen: List[Snapshot] = []
    machine.subscribe(seen.append)

    machine.send("TOGGLE")
    assert machine.current_state == "on"
    machine.send("TOGGLE")
    assert machine.current_state == "off"

    assert [s.changed for s in seen] == [False, True, True]
    assert [s.value for s in seen] == ["off", "on", "off"]
    assert seen[1].event == Event("TOGGLE")


def test_actions_run_exit_then_transition_then_entry(recorded):
    machine, calls = recorded
    machine.send("GO")
    assert calls == ["exit_a", "t1", "t2", "entry_b1", "entry_b2"]
    assert machine.current_state == "b"


def test_internal_transition_reruns_own_entry_actions(recorded):
    machine, calls = recorded
    machine.send("GO")
    calls.clear()

    machine.send("STAY")
    # internal transition: the current state's own entry actions run again
    assert calls == ["stay", "entry_b1", "entry_b2"]
    assert machine.current_state == "b"


def test_internal_transition_without_context_change_is_unchanged(machine_factory, counter_config):
    machine = machine_factory(counter_config)
    seen: List[Snapshot] = []
    machine.subscribe(seen.append)

    machine.send("NOOP")

    assert len(seen) == 2
    assert seen[-1].changed is False
    assert seen[-1].event.type == "NOOP"


def test_action_returning_context_marks_changed(machine_factory, counter_config):
    machine = machine_factory(counter_config)
    seen: List[Snapshot] = []
    machine.subscribe(seen.append)

    machine.send("INCREMENT")

    assert machine.context == {"count": 1}
    assert seen[-1].changed is True
    assert seen[-1].value == "active"


def test_returning_the_same_context_object_still_counts_as_replaced(machine_factory):
    machine = machine_factory(
        {"initial": "a", "context": {"n": 1}, "states": {"a": {"on": {"TOUCH": {"actions": [lambda ctx, e: ctx]}}}}}
    )
    seen: List[Snapshot] = []
    machine.subscribe(seen.append)

    machine.send("TOUCH")

    assert seen[-1].changed is True


def test_payload_reaches_actions(machine_factory, counter_config):
    machine = machine_factory(counter_config)
    machine.send({"type": "INCREMENT", "payload": 5})
    machine.send(Event("INCREMENT", payload=2))
    assert machine.context["count"] == 7


def test_unknown_event_is_silent(machine_factory, toggle_config, diagnostics):
    machine = machine_factory(toggle_config)
    seen: List[Snapshot] = []
    machine.subscribe(seen.append)

    machine.send("UNKNOWN")

    assert len(seen) == 1
    assert diagnostics == []
    assert machine.current_state == "off"


def test_guard_rejection_is_silent(machine_factory, counter_config, diagnostics):
    machine = machine_factory(counter_config)
    seen: List[Snapshot] = []
    machine.subscribe(seen.append)

    machine.send("DECREMENT")

    assert len(seen) == 1
    assert machine.context == {"count": 0}
    assert diagnostics == []


def test_guard_receives_context_and_event(machine_factory):
    received = []

    def guard(ctx, event):
        received.append((ctx, event.payload))
        return event.payload == "ok"

    machine = machine_factory(
        {"initial": "a", "context": {"x": 1}, "states": {"a": {"on": {"GO": {"target": "b", "guard": guard}}}, "b": {}}}
    )
    machine.send({"type": "GO", "payload": "no"})
    assert machine.current_state == "a"
    machine.send({"type": "GO", "payload": "ok"})
    assert machine.current_state == "b"
    assert received == [({"x": 1}, "no"), ({"x": 1}, "ok")]


# -----------------------------------------------------------------------------
# FAILURE AND ROLLBACK TESTS
# -----------------------------------------------------------------------------


def test_failing_action_rolls_back_state_and_context(machine_factory, diagnostics):
    def boom(ctx, event):
        raise RuntimeError("boom")

    machine = machine_factory(
        {
            "initial": "a",
            "context": {"n": 0},
            "states": {
                "a": {"on": {"GO": {"target": "b", "actions": [lambda ctx, e: {"n": 99}]}}},
                "b": {"entry": [boom]},
            },
        }
    )
    seen: List[Snapshot] = []
    machine.subscribe(seen.append)

    machine.send("GO")

    assert machine.current_state == "a"
    assert machine.context == {"n": 0}
    assert len(seen) == 1
    assert kinds(diagnostics) == [DiagnosticKind.ACTION_FAILED]
    assert isinstance(diagnostics[0].error, ActionExecutionError)
    assert isinstance(diagnostics[0].error.__cause__, RuntimeError)
    assert machine.is_transitioning is False


def test_machine_usable_after_failure(machine_factory, toggle_config):
    calls = {"n": 0}

    def flaky(ctx, event):
        calls["n"] += 1
        if calls["n"] == 1:
            raise ValueError("first time fails")

    toggle_config["states"]["off"]["on"]["TOGGLE"]["actions"] = [flaky]
    machine = machine_factory(toggle_config)

    machine.send("TOGGLE")
    assert machine.current_state == "off"
    machine.send("TOGGLE")
    assert machine.current_state == "on"


def test_raising_guard_is_reported_and_rolled_back(machine_factory, diagnostics):
    def bad_guard(ctx, event):
        raise KeyError("missing")

    machine = machine_factory({"initial": "a", "states": {"a": {"on": {"GO": {"target": "b", "guard": bad_guard}}}, "b": {}}})

    machine.send("GO")
    assert machine.current_state == "a"
    assert machine.can("GO") is False
    assert kinds(diagnostics) == [DiagnosticKind.ACTION_FAILED, DiagnosticKind.ACTION_FAILED]


def test_reentrant_send_from_action_is_dropped(machine_factory, diagnostics):
    holder = {}

    def resend(ctx, event):
        holder["machine"].send("GO")
        return {**ctx, "ran": ctx.get("ran", 0) + 1}

    machine = machine_factory(
        {
            "initial": "a",
            "states": {"a": {"on": {"GO": {"target": "b", "actions": [resend]}}}, "b": {"on": {"GO": {"target": "a"}}}},
        }
    )
    holder["machine"] = machine

    machine.send("GO")

    assert machine.current_state == "b"
    assert machine.context == {"ran": 1}
    assert kinds(diagnostics) == [DiagnosticKind.REENTRANT_SEND_REJECTED]
    assert diagnostics[0].event == Event("GO")


def test_send_from_listener_is_dropped(machine_factory, toggle_config, diagnostics):
    machine = machine_factory(toggle_config)

    def listener(snapshot):
        if snapshot.changed:
            machine.send("TOGGLE")

    machine.subscribe(listener)
    machine.send("TOGGLE")

    assert machine.current_state == "on"
    assert kinds(diagnostics) == [DiagnosticKind.REENTRANT_SEND_REJECTED]


# -----------------------------------------------------------------------------
# NAMED HANDLER TESTS
# -----------------------------------------------------------------------------


def test_named_actions_and_guards_resolve_from_registries(machine_factory):
    config = {
        "initial": "idle",
        "context": {"attempts": 0},
        "states": {
            "idle": {"on": {"FETCH": {"target": "loading"}}},
            "loading": {"on": {"ERROR": {"target": "failure", "actions": ["bump"]}}},
            "failure": {"on": {"RETRY": {"target": "loading", "guard": "can_retry"}}},
        },
    }
    machine = machine_factory(
        config,
        actions={"bump": lambda ctx, e: {**ctx, "attempts": ctx["attempts"] + 1}},
        guards={"can_retry": lambda ctx, e: ctx["attempts"] < 3},
    )

    machine.send("FETCH")
    machine.send("ERROR")
    assert machine.context["attempts"] == 1
    assert machine.can("RETRY") is True


def test_missing_named_action_is_skipped_and_reported(machine_factory, diagnostics):
    machine = machine_factory({"initial": "a", "states": {"a": {"on": {"GO": {"target": "b", "actions": ["nope"]}}}, "b": {}}})

    machine.send("GO")

    assert machine.current_state == "b"
    assert kinds(diagnostics) == [DiagnosticKind.HANDLER_NOT_FOUND]


def test_missing_named_guard_allows_transition(machine_factory, diagnostics):
    machine = machine_factory({"initial": "a", "states": {"a": {"on": {"GO": {"target": "b", "guard": "nope"}}}, "b": {}}})

    machine.send("GO")

    assert machine.current_state == "b"
    assert DiagnosticKind.HANDLER_NOT_FOUND in kinds(diagnostics)


# -----------------------------------------------------------------------------
# QUERY TESTS
# -----------------------------------------------------------------------------


def test_get_snapshot_is_pure(machine_factory, toggle_config):
    machine = machine_factory(toggle_config)
    seen: List[Snapshot] = []
    machine.subscribe(seen.append)

    snapshot = machine.get_snapshot()

    assert len(seen) == 1
    assert snapshot.value == "off"
    assert snapshot.changed is False
    assert snapshot.event.type == INIT
    assert snapshot.meta == {"tags": ["idle"]}


def test_can_and_get_next_events(machine_factory, counter_config):
    machine = machine_factory(counter_config)
    assert machine.can("INCREMENT") is True
    assert machine.can("DECREMENT") is False
    assert machine.can("UNKNOWN") is False
    assert machine.get_next_events() == ["INCREMENT", "NOOP"]

    machine.send("INCREMENT")
    assert machine.get_next_events() == ["INCREMENT", "DECREMENT", "NOOP"]


def test_can_does_not_mutate(machine_factory, counter_config):
    machine = machine_factory(counter_config)
    machine.can("INCREMENT")
    assert machine.context == {"count": 0}


def test_matches(machine_factory, toggle_config):
    machine = machine_factory(toggle_config)
    assert machine.matches("off")
    assert not machine.matches("on")
    assert machine.matches(["on", "off"])
    assert machine.matches({"off"})
    assert not machine.matches(("on",))


def test_has_tag(machine_factory, toggle_config):
    machine = machine_factory(toggle_config)
    assert machine.has_tag("idle")
    assert not machine.has_tag("active")
    machine.send("TOGGLE")
    assert machine.has_tag("powered")
    assert not machine.has_tag("idle")


# -----------------------------------------------------------------------------
# LIFECYCLE TESTS
# -----------------------------------------------------------------------------


def test_with_context_clones_independently(machine_factory, counter_config):
    machine = machine_factory(counter_config, history={"enabled": True})
    machine.send("INCREMENT")

    clone = machine.with_context({"label": "copy"})
    clone.send("INCREMENT")

    assert clone.context == {"count": 2, "label": "copy"}
    assert machine.context == {"count": 1}
    assert clone.current_state == machine.current_state
    assert len(clone.get_history().states) == 2
    assert len(machine.get_history().states) == 2
    assert clone.get_history().states[0].context == {"count": 1, "label": "copy"}
    clone.destroy()


def test_with_context_preserves_current_state(machine_factory, toggle_config):
    machine = machine_factory(toggle_config)
    machine.send("TOGGLE")
    clone = machine.with_context({"x": 1})
    assert clone.current_state == "on"
    assert clone.context == {"x": 1}
    clone.destroy()


def test_with_context_requires_mapping_context(machine_factory):
    machine = machine_factory({"initial": "a", "context": 5, "states": {"a": {}}})
    with pytest.raises(TypeError):
        machine.with_context({"x": 1})


def test_destroy_makes_machine_inert(machine_factory, toggle_config, diagnostics):
    machine = machine_factory(toggle_config)
    seen: List[Snapshot] = []
    machine.subscribe(seen.append)

    machine.destroy()
    machine.send("TOGGLE")
    machine.destroy()

    assert machine.is_destroyed
    assert machine.current_state == "off"
    assert len(seen) == 1
    assert kinds(diagnostics) == [DiagnosticKind.MACHINE_DESTROYED]
    assert machine.can("TOGGLE") is False


def test_context_manager_destroys(toggle_config, scheduler):
    with StateMachine(toggle_config, {"scheduler": scheduler}) as machine:
        machine.send("TOGGLE")
    assert machine.is_destroyed
