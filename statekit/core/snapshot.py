# statekit/core/snapshot.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Dict, Hashable

from statekit.core.events import Event


@dataclass(frozen=True)
class Snapshot:
    """
    Record of the machine at one point in time. This is what listeners
    receive, what history stores, and what persistence serializes.
    """

    value: Hashable
    context: Any
    changed: bool
    event: Event
    meta: Dict[str, Any] = field(default_factory=dict)

    def republish(self, event: Event) -> "Snapshot":
        """Copy of this snapshot marked as changed by a synthetic event."""
        return replace(self, changed=True, event=event)
