# statekit/core/events.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Hashable, Mapping

INIT = "INIT"
UNDO = "UNDO"
REDO = "REDO"
HYDRATE = "HYDRATE"


@dataclass(frozen=True)
class Event:
    """
    Represents a signal sent to the machine. Only ``type`` takes part in
    transition lookup; ``payload`` and ``extra`` are handed to actions and
    guards untouched.
    """

    type: Hashable
    payload: Any = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def get(self, key: str, default: Any = None) -> Any:
        """Look up an extra field by name."""
        return self.extra.get(key, default)

    def to_dict(self) -> Dict[str, Any]:
        data = {"type": self.type, **self.extra}
        if self.payload is not None:
            data["payload"] = self.payload
        return data


def normalize_event(event: Any) -> Event:
    """
    Coerce whatever was handed to ``send`` into an :class:`Event`.

    :param event: An Event, a mapping with a ``"type"`` key, or a bare event type.
    :return: The normalized Event.
    """
    if isinstance(event, Event):
        return event
    if isinstance(event, Mapping) and "type" in event:
        extra = {k: v for k, v in event.items() if k not in ("type", "payload")}
        return Event(type=event["type"], payload=event.get("payload"), extra=extra)
    return Event(type=event)
