# statekit/persistence/serializer.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Dict, Hashable, Mapping, Optional

from statekit.core.errors import PersistenceError


@dataclass(frozen=True)
class SerializedState:
    """
    The exact shape handed to ``adapter.save`` and expected back from
    ``adapter.load``: ``{"value": ..., "context": ..., "timestamp": epoch_ms}``.
    """

    value: Hashable
    context: Any
    timestamp: int

    @classmethod
    def capture(cls, value: Hashable, context: Any, now: Optional[float] = None) -> "SerializedState":
        """
        :param value: Current state id.
        :param context: Current context.
        :param now: Epoch seconds; defaults to the wall clock.
        """
        now = time.time() if now is None else now
        return cls(value=value, context=context, timestamp=int(now * 1000))

    def to_dict(self) -> Dict[str, Any]:
        return {"value": self.value, "context": self.context, "timestamp": self.timestamp}

    @classmethod
    def from_dict(cls, data: Any) -> "SerializedState":
        """
        :raises PersistenceError: If ``data`` is not a mapping with a ``value`` key.
        """
        if isinstance(data, SerializedState):
            return data
        if not isinstance(data, Mapping) or "value" not in data:
            raise PersistenceError(f"Malformed persisted state: {data!r}")
        timestamp = data.get("timestamp")
        try:
            timestamp = int(timestamp) if timestamp is not None else 0
        except (TypeError, ValueError):
            raise PersistenceError(f"Malformed persisted timestamp: {timestamp!r}")
        return cls(value=data["value"], context=data.get("context"), timestamp=timestamp)
