# statekit/persistence/adapter.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

from typing import Any, Dict, Optional, Protocol, runtime_checkable


@runtime_checkable
class PersistenceAdapter(Protocol):
    """
    Storage contract used by the persistence manager. Any backing store is
    valid as long as it honors these three operations. Each may return its
    result directly, as an awaitable, or as a ``concurrent.futures.Future``.
    """

    def save(self, key: str, data: Dict[str, Any]) -> Any:
        """
        Store ``data`` (a serialized state mapping) under ``key``.
        """
        ...

    def load(self, key: str) -> Optional[Dict[str, Any]]:
        """
        Return the mapping last saved under ``key``, or None.
        """
        ...

    def remove(self, key: str) -> Any:
        """
        Delete whatever is stored under ``key``.
        """
        ...
