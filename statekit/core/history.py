# statekit/core/history.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

import logging
from typing import List, NamedTuple, Optional, Tuple

from statekit.core.snapshot import Snapshot

logger = logging.getLogger(__name__)


class HistoryView(NamedTuple):
    states: Tuple[Snapshot, ...]
    current_index: int
    max_size: int


class HistoryManager:
    """
    Bounded undo/redo log of snapshots.

    The log always holds at least one entry and ``current_index`` always points
    into it. Appending after an undo drops every entry past the current index
    first; overflowing ``max_size`` evicts the oldest entry and shifts the index
    so it keeps pointing at the same logical snapshot.
    """

    def __init__(self, initial: Snapshot, max_size: int = 50) -> None:
        """
        :param initial: Snapshot the log is seeded with.
        :param max_size: Maximum number of retained snapshots.
        """
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self._max_size = max_size
        self._states: List[Snapshot] = [initial]
        self._current_index = 0

    def append(self, snapshot: Snapshot) -> None:
        del self._states[self._current_index + 1 :]
        self._states.append(snapshot)
        self._current_index = len(self._states) - 1

        if len(self._states) > self._max_size:
            self._states.pop(0)
            self._current_index -= 1
        logger.debug("History append: %d entries, index %d", len(self._states), self._current_index)

    def reset(self, initial: Snapshot) -> None:
        """Discard the log and start again from ``initial``."""
        self._states = [initial]
        self._current_index = 0

    def can_undo(self) -> bool:
        return self._current_index > 0

    def can_redo(self) -> bool:
        return self._current_index < len(self._states) - 1

    def undo(self) -> Optional[Snapshot]:
        """
        Step back one entry.

        :return: The snapshot now current, or None if already at the oldest entry.
        """
        if not self.can_undo():
            return None
        self._current_index -= 1
        return self._states[self._current_index]

    def redo(self) -> Optional[Snapshot]:
        """
        Step forward one entry.

        :return: The snapshot now current, or None if there is nothing to redo.
        """
        if not self.can_redo():
            return None
        self._current_index += 1
        return self._states[self._current_index]

    @property
    def current(self) -> Snapshot:
        return self._states[self._current_index]

    @property
    def current_index(self) -> int:
        return self._current_index

    @property
    def max_size(self) -> int:
        return self._max_size

    def view(self) -> HistoryView:
        return HistoryView(tuple(self._states), self._current_index, self._max_size)

    def __len__(self) -> int:
        return len(self._states)
