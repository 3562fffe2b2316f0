"""Bounded state history for undo/redo.

Snapshots are full shallow copies of the state mapping. That is fine for
UI-flag sized state; larger state would want structural sharing instead.
"""

from __future__ import annotations

import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Mapping

from portalcore.action import Action

DEFAULT_MAX_SIZE = 50


@dataclass(frozen=True)
class HistoryEntry:
    state: Mapping[str, Any]
    action: Action | None = None
    timestamp: float = field(default_factory=time.time)


class History:
    """Ring buffer of snapshots plus a redo stack."""

    def __init__(self, max_size: int = DEFAULT_MAX_SIZE) -> None:
        if max_size < 1:
            raise ValueError(f"max_size must be positive, got {max_size}")
        self._entries: deque[HistoryEntry] = deque(maxlen=max_size)
        self._redo: list[HistoryEntry] = []

    def record(self, state: Mapping[str, Any], action: Action | None = None) -> None:
        """Append a snapshot. Oldest entry is evicted past max_size. New changes clear redo."""
        self._entries.append(HistoryEntry(dict(state), action))
        self._redo.clear()

    def step_back(self) -> HistoryEntry | None:
        """Move the current entry to redo; return the entry that is now current."""
        if len(self._entries) < 2:
            return None
        self._redo.append(self._entries.pop())
        return self._entries[-1]

    def step_forward(self) -> HistoryEntry | None:
        if not self._redo:
            return None
        entry = self._redo.pop()
        self._entries.append(entry)
        return entry

    def reset(self, state: Mapping[str, Any] | None = None) -> None:
        self._entries.clear()
        self._redo.clear()
        if state is not None:
            self._entries.append(HistoryEntry(dict(state)))

    def entries(self) -> list[HistoryEntry]:
        return list(self._entries)

    @property
    def redo_size(self) -> int:
        return len(self._redo)

    def __len__(self) -> int:
        return len(self._entries)
