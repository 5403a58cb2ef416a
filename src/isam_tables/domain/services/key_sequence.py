"""Auto-increment key allocation.

Allocated values are monotonic and never reclaimed: a value handed out
inside a transaction that is later rolled back is burned, so numbering only
ever increases. Each sequence is seeded from the highest key the engine
currently holds, which makes allocation safe after a restart even though
the sequence state itself lives in memory.

Thread Safety:
    All methods are thread-safe.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Callable

from isam_tables.domain.value_objects import TableName


@dataclass
class SequenceStats:
    """Statistics for sequence monitoring."""

    sequences: int
    allocated_total: int


class KeySequenceRegistry:
    """Per-table integer key sequences owned by a ConnectionManager.

    Usage:
        sequences = KeySequenceRegistry()
        key = sequences.allocate(TableName("person"), highest_key=lambda: cursor.seek_last())
    """

    def __init__(self, start: int = 1) -> None:
        """Initialize the registry.

        Args:
            start: First value handed out for an empty table.
        """
        self._lock = threading.Lock()
        self._start = start
        self._next: dict[TableName, int] = {}
        self._allocated_total = 0

    def allocate(self, table: TableName, highest_key: Callable[[], int | None]) -> int:
        """Allocate the next key for ``table``.

        Args:
            table: The table whose key is allocated.
            highest_key: Returns the largest key currently visible in the
                table, or None if it is empty. Consulted on every call so
                explicitly inserted keys are skipped.

        Returns:
            A key larger than every key previously allocated or visible.
        """
        with self._lock:
            candidate = self._next.get(table, self._start)
            highest = highest_key()
            if highest is not None and highest >= candidate:
                candidate = highest + 1
            self._next[table] = candidate + 1
            self._allocated_total += 1
            return candidate

    def peek(self, table: TableName) -> int | None:
        """Return the next value the sequence would try, if it was used yet."""
        with self._lock:
            return self._next.get(table)

    def forget(self, table: TableName) -> None:
        """Drop a table's sequence state."""
        with self._lock:
            self._next.pop(table, None)

    def get_stats(self) -> SequenceStats:
        """Return sequence statistics for monitoring."""
        with self._lock:
            return SequenceStats(
                sequences=len(self._next),
                allocated_total=self._allocated_total,
            )
