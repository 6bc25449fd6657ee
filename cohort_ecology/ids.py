"""Cohort identifier allocation.

Identifiers are globally unique and monotonically assigned. Offspring are
created concurrently by workers processing different cells, so the
counter is shared behind a lock; identifiers issued to different workers
can never collide.
"""

from __future__ import annotations

import itertools
import threading


class CohortIdAllocator:
    """Thread-safe monotonic counter for cohort identifiers."""

    def __init__(self, start: int = 0):
        if start < 0:
            raise ValueError(f"start must be >= 0, got {start}")
        self._counter = itertools.count(start)
        self._lock = threading.Lock()
        self._issued = 0

    def next_id(self) -> int:
        with self._lock:
            self._issued += 1
            return next(self._counter)

    @property
    def issued(self) -> int:
        """Number of identifiers handed out so far."""
        with self._lock:
            return self._issued
