"""Bounded in-memory history of recent analyses.

Keeps the last ``capacity`` records; appending beyond that evicts the oldest.
Appends may come from several round threads at once, so every access goes
through one lock.
"""

import threading
from collections import deque
from typing import List, Optional

from supra_agent.models import AnalysisRecord


DEFAULT_CAPACITY = 10


class AnalysisHistory:
    """Thread-safe FIFO of AnalysisRecord."""

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self.capacity = capacity
        self._lock = threading.Lock()
        self._records = deque(maxlen=capacity)

    def append(self, record: AnalysisRecord) -> None:
        with self._lock:
            self._records.append(record)

    def records(self) -> List[AnalysisRecord]:
        """Oldest first."""
        with self._lock:
            return list(self._records)

    def recent(self, count: int) -> List[AnalysisRecord]:
        """Up to ``count`` most recent records, newest last."""
        if count <= 0:
            return []
        with self._lock:
            return list(self._records)[-count:]

    def latest(self, pair: Optional[str] = None) -> Optional[AnalysisRecord]:
        with self._lock:
            for record in reversed(self._records):
                if pair is None or record.pair == pair:
                    return record
        return None

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
