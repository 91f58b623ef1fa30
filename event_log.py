# event_log.py

import threading
from collections import Counter, deque
from typing import Dict, List, Optional

from models.sync_request import EventRecord, JourneyOutcome


class EventLog:
    """
    In-memory record of terminal delivery outcomes, capped at `max_entries`.
    Counters keep running totals even after old records fall off.
    """

    def __init__(self, max_entries: int = 500):
        self._records = deque(maxlen=max_entries)
        self._counts = Counter()
        self._lock = threading.Lock()

    def record(self, record: EventRecord) -> EventRecord:
        with self._lock:
            self._records.append(record)
            self._counts[record.outcome.value] += 1
        return record

    def recent(self, limit: Optional[int] = None) -> List[EventRecord]:
        with self._lock:
            records = list(self._records)
        if limit is not None:
            records = records[-limit:] if limit > 0 else []
        return records

    def with_outcome(self, outcome: JourneyOutcome) -> List[EventRecord]:
        return [r for r in self.recent() if r.outcome is outcome]

    def counts(self) -> Dict[str, int]:
        with self._lock:
            return {outcome.value: self._counts.get(outcome.value, 0) for outcome in JourneyOutcome}

    def __len__(self):
        with self._lock:
            return len(self._records)
