# dedupe.py holds the per-application debounce window shared by all in-flight deliveries.

import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional

from models.sync_request import SyncRequest

logger = logging.getLogger(__name__)


class GateVerdict(str, Enum):
    ADMIT = "admit"
    SUPERSEDE = "supersede"


@dataclass(frozen=True)
class GateDecision:
    verdict: GateVerdict
    request: SyncRequest
    # The request whose commit context will not be dispatched. For ADMIT this is None.
    superseded: Optional[SyncRequest] = None

    @property
    def admitted(self) -> bool:
        return self.verdict is GateVerdict.ADMIT


@dataclass
class _WindowEntry:
    stamped_at: float
    last_seen: float
    pending: Optional[SyncRequest] = None


class DedupeWindow:
    """
    Debounce gate keyed by application name.

    An application is admitted at most once per `debounce_seconds`, counted from admission.
    Requests arriving inside the window are superseded: while the admitted dispatch is still
    pending, the newest request takes its place, so the dispatch carries the latest commit.
    All read-check-write sequences happen under one lock, and the lock is never held while a
    dispatch is in flight.
    """

    def __init__(self, debounce_seconds: float, idle_ttl_seconds: float, clock: Callable[[], float] = time.monotonic):
        self.debounce_seconds = debounce_seconds
        self.idle_ttl_seconds = idle_ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: Dict[str, _WindowEntry] = {}

    def offer(self, request: SyncRequest) -> GateDecision:
        key = request.application
        with self._lock:
            now = self._clock()
            self._evict_locked(now)
            entry = self._entries.get(key)

            # A pending dispatch always absorbs the newer request, even past the interval.
            if entry is None or (entry.pending is None and now - entry.stamped_at >= self.debounce_seconds):
                self._entries[key] = _WindowEntry(stamped_at=now, last_seen=now, pending=request)
                return GateDecision(GateVerdict.ADMIT, request)

            entry.last_seen = now
            if entry.pending is not None:
                previous = entry.pending
                entry.pending = request
                return GateDecision(GateVerdict.SUPERSEDE, request, superseded=previous)
            # Dispatch already started; the engine will pick up this commit on its next sync.
            return GateDecision(GateVerdict.SUPERSEDE, request, superseded=request)

    def claim(self, application: str) -> Optional[SyncRequest]:
        """
        Take the pending request for dispatch. The interval keeps running from admission.
        Returns None if nothing is pending (already claimed or evicted).
        """
        with self._lock:
            entry = self._entries.get(application)
            if entry is None or entry.pending is None:
                return None
            request = entry.pending
            entry.pending = None
            entry.last_seen = self._clock()
            return request

    def take_pending(self) -> List[SyncRequest]:
        """Claim every pending request at once. Used at shutdown to account for undispatched work."""
        with self._lock:
            pending = []
            for entry in self._entries.values():
                if entry.pending is not None:
                    pending.append(entry.pending)
                    entry.pending = None
            return pending

    def evict_idle(self) -> int:
        with self._lock:
            return self._evict_locked(self._clock())

    def _evict_locked(self, now: float) -> int:
        stale = [
            key for key, entry in self._entries.items()
            if entry.pending is None
            and now - entry.last_seen >= self.idle_ttl_seconds
            and now - entry.stamped_at >= self.debounce_seconds
        ]
        for key in stale:
            del self._entries[key]
        if stale:
            logger.debug(f"Evicted idle debounce entries: {stale}")
        return len(stale)

    def snapshot(self) -> Dict[str, dict]:
        with self._lock:
            now = self._clock()
            return {
                key: {
                    "seconds_since_admit": round(now - entry.stamped_at, 3),
                    "pending_revision": entry.pending.revision if entry.pending else None,
                }
                for key, entry in self._entries.items()
            }

    def clear(self):
        with self._lock:
            self._entries.clear()

    def __len__(self):
        with self._lock:
            return len(self._entries)
