"""Pending image side channel keyed by run id.

The chat front end receives the uploaded image but the extraction tool
call it later triggers carries only a placeholder argument. The real
image reference is parked here under the run id and picked up once by
the extraction step.

Usage guidelines:
- Entries are single use: ``consume`` deletes what it returns.
- Entries expire after ``ttl_seconds`` and the store never holds more
  than ``max_entries``; the oldest entry is evicted first.
- A second ``set`` for the same run id replaces the first (last write wins).
"""
from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from typing import Callable, Optional, Tuple

from kakeibo.core.config import settings

logger = logging.getLogger(__name__)


class RunCorrelationStore:
    """Bounded, expiring map from run id to a pending image reference."""

    def __init__(
        self,
        ttl_seconds: float | None = None,
        max_entries: int | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = float(settings.RUN_IMAGE_TTL_SECONDS if ttl_seconds is None else ttl_seconds)
        self.max_entries = int(settings.RUN_IMAGE_MAX_ENTRIES if max_entries is None else max_entries)
        if self.ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        if self.max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self._clock = clock
        # run_id -> (stored_at, image_reference), oldest first
        self._entries: "OrderedDict[str, Tuple[float, str]]" = OrderedDict()
        self._lock = threading.Lock()

    def _expired(self, stored_at: float, now: float) -> bool:
        return now - stored_at >= self.ttl_seconds

    def _purge_locked(self, now: float) -> int:
        removed = 0
        while self._entries:
            run_id, (stored_at, _) = next(iter(self._entries.items()))
            if not self._expired(stored_at, now):
                break
            del self._entries[run_id]
            removed += 1
        return removed

    def set(self, run_id: str, image_reference: str) -> None:
        """Store ``image_reference`` for ``run_id``, replacing any previous entry."""
        if not run_id:
            raise ValueError("run_id is required")
        with self._lock:
            now = self._clock()
            self._purge_locked(now)
            self._entries.pop(run_id, None)
            self._entries[run_id] = (now, image_reference)
            while len(self._entries) > self.max_entries:
                evicted, _ = self._entries.popitem(last=False)
                logger.warning("[run-store] capacity %d reached, evicted run_id=%s", self.max_entries, evicted)
        logger.info("[run-store] stored image for run_id=%s length=%d", run_id, len(image_reference))

    def consume(self, run_id: str) -> Optional[str]:
        """Return and delete the entry for ``run_id``; ``None`` when absent or expired."""
        with self._lock:
            entry = self._entries.pop(run_id, None)
        if entry is None:
            logger.info("[run-store] no pending image for run_id=%s", run_id)
            return None
        stored_at, image_reference = entry
        if self._expired(stored_at, self._clock()):
            logger.info("[run-store] pending image for run_id=%s expired", run_id)
            return None
        return image_reference

    def discard(self, run_id: str) -> bool:
        with self._lock:
            return self._entries.pop(run_id, None) is not None

    def purge_expired(self) -> int:
        """Drop every expired entry and return how many were removed."""
        with self._lock:
            return self._purge_locked(self._clock())

    def __contains__(self, run_id: object) -> bool:
        with self._lock:
            entry = self._entries.get(run_id)  # type: ignore[arg-type]
            return entry is not None and not self._expired(entry[0], self._clock())

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


_run_store: RunCorrelationStore | None = None
_run_store_lock = threading.Lock()


def get_run_store() -> RunCorrelationStore:
    """Return the process-wide store, creating it on first use."""
    global _run_store
    if _run_store is not None:
        return _run_store
    with _run_store_lock:
        if _run_store is None:
            _run_store = RunCorrelationStore()
    return _run_store
