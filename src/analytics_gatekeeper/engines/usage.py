"""
Last-Used Recorder for Analytics Gatekeeper.

Records credential usage off the request path. Updates run on a bounded
background executor, are never awaited by the request, are never retried,
and only log on failure.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime

from analytics_gatekeeper.core.principal import utc_now
from analytics_gatekeeper.engines.credential_store import CredentialStore

logger = logging.getLogger(__name__)


class UsageRecorder:
    """
    Bounded fire-and-forget last_used updates.

    Usage:
        recorder = UsageRecorder(store)
        recorder.submit(principal.id)  # returns immediately
        ...
        recorder.shutdown()  # at application shutdown
    """

    def __init__(
        self,
        store: CredentialStore,
        *,
        max_workers: int = 2,
        max_pending: int = 1000,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """
        Initialize recorder.

        Args:
            store: Credential store to update
            max_workers: Worker threads
            max_pending: Queued + running updates before new ones are dropped
            clock: Source of the usage timestamp
        """
        self._store = store
        self._clock = clock
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix="gatekeeper-usage",
        )
        self._slots = threading.BoundedSemaphore(max_pending)
        self._closed = False
        self._dropped = 0
        self._lock = threading.Lock()

    def submit(self, principal_id: str) -> Future[bool] | None:
        """
        Schedule a last_used update.

        The timestamp is read now, on the caller's clock.

        Args:
            principal_id: Principal to touch

        Returns:
            Future for the update, or None if it was dropped
        """
        at = self._clock()

        if self._closed or not self._slots.acquire(blocking=False):
            with self._lock:
                self._dropped += 1
            logger.warning("Dropped last_used update for %s (recorder saturated or closed)", principal_id)
            return None

        try:
            future = self._executor.submit(self._touch, principal_id, at)
        except RuntimeError:
            # Executor shut down between the check and the submit
            self._slots.release()
            logger.warning("Dropped last_used update for %s (recorder closed)", principal_id)
            return None

        future.add_done_callback(lambda _: self._slots.release())
        return future

    def _touch(self, principal_id: str, at: datetime) -> bool:
        try:
            return self._store.touch_last_used(principal_id, at)
        except Exception:
            logger.exception("Failed to update last_used for %s", principal_id)
            return False

    @property
    def dropped(self) -> int:
        """Number of updates dropped because the recorder was saturated."""
        with self._lock:
            return self._dropped

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting updates and optionally drain pending ones."""
        self._closed = True
        self._executor.shutdown(wait=wait)
