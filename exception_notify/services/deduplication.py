"""
Exception deduplication.

Identical exceptions (same type, message and location) are reported at most
once per time window. State is an in-process map of fingerprint to the
monotonic time of the last notification, guarded by striped locks so
unrelated fingerprints never contend on the same lock.
"""

import base64
import hashlib
import threading
import time
from typing import Callable, Dict, List, Optional

from exception_notify.config import DeduplicationSettings
from exception_notify.models import ExceptionRecord
from exception_notify.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_STRIPES = 64
MIN_CLEANUP_INTERVAL_SECONDS = 1.0


class DeduplicationCache:
    """
    Fingerprint cache with a time window.

    Features:
    - Atomic check-and-update per fingerprint
    - Periodic sweep of expired entries on a daemon thread
    - Injectable clock for tests
    """

    def __init__(
        self,
        settings: Optional[DeduplicationSettings] = None,
        clock: Callable[[], float] = time.monotonic,
        stripes: int = DEFAULT_STRIPES,
    ):
        self.settings = settings or DeduplicationSettings()
        self.clock = clock
        self._entries: Dict[str, float] = {}
        self._locks: List[threading.Lock] = [threading.Lock() for _ in range(max(1, stripes))]

        self._stop_event = threading.Event()
        self._sweeper: Optional[threading.Thread] = None

    @property
    def window_seconds(self) -> float:
        return self.settings.time_window_minutes * 60

    @property
    def cleanup_interval_seconds(self) -> float:
        return max(self.settings.cleanup_interval_minutes * 60, MIN_CLEANUP_INTERVAL_SECONDS)

    def _lock_for(self, fingerprint: str) -> threading.Lock:
        return self._locks[hash(fingerprint) % len(self._locks)]

    def fingerprint(self, record: ExceptionRecord) -> str:
        """
        Compute the deduplication key of a record.

        SHA-256 over ``type|message|location``, base64 encoded. Falls back to
        the raw key if hashing fails.
        """
        key = "|".join([record.error_type or "", record.message or "", record.location or ""])
        try:
            digest = hashlib.sha256(key.encode("utf-8")).digest()
            return base64.b64encode(digest).decode("ascii")
        except Exception as e:
            logger.warning(f"Failed to hash exception fingerprint, using raw key: {e}")
            return key

    def should_notify(self, record: ExceptionRecord) -> bool:
        """
        Decide whether a record should be sent and record the decision.

        Returns:
            True the first time a fingerprint is seen and once its window has
            elapsed; False while it is inside the window
        """
        if not self.settings.enabled:
            return True

        fingerprint = self.fingerprint(record)
        with self._lock_for(fingerprint):
            now = self.clock()
            last_notified = self._entries.get(fingerprint)

            if last_notified is None or now - last_notified >= self.window_seconds:
                self._entries[fingerprint] = now
                return True

        logger.debug(
            "Suppressed duplicate exception",
            extra={"fingerprint": fingerprint, "error_type": record.error_type},
        )
        return False

    def sweep(self) -> int:
        """
        Remove entries whose window has elapsed.

        Returns:
            Number of entries removed
        """
        removed = 0
        window = self.window_seconds

        for fingerprint in list(self._entries.keys()):
            with self._lock_for(fingerprint):
                last_notified = self._entries.get(fingerprint)
                # Re-checked under the lock; a concurrent refresh keeps the entry
                if last_notified is not None and self.clock() - last_notified >= window:
                    del self._entries[fingerprint]
                    removed += 1

        if removed:
            logger.debug(f"Deduplication sweep removed {removed} entries, {self.size()} remaining")
        return removed

    def size(self) -> int:
        return len(self._entries)

    def clear(self) -> None:
        for lock in self._locks:
            lock.acquire()
        try:
            self._entries.clear()
        finally:
            for lock in self._locks:
                lock.release()

    def start(self) -> None:
        """Start the background sweeper thread (no-op if already running or disabled)."""
        if not self.settings.enabled:
            return
        if self._sweeper is not None and self._sweeper.is_alive():
            return

        self._stop_event.clear()
        self._sweeper = threading.Thread(
            target=self._run_sweeper,
            name="exception-notify-dedup-sweeper",
            daemon=True,
        )
        self._sweeper.start()
        logger.info(f"Deduplication sweeper started (interval {self.cleanup_interval_seconds}s)")

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        """Stop the sweeper thread and wait for it to exit."""
        self._stop_event.set()
        if self._sweeper is not None:
            self._sweeper.join(timeout)
            self._sweeper = None

    def _run_sweeper(self) -> None:
        while not self._stop_event.wait(self.cleanup_interval_seconds):
            try:
                self.sweep()
            except Exception as e:
                logger.error(f"Deduplication sweep failed: {e}", exc_info=True)
