"""
Sync orchestration for one device.

A sync cycle is: resolve the current user, push the user record, gather
unsynced reviews, bulk sync, then reconcile locally. Cycles run one at a
time on a single worker thread. Starting a new cycle cancels the previous
one cooperatively: a request already on the wire is not interrupted, but
its result is thrown away before anything is written locally.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass

from ..timestamps import utcnow
from .config import PreferenceStore, SyncPreferences
from .reconcile import apply_bulk_result, merge_fetched
from .review_store import LocalReviewStore
from .transport import Error, Result, Success, SyncService
from .user_store import LocalUserStore

logger = logging.getLogger(__name__)

ServiceFactory = Callable[[SyncPreferences], SyncService]


@dataclass(frozen=True)
class SyncReport:
    processed: int
    received: int
    message: str


def _default_service(prefs: SyncPreferences) -> SyncService:
    return SyncService(prefs.base_url)


class SyncCancelled(Exception):
    pass


class SyncOrchestrator:
    def __init__(
        self,
        preferences: PreferenceStore,
        reviews: LocalReviewStore,
        users: LocalUserStore,
        service_factory: ServiceFactory = _default_service,
    ) -> None:
        self._preferences = preferences
        self._reviews = reviews
        self._users = users
        self._service_factory = service_factory
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="review-sync")
        self._lock = threading.Lock()
        self._current: tuple[Future, threading.Event] | None = None

    # ── Preferences ──────────────────────────────────────────────────────

    def is_sync_enabled(self) -> bool:
        return self._preferences.get().sync_enabled

    def is_auto_sync_enabled(self) -> bool:
        prefs = self._preferences.get()
        return prefs.sync_enabled and prefs.auto_sync_enabled

    def set_auto_sync_enabled(self, enabled: bool) -> None:
        # Does not touch a running cycle; only future automatic triggers
        self._preferences.update(auto_sync_enabled=enabled)
        logger.info("AutoSync %s", "enabled" if enabled else "disabled")

    def _service(self) -> SyncService | None:
        prefs = self._preferences.get()
        if not prefs.has_valid_server_config():
            return None
        return self._service_factory(prefs)

    # ── The sync cycle ───────────────────────────────────────────────────

    def perform_sync(self, cancel: threading.Event | None = None) -> Result[SyncReport]:
        """Run one full sync cycle in the calling thread."""
        service = self._service()
        if service is None:
            return Error("Sync not enabled")

        cancel = cancel or threading.Event()
        started_at = utcnow()
        try:
            user = self._users.get_current_user()
            if user is None:
                return Error("No current user")

            # A job superseded while still queued never reaches the network
            self._check(cancel)
            user_result = service.sync_user(user)
            if isinstance(user_result, Error):
                return Error(f"Failed to sync user: {user_result.message}")
            self._check(cancel)

            pending = self._reviews.get_unsynced()
            logger.info("Found %d unsynced review(s)", len(pending))

            sync_result = service.bulk_sync(user.user_id, pending)
            if isinstance(sync_result, Error):
                return Error(f"Sync failed: {sync_result.message}")
            self._check(cancel)

            response = sync_result.data
            received = apply_bulk_result(
                self._reviews, pending, response.all_reviews, started_at=started_at
            )
        except SyncCancelled:
            logger.info("Sync cancelled, discarding its result")
            return Error("Sync cancelled")
        finally:
            service.close()

        message = f"{response.processed} reviews synchronized, {received} reviews received"
        logger.info("Sync complete: %s", message)
        return Success(SyncReport(processed=response.processed, received=received, message=message))

    @staticmethod
    def _check(cancel: threading.Event) -> None:
        if cancel.is_set():
            raise SyncCancelled()

    def _run(self, cancel: threading.Event) -> Result[SyncReport]:
        try:
            return self.perform_sync(cancel)
        except Exception as exc:
            # A failed cycle must never take the host application down
            logger.error("Sync cycle failed", exc_info=True)
            return Error(str(exc) or type(exc).__name__)

    def _submit(self) -> Future:
        with self._lock:
            if self._current is not None:
                previous, previous_cancel = self._current
                if not previous.done():
                    previous_cancel.set()
            cancel = threading.Event()
            future = self._executor.submit(self._run, cancel)
            self._current = (future, cancel)
            return future

    # ── Triggers ─────────────────────────────────────────────────────────

    def trigger_sync_if_enabled(self, reason: str = "unknown") -> Future | None:
        """Automatic trigger after a local change or foreground event."""
        if not self.is_auto_sync_enabled():
            logger.debug("Sync triggered (%s) but AutoSync is disabled", reason)
            return None
        logger.info("Triggering sync: %s", reason)
        return self._submit()

    def perform_manual_sync(self) -> Result[SyncReport]:
        """Explicit user action; ignores the auto-sync preference."""
        logger.info("Performing manual sync")
        return self._submit().result()

    def download_reviews(self) -> int:
        """Read-only refresh of every server review; returns new local rows."""
        service = self._service()
        if service is None or self._users.get_current_user() is None:
            return 0
        try:
            result = service.fetch_all_reviews()
        finally:
            service.close()
        if isinstance(result, Error):
            logger.warning("Review download failed: %s", result.message)
            return 0
        return merge_fetched(self._reviews, result.data, complete=True)

    def test_connection(self) -> bool:
        service = self._service()
        if service is None:
            return False
        try:
            return service.test_connection()
        finally:
            service.close()

    def shutdown(self) -> None:
        with self._lock:
            if self._current is not None:
                self._current[1].set()
        self._executor.shutdown(wait=True)
