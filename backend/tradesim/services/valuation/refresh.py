# backend/tradesim/services/valuation/refresh.py
"""
At-most-one-in-flight snapshot computation per user.

SnapshotRefresher:
    Concurrent requests for the same user's snapshot share ONE computation.
    The first caller computes; callers arriving while it runs wait for and
    receive the same result (or the same exception). Nothing is cached once
    the computation finishes.

SnapshotPoller:
    Periodically re-invokes the computation for watched users through the
    refresher. A poll for a user whose snapshot is already being computed
    is skipped, not queued, so a slow quote provider never sees a backlog.

Usage:
    refresher = SnapshotRefresher()
    snapshot = refresher.get_snapshot(user_id, lambda: service.compute_snapshot(user_id))

    poller = SnapshotPoller(refresher, compute_for=build_and_compute, interval_seconds=30)
    poller.watch(user_id)
    poller.start()
"""

import logging
import threading
from concurrent.futures import Future
from typing import Callable

from tradesim.services.constants import MIN_POLL_INTERVAL_SECONDS
from tradesim.services.exceptions import ServiceError
from tradesim.services.valuation.types import PortfolioSnapshot

logger = logging.getLogger(__name__)

SnapshotCompute = Callable[[], PortfolioSnapshot]


class SnapshotRefresher:
    """Coalesces concurrent snapshot computations per user."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._in_flight: dict[int, Future] = {}
        logger.info("SnapshotRefresher initialized")

    def is_in_flight(self, user_id: int) -> bool:
        with self._lock:
            return user_id in self._in_flight

    def get_snapshot(self, user_id: int, compute: SnapshotCompute) -> PortfolioSnapshot:
        """
        Return a fresh snapshot, joining a computation already in flight.

        Args:
            user_id: Account being valued
            compute: Zero-argument callable that computes the snapshot

        Raises:
            Whatever compute raises (shared by every coalesced caller)
        """
        with self._lock:
            future = self._in_flight.get(user_id)
            is_leader = future is None
            if is_leader:
                future = Future()
                future.set_running_or_notify_cancel()
                self._in_flight[user_id] = future

        if not is_leader:
            logger.debug(f"Joining in-flight snapshot for user {user_id}")
            # The leader's computation is itself bounded by the quote timeout
            return future.result()

        try:
            snapshot = compute()
        except BaseException as e:
            future.set_exception(e)
            raise
        else:
            future.set_result(snapshot)
            return snapshot
        finally:
            with self._lock:
                self._in_flight.pop(user_id, None)

    def poll(self, user_id: int, compute: SnapshotCompute) -> PortfolioSnapshot | None:
        """
        Scheduled refresh: compute unless one is already running.

        Returns:
            The new snapshot, or None when the poll was skipped
        """
        if self.is_in_flight(user_id):
            logger.debug(f"Skipping poll for user {user_id}: computation in flight")
            return None
        return self.get_snapshot(user_id, compute)


class SnapshotPoller:
    """
    Background thread re-computing snapshots for watched users.

    Attributes:
        interval_seconds: Delay between poll rounds (minimum 10 seconds)
        on_snapshot: Optional callback receiving each fresh snapshot
    """

    def __init__(
            self,
            refresher: SnapshotRefresher,
            compute_for: Callable[[int], PortfolioSnapshot],
            interval_seconds: float = MIN_POLL_INTERVAL_SECONDS,
            on_snapshot: Callable[[PortfolioSnapshot], None] | None = None,
    ) -> None:
        if interval_seconds < MIN_POLL_INTERVAL_SECONDS:
            raise ValueError(
                f"interval_seconds must be at least {MIN_POLL_INTERVAL_SECONDS}"
            )

        self._refresher = refresher
        self._compute_for = compute_for
        self.interval_seconds = interval_seconds
        self.on_snapshot = on_snapshot

        self._watched: set[int] = set()
        self._watched_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def watch(self, user_id: int) -> None:
        with self._watched_lock:
            self._watched.add(user_id)

    def unwatch(self, user_id: int) -> None:
        with self._watched_lock:
            self._watched.discard(user_id)

    def run_once(self) -> dict[int, PortfolioSnapshot]:
        """
        Poll every watched user once.

        Failures are logged per user and do not stop the round.

        Returns:
            Snapshots computed this round (skipped and failed users omitted)
        """
        with self._watched_lock:
            user_ids = sorted(self._watched)

        results: dict[int, PortfolioSnapshot] = {}
        for user_id in user_ids:
            try:
                snapshot = self._refresher.poll(user_id, lambda uid=user_id: self._compute_for(uid))
            except ServiceError as e:
                logger.error(f"Scheduled snapshot for user {user_id} failed: {e}")
                continue

            if snapshot is None:
                continue
            results[user_id] = snapshot
            if self.on_snapshot is not None:
                self.on_snapshot(snapshot)

        return results

    def start(self) -> None:
        if self.is_running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run,
            name="snapshot-poller",
            daemon=True,
        )
        self._thread.start()
        logger.info(f"SnapshotPoller started (interval={self.interval_seconds}s)")

    def stop(self, timeout: float | None = None) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.info("SnapshotPoller stopped")

    def _run(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.run_once()
            except Exception:
                logger.exception("Snapshot poll round failed")
            self._stop_event.wait(self.interval_seconds)
