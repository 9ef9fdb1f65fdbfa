import logging
import threading
import time
from collections.abc import Callable
from dataclasses import replace
from datetime import datetime

from .models import MetricsSnapshot, WorkerRecord, STATUS_FINISHED, STATUS_IDLE

logger = logging.getLogger(__name__)


class MetricsStore:
    """Per-worker and global counters for one run.

    Every public method takes the same lock, so a reader never sees a worker
    counter bumped without the matching global total. Derived metrics are
    recomputed from the raw counters and elapsed time on each call to
    ``recompute_derived`` and never carried forward.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._lock = threading.Lock()
        self._clock = clock
        self._workers: dict[int, WorkerRecord] = {}
        self._finished_ids: set[int] = set()

        self.total_successful = 0
        self.total_failed = 0
        self.active_workers = 0
        self.finished_workers = 0
        self.proxies_available = 0
        self.target_total = 0
        self.started_at: datetime | None = None
        self._t0: float | None = None

        self.initial_counter = 0
        self.current_counter = 0
        self.counter_gained = 0
        self.rate_per_second = 0.0
        self.rate_per_minute = 0.0
        self.success_rate = 0.0
        self.requests_per_second = 0.0
        self.eta_seconds: float | None = None

    # ────────────────────────────────
    # Run lifecycle
    # ────────────────────────────────

    def start_run(
        self, target_total: int, initial_counter: int = 0, proxies_available: int = 0
    ) -> None:
        with self._lock:
            self.target_total = target_total
            self.initial_counter = initial_counter
            self.current_counter = initial_counter
            self.proxies_available = proxies_available
            self.started_at = datetime.now()
            self._t0 = self._clock()
        logger.info(
            f"Run started: target={target_total}, initial_counter={initial_counter}, "
            f"proxies={proxies_available}"
        )

    def _record(self, worker_id: int) -> WorkerRecord:
        rec = self._workers.get(worker_id)
        if rec is None:
            rec = self._workers[worker_id] = WorkerRecord(worker_id)
        return rec

    def _elapsed(self) -> float:
        if self._t0 is None:
            return 0.0
        return max(0.0, self._clock() - self._t0)

    # ────────────────────────────────
    # Worker write path
    # ────────────────────────────────

    def record_success(self, worker_id: int) -> None:
        with self._lock:
            self._record(worker_id).successful += 1
            self.total_successful += 1

    def record_failure(self, worker_id: int, description: str) -> None:
        with self._lock:
            rec = self._record(worker_id)
            rec.failed += 1
            rec.last_error = description
            self.total_failed += 1

    def set_status(self, worker_id: int, label: str) -> None:
        with self._lock:
            self._record(worker_id).status = label

    def mark_active(self, worker_id: int) -> None:
        with self._lock:
            self._record(worker_id).status = STATUS_IDLE
            self.active_workers += 1

    def mark_finished(self, worker_id: int, label: str = STATUS_FINISHED) -> None:
        with self._lock:
            if worker_id in self._finished_ids:
                raise RuntimeError(f"worker {worker_id} already marked finished")
            self._finished_ids.add(worker_id)
            self._record(worker_id).status = label
            self.active_workers -= 1
            self.finished_workers += 1
        logger.debug(f"[W{worker_id}] finished with status '{label}'")

    # ────────────────────────────────
    # Poller derive path
    # ────────────────────────────────

    def recompute_derived(self, current_counter: int) -> None:
        """Recompute every derived field from scratch.

        A ``current_counter`` of 0 means the counter is unknown: the
        counter-based fields keep their previous values.
        """
        with self._lock:
            elapsed = self._elapsed()

            total = self.total_successful + self.total_failed
            if total > 0:
                self.success_rate = self.total_successful / total * 100
            if elapsed > 0:
                self.requests_per_second = total / elapsed

            if current_counter <= 0:
                return
            self.current_counter = current_counter

            # Both observations must be known, otherwise the gain is meaningless
            if self.initial_counter > 0:
                self.counter_gained = current_counter - self.initial_counter
                if elapsed > 0:
                    self.rate_per_second = self.counter_gained / elapsed
                    self.rate_per_minute = self.rate_per_second * 60

            if self.rate_per_second > 0 and self.target_total > 0:
                remaining = max(0, self.target_total - self.total_successful)
                self.eta_seconds = remaining / self.rate_per_second

    def snapshot(self) -> MetricsSnapshot:
        with self._lock:
            return MetricsSnapshot(
                total_successful=self.total_successful,
                total_failed=self.total_failed,
                active_workers=self.active_workers,
                finished_workers=self.finished_workers,
                proxies_available=self.proxies_available,
                target_total=self.target_total,
                started_at=self.started_at,
                elapsed_s=self._elapsed(),
                initial_counter=self.initial_counter,
                current_counter=self.current_counter,
                counter_gained=self.counter_gained,
                rate_per_second=self.rate_per_second,
                rate_per_minute=self.rate_per_minute,
                success_rate=self.success_rate,
                requests_per_second=self.requests_per_second,
                eta_seconds=self.eta_seconds,
                workers=tuple(
                    replace(self._workers[k]) for k in sorted(self._workers)
                ),
            )
