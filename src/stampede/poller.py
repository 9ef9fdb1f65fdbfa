import asyncio
import logging

from .executor import OperationExecutor
from .metrics import MetricsStore
from .models import MetricsSnapshot, PresentationSink
from .worker import wait_cancelled

logger = logging.getLogger(__name__)


async def refresh(store: MetricsStore, executor: OperationExecutor) -> MetricsSnapshot:
    """Best-effort counter read, derived-metric recompute, then snapshot."""
    try:
        current = await executor.read_counter()
    except Exception as e:
        logger.debug(f"Counter read skipped this tick: {e}")
    else:
        store.recompute_derived(current)
    return store.snapshot()


async def poll_and_render(
    store: MetricsStore,
    executor: OperationExecutor,
    sink: PresentationSink,
    cancel_event: asyncio.Event,
    worker_count: int,
    interval: float = 3.0,
) -> MetricsSnapshot:
    """Refresh and render every ``interval`` seconds.

    Stops when cancellation fires or every worker has finished, and returns
    the last rendered snapshot.
    """
    snapshot = store.snapshot()
    while True:
        if await wait_cancelled(cancel_event, interval):
            logger.debug("Poller stopping: cancelled")
            return snapshot

        snapshot = await refresh(store, executor)
        try:
            sink(snapshot)
        except Exception:
            logger.exception("Presentation sink failed")

        if snapshot.finished_workers >= worker_count:
            logger.debug("Poller stopping: all workers finished")
            return snapshot
