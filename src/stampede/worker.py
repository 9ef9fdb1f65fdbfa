import asyncio
import logging
import random

from .executor import OperationExecutor
from .metrics import MetricsStore
from .models import STATUS_ERRORED, STATUS_FINISHED, STATUS_STOPPED, operation_status
from .utils import describe_error

logger = logging.getLogger(__name__)


async def wait_cancelled(cancel_event: asyncio.Event, delay: float) -> bool:
    """Sleep up to ``delay`` seconds; return True if cancellation fired first."""
    if cancel_event.is_set():
        return True
    if delay <= 0:
        return False
    try:
        await asyncio.wait_for(cancel_event.wait(), timeout=delay)
    except TimeoutError:
        return False
    return True


async def run_worker(
    worker_id: int,
    operations: int,
    cancel_event: asyncio.Event,
    executor: OperationExecutor,
    store: MetricsStore,
    delay: tuple[float, float],
    rng: random.Random,
) -> None:
    """Run ``operations`` sequential actions, then mark the worker finished.

    ``mark_finished`` is called exactly once whichever way the loop exits.
    """
    min_delay, max_delay = delay
    terminal = STATUS_ERRORED
    store.mark_active(worker_id)
    try:
        for k in range(1, operations + 1):
            if cancel_event.is_set():
                terminal = STATUS_STOPPED
                return

            store.set_status(worker_id, operation_status(k, operations))
            try:
                await executor.perform_action()
            except Exception as e:
                store.record_failure(worker_id, describe_error(e))
                logger.debug(f"[W{worker_id}] operation {k}/{operations} failed: {e}")
            else:
                store.record_success(worker_id)

            if await wait_cancelled(cancel_event, rng.uniform(min_delay, max_delay)):
                terminal = STATUS_STOPPED
                return

        terminal = STATUS_FINISHED
    except asyncio.CancelledError:
        terminal = STATUS_STOPPED
        raise
    finally:
        store.mark_finished(worker_id, terminal)
