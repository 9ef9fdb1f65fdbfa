import asyncio
import logging
import random
from typing import Optional

from .executor import OperationExecutor
from .metrics import MetricsStore
from .models import MetricsSnapshot, PresentationSink, RunConfig
from .poller import poll_and_render, refresh
from .supervisor import Supervisor

logger = logging.getLogger(__name__)


async def capture_initial_counter(executor: OperationExecutor) -> int:
    try:
        initial = await executor.read_counter()
    except Exception as e:
        logger.warning(f"Could not fetch initial counter: {e}")
        return 0
    logger.info(f"Initial counter: {initial}")
    return initial


async def run_stampede(
    config: RunConfig,
    executor: OperationExecutor,
    sink: PresentationSink,
    store: Optional[MetricsStore] = None,
    supervisor: Optional[Supervisor] = None,
) -> MetricsSnapshot:
    """Run one full stampede and return the final snapshot.

    The poller runs alongside the supervisor and exits on its own once all
    workers have finished or the run is cancelled.
    """
    store = store or MetricsStore()
    rng = random.Random(config.seed)
    if supervisor is None:
        supervisor = Supervisor(
            config.workers,
            config.operations_per_worker,
            executor,
            store,
            delay=config.delay_range,
            stagger_s=config.stagger_s,
            rng=rng,
        )

    initial = await capture_initial_counter(executor)
    store.start_run(
        config.target_total,
        initial_counter=initial,
        proxies_available=executor.proxies_available,
    )

    poller = asyncio.create_task(
        poll_and_render(
            store,
            executor,
            sink,
            supervisor.cancel_event,
            config.workers,
            interval=config.poll_interval,
        ),
        name="poller",
    )
    try:
        await supervisor.run()
    finally:
        if not poller.done():
            # Workers are done; don't wait out the rest of the tick
            poller.cancel()
        await asyncio.gather(poller, return_exceptions=True)

    final = await refresh(store, executor)
    try:
        sink(final)
    except Exception:
        logger.exception("Presentation sink failed")
    return final
