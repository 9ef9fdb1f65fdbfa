import asyncio
import enum
import logging
import random
from typing import Optional

from .executor import OperationExecutor
from .metrics import MetricsStore
from .worker import run_worker

logger = logging.getLogger(__name__)


class RunState(enum.Enum):
    NOT_STARTED = "not_started"
    RUNNING = "running"
    STOPPED = "stopped"


class Supervisor:
    """Launches workers 1..N, staggered, and joins them.

    ``cancel()`` is the single broadcast trigger. It may be called at any
    time, including before ``run()``, and repeated calls are no-ops.
    """

    def __init__(
        self,
        workers: int,
        operations_per_worker: int,
        executor: OperationExecutor,
        store: MetricsStore,
        delay: tuple[float, float] = (2.0, 8.0),
        stagger_s: float = 0.05,
        rng: Optional[random.Random] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> None:
        if workers <= 0 or operations_per_worker <= 0:
            raise ValueError("workers and operations_per_worker must be positive")
        self.workers = workers
        self.operations_per_worker = operations_per_worker
        self.executor = executor
        self.store = store
        self.delay = delay
        self.stagger_s = stagger_s
        self.cancel_event = cancel_event or asyncio.Event()
        self._rng = rng or random.Random()
        self._state = RunState.NOT_STARTED
        self._tasks: list[asyncio.Task] = []

    @property
    def state(self) -> RunState:
        return self._state

    @property
    def cancelling(self) -> bool:
        return self.cancel_event.is_set()

    def cancel(self) -> None:
        if self.cancel_event.is_set():
            return
        logger.info("Cancellation requested")
        self.cancel_event.set()

    async def run(self) -> None:
        if self._state is not RunState.NOT_STARTED:
            raise RuntimeError("Supervisor.run() may only be called once")
        self._state = RunState.RUNNING
        logger.info(
            f"Launching {self.workers} workers x {self.operations_per_worker} operations"
        )

        try:
            for worker_id in range(1, self.workers + 1):
                # Each worker gets its own seeded source so delays are reproducible
                worker_rng = random.Random(self._rng.getrandbits(64))
                self._tasks.append(
                    asyncio.create_task(
                        run_worker(
                            worker_id,
                            self.operations_per_worker,
                            self.cancel_event,
                            self.executor,
                            self.store,
                            self.delay,
                            worker_rng,
                        ),
                        name=f"worker-{worker_id}",
                    )
                )
                if worker_id < self.workers and self.stagger_s > 0:
                    await asyncio.sleep(self.stagger_s)
            await self._join()
        except asyncio.CancelledError:
            self.cancel()
            await self._join()
            raise
        finally:
            self._state = RunState.STOPPED
            logger.info("All workers stopped")

    async def _join(self) -> None:
        results = await asyncio.gather(*self._tasks, return_exceptions=True)
        for task, result in zip(self._tasks, results):
            if isinstance(result, BaseException) and not isinstance(
                result, asyncio.CancelledError
            ):
                logger.error(
                    f"{task.get_name()} exited unexpectedly: {result!r}",
                    exc_info=result,
                )
