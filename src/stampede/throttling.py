import asyncio
import random
import logging
from typing import Optional


logger = logging.getLogger(__name__)


class BoundedTokenBucket:
    """Token bucket shared by every worker hitting the same executor.

    Tokens are produced by a background task at ``rate_per_sec`` (ramped up
    from 20% over ``ramp_up_s``) and held in a queue of size ``burst``.
    """

    def __init__(
        self,
        rate_per_sec: float,
        burst: int = 2,
        jitter_ratio: float = 0.15,
        ramp_up_s: float = 10.0,
        name: str = "",
        rng: Optional[random.Random] = None,
    ) -> None:
        if rate_per_sec <= 0 or burst < 1:
            raise ValueError("rate_per_sec must be > 0 and burst >= 1")
        self.rate = rate_per_sec
        self.burst = burst
        self.q: asyncio.Queue = asyncio.Queue(maxsize=burst)
        self._task: Optional[asyncio.Task] = None
        self._stop = asyncio.Event()
        self.jitter_ratio = jitter_ratio
        self.ramp_up_s = ramp_up_s
        self._start_t: Optional[float] = None
        self.name = name
        self._rng = rng or random.Random()
        self._cooldown_until: float = 0.0
        self._cooldown_lock = asyncio.Lock()
        logger.debug(f"Created token bucket '{name}': rate={rate_per_sec}, burst={burst}, ramp_up={ramp_up_s}s")

    @property
    def running(self) -> bool:
        return self._task is not None

    async def start(self) -> None:
        if self._task is None:
            self._stop.clear()
            self._start_t = asyncio.get_running_loop().time()
            self._task = asyncio.create_task(self._run())
            logger.info(f"Token bucket '{self.name}' started")

    async def stop(self) -> None:
        if self._task:
            self._stop.set()
            await self._task
            self._task = None
            logger.info(f"Token bucket '{self.name}' stopped")

    async def acquire(self) -> None:
        async with self._cooldown_lock:
            cd = self._cooldown_until - asyncio.get_running_loop().time()
        if cd > 0:
            logger.debug(f"Bucket '{self.name}' cooling down for {cd:.2f}s")
            await asyncio.sleep(cd)
        await self.q.get()
        self.q.task_done()

    async def cooldown_until(self, wake_ts: float) -> None:
        async with self._cooldown_lock:
            if wake_ts > self._cooldown_until:
                self._cooldown_until = wake_ts
                logger.info(f"Bucket '{self.name}' set cooldown until {wake_ts:.2f}")

    def _current_rate(self) -> float:
        if self.ramp_up_s <= 0 or self._start_t is None:
            return self.rate
        elapsed = max(0.0, asyncio.get_running_loop().time() - self._start_t)
        base = 0.2 * self.rate
        r = base + (self.rate - base) * min(1.0, elapsed / self.ramp_up_s)
        return max(0.1, r)

    async def _run(self) -> None:
        try:
            while not self._stop.is_set():
                delay = 1.0 / self._current_rate()
                jitter = 1.0 + self._rng.uniform(-self.jitter_ratio, self.jitter_ratio)
                delay *= max(0.2, jitter)
                if self.q.full():
                    await asyncio.sleep(min(0.01, delay))
                    continue
                await self.q.put(None)
                await asyncio.sleep(delay)
        except asyncio.CancelledError:
            logger.debug(f"Bucket '{self.name}' run loop cancelled")
