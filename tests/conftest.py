import asyncio
import random
from collections import defaultdict

import pytest

from stampede.executor import CounterUnavailable, OperationError
from stampede.metrics import MetricsStore


class FakeClock:
    def __init__(self, t: float = 1000.0):
        self.t = t

    def __call__(self) -> float:
        return self.t

    def advance(self, seconds: float) -> None:
        self.t += seconds


class FakeExecutor:
    """Scripted executor.

    ``fail_on`` holds (task name, call number) pairs that raise; worker
    tasks launched by the supervisor are named ``worker-<id>``.
    """

    def __init__(self, fail_on=(), latency=(0.0, 0.0), counter=None, seed=0, proxies=0):
        self.fail_on = set(fail_on)
        self.latency = latency
        self.counter = counter
        self.proxies_available = proxies
        self.calls: dict[str, int] = defaultdict(int)
        self.counter_reads = 0
        self._rng = random.Random(seed)

    async def perform_action(self) -> None:
        name = asyncio.current_task().get_name()
        self.calls[name] += 1
        await asyncio.sleep(self._rng.uniform(*self.latency))
        if (name, self.calls[name]) in self.fail_on:
            raise OperationError("HTTP 503")

    async def read_counter(self) -> int:
        self.counter_reads += 1
        if self.counter is None:
            raise CounterUnavailable("no counter")
        if callable(self.counter):
            return self.counter()
        return self.counter

    @property
    def total_calls(self) -> int:
        return sum(self.calls.values())


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return MetricsStore(clock=clock)


@pytest.fixture
def executor():
    return FakeExecutor()
