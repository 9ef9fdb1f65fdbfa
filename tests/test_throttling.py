import asyncio

import pytest

from stampede.throttling import BoundedTokenBucket


def test_rejects_bad_parameters():
    with pytest.raises(ValueError):
        BoundedTokenBucket(0)
    with pytest.raises(ValueError):
        BoundedTokenBucket(1.0, burst=0)


async def test_acquire_and_stop():
    bucket = BoundedTokenBucket(200.0, burst=2, ramp_up_s=0, name="t")
    await bucket.start()
    assert bucket.running
    await asyncio.wait_for(
        asyncio.gather(*(bucket.acquire() for _ in range(5))), timeout=2
    )
    await bucket.stop()
    assert not bucket.running


async def test_start_is_idempotent():
    bucket = BoundedTokenBucket(50.0, ramp_up_s=0)
    await bucket.start()
    task = bucket._task
    await bucket.start()
    assert bucket._task is task
    await bucket.stop()


async def test_cooldown_delays_acquire():
    bucket = BoundedTokenBucket(500.0, burst=1, ramp_up_s=0)
    await bucket.start()
    loop = asyncio.get_running_loop()
    await bucket.cooldown_until(loop.time() + 0.1)
    t0 = loop.time()
    await bucket.acquire()
    assert loop.time() - t0 >= 0.09
    await bucket.stop()


async def test_ramp_up_starts_slow():
    bucket = BoundedTokenBucket(10.0, ramp_up_s=100.0)
    await bucket.start()
    assert bucket._current_rate() == pytest.approx(2.0, rel=0.05)
    await bucket.stop()
