import asyncio
import logging
import random
from typing import Any, Optional, Protocol

import aiohttp

from .throttling import BoundedTokenBucket
from .utils import normalize_host

logger = logging.getLogger(__name__)


class OperationError(Exception):
    """A single action against the target failed."""


class CounterUnavailable(Exception):
    """The target counter could not be read after all retries."""


class OperationExecutor(Protocol):
    proxies_available: int

    async def perform_action(self) -> None: ...

    async def read_counter(self) -> int: ...


def extract_counter(payload: Any, path: str) -> int:
    """Walk a dotted ``path`` through a decoded JSON document and return an int."""
    node = payload
    for part in path.split("."):
        if isinstance(node, dict) and part in node:
            node = node[part]
        elif isinstance(node, list) and part.isdigit() and int(part) < len(node):
            node = node[int(part)]
        else:
            raise CounterUnavailable(f"field '{path}' not found in counter response")
    if isinstance(node, bool):
        raise CounterUnavailable(f"field '{path}' is not a number")
    try:
        return int(node)
    except (TypeError, ValueError):
        raise CounterUnavailable(f"field '{path}' is not a number: {node!r}") from None


class HttpExecutor:
    """aiohttp-backed executor shared by every worker of a run.

    All calls pass through one token bucket. ``perform_action`` is a single
    attempt; ``read_counter`` retries with backoff and honours Retry-After.
    """

    def __init__(
        self,
        target_url: str,
        counter_url: Optional[str] = None,
        counter_field: str = "count",
        proxy_url: Optional[str] = None,
        request_timeout_s: float = 15.0,
        rate_per_sec: float = 5.0,
        burst: int = 2,
        slow_start_ramp_up_s: float = 5.0,
        max_retries: int = 3,
        backoff_base_s: float = 1.0,
        backoff_jitter_ratio: float = 0.2,
        default_headers: dict[str, str] | None = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.target_url = target_url
        self.counter_url = counter_url
        self.counter_field = counter_field
        self.proxy_url = proxy_url
        self.request_timeout_s = request_timeout_s
        self.max_retries = max_retries
        self.backoff_base_s = backoff_base_s
        self.backoff_jitter_ratio = backoff_jitter_ratio
        self.default_headers = default_headers or {
            "User-Agent": "stampede/0.1 (load test)"
        }
        self.proxies_available = 1 if proxy_url else 0
        self._rng = rng or random.Random()
        self._bucket = BoundedTokenBucket(
            rate_per_sec,
            burst=burst,
            ramp_up_s=slow_start_ramp_up_s,
            name=normalize_host(target_url),
            rng=self._rng,
        )
        self._session: aiohttp.ClientSession | None = None

    async def __aenter__(self) -> "HttpExecutor":
        connector = aiohttp.TCPConnector(limit=0)
        timeout = aiohttp.ClientTimeout(total=self.request_timeout_s)
        self._session = aiohttp.ClientSession(
            connector=connector, timeout=timeout, headers=self.default_headers
        )
        await self._bucket.start()
        logger.info(
            f"Executor ready: target={self.target_url}, counter={self.counter_url or '-'}, "
            f"proxy={'yes' if self.proxy_url else 'no'}"
        )
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self._bucket.stop()
        if self._session is not None:
            await self._session.close()
            self._session = None

    @property
    def session(self) -> aiohttp.ClientSession:
        if self._session is None:
            raise RuntimeError("HttpExecutor used outside of 'async with'")
        return self._session

    # ────────────────────────────────
    # Retry & Backoff Logic
    # ────────────────────────────────

    async def _sleep_backoff(self, attempt: int) -> None:
        base = self.backoff_base_s * (2 ** (attempt - 1))
        jitter = 1.0 + self._rng.uniform(
            -self.backoff_jitter_ratio, self.backoff_jitter_ratio
        )
        await asyncio.sleep(max(0.05, base * jitter))

    @staticmethod
    def _retry_after_seconds_from_headers(headers) -> float | None:
        ra = headers.get("Retry-After")
        if not ra:
            return None
        try:
            return max(0.0, float(ra))
        except ValueError:
            return None

    # ────────────────────────────────
    # Operations
    # ────────────────────────────────

    async def perform_action(self) -> None:
        session = self.session
        await self._bucket.acquire()
        try:
            async with session.get(self.target_url, proxy=self.proxy_url) as resp:
                await resp.read()
                status = resp.status
        except aiohttp.ClientError as e:
            raise OperationError(f"request failed: {e}") from e
        except TimeoutError as e:
            raise OperationError("request timed out") from e
        if not 200 <= status < 400:
            raise OperationError(f"HTTP {status}")

    async def read_counter(self) -> int:
        if not self.counter_url:
            raise CounterUnavailable("no counter URL configured")

        session = self.session
        last_problem = "no attempt made"
        for attempt in range(1, self.max_retries + 1):
            await self._bucket.acquire()
            retry_after_s = None
            try:
                async with session.get(self.counter_url, proxy=self.proxy_url) as resp:
                    if resp.status == 200:
                        payload = await resp.json(content_type=None)
                        return extract_counter(payload, self.counter_field)
                    last_problem = f"HTTP {resp.status}"
                    if resp.status in (429, 503):
                        retry_after_s = self._retry_after_seconds_from_headers(resp.headers)
            except (aiohttp.ClientError, ValueError) as e:
                last_problem = str(e) or type(e).__name__
            except TimeoutError:
                last_problem = "timed out"

            logger.debug(f"Counter read attempt {attempt} failed: {last_problem}")
            if attempt == self.max_retries:
                break
            if retry_after_s:
                await self._bucket.cooldown_until(
                    asyncio.get_running_loop().time() + retry_after_s
                )
                await asyncio.sleep(retry_after_s)
            else:
                await self._sleep_backoff(attempt)

        raise CounterUnavailable(
            f"failed to read counter after {self.max_retries} attempts: {last_problem}"
        )
