import asyncio
import logging
import signal
from collections.abc import Callable
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

# ────────────────────────────────
# Time Helpers
# ────────────────────────────────


def format_duration(seconds: float) -> str:
    seconds = max(0, int(seconds))
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


# ────────────────────────────────
# Text Helpers
# ────────────────────────────────


def normalize_host(url: str) -> str:
    netloc = urlparse(url).netloc
    if not netloc:
        logger.debug(f"URL {url} has no netloc, using 'default'")
        return "default"
    return netloc


def format_number(n: int) -> str:
    return f"{n:,}"


def truncate(text: str, max_len: int) -> str:
    if len(text) <= max_len:
        return text
    if max_len <= 3:
        return text[:max_len]
    return text[: max_len - 3] + "..."


def progress_bar(percent: float, width: int = 50) -> str:
    percent = min(100.0, max(0.0, percent))
    filled = int(percent * width / 100)
    return "█" * filled + "░" * (width - filled)


def describe_error(exc: BaseException) -> str:
    """Short one-line description of an exception for per-worker display."""
    text = str(exc).strip()
    return text.splitlines()[0] if text else type(exc).__name__


# ────────────────────────────────
# Signal Handling
# ────────────────────────────────


class GracefulKiller:
    """Routes SIGINT/SIGTERM to a cancellation callback on the running loop."""

    def __init__(self, on_signal: Callable[[], None], loop: asyncio.AbstractEventLoop):
        self.kill_now = False
        self._on_signal = on_signal
        self._loop = loop
        signal.signal(signal.SIGINT, self.exit_gracefully)
        signal.signal(signal.SIGTERM, self.exit_gracefully)

    def exit_gracefully(self, signum, frame):
        if self.kill_now:
            return
        logger.warning(f"Received signal {signum}. Stopping workers...")
        self.kill_now = True
        self._loop.call_soon_threadsafe(self._on_signal)

    def restore(self) -> None:
        signal.signal(signal.SIGINT, signal.default_int_handler)
        signal.signal(signal.SIGTERM, signal.SIG_DFL)
