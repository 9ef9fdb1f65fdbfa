from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional
from collections.abc import Callable

from pydantic import BaseModel, Field, model_validator


# Worker status labels
STATUS_IDLE = "idle"
STATUS_STOPPED = "stopped"
STATUS_FINISHED = "finished"
STATUS_ERRORED = "errored"


def operation_status(k: int, total: int) -> str:
    return f"operation {k}/{total}"


@dataclass
class WorkerRecord:
    worker_id: int
    successful: int = 0
    failed: int = 0
    status: str = STATUS_IDLE
    last_error: str = ""


@dataclass(frozen=True)
class MetricsSnapshot:
    """Consistent point-in-time copy of the metrics store."""

    total_successful: int
    total_failed: int
    active_workers: int
    finished_workers: int
    proxies_available: int
    target_total: int
    started_at: Optional[datetime]
    elapsed_s: float
    initial_counter: int
    current_counter: int
    counter_gained: int
    rate_per_second: float
    rate_per_minute: float
    success_rate: float
    requests_per_second: float
    eta_seconds: Optional[float]
    workers: tuple[WorkerRecord, ...] = field(default_factory=tuple)

    @property
    def total_operations(self) -> int:
        return self.total_successful + self.total_failed

    @property
    def progress(self) -> float:
        """Completed operations as a percentage of the target, capped at 100."""
        if self.target_total <= 0:
            return 0.0
        return min(100.0, self.total_operations / self.target_total * 100)


# Presentation sink: receives one snapshot per render tick
PresentationSink = Callable[[MetricsSnapshot], None]


class RunConfig(BaseModel):
    """Validated run parameters. Construction fails before any worker starts."""

    target_url: str = Field(min_length=1)
    workers: int = Field(gt=0)
    operations_per_worker: int = Field(gt=0)
    min_delay: float = Field(default=2.0, ge=0)
    max_delay: float = Field(default=8.0, ge=0)
    counter_url: Optional[str] = None
    counter_field: str = "count"
    proxy_url: Optional[str] = None
    request_timeout_s: float = Field(default=15.0, gt=0)
    rate_per_sec: float = Field(default=5.0, gt=0)
    burst: int = Field(default=2, ge=1)
    max_retries: int = Field(default=3, ge=1)
    poll_interval: float = Field(default=3.0, gt=0)
    stagger_s: float = Field(default=0.05, ge=0)
    seed: Optional[int] = None

    @model_validator(mode="after")
    def _check_delay_range(self) -> "RunConfig":
        if self.min_delay > self.max_delay:
            raise ValueError(
                f"min_delay ({self.min_delay}) must not exceed max_delay ({self.max_delay})"
            )
        return self

    @property
    def target_total(self) -> int:
        return self.workers * self.operations_per_worker

    @property
    def delay_range(self) -> tuple[float, float]:
        return self.min_delay, self.max_delay
