__all__ = ["MetricsStore", "Supervisor", "HttpExecutor", "RunConfig", "run_stampede"]


from .executor import HttpExecutor
from .metrics import MetricsStore
from .models import RunConfig
from .runner import run_stampede
from .supervisor import Supervisor
