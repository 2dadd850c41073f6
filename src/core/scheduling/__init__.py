from src.core.scheduling.policy import RetryPolicy
from src.core.scheduling.scheduler import ExecutionScheduler, SchedulerRunReport

__all__ = [
    "ExecutionScheduler",
    "RetryPolicy",
    "SchedulerRunReport",
]
