"""Core request plumbing (no service specific code)."""

from .batcher import Batcher
from .scheduler import LoopScheduler, ManualScheduler, Scheduler

__all__ = [
    "Batcher",
    "LoopScheduler",
    "ManualScheduler",
    "Scheduler",
]
