"""
Runtime package for scheduling and observation.

Architecture:
- Pluggable schedulers (threads, asyncio, simulated clock)
- Timers and delayed events owned per machine
- Snapshot monitoring for development tooling
"""

from .scheduler import AsyncioScheduler, ManualScheduler, Scheduler, ThreadingScheduler
from .timers import TimerConfig, TimerManager
from .monitor import SnapshotMonitor

__all__ = [
    "Scheduler",
    "ThreadingScheduler",
    "AsyncioScheduler",
    "ManualScheduler",
    "TimerConfig",
    "TimerManager",
    "SnapshotMonitor",
]
