"""GC (Garbage Collection) service for the message store.

Reclaims every row of a conversation once a RESPONSE with a terminal
outcome (MESSAGE, REJECT or ERROR) has arrived for its REQUEST.

Usage:
    from msgstore_gc.services.gc import Collector, GCScheduler

    scheduler = GCScheduler(Collector(engine, settings.gc), settings.gc)
    await scheduler.start()
"""

from msgstore_gc.services.gc.base import CycleResult, PendingWaste, SweepStats
from msgstore_gc.services.gc.collector import Collector
from msgstore_gc.services.gc.scheduler import GCScheduler

__all__ = [
    "Collector",
    "CycleResult",
    "GCScheduler",
    "PendingWaste",
    "SweepStats",
]
