"""
Replay Protection
=================
Consumption records and stores that make setup tokens single-use.
"""

from .models import ConsumptionRecord, ConsumptionStore
from .in_memory import InMemoryConsumptionStore
from .sql_store import SQLConsumptionStore
from .redis_store import RedisConsumptionStore
from .guard import ReplayGuard, DEFAULT_RETENTION

__all__ = [
    # Models
    "ConsumptionRecord",
    "ConsumptionStore",
    # Stores
    "InMemoryConsumptionStore",
    "SQLConsumptionStore",
    "RedisConsumptionStore",
    # Guard
    "ReplayGuard",
    "DEFAULT_RETENTION",
]
