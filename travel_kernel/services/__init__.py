"""Kernel services backed by the database."""

from travel_kernel.services.agency_counter_service import (
    COUNTER_KEYS,
    AgencyCounterService,
    CounterKey,
)

__all__ = ["AgencyCounterService", "COUNTER_KEYS", "CounterKey"]
