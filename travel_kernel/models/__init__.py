"""ORM models."""

from travel_kernel.models.agency_counter import AgencyCounter

__all__ = ["AgencyCounter"]
