"""
AgencyCounter -- one row per (agency, key) holding the next value to hand out.

Invariants:
    - (agency_id, key) is unique.
    - next_value is >= 1 and never decreases through next_value()/set_at_least();
      only an administrative set_exact() may lower it.
"""

from sqlalchemy import BigInteger, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from travel_kernel.db.base import TrackedBase


class AgencyCounter(TrackedBase):
    """Per-agency, per-entity-kind sequence row."""

    __tablename__ = "agency_counters"

    __table_args__ = (
        UniqueConstraint("agency_id", "key", name="uq_agency_counter_agency_key"),
        Index("idx_agency_counter_agency", "agency_id"),
    )

    agency_id: Mapped[int] = mapped_column(BigInteger, nullable=False)

    # Entity kind, e.g. "receipt", "booking", "invoice"
    key: Mapped[str] = mapped_column(String(64), nullable=False)

    # The value the next call to next_value() will return
    next_value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=1)

    def __repr__(self) -> str:
        return f"<AgencyCounter agency={self.agency_id} key={self.key!r} next={self.next_value}>"
