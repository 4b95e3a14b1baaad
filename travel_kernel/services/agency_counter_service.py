"""
AgencyCounterService -- per-agency human-facing sequence numbers.

Responsibility:
    Hands out strictly increasing integers per ``(agency_id, key)`` for
    receipts, bookings, invoices and every other agency-numbered entity.
    Also supports administrative backfills (``set_at_least``) and overrides
    (``set_exact``).

Architecture position:
    Kernel > Services -- imperative shell infrastructure.
    The only component of the reconciliation engine that touches shared
    mutable state.

Invariants enforced:
    - Atomic read-and-increment: on PostgreSQL and SQLite a single
      ``INSERT ... ON CONFLICT DO UPDATE ... RETURNING`` statement both
      creates the row (next_value=2, returning 1) and increments an existing
      one. Other dialects fall back to ``SELECT ... FOR UPDATE``.
    - Two concurrent callers for the same (agency, key) never observe the
      same value, and no value is skipped except through ``set_at_least``.
    - Transactional: the increment becomes visible when the caller commits;
      a rollback returns the value.

Failure modes:
    - InvalidCounterKeyError: empty key, or an unregistered key passed to
      ``next_value``.
    - InvalidInputError: agency_id is not a positive integer.
    - CounterUnavailableError: lock contention outlasted the retry budget.
      Ordinary contention is absorbed by the savepoint retry loop and never
      reaches the caller.
"""

from datetime import UTC, datetime
from enum import Enum

from sqlalchemy import case, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from travel_kernel.exceptions import (
    CounterUnavailableError,
    InvalidCounterKeyError,
    InvalidInputError,
)
from travel_kernel.logging_config import get_logger
from travel_kernel.models.agency_counter import AgencyCounter

logger = get_logger("services.agency_counter")

_UPSERT_DIALECTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}

_MAX_KEY_LENGTH = 64


class CounterKey(str, Enum):
    """Registered entity kinds numbered per agency."""

    BOOKING = "booking"
    QUOTE = "quote"
    CLIENT = "client"
    SERVICE = "service"
    RECEIPT = "receipt"
    OTHER_INCOME = "other_income"
    CLIENT_PAYMENT = "client_payment"
    INVESTMENT = "investment"
    OPERATOR_DUE = "operator_due"
    USER = "user"
    OPERATOR = "operator"
    SALES_TEAM = "sales_team"
    RESOURCE = "resource"
    FILE = "file"
    RECURRING_INVESTMENT = "recurring_investment"
    TEMPLATE_CONFIG = "template_config"
    TEXT_PRESET = "text_preset"
    COMMISSION_RULE_SET = "commission_rule_set"
    FINANCE_CONFIG = "finance_config"
    CLIENT_CONFIG = "client_config"
    QUOTE_CONFIG = "quote_config"
    FINANCE_CURRENCY = "finance_currency"
    FINANCE_ACCOUNT = "finance_account"
    FINANCE_PAYMENT_METHOD = "finance_payment_method"
    EXPENSE_CATEGORY = "expense_category"
    SERVICE_TYPE = "service_type"
    PASSENGER_CATEGORY = "passenger_category"
    SERVICE_CALC_CONFIG = "service_calc_config"
    LEAD = "lead"
    CREDIT_ACCOUNT = "credit_account"
    CREDIT_ENTRY = "credit_entry"
    INVOICE = "invoice"
    CREDIT_NOTE = "credit_note"
    TRAVEL_GROUP = "travel_group"
    TRAVEL_GROUP_DEPARTURE = "travel_group_departure"
    TRAVEL_GROUP_PASSENGER = "travel_group_passenger"
    TRAVEL_GROUP_RECEIPT = "travel_group_receipt"
    TRAVEL_GROUP_INVOICE = "travel_group_invoice"


COUNTER_KEYS: frozenset[str] = frozenset(k.value for k in CounterKey)


def _utcnow() -> datetime:
    return datetime.now(UTC)


def normalize_counter_key(key: object) -> str:
    """Trim a counter key; empty or oversized keys are rejected."""
    if isinstance(key, CounterKey):
        return key.value
    text = str(key if key is not None else "").strip()
    if not text or len(text) > _MAX_KEY_LENGTH:
        raise InvalidCounterKeyError(key)
    return text


def normalize_counter_value(value: int | float) -> int:
    """Stored values are integers >= 1."""
    return max(1, int(value))


class AgencyCounterService:
    """
    Service for per-agency sequence numbers.

    Contract:
        ``next_value`` returns the stored next value and advances it by one,
        atomically. A missing row is created with next_value=2 and the call
        returns 1.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.

    Usage:
        with session_scope() as session:
            number = AgencyCounterService(session).next_value(7, CounterKey.RECEIPT)
    """

    def __init__(self, session: Session, max_attempts: int = 5):
        self._session = session
        self._max_attempts = max_attempts

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def next_value(self, agency_id: int, key: CounterKey | str) -> int:
        """Next number for a registered entity kind."""
        normalized = normalize_counter_key(key)
        if normalized not in COUNTER_KEYS:
            raise InvalidCounterKeyError(key)
        return self.next_value_by_key(agency_id, normalized)

    def next_value_by_key(self, agency_id: int, key: str) -> int:
        """Next number for an arbitrary (non-empty) key."""
        agency_id = self._check_agency(agency_id)
        normalized = normalize_counter_key(key)

        value = self._with_retry(agency_id, normalized, self._increment)
        logger.debug(
            "agency_counter_allocated",
            extra={"agency_id": agency_id, "counter_key": normalized, "value": value},
        )
        return value

    def set_at_least(self, agency_id: int, key: CounterKey | str, minimum: int | float) -> int:
        """
        Raise the stored next value to at least ``minimum``.

        Used for backfills after importing externally numbered records.
        Returns the stored next value after the call.
        """
        agency_id = self._check_agency(agency_id)
        normalized = normalize_counter_key(key)
        target = normalize_counter_value(minimum)

        stored = self._with_retry(
            agency_id, normalized, lambda a, k: self._store(a, k, target, at_least=True)
        )
        logger.info(
            "agency_counter_raised",
            extra={
                "agency_id": agency_id,
                "counter_key": normalized,
                "minimum": target,
                "next_value": stored,
            },
        )
        return stored

    def set_exact(self, agency_id: int, key: CounterKey | str, next_value: int | float) -> int:
        """Administrative override of the stored next value."""
        agency_id = self._check_agency(agency_id)
        normalized = normalize_counter_key(key)
        target = normalize_counter_value(next_value)

        stored = self._with_retry(
            agency_id, normalized, lambda a, k: self._store(a, k, target, at_least=False)
        )
        logger.warning(
            "agency_counter_overridden",
            extra={"agency_id": agency_id, "counter_key": normalized, "next_value": stored},
        )
        return stored

    def peek(self, agency_id: int, key: CounterKey | str) -> int | None:
        """Stored next value without incrementing; None if the row is missing."""
        normalized = normalize_counter_key(key)
        table = AgencyCounter.__table__
        return self._session.execute(
            select(table.c.next_value).where(
                table.c.agency_id == agency_id,
                table.c.key == normalized,
            )
        ).scalar_one_or_none()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _check_agency(agency_id: int) -> int:
        if isinstance(agency_id, bool) or not isinstance(agency_id, int) or agency_id <= 0:
            raise InvalidInputError(f"Invalid agency id: {agency_id!r}", "agency_id")
        return agency_id

    def _dialect(self) -> str:
        return self._session.get_bind().dialect.name

    def _with_retry(self, agency_id: int, key: str, operation) -> int:
        """Run ``operation`` inside a savepoint, retrying lock/race failures."""
        for attempt in range(1, self._max_attempts + 1):
            try:
                with self._session.begin_nested():
                    return operation(agency_id, key)
            except (IntegrityError, OperationalError) as exc:
                logger.warning(
                    "agency_counter_retry",
                    extra={
                        "agency_id": agency_id,
                        "counter_key": key,
                        "attempt": attempt,
                        "max_attempts": self._max_attempts,
                        "error_type": type(exc).__name__,
                    },
                )
                self._session.expire_all()

        logger.error(
            "agency_counter_unavailable",
            extra={"agency_id": agency_id, "counter_key": key, "attempts": self._max_attempts},
        )
        raise CounterUnavailableError(agency_id, key, self._max_attempts)

    def _increment(self, agency_id: int, key: str) -> int:
        insert_fn = _UPSERT_DIALECTS.get(self._dialect())
        if insert_fn is None:
            return self._increment_locked(agency_id, key)

        table = AgencyCounter.__table__
        stmt = (
            insert_fn(table)
            .values(agency_id=agency_id, key=key, next_value=2, created_at=_utcnow())
            .on_conflict_do_update(
                index_elements=[table.c.agency_id, table.c.key],
                set_={"next_value": table.c.next_value + 1, "updated_at": _utcnow()},
            )
            .returning(table.c.next_value)
        )
        stored = self._session.execute(stmt).scalar_one()
        return stored - 1

    def _increment_locked(self, agency_id: int, key: str) -> int:
        counter = self._locked_row(agency_id, key)
        if counter is None:
            self._session.add(AgencyCounter(agency_id=agency_id, key=key, next_value=2))
            self._session.flush()
            return 1
        current = counter.next_value
        counter.next_value = current + 1
        self._session.flush()
        return current

    def _store(self, agency_id: int, key: str, target: int, at_least: bool) -> int:
        insert_fn = _UPSERT_DIALECTS.get(self._dialect())
        if insert_fn is None:
            return self._store_locked(agency_id, key, target, at_least)

        table = AgencyCounter.__table__
        if at_least:
            new_value = case(
                (table.c.next_value < target, target),
                else_=table.c.next_value,
            )
        else:
            new_value = target
        stmt = (
            insert_fn(table)
            .values(agency_id=agency_id, key=key, next_value=target, created_at=_utcnow())
            .on_conflict_do_update(
                index_elements=[table.c.agency_id, table.c.key],
                set_={"next_value": new_value, "updated_at": _utcnow()},
            )
            .returning(table.c.next_value)
        )
        return self._session.execute(stmt).scalar_one()

    def _store_locked(self, agency_id: int, key: str, target: int, at_least: bool) -> int:
        counter = self._locked_row(agency_id, key)
        if counter is None:
            counter = AgencyCounter(agency_id=agency_id, key=key, next_value=target)
            self._session.add(counter)
        elif not at_least or counter.next_value < target:
            counter.next_value = target
        self._session.flush()
        return counter.next_value

    def _locked_row(self, agency_id: int, key: str) -> AgencyCounter | None:
        self._session.expire_all()
        return self._session.execute(
            select(AgencyCounter)
            .where(AgencyCounter.agency_id == agency_id, AgencyCounter.key == key)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
