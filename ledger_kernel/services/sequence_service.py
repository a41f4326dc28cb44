"""
SequenceService -- gapless sequence allocation via locked counter rows.

Responsibility:
    Provides strictly increasing, gapless per-tenant journal entry numbers.
    Uses a dedicated counter table with row-level locking
    (``SELECT ... FOR UPDATE``) so concurrent posts for the same tenant
    serialize on one row while other tenants proceed in parallel.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.
    Called by JournalStore inside the posting transaction.

Invariants enforced:
    - Monotonicity: the locked counter row is the sole source of truth.
      The aggregate-max-plus-one pattern is never used.
    - Gap-free: the increment is part of the caller's transaction, so a
      rolled-back post returns its number.

Failure modes:
    - IntegrityError: concurrent counter creation race (handled via
      savepoint rollback and retry).

Audit relevance:
    Allocations are logged at DEBUG with sequence name and value.  Entry
    numbers are the tie-break that makes same-day ledger ordering
    reproducible.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.sequence import SequenceCounter

logger = get_logger("services.sequence")


def journal_sequence_name(tenant_id: UUID) -> str:
    """Counter name for a tenant's journal entry numbers."""
    return f"journal_entry:{tenant_id}"


class SequenceService:
    """
    Service for generating transactional sequence numbers.

    Contract:
        Accepts a sequence name and returns the next integer value.  The
        increment is only committed when the caller's transaction commits.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.

    Usage:
        with session_scope() as session:
            number = SequenceService(session).next_value(
                journal_sequence_name(tenant_id)
            )
    """

    def __init__(self, session: Session):
        self._session = session

    def _lock_counter(self, sequence_name: str) -> SequenceCounter | None:
        return self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def next_value(self, sequence_name: str) -> int:
        """
        Get the next value for a named sequence.

        Preconditions:
            - The caller is within an active database transaction.

        Postconditions:
            - Returns an integer > 0, exactly one greater than the previous
              committed value for this sequence.
            - The counter row is locked until the transaction completes.
        """
        counter = self._lock_counter(sequence_name)

        if counter is None:
            # First use; another transaction may create it simultaneously.
            savepoint = self._session.begin_nested()
            try:
                counter = SequenceCounter(name=sequence_name, current_value=1)
                self._session.add(counter)
                self._session.flush()
                savepoint.commit()
                logger.debug(
                    "sequence_allocated",
                    extra={"sequence_name": sequence_name, "value": 1},
                )
                return 1
            except IntegrityError:
                logger.debug(
                    "sequence_counter_race_retry",
                    extra={"sequence_name": sequence_name},
                )
                savepoint.rollback()
                counter = self._lock_counter(sequence_name)
                if counter is None:
                    raise

        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": counter.current_value},
        )
        return counter.current_value
