"""
SequenceService -- per-organization counters behind default transaction codes.

Responsibility:
    Hand out strictly increasing integers per (organization, sequence name)
    using a locked counter row.  TransactionService formats them as
    ``<TYPE>-<NNNNNN>``.

Architecture position:
    Kernel > Services.  Infrastructure called only by TransactionService.

Invariants enforced:
    - The counter row is the only source of the next value.  Reading
      max(transaction_code) and adding one is never done.
    - The increment is part of the caller's transaction: a rolled-back emit
      gives its number back.

Failure modes:
    - IntegrityError on a concurrent first use of a sequence, handled by a
      savepoint rollback and re-read under lock.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from hera_kernel.logging_config import get_logger
from hera_kernel.models.sequence import SequenceCounter

logger = get_logger("services.sequence")


class SequenceService:
    """
    Transactional sequence numbers.

    Guarantees:
        - Strictly increasing per (organization_id, name).
        - ``SELECT ... FOR UPDATE`` serializes concurrent allocations on
          PostgreSQL.

    Non-goals:
        - Does NOT call ``session.commit()``.
    """

    def __init__(self, session: Session):
        self._session = session

    def _locked(self, organization_id: UUID, name: str) -> SequenceCounter | None:
        return self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.organization_id == organization_id)
            .where(SequenceCounter.name == name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def next_value(self, organization_id: UUID, name: str) -> int:
        """
        Advance and return the named counter (first value is 1).
        """
        counter = self._locked(organization_id, name)

        if counter is None:
            savepoint = self._session.begin_nested()
            try:
                counter = SequenceCounter(
                    organization_id=organization_id, name=name, current_value=1
                )
                self._session.add(counter)
                self._session.flush()
                savepoint.commit()
                logger.debug(
                    "sequence_allocated",
                    extra={"sequence_name": name, "value": 1},
                )
                return 1
            except IntegrityError:
                logger.debug(
                    "sequence_counter_race_retry",
                    extra={"sequence_name": name},
                )
                savepoint.rollback()
                counter = self._locked(organization_id, name)
                if counter is None:
                    raise

        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": name, "value": counter.current_value},
        )
        return counter.current_value

    def current_value(self, organization_id: UUID, name: str) -> int | None:
        counter = self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.organization_id == organization_id)
            .where(SequenceCounter.name == name)
        ).scalar_one_or_none()
        return counter.current_value if counter else None
