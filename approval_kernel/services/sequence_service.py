"""
SequenceService -- gap-free, strictly increasing numbers per named sequence.

The audit trail orders its hash chain by these numbers.  Each sequence is
one row in ``sequence_counters``; allocation locks that row
(``SELECT ... FOR UPDATE``) and bumps it, so two transactions can never
hand out the same value.  ``max(seq) + 1`` is never used.

The bump becomes visible when the caller commits; a rolled-back
transaction gives its number back.
"""

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from approval_kernel.logging_config import get_logger
from approval_kernel.models.sequence import SequenceCounter

logger = get_logger("services.sequence")


class SequenceService:
    """Allocates sequence values inside the caller's transaction."""

    AUDIT_EVENT = "audit_event"
    APPROVAL_WORKFLOW = "approval_workflow"

    def __init__(self, session: Session):
        self._session = session

    def _locked_counter(self, sequence_name: str) -> SequenceCounter | None:
        return self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _create_counter(self, sequence_name: str) -> SequenceCounter:
        """Insert the counter row at zero on first use of a sequence name.

        On PostgreSQL two transactions can race to insert the same name; the
        loser's insert is confined to a savepoint and it re-reads the
        winner's row instead.  SQLite serialises writers on the file.
        """
        if self._session.get_bind().dialect.name != "postgresql":
            counter = SequenceCounter(name=sequence_name, current_value=0)
            self._session.add(counter)
            self._session.flush()
            return counter

        try:
            with self._session.begin_nested():
                counter = SequenceCounter(name=sequence_name, current_value=0)
                self._session.add(counter)
            return counter
        except IntegrityError:
            logger.debug("sequence_counter_race_retry", extra={"sequence_name": sequence_name})
            counter = self._locked_counter(sequence_name)
            if counter is None:
                raise
            return counter

    def next_value(self, sequence_name: str) -> int:
        counter = self._locked_counter(sequence_name) or self._create_counter(sequence_name)
        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": counter.current_value},
        )
        return counter.current_value

    def current_value(self, sequence_name: str) -> int | None:
        """Last allocated value, or None if the sequence was never used."""
        return self._session.execute(
            select(SequenceCounter.current_value).where(SequenceCounter.name == sequence_name)
        ).scalar_one_or_none()
