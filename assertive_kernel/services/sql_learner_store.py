"""
Module: assertive_kernel.services.sql_learner_store
Responsibility: LearnerStore backed by SQLAlchemy (learner_states,
    ledger_entries and problem_attempts tables).
Architecture position: Kernel > Services.  Decodes rows with the canonical
    codec at this boundary; callers only see LearnerRecords.

Invariants enforced:
    - Updates are ``UPDATE ... WHERE learner_id = :id AND version = :expected``;
      zero affected rows means another writer won.
    - The first write for a learner is an INSERT; the primary key turns a
      concurrent first write into an IntegrityError, reported as a lost race.
    - State row, new ledger rows and new attempt rows commit in one
      transaction.
    - Ledger rows are only ever appended, except that an empty ledger
      (simulation reset) deletes the learner's rows.
    - Attempt rows are only ever appended.

Failure modes:
    - UnsupportedSchemaVersionError if a stored payload has an unknown
      schema version.
    - Other SQLAlchemy errors propagate.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from assertive_kernel.db.engine import session_scope
from assertive_kernel.domain.business_state import LearnerRecord
from assertive_kernel.domain.codec import (
    SCHEMA_VERSION,
    decode_business_state,
    decode_learner_progress,
    decode_ledger_entry,
    decode_pending_transaction,
    decode_problem_attempt,
    encode_business_state,
    encode_learner_progress,
    encode_ledger_entry,
    encode_pending_transaction,
    encode_problem_attempt,
)
from assertive_kernel.domain.progress import LearnerProgress
from assertive_kernel.logging_config import get_logger
from assertive_kernel.models.learner import (
    LearnerStateModel,
    LedgerEntryModel,
    ProblemAttemptModel,
)
from assertive_kernel.services.learner_store import LearnerStore

logger = get_logger("services.sql_learner_store")


class SqlLearnerStore(LearnerStore):
    """
    Relational LearnerStore.

    Contract:
        Receives a session factory; opens one short transaction per call.
    """

    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory

    def load(self, learner_id: str) -> LearnerRecord | None:
        with session_scope(self._session_factory) as session:
            row = session.get(LearnerStateModel, learner_id)
            if row is None:
                return None
            ledger_rows = session.scalars(
                select(LedgerEntryModel)
                .where(LedgerEntryModel.learner_id == learner_id)
                .order_by(LedgerEntryModel.sequence)
            ).all()
            attempt_rows = session.scalars(
                select(ProblemAttemptModel)
                .where(ProblemAttemptModel.learner_id == learner_id)
                .order_by(ProblemAttemptModel.sequence)
            ).all()
            attempts = tuple(decode_problem_attempt(r.payload) for r in attempt_rows)
            return LearnerRecord(
                learner_id=learner_id,
                state=decode_business_state(row.business_state),
                pending=(
                    decode_pending_transaction(row.pending_transaction)
                    if row.pending_transaction is not None
                    else None
                ),
                ledger=tuple(decode_ledger_entry(r.payload) for r in ledger_rows),
                version=row.version,
                progress=(
                    decode_learner_progress(row.progress, attempts)
                    if row.progress is not None
                    else LearnerProgress(attempts=attempts)
                ),
            )

    def compare_and_swap(self, expected_version: int, record: LearnerRecord) -> bool:
        state_json = encode_business_state(record.state)
        pending_json = (
            encode_pending_transaction(record.pending) if record.pending is not None else None
        )
        progress_json = (
            encode_learner_progress(record.progress)
            if record.progress != LearnerProgress()
            else None
        )
        now = datetime.now(timezone.utc)

        try:
            with session_scope(self._session_factory) as session:
                if expected_version == 0:
                    session.add(LearnerStateModel(
                        learner_id=record.learner_id,
                        version=1,
                        business_state=state_json,
                        pending_transaction=pending_json,
                        progress=progress_json,
                        schema_version=SCHEMA_VERSION,
                        updated_at=now,
                    ))
                    session.flush()
                else:
                    result = session.execute(
                        update(LearnerStateModel)
                        .where(
                            LearnerStateModel.learner_id == record.learner_id,
                            LearnerStateModel.version == expected_version,
                        )
                        .values(
                            version=expected_version + 1,
                            business_state=state_json,
                            pending_transaction=pending_json,
                            progress=progress_json,
                            schema_version=SCHEMA_VERSION,
                            updated_at=now,
                        )
                    )
                    if result.rowcount != 1:
                        logger.debug(
                            "learner_state_version_mismatch",
                            extra={"learner_id": record.learner_id, "expected": expected_version},
                        )
                        return False

                self._sync_ledger(session, record, now)
                self._sync_attempts(session, record, now)
        except IntegrityError:
            logger.debug(
                "learner_state_insert_conflict",
                extra={"learner_id": record.learner_id},
            )
            return False
        return True

    def _sync_ledger(self, session: Session, record: LearnerRecord, now: datetime) -> None:
        if not record.ledger:
            session.execute(
                delete(LedgerEntryModel).where(LedgerEntryModel.learner_id == record.learner_id)
            )
            return

        stored = session.scalar(
            select(func.count())
            .select_from(LedgerEntryModel)
            .where(LedgerEntryModel.learner_id == record.learner_id)
        ) or 0
        for sequence, entry in enumerate(record.ledger[stored:], start=stored):
            session.add(LedgerEntryModel(
                id=entry.id,
                learner_id=record.learner_id,
                sequence=sequence,
                entry_date=entry.date,
                payload=encode_ledger_entry(entry),
                created_at=now,
            ))

    def _sync_attempts(self, session: Session, record: LearnerRecord, now: datetime) -> None:
        stored = session.scalar(
            select(func.count())
            .select_from(ProblemAttemptModel)
            .where(ProblemAttemptModel.learner_id == record.learner_id)
        ) or 0
        attempts = record.progress.attempts
        for sequence, attempt in enumerate(attempts[stored:], start=stored):
            session.add(ProblemAttemptModel(
                id=attempt.id,
                learner_id=record.learner_id,
                sequence=sequence,
                payload=encode_problem_attempt(attempt),
                created_at=now,
            ))
