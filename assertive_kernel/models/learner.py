"""
Module: assertive_kernel.models.learner
Responsibility: ORM persistence for a learner's record: one versioned
    state row plus append-only ledger and problem-attempt rows.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - One learner_states row per learner (primary key on learner_id).
    - ``version`` increases by one on every write; writers update with
      ``WHERE version = :expected`` and treat zero affected rows as a lost race.
    - Ledger and attempt rows are unique per (learner_id, sequence) and
      never updated.

Failure modes:
    - IntegrityError when two writers insert the first row for a learner.
"""

from datetime import date, datetime

from sqlalchemy import ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from assertive_kernel.db.base import Base


class LearnerStateModel(Base):
    """
    Versioned business state and pending transaction for one learner.

    ``business_state`` and ``pending_transaction`` hold canonical codec JSON;
    ``pending_transaction`` is NULL while the learner is idle.  ``progress``
    holds the practice level counters; NULL means no attempt recorded yet.
    """

    __tablename__ = "learner_states"

    learner_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    version: Mapped[int] = mapped_column(nullable=False)
    business_state: Mapped[str] = mapped_column(nullable=False)
    pending_transaction: Mapped[str | None] = mapped_column(nullable=True)
    progress: Mapped[str | None] = mapped_column(nullable=True)
    schema_version: Mapped[int] = mapped_column(nullable=False)
    updated_at: Mapped[datetime] = mapped_column(nullable=False)


class LedgerEntryModel(Base):
    """One committed simulation transaction, stored as canonical codec JSON."""

    __tablename__ = "ledger_entries"

    __table_args__ = (
        UniqueConstraint("learner_id", "sequence", name="uq_ledger_learner_sequence"),
        Index("idx_ledger_learner_date", "learner_id", "entry_date"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    learner_id: Mapped[str] = mapped_column(
        String(128), ForeignKey("learner_states.learner_id"), nullable=False,
    )
    sequence: Mapped[int] = mapped_column(nullable=False)
    entry_date: Mapped[date] = mapped_column(nullable=False)
    payload: Mapped[str] = mapped_column(nullable=False)
    created_at: Mapped[datetime] = mapped_column(nullable=False)


class ProblemAttemptModel(Base):
    """One recorded practice attempt, stored as canonical codec JSON."""

    __tablename__ = "problem_attempts"

    __table_args__ = (
        UniqueConstraint("learner_id", "sequence", name="uq_attempt_learner_sequence"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    learner_id: Mapped[str] = mapped_column(
        String(128), ForeignKey("learner_states.learner_id"), nullable=False,
    )
    sequence: Mapped[int] = mapped_column(nullable=False)
    payload: Mapped[str] = mapped_column(nullable=False)
    created_at: Mapped[datetime] = mapped_column(nullable=False)
