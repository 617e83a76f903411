"""
ProgressService -- practice attempts and level unlocking per learner.

Responsibility:
    Records each practice attempt, keeps per-level correct/total counters
    and unlocks the next level once a learner has answered enough problems
    correctly at their level.

Architecture position:
    Kernel > Services -- shell over domain/progress.py.  Progress lives in
    the learner's LearnerRecord and is written through the same
    LearnerStore compare-and-swap as the simulation, so an attempt and a
    simulation move for one learner never overwrite each other.

Invariants enforced:
    - Only attempts whose template level is unknown or at least the
      learner's level count toward unlocking.
    - ``settings.correct_to_unlock`` correct answers at a level unlock the
      next level once, and advance the learner's current level to it.
    - Reads never create a learner record.

Failure modes:
    - INVALID_ATTEMPT for an unknown problem type or feedback status, a
      negative level or a non-numeric journal-entry amount.
    - CONCURRENT_MODIFICATION when every commit attempt lost its race.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import replace
from decimal import Decimal, InvalidOperation
from typing import Any
from uuid import uuid4

from assertive_kernel.domain.business_state import LearnerRecord, initial_business_state
from assertive_kernel.domain.catalog import Catalog
from assertive_kernel.domain.classification import FeedbackStatus
from assertive_kernel.domain.clock import Clock, SystemClock
from assertive_kernel.domain.generator import ProblemMode
from assertive_kernel.domain.progress import (
    LearnerProgress,
    ProblemAttempt,
    apply_attempt,
    attempt_history,
    counts_toward_progress,
    level_stats,
)
from assertive_kernel.exceptions import AssertiveError, InvalidAttemptError
from assertive_kernel.logging_config import LogContext, get_logger
from assertive_kernel.services.learner_store import LearnerStore, transact

logger = get_logger("services.progress")

_Outcome = tuple[LearnerProgress, int | None]


def _error(exc: AssertiveError) -> dict[str, Any]:
    logger.info(
        "progress_request_rejected",
        extra={"error_code": exc.code, "reason": str(exc)},
    )
    return {"success": False, "error": exc.code, "reason": str(exc)}


class ProgressService:
    """
    Learner progress operations over one catalog.

    Contract:
        Every method takes the learner id first and returns a plain dict.
    """

    def __init__(
        self,
        store: LearnerStore,
        catalog: Catalog,
        clock: Clock | None = None,
    ):
        self._store = store
        self._catalog = catalog
        self._clock = clock or SystemClock()

    @property
    def correct_to_unlock(self) -> int:
        return self._catalog.settings.correct_to_unlock

    def _fresh_record(self, learner_id: str) -> LearnerRecord:
        return LearnerRecord(
            learner_id=learner_id,
            state=initial_business_state(self._catalog),
        )

    def _progress(self, learner_id: str) -> LearnerProgress:
        record = self._store.load(learner_id)
        return record.progress if record is not None else LearnerProgress()

    def _build_attempt(
        self,
        problem_id: str,
        problem_type: str,
        level: int,
        correct: bool,
        feedback_status: str,
        template_level: int | None,
        template_key: str | None,
        selected_assertions: Mapping[str, Any] | None,
        je_debit: str | None,
        je_credit: str | None,
        je_amount: Any,
    ) -> ProblemAttempt:
        if problem_type not in {mode.value for mode in ProblemMode}:
            raise InvalidAttemptError("problem_type", problem_type)
        if feedback_status not in {status.value for status in FeedbackStatus}:
            raise InvalidAttemptError("feedback_status", feedback_status)
        if isinstance(level, bool) or not isinstance(level, int) or level < 0:
            raise InvalidAttemptError("level", level)
        if template_level is not None and (
            isinstance(template_level, bool) or not isinstance(template_level, int)
        ):
            raise InvalidAttemptError("template_level", template_level)

        if template_level is None and template_key is not None:
            template = self._catalog.templates_by_key.get(template_key)
            if template is not None:
                template_level = template.level

        amount: Decimal | None = None
        if je_amount is not None:
            try:
                amount = Decimal(str(je_amount).replace(",", "").replace("$", "").strip())
            except InvalidOperation:
                raise InvalidAttemptError("je_amount", je_amount) from None
            if not amount.is_finite():
                raise InvalidAttemptError("je_amount", je_amount)

        return ProblemAttempt(
            id=str(uuid4()),
            problem_id=str(problem_id),
            problem_type=problem_type,
            level=level,
            correct=bool(correct),
            feedback_status=feedback_status,
            recorded_at=self._clock.now(),
            template_level=template_level,
            template_key=template_key,
            selected_assertions=(
                dict(selected_assertions) if selected_assertions is not None else None
            ),
            je_debit=je_debit,
            je_credit=je_credit,
            je_amount=amount,
        )

    def record_attempt(
        self,
        learner_id: str,
        problem_id: str,
        problem_type: str,
        level: int,
        correct: bool,
        feedback_status: str,
        template_level: int | None = None,
        template_key: str | None = None,
        selected_assertions: Mapping[str, Any] | None = None,
        je_debit: str | None = None,
        je_credit: str | None = None,
        je_amount: Any = None,
    ) -> dict[str, Any]:
        """
        Record one answered problem and return the learner's updated progress.

        ``template_level`` is the difficulty of the problem's template; when
        omitted it is looked up from ``template_key``.  Attempts with neither
        count toward the learner's level.
        """
        with LogContext.bind(
            learner_id=learner_id, problem_id=str(problem_id), template_key=template_key,
        ):
            try:
                attempt = self._build_attempt(
                    problem_id, problem_type, level, correct, feedback_status,
                    template_level, template_key, selected_assertions,
                    je_debit, je_credit, je_amount,
                )

                def decide(record: LearnerRecord) -> tuple[LearnerRecord, _Outcome]:
                    progress, unlocked = apply_attempt(
                        record.progress, attempt, self.correct_to_unlock,
                    )
                    return replace(record, progress=progress), (progress, unlocked)

                progress, unlocked = transact(
                    self._store,
                    learner_id,
                    self._fresh_record,
                    decide,
                    self._catalog.settings.max_commit_attempts,
                )
            except AssertiveError as exc:
                return _error(exc)

            logger.info(
                "attempt_recorded",
                extra={
                    "practice_level": attempt.level,
                    "correct": attempt.correct,
                    "counted": counts_toward_progress(attempt),
                },
            )
            if unlocked is not None:
                logger.info("level_unlocked", extra={"unlocked_level": unlocked})

        return {
            "success": True,
            "attempt_id": attempt.id,
            "counted": counts_toward_progress(attempt),
            "unlocked_level": unlocked,
            **progress.to_dict(),
        }

    def get_progress(self, learner_id: str) -> dict[str, Any]:
        """Current level, unlocked levels and per-level counters."""
        return {"success": True, **self._progress(learner_id).to_dict()}

    def get_level_stats(self, learner_id: str, level: int) -> dict[str, Any]:
        return {
            "success": True,
            **level_stats(self._progress(learner_id), level, self.correct_to_unlock),
        }

    def get_attempt_history(
        self,
        learner_id: str,
        level: int | None = None,
        limit: int = 50,
    ) -> dict[str, Any]:
        """Recorded attempts, most recent first."""
        attempts = attempt_history(self._progress(learner_id), level=level, limit=limit)
        return {"success": True, "attempts": [a.to_dict() for a in attempts]}
