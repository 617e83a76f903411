"""
PracticeService -- stateless practice-mode operations.

Responsibility:
    Classifies assertion sets, generates practice problems and checks
    learner-built journal entries, returning plain dicts.

Architecture position:
    Kernel > Services -- thin shell over the pure classification,
    generator and journal modules.  Holds no per-learner state, so one
    instance may serve concurrent requests.

Failure modes:
    - UNKNOWN_CLASSIFICATION, NO_TEMPLATES_AVAILABLE returned as results.
    - INVALID_PROBLEM_MODE for a problem type other than forward, reverse
      or construct.
"""

from __future__ import annotations

import random
from collections.abc import Callable, Mapping, Sequence
from typing import Any

from assertive_kernel.domain.catalog import Catalog
from assertive_kernel.domain.classification import classify
from assertive_kernel.domain.generator import ProblemMode, generate_problem
from assertive_kernel.domain.journal import validate_journal_entry
from assertive_kernel.exceptions import AssertiveError
from assertive_kernel.logging_config import LogContext, get_logger

logger = get_logger("services.practice")


def _error(code: str, reason: str) -> dict[str, Any]:
    logger.info("practice_request_rejected", extra={"error_code": code, "reason": reason})
    return {"success": False, "error": code, "reason": reason}


class PracticeService:
    """
    Practice-mode operations over one catalog.

    Contract:
        ``rng_factory`` supplies a fresh random source per generated problem.
    """

    def __init__(
        self,
        catalog: Catalog,
        rng_factory: Callable[[], random.Random] | None = None,
    ):
        self._catalog = catalog
        self._rng_factory = rng_factory or random.Random

    def classify(
        self, assertions: Any, correct_classification: str | None = None,
    ) -> dict[str, Any]:
        try:
            result = classify(assertions, correct_classification, catalog=self._catalog)
        except AssertiveError as exc:
            return _error(exc.code, str(exc))
        return {"success": True, "correct": result.is_correct, **result.to_dict()}

    def generate_problem(
        self,
        level: int,
        problem_type: str = ProblemMode.FORWARD.value,
        show_assertions: bool = False,
    ) -> dict[str, Any]:
        """Random problem unlocked at ``level`` in the requested mode."""
        if problem_type not in {mode.value for mode in ProblemMode}:
            return _error("INVALID_PROBLEM_MODE", f"Unknown problem type: {problem_type}")
        try:
            problem = generate_problem(
                self._catalog,
                level,
                problem_type,
                show_assertions=show_assertions,
                rng=self._rng_factory(),
            )
        except AssertiveError as exc:
            return _error(exc.code, str(exc))
        return {"success": True, **problem.to_dict()}

    def validate_journal_entry(
        self,
        student_entry: Mapping[str, Any],
        correct_journal_entry: Sequence[Mapping[str, str]],
        correct_assertions: Mapping[str, Mapping[str, Any]] | None = None,
        correct_amount: Any = None,
        problem_id: str | None = None,
    ) -> dict[str, Any]:
        with LogContext.bind(problem_id=problem_id):
            verdict = validate_journal_entry(
                student_entry,
                correct_journal_entry,
                correct_assertions or {},
                catalog=self._catalog,
                correct_amount=correct_amount,
            )
            logger.debug(
                "journal_entry_validated",
                extra={"correct": verdict.correct, "field": verdict.field},
            )
        return {"success": True, **verdict.to_dict()}
