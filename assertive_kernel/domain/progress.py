"""
Module: assertive_kernel.domain.progress
Responsibility: Per-learner practice progress: recorded problem attempts,
    per-level counters and level unlocking.
Architecture position: Kernel > Domain.  Frozen value objects and pure
    transitions; ProgressService persists them inside the LearnerRecord.

Invariants enforced:
    - An attempt counts toward a level only when its template level is
      unknown or at least the learner's level; easier review problems
      never unlock anything.
    - A level unlocks the next one exactly once, when its correct count
      first reaches the unlock threshold.
    - Unlocked levels only grow; level 0 is always unlocked.
    - Attempts are appended, never modified.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from typing import Any


@dataclass(frozen=True)
class ProblemAttempt:
    id: str
    problem_id: str
    problem_type: str
    level: int
    correct: bool
    feedback_status: str
    recorded_at: datetime
    template_level: int | None = None
    template_key: str | None = None
    selected_assertions: Mapping[str, Any] | None = None
    je_debit: str | None = None
    je_credit: str | None = None
    je_amount: Decimal | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "problem_id": self.problem_id,
            "problem_type": self.problem_type,
            "level": self.level,
            "template_level": self.template_level,
            "template_key": self.template_key,
            "correct": self.correct,
            "feedback_status": self.feedback_status,
            "recorded_at": self.recorded_at.isoformat(),
            "selected_assertions": (
                dict(self.selected_assertions) if self.selected_assertions is not None else None
            ),
            "je_debit": self.je_debit,
            "je_credit": self.je_credit,
            "je_amount": self.je_amount,
        }


@dataclass(frozen=True)
class LevelProgress:
    level: int
    correct_count: int = 0
    total_attempts: int = 0
    unlocked_next: bool = False


@dataclass(frozen=True)
class LearnerProgress:
    current_level: int = 0
    unlocked_levels: tuple[int, ...] = (0,)
    levels: Mapping[int, LevelProgress] = field(default_factory=dict)
    attempts: tuple[ProblemAttempt, ...] = ()

    def level(self, level: int) -> LevelProgress:
        return self.levels.get(level) or LevelProgress(level=level)

    def to_dict(self) -> dict[str, Any]:
        return {
            "current_level": self.current_level,
            "unlocked_levels": list(self.unlocked_levels),
            "level_stats": {
                level: {
                    "correct_count": lp.correct_count,
                    "total_attempts": lp.total_attempts,
                    "unlocked_next": lp.unlocked_next,
                }
                for level, lp in sorted(self.levels.items())
            },
        }


def counts_toward_progress(attempt: ProblemAttempt) -> bool:
    return attempt.template_level is None or attempt.template_level >= attempt.level


def apply_attempt(
    progress: LearnerProgress,
    attempt: ProblemAttempt,
    correct_to_unlock: int,
) -> tuple[LearnerProgress, int | None]:
    """
    Append ``attempt`` and update the counters of its level.

    Returns:
        The new progress and the level that was unlocked by this attempt,
        or None.
    """
    attempts = progress.attempts + (attempt,)
    if not counts_toward_progress(attempt):
        return replace(progress, attempts=attempts), None

    current = progress.level(attempt.level)
    updated = replace(
        current,
        correct_count=current.correct_count + (1 if attempt.correct else 0),
        total_attempts=current.total_attempts + 1,
    )
    unlocked: int | None = None
    current_level = progress.current_level
    unlocked_levels = progress.unlocked_levels
    if attempt.correct and not updated.unlocked_next and updated.correct_count >= correct_to_unlock:
        updated = replace(updated, unlocked_next=True)
        unlocked = attempt.level + 1
        current_level = unlocked
        unlocked_levels = tuple(sorted(set(unlocked_levels) | {unlocked}))

    levels = dict(progress.levels)
    levels[attempt.level] = updated
    return (
        LearnerProgress(
            current_level=current_level,
            unlocked_levels=unlocked_levels,
            levels=levels,
            attempts=attempts,
        ),
        unlocked,
    )


def level_stats(progress: LearnerProgress, level: int, correct_to_unlock: int) -> dict[str, Any]:
    lp = progress.level(level)
    return {
        "level": level,
        "correct_count": lp.correct_count,
        "total_attempts": lp.total_attempts,
        "unlocked_next": lp.unlocked_next,
        "progress_toward_unlock": min(correct_to_unlock, lp.correct_count),
        "needs_for_unlock": max(0, correct_to_unlock - lp.correct_count),
    }


def attempt_history(
    progress: LearnerProgress,
    level: int | None = None,
    limit: int = 50,
) -> list[ProblemAttempt]:
    """Recorded attempts, most recent first, optionally for one level."""
    matching = [a for a in progress.attempts if level is None or a.level == level]
    matching.reverse()
    matching.sort(key=lambda a: a.recorded_at, reverse=True)
    return matching[:max(0, limit)]
