"""
Module: assertive_kernel.services.learner_store
Responsibility: Storage interface for per-learner simulation records, and
    the in-process implementation used by tests and single-node deployments.
Architecture position: Kernel > Services.  SimulationService and
    ProgressService depend only on the LearnerStore interface.

Invariants enforced:
    - A write succeeds only if the stored version still equals the version
      the writer read (compare-and-swap).  A learner that was never stored
      has version 0.
    - A successful write stores the record with ``version = expected + 1``.
    - ``transact`` retries a lost compare-and-swap against freshly loaded
      state, up to the caller's attempt limit.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import replace
from typing import TypeVar

from assertive_kernel.domain.business_state import LearnerRecord
from assertive_kernel.exceptions import OptimisticLockError
from assertive_kernel.logging_config import get_logger

logger = get_logger("services.learner_store")

T = TypeVar("T")


class LearnerStore(ABC):
    """
    Versioned store of LearnerRecords keyed by learner id.

    Contract:
        ``load`` returns the latest committed record or None.
        ``compare_and_swap`` writes atomically: business state, pending
        transaction and ledger change together or not at all.
    """

    @abstractmethod
    def load(self, learner_id: str) -> LearnerRecord | None:
        ...

    @abstractmethod
    def compare_and_swap(self, expected_version: int, record: LearnerRecord) -> bool:
        """
        Store ``record`` if the stored version equals ``expected_version``.

        Returns:
            True if the record was written, False if another writer got
            there first.
        """
        ...


class InMemoryLearnerStore(LearnerStore):
    """Dict-backed store guarded by a single lock."""

    def __init__(self) -> None:
        self._records: dict[str, LearnerRecord] = {}
        self._lock = threading.Lock()

    def load(self, learner_id: str) -> LearnerRecord | None:
        with self._lock:
            return self._records.get(learner_id)

    def compare_and_swap(self, expected_version: int, record: LearnerRecord) -> bool:
        with self._lock:
            current = self._records.get(record.learner_id)
            current_version = current.version if current is not None else 0
            if current_version != expected_version:
                return False
            self._records[record.learner_id] = replace(record, version=expected_version + 1)
            return True


def transact(
    store: LearnerStore,
    learner_id: str,
    fresh: Callable[[str], LearnerRecord],
    decide: Callable[[LearnerRecord], tuple[LearnerRecord | None, T]],
    max_attempts: int,
) -> T:
    """
    Read-decide-write with optimistic retry.

    ``decide`` returns the record to store (or None to skip the write)
    and the outcome to hand back.  It is called again on every retry
    against freshly loaded state; ``fresh`` builds the record of a learner
    that was never stored.

    Raises:
        OptimisticLockError: if every attempt lost its compare-and-swap.
    """
    for attempt in range(1, max_attempts + 1):
        record = store.load(learner_id) or fresh(learner_id)
        updated, outcome = decide(record)
        if updated is None:
            return outcome
        if store.compare_and_swap(record.version, updated):
            return outcome
        logger.warning(
            "learner_record_conflict",
            extra={"attempt": attempt, "expected_version": record.version},
        )
    raise OptimisticLockError("LearnerRecord", learner_id, max_attempts)
