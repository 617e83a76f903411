"""
SimulationService -- the per-learner business simulation state machine.

Responsibility:
    Drives a learner's simulation between two states, Idle and
    AwaitingClassification.  Starting an action creates a pending
    transaction; classifying it correctly applies the action's effects,
    advances moves and the calendar, and appends a ledger entry.

Architecture position:
    Kernel > Services -- imperative shell over the pure domain modules
    (prerequisites, transactions, classification, effects, statements).
    Storage goes through an injected LearnerStore; there is no global store.

Invariants enforced:
    - At most one pending transaction per learner.  A read-decide-write
      cycle commits through LearnerStore.compare_and_swap, so two concurrent
      ``start_action`` calls for one learner cannot both succeed.
    - A lost compare-and-swap re-reads and re-decides, up to
      ``settings.max_commit_attempts`` times.
    - Ledger entries are appended, never modified.
    - No AssertiveError crosses the service boundary: every public method
      returns ``{"success": False, "error": code, "reason": message}``.

Failure modes:
    - UNKNOWN_ACTION, DUPLICATE_PENDING_TRANSACTION, PREREQUISITE_NOT_MET,
      NO_PENDING_TRANSACTION, UNKNOWN_CLASSIFICATION returned as results.
    - CONCURRENT_MODIFICATION when every commit attempt lost its race.
    - Storage errors (SQLAlchemy) propagate.
"""

from __future__ import annotations

import random
from collections.abc import Callable, Mapping
from dataclasses import replace
from datetime import date
from decimal import Decimal
from typing import Any, TypeVar
from uuid import uuid4

from assertive_kernel.domain.business_state import (
    LearnerRecord,
    LedgerEntry,
    PendingTransaction,
    advance_simulation_date,
    decrement_moves,
    initial_business_state,
)
from assertive_kernel.domain.catalog import Catalog
from assertive_kernel.domain.classification import ClassificationResult, classify
from assertive_kernel.domain.clock import Clock, SystemClock
from assertive_kernel.domain.effects import apply_effects
from assertive_kernel.domain.linkage import render_journal_entry
from assertive_kernel.domain.prerequisites import available_actions, check_prerequisites
from assertive_kernel.domain.statements import build_financial_statements
from assertive_kernel.domain.transactions import prepare_transaction
from assertive_kernel.exceptions import (
    AssertiveError,
    DuplicatePendingTransactionError,
    NoPendingTransactionError,
    PrerequisiteNotMetError,
)
from assertive_kernel.logging_config import LogContext, get_logger
from assertive_kernel.services.learner_store import LearnerStore, transact

logger = get_logger("services.simulation")

T = TypeVar("T")

# Opening balances for statement derivation: the starting cash is the
# owner's initial contribution.
OPENING_CASH_ACCOUNT = "Cash"
OPENING_EQUITY_ACCOUNT = "Owner's Capital"


def _error(exc: AssertiveError) -> dict[str, Any]:
    logger.info(
        "simulation_request_rejected",
        extra={"error_code": exc.code, "reason": str(exc)},
    )
    return {"success": False, "error": exc.code, "reason": str(exc)}


class SimulationService:
    """
    Transport-independent simulation operations.

    Contract:
        Every method takes the learner id first and returns a plain dict.
        The learner's record is created lazily on first write.

    Guarantees:
        - ``start_action`` succeeds at most once while a transaction is
          pending, regardless of concurrency.
        - After a correct ``classify_pending`` the pending transaction is
          gone and exactly one ledger entry was appended.
    """

    def __init__(
        self,
        store: LearnerStore,
        catalog: Catalog,
        clock: Clock | None = None,
        rng_factory: Callable[[], random.Random] | None = None,
    ):
        self._store = store
        self._catalog = catalog
        self._clock = clock or SystemClock()
        self._rng_factory = rng_factory or random.Random

    # -- record plumbing --------------------------------------------------

    def _fresh_record(self, learner_id: str) -> LearnerRecord:
        return LearnerRecord(
            learner_id=learner_id,
            state=initial_business_state(self._catalog),
        )

    def _load(self, learner_id: str) -> LearnerRecord:
        return self._store.load(learner_id) or self._fresh_record(learner_id)

    def _transact(
        self,
        learner_id: str,
        decide: Callable[[LearnerRecord], tuple[LearnerRecord | None, T]],
    ) -> T:
        return transact(
            self._store,
            learner_id,
            self._fresh_record,
            decide,
            self._catalog.settings.max_commit_attempts,
        )

    # -- operations -------------------------------------------------------

    def start_action(
        self,
        learner_id: str,
        action_key: str,
        level: int,
        student_vars: Mapping[str, Any] | None = None,
    ) -> dict[str, Any]:
        """
        Start an action, creating the learner's pending transaction.

        Args:
            learner_id: Learner whose simulation is advanced.
            action_key: Key from the action catalog, e.g. ``produce-tshirts``.
            level: Learner level used for the level prerequisite.
            student_vars: Optional learner choices passed to the action's
                variable strategy (item, quantity, counterparty).
        """
        catalog = self._catalog

        def decide(record: LearnerRecord) -> tuple[LearnerRecord, PendingTransaction]:
            action = catalog.action(action_key)
            if record.pending is not None:
                raise DuplicatePendingTransactionError(learner_id, record.pending.action_type)
            reason = check_prerequisites(action, level, record.state, catalog)
            if reason is not None:
                raise PrerequisiteNotMetError(action.key, reason)
            bound = prepare_transaction(
                catalog, action, record.state, self._rng_factory(), student_vars,
            )
            pending = PendingTransaction(
                action_type=action.key,
                narrative=bound.narrative,
                variables=bound.variables,
                correct_assertions=bound.correct_assertions,
                template_key=bound.template_key,
                problem_id=str(uuid4()),
                created_at=self._clock.now(),
            )
            return replace(record, pending=pending), pending

        with LogContext.bind(learner_id=learner_id, action_key=action_key):
            try:
                pending = self._transact(learner_id, decide)
            except AssertiveError as exc:
                return _error(exc)
            logger.info(
                "pending_transaction_created",
                extra={"problem_id": pending.problem_id, "template_key": pending.template_key},
            )

        return {
            "success": True,
            "problem_id": pending.problem_id,
            "narrative": pending.narrative,
            "variables": dict(pending.variables),
            "action_type": pending.action_type,
            "level": catalog.action(action_key).level,
            "template_key": pending.template_key,
        }

    def classify_pending(self, learner_id: str, assertions: Any) -> dict[str, Any]:
        """
        Classify the learner's pending transaction.

        A correct classification commits the transaction; anything else
        keeps it pending with its attempt count incremented.
        """
        catalog = self._catalog
        settings = catalog.settings

        def decide(
            record: LearnerRecord,
        ) -> tuple[LearnerRecord, tuple[ClassificationResult, PendingTransaction, LedgerEntry | None, LearnerRecord]]:
            pending = record.pending
            if pending is None:
                raise NoPendingTransactionError(learner_id)
            template = catalog.template(pending.template_key)
            result = classify(assertions, template.correct_classification, catalog=catalog)
            attempted = replace(pending, attempts=pending.attempts + 1)

            if not result.is_correct:
                updated = replace(record, pending=attempted)
                return updated, (result, attempted, None, updated)

            action = catalog.action(pending.action_type)
            rule = catalog.rule(template.correct_classification)
            legs = render_journal_entry(
                catalog,
                rule,
                pending.correct_assertions,
                pending.variables.get(template.amount_variable),
            )
            raw_date = pending.variables.get("date")
            entry = LedgerEntry(
                id=str(uuid4()),
                date=date.fromisoformat(raw_date) if raw_date else record.state.simulation_date,
                period=record.state.current_period,
                action_type=pending.action_type,
                narrative=pending.narrative,
                variables=pending.variables,
                assertions=pending.correct_assertions,
                journal_entry=tuple(legs),
                template_key=pending.template_key,
                created_at=self._clock.now(),
            )
            state = apply_effects(record.state, action, pending.variables, catalog)
            state = decrement_moves(state, settings)
            state = advance_simulation_date(state, settings, self._rng_factory())
            updated = replace(record, state=state, pending=None, ledger=record.ledger + (entry,))
            return updated, (result, attempted, entry, updated)

        with LogContext.bind(learner_id=learner_id):
            try:
                result, attempted, entry, updated = self._transact(learner_id, decide)
            except AssertiveError as exc:
                return _error(exc)

            response: dict[str, Any] = {
                "success": True,
                "correct": result.is_correct,
                "feedback": result.feedback.to_dict(),
                "exact_match": result.exact_match,
                "attempts": attempted.attempts,
            }
            if entry is None:
                logger.info(
                    "classification_rejected",
                    extra={"problem_id": attempted.problem_id, "attempts": attempted.attempts},
                )
                response["pending_transaction"] = attempted.to_dict()
                return response

            logger.info(
                "transaction_committed",
                extra={
                    "problem_id": attempted.problem_id,
                    "action_key": entry.action_type,
                    "ledger_entry_id": entry.id,
                    "attempts": attempted.attempts,
                },
            )
        response["ledger_entry"] = entry.to_dict()
        response["business_state"] = updated.state.to_dict()
        return response

    def cancel_pending(self, learner_id: str) -> dict[str, Any]:
        """Discard the pending transaction, if any; state is untouched."""

        def decide(record: LearnerRecord) -> tuple[LearnerRecord | None, str | None]:
            if record.pending is None:
                return None, None
            return replace(record, pending=None), record.pending.action_type

        with LogContext.bind(learner_id=learner_id):
            try:
                cancelled = self._transact(learner_id, decide)
            except AssertiveError as exc:
                return _error(exc)
            if cancelled is not None:
                logger.info("pending_transaction_cancelled", extra={"action_key": cancelled})
        return {"success": True, "cancelled": cancelled is not None}

    def available_actions(self, learner_id: str, level: int) -> dict[str, Any]:
        """Action menu for the learner's current state; never writes."""
        record = self._load(learner_id)
        return {
            "success": True,
            "actions": available_actions(self._catalog, level, record.state),
        }

    def reset_simulation(self, learner_id: str) -> dict[str, Any]:
        """
        Reinitialize business state and discard the pending transaction and ledger.

        Practice progress is kept.
        """

        def decide(record: LearnerRecord) -> tuple[LearnerRecord, LearnerRecord]:
            fresh = replace(
                self._fresh_record(learner_id), version=record.version, progress=record.progress,
            )
            return fresh, fresh

        with LogContext.bind(learner_id=learner_id):
            try:
                fresh = self._transact(learner_id, decide)
            except AssertiveError as exc:
                return _error(exc)
            logger.info("simulation_reset")
        return {"success": True, "business_state": fresh.state.to_dict()}

    def generate_financial_statements(self, learner_id: str) -> dict[str, Any]:
        """Balance sheet and income statement folded from the full ledger."""
        record = self._load(learner_id)
        statements = build_financial_statements(
            self._catalog, record.sorted_ledger(), self.opening_balances(),
        )
        return {"success": True, **statements.to_dict()}

    def get_state(self, learner_id: str) -> dict[str, Any]:
        """Business state, pending transaction and ledger; creates the learner if new."""

        def decide(record: LearnerRecord) -> tuple[LearnerRecord | None, LearnerRecord]:
            if record.version == 0:
                return record, record
            return None, record

        with LogContext.bind(learner_id=learner_id):
            try:
                record = self._transact(learner_id, decide)
            except AssertiveError as exc:
                return _error(exc)
        return {
            "success": True,
            "business_state": record.state.to_dict(),
            "pending_transaction": record.pending.to_dict() if record.pending else None,
            "ledger": [entry.to_dict() for entry in record.sorted_ledger()],
        }

    def opening_balances(self) -> dict[str, Decimal]:
        """Debit-positive opening balances: starting cash contributed by the owner."""
        starting_cash = self._catalog.settings.starting_cash
        return {OPENING_CASH_ACCOUNT: starting_cash, OPENING_EQUITY_ACCOUNT: -starting_cash}
