"""
Module: assertive_kernel.domain.codec
Responsibility: Canonical JSON encoding of the per-learner simulation
    records for storage.
Architecture position: Kernel > Domain.  Used at the storage boundary
    only; domain code never sees the encoded text.

Invariants enforced:
    - Output is canonical: sorted keys, compact separators.
    - Decimals are written as strings; sets as sorted lists; dates and
      datetimes as ISO-8601.
    - Every payload carries ``schema_version``; decoding rejects versions it
      does not know.
    - decode(encode(x)) == x for BusinessState, PendingTransaction,
      LedgerEntry and ProblemAttempt whose variables and assertions are
      JSON-native.
    - LearnerProgress is encoded without its attempts; level keys become
      strings in JSON and are restored to ints.

Failure modes:
    - UnsupportedSchemaVersionError on an unknown or missing schema version.
"""

from __future__ import annotations

import json
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from assertive_kernel.domain.business_state import (
    BusinessState,
    LedgerEntry,
    PendingTransaction,
)
from assertive_kernel.domain.progress import LearnerProgress, LevelProgress, ProblemAttempt
from assertive_kernel.exceptions import UnsupportedSchemaVersionError

SCHEMA_VERSION = 1


def _default(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (set, frozenset)):
        return sorted(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def canonical_dumps(payload: dict[str, Any]) -> str:
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), default=_default)


def _load(text: str, record_type: str) -> dict[str, Any]:
    payload = json.loads(text)
    version = payload.get("schema_version")
    if version != SCHEMA_VERSION:
        raise UnsupportedSchemaVersionError(record_type, version)
    return payload


# =========================================================================
# BusinessState
# =========================================================================


def encode_business_state(state: BusinessState) -> str:
    return canonical_dumps({
        "schema_version": SCHEMA_VERSION,
        "current_period": state.current_period,
        "moves_remaining": state.moves_remaining,
        "cash": state.cash,
        "inventory": dict(state.inventory),
        "finished_goods": state.finished_goods,
        "equipment": state.equipment,
        "accounts_payable": dict(state.accounts_payable),
        "accounts_receivable": dict(state.accounts_receivable),
        "simulation_date": state.simulation_date,
    })


def decode_business_state(text: str) -> BusinessState:
    data = _load(text, "BusinessState")
    return BusinessState(
        current_period=int(data["current_period"]),
        moves_remaining=int(data["moves_remaining"]),
        cash=Decimal(data["cash"]),
        inventory={key: int(qty) for key, qty in data["inventory"].items()},
        finished_goods=int(data["finished_goods"]),
        equipment=frozenset(data["equipment"]),
        accounts_payable={k: Decimal(v) for k, v in data["accounts_payable"].items()},
        accounts_receivable={k: Decimal(v) for k, v in data["accounts_receivable"].items()},
        simulation_date=date.fromisoformat(data["simulation_date"]),
    )


# =========================================================================
# PendingTransaction
# =========================================================================


def encode_pending_transaction(pending: PendingTransaction) -> str:
    return canonical_dumps({
        "schema_version": SCHEMA_VERSION,
        "action_type": pending.action_type,
        "narrative": pending.narrative,
        "variables": dict(pending.variables),
        "correct_assertions": dict(pending.correct_assertions),
        "template_key": pending.template_key,
        "problem_id": pending.problem_id,
        "created_at": pending.created_at,
        "attempts": pending.attempts,
    })


def decode_pending_transaction(text: str) -> PendingTransaction:
    data = _load(text, "PendingTransaction")
    return PendingTransaction(
        action_type=data["action_type"],
        narrative=data["narrative"],
        variables=data["variables"],
        correct_assertions=data["correct_assertions"],
        template_key=data["template_key"],
        problem_id=data["problem_id"],
        created_at=datetime.fromisoformat(data["created_at"]),
        attempts=int(data["attempts"]),
    )


# =========================================================================
# LedgerEntry
# =========================================================================


def encode_ledger_entry(entry: LedgerEntry) -> str:
    return canonical_dumps({
        "schema_version": SCHEMA_VERSION,
        "id": entry.id,
        "date": entry.date,
        "period": entry.period,
        "action_type": entry.action_type,
        "narrative": entry.narrative,
        "variables": dict(entry.variables),
        "assertions": dict(entry.assertions),
        "journal_entry": [dict(leg) for leg in entry.journal_entry],
        "template_key": entry.template_key,
        "created_at": entry.created_at,
    })


def decode_ledger_entry(text: str) -> LedgerEntry:
    data = _load(text, "LedgerEntry")
    return LedgerEntry(
        id=data["id"],
        date=date.fromisoformat(data["date"]),
        period=int(data["period"]),
        action_type=data["action_type"],
        narrative=data["narrative"],
        variables=data["variables"],
        assertions=data["assertions"],
        journal_entry=tuple(dict(leg) for leg in data["journal_entry"]),
        template_key=data["template_key"],
        created_at=datetime.fromisoformat(data["created_at"]),
    )


# =========================================================================
# LearnerProgress and ProblemAttempt
# =========================================================================


def encode_learner_progress(progress: LearnerProgress) -> str:
    """Level counters only; attempts are stored one payload each."""
    return canonical_dumps({
        "schema_version": SCHEMA_VERSION,
        "current_level": progress.current_level,
        "unlocked_levels": list(progress.unlocked_levels),
        "levels": {
            str(level): {
                "correct_count": lp.correct_count,
                "total_attempts": lp.total_attempts,
                "unlocked_next": lp.unlocked_next,
            }
            for level, lp in progress.levels.items()
        },
    })


def decode_learner_progress(
    text: str,
    attempts: tuple[ProblemAttempt, ...] = (),
) -> LearnerProgress:
    data = _load(text, "LearnerProgress")
    return LearnerProgress(
        current_level=int(data["current_level"]),
        unlocked_levels=tuple(int(level) for level in data["unlocked_levels"]),
        levels={
            int(level): LevelProgress(
                level=int(level),
                correct_count=int(lp["correct_count"]),
                total_attempts=int(lp["total_attempts"]),
                unlocked_next=bool(lp["unlocked_next"]),
            )
            for level, lp in data["levels"].items()
        },
        attempts=attempts,
    )


def encode_problem_attempt(attempt: ProblemAttempt) -> str:
    return canonical_dumps({
        "schema_version": SCHEMA_VERSION,
        **attempt.to_dict(),
    })


def decode_problem_attempt(text: str) -> ProblemAttempt:
    data = _load(text, "ProblemAttempt")
    return ProblemAttempt(
        id=data["id"],
        problem_id=data["problem_id"],
        problem_type=data["problem_type"],
        level=int(data["level"]),
        correct=bool(data["correct"]),
        feedback_status=data["feedback_status"],
        recorded_at=datetime.fromisoformat(data["recorded_at"]),
        template_level=data["template_level"],
        template_key=data["template_key"],
        selected_assertions=data["selected_assertions"],
        je_debit=data["je_debit"],
        je_credit=data["je_credit"],
        je_amount=Decimal(data["je_amount"]) if data["je_amount"] is not None else None,
    )
