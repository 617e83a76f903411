"""
Module: assertive_kernel.domain.business_state
Responsibility: Per-learner simulation values (BusinessState,
    PendingTransaction, LedgerEntry, LearnerRecord) and the calendar/move
    bookkeeping applied after every committed transaction.
Architecture position: Kernel > Domain.  Frozen value objects; every
    transition returns a new instance.

Invariants enforced:
    - At most one PendingTransaction per learner (``LearnerRecord.pending``).
    - Ledger entries are never mutated once appended.
    - The simulation calendar uses a fixed month length (28 days by
      default); it is intentionally not calendar-accurate.
"""

from __future__ import annotations

import random
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from assertive_kernel.domain.catalog import Catalog, SimulationSettings
from assertive_kernel.domain.progress import LearnerProgress


@dataclass(frozen=True)
class BusinessState:
    current_period: int
    moves_remaining: int
    cash: Decimal
    inventory: Mapping[str, int]
    finished_goods: int
    equipment: frozenset[str]
    accounts_payable: Mapping[str, Decimal]
    accounts_receivable: Mapping[str, Decimal]
    simulation_date: date

    def to_dict(self) -> dict[str, Any]:
        return {
            "current_period": self.current_period,
            "moves_remaining": self.moves_remaining,
            "cash": self.cash,
            "inventory": dict(self.inventory),
            "finished_goods": self.finished_goods,
            "equipment": sorted(self.equipment),
            "accounts_payable": dict(self.accounts_payable),
            "accounts_receivable": dict(self.accounts_receivable),
            "simulation_date": self.simulation_date.isoformat(),
        }


@dataclass(frozen=True)
class PendingTransaction:
    action_type: str
    narrative: str
    variables: Mapping[str, Any]
    correct_assertions: Mapping[str, Mapping[str, Any]]
    template_key: str
    problem_id: str
    created_at: datetime
    attempts: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "action_type": self.action_type,
            "narrative": self.narrative,
            "variables": dict(self.variables),
            "template_key": self.template_key,
            "problem_id": self.problem_id,
            "created_at": self.created_at.isoformat(),
            "attempts": self.attempts,
        }


@dataclass(frozen=True)
class LedgerEntry:
    id: str
    date: date
    period: int
    action_type: str
    narrative: str
    variables: Mapping[str, Any]
    assertions: Mapping[str, Mapping[str, Any]]
    journal_entry: tuple[Mapping[str, str], ...]
    template_key: str
    created_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "date": self.date.isoformat(),
            "period": self.period,
            "action_type": self.action_type,
            "narrative": self.narrative,
            "variables": dict(self.variables),
            "assertions": dict(self.assertions),
            "journal_entry": [dict(leg) for leg in self.journal_entry],
            "template_key": self.template_key,
            "created_at": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class LearnerRecord:
    """
    Everything a state-machine operation reads and writes, as one unit.

    ``version`` increases by one on every successful write; stores use it
    for compare-and-swap.
    ``progress`` belongs to the learner rather than the simulation and
    survives a simulation reset.
    """

    learner_id: str
    state: BusinessState
    pending: PendingTransaction | None = None
    ledger: tuple[LedgerEntry, ...] = ()
    version: int = 0
    progress: LearnerProgress = field(default_factory=LearnerProgress)

    def sorted_ledger(self) -> tuple[LedgerEntry, ...]:
        return tuple(sorted(self.ledger, key=lambda e: e.date))


def initial_business_state(catalog: Catalog) -> BusinessState:
    settings = catalog.settings
    return BusinessState(
        current_period=1,
        moves_remaining=settings.moves_per_period,
        cash=settings.starting_cash,
        inventory={},
        finished_goods=0,
        equipment=frozenset(),
        accounts_payable={},
        accounts_receivable={},
        simulation_date=settings.start_date,
    )


# =========================================================================
# Calendar and moves
# =========================================================================


def advance_date(current: date, days: int, days_per_month: int = 28) -> date:
    """
    Add ``days`` on the simulation calendar.

    Days past ``days_per_month`` roll into the next month and months past 12
    roll into the next year.
    """
    year, month, day = current.year, current.month, current.day + days
    while day > days_per_month:
        day -= days_per_month
        month += 1
    while month > 12:
        month -= 12
        year += 1
    return date(year, month, day)


def advance_simulation_date(
    state: BusinessState, settings: SimulationSettings, rng: random.Random,
) -> BusinessState:
    days = rng.randint(settings.min_advance_days, settings.max_advance_days)
    return replace(
        state,
        simulation_date=advance_date(state.simulation_date, days, settings.days_per_month),
    )


def decrement_moves(state: BusinessState, settings: SimulationSettings) -> BusinessState:
    """Use one move; the last move of a period opens the next period."""
    remaining = state.moves_remaining - 1
    if remaining <= 0:
        return replace(
            state,
            current_period=state.current_period + 1,
            moves_remaining=settings.moves_per_period,
        )
    return replace(state, moves_remaining=remaining)
