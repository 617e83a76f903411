"""
Tests for SimulationService -- the per-learner state machine.

Tests cover:
- Idle -> AwaitingClassification -> Idle lifecycle
- Error results (unknown action, duplicate, prerequisite, nothing pending)
- Exactly one ledger entry per committed transaction
- Cancel, reset and lazy learner creation
- Financial statements derived from the learner's ledger
- Retry exhaustion on a store that always loses its race
"""

from datetime import date
from decimal import Decimal

import pytest

from assertive_kernel.services.learner_store import InMemoryLearnerStore
from assertive_kernel.services.simulation_service import SimulationService

LEARNER = "learner-1"


def pending_assertions(store, learner_id=LEARNER):
    return dict(store.load(learner_id).pending.correct_assertions)


def complete(simulation, store, action_key, level=3, **student_vars):
    """Start an action and classify it correctly."""
    started = simulation.start_action(LEARNER, action_key, level, student_vars or None)
    assert started["success"], started
    result = simulation.classify_pending(LEARNER, pending_assertions(store))
    assert result["correct"], result
    return started, result


class TestStartAction:
    def test_creates_pending_transaction(self, simulation, memory_store):
        result = simulation.start_action(LEARNER, "purchase-inventory-cash", 0)

        assert result["success"]
        assert result["action_type"] == "purchase-inventory-cash"
        assert result["template_key"] == "cash-inventory-purchase"
        assert result["level"] == 0
        assert result["narrative"].startswith("On January 1, 2026, SP purchases")

        record = memory_store.load(LEARNER)
        assert record.pending.problem_id == result["problem_id"]
        assert record.pending.attempts == 0
        assert record.state.cash == Decimal("10000")

    def test_second_start_is_rejected(self, simulation):
        simulation.start_action(LEARNER, "purchase-inventory-cash", 0)

        result = simulation.start_action(LEARNER, "purchase-equipment-cash", 0)

        assert result == {
            "success": False,
            "error": "DUPLICATE_PENDING_TRANSACTION",
            "reason": result["reason"],
        }

    def test_unknown_action(self, simulation):
        result = simulation.start_action(LEARNER, "rob-bank", 0)

        assert result["success"] is False
        assert result["error"] == "UNKNOWN_ACTION"

    def test_level_prerequisite(self, simulation, memory_store):
        result = simulation.start_action(LEARNER, "owner-invest", 0)

        assert result["error"] == "PREREQUISITE_NOT_MET"
        assert result["reason"] == "Requires Level 3"
        assert memory_store.load(LEARNER) is None

    def test_inventory_prerequisite(self, simulation, memory_store):
        complete(simulation, memory_store, "purchase-equipment-cash", **{"equipment-item": "t-shirt-printer"})

        result = simulation.start_action(LEARNER, "produce-tshirts", 2)

        assert result["reason"] == "Need 10 Blank T-Shirts (have 0)"

    @pytest.mark.parametrize(
        "amount, reason",
        [
            ("NaN", "Invalid amount: 'NaN'"),
            (-500, "Amount must be at least $1"),
            (0, "Amount must be at least $1"),
        ],
    )
    def test_withdrawal_amount_validated(self, simulation, memory_store, amount, reason):
        result = simulation.start_action(LEARNER, "owner-withdraw", 3, {"amount": amount})

        assert result == {"success": False, "error": "PREREQUISITE_NOT_MET", "reason": reason}
        assert memory_store.load(LEARNER) is None

    def test_creation_is_logged_with_learner(self, simulation, captured_logs):
        simulation.start_action(LEARNER, "purchase-inventory-cash", 0)

        records = [r for r in captured_logs() if r["message"] == "pending_transaction_created"]
        assert len(records) == 1
        assert records[0]["learner_id"] == LEARNER
        assert records[0]["action_key"] == "purchase-inventory-cash"


class TestClassifyPending:
    def test_nothing_pending(self, simulation):
        result = simulation.classify_pending(LEARNER, {"provides": {}})

        assert result["error"] == "NO_PENDING_TRANSACTION"

    def test_wrong_answer_keeps_transaction_pending(self, simulation, memory_store):
        simulation.start_action(LEARNER, "purchase-inventory-cash", 0)

        result = simulation.classify_pending(LEARNER, {"provides": {}})

        assert result["success"] and not result["correct"]
        assert result["attempts"] == 1
        assert result["pending_transaction"]["attempts"] == 1
        assert "ledger_entry" not in result
        record = memory_store.load(LEARNER)
        assert record.pending is not None
        assert record.ledger == ()
        assert record.state.cash == Decimal("10000")

    def test_correct_answer_commits(self, simulation, memory_store):
        started = simulation.start_action(LEARNER, "purchase-inventory-cash", 0)
        simulation.classify_pending(LEARNER, {"provides": {}})

        result = simulation.classify_pending(LEARNER, pending_assertions(memory_store))

        amount = Decimal(started["variables"]["amount"])
        item = started["variables"]["inventory-item"]
        assert result["correct"]
        assert result["attempts"] == 2
        assert result["exact_match"] == "cash-inventory-purchase"
        assert result["ledger_entry"]["journal_entry"] == [
            {"debit": f"Raw Materials Inventory ${amount:,}", "credit": f"Cash ${amount:,}"}
        ]
        assert result["ledger_entry"]["date"] == "2026-01-01"

        record = memory_store.load(LEARNER)
        assert record.pending is None
        assert len(record.ledger) == 1
        assert record.state.cash == Decimal("10000") - amount
        assert record.state.inventory[item] == started["variables"]["quantity"]
        assert record.state.moves_remaining == 4
        assert date(2026, 1, 2) <= record.state.simulation_date <= date(2026, 1, 6)

    def test_correct_answer_for_different_rule_is_rejected(self, simulation, memory_store):
        simulation.start_action(
            LEARNER, "purchase-equipment-cash", 0, {"equipment-item": "heat-press"},
        )
        assertions = pending_assertions(memory_store)
        assertions["receives"] = {"unit": "physical-unit", "physical-item": "blank-tshirts"}

        result = simulation.classify_pending(LEARNER, assertions)

        assert not result["correct"]
        assert result["exact_match"] == "cash-inventory-purchase"
        assert result["feedback"]["hints"][1] == "But this transaction is: Cash purchase of equipment"

    def test_commit_is_logged(self, simulation, memory_store, captured_logs):
        complete(simulation, memory_store, "purchase-inventory-cash", level=0)

        assert any(r["message"] == "transaction_committed" for r in captured_logs())


class TestLifecycle:
    def test_print_shop_run(self, simulation, memory_store):
        complete(simulation, memory_store, "purchase-inventory-cash", **{"inventory-item": "blank-tshirts", "quantity": 20})
        complete(simulation, memory_store, "purchase-inventory-cash", **{"inventory-item": "ink-cartridges", "quantity": 2})
        complete(simulation, memory_store, "purchase-equipment-cash", **{"equipment-item": "t-shirt-printer"})
        complete(simulation, memory_store, "produce-tshirts")
        complete(simulation, memory_store, "sell-tshirts-cash", quantity=10)

        record = memory_store.load(LEARNER)
        assert record.state.cash == Decimal("7100")
        assert record.state.inventory == {"blank-tshirts": 10, "ink-cartridges": 1}
        assert record.state.finished_goods == 0
        assert record.state.equipment == frozenset({"t-shirt-printer"})
        assert record.state.current_period == 2
        assert record.state.moves_remaining == 5
        assert len(record.ledger) == 5
        assert [e.action_type for e in record.sorted_ledger()] == [
            "purchase-inventory-cash",
            "purchase-inventory-cash",
            "purchase-equipment-cash",
            "produce-tshirts",
            "sell-tshirts-cash",
        ]

        statements = simulation.generate_financial_statements(LEARNER)
        sheet = statements["balance_sheet"]
        assets = {line["account"]: line["balance"] for line in sheet["assets"]}
        assert assets == {
            "Cash": "7100",
            "Raw Materials Inventory": "75",
            "Equipment (Fixed Asset)": "3000",
            "Finished Goods Inventory": "75",
        }
        assert statements["income_statement"]["net_income"] == "250"
        assert sheet["total_equity"] == "10250"
        assert sheet["is_balanced"] is True
        assert statements["transaction_count"] == 5

    def test_credit_purchase_then_payment(self, simulation, memory_store):
        _, bought = complete(
            simulation, memory_store, "purchase-equipment-credit",
            **{"equipment-item": "heat-press", "vendor": "InkMasters"},
        )
        vendor = bought["ledger_entry"]["variables"]["vendor"]
        assert bought["business_state"]["accounts_payable"] == {vendor: Decimal("1200")}

        complete(simulation, memory_store, "pay-vendor")

        record = memory_store.load(LEARNER)
        assert record.state.accounts_payable == {}
        assert record.state.cash == Decimal("8800")
        statements = simulation.generate_financial_statements(LEARNER)
        assert statements["balance_sheet"]["liabilities"] == []
        assert statements["balance_sheet"]["is_balanced"] is True

    def test_depreciation_and_withdrawal(self, simulation, memory_store):
        complete(simulation, memory_store, "purchase-equipment-cash", **{"equipment-item": "t-shirt-printer"})
        complete(simulation, memory_store, "record-depreciation")
        complete(simulation, memory_store, "owner-withdraw", amount=500)

        statements = simulation.generate_financial_statements(LEARNER)
        sheet = statements["balance_sheet"]
        assert sheet["contra_assets"] == [{"account": "Accumulated Depreciation", "balance": "83"}]
        assert statements["income_statement"]["net_income"] == "-83"
        # 10,000 capital - 500 drawing - 83 depreciation
        assert sheet["total_equity"] == "9417"
        assert sheet["is_balanced"] is True


class TestCancelAndReset:
    def test_cancel(self, simulation, memory_store):
        simulation.start_action(LEARNER, "purchase-inventory-cash", 0)

        assert simulation.cancel_pending(LEARNER) == {"success": True, "cancelled": True}
        assert simulation.cancel_pending(LEARNER) == {"success": True, "cancelled": False}
        record = memory_store.load(LEARNER)
        assert record.pending is None
        assert record.state.cash == Decimal("10000")

    def test_start_after_cancel(self, simulation):
        simulation.start_action(LEARNER, "purchase-inventory-cash", 0)
        simulation.cancel_pending(LEARNER)

        assert simulation.start_action(LEARNER, "purchase-equipment-cash", 0)["success"]

    def test_reset_restores_initial_state(self, simulation, memory_store, initial_state):
        complete(simulation, memory_store, "purchase-inventory-cash", level=0)
        simulation.start_action(LEARNER, "purchase-inventory-cash", 0)

        result = simulation.reset_simulation(LEARNER)

        assert result["business_state"] == initial_state.to_dict()
        record = memory_store.load(LEARNER)
        assert record.state == initial_state
        assert record.pending is None
        assert record.ledger == ()


class TestQueries:
    def test_get_state_creates_learner(self, simulation, memory_store, initial_state):
        result = simulation.get_state(LEARNER)

        assert result["business_state"] == initial_state.to_dict()
        assert result["pending_transaction"] is None
        assert result["ledger"] == []
        assert memory_store.load(LEARNER).version == 1

    def test_get_state_is_idempotent(self, simulation, memory_store):
        simulation.get_state(LEARNER)
        simulation.get_state(LEARNER)

        assert memory_store.load(LEARNER).version == 1

    def test_available_actions_never_writes(self, simulation, memory_store):
        result = simulation.available_actions(LEARNER, 0)

        assert result["success"]
        assert {a["key"] for a in result["actions"] if a["available"]} == {
            "purchase-inventory-cash",
            "purchase-equipment-cash",
        }
        assert memory_store.load(LEARNER) is None

    def test_opening_statements(self, simulation):
        statements = simulation.generate_financial_statements(LEARNER)

        assert statements["balance_sheet"]["assets"] == [{"account": "Cash", "balance": "10000"}]
        assert statements["balance_sheet"]["is_balanced"] is True
        assert statements["as_of_date"] is None


class _LosingStore(InMemoryLearnerStore):
    """Every compare-and-swap loses to a phantom concurrent writer."""

    def compare_and_swap(self, expected_version, record):
        return False


class TestRetryExhaustion:
    @pytest.fixture
    def losing_simulation(self, catalog, clock):
        return SimulationService(_LosingStore(), catalog, clock=clock)

    def test_reports_concurrent_modification(self, losing_simulation, catalog, captured_logs):
        result = losing_simulation.start_action(LEARNER, "purchase-inventory-cash", 0)

        assert result["success"] is False
        assert result["error"] == "CONCURRENT_MODIFICATION"
        conflicts = [r for r in captured_logs() if r["message"] == "learner_record_conflict"]
        assert len(conflicts) == catalog.settings.max_commit_attempts
