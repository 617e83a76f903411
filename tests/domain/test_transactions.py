"""
Tests for simulation transaction preparation (variable strategies).
"""

from dataclasses import replace
from datetime import date
from decimal import Decimal

import pytest

from assertive_kernel.domain.transactions import prepare_transaction
from assertive_kernel.exceptions import PrerequisiteNotMetError


def prepare(catalog, action_key, state, rng, **student_vars):
    return prepare_transaction(catalog, catalog.action(action_key), state, rng, student_vars)


class TestInventoryPurchase:
    def test_cash_purchase_clamped_to_affordable_quantity(self, catalog, initial_state, rng):
        state = replace(initial_state, cash=Decimal("60"))

        bound = prepare(
            catalog, "purchase-inventory-cash", state, rng,
            **{"inventory-item": "ink-cartridges", "quantity": 5},
        )

        assert bound.variables["quantity"] == 2
        assert bound.variables["amount"] == 50
        assert bound.variables["item-name"] == "ink cartridges"
        assert bound.correct_assertions["provides"]["quantity"] == 50
        assert bound.correct_assertions["receives"]["physical-item"] == "ink-cartridges"

    def test_nothing_affordable(self, catalog, initial_state, rng):
        state = replace(initial_state, cash=Decimal("10"))

        with pytest.raises(PrerequisiteNotMetError) as exc_info:
            prepare(catalog, "purchase-inventory-cash", state, rng, **{"inventory-item": "ink-cartridges"})

        assert exc_info.value.reason == "Need at least $25 cash for Ink Cartridges"

    def test_credit_purchase_is_not_clamped(self, catalog, initial_state, rng):
        state = replace(initial_state, cash=Decimal("0"))

        bound = prepare(
            catalog, "purchase-inventory-credit", state, rng,
            **{"inventory-item": "blank-tshirts", "quantity": 300},
        )

        assert bound.variables["quantity"] == 300
        assert bound.variables["amount"] == 1500
        assert bound.correct_assertions["requires"]["quantity"] == 1500

    def test_unknown_item_falls_back_to_raw_material(self, catalog, initial_state, rng):
        bound = prepare(
            catalog, "purchase-inventory-cash", initial_state, rng,
            **{"inventory-item": "t-shirt-printer", "quantity": 1},
        )

        assert bound.variables["inventory-item"] in ("blank-tshirts", "ink-cartridges")

    def test_invalid_quantity(self, catalog, initial_state, rng):
        with pytest.raises(PrerequisiteNotMetError):
            prepare(catalog, "purchase-inventory-cash", initial_state, rng, quantity="many")


class TestEquipmentPurchase:
    def test_requested_equipment_must_be_affordable(self, catalog, initial_state, rng):
        state = replace(initial_state, cash=Decimal("2000"))

        with pytest.raises(PrerequisiteNotMetError) as exc_info:
            prepare(catalog, "purchase-equipment-cash", state, rng, **{"equipment-item": "t-shirt-printer"})

        assert exc_info.value.reason == "Need at least $3,000 cash for T-Shirt Printer"

    def test_random_choice_limited_to_affordable(self, catalog, initial_state, rng):
        state = replace(initial_state, cash=Decimal("2000"))

        bound = prepare(catalog, "purchase-equipment-cash", state, rng)

        assert bound.variables["equipment-item"] == "heat-press"
        assert bound.variables["amount"] == 1200
        assert "heat press" in bound.narrative

    def test_credit_purchase_ignores_cash(self, catalog, initial_state, rng):
        state = replace(initial_state, cash=Decimal("0"))

        bound = prepare(
            catalog, "purchase-equipment-credit", state, rng, **{"equipment-item": "t-shirt-printer"},
        )

        assert bound.variables["amount"] == 3000


class TestProductionAndSales:
    def test_production_uses_recipe_and_input_cost(self, catalog, initial_state, rng):
        bound = prepare(catalog, "produce-tshirts", initial_state, rng)

        assert bound.variables["blank-tshirts-count"] == 10
        assert bound.variables["ink-cartridges-count"] == 1
        assert bound.variables["output-count"] == 10
        assert bound.variables["amount"] == 75
        assert "uses 10 blank t-shirts and 1 ink cartridges" in bound.narrative

    def test_sale_clamped_to_finished_goods(self, catalog, initial_state, rng):
        state = replace(initial_state, finished_goods=5)

        bound = prepare(catalog, "sell-tshirts-cash", state, rng, quantity=40)

        assert bound.variables["quantity"] == 5
        assert bound.variables["amount"] == 125


class TestSettlements:
    @pytest.fixture
    def owing(self, initial_state):
        return replace(
            initial_state,
            accounts_payable={"TextileDirect": Decimal("1000"), "InkMasters": Decimal("250")},
        )

    def test_first_open_vendor_by_name(self, catalog, owing, rng):
        bound = prepare(catalog, "pay-vendor", owing, rng)

        assert bound.variables["vendor"] == "InkMasters"
        assert bound.variables["amount"] == 250

    def test_named_vendor_with_balance(self, catalog, owing, rng):
        bound = prepare(catalog, "pay-vendor", owing, rng, vendor="TextileDirect")

        assert bound.variables["vendor"] == "TextileDirect"
        assert bound.variables["amount"] == 1000
        assert bound.correct_assertions["fulfills"]["quantity"] == 1000

    def test_payment_capped_at_cash(self, catalog, owing, rng):
        bound = prepare(
            catalog, "pay-vendor", replace(owing, cash=Decimal("600")), rng, vendor="TextileDirect",
        )

        assert bound.variables["amount"] == 600

    def test_collection_without_receivables(self, catalog, initial_state, rng):
        with pytest.raises(PrerequisiteNotMetError):
            prepare(catalog, "collect-receivable", initial_state, rng)


class TestDepreciationAndOwner:
    def test_single_printer(self, catalog, initial_state, rng):
        state = replace(initial_state, equipment=frozenset({"t-shirt-printer"}))

        bound = prepare(catalog, "record-depreciation", state, rng)

        assert bound.variables["amount"] == 83
        assert bound.correct_assertions["consumes"]["physical-item"] == "t-shirt-printer"

    def test_all_owned_equipment(self, catalog, initial_state, rng):
        state = replace(initial_state, equipment=frozenset({"t-shirt-printer", "heat-press"}))

        bound = prepare(catalog, "record-depreciation", state, rng)

        assert bound.variables["amount"] == 117
        assert bound.variables["item-name"] == "heat press and t-shirt printer"

    def test_withdrawal_limited_to_cash(self, catalog, initial_state, rng):
        state = replace(initial_state, cash=Decimal("300"))

        bound = prepare(catalog, "owner-withdraw", state, rng, amount=1000)

        assert bound.variables["amount"] == 300

    @pytest.mark.parametrize("amount", ["NaN", "Infinity", "-Infinity", "lots"])
    def test_withdrawal_rejects_non_finite_amount(self, catalog, initial_state, rng, amount):
        with pytest.raises(PrerequisiteNotMetError) as exc_info:
            prepare(catalog, "owner-withdraw", initial_state, rng, amount=amount)

        assert exc_info.value.reason == f"Invalid amount: {amount!r}"

    @pytest.mark.parametrize("amount", [-500, 0, "0.4"])
    def test_withdrawal_rejects_amount_below_one_dollar(self, catalog, initial_state, rng, amount):
        with pytest.raises(PrerequisiteNotMetError) as exc_info:
            prepare(catalog, "owner-withdraw", initial_state, rng, amount=amount)

        assert exc_info.value.reason == "Amount must be at least $1"


class TestTransactionDate:
    def test_date_is_simulation_date(self, catalog, initial_state, rng):
        state = replace(initial_state, simulation_date=date(2026, 3, 17))

        bound = prepare(catalog, "owner-invest", state, rng)

        assert bound.variables["date"] == "2026-03-17"
        assert bound.narrative.startswith("On March 17, 2026,")
