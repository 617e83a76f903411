"""
Module: assertive_kernel.domain.transactions
Responsibility: Turn a simulation action into a concrete transaction: bind
    the action's template, then let the action's variable strategy replace
    the random values with ones consistent with the business state.
Architecture position: Kernel > Domain.  Pure apart from the injected
    ``random.Random``.

Invariants enforced:
    - The transaction date is always the learner's simulation date.
    - Cash purchases never cost more than the cash on hand.
    - Sales never ship more finished goods than are on hand.
    - Settlements always name a counterparty with an open balance.

Failure modes:
    - PrerequisiteNotMetError when no value consistent with the state
      exists (e.g. no equipment is affordable).
"""

from __future__ import annotations

import random
from collections.abc import Callable, Mapping
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from assertive_kernel.domain.business_state import BusinessState
from assertive_kernel.domain.catalog import (
    ActionDefinition,
    Catalog,
    EffectKind,
    ItemCategory,
    VariableStrategy,
)
from assertive_kernel.domain.generator import BoundTransaction, instantiate_template, rebind
from assertive_kernel.domain.journal import format_amount
from assertive_kernel.exceptions import PrerequisiteNotMetError

Strategy = Callable[
    [Catalog, ActionDefinition, BusinessState, dict[str, Any], Mapping[str, Any], random.Random],
    None,
]


def _whole(value: Decimal) -> int:
    return int(value.to_integral_value(rounding=ROUND_HALF_UP))


def _requested_quantity(
    action: ActionDefinition, student_vars: Mapping[str, Any], default: Any,
) -> int:
    raw = student_vars.get("quantity", default)
    try:
        quantity = int(raw)
    except (TypeError, ValueError):
        raise PrerequisiteNotMetError(
            action.key, f"Quantity must be a whole number, got {raw!r}"
        ) from None
    if quantity < 1:
        raise PrerequisiteNotMetError(action.key, "Quantity must be at least 1")
    return quantity


def _pays_cash(action: ActionDefinition) -> bool:
    return EffectKind.SUBTRACT_CASH in action.effects


# =========================================================================
# Strategies
# =========================================================================


def _inventory_purchase(catalog, action, state, variables, student_vars, rng) -> None:
    raw_materials = catalog.item_keys(ItemCategory.RAW_MATERIAL)
    key = student_vars.get("inventory-item")
    if key not in raw_materials:
        key = variables.get("inventory-item")
    if key not in raw_materials:
        key = raw_materials[0]
    item = catalog.items_by_key[key]
    cost = item.purchase_cost or Decimal("0")
    quantity = _requested_quantity(action, student_vars, variables.get("quantity", 1))

    if _pays_cash(action) and cost > 0:
        affordable = int(state.cash // cost)
        if affordable < 1:
            raise PrerequisiteNotMetError(
                action.key, f"Need at least ${format_amount(cost)} cash for {item.label}"
            )
        quantity = min(quantity, affordable)

    variables["inventory-item"] = item.key
    variables["item-name"] = item.label.lower()
    variables["quantity"] = quantity
    variables["amount"] = _whole(cost * quantity)


def _equipment_purchase(catalog, action, state, variables, student_vars, rng) -> None:
    equipment = catalog.items_by_category[ItemCategory.EQUIPMENT]
    requested = student_vars.get("equipment-item")
    pays_cash = _pays_cash(action)

    def affordable(item) -> bool:
        return not pays_cash or (item.purchase_cost or Decimal("0")) <= state.cash

    if requested is not None:
        item = catalog.item(str(requested))
        if item is None or item.category != ItemCategory.EQUIPMENT:
            raise PrerequisiteNotMetError(action.key, f"Unknown equipment: {requested}")
        if not affordable(item):
            raise PrerequisiteNotMetError(
                action.key,
                f"Need at least ${format_amount(item.purchase_cost)} cash for {item.label}",
            )
    else:
        candidates = [item for item in equipment if affordable(item)]
        if not candidates:
            cheapest = min(item.purchase_cost or Decimal("0") for item in equipment)
            raise PrerequisiteNotMetError(
                action.key, f"Need at least ${format_amount(cheapest)} cash"
            )
        item = rng.choice(candidates)

    variables["equipment-item"] = item.key
    variables["item-name"] = item.label.lower()
    variables["amount"] = _whole(item.purchase_cost or Decimal("0"))


def _sale(catalog, action, state, variables, student_vars, rng) -> None:
    output = catalog.items_by_key[catalog.settings.recipe.output_item]
    quantity = min(
        _requested_quantity(action, student_vars, variables.get("quantity", 1)),
        state.finished_goods,
    )
    variables["quantity"] = quantity
    variables["amount"] = _whole((output.sale_price or Decimal("0")) * quantity)


def _settle(
    action: ActionDefinition,
    balances: Mapping[str, Decimal],
    party_variable: str,
    variables: dict[str, Any],
    student_vars: Mapping[str, Any],
    cap: Decimal | None = None,
) -> None:
    open_parties = sorted(name for name, value in balances.items() if value > 0)
    if not open_parties:
        raise PrerequisiteNotMetError(action.key, "No outstanding balance to settle")
    party = student_vars.get(party_variable)
    if party not in open_parties:
        party = open_parties[0]
    amount = balances[party]
    if cap is not None:
        amount = min(amount, cap)
    variables[party_variable] = party
    variables["amount"] = _whole(amount)


def _settle_payable(catalog, action, state, variables, student_vars, rng) -> None:
    _settle(action, state.accounts_payable, "vendor", variables, student_vars, cap=state.cash)


def _settle_receivable(catalog, action, state, variables, student_vars, rng) -> None:
    _settle(action, state.accounts_receivable, "customer", variables, student_vars)


def _production(catalog, action, state, variables, student_vars, rng) -> None:
    recipe = catalog.settings.recipe
    cost = Decimal("0")
    for item_key, quantity in recipe.inputs.items():
        variables[f"{item_key}-count"] = quantity
        cost += (catalog.items_by_key[item_key].purchase_cost or Decimal("0")) * quantity
    variables["output-count"] = recipe.output_quantity
    variables["amount"] = _whole(cost)


def _depreciation(catalog, action, state, variables, student_vars, rng) -> None:
    owned = sorted(state.equipment)
    if not owned:
        raise PrerequisiteNotMetError(action.key, "Need equipment: any")
    total = sum(
        (catalog.items_by_key[key].purchase_cost or Decimal("0") for key in owned if key in catalog.items_by_key),
        Decimal("0"),
    )
    monthly = total / catalog.settings.depreciation_months
    variables["equipment-item"] = owned[0]
    variables["item-name"] = " and ".join(
        catalog.items_by_key[key].label.lower() if key in catalog.items_by_key else key
        for key in owned
    )
    variables["amount"] = max(1, _whole(monthly))


def _owner_withdrawal(catalog, action, state, variables, student_vars, rng) -> None:
    requested = student_vars.get("amount", variables.get("amount", 0))
    try:
        amount = Decimal(str(requested))
    except ArithmeticError:
        raise PrerequisiteNotMetError(action.key, f"Invalid amount: {requested!r}") from None
    if not amount.is_finite():
        raise PrerequisiteNotMetError(action.key, f"Invalid amount: {requested!r}")
    if amount < 1:
        raise PrerequisiteNotMetError(action.key, "Amount must be at least $1")
    variables["amount"] = _whole(min(amount, state.cash))


STRATEGIES: dict[VariableStrategy, Strategy] = {
    VariableStrategy.INVENTORY_PURCHASE: _inventory_purchase,
    VariableStrategy.EQUIPMENT_PURCHASE: _equipment_purchase,
    VariableStrategy.SALE: _sale,
    VariableStrategy.SETTLE_PAYABLE: _settle_payable,
    VariableStrategy.SETTLE_RECEIVABLE: _settle_receivable,
    VariableStrategy.PRODUCTION: _production,
    VariableStrategy.DEPRECIATION: _depreciation,
    VariableStrategy.OWNER_WITHDRAWAL: _owner_withdrawal,
}


def prepare_transaction(
    catalog: Catalog,
    action: ActionDefinition,
    state: BusinessState,
    rng: random.Random,
    student_vars: Mapping[str, Any] | None = None,
) -> BoundTransaction:
    """
    Bind the action's template against the current business state.

    Args:
        catalog: The domain catalog.
        action: Action whose prerequisites have already passed.
        state: Current business state (read only).
        rng: Random source for the template draw.
        student_vars: Optional learner choices, e.g. ``inventory-item``,
            ``quantity``, ``equipment-item``, ``vendor``, ``customer``.

    Raises:
        PrerequisiteNotMetError: if the strategy cannot find values the
            business can afford.
    """
    template = catalog.template(action.template_key)
    variables = dict(instantiate_template(template, rng).variables)
    if action.variable_strategy is not None:
        STRATEGIES[action.variable_strategy](
            catalog, action, state, variables, student_vars or {}, rng,
        )
    variables["date"] = state.simulation_date.isoformat()
    return rebind(template, variables)
