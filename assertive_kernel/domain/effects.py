"""
Module: assertive_kernel.domain.effects
Responsibility: Apply an action's effects to a BusinessState once its
    transaction has been classified correctly.
Architecture position: Kernel > Domain.  Pure functions; every handler
    returns a new BusinessState.

Invariants enforced:
    - Every EffectKind has exactly one handler (checked at import time).
    - Payable and receivable balances that reach zero or below are removed.

Failure modes:
    - RuntimeError at import if a new EffectKind has no handler.
    - KeyError if a required variable (``amount``, ``vendor``...) is missing
      from the transaction; variable strategies guarantee their presence.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import replace
from decimal import Decimal
from typing import Any

from assertive_kernel.domain.business_state import BusinessState
from assertive_kernel.domain.catalog import ActionDefinition, Catalog, EffectKind

EffectHandler = Callable[[BusinessState, Mapping[str, Any], Catalog], BusinessState]


def _amount(variables: Mapping[str, Any]) -> Decimal:
    return Decimal(str(variables["amount"]))


def _adjust_balance(
    balances: Mapping[str, Decimal], party: str, delta: Decimal,
) -> dict[str, Decimal]:
    updated = dict(balances)
    updated[party] = updated.get(party, Decimal("0")) + delta
    return {name: value for name, value in updated.items() if value > 0}


# =========================================================================
# Handlers
# =========================================================================


def _subtract_cash(state: BusinessState, variables: Mapping[str, Any], catalog: Catalog) -> BusinessState:
    return replace(state, cash=state.cash - _amount(variables))


def _add_cash(state: BusinessState, variables: Mapping[str, Any], catalog: Catalog) -> BusinessState:
    return replace(state, cash=state.cash + _amount(variables))


def _add_inventory(state: BusinessState, variables: Mapping[str, Any], catalog: Catalog) -> BusinessState:
    item = str(variables["inventory-item"])
    inventory = dict(state.inventory)
    inventory[item] = inventory.get(item, 0) + int(variables["quantity"])
    return replace(state, inventory=inventory)


def _consume_recipe(state: BusinessState, variables: Mapping[str, Any], catalog: Catalog) -> BusinessState:
    inventory = dict(state.inventory)
    for item, quantity in catalog.settings.recipe.inputs.items():
        inventory[item] = inventory.get(item, 0) - quantity
    return replace(state, inventory={item: held for item, held in inventory.items() if held > 0})


def _add_finished_goods(state: BusinessState, variables: Mapping[str, Any], catalog: Catalog) -> BusinessState:
    produced = int(variables.get("output-count", catalog.settings.recipe.output_quantity))
    return replace(state, finished_goods=state.finished_goods + produced)


def _subtract_finished_goods(state: BusinessState, variables: Mapping[str, Any], catalog: Catalog) -> BusinessState:
    return replace(state, finished_goods=state.finished_goods - int(variables["quantity"]))


def _add_equipment(state: BusinessState, variables: Mapping[str, Any], catalog: Catalog) -> BusinessState:
    return replace(state, equipment=state.equipment | {str(variables["equipment-item"])})


def _add_payable(state: BusinessState, variables: Mapping[str, Any], catalog: Catalog) -> BusinessState:
    payable = _adjust_balance(state.accounts_payable, str(variables["vendor"]), _amount(variables))
    return replace(state, accounts_payable=payable)


def _settle_payable(state: BusinessState, variables: Mapping[str, Any], catalog: Catalog) -> BusinessState:
    payable = _adjust_balance(state.accounts_payable, str(variables["vendor"]), -_amount(variables))
    return replace(state, accounts_payable=payable)


def _add_receivable(state: BusinessState, variables: Mapping[str, Any], catalog: Catalog) -> BusinessState:
    receivable = _adjust_balance(
        state.accounts_receivable, str(variables["customer"]), _amount(variables),
    )
    return replace(state, accounts_receivable=receivable)


def _settle_receivable(state: BusinessState, variables: Mapping[str, Any], catalog: Catalog) -> BusinessState:
    receivable = _adjust_balance(
        state.accounts_receivable, str(variables["customer"]), -_amount(variables),
    )
    return replace(state, accounts_receivable=receivable)


EFFECT_HANDLERS: dict[EffectKind, EffectHandler] = {
    EffectKind.SUBTRACT_CASH: _subtract_cash,
    EffectKind.ADD_CASH: _add_cash,
    EffectKind.ADD_INVENTORY: _add_inventory,
    EffectKind.CONSUME_RECIPE: _consume_recipe,
    EffectKind.ADD_FINISHED_GOODS: _add_finished_goods,
    EffectKind.SUBTRACT_FINISHED_GOODS: _subtract_finished_goods,
    EffectKind.ADD_EQUIPMENT: _add_equipment,
    EffectKind.ADD_PAYABLE: _add_payable,
    EffectKind.SETTLE_PAYABLE: _settle_payable,
    EffectKind.ADD_RECEIVABLE: _add_receivable,
    EffectKind.SETTLE_RECEIVABLE: _settle_receivable,
}

_unhandled = set(EffectKind) - set(EFFECT_HANDLERS)
if _unhandled:
    raise RuntimeError(
        "Effect kinds without a handler: " + ", ".join(sorted(k.value for k in _unhandled))
    )


def apply_effects(
    state: BusinessState,
    action: ActionDefinition,
    variables: Mapping[str, Any],
    catalog: Catalog,
) -> BusinessState:
    """
    Apply ``action.effects`` in declaration order.

    Preconditions:
        ``variables`` are the bound variables of the action's pending
        transaction.

    Postconditions:
        Returns a new BusinessState; ``state`` is unchanged.
    """
    for kind in action.effects:
        state = EFFECT_HANDLERS[kind](state, variables, catalog)
    return state
