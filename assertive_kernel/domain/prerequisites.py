"""
Module: assertive_kernel.domain.prerequisites
Responsibility: Decide whether an action may start for a learner level and
    business state, and project the action menu.
Architecture position: Kernel > Domain.  Pure; never mutates the state.

Invariants enforced:
    - Checks run in a fixed order (level, cash, inventory item by item,
      finished goods, equipment, any equipment, payables, receivables) and
      only the first failure is reported.
"""

from __future__ import annotations

from typing import Any

from assertive_kernel.domain.business_state import BusinessState
from assertive_kernel.domain.catalog import ActionDefinition, Catalog
from assertive_kernel.domain.journal import format_amount


def _label(catalog: Catalog, item_key: str) -> str:
    item = catalog.item(item_key)
    return item.label if item else item_key


def check_prerequisites(
    action: ActionDefinition,
    level: int,
    state: BusinessState,
    catalog: Catalog,
) -> str | None:
    """
    Return the learner-facing reason the action is blocked, or None.

    Example:
        produce-tshirts with 5 blank t-shirts on hand returns
        "Need 10 Blank T-Shirts (have 5)".
    """
    prereqs = action.prerequisites

    if level < action.level:
        return f"Requires Level {action.level}"

    if prereqs.min_cash is not None and state.cash < prereqs.min_cash:
        return f"Need at least ${format_amount(prereqs.min_cash)} cash"

    for item_key, needed in prereqs.min_inventory.items():
        have = state.inventory.get(item_key, 0)
        if have < needed:
            return f"Need {needed} {_label(catalog, item_key)} (have {have})"

    if prereqs.min_finished_goods is not None and state.finished_goods < prereqs.min_finished_goods:
        output = _label(catalog, catalog.settings.recipe.output_item)
        return f"Need {prereqs.min_finished_goods} {output} (have {state.finished_goods})"

    for item_key in prereqs.equipment:
        if item_key not in state.equipment:
            return f"Need equipment: {_label(catalog, item_key)}"

    if prereqs.any_equipment and not state.equipment:
        return "Need equipment: any"

    if prereqs.has_payable and not any(v > 0 for v in state.accounts_payable.values()):
        return "No outstanding payables"

    if prereqs.has_receivable and not any(v > 0 for v in state.accounts_receivable.values()):
        return "No outstanding receivables"

    return None


def available_actions(
    catalog: Catalog, level: int, state: BusinessState,
) -> list[dict[str, Any]]:
    """Every action with its availability; locked ones carry a ``reason``."""
    menu: list[dict[str, Any]] = []
    for action in catalog.actions:
        reason = check_prerequisites(action, level, state, catalog)
        entry: dict[str, Any] = {
            "key": action.key,
            "label": action.label,
            "description": action.description,
            "level": action.level,
            "available": reason is None,
        }
        if reason is not None:
            entry["reason"] = reason
        menu.append(entry)
    return menu
