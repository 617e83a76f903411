"""
Tests for template binding and practice-problem generation.

Tests cover:
- Shared-index variable binding
- Narrative rendering (dates, amounts, unknown tokens)
- Recursive variable-reference resolution
- Forward, reverse and construct problem shapes
- Every template's resolved assertions classify as its own rule
"""

import random

import pytest

from assertive_kernel.domain.classification import classify
from assertive_kernel.domain.generator import (
    ProblemMode,
    bind_variables,
    format_long_date,
    generate_problem,
    instantiate_template,
    render_narrative,
    resolve_references,
)
from assertive_kernel.exceptions import NoTemplatesAvailableError


def _string_leaves(value):
    if isinstance(value, str):
        yield value
    elif isinstance(value, dict):
        for nested in value.values():
            yield from _string_leaves(nested)
    elif isinstance(value, (list, tuple)):
        for nested in value:
            yield from _string_leaves(nested)


class TestBindVariables:
    def test_equal_length_arrays_share_an_index(self):
        variables = {
            "item": ("a", "b", "c", "d"),
            "amount": (1, 2, 3, 4),
            "vendor": ("x", "y"),
        }
        for seed in range(50):
            bound = bind_variables(variables, random.Random(seed))
            assert variables["item"].index(bound["item"]) == variables["amount"].index(bound["amount"])
            assert bound["vendor"] in ("x", "y")

    def test_empty_arrays_are_skipped(self):
        bound = bind_variables({"a": (), "b": (7,)}, random.Random(0))

        assert bound == {"b": 7}

    def test_inventory_template_keeps_item_and_price_paired(self, catalog):
        template = catalog.template("cash-inventory-purchase")
        pairs = set(zip(template.variables["inventory-item"], template.variables["amount"]))
        for seed in range(30):
            bound = instantiate_template(template, random.Random(seed))
            assert (bound.variables["inventory-item"], bound.variables["amount"]) in pairs


class TestRendering:
    def test_long_date(self):
        assert format_long_date("2026-01-05") == "January 5, 2026"

    def test_narrative_formats_dates_and_amounts(self):
        text = render_narrative(
            "On {date}, SP pays ${amount} to {vendor}.",
            {"date": "2026-03-16", "amount": 1250, "vendor": "InkMasters"},
        )

        assert text == "On March 16, 2026, SP pays $1,250 to InkMasters."

    def test_unknown_token_left_in_place(self):
        assert render_narrative("Pay {who}", {}) == "Pay {who}"

    def test_references_resolve_inside_nested_maps(self):
        resolved = resolve_references(
            {"consumes": {"inputs": {"blank-tshirts": "$count"}}, "provides": {"unit": "monetary-unit"}},
            {"count": 10},
        )

        assert resolved["consumes"]["inputs"]["blank-tshirts"] == 10
        assert resolved["provides"]["unit"] == "monetary-unit"

    def test_unbound_reference_is_kept(self):
        assert resolve_references("$missing", {}) == "$missing"


class TestGenerateProblem:
    def test_forward_problem_shape(self, catalog, rng):
        problem = generate_problem(catalog, 0, ProblemMode.FORWARD, rng=rng)
        data = problem.to_dict()

        assert data["problem_type"] == "forward"
        assert catalog.template(data["template"]).level == 0
        assert "journal_entry" not in data
        assert "correct_journal_entry" not in data
        assert data["show_assertions"] is False
        assert data["correct_assertions"] == dict(problem.correct_assertions)
        assert data["correct_assertions"]

    def test_reverse_problem_carries_journal_entry_and_context(self, catalog, rng):
        problem = generate_problem(catalog, 0, "reverse", rng=rng)
        template = catalog.template(problem.template_key)

        assert problem.journal_entry
        assert problem.context["counterparty"] == problem.variables[template.counterparty_variable]
        assert problem.classification_description == catalog.rule(
            problem.correct_classification
        ).description

    def test_construct_problem_lists_level_accounts(self, catalog, rng):
        problem = generate_problem(catalog, 0, "construct", rng=rng)

        assert problem.available_accounts == (
            "Cash",
            "Raw Materials Inventory",
            "Equipment (Fixed Asset)",
            "Sales Revenue",
        )
        assert problem.correct_amount == problem.variables["amount"]
        leg = problem.correct_journal_entry[0]
        assert leg["credit"].startswith("Cash $") or leg["debit"].startswith("Cash $")

    def test_no_templates_below_level_zero(self, catalog, rng):
        with pytest.raises(NoTemplatesAvailableError) as exc_info:
            generate_problem(catalog, -1, rng=rng)

        assert exc_info.value.code == "NO_TEMPLATES_AVAILABLE"

    def test_unknown_mode_rejected(self, catalog, rng):
        with pytest.raises(ValueError):
            generate_problem(catalog, 0, "sideways", rng=rng)

    def test_higher_levels_unlock_more_templates(self, catalog):
        seen = {
            generate_problem(catalog, 4, rng=random.Random(seed)).template_key
            for seed in range(400)
        }

        assert "bank-loan" in seen
        assert "cash-sale" in seen


class TestTemplateConsistency:
    """Every template must be solvable with its own correct assertions."""

    def test_narratives_have_no_unresolved_tokens(self, catalog, rng):
        for template in catalog.templates:
            bound = instantiate_template(template, rng)
            assert "{" not in bound.narrative, template.key

    def test_assertions_have_no_unresolved_references(self, catalog, rng):
        for template in catalog.templates:
            bound = instantiate_template(template, rng)
            leaves = list(_string_leaves(dict(bound.correct_assertions)))
            assert not [leaf for leaf in leaves if leaf.startswith("$")], template.key

    def test_correct_assertions_classify_as_template_rule(self, catalog, rng):
        for template in catalog.templates:
            bound = instantiate_template(template, rng)
            result = classify(
                bound.correct_assertions, template.correct_classification, catalog=catalog,
            )
            assert result.is_correct, template.key
            assert result.exact_match == template.correct_classification
