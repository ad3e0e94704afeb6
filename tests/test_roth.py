"""Tests for the Roth conversion mechanics and optimizer."""

import math

import pytest

from retirement_engine.calculators import roth, taxes
from retirement_engine.errors import ValidationError


def test_apply_conversion_taxable():
    """Converting from a pre‑tax account increases the Roth by the full amount when taxes are paid from taxable funds."""
    balances, tax_due = roth.apply_conversion(pre_tax_balance=100000, roth_balance=0, amount=10000, tax_rate=0.22)
    assert math.isclose(balances["pre_tax"], 90000.0, rel_tol=1e-6)
    assert math.isclose(balances["roth"], 10000.0, rel_tol=1e-6)
    assert math.isclose(tax_due, 2200.0, rel_tol=1e-6)


def test_apply_conversion_capped_at_balance():
    balances, _ = roth.apply_conversion(pre_tax_balance=5000, roth_balance=0, amount=10000, tax_rate=0.1)
    assert balances["pre_tax"] == 0.0
    assert balances["roth"] == 5000.0


def test_bracket_fill_conversion_fills_to_bracket_top():
    amount, tax = roth.bracket_fill_conversion(500000, 100000, 0.0, 0.22)
    assert math.isclose(amount, 105700 + 16100)
    assert math.isclose(tax, taxes.compute_federal_tax(amount))


def test_bracket_fill_conversion_shrinks_when_tax_unaffordable():
    amount, tax = roth.bracket_fill_conversion(500000, 1000, 0.0, 0.22)
    assert 0 < amount < 105700 + 16100
    assert tax <= 1000 + 1e-9


def test_bracket_fill_conversion_needs_taxable_money():
    assert roth.bracket_fill_conversion(500000, 0, 0.0, 0.22) == (0.0, 0.0)


def test_optimizer_without_pretax_balance():
    result = roth.optimize_roth_conversions(retirement_age=65, pretax_balance=0)
    assert not result.has_recommendation
    assert result.reason == "No pre-tax balance to convert"


def test_optimizer_at_rmd_age():
    result = roth.optimize_roth_conversions(retirement_age=73, pretax_balance=1_000_000)
    assert not result.has_recommendation
    assert result.reason == "Already at or past RMD age"


def test_optimizer_converts_before_rmds():
    result = roth.optimize_roth_conversions(
        retirement_age=65,
        pretax_balance=1_000_000,
        ss_income=30000,
        annual_withdrawal=20000,
        target_bracket=0.24,
    )
    assert result.conversion_window == (65, 72)
    assert result.target_bracket_limit == 201775
    assert result.conversions
    assert all(65 <= c.age <= 72 and c.amount > roth.MIN_CONVERSION for c in result.conversions)
    first = result.conversions[0]
    assert math.isclose(first.amount, 201775 - (50000 - 16100))
    assert math.isclose(result.annual_conversion, result.total_converted / len(result.conversions))
    assert len(result.baseline_rmds) == len(result.optimized_rmds) == 10
    assert result.optimized_rmds[0] < result.baseline_rmds[0]
    assert 0 < result.rmd_reduction <= 1


def test_optimizer_without_bracket_room():
    result = roth.optimize_roth_conversions(
        retirement_age=65,
        pretax_balance=500000,
        annual_withdrawal=100000,
        target_bracket=0.10,
    )
    assert not result.has_recommendation
    assert result.reason == "No room left in the target bracket"


def test_optimizer_rejects_rate_that_is_not_a_bracket():
    with pytest.raises(ValidationError) as info:
        roth.optimize_roth_conversions(retirement_age=65, pretax_balance=500000, target_bracket=0.25)
    assert info.value.field == "target_bracket"
