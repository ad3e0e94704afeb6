"""Tests for federal, capital gains, NIIT, state, payroll and estate taxes."""

import math

import pytest

from retirement_engine.calculators import taxes


def test_federal_tax_progressive():
    """$60k single: $43.9k taxable after the deduction, 10% then 12%."""
    assert math.isclose(taxes.compute_federal_tax(60000), 12400 * 0.10 + 31500 * 0.12, rel_tol=1e-9)


def test_federal_tax_zero_below_deduction():
    assert taxes.compute_federal_tax(0) == 0.0
    assert taxes.compute_federal_tax(-5000) == 0.0
    assert taxes.compute_federal_tax(16100) == 0.0
    assert taxes.compute_federal_tax(32200, "married") == 0.0


def test_married_brackets_are_wider():
    assert taxes.compute_federal_tax(150000, "married") < taxes.compute_federal_tax(150000, "single")


def test_capital_gains_inside_zero_bracket():
    assert taxes.compute_capital_gains_tax(20000, ordinary_income=30000) == 0.0


def test_capital_gains_stack_on_ordinary_income():
    """With $100k of ordinary income every dollar of gain is above the 0% bracket."""
    assert math.isclose(taxes.compute_capital_gains_tax(20000, ordinary_income=100000), 3000.0, rel_tol=1e-9)


def test_capital_gains_straddle_zero_bracket():
    # taxable ordinary 39,450 leaves 10,000 of room at 0%
    tax = taxes.compute_capital_gains_tax(20000, ordinary_income=39450 + 16100)
    assert math.isclose(tax, 10000 * 0.15, rel_tol=1e-9)


def test_niit_applies_above_threshold_only():
    assert taxes.compute_niit(50000, magi=150000) == 0.0
    assert math.isclose(taxes.compute_niit(50000, magi=220000), 20000 * 0.038, rel_tol=1e-9)
    assert math.isclose(taxes.compute_niit(5000, magi=400000, filing_status="married"), 5000 * 0.038, rel_tol=1e-9)


def test_state_tax_flat():
    assert math.isclose(taxes.compute_state_tax(100000, 0.05), 5000.0)
    assert taxes.compute_state_tax(-100, 0.05) == 0.0


def test_bracket_limit():
    assert taxes.bracket_limit(0.22) == 105700
    assert taxes.bracket_limit(0.24, "married") == 403550
    assert math.isinf(taxes.bracket_limit(0.37))
    with pytest.raises(KeyError):
        taxes.bracket_limit(0.15)


def test_custom_tax_tables_override_defaults():
    flat = {"2030": {"federal": {"single": {"standard_deduction": 0, "brackets": [{"rate": 0.1, "start": 0, "end": None}]}}}}
    assert math.isclose(taxes.compute_federal_tax(50000, tax_tables=flat), 5000.0)


def test_rule_set_falls_back_to_latest_year():
    assert taxes.rule_set(2075) is taxes.rule_set(2026)


# ---------- Estate ----------
def test_estate_tax_zero_at_or_below_exemption():
    assert taxes.compute_estate_tax(10_000_000) == 0.0
    assert taxes.compute_estate_tax(15_000_000) == 0.0
    assert taxes.compute_estate_tax(29_000_000, "married") == 0.0


def test_estate_tax_top_rate_above_exemption():
    assert math.isclose(taxes.compute_estate_tax(16_000_000), 400000.0, rel_tol=1e-9)


def test_estate_tax_strictly_increasing_above_exemption():
    values = [taxes.compute_estate_tax(v) for v in (15_500_000, 16_000_000, 20_000_000, 50_000_000)]
    assert all(b > a for a, b in zip(values, values[1:]))


def test_estate_exemption_sunset_and_indexing():
    assert taxes.estate_exemption("single", 2026, assume_tax_cuts_extended=False) == 7_000_000
    assert taxes.estate_exemption("married", 2026) == 30_000_000
    assert math.isclose(taxes.estate_exemption("single", 2027), 15_000_000 * 1.026, rel_tol=1e-9)
    # the sunset amount is not indexed
    assert taxes.estate_exemption("single", 2040, assume_tax_cuts_extended=False) == 7_000_000
    assert math.isclose(taxes.compute_estate_tax(8_000_000, assume_tax_cuts_extended=False), 400000.0)


# ---------- Payroll ----------
def test_w2_employment_taxes():
    t = taxes.compute_employment_taxes(100000, "w2")
    assert math.isclose(t["social_security"], 6200.0)
    assert math.isclose(t["medicare"], 1450.0)
    assert t["additional_medicare"] == 0.0
    assert t["deductible"] == 0.0


def test_self_employment_taxes():
    t = taxes.compute_employment_taxes(100000, "self_employed")
    base = 100000 * 0.9235
    assert math.isclose(t["social_security"], base * 0.124)
    assert math.isclose(t["medicare"], base * 0.029)
    assert math.isclose(t["deductible"], t["total"] / 2)


def test_wage_base_and_additional_medicare():
    t = taxes.compute_employment_taxes(300000, "w2")
    assert math.isclose(t["social_security"], 184500 * 0.062)
    assert math.isclose(t["additional_medicare"], 100000 * 0.009)


def test_retired_pays_no_payroll_tax():
    assert taxes.compute_employment_taxes(50000, "retired")["total"] == 0.0


# ---------- Withdrawals ----------
def test_withdrawal_pretax_only_is_ordinary_income():
    w = taxes.compute_withdrawal_taxes(50000, "single", 0, 500000, 0, 0, 0.0)
    assert math.isclose(w.pretax_draw, 50000)
    assert math.isclose(w.breakdown.ordinary, taxes.compute_federal_tax(50000))
    assert w.breakdown.capital_gains == 0.0


def test_withdrawal_roth_only_is_tax_free():
    w = taxes.compute_withdrawal_taxes(40000, "single", 0, 0, 300000, 0, 0.05)
    assert math.isclose(w.roth_draw, 40000)
    assert w.tax == 0.0


def test_withdrawal_pro_rata_conserves_gross():
    w = taxes.compute_withdrawal_taxes(30000, "married", 100000, 200000, 100000, 60000, 0.04)
    assert math.isclose(w.total_draw, 30000)
    assert math.isclose(w.taxable_draw, 7500)
    assert math.isclose(w.pretax_draw, 15000)
    assert math.isclose(w.roth_draw, 7500)
    # 40% of the taxable draw is gain; the rest reduces the basis
    assert math.isclose(w.new_basis, 60000 - 7500 * 0.6)
    assert math.isclose(w.breakdown.state, (15000 + 7500 * 0.4) * 0.04)


def test_withdrawal_rmd_is_a_floor_on_pretax():
    w = taxes.compute_withdrawal_taxes(10000, "single", 100000, 100000, 0, 100000, 0.0, rmd=8000)
    assert w.pretax_draw >= 8000
    assert math.isclose(w.total_draw, 10000)
    assert math.isclose(w.pretax_draw, 8000 + 2000 * 92000 / 192000)


def test_withdrawal_never_exceeds_balances():
    w = taxes.compute_withdrawal_taxes(1_000_000, "single", 10000, 20000, 5000, 10000, 0.0)
    assert math.isclose(w.total_draw, 35000)


def test_withdrawal_breakdown_totals():
    b = taxes.compute_withdrawal_taxes(150000, "single", 200000, 300000, 0, 100000, 0.03).breakdown
    assert math.isclose(b.total, b.ordinary + b.capital_gains + b.niit + b.state)
    assert math.isclose(b.as_dict()["total"], b.total)
