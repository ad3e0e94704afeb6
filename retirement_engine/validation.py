"""Input validation run before any simulation starts.

:func:`validate_inputs` raises :class:`~retirement_engine.errors.ValidationError`
for the first offending field it finds; the error's ``field`` is the
:class:`~retirement_engine.models.SimulationInputs` attribute name and its
message says what was entered and what is allowed.
"""

from __future__ import annotations

import math
import numbers

from .calculators.returns import SP500_END_YEAR, SP500_START_YEAR
from .calculators.taxes import rule_set
from .errors import ValidationError
from .models import SimulationInputs

MAX_AGE = 120
MAX_CONTRIBUTION = 1_000_000
RETURN_MODES = ("fixed", "historical", "random", "truly_random")
EMPLOYMENT_TYPES = ("w2", "self_employed", "both", "retired", "other")


def _number(field: str, value, label: str) -> float:
    if isinstance(value, bool) or not isinstance(value, numbers.Real) or not math.isfinite(value):
        raise ValidationError(field, f"{label} must be a finite number. You entered {value!r}.")
    return float(value)


def _range(field: str, value, label: str, low: float, high: float, hint: str = "") -> float:
    v = _number(field, value, label)
    if v < low or v > high:
        msg = f"{label} must be between {low:g} and {high:g}. You entered {v:g}."
        raise ValidationError(field, f"{msg} {hint}".strip())
    return v


def validate_age(field: str, value, label: str) -> int:
    if isinstance(value, bool) or not isinstance(value, numbers.Integral):
        raise ValidationError(field, f"{label} must be a whole number of years. You entered {value!r}.")
    if value < 0:
        raise ValidationError(field, f"{label} cannot be negative. You entered {value}.")
    if value > MAX_AGE:
        raise ValidationError(field, f"{label} of {value} is above the supported maximum of {MAX_AGE}.")
    return int(value)


def validate_balance(field: str, value, label: str) -> float:
    v = _number(field, value, label)
    if v < 0:
        raise ValidationError(field, f"{label} cannot be negative. You entered {v:,.0f}.")
    return v


def validate_contribution(field: str, value, label: str) -> float:
    v = validate_balance(field, value, label)
    if v > MAX_CONTRIBUTION:
        raise ValidationError(field, f"{label} of {v:,.0f} seems unusually high. Please verify this amount is correct.")
    return v


def validate_inputs(inputs: SimulationInputs) -> SimulationInputs:
    """Check ``inputs`` and return them unchanged when valid."""
    if inputs.marital not in ("single", "married"):
        raise ValidationError("marital", f"Marital status must be 'single' or 'married'. You entered {inputs.marital!r}.")
    validate_age("age1", inputs.age1, "Your age")
    if inputs.is_married:
        validate_age("age2", inputs.age2, "Spouse age")
    validate_age("retirement_age", inputs.retirement_age, "Retirement age")
    if inputs.retirement_age < inputs.younger_age:
        raise ValidationError(
            "retirement_age",
            f"Retirement age ({inputs.retirement_age}) cannot be earlier than the current age "
            f"of the younger spouse ({inputs.younger_age}).",
        )

    for field, label in (("employment_type1", "Employment type"), ("employment_type2", "Spouse employment type")):
        if getattr(inputs, field) not in EMPLOYMENT_TYPES:
            raise ValidationError(field, f"{label} must be one of {', '.join(EMPLOYMENT_TYPES)}.")

    validate_balance("primary_income", inputs.primary_income, "Primary income")
    validate_balance("spouse_income", inputs.spouse_income, "Spouse income")
    validate_balance("taxable_balance", inputs.taxable_balance, "Taxable balance")
    validate_balance("pretax_balance", inputs.pretax_balance, "Pre-tax balance")
    validate_balance("roth_balance", inputs.roth_balance, "Roth balance")
    validate_balance("emergency_fund", inputs.emergency_fund, "Emergency fund")
    if inputs.taxable_basis is not None:
        validate_balance("taxable_basis", inputs.taxable_basis, "Taxable cost basis")

    people = (("contributions1", inputs.contributions1),)
    if inputs.is_married:
        people += (("contributions2", inputs.contributions2),)
    contributed = 0.0
    for field, c in people:
        for account, label in (("taxable", "Taxable"), ("pretax", "Pre-tax"), ("roth", "Roth")):
            contributed += validate_contribution(f"{field}.{account}", getattr(c, account), f"{label} contributions")
        _number(f"{field}.match", c.match, "Employer match")
        contributed += max(0.0, c.match)
    if inputs.starting_balance + inputs.emergency_fund <= 0 and contributed <= 0:
        raise ValidationError(
            "pretax_balance",
            "You must have either a starting balance or annual contributions to run a calculation.",
        )

    _range("expected_return", inputs.expected_return, "Return rate", -0.5, 0.5,
           "Historical S&P 500 average is about 10%.")
    _range("inflation", inputs.inflation, "Inflation rate", 0.0, 0.5,
           "For extreme scenarios use the inflation shock instead.")
    _range("withdrawal_rate", inputs.withdrawal_rate, "Withdrawal rate", 0.0, 0.20,
           "Rates above 20% are extremely high; most plans use 3-5%.")
    _range("state_tax_rate", inputs.state_tax_rate, "State tax rate", 0.0, 0.20)
    _range("income_growth", inputs.income_growth, "Income growth", -0.5, 0.5)
    _range("contribution_increase_rate", inputs.contribution_increase_rate, "Contribution increase", 0.0, 0.5)
    _range("dividend_yield", inputs.dividend_yield, "Dividend yield", 0.0, 0.2)
    _range("medical_inflation", inputs.medical_inflation, "Medical inflation", 0.0, 0.5)
    _range("ltc_probability", inputs.ltc_probability, "Long-term care probability", 0.0, 1.0)
    validate_balance("ltc_annual_cost", inputs.ltc_annual_cost, "Long-term care cost")
    validate_balance("medicare_premium", inputs.medicare_premium, "Medicare premium")
    _range("inflation_shock_rate", inputs.inflation_shock_rate, "Inflation shock rate", 0.0, 0.5)
    if inputs.ltc_duration < 0 or inputs.inflation_shock_duration < 0:
        field = "ltc_duration" if inputs.ltc_duration < 0 else "inflation_shock_duration"
        raise ValidationError(field, "Durations cannot be negative.")

    if inputs.return_mode not in RETURN_MODES:
        raise ValidationError("return_mode", f"Return mode must be one of {', '.join(RETURN_MODES)}.")
    if inputs.walk_series not in ("nominal", "real"):
        raise ValidationError("walk_series", "Walk series must be 'nominal' or 'real'.")
    if inputs.return_mode == "historical":
        _range("historical_start_year", inputs.historical_start_year, "Historical start year",
               SP500_START_YEAR, SP500_END_YEAR)

    if inputs.include_ss:
        validate_balance("ss_income1", inputs.ss_income1, "Social Security earnings")
        validate_age("ss_claim_age1", inputs.ss_claim_age1, "Social Security claim age")
        if inputs.is_married:
            validate_balance("ss_income2", inputs.ss_income2, "Spouse Social Security earnings")
            validate_age("ss_claim_age2", inputs.ss_claim_age2, "Spouse Social Security claim age")

    gp = inputs.bond_glide_path
    if gp is not None:
        if gp.strategy not in ("aggressive", "age_based", "custom"):
            raise ValidationError("bond_glide_path.strategy", f"Unknown glide path strategy {gp.strategy!r}.")
        if gp.shape not in ("linear", "accelerated", "decelerated"):
            raise ValidationError("bond_glide_path.shape", f"Unknown glide path shape {gp.shape!r}.")
        _range("bond_glide_path.start_pct", gp.start_pct, "Starting bond allocation", 0.0, 1.0)
        _range("bond_glide_path.end_pct", gp.end_pct, "Ending bond allocation", 0.0, 1.0)
        if gp.strategy == "custom" and gp.end_age <= gp.start_age:
            raise ValidationError("bond_glide_path.end_age", "Glide path end age must be after its start age.")

    if inputs.roth_conversion is not None:
        validate_target_bracket(inputs.roth_conversion.target_bracket_rate, inputs.filing_status,
                                "roth_conversion.target_bracket_rate")
    return inputs


def validate_target_bracket(rate, filing_status: str = "single", field: str = "target_bracket") -> float:
    """Check that ``rate`` is one of the federal ordinary bracket rates."""
    rate = _range(field, rate, "Target bracket", 0.10, 0.37)
    brackets = rule_set()["federal"][filing_status]["brackets"]
    if not any(abs(b["rate"] - rate) < 1e-9 for b in brackets):
        rates = ", ".join(f"{b['rate']:.0%}" for b in brackets)
        raise ValidationError(field, f"Target bracket must be one of {rates}. You entered {rate:.1%}.")
    return rate


__all__ = [
    "validate_inputs",
    "validate_target_bracket",
    "validate_age",
    "validate_balance",
    "validate_contribution",
]
