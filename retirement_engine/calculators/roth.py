# calculators/roth.py
from typing import Dict, List, Tuple

from ..errors import ValidationError
from ..models import LIFE_EXPECTANCY, RothConversion, RothConversionResult
from . import taxes as tax_calc
from .rmd import RMD_START_AGE, compute_rmd

MIN_CONVERSION = 5000.0


def apply_conversion(pre_tax_balance: float, roth_balance: float, amount: float, tax_rate: float):
    """Apply a Roth conversion to account balances.

    The tax is paid from a taxable account, so the full amount reaches the Roth.

    Parameters
    ----------
    pre_tax_balance : float
        Current balance of the pre‑tax account.
    roth_balance : float
        Current balance of the Roth account.
    amount : float
        Gross amount to convert from pre‑tax to Roth.
    tax_rate : float
        Effective tax rate applied to the converted amount.

    Returns
    -------
    tuple
        ``(balances, tax_due)`` where ``balances`` is a mapping containing the
        updated ``pre_tax`` and ``roth`` balances.
    """
    amount = max(0.0, min(amount, pre_tax_balance))
    tax_due = amount * max(0.0, tax_rate)
    pre_tax_balance -= amount
    roth_balance += amount
    return {"pre_tax": pre_tax_balance, "roth": roth_balance}, tax_due


def bracket_fill_conversion(
    pre_tax_balance: float,
    taxable_balance: float,
    ordinary_income: float,
    target_rate: float,
    filing_status: str = "single",
) -> Tuple[float, float]:
    """Conversion that fills ordinary income up to the top of ``target_rate``.

    The tax is paid from the taxable account, so the conversion shrinks when
    that account cannot cover it.  Returns ``(amount, tax)``.
    """
    if pre_tax_balance <= 0 or taxable_balance <= 0:
        return 0.0, 0.0
    ceiling = tax_calc.bracket_limit(target_rate, filing_status) + tax_calc.standard_deduction(filing_status)
    headroom = max(0.0, ceiling - ordinary_income)
    amount = min(headroom, pre_tax_balance)
    if amount <= 0:
        return 0.0, 0.0
    base_tax = tax_calc.compute_federal_tax(ordinary_income, filing_status)
    tax = tax_calc.compute_federal_tax(ordinary_income + amount, filing_status) - base_tax
    if tax > taxable_balance:
        amount *= taxable_balance / tax
        tax = tax_calc.compute_federal_tax(ordinary_income + amount, filing_status) - base_tax
    return amount, tax


def _rmd_schedule(balance: float, other_income: float, growth_rate: float, filing_status: str) -> Tuple[List[float], float]:
    rmds: List[float] = []
    tax = 0.0
    for age in range(RMD_START_AGE, LIFE_EXPECTANCY + 1):
        rmd = compute_rmd(balance, age)
        rmds.append(rmd)
        tax += tax_calc.compute_federal_tax(rmd + other_income, filing_status) - tax_calc.compute_federal_tax(
            other_income, filing_status
        )
        balance = (balance - rmd) * (1 + growth_rate)
    return rmds, tax


def optimize_roth_conversions(
    retirement_age: int,
    pretax_balance: float,
    marital: str = "single",
    ss_income: float = 0.0,
    annual_withdrawal: float = 0.0,
    target_bracket: float = 0.24,
    growth_rate: float = 0.07,
) -> RothConversionResult:
    """Recommend annual pre‑tax → Roth conversions between retirement and RMDs.

    Each year from ``retirement_age`` to the year before RMDs start, the
    conversion fills taxable income (Social Security plus the withdrawal, less
    the standard deduction) up to the top of the ``target_bracket`` rate.
    Conversions under $5,000 are skipped.  Lifetime tax is the extra federal
    tax from conversions plus the extra tax from RMDs through age 95; the
    baseline converts nothing and grows the same balance to RMD age.
    """
    if pretax_balance <= 0:
        return RothConversionResult(has_recommendation=False, reason="No pre-tax balance to convert")
    if retirement_age >= RMD_START_AGE:
        return RothConversionResult(has_recommendation=False, reason="Already at or past RMD age")

    status = "married" if marital == "married" else "single"
    try:
        limit = tax_calc.bracket_limit(target_bracket, status)
    except KeyError:
        raise ValidationError(
            "target_bracket", f"Target bracket must be a federal bracket rate. You entered {target_bracket:.1%}."
        ) from None
    deduction = tax_calc.standard_deduction(status)
    base_income = ss_income + annual_withdrawal
    base_tax = tax_calc.compute_federal_tax(base_income, status)

    baseline_pretax = pretax_balance * (1 + growth_rate) ** (RMD_START_AGE - retirement_age)
    baseline_rmds, baseline_tax = _rmd_schedule(baseline_pretax, ss_income, growth_rate, status)

    balance = pretax_balance
    conversion_tax = 0.0
    conversions: List[RothConversion] = []
    for age in range(retirement_age, RMD_START_AGE):
        room = max(0.0, limit - max(0.0, base_income - deduction))
        amount = min(room, balance)
        if amount > MIN_CONVERSION:
            tax = tax_calc.compute_federal_tax(base_income + amount, status) - base_tax
            balance -= amount
            conversion_tax += tax
            conversions.append(RothConversion(age=age, amount=amount, tax=tax, pretax_balance_after=balance))
        balance *= 1 + growth_rate

    optimized_rmds, optimized_rmd_tax = _rmd_schedule(balance, ss_income, growth_rate, status)
    optimized_tax = conversion_tax + optimized_rmd_tax

    total_converted = sum(c.amount for c in conversions)
    baseline_total = sum(baseline_rmds)
    optimized_total = sum(optimized_rmds)
    baseline_rate = baseline_tax / baseline_total if baseline_total > 0 else 0.0
    optimized_base = optimized_total + total_converted
    optimized_rate = optimized_tax / optimized_base if optimized_base > 0 else 0.0
    savings = baseline_tax - optimized_tax

    return RothConversionResult(
        has_recommendation=bool(conversions) and savings > 0,
        reason="" if conversions else "No room left in the target bracket",
        conversions=tuple(conversions),
        conversion_window=(retirement_age, RMD_START_AGE - 1),
        total_converted=total_converted,
        annual_conversion=total_converted / len(conversions) if conversions else 0.0,
        lifetime_tax_savings=savings,
        rmd_reduction=(baseline_total - optimized_total) / baseline_total if baseline_total > 0 else 0.0,
        effective_rate_improvement=baseline_rate - optimized_rate,
        baseline_rmds=tuple(baseline_rmds[:10]),
        optimized_rmds=tuple(optimized_rmds[:10]),
        target_bracket_limit=limit,
    )


__all__ = ["apply_conversion", "bracket_fill_conversion", "optimize_roth_conversions"]
