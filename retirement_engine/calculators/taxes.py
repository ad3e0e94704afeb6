"""Tax calculation utilities.

This module implements simplified U.S. federal, state and estate tax
calculations.  The defaults embed the 2026 rule set (IRS Revenue Procedure
2025-32, with the TCJA rates made permanent in July 2025) for single and
married-filing-jointly households.  Ordinary income is reduced by the standard
deduction before the progressive brackets apply; long-term capital gains stack
on top of taxable ordinary income; the 3.8 % Net Investment Income Tax applies
above the MAGI threshold; state tax is a flat rate.  Estate tax uses the
federal unified rate schedule above an exemption that can be switched to its
sunset value.

Example
-------

>>> # Federal tax on $60 000 of ordinary income for a single filer
>>> round(compute_federal_tax(60000), 2)
5020.0

>>> # Capital gains sitting entirely inside the 0 % bracket
>>> compute_capital_gains_tax(20000, ordinary_income=30000)
0.0

The underlying brackets can be customised by passing a dictionary matching the
schema in ``data/tax_tables.json``.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Dict, List, Optional

from ..models import TaxBreakdown

TAX_YEAR = 2026

_DEFAULT_TAX_TABLE_PATH = Path(__file__).resolve().parent.parent / "data" / "tax_tables.json"


def _load_tax_tables(path: Optional[Path] = None) -> Dict[str, Dict]:
    """Load tax tables from JSON.  If ``path`` is not provided, return the
    default tables shipped with the package.

    Parameters
    ----------
    path : Path, optional
        Path to a JSON file containing the tax tables.

    Returns
    -------
    dict
        The parsed tax tables.
    """
    if path is None:
        return _default_tax_tables()
    with open(path, "r", encoding="utf-8") as f:
        tables = json.load(f)
    return tables


@lru_cache(maxsize=1)
def _default_tax_tables() -> Dict[str, Dict]:
    with open(_DEFAULT_TAX_TABLE_PATH, "r", encoding="utf-8") as f:
        return json.load(f)


def rule_set(year: int = TAX_YEAR, tax_tables: Optional[Dict[str, Dict]] = None) -> Dict:
    """Return the rules for ``year``, falling back to the latest year on file.

    Simulated years run decades past the newest table; those years reuse the
    most recent rule set.
    """
    tables = tax_tables or _load_tax_tables()
    key = str(year)
    if key not in tables:
        key = max(tables, key=int)
    return tables[key]


def _apply_brackets(amount: float, brackets: List[Dict]) -> float:
    tax = 0.0
    remaining = amount
    for bracket in brackets:
        if remaining <= 0:
            break
        start = bracket["start"]
        end = bracket["end"] if bracket["end"] is not None else float("inf")
        if amount > start:
            taxed = min(remaining, end - start)
            tax += taxed * bracket["rate"]
            remaining -= taxed
        else:
            break
    return tax


def standard_deduction(
    filing_status: str = "single",
    year: int = TAX_YEAR,
    tax_tables: Optional[Dict[str, Dict]] = None,
) -> float:
    return float(rule_set(year, tax_tables)["federal"][filing_status].get("standard_deduction", 0))


def compute_federal_tax(
    income: float,
    filing_status: str = "single",
    year: int = TAX_YEAR,
    tax_tables: Optional[Dict[str, Dict]] = None,
) -> float:
    """Compute federal income tax due on ordinary income.

    The tax is calculated progressively using the brackets defined under the
    chosen year and filing status.  Income is reduced by the standard deduction
    before applying the rates.
    """
    if income <= 0:
        return 0.0
    federal = rule_set(year, tax_tables)["federal"][filing_status]
    taxable_income = max(0.0, income - federal.get("standard_deduction", 0))
    return _apply_brackets(taxable_income, federal["brackets"])


def compute_capital_gains_tax(
    gain: float,
    filing_status: str = "single",
    ordinary_income: float = 0.0,
    year: int = TAX_YEAR,
    tax_tables: Optional[Dict[str, Dict]] = None,
) -> float:
    """Compute long‑term capital gains tax on a given amount.

    Gains stack on top of taxable ordinary income (``ordinary_income`` less the
    standard deduction), so a retiree with a large IRA draw pays 15 % on gains
    that would otherwise fall in the 0 % bracket.
    """
    if gain <= 0:
        return 0.0
    federal = rule_set(year, tax_tables)["federal"][filing_status]
    cg_brackets = federal.get("cap_gains")
    if not cg_brackets:
        return 0.0
    floor = max(0.0, ordinary_income - federal.get("standard_deduction", 0))
    tax = 0.0
    remaining = gain
    position = floor
    for bracket in cg_brackets:
        end = bracket["end"] if bracket["end"] is not None else float("inf")
        room = max(0.0, end - position)
        taxed = min(remaining, room)
        if taxed > 0:
            tax += taxed * bracket["rate"]
            remaining -= taxed
            position += taxed
        if remaining <= 0:
            break
    return tax


def compute_niit(
    investment_income: float,
    magi: float,
    filing_status: str = "single",
    year: int = TAX_YEAR,
    tax_tables: Optional[Dict[str, Dict]] = None,
) -> float:
    """Net Investment Income Tax: 3.8 % of the lesser of investment income and
    MAGI above the filing-status threshold."""
    if investment_income <= 0:
        return 0.0
    niit = rule_set(year, tax_tables)["niit"]
    excess = max(0.0, magi - niit["threshold"][filing_status])
    return min(investment_income, excess) * niit["rate"]


def compute_state_tax(income: float, rate: float) -> float:
    """Flat state income tax."""
    return max(0.0, income) * max(0.0, rate)


def bracket_limit(
    rate: float,
    filing_status: str = "single",
    year: int = TAX_YEAR,
    tax_tables: Optional[Dict[str, Dict]] = None,
) -> float:
    """Top of the ordinary bracket taxed at ``rate``, in taxable income.

    Raises ``KeyError`` when no bracket carries that rate.
    """
    for bracket in rule_set(year, tax_tables)["federal"][filing_status]["brackets"]:
        if abs(bracket["rate"] - rate) < 1e-9:
            return bracket["end"] if bracket["end"] is not None else float("inf")
    raise KeyError(f"no {filing_status} bracket at rate {rate}")


# ---------- Estate ----------
def estate_exemption(
    filing_status: str = "single",
    year: int = TAX_YEAR,
    assume_tax_cuts_extended: bool = True,
    tax_tables: Optional[Dict[str, Dict]] = None,
) -> float:
    """Federal estate exemption for the year of death.

    Married couples get twice the individual amount (portability).  The
    extended exemption is indexed for inflation after the table year; the
    sunset exemption is not.
    """
    estate = rule_set(year, tax_tables)["estate"]
    per_person = estate["exemption"] if assume_tax_cuts_extended else estate["sunset_exemption"]
    if assume_tax_cuts_extended and year > TAX_YEAR:
        per_person *= (1 + estate["exemption_growth"]) ** (year - TAX_YEAR)
    return per_person * (2 if filing_status == "married" else 1)


def compute_estate_tax(
    estate_value: float,
    filing_status: str = "single",
    year: int = TAX_YEAR,
    assume_tax_cuts_extended: bool = True,
    tax_tables: Optional[Dict[str, Dict]] = None,
) -> float:
    """Federal estate tax on ``estate_value``.

    The unified schedule is applied to the whole estate and the tentative tax
    on the exemption is credited back, so nothing is due at or below the
    exemption and every dollar above it is taxed at the marginal rate.
    """
    exemption = estate_exemption(filing_status, year, assume_tax_cuts_extended, tax_tables)
    if estate_value <= exemption:
        return 0.0
    schedule = rule_set(year, tax_tables)["estate"]["schedule"]
    return _apply_brackets(estate_value, schedule) - _apply_brackets(exemption, schedule)


# ---------- Payroll ----------
def compute_employment_taxes(
    earnings: float,
    employment_type: str = "w2",
    year: int = TAX_YEAR,
    tax_tables: Optional[Dict[str, Dict]] = None,
) -> Dict[str, float]:
    """Social Security and Medicare taxes owed on ``earnings``.

    W‑2 employees pay the employee half.  Self-employed earners pay both halves
    on 92.35 % of net earnings and may deduct the employer half
    (``deductible``).  Additional Medicare tax applies above the threshold in
    both cases.
    """
    p = rule_set(year, tax_tables)["payroll"]
    earnings = max(0.0, earnings)
    if employment_type == "self_employed":
        base = earnings * p["self_employment_factor"]
        ss = min(base, p["ss_wage_base"]) * p["ss_rate_self_employed"]
        medicare = base * p["medicare_rate_self_employed"]
        deductible = (ss + medicare) / 2
    elif employment_type in ("w2", "both"):
        base = earnings
        ss = min(base, p["ss_wage_base"]) * p["ss_rate_employee"]
        medicare = base * p["medicare_rate_employee"]
        deductible = 0.0
    else:
        return {"social_security": 0.0, "medicare": 0.0, "additional_medicare": 0.0, "total": 0.0, "deductible": 0.0}
    additional = max(0.0, base - p["additional_medicare_threshold"]) * p["additional_medicare_rate"]
    return {
        "social_security": ss,
        "medicare": medicare,
        "additional_medicare": additional,
        "total": ss + medicare + additional,
        "deductible": deductible,
    }


# ---------- Withdrawals ----------
@dataclass(frozen=True)
class WithdrawalTaxes:
    taxable_draw: float
    pretax_draw: float
    roth_draw: float
    new_basis: float
    breakdown: TaxBreakdown

    @property
    def total_draw(self) -> float:
        return self.taxable_draw + self.pretax_draw + self.roth_draw

    @property
    def tax(self) -> float:
        return self.breakdown.total


def compute_withdrawal_taxes(
    gross: float,
    filing_status: str,
    taxable_balance: float,
    pretax_balance: float,
    roth_balance: float,
    taxable_basis: float,
    state_rate: float,
    rmd: float = 0.0,
    taxable_ss: float = 0.0,
    year: int = TAX_YEAR,
    tax_tables: Optional[Dict[str, Dict]] = None,
) -> WithdrawalTaxes:
    """Split a gross withdrawal across accounts and tax it.

    At least ``rmd`` comes from the pre-tax account; the rest of the draw is
    pro-rata to the remaining balances and never exceeds them.  Pre-tax
    dollars (plus ``taxable_ss``) are ordinary income; the gain share of the
    taxable draw is a long-term capital gain.  Taxes are paid out of
    ``gross``, so the spendable remainder is ``gross - tax``.
    """
    total = taxable_balance + pretax_balance + roth_balance
    if total <= 0 or gross <= 0:
        return WithdrawalTaxes(0.0, 0.0, 0.0, taxable_basis, TaxBreakdown())

    gross = min(gross, total)
    forced = min(max(0.0, rmd), pretax_balance, gross)
    rest = gross - forced
    others = total - forced
    if others > 0:
        want_t = rest * taxable_balance / others
        want_p = forced + rest * (pretax_balance - forced) / others
        want_r = rest * roth_balance / others
    else:
        want_t, want_p, want_r = 0.0, forced, 0.0

    draw_t = min(want_t, taxable_balance)
    draw_p = min(want_p, pretax_balance)
    draw_r = min(want_r, roth_balance)

    gain_ratio = max(0.0, taxable_balance - taxable_basis) / taxable_balance if taxable_balance > 0 else 0.0
    gains = draw_t * gain_ratio
    ordinary_income = draw_p + max(0.0, taxable_ss)

    ordinary = compute_federal_tax(ordinary_income, filing_status, year, tax_tables)
    capital_gains = compute_capital_gains_tax(gains, filing_status, ordinary_income, year, tax_tables)
    niit = compute_niit(gains, ordinary_income + gains, filing_status, year, tax_tables)
    state = compute_state_tax(draw_p + gains, state_rate)

    return WithdrawalTaxes(
        taxable_draw=draw_t,
        pretax_draw=draw_p,
        roth_draw=draw_r,
        new_basis=max(0.0, taxable_basis - (draw_t - gains)),
        breakdown=TaxBreakdown(ordinary=ordinary, capital_gains=capital_gains, niit=niit, state=state),
    )


__all__ = [
    "TAX_YEAR",
    "rule_set",
    "standard_deduction",
    "compute_federal_tax",
    "compute_capital_gains_tax",
    "compute_niit",
    "compute_state_tax",
    "bracket_limit",
    "estate_exemption",
    "compute_estate_tax",
    "compute_employment_taxes",
    "WithdrawalTaxes",
    "compute_withdrawal_taxes",
]
