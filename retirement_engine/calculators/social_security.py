"""Social Security benefit estimator.

Benefits are estimated from a person's average annual career earnings.  The
monthly AIME is converted to a Primary Insurance Amount (PIA) with the 2026
bend points, then scaled for the claiming age relative to full retirement age
(FRA):

* Claiming early reduces the benefit by 5/9 of 1 % per month for the first 36
  months and 5/12 of 1 % for each month beyond that.
* Delaying past FRA (up to 70) earns 2/3 of 1 % per month.
* A spouse may instead receive up to 50 % of the other spouse's PIA, reduced
  by 25/36 of 1 % per month claimed early; the larger of the two is paid.

Up to 85 % of benefits count as taxable income once provisional income passes
the filing-status thresholds.

Example
-------

>>> # $60 000 average earnings claimed at FRA
>>> round(social_security_benefit(60000, claim_age=67), 2)
28150.56

>>> # The same record claimed at 62 (60 months early, 30 % reduction)
>>> round(social_security_benefit(60000, claim_age=62), 2)
19705.39
"""

from __future__ import annotations

from typing import Dict, Optional

from .taxes import TAX_YEAR, rule_set

FULL_RETIREMENT_AGE = 67


def _ss_rules(tax_tables: Optional[Dict[str, Dict]] = None) -> Dict:
    return rule_set(TAX_YEAR, tax_tables)["social_security"]


def calc_pia(avg_annual_earnings: float, tax_tables: Optional[Dict[str, Dict]] = None) -> float:
    """Monthly PIA from average annual earnings."""
    rules = _ss_rules(tax_tables)
    bend1, bend2 = rules["bend_points"]
    f1, f2, f3 = rules["pia_factors"]
    aime = max(0.0, avg_annual_earnings) / 12
    if aime <= bend1:
        return f1 * aime
    if aime <= bend2:
        return f1 * bend1 + f2 * (aime - bend1)
    return f1 * bend1 + f2 * (bend2 - bend1) + f3 * (aime - bend2)


def adjust_for_claim_age(pia: float, claim_age: int, fra: int = FULL_RETIREMENT_AGE) -> float:
    """Monthly benefit when claiming at ``claim_age`` (clamped to 62–70)."""
    claim_age = max(62, min(70, claim_age))
    months = (claim_age - fra) * 12
    if months < 0:
        early = -months
        reduction = min(early, 36) * 5 / 900 + max(0, early - 36) * 5 / 1200
        return pia * (1 - reduction)
    return pia * (1 + months * 2 / 300)


def social_security_benefit(
    avg_annual_earnings: float,
    claim_age: int,
    fra: int = FULL_RETIREMENT_AGE,
    tax_tables: Optional[Dict[str, Dict]] = None,
) -> float:
    """Annual benefit for a worker claiming at ``claim_age``."""
    if avg_annual_earnings <= 0:
        return 0.0
    return adjust_for_claim_age(calc_pia(avg_annual_earnings, tax_tables), claim_age, fra) * 12


def spousal_benefit(spouse_pia: float, claim_age: int, fra: int = FULL_RETIREMENT_AGE) -> float:
    """Monthly spousal benefit: half the spouse's PIA, reduced for early claims.

    Spousal benefits earn no delayed credits.
    """
    base = spouse_pia * 0.5
    early = max(0, (fra - max(62, claim_age)) * 12)
    if early <= 0:
        return base
    reduction = min(early, 36) * 25 / 3600 + max(0, early - 36) * 5 / 1200
    return base * (1 - reduction)


def household_benefits(
    earnings1: float,
    claim_age1: int,
    earnings2: float = 0.0,
    claim_age2: int = FULL_RETIREMENT_AGE,
    married: bool = False,
    fra: int = FULL_RETIREMENT_AGE,
    tax_tables: Optional[Dict[str, Dict]] = None,
) -> Dict[str, float]:
    """Annual benefits for each person once claimed.

    For a married couple each person receives the larger of their own
    claim-age-adjusted benefit and the spousal benefit on the other's record.
    Returns ``{"person1": ..., "person2": ...}``.
    """
    own1 = social_security_benefit(earnings1, claim_age1, fra, tax_tables)
    if not married:
        return {"person1": own1, "person2": 0.0}
    own2 = social_security_benefit(earnings2, claim_age2, fra, tax_tables)
    pia1 = calc_pia(earnings1, tax_tables) if earnings1 > 0 else 0.0
    pia2 = calc_pia(earnings2, tax_tables) if earnings2 > 0 else 0.0
    return {
        "person1": max(own1, spousal_benefit(pia2, claim_age1, fra) * 12),
        "person2": max(own2, spousal_benefit(pia1, claim_age2, fra) * 12),
    }


def taxable_social_security(
    benefit: float,
    other_income: float,
    filing_status: str = "single",
    tax_tables: Optional[Dict[str, Dict]] = None,
) -> float:
    """Portion of ``benefit`` included in taxable income.

    Provisional income is ``other_income`` plus half the benefit.  Between the
    two thresholds up to 50 % is taxable; above the upper threshold up to 85 %.
    """
    if benefit <= 0:
        return 0.0
    tier1, tier2 = _ss_rules(tax_tables)["taxation_thresholds"][filing_status]
    provisional = other_income + benefit * 0.5
    if provisional <= tier1:
        return 0.0
    if provisional <= tier2:
        return min(benefit * 0.5, (provisional - tier1) * 0.5)
    return min(benefit * 0.85, (tier2 - tier1) * 0.5 + (provisional - tier2) * 0.85)


__all__ = [
    "FULL_RETIREMENT_AGE",
    "calc_pia",
    "adjust_for_claim_age",
    "social_security_benefit",
    "spousal_benefit",
    "household_benefits",
    "taxable_social_security",
]
