"""Healthcare cost model: Medicare premiums with IRMAA and long-term care.

Everything here is a pure function.  Long-term-care onset is random per
simulated path, but the randomness stays with the caller: :func:`ltc_onset_age`
takes the two uniform draws and maps them deterministically to an onset age.

Example
-------

>>> irmaa_monthly_surcharge(120000, "single")
81.2
>>> round(medicare_annual_cost(90000, "single", base_premium=202.90), 2)
2434.8
>>> ltc_onset_age(0.9, 0.5, probability=0.5, age_range=(75, 85)) is None
True
"""

from __future__ import annotations

from typing import Dict, Optional, Tuple

from .taxes import TAX_YEAR, rule_set

MEDICARE_ELIGIBILITY_AGE = 65


def irmaa_monthly_surcharge(
    magi: float,
    filing_status: str = "single",
    tax_tables: Optional[Dict[str, Dict]] = None,
) -> float:
    """Monthly Part B surcharge for the IRMAA tier containing ``magi``."""
    tiers = rule_set(TAX_YEAR, tax_tables)["irmaa"][filing_status]
    for tier in tiers:
        if tier["threshold"] is None or magi <= tier["threshold"]:
            return tier["surcharge"]
    return tiers[-1]["surcharge"]


def medicare_annual_cost(
    magi: float,
    filing_status: str = "single",
    base_premium: Optional[float] = None,
    inflation_factor: float = 1.0,
    covered: int = 1,
    tax_tables: Optional[Dict[str, Dict]] = None,
) -> float:
    """Annual Part B cost for ``covered`` people.

    ``magi`` should be the prior year's income; the surcharge tier is looked
    up against it.  ``inflation_factor`` is the cumulative medical inflation
    since the rule-set year.
    """
    if covered <= 0:
        return 0.0
    if base_premium is None:
        base_premium = rule_set(TAX_YEAR, tax_tables)["irmaa"]["base_premium"]
    monthly = base_premium + irmaa_monthly_surcharge(magi, filing_status, tax_tables)
    return monthly * 12 * inflation_factor * covered


def ltc_onset_age(
    draw: float,
    age_draw: float,
    probability: float,
    age_range: Tuple[int, int],
) -> Optional[int]:
    """Age at which long-term care begins, or ``None`` if it never does.

    Care is needed when ``draw`` falls under ``probability``; ``age_draw``
    (uniform on [0, 1)) then picks the onset age within ``age_range``
    inclusive.
    """
    if probability <= 0 or draw >= probability:
        return None
    start, end = age_range
    if end < start:
        start, end = end, start
    return start + min(end - start, int(age_draw * (end - start + 1)))


def ltc_annual_cost(
    age: int,
    onset_age: Optional[int],
    duration: int,
    annual_cost: float,
    inflation_factor: float = 1.0,
) -> float:
    """Cost of care in a year: ``annual_cost`` for ``duration`` years from onset."""
    if onset_age is None or duration <= 0:
        return 0.0
    if onset_age <= age < onset_age + duration:
        return annual_cost * inflation_factor
    return 0.0


__all__ = [
    "MEDICARE_ELIGIBILITY_AGE",
    "irmaa_monthly_surcharge",
    "medicare_annual_cost",
    "ltc_onset_age",
    "ltc_annual_cost",
]
