"""Required Minimum Distribution (RMD) calculator.

RMDs are forced withdrawals from pre-tax accounts, computed as the prior
year-end balance divided by the IRS Uniform Lifetime Table distribution period
for the owner's age.  RMDs start at :data:`RMD_START_AGE`
(73, SECURE Act 2.0).

Example
-------

>>> rmd_divisor(73)
26.5
>>> round(compute_rmd(balance=100000, age=73), 2)
3773.58
>>> compute_rmd(balance=100000, age=72)
0.0
"""

from __future__ import annotations

from typing import Dict, Optional

RMD_START_AGE = 73

# IRS Uniform Lifetime Table (2022 update), ages 73-120.
_UNIFORM_LIFETIME: Dict[int, float] = {
    73: 26.5, 74: 25.5, 75: 24.6, 76: 23.7, 77: 22.9, 78: 22.0, 79: 21.1, 80: 20.2,
    81: 19.4, 82: 18.5, 83: 17.7, 84: 16.8, 85: 16.0, 86: 15.2, 87: 14.4, 88: 13.7,
    89: 12.9, 90: 12.2, 91: 11.5, 92: 10.8, 93: 10.1, 94: 9.5, 95: 8.9, 96: 8.4,
    97: 7.8, 98: 7.3, 99: 6.8, 100: 6.4, 101: 6.0, 102: 5.6, 103: 5.2, 104: 4.9,
    105: 4.6, 106: 4.3, 107: 4.1, 108: 3.9, 109: 3.7, 110: 3.5, 111: 3.4, 112: 3.3,
    113: 3.1, 114: 3.0, 115: 2.9, 116: 2.8, 117: 2.7, 118: 2.5, 119: 2.3, 120: 2.0,
}


def rmd_divisor(age: int, start_age: int = RMD_START_AGE) -> Optional[float]:
    """Distribution period for ``age``; ``None`` before RMDs begin.

    Ages past the end of the table reuse its last period.
    """
    if age < start_age:
        return None
    if age > max(_UNIFORM_LIFETIME):
        return _UNIFORM_LIFETIME[max(_UNIFORM_LIFETIME)]
    return _UNIFORM_LIFETIME.get(age, _UNIFORM_LIFETIME[min(_UNIFORM_LIFETIME)])


def compute_rmd(balance: float, age: int, start_age: int = RMD_START_AGE) -> float:
    """Compute the Required Minimum Distribution for a given age and balance.

    Parameters
    ----------
    balance : float
        The pre-tax balance at the end of the prior year.
    age : int
        Age of the account owner in the distribution year.
    start_age : int, optional
        First age with a required distribution.

    Returns
    -------
    float
        The RMD amount, zero before ``start_age`` or for a non‑positive
        balance.
    """
    if balance <= 0:
        return 0.0
    period = rmd_divisor(age, start_age)
    if period is None:
        return 0.0
    return balance / period


__all__ = ["RMD_START_AGE", "rmd_divisor", "compute_rmd"]
