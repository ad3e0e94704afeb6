"""Return-path generation.

A return path is a numpy array of annual growth factors (``1 + r``), one per
simulated year.  Four modes are supported:

``"fixed"``
    Every year earns ``expected_return``.
``"historical"``
    Replays S&P 500 total returns in order from ``historical_start_year``,
    wrapping around the data set.
``"random"``
    Bootstraps years at random from the return data using the generator the
    caller seeded, so a seed reproduces the path.
``"truly_random"``
    Same bootstrap; the caller supplies an unseeded generator.

The data set is the 1928–2024 annual series capped at ±15 % plus a copy at
half strength, which keeps bootstrapped paths away from extreme compounding.
With a bond glide path each year's stock return is blended with a bond return
of ``4.5 % + 0.3 × (stock − 9.8 %)`` at the scheduled bond weight.

Example
-------

>>> import numpy as np
>>> from retirement_engine.models import SimulationInputs
>>> path = return_path(SimulationInputs(return_mode="fixed", expected_return=0.05), 3, np.random.default_rng(1))
>>> path.tolist()
[1.05, 1.05, 1.05]
"""

from __future__ import annotations

from typing import Optional

import numpy as np

from ..models import GlidePath, SimulationInputs

SP500_START_YEAR = 1928
SP500_END_YEAR = 2024

BOND_NOMINAL_AVG = 0.045
_BOND_ANCHOR = 0.098
_BOND_BETA = 0.3
_RETURN_CAP = 0.15

# S&P 500 total returns, 1928-2024 (percent).
_SP500_PCT = [
    43.81, -8.30, -25.12, -43.84, -8.64, 49.98, -1.19, 46.74, 31.94, 35.34, -35.34, 29.28, -1.10,
    -12.77, 19.17, 25.06, 19.03, 35.82, -8.43, 5.20, 5.70, 18.30, 30.81, 23.68, 14.37, -1.21, 52.56,
    31.24, 18.15, -0.73, 23.68, 52.40, 31.74,
    26.63, -8.81, 22.61, 16.42, 12.40, -10.06, 23.80, 10.81, -8.24, -14.31, 3.56, 14.22, 18.76,
    -14.31, -25.90, 37.00, 23.83, -7.18, 6.56, 18.44,
    -4.70, 20.42, 22.34, 6.15, 31.24, 18.49, 5.81, 16.54, 31.48, -3.06, 30.23, 7.49, 9.97, 1.33,
    37.20, 22.68, 33.10, 28.34, 20.89, -9.03,
    -11.85, -21.97, 28.36, 10.74, 4.83, 15.61, 5.48, -36.55, 25.94, 14.82, 2.10, 15.89, 32.15,
    13.52, 1.36, 11.77, 21.61, -4.23, 31.21, 18.02,
    28.47, -18.04, 26.06, 25.02,
]

SP500_CAPPED = np.clip(np.array(_SP500_PCT) / 100.0, -_RETURN_CAP, _RETURN_CAP)
RETURN_DATA = np.concatenate([SP500_CAPPED, SP500_CAPPED / 2])


def bond_return(stock_return):
    """Bond return implied by a stock return (works on arrays)."""
    return BOND_NOMINAL_AVG + (stock_return - _BOND_ANCHOR) * _BOND_BETA


def bond_allocation(age: int, glide_path: Optional[GlidePath]) -> float:
    """Bond weight (0–1) at ``age`` under ``glide_path``."""
    if glide_path is None or glide_path.strategy == "aggressive":
        return 0.0
    if glide_path.strategy == "age_based":
        if age < 40:
            return 0.10
        if age <= 60:
            return 0.10 + 0.50 * (age - 40) / 20
        return 0.60
    if age < glide_path.start_age:
        return glide_path.start_pct
    if age >= glide_path.end_age:
        return glide_path.end_pct
    progress = (age - glide_path.start_age) / (glide_path.end_age - glide_path.start_age)
    if glide_path.shape == "accelerated":
        progress = progress ** 0.5
    elif glide_path.shape == "decelerated":
        progress = progress ** 2
    return glide_path.start_pct + (glide_path.end_pct - glide_path.start_pct) * progress


def blended_return(stock_return, bond_ret, bond_weight):
    return (1 - bond_weight) * stock_return + bond_weight * bond_ret


def glide_ages(inputs: SimulationInputs, years: int) -> np.ndarray:
    """Age that drives the glide path in each year of the path.

    The younger spouse's age up to retirement, the older spouse's after it.
    """
    i = np.arange(years)
    return np.where(i <= inputs.years_to_retirement, inputs.younger_age + i, inputs.older_age + i)


def return_path(inputs: SimulationInputs, years: int, rng: np.random.Generator) -> np.ndarray:
    """Growth factors for ``years`` consecutive years of the household's path."""
    if years <= 0:
        return np.empty(0)
    weights = np.array([bond_allocation(int(age), inputs.bond_glide_path) for age in glide_ages(inputs, years)])

    if inputs.return_mode == "fixed":
        stock = np.full(years, inputs.expected_return)
        path = blended_return(stock, BOND_NOMINAL_AVG, weights)
        return 1.0 + path

    if inputs.return_mode == "historical":
        start = inputs.historical_start_year - SP500_START_YEAR
        idx = (start + np.arange(years)) % len(RETURN_DATA)
    elif inputs.return_mode in ("random", "truly_random"):
        idx = rng.integers(0, len(RETURN_DATA), size=years)
    else:
        raise ValueError(f"unknown return mode {inputs.return_mode!r}")

    stock = RETURN_DATA[idx]
    path = 1.0 + blended_return(stock, bond_return(stock), weights)
    if inputs.walk_series == "real":
        path = path / (1.0 + inputs.inflation)
    return path


__all__ = [
    "SP500_START_YEAR",
    "SP500_END_YEAR",
    "BOND_NOMINAL_AVG",
    "RETURN_DATA",
    "bond_return",
    "bond_allocation",
    "blended_return",
    "glide_ages",
    "return_path",
]
