"""Single-path simulation and the Monte Carlo batch built on it.

:func:`run_single_simulation` walks one household from today to the end of the
life-expectancy horizon (the older spouse reaching 95): contributions and
growth until the younger spouse retires, then inflation-adjusted withdrawals
with taxes, Social Security, Medicare/IRMAA, long-term care, RMDs and optional
Roth conversions.  Running out of money is recorded on the result
(``ruined``/``survival_years``); it is never raised.

:func:`run_batch` runs many such paths with seeds derived from one base seed
and reduces them to percentile bands, terminal percentiles and the
probability of ruin.

Example
-------

>>> from retirement_engine.models import SimulationInputs
>>> inputs = SimulationInputs(age1=60, retirement_age=65, pretax_balance=500000,
...                           return_mode="fixed", expected_return=0.05)
>>> path = run_single_simulation(inputs, seed=1)
>>> len(path.years)
36
>>> path.ruined
False
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import replace
from typing import Callable, List, Optional

import numpy as np

from ..errors import ComputationError, RetirementEngineError, SimulationCancelled, ValidationError
from ..models import (
    BatchSummary,
    PathResult,
    PercentileBands,
    RunOutcome,
    SimulationInputs,
    YearRecord,
)
from ..validation import validate_inputs
from . import healthcare, rmd, roth, social_security as ss, taxes as tax_calc
from .returns import return_path

logger = logging.getLogger(__name__)

PROGRESS_INTERVAL = 100
TRIM_FRACTION = 0.025
MIN_PATHS_FOR_TRIM = 40
PERCENTILES = (10, 25, 50, 75, 90)
_SEED_SPACE = 2**32 - 1

ProgressCallback = Callable[[int, int], None]


def _simulate_path(inputs: SimulationInputs, rng: np.random.Generator) -> PathResult:
    status = inputs.filing_status
    married = inputs.is_married
    ytr = inputs.years_to_retirement
    n_retired = inputs.years_in_retirement
    n = ytr + n_retired + 1

    growth = return_path(inputs, n, rng)
    ltc_draw, ltc_age_draw = rng.random(2)
    onset = None
    if inputs.include_ltc:
        onset = healthcare.ltc_onset_age(ltc_draw, ltc_age_draw, inputs.ltc_probability, inputs.ltc_age_range)

    def _inflation(t: int) -> float:
        # rate applied moving into year t
        shocked = inputs.inflation_shock_duration > 0 and ytr < t <= ytr + inputs.inflation_shock_duration
        return inputs.inflation_shock_rate if shocked else inputs.inflation

    def _yield_drag(balance: float, ordinary_income: float) -> float:
        if balance <= 0 or inputs.dividend_yield <= 0:
            return 0.0
        return tax_calc.compute_capital_gains_tax(balance * inputs.dividend_yield, status, ordinary_income)

    tax_bal = inputs.taxable_balance
    pre_bal = inputs.pretax_balance
    roth_bal = inputs.roth_balance
    emergency = inputs.emergency_fund
    basis = inputs.taxable_basis if inputs.taxable_basis is not None else inputs.taxable_balance
    cum_infl = 1.0

    people = [(inputs.age1, inputs.contributions1, inputs.primary_income, inputs.employment_type1)]
    if married:
        people.append((inputs.age2, inputs.contributions2, inputs.spouse_income, inputs.employment_type2))

    records: List[YearRecord] = []
    last_income = 0.0

    # ---------- accumulation ----------
    for y in range(ytr + 1):
        g = growth[y]
        # each person works and saves until their own retirement age
        working = [p for p in people if p[0] + y < inputs.retirement_age]
        wage_growth = (1 + inputs.income_growth) ** y
        income = sum(p[2] for p in working) * wage_growth
        if y > 0:
            tax_bal *= g
            pre_bal *= g
            roth_bal *= g
            emergency *= 1 + _inflation(y)
            tax_bal -= _yield_drag(tax_bal, income)
            cum_infl *= 1 + _inflation(y)

        if y < ytr:
            last_income = income
            escalation = (1 + inputs.contribution_increase_rate) ** y if inputs.increase_contributions else 1.0
            mid_year = 1 + (g - 1) * 0.5
            for _, c, wages, employment in working:
                wages *= wage_growth
                pretax = c.pretax * escalation
                roth_c = c.roth * escalation
                taxable = c.taxable * escalation
                if wages > 0:
                    payroll = tax_calc.compute_employment_taxes(wages, employment)["total"]
                    taxable = min(taxable, max(0.0, wages - payroll - pretax - roth_c))
                pre_bal += (pretax + max(0.0, c.match) * escalation) * mid_year
                roth_bal += roth_c * mid_year
                tax_bal += taxable * mid_year
                basis += taxable

        total = tax_bal + pre_bal + roth_bal + emergency
        records.append(
            YearRecord(
                year_index=y,
                age1=inputs.age1 + y,
                age2=inputs.age2 + y,
                phase="accumulation" if y < ytr else "retirement",
                balance_nominal=total,
                balance_real=total / cum_infl,
            )
        )

    # ---------- first-year withdrawal ----------
    withdrawal = (tax_bal + pre_bal + roth_bal) * inputs.withdrawal_rate
    first = tax_calc.compute_withdrawal_taxes(
        withdrawal, status, tax_bal, pre_bal, roth_bal, basis, inputs.state_tax_rate
    )
    y1_after_tax_real = (withdrawal - first.tax) / cum_infl

    benefits = {"person1": 0.0, "person2": 0.0}
    if inputs.include_ss:
        benefits = ss.household_benefits(
            inputs.ss_income1, inputs.ss_claim_age1, inputs.ss_income2, inputs.ss_claim_age2, married
        )

    prior_magi = last_income
    ordinary_income = 0.0
    ruined = False
    survival_years = n_retired
    total_conversions = 0.0
    conversion_taxes = 0.0

    # ---------- retirement ----------
    for y in range(1, n_retired + 1):
        t = ytr + y
        g = growth[t]
        age1 = inputs.age1 + t
        age2 = inputs.age2 + t
        older = inputs.older_age + t

        tax_bal *= g
        pre_bal *= g
        roth_bal *= g
        emergency *= 1 + _inflation(t)
        tax_bal -= min(tax_bal, _yield_drag(tax_bal, ordinary_income))
        cum_infl *= 1 + _inflation(t)

        required = rmd.compute_rmd(pre_bal, older)

        social_security = 0.0
        if inputs.include_ss:
            if age1 >= inputs.ss_claim_age1:
                social_security += benefits["person1"]
            if married and age2 >= inputs.ss_claim_age2:
                social_security += benefits["person2"]

        converted = 0.0
        if inputs.roth_conversion is not None and older < rmd.RMD_START_AGE:
            amount, conv_tax = roth.bracket_fill_conversion(
                pre_bal, tax_bal, social_security, inputs.roth_conversion.target_bracket_rate, status
            )
            if amount > 0:
                rate = conv_tax / amount
                balances, conv_tax = roth.apply_conversion(pre_bal, roth_bal, amount, rate)
                pre_bal, roth_bal = balances["pre_tax"], balances["roth"]
                tax_bal = max(0.0, tax_bal - conv_tax)
                converted = amount
                total_conversions += amount
                conversion_taxes += conv_tax
                required = rmd.compute_rmd(pre_bal, older)

        medical_factor = (1 + inputs.medical_inflation) ** t
        health = 0.0
        if inputs.include_medicare:
            covered = int(age1 >= healthcare.MEDICARE_ELIGIBILITY_AGE)
            if married:
                covered += int(age2 >= healthcare.MEDICARE_ELIGIBILITY_AGE)
            health += healthcare.medicare_annual_cost(
                prior_magi, status, inputs.medicare_premium, medical_factor, covered
            )
        if inputs.include_ltc:
            health += healthcare.ltc_annual_cost(
                age1, onset, inputs.ltc_duration, inputs.ltc_annual_cost, medical_factor
            )

        need = max(0.0, withdrawal + health - social_security)
        gross = max(need, required)
        draw = tax_calc.compute_withdrawal_taxes(
            gross, status, tax_bal, pre_bal, roth_bal, basis, inputs.state_tax_rate, rmd=required
        )
        gains = draw.taxable_draw - (basis - draw.new_basis)
        if social_security > 0:
            taxable_ss = ss.taxable_social_security(social_security, draw.pretax_draw + converted + gains, status)
            draw = tax_calc.compute_withdrawal_taxes(
                gross, status, tax_bal, pre_bal, roth_bal, basis, inputs.state_tax_rate,
                rmd=required, taxable_ss=taxable_ss,
            )

        tax_bal -= draw.taxable_draw
        pre_bal -= draw.pretax_draw
        roth_bal -= draw.roth_draw
        basis = draw.new_basis
        drawn = draw.total_draw
        net = drawn - draw.tax

        if net > need:
            surplus = net - need
            tax_bal += surplus
            basis += surplus

        unmet = gross - drawn
        from_emergency = 0.0
        if unmet > 1e-6 and emergency > 0:
            from_emergency = min(unmet, emergency)
            emergency -= from_emergency
            unmet -= from_emergency

        tax_bal = max(0.0, tax_bal)
        pre_bal = max(0.0, pre_bal)
        roth_bal = max(0.0, roth_bal)
        emergency = max(0.0, emergency)
        portfolio = tax_bal + pre_bal + roth_bal

        if not ruined and (unmet > 1e-6 or portfolio + emergency <= 0):
            ruined = True
            survival_years = y - 1

        ordinary_income = draw.pretax_draw + converted
        prior_magi = ordinary_income + gains + social_security

        total = portfolio + emergency
        records.append(
            YearRecord(
                year_index=t,
                age1=age1,
                age2=age2,
                phase="retirement",
                balance_nominal=total,
                balance_real=total / cum_infl,
                gross_withdrawal=drawn + from_emergency,
                net_withdrawal=net + from_emergency,
                tax=draw.breakdown,
                rmd=required,
                social_security=social_security,
                healthcare_cost=health,
                roth_conversion=converted,
            )
        )
        withdrawal *= 1 + _inflation(t)

    eol_nominal = records[-1].balance_nominal
    return PathResult(
        years=tuple(records),
        balances_real=tuple(r.balance_real for r in records),
        balances_nominal=tuple(r.balance_nominal for r in records),
        eol_real=eol_nominal / cum_infl,
        eol_nominal=eol_nominal,
        y1_after_tax_real=y1_after_tax_real,
        ruined=ruined,
        survival_years=survival_years,
        total_roth_conversions=total_conversions,
        conversion_taxes_paid=conversion_taxes,
        ltc_onset_age=onset,
    )


def run_single_simulation(
    inputs: SimulationInputs,
    seed: Optional[int] = None,
    validate: bool = True,
) -> PathResult:
    """Simulate one path.

    ``seed`` fixes the return path and the long-term-care draw; ``None``
    draws fresh entropy.  Invalid inputs raise
    :class:`~retirement_engine.errors.ValidationError` before anything runs.
    """
    if validate:
        validate_inputs(inputs)
    try:
        return _simulate_path(inputs, np.random.default_rng(seed))
    except RetirementEngineError:
        raise
    except Exception as exc:
        raise ComputationError(f"simulation failed: {exc}", kind=type(exc).__name__) from exc


def _percentile_bands(matrix: np.ndarray) -> PercentileBands:
    """Per-column percentiles after trimming the extreme tails of each column."""
    n = matrix.shape[0]
    ordered = np.sort(matrix, axis=0)
    trim = int(n * TRIM_FRACTION) if n >= MIN_PATHS_FOR_TRIM else 0
    kept = ordered[trim:n - trim]
    values = np.percentile(kept, PERCENTILES, axis=0)
    return PercentileBands(*(tuple(float(v) for v in row) for row in values))


def derive_seeds(base_seed: Optional[int], n_paths: int) -> np.ndarray:
    """Per-path seeds; ``base_seed=None`` draws them from OS entropy."""
    return np.random.default_rng(base_seed).integers(0, _SEED_SPACE, size=n_paths)


def run_batch(
    inputs: SimulationInputs,
    base_seed: Optional[int] = None,
    n_paths: int = 1000,
    progress_callback: Optional[ProgressCallback] = None,
    cancel_event: Optional[threading.Event] = None,
) -> BatchSummary:
    """Run ``n_paths`` independent paths and summarise them.

    Parameters
    ----------
    inputs : SimulationInputs
        Household configuration, validated before the first path.
    base_seed : int, optional
        Seed from which every path seed is derived.  Ignored in
        ``"truly_random"`` mode, where the seeds come from OS entropy.
    n_paths : int
        Number of paths (at least 1).
    progress_callback : callable, optional
        Called as ``progress_callback(completed, total)`` every few paths and
        after the last one.
    cancel_event : threading.Event, optional
        When set, the batch stops and raises
        :class:`~retirement_engine.errors.SimulationCancelled`.

    Returns
    -------
    BatchSummary
        Percentile bands of real and nominal balances per year, terminal and
        first-year withdrawal percentiles, probability of ruin and every
        path's terminal outcome.
    """
    validate_inputs(inputs)
    if n_paths < 1:
        raise ValidationError("n_paths", f"Number of simulations must be at least 1. You entered {n_paths}.")

    seed = None if inputs.return_mode == "truly_random" else base_seed
    seeds = derive_seeds(seed, n_paths)
    interval = max(1, min(PROGRESS_INTERVAL, n_paths // 100))
    logger.info("Running %d paths (mode=%s, seed=%s)", n_paths, inputs.return_mode, seed)

    start = time.perf_counter()
    paths: List[PathResult] = []
    for i, path_seed in enumerate(seeds):
        if cancel_event is not None and cancel_event.is_set():
            logger.info("Cancellation requested at simulation %d/%d", i, n_paths)
            raise SimulationCancelled(f"batch cancelled after {i} of {n_paths} paths")
        paths.append(run_single_simulation(inputs, int(path_seed), validate=False))
        completed = i + 1
        if progress_callback is not None and (completed % interval == 0 or completed == n_paths):
            progress_callback(completed, n_paths)

    real = np.vstack([p.balances_real for p in paths])
    nominal = np.vstack([p.balances_nominal for p in paths])
    eol = np.array([p.eol_real for p in paths])
    y1 = np.array([p.y1_after_tax_real for p in paths])
    ruined = sum(1 for p in paths if p.ruined)
    eol_p = np.percentile(eol, (25, 50, 75))
    y1_p = np.percentile(y1, (25, 50, 75))

    summary = BatchSummary(
        real=_percentile_bands(real),
        nominal=_percentile_bands(nominal),
        eol_real_p25=float(eol_p[0]),
        eol_real_p50=float(eol_p[1]),
        eol_real_p75=float(eol_p[2]),
        y1_after_tax_real_p25=float(y1_p[0]),
        y1_after_tax_real_p50=float(y1_p[1]),
        y1_after_tax_real_p75=float(y1_p[2]),
        prob_ruin=ruined / n_paths,
        n_paths=n_paths,
        all_runs=tuple(
            RunOutcome(p.eol_real, p.y1_after_tax_real, p.ruined, p.survival_years) for p in paths
        ),
    )
    logger.info(
        "Finished %d paths in %.2fs: probability of ruin %.3f, median terminal %.0f",
        n_paths, time.perf_counter() - start, summary.prob_ruin, summary.eol_real_p50,
    )
    return summary


def max_withdrawal_rate(
    inputs: SimulationInputs,
    target_success: float = 0.9,
    n_paths: int = 200,
    seed: Optional[int] = 0,
    tol: float = 0.0005,
    upper: float = 0.20,
) -> float:
    """Highest withdrawal rate whose batch success rate meets ``target_success``.

    Binary search between 0 and ``upper`` with a fixed seed so every trial
    sees the same return paths; ``inputs`` is left untouched.
    """
    lo, hi = 0.0, upper
    if run_batch(replace(inputs, withdrawal_rate=lo), seed, n_paths).success_rate < target_success:
        return 0.0
    while hi - lo > tol:
        mid = (lo + hi) / 2
        if run_batch(replace(inputs, withdrawal_rate=mid), seed, n_paths).success_rate >= target_success:
            lo = mid
        else:
            hi = mid
    logger.debug("Max withdrawal rate for %.0f%% success: %.4f", target_success * 100, lo)
    return lo


__all__ = [
    "PROGRESS_INTERVAL",
    "run_single_simulation",
    "derive_seeds",
    "run_batch",
    "max_withdrawal_rate",
]
