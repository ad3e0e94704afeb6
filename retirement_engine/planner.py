"""Synchronous end-to-end calculation.

:func:`calculate` chains every component the way a results page needs them:
validate the inputs, run the Monte Carlo batch, run one representative path
on the batch seed, break down the first retirement year's taxes, tax the
median estate, and, when they apply, project the generational payout,
analyse spending guardrails and look for Roth conversions.  The
:mod:`retirement_engine.dispatcher` performs the same steps on a worker
process and reuses :func:`assemble_result` to put them together.

Example
-------

>>> from retirement_engine.models import SimulationInputs
>>> inputs = SimulationInputs(age1=60, retirement_age=65, pretax_balance=500000,
...                           return_mode="fixed", expected_return=0.05)
>>> result = calculate(inputs, seed=7, n_paths=20)
>>> result.summary["success_rate"]
'100.0%'
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

import pandas as pd

from .calculators import generational, guardrails, roth, social_security as ss, taxes as tax_calc
from .calculators.monte_carlo import ProgressCallback, derive_seeds, run_batch, run_single_simulation
from .models import (
    BatchSummary,
    GenerationalParams,
    GenerationalPayout,
    GuardrailsResult,
    PathResult,
    RothConversionResult,
    SimulationInputs,
    TaxBreakdown,
)
from .validation import validate_inputs, validate_target_bracket

logger = logging.getLogger(__name__)

DEFAULT_TARGET_BRACKET = 0.24


@dataclass(frozen=True)
class CalculationResult:
    summary: Dict[str, str]
    series: Tuple[Dict, ...]
    batch: BatchSummary
    representative: PathResult
    tax: TaxBreakdown
    estate_tax: float
    net_estate: float
    generational: Optional[GenerationalPayout] = None
    guardrails: Optional[GuardrailsResult] = None
    roth: Optional[RothConversionResult] = None

    def to_frame(self) -> pd.DataFrame:
        """Year-by-year table, one row per simulated year."""
        return pd.DataFrame(list(self.series)).set_index("year")


def _money(value: float) -> str:
    return f"${value:,.0f}"


def _percent(value: float) -> str:
    return f"{value * 100:.1f}%"


def representative_seed(inputs: SimulationInputs, seed: Optional[int]) -> Optional[int]:
    """Seed of the batch's first path, or ``None`` in truly random mode."""
    if inputs.return_mode == "truly_random" or seed is None:
        return None
    return int(derive_seeds(seed, 1)[0])


def projected_pretax_balance(inputs: SimulationInputs) -> float:
    """Pre-tax balance at retirement with contributions and the expected return."""
    balance = inputs.pretax_balance
    savers = [(inputs.age1, inputs.contributions1)]
    if inputs.is_married:
        savers.append((inputs.age2, inputs.contributions2))
    for y in range(inputs.years_to_retirement):
        escalation = (1 + inputs.contribution_increase_rate) ** y if inputs.increase_contributions else 1.0
        yearly = sum(c.pretax + max(0.0, c.match) for age, c in savers if age + y < inputs.retirement_age)
        balance = balance * (1 + inputs.expected_return) + yearly * escalation
    return balance


def roth_optimizer_kwargs(
    inputs: SimulationInputs,
    batch: BatchSummary,
    target_bracket: float = DEFAULT_TARGET_BRACKET,
) -> Optional[Dict]:
    """Arguments for :func:`~retirement_engine.calculators.roth.optimize_roth_conversions`,
    or ``None`` when there is no pre-tax money to convert."""
    pretax = projected_pretax_balance(inputs)
    if pretax <= 0:
        return None
    ss_income = 0.0
    if inputs.include_ss:
        benefits = ss.household_benefits(
            inputs.ss_income1, inputs.ss_claim_age1, inputs.ss_income2, inputs.ss_claim_age2, inputs.is_married
        )
        ss_income = benefits["person1"] + benefits["person2"]
    ytr = inputs.years_to_retirement
    at_retirement = batch.nominal.p50[ytr] if ytr < len(batch.nominal) else inputs.starting_balance
    if inputs.roth_conversion is not None:
        target_bracket = inputs.roth_conversion.target_bracket_rate
    return dict(
        retirement_age=inputs.retirement_age,
        pretax_balance=pretax,
        marital=inputs.marital,
        ss_income=ss_income,
        annual_withdrawal=at_retirement * inputs.withdrawal_rate,
        target_bracket=target_bracket,
        growth_rate=inputs.expected_return,
    )


def _first_retirement_tax(inputs: SimulationInputs, path: PathResult) -> TaxBreakdown:
    index = inputs.years_to_retirement + 1
    if index < len(path.years):
        return path.years[index].tax
    return TaxBreakdown()


def _estate(inputs: SimulationInputs, batch: BatchSummary) -> Tuple[float, float]:
    """Estate tax and net estate on the median terminal balance, in today's dollars."""
    horizon = inputs.years_to_retirement + inputs.years_in_retirement
    deflator = (1 + inputs.inflation) ** horizon
    estate = max(0.0, batch.eol_real_p50)
    tax = tax_calc.compute_estate_tax(
        estate * deflator, inputs.filing_status, inputs.start_year + horizon, inputs.assume_tax_cuts_extended
    )
    return tax / deflator, estate - tax / deflator


def _series(inputs: SimulationInputs, batch: BatchSummary, path: PathResult) -> Tuple[Dict, ...]:
    rows = []
    for i, record in enumerate(path.years):
        rows.append(
            {
                "year": inputs.start_year + i,
                "age1": record.age1,
                "age2": record.age2 if inputs.is_married else None,
                "phase": record.phase,
                "p10_real": batch.real.p10[i],
                "p25_real": batch.real.p25[i],
                "p50_real": batch.real.p50[i],
                "p75_real": batch.real.p75[i],
                "p90_real": batch.real.p90[i],
                "p50_nominal": batch.nominal.p50[i],
                "balance_nominal": record.balance_nominal,
                "gross_withdrawal": record.gross_withdrawal,
                "net_withdrawal": record.net_withdrawal,
                "tax": record.tax.total,
                "rmd": record.rmd,
                "social_security": record.social_security,
                "healthcare_cost": record.healthcare_cost,
                "roth_conversion": record.roth_conversion,
            }
        )
    return tuple(rows)


def _summary(
    batch: BatchSummary,
    tax: TaxBreakdown,
    estate_tax: float,
    net_estate: float,
    payout: Optional[GenerationalPayout],
    rails: Optional[GuardrailsResult],
    roth_result: Optional[RothConversionResult],
) -> Dict[str, str]:
    summary = {
        "success_rate": _percent(batch.success_rate),
        "probability_of_ruin": _percent(batch.prob_ruin),
        "paths": f"{batch.n_paths:,}",
        "median_terminal_real": _money(batch.eol_real_p50),
        "terminal_real_range": f"{_money(batch.eol_real_p25)} - {_money(batch.eol_real_p75)}",
        "median_first_year_income": _money(batch.y1_after_tax_real_p50),
        "first_year_tax": _money(tax.total),
        "estate_tax": _money(estate_tax),
        "net_estate": _money(net_estate),
    }
    if payout is not None:
        summary["generational_years"] = "Perpetual" if payout.is_perpetual else f"{payout.years:,}"
        summary["probability_perpetual"] = _percent(payout.probability_perpetual)
    if rails is not None:
        summary["guardrails_success_rate"] = _percent(rails.new_success_rate)
    if roth_result is not None and roth_result.has_recommendation:
        summary["roth_annual_conversion"] = _money(roth_result.annual_conversion)
        summary["roth_lifetime_savings"] = _money(roth_result.lifetime_tax_savings)
    return summary


def assemble_result(
    inputs: SimulationInputs,
    batch: BatchSummary,
    representative: PathResult,
    payout: Optional[GenerationalPayout] = None,
    rails: Optional[GuardrailsResult] = None,
    roth_result: Optional[RothConversionResult] = None,
) -> CalculationResult:
    tax = _first_retirement_tax(inputs, representative)
    estate_tax, net_estate = _estate(inputs, batch)
    return CalculationResult(
        summary=_summary(batch, tax, estate_tax, net_estate, payout, rails, roth_result),
        series=_series(inputs, batch, representative),
        batch=batch,
        representative=representative,
        tax=tax,
        estate_tax=estate_tax,
        net_estate=net_estate,
        generational=payout,
        guardrails=rails,
        roth=roth_result,
    )


def calculate(
    inputs: SimulationInputs,
    seed: Optional[int] = None,
    n_paths: int = 1000,
    generational_params: Optional[GenerationalParams] = None,
    spending_reduction: float = guardrails.DEFAULT_SPENDING_REDUCTION,
    target_bracket: float = DEFAULT_TARGET_BRACKET,
    progress_callback: Optional[ProgressCallback] = None,
    cancel_event: Optional[threading.Event] = None,
) -> CalculationResult:
    """Run the full calculation in the calling thread.

    Guardrails are analysed only when some paths fail; the Roth optimizer
    runs only when there is pre-tax money at retirement.
    """
    validate_inputs(inputs)
    validate_target_bracket(target_bracket, inputs.filing_status)
    batch = run_batch(inputs, seed, n_paths, progress_callback, cancel_event)
    representative = run_single_simulation(inputs, representative_seed(inputs, seed), validate=False)

    payout = None
    if generational_params is not None:
        payout = generational.project_generational_payout(batch, inputs, generational_params)

    rails = guardrails.analyze_guardrails(batch, spending_reduction) if batch.prob_ruin > 0 else None

    roth_result = None
    kwargs = roth_optimizer_kwargs(inputs, batch, target_bracket)
    if kwargs is not None:
        roth_result = roth.optimize_roth_conversions(**kwargs)

    logger.info("Calculation finished: success rate %.3f over %d paths", batch.success_rate, batch.n_paths)
    return assemble_result(inputs, batch, representative, payout, rails, roth_result)


__all__ = [
    "CalculationResult",
    "DEFAULT_TARGET_BRACKET",
    "representative_seed",
    "projected_pretax_balance",
    "roth_optimizer_kwargs",
    "assemble_result",
    "calculate",
]
