"""Multi-generation wealth transfer.

Given the estate a batch leaves behind, estimate how long a trust could pay
every adult descendant a fixed real amount each year, or whether it can pay
forever.

The model follows a family as cohorts.  Each cohort ages one year at a time,
dies at ``death_age``, and while inside the fertility window has
``fertility_rate / window_length`` children per member per year until it has
had ``fertility_rate`` in total.  Every living member at or above
``min_distribution_age`` draws the per-beneficiary amount; the fund grows at a
real rate.  A distribution is perpetual when it stays below 95 % of
``real_return − population_growth``, where population growth is
``(fertility_rate − 2) / generation_length``, or when the fund is still
compounding above 3 % a year after a thousand years.

Beneficiaries older than the fertility window are "backfilled": they are
replaced by the descendant generation that is back inside the window, so the
simulation starts with a family that can still grow.

Example
-------

>>> cohorts = backfill_younger_generations([70], 1, fertility_window_end=35,
...                                        generation_length=30, fertility_rate=2.0)
>>> [(c.age, c.size, c.generation) for c in cohorts]
[(10, 4.0, 2)]
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from ..models import (
    BatchSummary,
    BeneficiaryCohort,
    GenerationalParams,
    GenerationalPayout,
    GenerationSnapshot,
    PayoutVariant,
    RunOutcome,
    SimulationInputs,
)
from . import taxes as tax_calc

logger = logging.getLogger(__name__)

CHUNK_YEARS = 10
PERPETUAL_CAP_YEARS = 10000
GROWTH_CHECK_YEAR = 1000
PERPETUAL_GROWTH = 0.03
VIABILITY_MARGIN = 0.95
ESTATE_SAFETY_MARGIN = 1.05
MAX_SNAPSHOTS = 10
VARIANTS = (("p10", 10), ("p50", 50), ("p90", 90))


@dataclass(frozen=True)
class PayoutRequest:
    """Everything one depletion run needs; crosses the worker boundary."""

    label: str
    fund_real: float
    real_return: float
    per_beneficiary_real: float
    cohorts: Tuple[BeneficiaryCohort, ...]
    fertility_rate: float = 2.1
    generation_length: int = 30
    fertility_window: Tuple[int, int] = (25, 35)
    death_age: int = 90
    min_distribution_age: int = 21
    cap_years: int = PERPETUAL_CAP_YEARS
    filing_status: str = "single"
    inflation: float = 0.026
    estate_year: int = tax_calc.TAX_YEAR
    assume_tax_cuts_extended: bool = True


@dataclass(frozen=True)
class PayoutOutcome:
    label: str
    years: int
    is_perpetual: bool
    fund_left_real: float
    last_living_count: float
    generations: Tuple[GenerationSnapshot, ...] = ()


@dataclass(frozen=True)
class GenerationalPlan:
    requests: Tuple[PayoutRequest, ...]
    per_beneficiary_real: float
    beneficiary_count: int
    probability_perpetual: float
    cohorts: Tuple[BeneficiaryCohort, ...]


@dataclass
class _Cohort:
    size: float
    age: int
    can_reproduce: bool
    births: float = 0.0


def backfill_younger_generations(
    ages: Sequence[int],
    number_of_beneficiaries: int,
    fertility_window_end: int,
    generation_length: int,
    fertility_rate: float,
    max_generations: int = 20,
) -> Tuple[BeneficiaryCohort, ...]:
    """Starting cohorts, one per listed beneficiary.

    Each listed beneficiary stands for ``number_of_beneficiaries / len(ages)``
    people.  A beneficiary past ``fertility_window_end`` is replaced by their
    descendants: the age drops by ``generation_length`` and the size grows by
    ``fertility_rate`` per generation until the age is back inside the window
    or ``max_generations`` generations exist.  A non-positive generation length
    synthesises nothing.
    """
    if not ages:
        return (BeneficiaryCohort(age=0, size=float(number_of_beneficiaries), generation=0),)
    size = number_of_beneficiaries / len(ages)
    if generation_length <= 0:
        logger.warning("Generation length %s is not positive; skipping backfill", generation_length)
        return tuple(BeneficiaryCohort(age=int(a), size=size, generation=0) for a in ages)

    cohorts: List[BeneficiaryCohort] = []
    for age in ages:
        current = BeneficiaryCohort(age=int(age), size=size, generation=0)
        while current.age > fertility_window_end and current.generation < max_generations:
            child = BeneficiaryCohort(
                age=current.age - generation_length,
                size=current.size * fertility_rate,
                generation=current.generation + 1,
            )
            if child.age < 0:
                break
            current = child
        cohorts.append(current)
    return tuple(cohorts)


def population_growth_rate(fertility_rate: float, generation_length: int) -> float:
    if generation_length <= 0:
        return 0.0
    return (fertility_rate - 2.0) / generation_length


def check_perpetual_viability(
    real_return: float,
    fertility_rate: float,
    generation_length: int,
    per_beneficiary_real: float,
    fund_real: float,
    beneficiaries: float,
) -> bool:
    """True when the initial distribution rate sits safely under the
    sustainable rate ``real_return − population_growth``."""
    if fund_real <= 0:
        return False
    threshold = real_return - population_growth_rate(fertility_rate, generation_length)
    distribution_rate = per_beneficiary_real * beneficiaries / fund_real
    return distribution_rate < threshold * VIABILITY_MARGIN


def _living(cohorts: List[_Cohort]) -> float:
    return sum(c.size for c in cohorts)


def _simulate_chunk(
    cohorts: List[_Cohort],
    fund: float,
    request: PayoutRequest,
    births_per_year: float,
    n_years: int,
) -> Tuple[List[_Cohort], float, int, bool]:
    start, end = request.fertility_window
    simulated = 0
    for _ in range(n_years):
        cohorts = [c for c in cohorts if c.age < request.death_age]
        if not cohorts:
            return cohorts, fund, simulated, True

        fund *= 1 + request.real_return
        eligible = sum(c.size for c in cohorts if c.age >= request.min_distribution_age)
        fund -= request.per_beneficiary_real * eligible
        if fund < 0:
            return cohorts, 0.0, simulated, True
        simulated += 1

        newborns = 0.0
        for c in cohorts:
            c.age += 1
            if c.can_reproduce and start <= c.age <= end and c.births < request.fertility_rate:
                rate = min(births_per_year, request.fertility_rate - c.births)
                newborns += c.size * rate
                c.births += rate
        if newborns > 0:
            cohorts.append(_Cohort(size=newborns, age=0, can_reproduce=True))
    return cohorts, fund, simulated, False


def _snapshot(request: PayoutRequest, generation: int, year: int, fund: float, cohorts: List[_Cohort]) -> GenerationSnapshot:
    nominal = fund * (1 + request.inflation) ** year
    estate_tax = tax_calc.compute_estate_tax(
        nominal, request.filing_status, request.estate_year + year, request.assume_tax_cuts_extended
    )
    return GenerationSnapshot(
        generation=generation,
        year=year,
        living=_living(cohorts),
        beneficiaries=sum(c.size for c in cohorts if c.age >= request.min_distribution_age),
        fund_real=fund,
        estate_tax=estate_tax / (1 + request.inflation) ** year,
    )


def simulate_payout(request: PayoutRequest) -> PayoutOutcome:
    """Run the depletion simulation for one estate.

    Simulates in ten-year chunks up to ``request.cap_years``.  Returns the
    number of years every eligible beneficiary was paid, the fund left, and a
    snapshot every generation length (at most ten).
    """
    fund = request.fund_real
    start, end = request.fertility_window
    births_per_year = request.fertility_rate / (end - start) if end > start else 0.0
    cohorts = [_Cohort(size=c.size, age=c.age, can_reproduce=c.age <= end) for c in request.cohorts]

    if fund <= 0 or not cohorts:
        return PayoutOutcome(request.label, 0, False, 0.0, _living(cohorts))

    eligible = sum(c.size for c in cohorts if c.age >= request.min_distribution_age) or _living(cohorts)
    if request.cap_years >= PERPETUAL_CAP_YEARS and check_perpetual_viability(
        request.real_return,
        request.fertility_rate,
        request.generation_length,
        request.per_beneficiary_real,
        fund,
        eligible,
    ):
        logger.debug("%s distribution is analytically perpetual", request.label)
        return PayoutOutcome(request.label, request.cap_years, True, fund, _living(cohorts))

    years = 0
    snapshots: List[GenerationSnapshot] = []
    next_checkpoint = request.generation_length if request.generation_length > 0 else None
    fund_at_check = 0.0
    for t in range(0, request.cap_years, CHUNK_YEARS):
        cohorts, fund, simulated, depleted = _simulate_chunk(
            cohorts, fund, request, births_per_year, min(CHUNK_YEARS, request.cap_years - t)
        )
        years += simulated
        if depleted:
            return PayoutOutcome(request.label, years, False, fund, _living(cohorts), tuple(snapshots))

        if next_checkpoint is not None and years >= next_checkpoint and len(snapshots) < MAX_SNAPSHOTS:
            snapshots.append(_snapshot(request, len(snapshots) + 1, years, fund, cohorts))
            next_checkpoint += request.generation_length

        if years == GROWTH_CHECK_YEAR:
            fund_at_check = fund
        elif years > GROWTH_CHECK_YEAR and fund_at_check > 0 and fund > fund_at_check:
            growth = (fund / fund_at_check) ** (1 / (years - GROWTH_CHECK_YEAR)) - 1
            if growth > PERPETUAL_GROWTH:
                logger.debug("%s fund compounding at %.2f%% after %d years", request.label, growth * 100, years)
                return PayoutOutcome(request.label, years, True, fund, _living(cohorts), tuple(snapshots))

    return PayoutOutcome(request.label, years, False, fund, _living(cohorts), tuple(snapshots))


def _net_estate_real(
    eol_real: float, deflator: float, filing_status: str, year: int, assume_tax_cuts_extended: bool
) -> float:
    if eol_real <= 0:
        return 0.0
    tax = tax_calc.compute_estate_tax(eol_real * deflator, filing_status, year, assume_tax_cuts_extended)
    return eol_real - tax / deflator


def probability_of_perpetuity(
    all_runs: Sequence[RunOutcome],
    per_beneficiary_real: float,
    beneficiaries: float,
    real_return: float,
    fertility_rate: float,
    generation_length: int,
    filing_status: str = "single",
    deflator: float = 1.0,
    estate_year: int = tax_calc.TAX_YEAR,
    assume_tax_cuts_extended: bool = True,
) -> float:
    """Share of batch paths whose after-tax estate could fund the
    distribution forever (with a 5 % margin)."""
    if not all_runs:
        return 0.0
    sustainable = real_return - population_growth_rate(fertility_rate, generation_length)
    if sustainable <= 0:
        return 0.0
    minimum = per_beneficiary_real * beneficiaries / sustainable * ESTATE_SAFETY_MARGIN
    hits = sum(
        1
        for run in all_runs
        if _net_estate_real(run.eol_real, deflator, filing_status, estate_year, assume_tax_cuts_extended) >= minimum
    )
    return hits / len(all_runs)


def plan_generational(
    batch: BatchSummary,
    inputs: SimulationInputs,
    params: GenerationalParams,
) -> Optional[GenerationalPlan]:
    """Prepare the three percentile payout requests, or ``None`` when there is
    nobody to pay or nothing to pay them."""
    if params.number_of_beneficiaries <= 0 or params.per_beneficiary_real <= 0:
        logger.info("Generational projection skipped: no beneficiaries or no distribution")
        return None

    horizon = inputs.years_to_retirement + inputs.years_in_retirement
    deflator = (1 + inputs.inflation) ** horizon
    estate_year = inputs.start_year + horizon
    status = inputs.filing_status
    user_real_return = (1 + inputs.expected_return) / (1 + inputs.inflation) - 1

    cohorts = backfill_younger_generations(
        params.beneficiary_ages,
        params.number_of_beneficiaries,
        params.fertility_window[1],
        params.generation_length,
        params.fertility_rate,
        params.max_generations,
    )
    eligible = sum(c.size for c in cohorts if c.age >= params.min_distribution_age) or params.number_of_beneficiaries

    eol = np.array([run.eol_real for run in batch.all_runs]) if batch.all_runs else np.array([batch.eol_real_p50])
    requests = []
    for label, q in VARIANTS:
        eol_real = float(np.percentile(eol, q))
        if inputs.starting_balance > 0 and eol_real > 0 and horizon > 0:
            growth = (eol_real / inputs.starting_balance) ** (1 / horizon) - 1
        else:
            growth = user_real_return
        requests.append(
            PayoutRequest(
                label=label,
                fund_real=_net_estate_real(eol_real, deflator, status, estate_year, inputs.assume_tax_cuts_extended),
                real_return=growth,
                per_beneficiary_real=params.per_beneficiary_real,
                cohorts=cohorts,
                fertility_rate=params.fertility_rate,
                generation_length=params.generation_length,
                fertility_window=params.fertility_window,
                death_age=params.death_age,
                min_distribution_age=params.min_distribution_age,
                cap_years=params.cap_years,
                filing_status=status,
                inflation=inputs.inflation,
                estate_year=estate_year,
                assume_tax_cuts_extended=inputs.assume_tax_cuts_extended,
            )
        )

    probability = probability_of_perpetuity(
        batch.all_runs,
        params.per_beneficiary_real,
        eligible,
        user_real_return,
        params.fertility_rate,
        params.generation_length,
        status,
        deflator,
        estate_year,
        inputs.assume_tax_cuts_extended,
    )
    return GenerationalPlan(
        requests=tuple(requests),
        per_beneficiary_real=params.per_beneficiary_real,
        beneficiary_count=max(1, round(sum(c.size for c in cohorts))),
        probability_perpetual=probability,
        cohorts=cohorts,
    )


def assemble_payout(plan: GenerationalPlan, outcomes: Dict[str, PayoutOutcome]) -> GenerationalPayout:
    variants = {}
    for request in plan.requests:
        outcome = outcomes[request.label]
        variants[request.label] = PayoutVariant(
            years=outcome.years,
            fund_left_real=outcome.fund_left_real,
            is_perpetual=outcome.is_perpetual,
            starting_fund_real=request.fund_real,
            real_growth_rate=request.real_return,
            generations=outcome.generations,
        )
    median = variants["p50"]
    return GenerationalPayout(
        per_beneficiary_real=plan.per_beneficiary_real,
        years=median.years,
        is_perpetual=median.is_perpetual,
        fund_left_real=median.fund_left_real,
        beneficiary_count=plan.beneficiary_count,
        p10=variants["p10"],
        p50=median,
        p90=variants["p90"],
        probability_perpetual=plan.probability_perpetual,
        cohorts=plan.cohorts,
    )


def project_generational_payout(
    batch: BatchSummary,
    inputs: SimulationInputs,
    params: GenerationalParams,
) -> Optional[GenerationalPayout]:
    """Plan, simulate and assemble the generational payout in this process."""
    plan = plan_generational(batch, inputs, params)
    if plan is None:
        return None
    outcomes = {request.label: simulate_payout(request) for request in plan.requests}
    return assemble_payout(plan, outcomes)


__all__ = [
    "PayoutRequest",
    "PayoutOutcome",
    "GenerationalPlan",
    "backfill_younger_generations",
    "population_growth_rate",
    "check_perpetual_viability",
    "simulate_payout",
    "probability_of_perpetuity",
    "plan_generational",
    "assemble_payout",
    "project_generational_payout",
]
