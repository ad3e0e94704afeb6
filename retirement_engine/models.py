"""Value objects shared by the simulation components.

Every object here is a frozen dataclass holding plain numbers, strings and
tuples, so it can be handed to the worker process and back without copying
concerns.  :class:`SimulationInputs` is the single configuration value read by
the engine; collaborators that keep their plan as a nested dict can build one
with :meth:`SimulationInputs.from_dict`.

Rates are decimal fractions (``0.098`` for 9.8 %) and money is US dollars per
year.

Example
-------

>>> inputs = SimulationInputs(age1=35, retirement_age=65, pretax_balance=150000)
>>> inputs.filing_status
'single'
>>> inputs.younger_age, inputs.older_age
(35, 35)
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Dict, Optional, Tuple

LIFE_EXPECTANCY = 95


@dataclass(frozen=True)
class Contributions:
    """Annual contributions for one person, per account type."""

    taxable: float = 0.0
    pretax: float = 0.0
    roth: float = 0.0
    match: float = 0.0

    @property
    def total(self) -> float:
        return self.taxable + self.pretax + self.roth + max(0.0, self.match)


@dataclass(frozen=True)
class GlidePath:
    """Bond allocation schedule.

    ``strategy`` is ``"aggressive"`` (no bonds), ``"age_based"`` (10 % below 40
    rising to 60 % at 60) or ``"custom"``, which moves from ``start_pct`` at
    ``start_age`` to ``end_pct`` at ``end_age`` along ``shape``:
    ``"linear"``, ``"accelerated"`` or ``"decelerated"``.
    """

    strategy: str = "custom"
    start_pct: float = 0.10
    end_pct: float = 0.60
    start_age: int = 40
    end_age: int = 65
    shape: str = "linear"


@dataclass(frozen=True)
class RothConversionPolicy:
    """Convert pre-tax savings to Roth before RMDs, up to the top of a bracket."""

    target_bracket_rate: float = 0.22


@dataclass(frozen=True)
class SimulationInputs:
    marital: str = "single"
    age1: int = 35
    age2: int = 35
    retirement_age: int = 65
    start_year: int = 2026

    employment_type1: str = "w2"
    employment_type2: str = "w2"
    primary_income: float = 0.0
    spouse_income: float = 0.0

    taxable_balance: float = 0.0
    pretax_balance: float = 0.0
    roth_balance: float = 0.0
    emergency_fund: float = 0.0
    taxable_basis: Optional[float] = None

    contributions1: Contributions = Contributions()
    contributions2: Contributions = Contributions()
    increase_contributions: bool = False
    contribution_increase_rate: float = 0.0

    expected_return: float = 0.098
    inflation: float = 0.026
    state_tax_rate: float = 0.0
    withdrawal_rate: float = 0.035
    income_growth: float = 0.0
    dividend_yield: float = 0.02

    return_mode: str = "random"
    historical_start_year: int = 1928
    walk_series: str = "nominal"

    include_ss: bool = False
    ss_income1: float = 0.0
    ss_claim_age1: int = 67
    ss_income2: float = 0.0
    ss_claim_age2: int = 67

    include_medicare: bool = False
    medicare_premium: float = 202.90
    medical_inflation: float = 0.05
    include_ltc: bool = False
    ltc_annual_cost: float = 80000.0
    ltc_probability: float = 0.50
    ltc_duration: int = 3
    ltc_age_range: Tuple[int, int] = (75, 90)

    bond_glide_path: Optional[GlidePath] = None
    roth_conversion: Optional[RothConversionPolicy] = None

    inflation_shock_rate: float = 0.0
    inflation_shock_duration: int = 0

    assume_tax_cuts_extended: bool = True

    @property
    def is_married(self) -> bool:
        return self.marital == "married"

    @property
    def filing_status(self) -> str:
        return "married" if self.is_married else "single"

    @property
    def younger_age(self) -> int:
        return min(self.age1, self.age2) if self.is_married else self.age1

    @property
    def older_age(self) -> int:
        return max(self.age1, self.age2) if self.is_married else self.age1

    @property
    def years_to_retirement(self) -> int:
        return self.retirement_age - self.younger_age

    @property
    def years_in_retirement(self) -> int:
        return max(0, LIFE_EXPECTANCY - (self.older_age + self.years_to_retirement))

    @property
    def starting_balance(self) -> float:
        return self.taxable_balance + self.pretax_balance + self.roth_balance

    @classmethod
    def from_dict(cls, plan: Dict) -> "SimulationInputs":
        """Build inputs from a plan dict, ignoring keys that are not fields.

        Nested ``contributions1``/``contributions2``, ``bond_glide_path`` and
        ``roth_conversion`` may be given as dicts.
        """
        known = {f.name for f in fields(cls)}
        kwargs = {k: v for k, v in plan.items() if k in known}
        for key in ("contributions1", "contributions2"):
            if isinstance(kwargs.get(key), dict):
                kwargs[key] = Contributions(**kwargs[key])
        if isinstance(kwargs.get("bond_glide_path"), dict):
            kwargs["bond_glide_path"] = GlidePath(**kwargs["bond_glide_path"])
        if isinstance(kwargs.get("roth_conversion"), dict):
            kwargs["roth_conversion"] = RothConversionPolicy(**kwargs["roth_conversion"])
        if "ltc_age_range" in kwargs:
            kwargs["ltc_age_range"] = tuple(kwargs["ltc_age_range"])
        return cls(**kwargs)


@dataclass(frozen=True)
class TaxBreakdown:
    ordinary: float = 0.0
    capital_gains: float = 0.0
    niit: float = 0.0
    state: float = 0.0

    @property
    def total(self) -> float:
        return self.ordinary + self.capital_gains + self.niit + self.state

    def as_dict(self) -> Dict[str, float]:
        return {
            "ordinary": self.ordinary,
            "capital_gains": self.capital_gains,
            "niit": self.niit,
            "state": self.state,
            "total": self.total,
        }


@dataclass(frozen=True)
class YearRecord:
    """One simulated year of a single path."""

    year_index: int
    age1: int
    age2: int
    phase: str
    balance_nominal: float
    balance_real: float
    gross_withdrawal: float = 0.0
    net_withdrawal: float = 0.0
    tax: TaxBreakdown = TaxBreakdown()
    rmd: float = 0.0
    social_security: float = 0.0
    healthcare_cost: float = 0.0
    roth_conversion: float = 0.0


@dataclass(frozen=True)
class PathResult:
    years: Tuple[YearRecord, ...]
    balances_real: Tuple[float, ...]
    balances_nominal: Tuple[float, ...]
    eol_real: float
    eol_nominal: float
    y1_after_tax_real: float
    ruined: bool
    survival_years: Optional[int]
    total_roth_conversions: float = 0.0
    conversion_taxes_paid: float = 0.0
    ltc_onset_age: Optional[int] = None


@dataclass(frozen=True)
class RunOutcome:
    """Terminal outcome of one path, kept for empirical analysis."""

    eol_real: float
    y1_after_tax_real: float
    ruined: bool
    survival_years: Optional[int]


@dataclass(frozen=True)
class PercentileBands:
    p10: Tuple[float, ...]
    p25: Tuple[float, ...]
    p50: Tuple[float, ...]
    p75: Tuple[float, ...]
    p90: Tuple[float, ...]

    def __len__(self) -> int:
        return len(self.p50)


@dataclass(frozen=True)
class BatchSummary:
    real: PercentileBands
    nominal: PercentileBands
    eol_real_p25: float
    eol_real_p50: float
    eol_real_p75: float
    y1_after_tax_real_p25: float
    y1_after_tax_real_p50: float
    y1_after_tax_real_p75: float
    prob_ruin: float
    n_paths: int
    all_runs: Tuple[RunOutcome, ...]

    @property
    def success_rate(self) -> float:
        return 1.0 - self.prob_ruin


@dataclass(frozen=True)
class GenerationalParams:
    """Assumptions for projecting a terminal estate across generations."""

    per_beneficiary_real: float
    beneficiary_ages: Tuple[int, ...] = (35,)
    number_of_beneficiaries: int = 1
    fertility_rate: float = 2.1
    generation_length: int = 30
    fertility_window: Tuple[int, int] = (25, 35)
    death_age: int = 90
    min_distribution_age: int = 21
    cap_years: int = 10000
    max_generations: int = 20


@dataclass(frozen=True)
class BeneficiaryCohort:
    age: int
    size: float
    generation: int


@dataclass(frozen=True)
class GenerationSnapshot:
    generation: int
    year: int
    living: float
    beneficiaries: float
    fund_real: float
    estate_tax: float = 0.0


@dataclass(frozen=True)
class PayoutVariant:
    years: int
    fund_left_real: float
    is_perpetual: bool
    starting_fund_real: float = 0.0
    real_growth_rate: float = 0.0
    generations: Tuple[GenerationSnapshot, ...] = ()


@dataclass(frozen=True)
class GenerationalPayout:
    per_beneficiary_real: float
    years: int
    is_perpetual: bool
    fund_left_real: float
    beneficiary_count: int
    p10: PayoutVariant
    p50: PayoutVariant
    p90: PayoutVariant
    probability_perpetual: float
    cohorts: Tuple[BeneficiaryCohort, ...] = ()


@dataclass(frozen=True)
class GuardrailsResult:
    total_failures: int
    preventable_failures: int
    baseline_success_rate: float
    new_success_rate: float
    improvement: float
    spending_reduction: float


@dataclass(frozen=True)
class RothConversion:
    age: int
    amount: float
    tax: float
    pretax_balance_after: float


@dataclass(frozen=True)
class RothConversionResult:
    has_recommendation: bool
    reason: str = ""
    conversions: Tuple[RothConversion, ...] = ()
    conversion_window: Optional[Tuple[int, int]] = None
    total_converted: float = 0.0
    annual_conversion: float = 0.0
    lifetime_tax_savings: float = 0.0
    rmd_reduction: float = 0.0
    effective_rate_improvement: float = 0.0
    baseline_rmds: Tuple[float, ...] = ()
    optimized_rmds: Tuple[float, ...] = ()
    target_bracket_limit: float = 0.0


@dataclass(frozen=True)
class ProgressEvent:
    phase: str
    percent: float
    message: str


__all__ = [
    "LIFE_EXPECTANCY",
    "Contributions",
    "GlidePath",
    "RothConversionPolicy",
    "SimulationInputs",
    "TaxBreakdown",
    "YearRecord",
    "PathResult",
    "RunOutcome",
    "PercentileBands",
    "BatchSummary",
    "GenerationalParams",
    "BeneficiaryCohort",
    "GenerationSnapshot",
    "PayoutVariant",
    "GenerationalPayout",
    "GuardrailsResult",
    "RothConversion",
    "RothConversionResult",
    "ProgressEvent",
]
