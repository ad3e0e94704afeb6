"""Spending guardrails analysis.

Estimates how many failed paths a spending cut would have rescued.  Paths
that fail early are the most preventable: a household that trims spending as
soon as markets disappoint usually has time to recover.  Each failed path is
weighted by a prevention rate that falls with how long it lasted, scaled
linearly for cuts smaller than 10 %.

Example
-------

>>> # every path survived: nothing to improve
>>> from retirement_engine.models import RunOutcome
>>> runs = [RunOutcome(1.0, 1.0, False, 30)] * 10
>>> analyze_guardrails_runs(runs).new_success_rate
1.0
"""

from __future__ import annotations

from typing import Sequence

from ..models import BatchSummary, GuardrailsResult, RunOutcome

DEFAULT_SPENDING_REDUCTION = 0.10

# (failed by year, share of those failures a guardrail prevents)
_PREVENTION_RATES = ((5, 0.75), (10, 0.65), (15, 0.45), (20, 0.30), (25, 0.15))
_LATE_PREVENTION_RATE = 0.05


def prevention_rate(survival_years: int) -> float:
    for limit, rate in _PREVENTION_RATES:
        if survival_years <= limit:
            return rate
    return _LATE_PREVENTION_RATE


def analyze_guardrails_runs(
    runs: Sequence[RunOutcome],
    spending_reduction: float = DEFAULT_SPENDING_REDUCTION,
) -> GuardrailsResult:
    """Guardrails statistics for a set of raw path outcomes."""
    total = len(runs)
    failures = [r for r in runs if r.ruined]
    if total == 0 or not failures:
        return GuardrailsResult(
            total_failures=0,
            preventable_failures=0,
            baseline_success_rate=1.0,
            new_success_rate=1.0,
            improvement=0.0,
            spending_reduction=spending_reduction,
        )

    effectiveness = min(1.0, max(0.0, spending_reduction) / DEFAULT_SPENDING_REDUCTION)
    prevented = sum(prevention_rate(r.survival_years or 0) * effectiveness for r in failures)
    preventable = round(prevented)
    baseline = (total - len(failures)) / total
    new_rate = (total - len(failures) + preventable) / total
    return GuardrailsResult(
        total_failures=len(failures),
        preventable_failures=preventable,
        baseline_success_rate=baseline,
        new_success_rate=new_rate,
        improvement=new_rate - baseline,
        spending_reduction=spending_reduction,
    )


def analyze_guardrails(
    batch: BatchSummary,
    spending_reduction: float = DEFAULT_SPENDING_REDUCTION,
) -> GuardrailsResult:
    """Guardrails statistics for a batch; the batch itself is not modified."""
    return analyze_guardrails_runs(batch.all_runs, spending_reduction)


__all__ = ["DEFAULT_SPENDING_REDUCTION", "prevention_rate", "analyze_guardrails_runs", "analyze_guardrails"]
