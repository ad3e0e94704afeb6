"""Tests for the simulation engine and the Monte Carlo batch."""

import math
import threading
from dataclasses import replace

import pytest

from retirement_engine.calculators import monte_carlo
from retirement_engine.errors import ComputationError, SimulationCancelled, ValidationError
from retirement_engine.models import Contributions, RothConversionPolicy, SimulationInputs


def _example_inputs() -> SimulationInputs:
    """Single, 35 retiring at 65, $100k income, 50k/150k/25k balances."""
    return SimulationInputs(
        marital="single",
        age1=35,
        retirement_age=65,
        primary_income=100000,
        taxable_balance=50000,
        pretax_balance=150000,
        roth_balance=25000,
        expected_return=0.098,
        inflation=0.026,
        withdrawal_rate=0.035,
        include_ss=False,
        return_mode="random",
    )


def _near_retirement_inputs(**changes) -> SimulationInputs:
    inputs = SimulationInputs(
        age1=60,
        retirement_age=65,
        pretax_balance=500000,
        return_mode="fixed",
        expected_return=0.05,
    )
    return replace(inputs, **changes)


def test_path_length_and_phases():
    path = monte_carlo.run_single_simulation(_near_retirement_inputs(), seed=1)
    assert len(path.years) == 36
    assert len(path.balances_real) == len(path.balances_nominal) == 36
    assert [r.phase for r in path.years[:5]] == ["accumulation"] * 5
    assert all(r.phase == "retirement" for r in path.years[5:])
    assert path.years[-1].age1 == 95


def test_repeatability_with_seed():
    """Simulations should be repeatable when the same seed is provided."""
    inputs = _example_inputs()
    a = monte_carlo.run_single_simulation(inputs, seed=99)
    b = monte_carlo.run_single_simulation(inputs, seed=99)
    assert a == b
    batch1 = monte_carlo.run_batch(inputs, base_seed=7, n_paths=30)
    batch2 = monte_carlo.run_batch(inputs, base_seed=7, n_paths=30)
    assert batch1 == batch2


def test_truly_random_ignores_seed():
    inputs = replace(_example_inputs(), return_mode="truly_random")
    batch1 = monte_carlo.run_batch(inputs, base_seed=7, n_paths=30)
    batch2 = monte_carlo.run_batch(inputs, base_seed=7, n_paths=30)
    assert batch1.all_runs != batch2.all_runs


def test_truly_random_batches_are_statistically_similar():
    inputs = replace(_example_inputs(), return_mode="truly_random")
    batch1 = monte_carlo.run_batch(inputs, n_paths=1000)
    batch2 = monte_carlo.run_batch(inputs, n_paths=1000)
    assert batch1.eol_real_p50 != batch2.eol_real_p50
    assert math.isclose(batch1.eol_real_p50, batch2.eol_real_p50, rel_tol=0.25)
    assert abs(batch1.prob_ruin - batch2.prob_ruin) < 0.08


def test_bands_are_ordered_and_ruin_is_a_probability():
    batch = monte_carlo.run_batch(_example_inputs(), base_seed=3, n_paths=200)
    for bands in (batch.real, batch.nominal):
        for i in range(len(bands)):
            assert bands.p10[i] <= bands.p25[i] <= bands.p50[i] <= bands.p75[i] <= bands.p90[i]
    assert 0.0 <= batch.prob_ruin <= 1.0
    assert batch.eol_real_p25 <= batch.eol_real_p50 <= batch.eol_real_p75
    assert len(batch.all_runs) == batch.n_paths == 200


def test_example_scenario():
    batch = monte_carlo.run_batch(_example_inputs(), base_seed=42, n_paths=1000)
    assert batch.eol_real_p50 > 0
    assert 0.0 < batch.prob_ruin < 0.5


def test_gross_equals_net_plus_tax_every_year():
    inputs = _near_retirement_inputs(
        taxable_balance=200000,
        taxable_basis=100000,
        roth_balance=100000,
        state_tax_rate=0.05,
        withdrawal_rate=0.06,
        include_ss=True,
        ss_income1=80000,
    )
    path = monte_carlo.run_single_simulation(inputs, seed=5)
    for record in path.years:
        assert math.isclose(record.gross_withdrawal, record.net_withdrawal + record.tax.total, abs_tol=1e-6)


def test_rmd_follows_older_spouse_age():
    inputs = _near_retirement_inputs(marital="married", age2=58)
    path = monte_carlo.run_single_simulation(inputs, seed=1)
    for record in path.years:
        older = max(record.age1, record.age2)
        if older < 73:
            assert record.rmd == 0.0
        else:
            assert record.rmd > 0.0


def test_ruin_is_an_outcome_not_an_error():
    inputs = _near_retirement_inputs(expected_return=0.0, withdrawal_rate=0.20)
    path = monte_carlo.run_single_simulation(inputs, seed=1)
    assert path.ruined
    assert path.survival_years < 30
    assert path.balances_nominal[-1] == 0.0


def test_emergency_fund_delays_ruin():
    base = _near_retirement_inputs(expected_return=0.0, withdrawal_rate=0.20)
    cushioned = replace(base, emergency_fund=200000)
    plain = monte_carlo.run_single_simulation(base, seed=1)
    padded = monte_carlo.run_single_simulation(cushioned, seed=1)
    assert padded.survival_years > plain.survival_years


def test_contributions_grow_the_balance():
    base = replace(_example_inputs(), return_mode="fixed")
    saver = replace(base, contributions1=Contributions(pretax=20000, roth=7000, match=5000))
    ytr = base.years_to_retirement
    assert (
        monte_carlo.run_single_simulation(saver, seed=1).balances_nominal[ytr]
        > monte_carlo.run_single_simulation(base, seed=1).balances_nominal[ytr]
    )


def test_each_spouse_stops_saving_at_retirement_age():
    inputs = SimulationInputs(
        marital="married",
        age1=60,
        age2=50,
        retirement_age=65,
        contributions1=Contributions(pretax=20000),
        return_mode="fixed",
        expected_return=0.0,
    )
    path = monte_carlo.run_single_simulation(inputs, seed=1)
    ytr = inputs.years_to_retirement
    assert ytr == 15
    assert path.balances_nominal[5] == 100000
    assert path.balances_nominal[ytr] == 100000


def test_taxable_contributions_capped_by_take_home_pay():
    inputs = SimulationInputs(
        age1=60,
        retirement_age=62,
        primary_income=50000,
        taxable_balance=10000,
        contributions1=Contributions(taxable=100000),
        return_mode="fixed",
        expected_return=0.0,
    )
    path = monte_carlo.run_single_simulation(inputs, seed=1)
    take_home = 50000 * (1 - 0.062 - 0.0145)
    assert math.isclose(path.balances_nominal[2], 10000 + 2 * take_home)


def test_roth_conversions_stop_at_rmd_age():
    inputs = _near_retirement_inputs(
        taxable_balance=300000,
        roth_conversion=RothConversionPolicy(target_bracket_rate=0.22),
    )
    path = monte_carlo.run_single_simulation(inputs, seed=1)
    assert path.total_roth_conversions > 0
    assert path.conversion_taxes_paid > 0
    assert all(r.roth_conversion == 0.0 for r in path.years if r.age1 >= 73)


def test_invalid_inputs_raise_before_running():
    with pytest.raises(ValidationError) as info:
        monte_carlo.run_single_simulation(_near_retirement_inputs(withdrawal_rate=0.5))
    assert info.value.field == "withdrawal_rate"
    with pytest.raises(ValidationError):
        monte_carlo.run_batch(_near_retirement_inputs(), n_paths=0)


def test_unexpected_failures_become_computation_errors(monkeypatch):
    def broken(*args, **kwargs):
        raise RuntimeError("boom")

    monkeypatch.setattr(monte_carlo, "return_path", broken)
    with pytest.raises(ComputationError) as info:
        monte_carlo.run_single_simulation(_near_retirement_inputs(), seed=1)
    assert info.value.kind == "RuntimeError"


def test_progress_reports_completion():
    calls = []
    monte_carlo.run_batch(_near_retirement_inputs(), base_seed=1, n_paths=250, progress_callback=lambda c, t: calls.append((c, t)))
    assert calls[-1] == (250, 250)
    assert [c for c, _ in calls] == sorted(c for c, _ in calls)
    assert len(calls) > 1


def test_cancellation():
    event = threading.Event()
    event.set()
    with pytest.raises(SimulationCancelled):
        monte_carlo.run_batch(_near_retirement_inputs(), base_seed=1, n_paths=100, cancel_event=event)


def test_cancellation_mid_batch():
    event = threading.Event()

    def progress(completed, total):
        if completed >= 20:
            event.set()

    with pytest.raises(SimulationCancelled):
        monte_carlo.run_batch(_near_retirement_inputs(), base_seed=1, n_paths=500, progress_callback=progress, cancel_event=event)


def test_derive_seeds_repeatable():
    assert list(monte_carlo.derive_seeds(5, 10)) == list(monte_carlo.derive_seeds(5, 10))


def test_max_withdrawal_rate_in_fixed_mode():
    inputs = _near_retirement_inputs()
    rate = monte_carlo.max_withdrawal_rate(inputs, target_success=0.9, n_paths=2)
    assert 0.0 < rate < 0.20
    assert monte_carlo.run_batch(replace(inputs, withdrawal_rate=rate), 0, 2).success_rate >= 0.9
    assert monte_carlo.run_batch(replace(inputs, withdrawal_rate=rate + 0.01), 0, 2).success_rate < 0.9
