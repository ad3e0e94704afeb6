"""Tests for the end-to-end calculation."""

import math
from dataclasses import replace

import pandas as pd
import pytest

from retirement_engine import planner
from retirement_engine.errors import ValidationError
from retirement_engine.models import Contributions, GenerationalParams, SimulationInputs


def _base_inputs() -> SimulationInputs:
    return SimulationInputs(
        age1=60,
        retirement_age=65,
        pretax_balance=500000,
        taxable_balance=100000,
        return_mode="fixed",
        expected_return=0.05,
    )


def test_calculate_composes_every_component():
    result = planner.calculate(_base_inputs(), seed=7, n_paths=20,
                               generational_params=GenerationalParams(per_beneficiary_real=10000.0))
    assert result.batch.n_paths == 20
    assert result.summary["success_rate"] == "100.0%"
    assert result.summary["paths"] == "20"
    assert result.guardrails is None
    assert result.roth is not None
    assert result.generational is not None
    assert "generational_years" in result.summary


def test_first_retirement_year_tax_comes_from_representative_path():
    inputs = replace(_base_inputs(), state_tax_rate=0.04)
    result = planner.calculate(inputs, seed=7, n_paths=5)
    assert result.tax == result.representative.years[inputs.years_to_retirement + 1].tax
    assert result.tax.total > 0
    assert result.tax.state > 0


def test_estate_tax_and_net_estate_add_up():
    result = planner.calculate(_base_inputs(), seed=7, n_paths=5)
    assert result.estate_tax == 0.0
    assert math.isclose(result.net_estate + result.estate_tax, result.batch.eol_real_p50)


def test_guardrails_run_when_paths_fail():
    inputs = replace(_base_inputs(), expected_return=0.0, withdrawal_rate=0.15)
    result = planner.calculate(inputs, seed=7, n_paths=5)
    assert result.batch.prob_ruin > 0
    assert result.guardrails is not None
    assert result.guardrails.total_failures == 5


def test_roth_skipped_without_pretax_money():
    inputs = replace(_base_inputs(), pretax_balance=0.0, roth_balance=500000)
    result = planner.calculate(inputs, seed=7, n_paths=5)
    assert result.roth is None


def test_projected_pretax_balance_includes_contributions():
    inputs = SimulationInputs(age1=63, retirement_age=65, pretax_balance=100000, expected_return=0.10,
                              contributions1=Contributions(pretax=10000, match=2000))
    assert math.isclose(planner.projected_pretax_balance(inputs), (100000 * 1.1 + 12000) * 1.1 + 12000)


def test_series_and_frame():
    inputs = _base_inputs()
    result = planner.calculate(inputs, seed=7, n_paths=5)
    frame = result.to_frame()
    assert isinstance(frame, pd.DataFrame)
    assert len(frame) == len(result.representative.years) == 36
    assert frame.index[0] == inputs.start_year
    assert list(frame["p50_real"]) == list(result.batch.real.p50)
    assert (frame["gross_withdrawal"] >= frame["net_withdrawal"]).all()


def test_calculate_validates_first():
    with pytest.raises(ValidationError):
        planner.calculate(replace(_base_inputs(), age1=-3), seed=1, n_paths=5)


def test_unknown_target_bracket_raises_validation_error():
    with pytest.raises(ValidationError) as info:
        planner.calculate(_base_inputs(), seed=1, n_paths=5, target_bracket=0.25)
    assert info.value.field == "target_bracket"


def test_projected_pretax_balance_stops_each_saver_at_retirement_age():
    inputs = SimulationInputs(marital="married", age1=60, age2=50, retirement_age=65, expected_return=0.0,
                              contributions1=Contributions(pretax=20000))
    assert planner.projected_pretax_balance(inputs) == 100000


def test_representative_path_is_the_first_batch_path():
    inputs = replace(_base_inputs(), return_mode="random", withdrawal_rate=0.06)
    result = planner.calculate(inputs, seed=11, n_paths=10)
    assert result.representative.eol_real == result.batch.all_runs[0].eol_real
    assert result.representative.survival_years == result.batch.all_runs[0].survival_years
