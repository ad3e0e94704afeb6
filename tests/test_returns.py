"""Tests for return paths and bond glide paths."""

import math

import numpy as np
import pytest

from retirement_engine.calculators import returns
from retirement_engine.models import GlidePath, SimulationInputs


def test_return_data_is_capped():
    assert len(returns.SP500_CAPPED) == returns.SP500_END_YEAR - returns.SP500_START_YEAR + 1
    assert returns.RETURN_DATA.max() <= 0.15
    assert returns.RETURN_DATA.min() >= -0.15
    assert len(returns.RETURN_DATA) == 2 * len(returns.SP500_CAPPED)


def test_fixed_mode():
    path = returns.return_path(SimulationInputs(return_mode="fixed", expected_return=0.07), 5, np.random.default_rng(0))
    assert np.allclose(path, 1.07)


def test_historical_mode_replays_in_order():
    inputs = SimulationInputs(return_mode="historical", historical_start_year=1931)
    path = returns.return_path(inputs, 3, np.random.default_rng(0))
    assert np.allclose(path - 1, returns.RETURN_DATA[3:6])


def test_historical_mode_wraps_around():
    inputs = SimulationInputs(return_mode="historical", historical_start_year=2024)
    path = returns.return_path(inputs, len(returns.RETURN_DATA) + 2, np.random.default_rng(0))
    assert len(path) == len(returns.RETURN_DATA) + 2
    assert math.isclose(path[len(returns.RETURN_DATA)] - 1, returns.RETURN_DATA[96 % len(returns.RETURN_DATA)])


def test_random_mode_repeatable_with_seed():
    inputs = SimulationInputs(return_mode="random")
    a = returns.return_path(inputs, 40, np.random.default_rng(123))
    b = returns.return_path(inputs, 40, np.random.default_rng(123))
    c = returns.return_path(inputs, 40, np.random.default_rng(124))
    assert np.array_equal(a, b)
    assert not np.array_equal(a, c)


def test_real_walk_series_deflates():
    nominal = returns.return_path(SimulationInputs(return_mode="historical"), 10, np.random.default_rng(0))
    real = returns.return_path(SimulationInputs(return_mode="historical", walk_series="real"), 10, np.random.default_rng(0))
    assert np.allclose(real, nominal / 1.026)


def test_unknown_mode_raises():
    with pytest.raises(ValueError):
        returns.return_path(SimulationInputs(return_mode="lottery"), 3, np.random.default_rng(0))


def test_bond_allocation_strategies():
    assert returns.bond_allocation(50, None) == 0.0
    assert returns.bond_allocation(50, GlidePath(strategy="aggressive")) == 0.0
    age_based = GlidePath(strategy="age_based")
    assert returns.bond_allocation(30, age_based) == 0.10
    assert math.isclose(returns.bond_allocation(50, age_based), 0.35)
    assert returns.bond_allocation(70, age_based) == 0.60


def test_custom_glide_path_shapes():
    linear = GlidePath(start_pct=0.0, end_pct=1.0, start_age=40, end_age=60)
    assert math.isclose(returns.bond_allocation(45, linear), 0.25)
    assert returns.bond_allocation(30, linear) == 0.0
    assert returns.bond_allocation(65, linear) == 1.0
    accelerated = GlidePath(start_pct=0.0, end_pct=1.0, start_age=40, end_age=60, shape="accelerated")
    decelerated = GlidePath(start_pct=0.0, end_pct=1.0, start_age=40, end_age=60, shape="decelerated")
    assert math.isclose(returns.bond_allocation(45, accelerated), 0.5)
    assert math.isclose(returns.bond_allocation(45, decelerated), 0.0625)


def test_glide_path_blends_fixed_return():
    inputs = SimulationInputs(
        age1=70,
        return_mode="fixed",
        expected_return=0.08,
        bond_glide_path=GlidePath(strategy="age_based"),
    )
    path = returns.return_path(inputs, 2, np.random.default_rng(0))
    assert np.allclose(path, 1 + 0.4 * 0.08 + 0.6 * returns.BOND_NOMINAL_AVG)


def test_glide_path_follows_younger_then_older_spouse():
    inputs = SimulationInputs(
        marital="married",
        age1=60,
        age2=40,
        retirement_age=65,
        return_mode="fixed",
        expected_return=0.08,
        bond_glide_path=GlidePath(strategy="age_based"),
    )
    ytr = inputs.years_to_retirement
    assert list(returns.glide_ages(inputs, ytr + 2)[[0, ytr, ytr + 1]]) == [40, 65, 86]
    path = returns.return_path(inputs, ytr + 2, np.random.default_rng(0))
    assert math.isclose(path[0], 1 + 0.9 * 0.08 + 0.1 * returns.BOND_NOMINAL_AVG)
    assert math.isclose(path[ytr + 1], 1 + 0.4 * 0.08 + 0.6 * returns.BOND_NOMINAL_AVG)
