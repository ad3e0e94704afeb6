"""Tests for Medicare/IRMAA premiums and long-term care costs."""

import math

from retirement_engine.calculators import healthcare


def test_irmaa_tiers():
    assert healthcare.irmaa_monthly_surcharge(100000, "single") == 0.0
    assert healthcare.irmaa_monthly_surcharge(109000, "single") == 0.0
    assert healthcare.irmaa_monthly_surcharge(120000, "single") == 81.20
    assert healthcare.irmaa_monthly_surcharge(200000, "married") == 0.0
    assert healthcare.irmaa_monthly_surcharge(1_000_000, "married") == 487.00


def test_medicare_cost_scales_with_people_and_inflation():
    one = healthcare.medicare_annual_cost(50000, "married", base_premium=200.0)
    assert math.isclose(one, 2400.0)
    two = healthcare.medicare_annual_cost(50000, "married", base_premium=200.0, covered=2, inflation_factor=1.5)
    assert math.isclose(two, 2400.0 * 2 * 1.5)
    assert healthcare.medicare_annual_cost(50000, covered=0) == 0.0


def test_medicare_uses_table_premium_by_default():
    assert math.isclose(healthcare.medicare_annual_cost(50000), 202.90 * 12)


def test_ltc_onset():
    assert healthcare.ltc_onset_age(0.6, 0.0, probability=0.5, age_range=(75, 90)) is None
    assert healthcare.ltc_onset_age(0.1, 0.0, probability=0.5, age_range=(75, 90)) == 75
    assert healthcare.ltc_onset_age(0.1, 0.999, probability=0.5, age_range=(75, 90)) == 90
    assert healthcare.ltc_onset_age(0.1, 0.5, probability=0.0, age_range=(75, 90)) is None


def test_ltc_cost_window():
    costs = [healthcare.ltc_annual_cost(age, 80, 3, 80000) for age in range(78, 85)]
    assert costs == [0.0, 0.0, 80000, 80000, 80000, 0.0, 0.0]
    assert healthcare.ltc_annual_cost(80, None, 3, 80000) == 0.0
