"""Tests for input validation."""

from dataclasses import replace

import pytest

from retirement_engine.errors import ValidationError
from retirement_engine.models import Contributions, GlidePath, RothConversionPolicy, SimulationInputs
from retirement_engine.validation import validate_inputs, validate_target_bracket


def _base_inputs() -> SimulationInputs:
    return SimulationInputs(
        age1=35,
        retirement_age=65,
        primary_income=100000,
        taxable_balance=50000,
        pretax_balance=150000,
        roth_balance=25000,
    )


def _field_of(inputs: SimulationInputs) -> str:
    with pytest.raises(ValidationError) as info:
        validate_inputs(inputs)
    return info.value.field


def test_valid_inputs_pass_through():
    inputs = _base_inputs()
    assert validate_inputs(inputs) is inputs


def test_validation_error_is_a_value_error():
    with pytest.raises(ValueError):
        validate_inputs(replace(_base_inputs(), age1=-1))


@pytest.mark.parametrize(
    "changes, field",
    [
        ({"age1": -1}, "age1"),
        ({"age1": 121}, "age1"),
        ({"age1": 35.5}, "age1"),
        ({"retirement_age": 30}, "retirement_age"),
        ({"marital": "divorced"}, "marital"),
        ({"pretax_balance": -1.0}, "pretax_balance"),
        ({"taxable_balance": float("nan")}, "taxable_balance"),
        ({"expected_return": 0.9}, "expected_return"),
        ({"inflation": -0.01}, "inflation"),
        ({"withdrawal_rate": 0.25}, "withdrawal_rate"),
        ({"state_tax_rate": 0.3}, "state_tax_rate"),
        ({"ltc_probability": 1.5}, "ltc_probability"),
        ({"return_mode": "lottery"}, "return_mode"),
        ({"walk_series": "sideways"}, "walk_series"),
        ({"employment_type1": "pirate"}, "employment_type1"),
        ({"return_mode": "historical", "historical_start_year": 1900}, "historical_start_year"),
    ],
)
def test_field_identifying_errors(changes, field):
    assert _field_of(replace(_base_inputs(), **changes)) == field


def test_spouse_age_only_checked_when_married():
    single = replace(_base_inputs(), age2=500)
    validate_inputs(single)
    assert _field_of(replace(single, marital="married")) == "age2"


def test_retirement_age_checked_against_younger_spouse():
    inputs = replace(_base_inputs(), marital="married", age1=60, age2=40, retirement_age=50)
    validate_inputs(inputs)
    assert _field_of(replace(inputs, retirement_age=38)) == "retirement_age"


def test_contributions_bounded():
    inputs = replace(_base_inputs(), contributions1=Contributions(pretax=2_000_000))
    assert _field_of(inputs) == "contributions1.pretax"


def test_requires_balance_or_contributions():
    empty = SimulationInputs(age1=35, retirement_age=65)
    assert _field_of(empty) == "pretax_balance"
    validate_inputs(replace(empty, contributions1=Contributions(roth=7000)))


def test_social_security_fields_checked_when_included():
    inputs = replace(_base_inputs(), ss_income1=-5)
    validate_inputs(inputs)
    assert _field_of(replace(inputs, include_ss=True)) == "ss_income1"


def test_glide_path_checks():
    bad_shape = replace(_base_inputs(), bond_glide_path=GlidePath(shape="zigzag"))
    assert _field_of(bad_shape) == "bond_glide_path.shape"
    backwards = replace(_base_inputs(), bond_glide_path=GlidePath(start_age=60, end_age=50))
    assert _field_of(backwards) == "bond_glide_path.end_age"


def test_roth_target_must_be_a_bracket_rate():
    validate_inputs(replace(_base_inputs(), roth_conversion=RothConversionPolicy(0.24)))
    bad = replace(_base_inputs(), roth_conversion=RothConversionPolicy(0.15))
    assert _field_of(bad) == "roth_conversion.target_bracket_rate"


def test_message_reports_entered_value():
    with pytest.raises(ValidationError) as info:
        validate_inputs(replace(_base_inputs(), withdrawal_rate=0.5))
    assert "extremely high" in info.value.message


def test_validate_target_bracket():
    assert validate_target_bracket(0.32, "married") == 0.32
    with pytest.raises(ValidationError) as info:
        validate_target_bracket(0.25)
    assert info.value.field == "target_bracket"
    assert "22%" in info.value.message
