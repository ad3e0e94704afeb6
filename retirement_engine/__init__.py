"""Retirement outcome engine.

Monte Carlo projection of a household's savings through accumulation and
retirement, with federal and state taxes, Social Security, Medicare/IRMAA,
long-term care, RMDs and Roth conversions, plus a multi-generation payout
projection of the estate left behind.

Quick start::

    from retirement_engine import SimulationInputs, calculate

    inputs = SimulationInputs(age1=35, retirement_age=65, primary_income=100000,
                              taxable_balance=50000, pretax_balance=150000,
                              roth_balance=25000)
    result = calculate(inputs, seed=42, n_paths=1000)
    print(result.summary["success_rate"])

The library logs through :mod:`logging` under the ``retirement_engine``
namespace and never configures handlers.
"""

import logging

from . import calculators  # noqa: F401  (imported before validation)
from .errors import (
    ComputationError,
    GenerationalTimeoutError,
    RetirementEngineError,
    SimulationCancelled,
    ValidationError,
)
from .models import (
    Contributions,
    GenerationalParams,
    GlidePath,
    RothConversionPolicy,
    SimulationInputs,
)
from .validation import validate_inputs
from .calculators.monte_carlo import run_batch, run_single_simulation
from .planner import CalculationResult, calculate
from .dispatcher import ComputeDispatcher

logging.getLogger(__name__).addHandler(logging.NullHandler())

__version__ = "0.1.0"

__all__ = [
    "ComputationError",
    "GenerationalTimeoutError",
    "RetirementEngineError",
    "SimulationCancelled",
    "ValidationError",
    "Contributions",
    "GenerationalParams",
    "GlidePath",
    "RothConversionPolicy",
    "SimulationInputs",
    "validate_inputs",
    "run_batch",
    "run_single_simulation",
    "CalculationResult",
    "calculate",
    "ComputeDispatcher",
]
