"""Core financial calculators.

The `calculators` package contains small, focused modules that each implement
one piece of the retirement model:

* ``taxes`` – federal brackets, capital gains, NIIT, state, payroll and estate tax.
* ``rmd`` – Required Minimum Distribution rules and the Uniform Lifetime table.
* ``social_security`` – PIA, claiming-age adjustments, spousal benefits and taxation.
* ``healthcare`` – Medicare premiums with IRMAA and long-term care costs.
* ``returns`` – historical, bootstrapped and fixed return paths with bond glide paths.
* ``monte_carlo`` – single-path simulation and the Monte Carlo batch.
* ``generational`` – multi-generation trust payout projection.
* ``guardrails`` – how many failures a spending cut would prevent.
* ``roth`` – Roth conversions in a path and the conversion optimizer.

Each module exposes a few public functions with clear parameters and returns.  See
individual docstrings for details.
"""

from . import (  # noqa: F401
    taxes,
    rmd,
    social_security,
    healthcare,
    returns,
    monte_carlo,
    generational,
    guardrails,
    roth,
)

__all__ = [
    "taxes",
    "rmd",
    "social_security",
    "healthcare",
    "returns",
    "monte_carlo",
    "generational",
    "guardrails",
    "roth",
]
