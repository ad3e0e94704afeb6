"""Expose component submodules for convenience."""

from .charts import fan_chart, results_fan_chart, success_gauge, tax_chart, generational_chart

__all__ = [
    "fan_chart",
    "results_fan_chart",
    "success_gauge",
    "tax_chart",
    "generational_chart",
]
