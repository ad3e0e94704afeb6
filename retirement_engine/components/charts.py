# components/charts.py
# Plotly chart helpers over calculation results.
# All functions return a Plotly Figure; callers decide how to display it.

from typing import Dict, Sequence

import plotly.graph_objects as go

_LAYOUT = dict(
    template="plotly_white",
    height=380,
    margin=dict(l=10, r=10, t=40, b=10),
    legend=dict(orientation="h", yanchor="bottom", y=1.02, xanchor="right", x=1),
)


# ---------- Balance "fan" ----------
def fan_chart(ages: Sequence[int],
              p10: Sequence[float],
              p50: Sequence[float],
              p90: Sequence[float],
              title: str = "Portfolio Balance (Percentile Fan)",
              yaxis_title: str = "Dollars (today's)") -> go.Figure:
    """Shaded 10–90 band with a median line."""
    fig = go.Figure()

    # Upper edge first so the lower edge can fill up to it
    fig.add_trace(go.Scatter(
        x=list(ages), y=list(p90), mode="lines", line=dict(width=0),
        hoverinfo="skip", showlegend=False
    ))
    fig.add_trace(go.Scatter(
        x=list(ages), y=list(p10), mode="lines", line=dict(width=0),
        fill="tonexty", name="10–90%",
        hovertemplate="Age %{x}<br>$%{y:,.0f}<extra></extra>"
    ))
    fig.add_trace(go.Scatter(
        x=list(ages), y=list(p50), mode="lines", name="Median",
        hovertemplate="Age %{x}<br>$%{y:,.0f}<extra></extra>"
    ))

    fig.update_layout(title=title, xaxis_title="Age", yaxis_title=yaxis_title, **_LAYOUT)
    return fig


def results_fan_chart(result, real: bool = True) -> go.Figure:
    """Fan chart of a :class:`~retirement_engine.planner.CalculationResult`,
    against the first person's age."""
    ages = [r.age1 for r in result.representative.years]
    bands = result.batch.real if real else result.batch.nominal
    return fan_chart(
        ages, bands.p10, bands.p50, bands.p90,
        yaxis_title="Dollars (today's)" if real else "Dollars (nominal)",
    )


# ---------- Taxes over time (stacked bars) ----------
def tax_chart(result, title: str = "Taxes Over Time (Representative Path)") -> go.Figure:
    """Stacked ordinary / capital gains / NIIT / state tax per retirement year."""
    years = [r for r in result.representative.years if r.phase == "retirement" and r.gross_withdrawal > 0]
    ages = [r.age1 for r in years]
    parts: Dict[str, Sequence[float]] = {
        "Ordinary": [r.tax.ordinary for r in years],
        "Cap gains": [r.tax.capital_gains for r in years],
        "NIIT": [r.tax.niit for r in years],
        "State": [r.tax.state for r in years],
    }

    fig = go.Figure()
    for name, values in parts.items():
        fig.add_bar(x=ages, y=values, name=name)
    fig.update_layout(barmode="stack", title=title, xaxis_title="Age", yaxis_title="Dollars (nominal)", **_LAYOUT)
    return fig


# ---------- Success gauge ----------
def success_gauge(success_prob: float) -> go.Figure:
    """0–100% radial gauge for Monte Carlo success probability."""
    pct = max(0.0, min(100.0, float(success_prob) * 100.0))  # clamp 0–100
    fig = go.Figure(go.Indicator(
        mode="gauge+number",
        value=round(pct, 1),
        number={"suffix": "%"},
        gauge={
            "axis": {"range": [0, 100]},
            "bar": {"thickness": 0.35},
            "steps": [
                {"range": [0, 60], "color": "#ef4444"},    # red
                {"range": [60, 80], "color": "#f59e0b"},   # amber
                {"range": [80, 100], "color": "#22c55e"},  # green
            ],
        }
    ))
    fig.update_layout(template="plotly_white", height=220, margin=dict(l=10, r=10, t=10, b=10))
    return fig


# ---------- Generational payout ----------
def generational_chart(payout, title: str = "Trust Fund by Generation") -> go.Figure:
    """Real fund balance at each generation checkpoint for the p10/p50/p90 estates.

    Perpetual variants with no checkpoints are drawn as a flat line at their
    starting fund.
    """
    fig = go.Figure()
    for label in ("p10", "p50", "p90"):
        variant = getattr(payout, label)
        if variant.generations:
            x = [0] + [g.year for g in variant.generations]
            y = [variant.starting_fund_real] + [g.fund_real for g in variant.generations]
        else:
            x = [0, variant.years]
            y = [variant.starting_fund_real, variant.fund_left_real]
        suffix = " (perpetual)" if variant.is_perpetual else f" ({variant.years:,} yrs)"
        fig.add_trace(go.Scatter(
            x=x, y=y, mode="lines+markers", name=label.upper() + suffix,
            hovertemplate="Year %{x}<br>$%{y:,.0f}<extra></extra>"
        ))
    fig.update_layout(title=title, xaxis_title="Years after the estate passes",
                      yaxis_title="Dollars (today's)", **_LAYOUT)
    return fig
