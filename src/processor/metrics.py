"""Derived financial metrics for reconciled projects.

All functions here are pure: they read projects and return new values,
never mutating their inputs. Every ratio falls back to 0 on a zero
denominator so downstream sums never see NaN.
"""

import math

from src.schema.models import DerivedMetrics, Project


# ---------------------------------------------------------------------------
# Safe math helpers
# ---------------------------------------------------------------------------

def safe_divide(numerator, denominator, default=0.0):
    """Divide *numerator* by *denominator*, returning *default* on failure."""
    try:
        if denominator is None:
            return default
        denom = float(denominator)
        if denom == 0 or math.isnan(denom):
            return default
        result = float(numerator) / denom
        if math.isnan(result) or math.isinf(result):
            return default
        return result
    except (TypeError, ValueError, ZeroDivisionError):
        return default


def margin_pct(revenue, expenses):
    """Margin as a percentage of revenue; 0 unless revenue is positive."""
    if revenue <= 0:
        return 0.0
    return safe_divide(revenue - expenses, revenue) * 100


# ---------------------------------------------------------------------------
# Per-project metrics
# ---------------------------------------------------------------------------

def total_revenue(project: Project) -> float:
    return float(sum(project.revenue.values()))


def total_expenses(project: Project) -> float:
    return float(sum(project.expenses.values()))


def compute_metrics(project: Project) -> DerivedMetrics:
    """Derive totals, margin, and per-image metrics for *project*."""
    revenue = total_revenue(project)
    expenses = total_expenses(project)
    return DerivedMetrics(
        total_revenue=revenue,
        total_expenses=expenses,
        margin=revenue - expenses,
        margin_pct=margin_pct(revenue, expenses),
        revenue_per_image=safe_divide(revenue, project.num_images),
        expense_per_image=safe_divide(expenses, project.num_images),
    )


# ---------------------------------------------------------------------------
# Collection totals
# ---------------------------------------------------------------------------

def summarize_totals(projects) -> dict:
    """Headline KPIs across a collection of projects."""
    revenue = 0.0
    expenses = 0.0
    images = 0.0
    count = 0
    for project in projects:
        revenue += total_revenue(project)
        expenses += total_expenses(project)
        images += project.num_images
        count += 1
    margin = revenue - expenses
    return {
        "total_revenue": revenue,
        "total_expenses": expenses,
        "num_images": images,
        "margin": margin,
        "margin_pct": margin_pct(revenue, expenses),
        "count": count,
    }
