"""Query engine over a reconciled project collection.

Filtering, grouping, and the breakdown series consumed by the presentation
layer. The collection is treated as an immutable snapshot: every function
returns new objects and never mutates the projects it is given.

Month keys are ``YYYY-MM`` strings, so date ranges compare lexicographically.
Projects whose month is ``"Unknown"`` (or otherwise malformed) drop out of any
date-bounded query and out of month-indexed breakdowns.
"""

import re
from collections import Counter
from datetime import date

import pandas as pd

from src.schema.models import (
    ALL,
    EXPENSE_BUCKETS,
    GROUP_FIELDS,
    REVENUE_BUCKETS,
    FilterParams,
    GroupSummary,
    MappingTables,
    Project,
)

from .mapper import chart_partners, partner_group
from .metrics import compute_metrics, margin_pct, safe_divide


MONTH_PATTERN = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")

BREAKDOWN_METRICS = ("revenue", "margin", "travel")

_FRAME_COLUMNS = (
    ["id", "partner", "product", "country", "month", "num_images"]
    + [f"revenue_{b}" for b in REVENUE_BUCKETS]
    + [f"expense_{b}" for b in EXPENSE_BUCKETS]
    + ["total_revenue", "total_expenses", "margin", "margin_pct",
       "revenue_per_image", "expense_per_image"]
)


def is_valid_month(month) -> bool:
    """True for a well-formed ``YYYY-MM`` key."""
    return isinstance(month, str) and bool(MONTH_PATTERN.match(month))


# ---------------------------------------------------------------------------
# Frame export
# ---------------------------------------------------------------------------

def projects_to_frame(projects) -> pd.DataFrame:
    """Flatten projects and their derived metrics into a DataFrame."""
    records = []
    for p in projects:
        metrics = compute_metrics(p)
        record = {
            "id": p.id,
            "partner": p.partner,
            "product": p.product,
            "country": p.country,
            "month": p.month,
            "num_images": float(p.num_images),
        }
        for bucket in REVENUE_BUCKETS:
            record[f"revenue_{bucket}"] = float(p.revenue.get(bucket, 0.0))
        for bucket in EXPENSE_BUCKETS:
            record[f"expense_{bucket}"] = float(p.expenses.get(bucket, 0.0))
        record.update({
            "total_revenue": metrics.total_revenue,
            "total_expenses": metrics.total_expenses,
            "margin": metrics.margin,
            "margin_pct": metrics.margin_pct,
            "revenue_per_image": metrics.revenue_per_image,
            "expense_per_image": metrics.expense_per_image,
        })
        records.append(record)
    return pd.DataFrame(records, columns=_FRAME_COLUMNS)


# ---------------------------------------------------------------------------
# Filtering
# ---------------------------------------------------------------------------

def filter_projects(projects, params: FilterParams | None = None) -> list[Project]:
    """Return the projects matching *params*, in their original order.

    Raises:
        ValueError: If a date bound is not a ``YYYY-MM`` key.
    """
    params = params or FilterParams()
    date_from = params.date_from or None
    date_to = params.date_to or None
    for bound in (date_from, date_to):
        if bound is not None and not is_valid_month(bound):
            raise ValueError(f"Date bound {bound!r} is not a YYYY-MM month")
    if not params.is_active:
        return list(projects)

    constraints = params.constraints()
    result = []
    for project in projects:
        if any(project.get(name) != value for name, value in constraints.items()):
            continue
        if date_from or date_to:
            if not is_valid_month(project.month):
                continue
            if date_from and project.month < date_from:
                continue
            if date_to and project.month > date_to:
                continue
        result.append(project)
    return result


def filter_options(projects, field: str) -> list[str]:
    """Choices for a categorical filter: ``"All"`` then distinct values."""
    if field not in GROUP_FIELDS:
        raise ValueError(
            f"Unknown filter field '{field}'. "
            f"Valid fields: {', '.join(GROUP_FIELDS)}"
        )
    return [ALL] + list(dict.fromkeys(p.get(field) for p in projects))


def available_months(projects) -> list[str]:
    """Sorted distinct well-formed months present in the collection."""
    return sorted({p.month for p in projects if is_valid_month(p.month)})


def _shift_month(day: date, months_back: int) -> str:
    index = day.year * 12 + (day.month - 1) - months_back
    return f"{index // 12:04d}-{index % 12 + 1:02d}"


def default_date_range(today: date | None = None) -> tuple[str, str]:
    """Default dashboard window: eight months ago through last month."""
    today = today or date.today()
    return _shift_month(today, 8), _shift_month(today, 1)


# ---------------------------------------------------------------------------
# Grouping
# ---------------------------------------------------------------------------

def group_projects(projects, group_by: str = "partner") -> list[GroupSummary]:
    """Partition *projects* by a categorical field and aggregate each part.

    Groups are ordered by total revenue, highest first; ties keep the order
    in which the groups first appear.

    Raises:
        ValueError: If *group_by* is not one of partner, product, country.
    """
    if group_by not in GROUP_FIELDS:
        raise ValueError(
            f"Unknown group key '{group_by}'. "
            f"Valid keys: {', '.join(GROUP_FIELDS)}"
        )
    df = projects_to_frame(projects)
    if df.empty:
        return []

    grouped = df.groupby(group_by, sort=False, dropna=False).agg(
        total_revenue=("total_revenue", "sum"),
        total_expenses=("total_expenses", "sum"),
        num_images=("num_images", "sum"),
        project_count=("id", "size"),
    )
    grouped = grouped.sort_values("total_revenue", ascending=False, kind="stable")

    summaries = []
    for key, row in grouped.iterrows():
        revenue = float(row["total_revenue"])
        expenses = float(row["total_expenses"])
        images = float(row["num_images"])
        summaries.append(GroupSummary(
            key=key,
            total_revenue=revenue,
            total_expenses=expenses,
            num_images=images,
            count=int(row["project_count"]),
            margin=revenue - expenses,
            margin_pct=margin_pct(revenue, expenses),
            revenue_per_image=safe_divide(revenue, images),
            expense_per_image=safe_divide(expenses, images),
        ))
    return summaries


# ---------------------------------------------------------------------------
# Breakdown series
# ---------------------------------------------------------------------------

def _breakdown_value(project: Project, metric: str) -> float:
    if metric == "travel":
        return float(project.expenses.get("travel", 0.0))
    metrics = compute_metrics(project)
    if metric == "margin":
        return metrics.margin
    return metrics.total_revenue


def monthly_partner_breakdown(projects, metric: str = "revenue",
                              tables: MappingTables | None = None,
                              selected_partner: str | None = None) -> list[dict]:
    """Per-month totals of *metric*, split by partner group.

    Returns one dict per month (ascending), e.g.
    ``{"month": "2024-03", "Uber Eats": 1200.0, "Other": 300.0}``. Only
    partner groups with activity in at least one month appear: a positive
    value for revenue and travel, any non-zero value for margin.

    Raises:
        ValueError: If *metric* is not one of revenue, margin, travel.
    """
    if metric not in BREAKDOWN_METRICS:
        raise ValueError(
            f"Unknown breakdown metric '{metric}'. "
            f"Valid metrics: {', '.join(BREAKDOWN_METRICS)}"
        )
    records = [
        {
            "month": p.month,
            "group": partner_group(p.partner, tables, selected_partner),
            "value": _breakdown_value(p, metric),
        }
        for p in projects
        if is_valid_month(p.month)
    ]
    if not records:
        return []

    df = pd.DataFrame(records)
    groups = chart_partners(tables, selected_partner)
    table = df.pivot_table(index="month", columns="group", values="value",
                           aggfunc="sum", fill_value=0.0)
    table = table.reindex(columns=groups, fill_value=0.0).sort_index()

    if metric == "margin":
        active = [g for g in groups if (table[g] != 0).any()]
    else:
        active = [g for g in groups if (table[g] > 0).any()]

    rows = []
    for month, values in table.iterrows():
        row = {"month": month}
        for group in active:
            row[group] = float(values[group])
        rows.append(row)
    return rows


def expense_per_image_by_product(projects, top_n: int = 10) -> list[dict]:
    """Core vs variable expense per image for the most frequent products.

    The *top_n* products by project count are ordered by partner, then
    product name, where partner is the last one seen for that product.
    Core cost is base + additional deliverables; variable cost is last
    minute reschedule + travel + other. Products with no images are dropped.
    """
    projects = list(projects)
    counts = Counter()
    last_partner: dict[str, str] = {}
    for p in projects:
        counts[p.product] += 1
        last_partner[p.product] = p.partner

    top = [product for product, _ in
           sorted(counts.items(), key=lambda item: -item[1])[:top_n]]
    top.sort(key=lambda product: (last_partner.get(product, ""), product))

    rows = []
    for product in top:
        subset = [p for p in projects if p.product == product]
        images = sum(p.num_images for p in subset)
        if not images:
            continue
        core = sum(p.expenses.get("base", 0.0)
                   + p.expenses.get("additionalDeliverables", 0.0) for p in subset)
        variable = sum(p.expenses.get("lastMinuteReschedule", 0.0)
                       + p.expenses.get("travel", 0.0)
                       + p.expenses.get("other", 0.0) for p in subset)
        rows.append({
            "product": product,
            "partner": last_partner.get(product, ""),
            "core_per_image": core / images,
            "variable_per_image": variable / images,
        })
    return rows
