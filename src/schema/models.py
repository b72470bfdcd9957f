"""Reconciliation models - the contract between ingestion, aggregation, and queries.

Defines the typed structure of the data flowing through the engine: the
category buckets each source table maps into, the structured raw row, the
canonical per-project record, derived metrics, query parameters, and the
immutable mapping tables that drive normalization.
"""

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping


UNKNOWN_MONTH = "Unknown"
ALL = "All"

PROJECT_ID_HEADERS = ("Project Id", "Project ID", "project_id")


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class RevenueBucket(Enum):
    """Canonical revenue categories."""
    DELIVERABLES_APPROVED = "deliverablesApproved"
    ADDITIONAL_DELIVERABLES = "additionalDeliverables"
    LAST_MINUTE_RESCHEDULE = "lastMinuteReschedule"
    TRAVEL = "travel"
    OTHER = "other"


class ExpenseBucket(Enum):
    """Canonical expense categories."""
    BASE = "base"
    ADDITIONAL_DELIVERABLES = "additionalDeliverables"
    LAST_MINUTE_RESCHEDULE = "lastMinuteReschedule"
    TRAVEL = "travel"
    OTHER = "other"


REVENUE_BUCKETS = tuple(b.value for b in RevenueBucket)
EXPENSE_BUCKETS = tuple(b.value for b in ExpenseBucket)


class SourceTable(Enum):
    """The two independently sourced tables."""
    REVENUE = "revenue"
    EXPENSES = "expenses"

    @property
    def header_prefix(self) -> str:
        """Prefix of the per-source columns, e.g. ``Revenue Amount``."""
        return "Revenue" if self is SourceTable.REVENUE else "Expense"

    @property
    def sheet_name(self) -> str:
        return "Revenue" if self is SourceTable.REVENUE else "Expenses"

    @property
    def buckets(self) -> tuple[str, ...]:
        return REVENUE_BUCKETS if self is SourceTable.REVENUE else EXPENSE_BUCKETS


# ---------------------------------------------------------------------------
# Raw input row
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RawRow:
    """One data row of either source table, with missing columns as ``""``."""
    project_id: str = ""
    partner: str = ""
    package: str = ""
    country: str = ""
    images: str = ""
    date: str = ""
    line_item: str = ""
    amount: str = ""

    @classmethod
    def from_mapping(cls, mapping: Mapping[Any, Any],
                     source: SourceTable) -> "RawRow":
        """Build a row from a header -> value mapping.

        Header names and values are trimmed. The project id is the first
        non-empty value among the accepted id headers.
        """
        clean: dict[str, str] = {}
        for key, value in mapping.items():
            if value is None:
                value = ""
            clean[str(key).strip()] = str(value).strip()

        project_id = ""
        for header in PROJECT_ID_HEADERS:
            if clean.get(header):
                project_id = clean[header]
                break

        prefix = source.header_prefix
        return cls(
            project_id=project_id,
            partner=clean.get("Partner", ""),
            package=clean.get("Package", ""),
            country=clean.get("Country", ""),
            images=clean.get("Images", ""),
            date=clean.get(f"{prefix} Date", ""),
            line_item=clean.get(f"{prefix} Line Item", ""),
            amount=clean.get(f"{prefix} Amount", ""),
        )


# ---------------------------------------------------------------------------
# Canonical project record
# ---------------------------------------------------------------------------

def _empty_buckets(names: tuple[str, ...]) -> dict[str, float]:
    return {name: 0.0 for name in names}


@dataclass
class Project:
    """Reconciled per-project record."""
    id: str
    partner: str = ""
    product: str = ""
    country: str = ""
    num_images: float = 0.0
    month: str = UNKNOWN_MONTH
    revenue: dict[str, float] = field(
        default_factory=lambda: _empty_buckets(REVENUE_BUCKETS))
    expenses: dict[str, float] = field(
        default_factory=lambda: _empty_buckets(EXPENSE_BUCKETS))

    def get(self, name: str) -> Any:
        """Look up a categorical field (``partner``, ``product``, ``country``)."""
        return getattr(self, name)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "partner": self.partner,
            "product": self.product,
            "country": self.country,
            "numImages": self.num_images,
            "month": self.month,
            "revenue": dict(self.revenue),
            "expenses": dict(self.expenses),
        }

    @classmethod
    def from_dict(cls, d: dict) -> "Project":
        revenue = _empty_buckets(REVENUE_BUCKETS)
        revenue.update({k: float(v) for k, v in (d.get("revenue") or {}).items()})
        expenses = _empty_buckets(EXPENSE_BUCKETS)
        expenses.update({k: float(v) for k, v in (d.get("expenses") or {}).items()})
        return cls(
            id=str(d["id"]),
            partner=d.get("partner", ""),
            product=d.get("product", ""),
            country=d.get("country", ""),
            num_images=float(d.get("numImages", 0) or 0),
            month=d.get("month") or UNKNOWN_MONTH,
            revenue=revenue,
            expenses=expenses,
        )


@dataclass(frozen=True)
class DerivedMetrics:
    """Metrics computed on demand from a Project; never stored."""
    total_revenue: float
    total_expenses: float
    margin: float
    margin_pct: float
    revenue_per_image: float
    expense_per_image: float

    def to_dict(self) -> dict:
        return {
            "totalRevenue": self.total_revenue,
            "totalExpenses": self.total_expenses,
            "margin": self.margin,
            "marginPct": self.margin_pct,
            "revenuePerImage": self.revenue_per_image,
            "expensePerImage": self.expense_per_image,
        }


# ---------------------------------------------------------------------------
# Query parameters and results
# ---------------------------------------------------------------------------

GROUP_FIELDS = ("partner", "product", "country")


@dataclass
class FilterParams:
    """Filter constraints; ``"All"`` or ``None`` leaves a field unconstrained."""
    partner: str | None = ALL
    product: str | None = ALL
    country: str | None = ALL
    date_from: str | None = None
    date_to: str | None = None

    def constraints(self) -> dict[str, str]:
        """Active equality constraints keyed by field name."""
        result = {}
        for name in GROUP_FIELDS:
            value = getattr(self, name)
            if value is not None and value != ALL:
                result[name] = value
        return result

    @property
    def has_date_bounds(self) -> bool:
        return bool(self.date_from) or bool(self.date_to)

    @property
    def is_active(self) -> bool:
        return bool(self.constraints()) or self.has_date_bounds


@dataclass
class GroupSummary:
    """Aggregated metrics for one partition of a grouped query."""
    key: str
    total_revenue: float
    total_expenses: float
    num_images: float
    count: int
    margin: float
    margin_pct: float
    revenue_per_image: float
    expense_per_image: float

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "totalRevenue": self.total_revenue,
            "totalExpenses": self.total_expenses,
            "numImages": self.num_images,
            "count": self.count,
            "margin": self.margin,
            "marginPct": self.margin_pct,
            "revenuePerImage": self.revenue_per_image,
            "expensePerImage": self.expense_per_image,
        }


# ---------------------------------------------------------------------------
# Mapping tables (process-wide configuration)
# ---------------------------------------------------------------------------

def _freeze(mapping: Mapping[str, str] | None) -> Mapping[str, str]:
    """Lowercase/trim keys and wrap in a read-only view."""
    return MappingProxyType(
        {str(k).strip().lower(): v for k, v in (mapping or {}).items()}
    )


@dataclass(frozen=True)
class MappingTables:
    """Static lookup tables for categories and entity aliases.

    Keys are stored lowercased and trimmed. All tables are read-only views;
    build a new instance rather than mutating one.
    """
    revenue_line_items: Mapping[str, str]
    expense_line_items: Mapping[str, str]
    country_aliases: Mapping[str, str] = field(default_factory=dict)
    partner_aliases: Mapping[str, str] = field(default_factory=dict)
    named_partners: tuple[str, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "revenue_line_items", _freeze(self.revenue_line_items))
        object.__setattr__(self, "expense_line_items", _freeze(self.expense_line_items))
        object.__setattr__(self, "country_aliases", _freeze(self.country_aliases))
        object.__setattr__(self, "partner_aliases", _freeze(self.partner_aliases))
        object.__setattr__(self, "named_partners", tuple(self.named_partners))

    def line_items(self, source: SourceTable) -> Mapping[str, str]:
        """The line-item table for *source*."""
        if source is SourceTable.REVENUE:
            return self.revenue_line_items
        return self.expense_line_items

    def to_dict(self) -> dict:
        return {
            "revenue_line_items": dict(self.revenue_line_items),
            "expense_line_items": dict(self.expense_line_items),
            "country_aliases": dict(self.country_aliases),
            "partner_aliases": dict(self.partner_aliases),
            "named_partners": list(self.named_partners),
        }

    @classmethod
    def from_dict(cls, d: dict) -> "MappingTables":
        return cls(
            revenue_line_items=d["revenue_line_items"],
            expense_line_items=d["expense_line_items"],
            country_aliases=d.get("country_aliases") or {},
            partner_aliases=d.get("partner_aliases") or {},
            named_partners=tuple(d.get("named_partners") or ()),
        )
