"""Data processor module for the project margin reconciler."""

from .aggregator import (
    AggregationResult,
    ProjectAggregator,
    reconcile,
)
from .ingestion import (
    ingest,
    ingest_sources,
    ingest_workbook,
    parse_amount,
    parse_image_count,
    resolve_month,
    month_or_unknown,
    clean_columns,
    read_csv_auto,
    read_table,
    read_workbook,
    rows_from_frame,
    detect_encoding,
    IngestionError,
    SOURCE_TYPES,
)
from .mapper import (
    CategoryMapper,
    chart_partners,
    normalize_country,
    normalize_partner,
    partner_group,
)
from .metrics import (
    compute_metrics,
    safe_divide,
    summarize_totals,
)
from .query import (
    available_months,
    default_date_range,
    expense_per_image_by_product,
    filter_options,
    filter_projects,
    group_projects,
    monthly_partner_breakdown,
    projects_to_frame,
)
