"""Schema package: typed models and configuration for the reconciler.

Provides the contract between ingestion, aggregation, and the query layer:

- models.py: Core dataclasses (RawRow, Project, DerivedMetrics, MappingTables, etc.)
- mapping_tables.py: The built-in line-item, country, and partner tables
- loader.py: YAML serialization/deserialization of mapping tables
"""

from .loader import ConfigError, load_tables, save_tables, validate_tables_dict
from .mapping_tables import build_default_tables
from .models import (
    ALL,
    EXPENSE_BUCKETS,
    GROUP_FIELDS,
    PROJECT_ID_HEADERS,
    REVENUE_BUCKETS,
    UNKNOWN_MONTH,
    DerivedMetrics,
    ExpenseBucket,
    FilterParams,
    GroupSummary,
    MappingTables,
    Project,
    RawRow,
    RevenueBucket,
    SourceTable,
)

__all__ = [
    # Models
    "DerivedMetrics",
    "ExpenseBucket",
    "FilterParams",
    "GroupSummary",
    "MappingTables",
    "Project",
    "RawRow",
    "RevenueBucket",
    "SourceTable",
    # Constants
    "ALL",
    "EXPENSE_BUCKETS",
    "GROUP_FIELDS",
    "PROJECT_ID_HEADERS",
    "REVENUE_BUCKETS",
    "UNKNOWN_MONTH",
    # Tables
    "build_default_tables",
    # Loader
    "ConfigError",
    "load_tables",
    "save_tables",
    "validate_tables_dict",
]
