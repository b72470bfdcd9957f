"""Label and entity mapper for the project margin reconciler.

Maps the free-text fields of a raw row onto canonical values using the
static :class:`~src.schema.models.MappingTables`:

- line items -> category buckets (separate revenue and expense tables)
- country spellings -> canonical country names
- partner spellings -> canonical partner names

plus the read-time "named partner vs Other" grouping used by partner
breakdowns. Lookups are exact after trimming and lowercasing; nothing is
fuzzy-matched.

Usage::

    from src.processor.mapper import CategoryMapper, normalize_country
    from src.schema.mapping_tables import build_default_tables

    tables = build_default_tables()
    mapper = CategoryMapper(tables)
    mapper.bucket_for(" TRAVEL ", SourceTable.REVENUE)   # "travel"
    mapper.bucket_for("Random Thing", SourceTable.REVENUE)  # None
    normalize_country("united states", tables)        # "USA"
"""

from src.schema.mapping_tables import build_default_tables
from src.schema.models import ALL, MappingTables, SourceTable


OTHER_PARTNER = "Other"


def _fold(label) -> str:
    if label is None:
        return ""
    return str(label).strip().lower()


# ---------------------------------------------------------------------------
# CategoryMapper
# ---------------------------------------------------------------------------

class CategoryMapper:
    """Resolve line-item labels to category buckets.

    Parameters
    ----------
    tables : MappingTables, optional
        Lookup tables; the built-in tables are used when omitted.
    """

    def __init__(self, tables: MappingTables | None = None):
        self.tables = tables or build_default_tables()

    def bucket_for(self, label, source: SourceTable) -> str | None:
        """Return the bucket for *label* in *source*'s table, or ``None``."""
        key = _fold(label)
        if not key:
            return None
        return self.tables.line_items(source).get(key)


# ---------------------------------------------------------------------------
# Entity normalization
# ---------------------------------------------------------------------------

def normalize_country(raw, tables: MappingTables | None = None) -> str:
    """Canonicalize a country name; unknown values pass through trimmed."""
    if raw is None:
        return ""
    tables = tables or build_default_tables()
    trimmed = str(raw).strip()
    if not trimmed:
        return ""
    return tables.country_aliases.get(trimmed.lower(), trimmed)


def normalize_partner(raw, tables: MappingTables | None = None) -> str:
    """Canonicalize a partner name; unknown values pass through trimmed."""
    if raw is None:
        return ""
    tables = tables or build_default_tables()
    trimmed = str(raw).strip()
    if not trimmed:
        return ""
    return tables.partner_aliases.get(trimmed.lower(), trimmed)


def partner_group(partner: str, tables: MappingTables | None = None,
                  selected_partner: str | None = None) -> str:
    """Classify a canonical partner as itself (named) or ``"Other"``.

    This is a view over the stored value, never a replacement for it. When
    the user has filtered on a specific partner (*selected_partner*), that
    partner is shown under its own name even if it is not on the named list.
    """
    tables = tables or build_default_tables()
    if partner in tables.named_partners:
        return partner
    if selected_partner and selected_partner != ALL and partner == selected_partner:
        return partner
    return OTHER_PARTNER


def chart_partners(tables: MappingTables | None = None,
                   selected_partner: str | None = None) -> list[str]:
    """Ordered partner groups for breakdowns: named partners, then Other."""
    tables = tables or build_default_tables()
    groups = list(tables.named_partners)
    if (selected_partner and selected_partner != ALL
            and selected_partner not in groups and selected_partner != OTHER_PARTNER):
        groups.append(selected_partner)
    groups.append(OTHER_PARTNER)
    return groups
