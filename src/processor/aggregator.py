"""Project aggregation module for the project margin reconciler.

Folds the rows of the Revenue and Expenses tables into one canonical
:class:`~src.schema.models.Project` per project id. The merge policy has two
explicit phases:

- ``create_project`` seeds the identity fields (partner, product, country,
  month) from the first row seen for an id. These are never overwritten.
- ``merge_row`` accumulates every row into the numeric fields: bucket
  totals add up and ``num_images`` keeps the maximum seen.

Both numeric merges are commutative, so the totals do not depend on which
table is folded first or on row order within a table.

Usage::

    result = reconcile(revenue_rows, expense_rows)
    for project in result.projects:
        print(project.id, project.revenue, project.expenses)
    print(result.warnings)
"""

from collections import Counter
from dataclasses import dataclass, field

from src.schema.models import (
    UNKNOWN_MONTH,
    MappingTables,
    Project,
    RawRow,
    SourceTable,
)

from .ingestion import month_or_unknown, parse_amount, parse_image_count
from .mapper import CategoryMapper, normalize_country, normalize_partner


# ---------------------------------------------------------------------------
# Result container
# ---------------------------------------------------------------------------

@dataclass
class AggregationResult:
    """Output of :meth:`ProjectAggregator.result`."""
    projects: list[Project]
    skipped_rows: Counter = field(default_factory=Counter)
    unmapped_labels: Counter = field(default_factory=Counter)

    @property
    def count(self) -> int:
        return len(self.projects)

    @property
    def unknown_months(self) -> list[str]:
        """Ids of projects whose month could not be resolved."""
        return [p.id for p in self.projects if p.month == UNKNOWN_MONTH]

    @property
    def warnings(self) -> list[str]:
        """Human-readable notes on everything that was silently absorbed."""
        notes = []
        for source in SourceTable:
            skipped = self.skipped_rows.get(source, 0)
            if skipped:
                notes.append(
                    f"Skipped {skipped} {source.value} row(s) with no project id"
                )
        for (source, label), n in sorted(
                self.unmapped_labels.items(),
                key=lambda item: (item[0][0].value, item[0][1])):
            shown = label if label else "<blank>"
            notes.append(
                f"Ignored {n} {source.value} row(s) with unmapped line item '{shown}'"
            )
        unknown = self.unknown_months
        if unknown:
            notes.append(
                f"{len(unknown)} project(s) have no resolvable date: "
                f"{', '.join(unknown[:5])}{' ...' if len(unknown) > 5 else ''}"
            )
        return notes

    def to_dict(self) -> dict:
        return {
            "projects": [p.to_dict() for p in self.projects],
            "count": self.count,
        }


# ---------------------------------------------------------------------------
# ProjectAggregator
# ---------------------------------------------------------------------------

class ProjectAggregator:
    """Fold raw rows into per-project records.

    Parameters
    ----------
    tables : MappingTables, optional
        Line-item and alias tables; the built-in tables when omitted.

    The aggregator owns its project collection exclusively; fold rows
    sequentially and read the collection back with :meth:`result`.
    """

    def __init__(self, tables: MappingTables | None = None):
        self.mapper = CategoryMapper(tables)
        self.tables = self.mapper.tables
        self._projects: dict[str, Project] = {}
        self._skipped_rows: Counter = Counter()
        self._unmapped_labels: Counter = Counter()

    # ------------------------------------------------------------------
    # Merge policy
    # ------------------------------------------------------------------

    def create_project(self, row: RawRow) -> Project:
        """Create a project seeded with the identity fields of *row*."""
        return Project(
            id=row.project_id,
            partner=normalize_partner(row.partner, self.tables),
            product=row.package,
            country=normalize_country(row.country, self.tables),
            month=month_or_unknown(row.date),
        )

    @staticmethod
    def merge_row(project: Project, source: SourceTable, bucket: str | None,
                  amount: float, images: float) -> None:
        """Accumulate one row's numbers into *project*."""
        if images > project.num_images:
            project.num_images = images
        if bucket is None:
            return
        totals = project.revenue if source is SourceTable.REVENUE else project.expenses
        totals[bucket] = totals.get(bucket, 0.0) + amount

    # ------------------------------------------------------------------
    # Folding
    # ------------------------------------------------------------------

    def add_row(self, row: RawRow, source: SourceTable) -> Project | None:
        """Fold a single row; returns the affected project or ``None``."""
        if not row.project_id:
            self._skipped_rows[source] += 1
            return None

        project = self._projects.get(row.project_id)
        if project is None:
            project = self.create_project(row)
            self._projects[row.project_id] = project

        bucket = self.mapper.bucket_for(row.line_item, source)
        amount = 0.0
        if bucket is None:
            self._unmapped_labels[(source, row.line_item.strip().lower())] += 1
        else:
            amount = parse_amount(row.amount)

        self.merge_row(project, source, bucket, amount,
                       parse_image_count(row.images))
        return project

    def fold(self, rows, source: SourceTable) -> None:
        """Fold every row of one source table, in order."""
        for row in rows:
            self.add_row(row, source)

    def result(self) -> AggregationResult:
        """Snapshot of the collection in first-seen order."""
        return AggregationResult(
            projects=list(self._projects.values()),
            skipped_rows=Counter(self._skipped_rows),
            unmapped_labels=Counter(self._unmapped_labels),
        )


def reconcile(revenue_rows, expense_rows,
              tables: MappingTables | None = None) -> AggregationResult:
    """Reconcile both source tables into per-project records.

    All revenue rows are folded before any expense row, so revenue rows seed
    the identity fields of projects present in both tables.
    """
    aggregator = ProjectAggregator(tables)
    aggregator.fold(revenue_rows, SourceTable.REVENUE)
    aggregator.fold(expense_rows, SourceTable.EXPENSES)
    return aggregator.result()
