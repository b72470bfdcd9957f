"""QA validator: checks a reconciled project collection against its invariants.

Validates that every record honours the reconciliation contract: one record
per id, every revenue and expense bucket present with a finite value, a
non-negative image count, and a month that is either ``YYYY-MM`` or the
``"Unknown"`` sentinel. Absorbed row-level problems reported by the
aggregator (unmapped line items, rows without an id) surface as warnings.

Usage::

    from src.qa.validator import QAValidator

    validator = QAValidator()
    result = validator.validate(projects, aggregation)
    assert result.passed, result.summary()
"""

import math
from collections import Counter
from dataclasses import dataclass, field
from typing import Any

from src.schema.models import (
    EXPENSE_BUCKETS,
    REVENUE_BUCKETS,
    UNKNOWN_MONTH,
    Project,
)
from src.processor.query import is_valid_month


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

@dataclass
class Issue:
    """A single QA issue found during validation."""
    severity: str       # "error" or "warning"
    project_id: str     # "" for collection-level issues
    category: str       # e.g. "duplicate_id", "bucket_missing", "month"
    message: str

    def __str__(self) -> str:
        loc = f"project {self.project_id}" if self.project_id else "collection"
        return f"[{self.severity.upper()}] {loc}: {self.message}"


@dataclass
class QAResult:
    """Issues found over a collection of ``project_count`` records."""
    issues: list[Issue] = field(default_factory=list)
    project_count: int = 0

    def _with(self, severity: str) -> list[Issue]:
        return [i for i in self.issues if i.severity == severity]

    @property
    def errors(self) -> list[Issue]:
        return self._with("error")

    @property
    def warnings(self) -> list[Issue]:
        return self._with("warning")

    @property
    def error_count(self) -> int:
        return len(self.errors)

    @property
    def warning_count(self) -> int:
        return len(self.warnings)

    @property
    def passed(self) -> bool:
        return not self.errors

    def by_category(self) -> Counter:
        return Counter(i.category for i in self.issues)

    def summary(self) -> str:
        verdict = "PASS" if self.passed else "FAIL"
        return (f"QA {verdict}: {self.project_count} project(s), "
                f"{self.error_count} error(s), {self.warning_count} warning(s)")

    def report(self) -> str:
        """Summary line, then errors before warnings, one per line."""
        lines = [self.summary()]
        lines.extend(f"  {issue}" for issue in self.errors + self.warnings)
        return "\n".join(lines)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _is_finite_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


# ---------------------------------------------------------------------------
# QAValidator
# ---------------------------------------------------------------------------

class QAValidator:
    """Checks reconciled records; one instance may validate many collections."""

    def __init__(self):
        self._issues: list[Issue] = []

    def validate(self, projects, aggregation=None) -> QAResult:
        """Run all checks over *projects*.

        Args:
            projects: Iterable of :class:`Project`.
            aggregation: Optional :class:`AggregationResult` whose warnings
                are carried over as QA warnings.
        """
        self._issues = []
        projects = list(projects)

        self._check_unique_ids(projects)
        for project in projects:
            self._check_buckets(project, "revenue", project.revenue, REVENUE_BUCKETS)
            self._check_buckets(project, "expenses", project.expenses, EXPENSE_BUCKETS)
            self._check_images(project)
            self._check_month(project)

        if aggregation is not None:
            for note in aggregation.warnings:
                self._warn("", "aggregation", note)

        return QAResult(issues=list(self._issues), project_count=len(projects))

    # ------------------------------------------------------------------
    # Checks
    # ------------------------------------------------------------------

    def _check_unique_ids(self, projects: list[Project]) -> None:
        seen: set[str] = set()
        for project in projects:
            if not project.id:
                self._error("", "missing_id", "Record has an empty project id")
                continue
            if project.id in seen:
                self._error(project.id, "duplicate_id",
                            "Project id appears more than once")
            seen.add(project.id)

    def _check_buckets(self, project: Project, label: str,
                       totals: dict, expected: tuple[str, ...]) -> None:
        missing = [b for b in expected if b not in totals]
        if missing:
            self._error(project.id, "bucket_missing",
                        f"{label} is missing bucket(s): {', '.join(missing)}")
        unknown = [b for b in totals if b not in expected]
        if unknown:
            self._error(project.id, "bucket_unknown",
                        f"{label} has unknown bucket(s): {', '.join(unknown)}")
        for bucket, value in totals.items():
            if not _is_finite_number(value):
                self._error(project.id, "bucket_value",
                            f"{label}.{bucket} is not a finite number: {value!r}")

    def _check_images(self, project: Project) -> None:
        if not _is_finite_number(project.num_images):
            self._error(project.id, "images",
                        f"numImages is not a finite number: {project.num_images!r}")
        elif project.num_images < 0:
            self._error(project.id, "images",
                        f"numImages is negative: {project.num_images}")

    def _check_month(self, project: Project) -> None:
        if project.month == UNKNOWN_MONTH:
            self._warn(project.id, "month",
                       "Month is Unknown; excluded from date-filtered views")
        elif not is_valid_month(project.month):
            self._error(project.id, "month",
                        f"Month {project.month!r} is neither YYYY-MM nor Unknown")

    # ------------------------------------------------------------------
    # Issue recording
    # ------------------------------------------------------------------

    def _error(self, project_id: str, category: str, message: str) -> None:
        self._issues.append(Issue("error", project_id, category, message))

    def _warn(self, project_id: str, category: str, message: str) -> None:
        self._issues.append(Issue("warning", project_id, category, message))


def validate_projects(projects, aggregation=None) -> QAResult:
    """Convenience wrapper around :meth:`QAValidator.validate`."""
    return QAValidator().validate(projects, aggregation)
