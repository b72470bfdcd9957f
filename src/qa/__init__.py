"""QA validation package for the project margin reconciler.

Validates a reconciled project collection: checks id uniqueness, bucket
completeness, finite values, image counts, and month keys.
"""

from .validator import (
    Issue,
    QAResult,
    QAValidator,
    validate_projects,
)

__all__ = [
    "Issue",
    "QAResult",
    "QAValidator",
    "validate_projects",
]
