"""CLI entry point for the project margin reconciler.

Orchestrates the full pipeline: mapping-table selection, ingestion of the
Revenue and Expenses tables, reconciliation, QA validation, and the
filter/group queries over the reconciled output.

Usage::

    # Reconcile two CSV exports into a JSON collection
    python -m src.cli reconcile \\
        --revenue data/revenue.csv \\
        --expenses data/expenses.csv \\
        --output output/projects.json

    # Reconcile a workbook with "Revenue" and "Expenses" sheets
    python -m src.cli reconcile --workbook data/finance.xlsx -o output/projects.json

    # Grouped summary of a reconciled collection
    python -m src.cli summary --input output/projects.json \\
        --partner GrubHub --date-from 2024-02 --date-to 2024-04 \\
        --group-by product

    # Validate a reconciled collection
    python -m src.cli validate --input output/projects.json

    # Show (or export) the mapping tables
    python -m src.cli inspect --export output/tables.yaml

    # Use custom YAML mapping tables
    python -m src.cli reconcile --tables config/tables.yaml \\
        --workbook data/finance.xlsx -o output/projects.json
"""

import argparse
import json
import sys
from pathlib import Path

from src.processor.aggregator import reconcile
from src.processor.ingestion import IngestionError, ingest_sources, ingest_workbook
from src.processor.metrics import summarize_totals
from src.processor.query import filter_projects, group_projects, is_valid_month
from src.qa.validator import QAValidator
from src.schema.loader import ConfigError, load_tables, save_tables
from src.schema.mapping_tables import build_default_tables
from src.schema.models import ALL, GROUP_FIELDS, FilterParams, Project, SourceTable


# ---------------------------------------------------------------------------
# Tables loading
# ---------------------------------------------------------------------------

def _load_tables(args):
    """Load MappingTables from CLI args (--tables or the built-in tables)."""
    path = getattr(args, "tables", None)
    if not path:
        return build_default_tables()
    try:
        return load_tables(path)
    except ConfigError as exc:
        _error(str(exc))


# ---------------------------------------------------------------------------
# Data ingestion
# ---------------------------------------------------------------------------

def _ingest_sources(args):
    """Ingest both source tables specified via CLI flags.

    Returns a dict mapping :class:`SourceTable` to a list of rows. Any
    failure aborts the whole run.
    """
    try:
        if getattr(args, "workbook", None):
            _info(f"Ingesting revenue and expenses from {args.workbook}")
            return ingest_workbook(args.workbook)

        revenue = getattr(args, "revenue", None)
        expenses = getattr(args, "expenses", None)
        if not revenue or not expenses:
            _error("Provide --workbook, or both --revenue and --expenses.")
        _info(f"Ingesting revenue from {revenue}")
        _info(f"Ingesting expenses from {expenses}")
        return ingest_sources(revenue, expenses)
    except IngestionError as exc:
        _error(str(exc))


def _load_projects(path):
    """Load a reconciled collection written by ``reconcile``."""
    p = Path(path)
    if not p.exists():
        _error(f"Input file not found: {p}")
    try:
        data = json.loads(p.read_text())
        return [Project.from_dict(d) for d in data["projects"]]
    except (ValueError, KeyError, TypeError) as exc:
        _error(f"Could not read reconciled projects from {p}: {exc}")


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

def cmd_reconcile(args):
    """Reconcile the Revenue and Expenses tables."""
    tables = _load_tables(args)
    sources = _ingest_sources(args)

    revenue_rows = sources[SourceTable.REVENUE]
    expense_rows = sources[SourceTable.EXPENSES]
    _info(f"Rows: {len(revenue_rows)} revenue, {len(expense_rows)} expenses")

    result = reconcile(revenue_rows, expense_rows, tables)
    _info(f"Reconciled {result.count} project(s)")

    if result.warnings:
        for w in result.warnings:
            _warn(w)

    # QA validation
    qa_result = QAValidator().validate(result.projects)
    if qa_result.passed:
        _info(qa_result.summary())
    else:
        _warn(qa_result.summary())
        if args.verbose:
            print(qa_result.report(), file=sys.stderr)
        if args.strict:
            _error("QA validation failed. Rerun without --strict to write anyway.")

    # Write output
    text = json.dumps(result.to_dict(), indent=2)
    if args.output:
        output = Path(args.output)
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(text)
        _info(f"Written: {output} ({result.count} projects)")
    else:
        print(text)


def cmd_summary(args):
    """Print totals and a grouped breakdown of a reconciled collection."""
    projects = _load_projects(args.input)
    params = FilterParams(
        partner=args.partner,
        product=args.product,
        country=args.country,
        date_from=args.date_from,
        date_to=args.date_to,
    )
    filtered = filter_projects(projects, params)
    totals = summarize_totals(filtered)

    if params.is_active:
        active = dict(params.constraints())
        if params.has_date_bounds:
            active["months"] = f"{params.date_from or '...'} to {params.date_to or '...'}"
        print("Filters:        " + ", ".join(f"{k}={v}" for k, v in active.items()))
    print(f"Projects:       {totals['count']} / {len(projects)}")
    print(f"Total revenue:  ${totals['total_revenue']:,.2f}")
    print(f"Total expenses: ${totals['total_expenses']:,.2f}")
    print(f"Margin:         ${totals['margin']:,.2f} ({totals['margin_pct']:.1f}%)")
    print(f"Images:         {totals['num_images']:,.0f}")
    print()

    groups = group_projects(filtered, args.group_by)
    if args.json:
        print(json.dumps([g.to_dict() for g in groups], indent=2))
        return

    print(f"By {args.group_by}:")
    for g in groups:
        print(f"  {g.key or '(blank)':<28}"
              f" {g.count:>4} proj"
              f"  rev ${g.total_revenue:>12,.2f}"
              f"  exp ${g.total_expenses:>12,.2f}"
              f"  margin {g.margin_pct:>6.1f}%"
              f"  rev/img ${g.revenue_per_image:>8,.2f}"
              f"  exp/img ${g.expense_per_image:>8,.2f}")


def cmd_validate(args):
    """Validate a reconciled collection."""
    projects = _load_projects(args.input)
    _info(f"Validating {len(projects)} project(s) from {args.input}")

    qa_result = QAValidator().validate(projects)

    print(qa_result.report())
    sys.exit(0 if qa_result.passed else 1)


def cmd_inspect(args):
    """Show the mapping tables."""
    tables = _load_tables(args)

    sections = [
        ("Revenue line items", tables.revenue_line_items),
        ("Expense line items", tables.expense_line_items),
        ("Country aliases", tables.country_aliases),
        ("Partner aliases", tables.partner_aliases),
    ]
    for title, table in sections:
        print(f"{title}: {len(table)}")
        if args.verbose:
            for label, value in table.items():
                print(f"  {label!r:<28} -> {value}")
    print(f"Named partners: {', '.join(tables.named_partners)}")

    if args.export:
        save_tables(tables, args.export)
        _info(f"Written: {args.export}")


# ---------------------------------------------------------------------------
# Output helpers
# ---------------------------------------------------------------------------

def _info(msg):
    print(f"  {msg}", file=sys.stderr)


def _warn(msg):
    print(f"  WARNING: {msg}", file=sys.stderr)


def _error(msg):
    print(f"  ERROR: {msg}", file=sys.stderr)
    sys.exit(1)


# ---------------------------------------------------------------------------
# Argument parsing
# ---------------------------------------------------------------------------

def build_parser():
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="margin-reconciler",
        description="Reconcile revenue and expense tables into per-project margins.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    # ---- reconcile ----
    rec = subparsers.add_parser(
        "reconcile",
        help="Reconcile Revenue and Expenses tables into a JSON collection.",
    )
    _add_tables_args(rec)
    _add_data_args(rec)
    rec.add_argument(
        "-o", "--output",
        help="Output JSON file path (default: stdout).",
    )
    rec.add_argument(
        "--strict",
        action="store_true",
        default=False,
        help="Fail without writing output if QA validation fails.",
    )
    rec.add_argument(
        "-v", "--verbose",
        action="store_true",
        default=False,
        help="Show detailed output (full QA report on failure).",
    )
    rec.set_defaults(func=cmd_reconcile)

    # ---- summary ----
    summ = subparsers.add_parser(
        "summary",
        help="Filter and group a reconciled collection.",
    )
    _add_input_args(summ)
    _add_filter_args(summ)
    summ.add_argument(
        "--group-by",
        dest="group_by",
        choices=list(GROUP_FIELDS),
        default="partner",
        help="Field to group by (default: partner).",
    )
    summ.add_argument(
        "--json",
        action="store_true",
        default=False,
        help="Print the grouped rows as JSON.",
    )
    summ.set_defaults(func=cmd_summary)

    # ---- validate ----
    val = subparsers.add_parser(
        "validate",
        help="Validate a reconciled collection.",
    )
    _add_input_args(val)
    val.set_defaults(func=cmd_validate)

    # ---- inspect ----
    insp = subparsers.add_parser(
        "inspect",
        help="Show the line-item and alias mapping tables.",
    )
    _add_tables_args(insp)
    insp.add_argument(
        "-v", "--verbose",
        action="store_true",
        default=False,
        help="List every table entry.",
    )
    insp.add_argument(
        "--export",
        help="Write the active tables to a YAML file.",
    )
    insp.set_defaults(func=cmd_inspect)

    return parser


def _add_tables_args(parser):
    """Add --tables arg to a subparser."""
    parser.add_argument(
        "--tables",
        help="Path to a custom YAML mapping tables file.",
    )


def _add_input_args(parser):
    """Add --input arg to a subparser."""
    parser.add_argument(
        "-i", "--input",
        required=True,
        help="Reconciled JSON file written by 'reconcile'.",
    )


def _month_arg(value):
    """argparse type for a YYYY-MM month bound."""
    if not is_valid_month(value):
        raise argparse.ArgumentTypeError(f"expected YYYY-MM, got {value!r}")
    return value


def _add_filter_args(parser):
    """Add filter args to a subparser."""
    filters = parser.add_argument_group("filters")
    for name in GROUP_FIELDS:
        filters.add_argument(
            f"--{name}",
            default=ALL,
            help=f"Only include this {name} (default: {ALL}).",
        )
    filters.add_argument(
        "--date-from",
        dest="date_from",
        type=_month_arg,
        help="First month to include (YYYY-MM).",
    )
    filters.add_argument(
        "--date-to",
        dest="date_to",
        type=_month_arg,
        help="Last month to include (YYYY-MM).",
    )


def _add_data_args(parser):
    """Add data source file path arguments."""
    data = parser.add_argument_group("data sources")
    data.add_argument(
        "--revenue",
        help="Revenue table (.csv, .xlsx).",
    )
    data.add_argument(
        "--expenses",
        help="Expenses table (.csv, .xlsx).",
    )
    data.add_argument(
        "--workbook",
        help="Workbook (.xlsx) with 'Revenue' and 'Expenses' sheets.",
    )


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

def main(argv=None):
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)
    args.func(args)


if __name__ == "__main__":
    main()
