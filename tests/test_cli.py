"""Tests for the CLI entry point."""

import argparse
import json
from unittest.mock import patch

import pytest

from src.cli import (
    _ingest_sources,
    _load_projects,
    _load_tables,
    build_parser,
    cmd_inspect,
    cmd_reconcile,
    cmd_summary,
    cmd_validate,
    main,
)
from src.qa.validator import Issue, QAResult
from src.schema.loader import load_tables
from src.schema.mapping_tables import build_default_tables
from src.schema.models import Project, SourceTable


REVENUE_CSV = (
    "Project Id,Partner,Package,Country,Images,"
    "Revenue Date,Revenue Line Item,Revenue Amount\n"
    "P1,grubhub,Photo,us,50,2024-01-15,Travel,\"$1,200.50\"\n"
    "P2,Deliveroo,Video,gb,20,2024-02-03,Deliverables Approved,3000\n"
)
EXPENSE_CSV = (
    "Project Id,Partner,Package,Country,Images,"
    "Expense Date,Expense Line Item,Expense Amount\n"
    "P1,grubhub,Photo,us,80,2024-01-20,Base Amount,100\n"
    "P2,Deliveroo,Video,gb,,2024-02-05,Base Amount,1500\n"
)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def parser():
    return build_parser()


@pytest.fixture
def sources(tmp_path):
    revenue = tmp_path / "revenue.csv"
    revenue.write_text(REVENUE_CSV)
    expenses = tmp_path / "expenses.csv"
    expenses.write_text(EXPENSE_CSV)
    return revenue, expenses


@pytest.fixture
def reconciled(tmp_path, sources):
    """A reconciled JSON collection written by the reconcile command."""
    revenue, expenses = sources
    output = tmp_path / "out" / "projects.json"
    main(["reconcile", "--revenue", str(revenue), "--expenses", str(expenses),
          "-o", str(output)])
    return output


def _write_projects(path, projects):
    path.write_text(json.dumps({"projects": [p.to_dict() for p in projects]}))
    return path


# ===================================================================
# Argument parser tests
# ===================================================================

class TestBuildParser:
    """Tests for build_parser()."""

    def test_reconcile_defaults(self, parser):
        args = parser.parse_args([
            "reconcile", "--revenue", "r.csv", "--expenses", "e.csv",
        ])
        assert args.command == "reconcile"
        assert args.revenue == "r.csv"
        assert args.expenses == "e.csv"
        assert args.workbook is None
        assert args.output is None
        assert args.tables is None
        assert args.strict is False
        assert args.verbose is False

    def test_reconcile_workbook_and_flags(self, parser):
        args = parser.parse_args([
            "reconcile", "--workbook", "f.xlsx", "-o", "out.json",
            "--tables", "t.yaml", "--strict", "-v",
        ])
        assert args.workbook == "f.xlsx"
        assert args.output == "out.json"
        assert args.tables == "t.yaml"
        assert args.strict is True
        assert args.verbose is True

    def test_summary_defaults(self, parser):
        args = parser.parse_args(["summary", "-i", "p.json"])
        assert args.input == "p.json"
        assert args.partner == "All"
        assert args.product == "All"
        assert args.country == "All"
        assert args.date_from is None
        assert args.date_to is None
        assert args.group_by == "partner"
        assert args.json is False

    def test_summary_filters(self, parser):
        args = parser.parse_args([
            "summary", "-i", "p.json", "--partner", "GrubHub",
            "--date-from", "2024-02", "--date-to", "2024-04",
            "--group-by", "country", "--json",
        ])
        assert args.partner == "GrubHub"
        assert args.date_from == "2024-02"
        assert args.date_to == "2024-04"
        assert args.group_by == "country"
        assert args.json is True

    @pytest.mark.parametrize("bound", ["2024-2", "2024-13", "Feb 2024"])
    def test_summary_rejects_malformed_month(self, parser, bound):
        with pytest.raises(SystemExit):
            parser.parse_args(["summary", "-i", "p.json", "--date-from", bound])
        with pytest.raises(SystemExit):
            parser.parse_args(["summary", "-i", "p.json", "--date-to", bound])

    def test_summary_rejects_unknown_group(self, parser):
        with pytest.raises(SystemExit):
            parser.parse_args(["summary", "-i", "p.json", "--group-by", "month"])

    def test_summary_requires_input(self, parser):
        with pytest.raises(SystemExit):
            parser.parse_args(["summary"])

    def test_validate_command(self, parser):
        args = parser.parse_args(["validate", "--input", "p.json"])
        assert args.command == "validate"
        assert args.input == "p.json"

    def test_inspect_command(self, parser):
        args = parser.parse_args(["inspect"])
        assert args.command == "inspect"
        assert args.verbose is False
        assert args.export is None

    def test_inspect_verbose_export(self, parser):
        args = parser.parse_args(["inspect", "-v", "--export", "t.yaml"])
        assert args.verbose is True
        assert args.export == "t.yaml"

    def test_no_command_fails(self, parser):
        with pytest.raises(SystemExit):
            parser.parse_args([])


# ===================================================================
# Helper tests
# ===================================================================

class TestLoadTables:
    """Tests for _load_tables()."""

    def test_default(self):
        args = argparse.Namespace(tables=None)
        assert _load_tables(args) is build_default_tables()

    def test_missing_yaml_exits(self):
        args = argparse.Namespace(tables="/nonexistent/tables.yaml")
        with pytest.raises(SystemExit):
            _load_tables(args)

    def test_invalid_yaml_exits(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("revenue_line_items: [1, 2]\n")
        with pytest.raises(SystemExit):
            _load_tables(argparse.Namespace(tables=str(path)))


class TestIngestSources:
    """Tests for _ingest_sources()."""

    def test_csv_pair(self, sources):
        revenue, expenses = sources
        args = argparse.Namespace(revenue=str(revenue), expenses=str(expenses),
                                  workbook=None)
        result = _ingest_sources(args)
        assert len(result[SourceTable.REVENUE]) == 2
        assert len(result[SourceTable.EXPENSES]) == 2

    def test_missing_file_exits(self, sources):
        revenue, _ = sources
        args = argparse.Namespace(revenue=str(revenue),
                                  expenses="/nonexistent/expenses.csv",
                                  workbook=None)
        with pytest.raises(SystemExit):
            _ingest_sources(args)

    def test_needs_both_tables(self, sources):
        revenue, _ = sources
        args = argparse.Namespace(revenue=str(revenue), expenses=None, workbook=None)
        with pytest.raises(SystemExit):
            _ingest_sources(args)


class TestLoadProjects:
    """Tests for _load_projects()."""

    def test_missing_exits(self):
        with pytest.raises(SystemExit):
            _load_projects("/nonexistent/projects.json")

    def test_malformed_exits(self, tmp_path):
        path = tmp_path / "p.json"
        path.write_text(json.dumps({"nope": []}))
        with pytest.raises(SystemExit):
            _load_projects(str(path))

    def test_round_trip(self, tmp_path):
        p = Project(id="P1", partner="GrubHub", month="2024-01", num_images=3)
        p.revenue["travel"] = 12.5
        path = _write_projects(tmp_path / "p.json", [p])
        [loaded] = _load_projects(str(path))
        assert loaded.to_dict() == p.to_dict()


# ===================================================================
# Command tests
# ===================================================================

class TestCmdReconcile:
    """Tests for the reconcile command."""

    def test_writes_json(self, reconciled):
        data = json.loads(reconciled.read_text())
        assert data["count"] == 2
        p1 = next(p for p in data["projects"] if p["id"] == "P1")
        assert p1["partner"] == "GrubHub"
        assert p1["country"] == "USA"
        assert p1["numImages"] == 80.0
        assert p1["revenue"]["travel"] == pytest.approx(1200.50)
        assert p1["expenses"]["base"] == 100.0

    def test_stdout_when_no_output(self, sources, capsys):
        revenue, expenses = sources
        main(["reconcile", "--revenue", str(revenue), "--expenses", str(expenses)])
        captured = capsys.readouterr()
        assert json.loads(captured.out)["count"] == 2
        assert "Reconciled 2 project(s)" in captured.err

    def test_reports_warnings(self, tmp_path, capsys):
        revenue = tmp_path / "revenue.csv"
        revenue.write_text(REVENUE_CSV + ",x,y,z,1,2024-01-01,Travel,5\n")
        expenses = tmp_path / "expenses.csv"
        expenses.write_text(EXPENSE_CSV)
        main(["reconcile", "--revenue", str(revenue), "--expenses", str(expenses),
              "-o", str(tmp_path / "p.json")])
        assert "WARNING: Skipped 1 revenue row(s)" in capsys.readouterr().err

    def test_strict_fails_on_qa_error(self, sources, tmp_path):
        revenue, expenses = sources
        args = build_parser().parse_args([
            "reconcile", "--revenue", str(revenue), "--expenses", str(expenses),
            "--strict", "-o", str(tmp_path / "p.json"),
        ])
        with pytest.raises(SystemExit) as exc_info:
            failing = QAResult(issues=[Issue("error", "P1", "month", "bad")])
            with patch("src.cli.QAValidator") as MockValidator:
                MockValidator.return_value.validate.return_value = failing
                cmd_reconcile(args)
        assert exc_info.value.code == 1
        assert not (tmp_path / "p.json").exists()

    def test_custom_tables(self, sources, tmp_path):
        tables = tmp_path / "tables.yaml"
        tables.write_text(
            "revenue_line_items:\n"
            "  travel: other\n"
            "expense_line_items:\n"
            "  base amount: base\n"
        )
        revenue, expenses = sources
        output = tmp_path / "p.json"
        main(["reconcile", "--tables", str(tables), "--revenue", str(revenue),
              "--expenses", str(expenses), "-o", str(output)])
        p1 = next(p for p in json.loads(output.read_text())["projects"]
                  if p["id"] == "P1")
        assert p1["revenue"]["other"] == pytest.approx(1200.50)
        assert p1["revenue"]["travel"] == 0.0
        # No country aliases in the custom tables
        assert p1["country"] == "us"


class TestCmdSummary:
    """Tests for the summary command."""

    def test_text_output(self, reconciled, capsys):
        main(["summary", "-i", str(reconciled)])
        out = capsys.readouterr().out
        assert "Projects:       2 / 2" in out
        assert "Total revenue:  $4,200.50" in out
        assert "Total expenses: $1,600.00" in out
        assert "By partner:" in out
        assert out.index("Deliveroo") < out.index("GrubHub")
        assert "Filters:" not in out

    def test_lists_active_filters(self, reconciled, capsys):
        main(["summary", "-i", str(reconciled), "--country", "UK",
              "--date-from", "2024-02"])
        out = capsys.readouterr().out
        assert "Filters:        country=UK, months=2024-02 to ..." in out
        assert "Projects:       1 / 2" in out

    def test_filtered_json(self, reconciled, capsys):
        main(["summary", "-i", str(reconciled), "--date-from", "2024-02",
              "--group-by", "country", "--json"])
        out = capsys.readouterr().out
        assert "Projects:       1 / 2" in out
        groups = json.loads(out[out.index("["):])
        assert [g["key"] for g in groups] == ["UK"]
        assert groups[0]["totalRevenue"] == 3000.0

    def test_no_match(self, reconciled, capsys):
        args = build_parser().parse_args(
            ["summary", "-i", str(reconciled), "--partner", "Nobody"])
        cmd_summary(args)
        out = capsys.readouterr().out
        assert "Projects:       0 / 2" in out
        assert "Margin:         $0.00 (0.0%)" in out


class TestCmdValidate:
    """Tests for the validate command."""

    def test_pass_exits_zero(self, reconciled, capsys):
        args = build_parser().parse_args(["validate", "-i", str(reconciled)])
        with pytest.raises(SystemExit) as exc_info:
            cmd_validate(args)
        assert exc_info.value.code == 0
        assert "QA PASS" in capsys.readouterr().out

    def test_fail_exits_one(self, tmp_path, capsys):
        path = _write_projects(tmp_path / "p.json", [
            Project(id="P1", month="Jan 2024"), Project(id="P1", month="2024-01"),
        ])
        args = build_parser().parse_args(["validate", "-i", str(path)])
        with pytest.raises(SystemExit) as exc_info:
            cmd_validate(args)
        assert exc_info.value.code == 1
        out = capsys.readouterr().out
        assert "QA FAIL" in out
        assert "[ERROR] project P1" in out


class TestCmdInspect:
    """Tests for the inspect command."""

    def test_counts(self, capsys):
        cmd_inspect(build_parser().parse_args(["inspect"]))
        out = capsys.readouterr().out
        tables = build_default_tables()
        assert f"Revenue line items: {len(tables.revenue_line_items)}" in out
        assert "Named partners: Uber Eats, Uber Eats ANZ, Deliveroo, GrubHub" in out
        assert "->" not in out

    def test_verbose_lists_entries(self, capsys):
        cmd_inspect(build_parser().parse_args(["inspect", "-v"]))
        out = capsys.readouterr().out
        assert "'base amount'" in out
        assert "-> base" in out

    def test_export_round_trip(self, tmp_path):
        path = tmp_path / "config" / "tables.yaml"
        main(["inspect", "--export", str(path)])
        assert load_tables(path) == build_default_tables()
