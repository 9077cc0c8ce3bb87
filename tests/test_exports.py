"""Tests for CSV/JSON persistence of the report."""

import csv
import json

from core.exports import fncExportList, fncExportReportCSV, fncExportSingleModule
from core.utils import fncToTable
from modules.entra.role_admins import REPORT_COLUMNS

ROWS = [
    {"RoleName": "Global Administrator", "Name": "Alice", "ID": "u1", "Type": "User", "RoleType": "Assigned"},
    {"RoleName": "Global Administrator", "Name": "Eng Team", "ID": "g1", "Type": "Group", "RoleType": "Eligible"},
]


def _read_csv(path):
    with open(path, newline="", encoding="utf-8") as f:
        return list(csv.reader(f))


class TestReportCSV:
    def test_header_and_rows_in_column_order(self, tmp_path):
        out = tmp_path / "admins.csv"

        assert fncExportReportCSV(str(out), ROWS, REPORT_COLUMNS) is True
        assert _read_csv(out) == [
            ["RoleName", "Name", "ID", "Type", "RoleType"],
            ["Global Administrator", "Alice", "u1", "User", "Assigned"],
            ["Global Administrator", "Eng Team", "g1", "Group", "Eligible"],
        ]

    def test_empty_report_still_has_header(self, tmp_path):
        out = tmp_path / "empty.csv"

        fncExportReportCSV(str(out), [], REPORT_COLUMNS)

        assert _read_csv(out) == [REPORT_COLUMNS]

    def test_non_ascii_names_are_utf8(self, tmp_path):
        out = tmp_path / "names.csv"
        rows = [dict(ROWS[0], Name="Zoë Ångström")]

        fncExportReportCSV(str(out), rows, REPORT_COLUMNS)

        assert "Zoë Ångström" in out.read_text(encoding="utf-8")

    def test_unwritable_path_warns_instead_of_raising(self, tmp_path, capsys):
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("x")

        assert fncExportReportCSV(str(blocker / "admins.csv"), ROWS, REPORT_COLUMNS) is False
        assert "Could not write CSV" in capsys.readouterr().out


class TestExportList:
    def test_flattens_and_lowercases(self):
        assert fncExportList([["CSV,json"]]) == {"csv", "json"}

    def test_drops_unknown_formats(self, capsys):
        assert fncExportList(["csv", "html"]) == {"csv"}
        assert "html" in capsys.readouterr().out

    def test_none(self):
        assert fncExportList(None) == set()


class TestSingleModuleExport:
    def test_writes_json_and_rows_csv(self, tmp_path):
        data = {"run_id": "roleadmins-1", "summary": {"Rows": 2}, "rows": ROWS}

        out_dir = fncExportSingleModule("role_admins", data, {"csv", "json"}, tmp_path,
                                        csv_headers={"rows": REPORT_COLUMNS})

        assert out_dir is not None
        assert json.loads((out_dir / "role_admins.json").read_text(encoding="utf-8"))["rows"] == ROWS
        assert _read_csv(out_dir / "role_admins_rows.csv")[0] == REPORT_COLUMNS
        assert not (out_dir / "role_admins_summary.csv").exists()

    def test_empty_rows_export_header_only(self, tmp_path):
        out_dir = fncExportSingleModule("role_admins", {"rows": []}, {"csv"}, tmp_path,
                                        csv_headers={"rows": REPORT_COLUMNS})

        assert _read_csv(out_dir / "role_admins_rows.csv") == [REPORT_COLUMNS]

    def test_failure_returns_none(self, tmp_path):
        blocker = tmp_path / "reports"
        blocker.write_text("x")

        assert fncExportSingleModule("role_admins", {"rows": ROWS}, {"csv"}, blocker) is None


class TestToTable:
    def test_dict_rows_follow_header_order(self):
        table = fncToTable([{"Name": "Alice", "Type": "User"}, {"Name": "Eng Team", "Type": "Group"}],
                           headers=["Type", "Name"])

        lines = table.splitlines()
        assert lines[0].index("Type") < lines[0].index("Name")
        assert len(lines) == 4
        assert "Eng Team" in lines[3]

    def test_empty_rows(self):
        assert fncToTable([]) == "(no data)"
