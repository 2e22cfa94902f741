from __future__ import annotations

import json
from pathlib import Path

from typer.testing import CliRunner

from nlspec import cli
from tests.documents import ATTRIBUTE_TABLE_WITHOUT_DEFAULT, widget_document

runner = CliRunner()


def test_check_clean_document_exits_zero(write_document, clean_text: str) -> None:
    path = write_document(clean_text)
    result = runner.invoke(cli.app, ["check", str(path)])
    assert result.exit_code == cli.EXIT_CLEAN
    assert "Status: clean" in result.output


def test_check_reports_issues_with_exit_one(write_document) -> None:
    path = write_document(widget_document(table=ATTRIBUTE_TABLE_WITHOUT_DEFAULT))
    result = runner.invoke(cli.app, ["check", str(path)])
    assert result.exit_code == cli.EXIT_ISSUES
    assert "MissingDefaultColumn" in result.output


def test_check_malformed_document_exits_two(write_document) -> None:
    path = write_document("## 1. One\n\n```\nRETURN x\n")
    result = runner.invoke(cli.app, ["check", str(path)])
    assert result.exit_code == cli.EXIT_FAILURE
    assert "malformed structure" in result.output


def test_check_missing_file_exits_two(tmp_path: Path) -> None:
    result = runner.invoke(cli.app, ["check", str(tmp_path / "absent.md")])
    assert result.exit_code == cli.EXIT_FAILURE
    assert "cannot read document" in result.output


def test_check_json_output_to_file(write_document, tmp_path: Path) -> None:
    path = write_document(widget_document(table=ATTRIBUTE_TABLE_WITHOUT_DEFAULT))
    target = tmp_path / "report.json"
    result = runner.invoke(
        cli.app,
        ["check", str(path), "--format", "json", "--output", str(target)],
    )
    assert result.exit_code == cli.EXIT_ISSUES
    payload = json.loads(target.read_text(encoding="utf-8"))
    assert payload["exit_code"] == cli.EXIT_ISSUES
    assert payload["errors"] == []
    (report,) = payload["reports"]
    assert report["clean"] is False
    assert [issue["kind"] for issue in report["issues"]] == ["MissingDefaultColumn"]


def test_check_profile_from_config_file(write_document, tmp_path: Path) -> None:
    (tmp_path / "nlspec.toml").write_text('profile = "lenient"\n', encoding="utf-8")
    table = "| Kind | Behavior |\n|---|---|\n| timeout | retry |\n"
    path = write_document(widget_document(table=table))
    strict = runner.invoke(cli.app, ["check", str(path)])
    lenient = runner.invoke(cli.app, ["check", str(path), "--root", str(tmp_path)])
    assert strict.exit_code == cli.EXIT_ISSUES
    assert lenient.exit_code == cli.EXIT_CLEAN


def test_check_unknown_profile_exits_two(write_document, clean_text: str) -> None:
    path = write_document(clean_text)
    result = runner.invoke(cli.app, ["check", str(path), "--profile", "paranoid"])
    assert result.exit_code == cli.EXIT_FAILURE
    assert "unknown profile" in result.output


def test_check_registry_cycle(write_document, clean_text: str, tmp_path: Path) -> None:
    registry = tmp_path / "registry.yaml"
    registry.write_text(
        "documents:\n"
        "  - name: Widget Spec\n"
        "    aliases: [widget.md]\n"
        "    requires: [Storage Spec]\n"
        "  - name: Storage Spec\n"
        "    requires: [Widget Spec]\n",
        encoding="utf-8",
    )
    path = write_document(clean_text)
    result = runner.invoke(cli.app, ["check", str(path), "--registry", str(registry)])
    assert result.exit_code == cli.EXIT_ISSUES
    assert "# NLSpec report: Widget Spec" in result.output
    assert "dependency cycle among: Storage Spec, Widget Spec" in result.output


def test_rules_command_prints_effective_rule_set() -> None:
    result = runner.invoke(cli.app, ["rules", "--profile", "lenient"])
    assert result.exit_code == 0
    payload = json.loads(result.output)
    assert payload["profile"] == "lenient"
    assert payload["severity"]["KeywordCasingViolation"] == "warning"
