from __future__ import annotations

import json
from textwrap import dedent

import pytest

from nlspec import MalformedStructure, validate
from nlspec.config import RuleSet
from nlspec.issues import Issue, IssueKind, Severity
from nlspec.report import aggregate
from tests.documents import ATTRIBUTE_TABLE_WITHOUT_DEFAULT, kinds, widget_document

NOISY_DOCUMENT = widget_document(
    overview="The widget must return the stored value (see Section 9.9).",
    table=ATTRIBUTE_TABLE_WITHOUT_DEFAULT,
    extra_sections=dedent(
        """\
        ## 2. Storage

        The store must persist every value.

        ## Notes

        Values are listed in Appendix Z.
        """
    ),
    dod_number="3",
    dod_items="- [x] Overview returns the stored value (§1)\n- [y] done (§1)",
)


def _issue(kind: IssueKind, *, sort_key: tuple[object, ...] = (-1,), line: int = 0, message: str = "m") -> Issue:
    return Issue(kind=kind, message=message, severity=kind.default_severity, line=line, sort_key=sort_key)


def test_clean_minimal_document(clean_text: str) -> None:
    report = validate(clean_text)
    assert report.is_clean() is True
    assert report.issues == ()
    assert "Status: clean" in report.render_markdown()


def test_clean_report_stays_clean_on_revalidation(clean_text: str) -> None:
    first = validate(clean_text)
    second = validate(clean_text)
    assert first.is_clean() and second.is_clean()


def test_validate_is_deterministic() -> None:
    first = validate(NOISY_DOCUMENT)
    second = validate(NOISY_DOCUMENT)
    assert first.render_markdown() == second.render_markdown()
    assert first.to_json() == second.to_json()


def test_report_orders_by_section_then_kind_rank() -> None:
    report = validate(NOISY_DOCUMENT)
    assert [(issue.section, issue.kind.value) for issue in report.issues] == [
        ("1", "DanglingReference"),
        ("1", "MissingDefaultColumn"),
        ("2", "MissingDoDMirror"),
        ("3", "MalformedChecklistMarker"),
        ("Notes", "DanglingReference"),
    ]
    assert len(report.reference_issues) == 2
    assert len(report.mirror_issues) == 1
    assert len(report.lint_issues) == 2


def test_document_level_issues_come_first() -> None:
    report = aggregate(
        [_issue(IssueKind.DANGLING_REFERENCE, sort_key=(0, (1,), 3), line=5)],
        [_issue(IssueKind.MISSING_DEFINITION_OF_DONE)],
        [_issue(IssueKind.MISSING_EXTENSION_POINT, sort_key=(1, (), 2), line=4)],
    )
    assert kinds(report) == [
        "MissingDefinitionOfDone",
        "DanglingReference",
        "MissingExtensionPoint",
    ]


def test_discovery_order_breaks_ties_by_line_then_message() -> None:
    key = (0, (1,), 3)
    report = aggregate(
        [],
        [],
        [
            _issue(IssueKind.KEYWORD_CASING_VIOLATION, sort_key=key, line=9, message="b"),
            _issue(IssueKind.KEYWORD_CASING_VIOLATION, sort_key=key, line=8, message="z"),
            _issue(IssueKind.KEYWORD_CASING_VIOLATION, sort_key=key, line=9, message="a"),
        ],
    )
    assert [(issue.line, issue.message) for issue in report.issues] == [(8, "z"), (9, "a"), (9, "b")]


def test_aggregate_ignores_caller_order() -> None:
    later = _issue(IssueKind.DANGLING_REFERENCE, sort_key=(0, (2,), 20), line=22)
    earlier = _issue(IssueKind.MISSING_DEFAULT_COLUMN, sort_key=(0, (1,), 3), line=7)
    report = aggregate([later], [], [earlier])
    assert report.issues == (earlier, later)


def test_markdown_groups_issues_by_section() -> None:
    markdown = validate(NOISY_DOCUMENT, document_name="widget.md").render_markdown()
    assert markdown.startswith("# NLSpec report: widget.md\n")
    assert "Status: 5 issue(s), 5 error(s), 0 warning(s)" in markdown
    assert "## 1 Overview" in markdown
    assert "## Notes" in markdown
    assert "- [error] MissingDefaultColumn (line 7):" in markdown
    assert markdown.index("## 1 Overview") < markdown.index("## 2 Storage") < markdown.index("## Notes")


def test_json_payload_shape() -> None:
    payload = json.loads(validate(NOISY_DOCUMENT).to_json())
    assert payload["clean"] is False
    assert payload["document"] == "Widget Spec"
    assert payload["counts"]["total"] == 5
    assert payload["counts"]["by_family"] == {"convention": 2, "mirror": 1, "reference": 2}
    first = payload["issues"][0]
    assert set(first) == {"section", "kind", "message", "severity", "line"}
    assert first["kind"] == "DanglingReference"


def test_scenario_missing_default_column() -> None:
    report = validate(widget_document(table=ATTRIBUTE_TABLE_WITHOUT_DEFAULT))
    assert kinds(report) == ["MissingDefaultColumn"]
    assert report.issues[0].section == "1"


def test_scenario_dangling_reference() -> None:
    report = validate(widget_document(overview="The widget must work (see Section 9.9)."))
    assert kinds(report) == ["DanglingReference"]


def test_scenario_malformed_checklist() -> None:
    report = validate(
        widget_document(
            dod_items="",
            dod_subsections="### 2.1 Overview\n\n- [x] stored value is returned\n- [y] done\n",
        )
    )
    assert kinds(report) == ["MalformedChecklistMarker"]
    assert report.issues[0].section == "2.1"


def test_scenario_ungrounded_hard_dependency() -> None:
    text = widget_document(
        table="| Field | Type | Default |\n|---|---|---|\n| name | string | \"\" |\n\n"
        "### 1.1 Relationship to Storage Spec\n\nStorage details live in the sibling document.\n",
    )
    report = validate(text)
    assert kinds(report) == ["UngroundedHardDependency"]


def test_scenario_appendix_round_trip() -> None:
    appendix = "## Appendix A: Glossary\n\nTerms.\n"
    report = validate(widget_document(trailer=appendix))
    assert kinds(report) == ["UnreferencedAppendix"]
    assert report.issues[0].severity is Severity.WARNING
    assert report.is_clean() is False
    referenced = widget_document(
        overview="The widget must return values listed in Appendix A.",
        trailer=appendix,
    )
    assert validate(referenced).is_clean()


def test_scenario_lenient_profile(lenient_rules: RuleSet) -> None:
    table = "| Kind | Behavior |\n|---|---|\n| timeout | retry |\n"
    text = widget_document(table=table)
    assert kinds(validate(text)) == ["NonBehavioralClassification"]
    assert validate(text, rules=lenient_rules).is_clean()


def test_validate_propagates_malformed_structure() -> None:
    with pytest.raises(MalformedStructure):
        validate("## 1. One\n\n```\nRETURN x\n")


def test_scenario_dod_item_names_the_section_it_traces() -> None:
    assert validate(widget_document(dod_items="- [x] 1. Overview")).is_clean()
