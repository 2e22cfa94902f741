from __future__ import annotations

from textwrap import dedent

ATTRIBUTE_TABLE = dedent(
    """\
    | Field | Type | Default | Meaning |
    |---|---|---|---|
    | name | string | "" | widget name |
    """
)

ATTRIBUTE_TABLE_WITHOUT_DEFAULT = dedent(
    """\
    | Field | Type | Meaning |
    |---|---|---|
    | name | string | widget name |
    """
)


def widget_document(
    *,
    overview: str = "The widget must return the stored value.",
    table: str = ATTRIBUTE_TABLE,
    extra_sections: str = "",
    dod_items: str = "- [x] Overview returns the stored value (§1)",
    dod_subsections: str = "",
    dod_number: str = "2",
    trailer: str = "",
) -> str:
    """Minimal clean document: one testable section and its DoD mirror."""
    parts = [
        "# Widget Spec",
        "",
        "## 1. Overview",
        "",
        overview,
        "",
        table.rstrip("\n"),
        "",
    ]
    if extra_sections:
        parts.extend([extra_sections.rstrip("\n"), ""])
    parts.extend([f"## {dod_number}. Definition of Done", "", dod_items.rstrip("\n"), ""])
    if dod_subsections:
        parts.extend([dod_subsections.rstrip("\n"), ""])
    if trailer:
        parts.extend([trailer.rstrip("\n"), ""])
    return "\n".join(parts)


def kinds(report_or_issues) -> list[str]:
    issues = getattr(report_or_issues, "issues", report_or_issues)
    return [issue.kind.value for issue in issues]
