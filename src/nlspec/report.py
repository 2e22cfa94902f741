"""Report aggregation and rendering."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Iterable

from nlspec.issues import Issue, IssueFamily, Severity
from nlspec.schema import IssueDTO, ReportCountsDTO, ReportDTO

_DOCUMENT_GROUP = "Document"


def issue_order_key(issue: Issue) -> tuple[object, ...]:
    return (issue.sort_key, issue.kind.rank, issue.line, issue.message)


@dataclass(frozen=True)
class Report:
    reference_issues: tuple[Issue, ...]
    mirror_issues: tuple[Issue, ...]
    lint_issues: tuple[Issue, ...]
    issues: tuple[Issue, ...]
    document_name: str | None = None

    def is_clean(self) -> bool:
        return not (self.reference_issues or self.mirror_issues or self.lint_issues)

    @property
    def errors(self) -> tuple[Issue, ...]:
        return tuple(issue for issue in self.issues if issue.severity is Severity.ERROR)

    @property
    def warnings(self) -> tuple[Issue, ...]:
        return tuple(issue for issue in self.issues if issue.severity is Severity.WARNING)

    def counts(self) -> ReportCountsDTO:
        by_family = {family.value: 0 for family in IssueFamily}
        by_kind: dict[str, int] = {}
        for issue in self.issues:
            by_family[issue.family.value] += 1
            by_kind[issue.kind.value] = by_kind.get(issue.kind.value, 0) + 1
        return ReportCountsDTO(
            total=len(self.issues),
            errors=len(self.errors),
            warnings=len(self.warnings),
            by_family=by_family,
            by_kind=by_kind,
        )

    def grouped(self) -> list[tuple[str, list[Issue]]]:
        groups: list[tuple[str, list[Issue]]] = []
        for issue in self.issues:
            heading = _group_heading(issue)
            if groups and groups[-1][0] == heading:
                groups[-1][1].append(issue)
            else:
                groups.append((heading, [issue]))
        return groups

    def render_markdown(self) -> str:
        lines: list[str] = []
        title = self.document_name or "document"
        lines.append(f"# NLSpec report: {title}")
        lines.append("")
        if self.is_clean():
            lines.append("Status: clean")
            return "\n".join(lines) + "\n"
        counts = self.counts()
        lines.append(
            f"Status: {counts.total} issue(s), {counts.errors} error(s), {counts.warnings} warning(s)"
        )
        for heading, issues in self.grouped():
            lines.append("")
            lines.append(f"## {heading}")
            for issue in issues:
                location = f" (line {issue.line})" if issue.line else ""
                lines.append(
                    f"- [{issue.severity.value}] {issue.kind.value}{location}: {issue.message}"
                )
        return "\n".join(lines) + "\n"

    def to_dto(self) -> ReportDTO:
        return ReportDTO(
            document=self.document_name,
            clean=self.is_clean(),
            issues=[IssueDTO(**issue.as_dict()) for issue in self.issues],
            counts=self.counts(),
        )

    def to_payload(self) -> dict[str, object]:
        return self.to_dto().model_dump()

    def to_json(self) -> str:
        return json.dumps(self.to_payload(), indent=2, sort_keys=True) + "\n"


def _group_heading(issue: Issue) -> str:
    if issue.section is None:
        return _DOCUMENT_GROUP
    if issue.section_title and issue.section_title != issue.section:
        return f"{issue.section} {issue.section_title}"
    return issue.section


def aggregate(
    reference_issues: Iterable[Issue],
    mirror_issues: Iterable[Issue],
    lint_issues: Iterable[Issue],
    *,
    document_name: str | None = None,
) -> Report:
    """Merge the three pass results into one deterministically ordered report.

    Issues order by section (document-level first, then numbered sections by
    numeric path, then unnumbered sections by line), issue-kind rank, line
    and message.
    """
    references = tuple(reference_issues)
    mirrors = tuple(mirror_issues)
    conventions = tuple(lint_issues)
    ordered = sorted((*references, *mirrors, *conventions), key=issue_order_key)
    return Report(
        reference_issues=references,
        mirror_issues=mirrors,
        lint_issues=conventions,
        issues=tuple(ordered),
        document_name=document_name,
    )
