"""Closed-loop auditor: body sections against the Definition-of-Done tree."""

from __future__ import annotations

from dataclasses import dataclass

from nlspec.builder import TRACE_RE
from nlspec.config import RuleSet
from nlspec.issues import IssueKind, MirrorIssue
from nlspec.model import ChecklistItem, Document, Section

_MIN_TITLE_MATCH = 4


def _normalized_title(title: str) -> str:
    return " ".join(title.replace("`", "").strip().rstrip(":").lower().split())


def _describe(section: Section) -> str:
    if section.number:
        return f"section {section.number} ({section.title})"
    return f"section {section.title!r}"


@dataclass(frozen=True)
class _BodyIndex:
    sections: tuple[Section, ...]
    by_number: dict[str, Section]

    @classmethod
    def build(cls, document: Document) -> "_BodyIndex":
        excluded: set[int] = set()
        for root in document.definition_of_done_sections:
            excluded.update(section.line for section in root.iter_sections())
        for section in document.iter_sections():
            if section.appendix_label:
                excluded.update(inner.line for inner in section.iter_sections())
        sections = tuple(
            section
            for section in document.iter_sections()
            if section.line not in excluded and section.defines_testable_behavior
        )
        return cls(
            sections=sections,
            by_number={section.number: section for section in sections if section.number},
        )


class _MirrorMatcher:
    def __init__(self, dod: Section, rules: RuleSet):
        self.dod = dod
        self.rules = rules

    def cited_numbers(self, group: Section) -> set[str]:
        numbers = {match.group("number") for match in TRACE_RE.finditer(group.title)}
        if group.heading_citation:
            numbers.add(group.heading_citation)
        prefix = f"{self.dod.number}." if self.dod.number else ""
        if (
            self.rules.infer_trace_by_number_suffix
            and group is not self.dod
            and prefix
            and group.number.startswith(prefix)
        ):
            numbers.add(group.number[len(prefix):])
        return numbers

    def references(self, group: Section, section: Section) -> bool:
        if section.number and section.number in self.cited_numbers(group):
            return True
        if group is self.dod:
            return False
        mine = _normalized_title(TRACE_RE.sub("", group.title).strip(" ()-"))
        theirs = _normalized_title(section.title)
        if len(mine) < _MIN_TITLE_MATCH or len(theirs) < _MIN_TITLE_MATCH:
            return False
        return mine in theirs or theirs in mine


def _groups(dod: Section) -> list[tuple[Section, tuple[ChecklistItem, ...]]]:
    # The DoD root's own items form an implicit group ahead of its subsections.
    groups: list[tuple[Section, tuple[ChecklistItem, ...]]] = [(dod, dod.checklist_items)]
    for child in dod.children:
        groups.append((child, tuple(child.iter_checklist_items())))
    return groups


def _check_definition_of_done_presence(
    document: Document,
    rules: RuleSet,
    body: _BodyIndex,
) -> list[MirrorIssue]:
    issues: list[MirrorIssue] = []
    candidates = document.definition_of_done_sections
    if not candidates:
        if body.sections and rules.enabled(IssueKind.MISSING_DEFINITION_OF_DONE):
            issues.append(
                rules.issue(
                    IssueKind.MISSING_DEFINITION_OF_DONE,
                    f"document has {len(body.sections)} testable section(s) "
                    "but no Definition of Done section",
                )
            )
        return issues
    if rules.enabled(IssueKind.MULTIPLE_DEFINITION_OF_DONE):
        for extra in candidates[1:]:
            issues.append(
                rules.issue(
                    IssueKind.MULTIPLE_DEFINITION_OF_DONE,
                    f"additional Definition of Done section (first one at line {candidates[0].line})",
                    section=extra,
                )
            )
    return issues


def audit(document: Document, rules: RuleSet | None = None) -> list[MirrorIssue]:
    """Cross-check testable body sections against Definition-of-Done mirrors.

    The first Definition-of-Done top-level section is audited; extra ones
    are reported. Both directions are checked in full.
    """
    active = rules if rules is not None else RuleSet()
    dod = document.definition_of_done
    body = _BodyIndex.build(document)
    issues = _check_definition_of_done_presence(document, active, body)
    if dod is None:
        return issues

    matcher = _MirrorMatcher(dod, active)
    groups = _groups(dod)
    traced = {
        item.traces_to
        for item in dod.iter_checklist_items()
        if item.traces_to is not None
    }

    if active.enabled(IssueKind.MISSING_DOD_MIRROR):
        for section in body.sections:
            if section.number and section.number in traced:
                continue
            if any(matcher.references(group, section) for group, _ in groups):
                continue
            issues.append(
                active.issue(
                    IssueKind.MISSING_DOD_MIRROR,
                    f"{_describe(section)} has no Definition of Done mirror",
                    section=section,
                )
            )

    if active.enabled(IssueKind.UNGROUNDED_CHECKLIST_ITEM):
        for group, items in groups:
            grounded_group = any(matcher.references(group, section) for section in body.sections)
            for item in items:
                if item.traces_to is not None:
                    if item.traces_to in body.by_number:
                        continue
                    reason = f"traces to Section {item.traces_to}, which is not a testable body section"
                elif grounded_group:
                    continue
                else:
                    reason = "has no trace and its group mirrors no body section"
                issues.append(
                    active.issue(
                        IssueKind.UNGROUNDED_CHECKLIST_ITEM,
                        f"checklist item {item.text!r} {reason}",
                        section=document.section_containing(item.line),
                        line=item.line,
                    )
                )
    return issues
