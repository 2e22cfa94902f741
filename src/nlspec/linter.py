"""Convention linter: a table-driven catalog of structural rules."""

from __future__ import annotations

from typing import Callable, Iterable, Iterator

from nlspec.config import RuleSet
from nlspec.issues import ConventionIssue, IssueKind
from nlspec.model import Document, Section, Table, TableKind, TokenKind, number_parts

LintCheck = Callable[[Document, RuleSet], Iterable[ConventionIssue]]


def _keyword_casing(document: Document, rules: RuleSet) -> Iterator[ConventionIssue]:
    for section in document.iter_sections():
        for block in section.pseudocode_blocks:
            for token in block.tokens_of(TokenKind.KEYWORD):
                if token.text.isupper():
                    continue
                yield rules.issue(
                    IssueKind.KEYWORD_CASING_VIOLATION,
                    f"pseudocode keyword {token.text!r} must be written {token.text.upper()!r}",
                    section=section,
                    line=token.line,
                )


def _comment_marker(document: Document, rules: RuleSet) -> Iterator[ConventionIssue]:
    for section in document.iter_sections():
        for block in section.pseudocode_blocks:
            for token in block.tokens_of(TokenKind.COMMENT):
                if token.text.startswith(rules.comment_marker):
                    continue
                yield rules.issue(
                    IssueKind.COMMENT_MARKER_VIOLATION,
                    f"pseudocode comment {token.text[:24]!r} must start with {rules.comment_marker!r}",
                    section=section,
                    line=token.line,
                )


def _tables(document: Document) -> Iterator[tuple[Section, Table]]:
    for section in document.iter_sections():
        for table in section.tables:
            yield section, table


def _default_column(document: Document, rules: RuleSet) -> Iterator[ConventionIssue]:
    for section, table in _tables(document):
        if table.kind is not TableKind.ATTRIBUTE or table.has_column(rules.default_column):
            continue
        yield rules.issue(
            IssueKind.MISSING_DEFAULT_COLUMN,
            f"attribute table ({', '.join(table.headers)}) has no {rules.default_column.title()!r} column",
            section=section,
            line=table.line,
        )


def _recovery_column(document: Document, rules: RuleSet) -> Iterator[ConventionIssue]:
    wanted = rules.error_type_column.lower()
    for section, table in _tables(document):
        if not any(wanted in header.lower() for header in table.headers):
            continue
        if table.has_column(rules.recovery_column):
            continue
        yield rules.issue(
            IssueKind.MISSING_RECOVERY_COLUMN,
            f"error table ({', '.join(table.headers)}) has no {rules.recovery_column.title()!r} column",
            section=section,
            line=table.line,
        )


def _behavior_column(table: Table, rules: RuleSet) -> str | None:
    for rule in rules.table_kinds:
        if rule.kind != TableKind.CLASSIFICATION.value or not rule.column_groups:
            continue
        for candidate in rule.column_groups[-1]:
            header = table.column(candidate)
            if header is not None:
                return header
    return table.headers[-1] if len(table.headers) > 1 else None


def _classification_behavior(document: Document, rules: RuleSet) -> Iterator[ConventionIssue]:
    for section, table in _tables(document):
        if table.kind is not TableKind.CLASSIFICATION:
            continue
        column = _behavior_column(table, rules)
        if column is None:
            continue
        for offset, row in enumerate(table.rows):
            cell = row.get(column, "")
            if len(cell.split()) >= rules.behavior_min_tokens:
                continue
            # Rows start two lines below the header row.
            yield rules.issue(
                IssueKind.NON_BEHAVIORAL_CLASSIFICATION,
                f"{column!r} cell {cell!r} is not a behavior phrase",
                section=section,
                line=table.line + 2 + offset,
            )


def _is_out_of_scope(section: Section, rules: RuleSet) -> bool:
    title = section.title.lower()
    return any(marker in title for marker in rules.out_of_scope_titles)


def _extension_points(document: Document, rules: RuleSet) -> Iterator[ConventionIssue]:
    for section in document.iter_sections():
        if not _is_out_of_scope(section, rules):
            continue
        for item in section.list_items:
            lowered = item.text.lower()
            if any(phrase in lowered for phrase in rules.extension_point_phrases):
                continue
            yield rules.issue(
                IssueKind.MISSING_EXTENSION_POINT,
                f"out-of-scope item {item.text!r} names no extension point",
                section=section,
                line=item.line,
            )


def _checklist_markers(document: Document, rules: RuleSet) -> Iterator[ConventionIssue]:
    for item in document.preamble_checklist_items:
        if not item.marker_valid:
            yield rules.issue(
                IssueKind.MALFORMED_CHECKLIST_MARKER,
                f"checklist marker [{item.marker}] is not '- [ ]' or '- [x]'",
                line=item.line,
            )
    for section in document.iter_sections():
        for item in section.checklist_items:
            if item.marker_valid:
                continue
            yield rules.issue(
                IssueKind.MALFORMED_CHECKLIST_MARKER,
                f"checklist marker [{item.marker}] is not '- [ ]' or '- [x]'",
                section=section,
                line=item.line,
            )


def _sibling_groups(document: Document) -> Iterator[tuple[Section, ...]]:
    yield document.sections
    for section in document.iter_sections():
        if section.children:
            yield section.children


def _section_order(document: Document, rules: RuleSet) -> Iterator[ConventionIssue]:
    for siblings in _sibling_groups(document):
        previous: Section | None = None
        for section in siblings:
            if not section.number:
                continue
            if previous is not None and number_parts(section.number) <= number_parts(previous.number):
                yield rules.issue(
                    IssueKind.SECTION_NUMBER_ORDER_VIOLATION,
                    f"section {section.number} follows sibling {previous.number}",
                    section=section,
                )
            previous = section


LINT_RULES: tuple[tuple[IssueKind, LintCheck], ...] = (
    (IssueKind.KEYWORD_CASING_VIOLATION, _keyword_casing),
    (IssueKind.COMMENT_MARKER_VIOLATION, _comment_marker),
    (IssueKind.MISSING_DEFAULT_COLUMN, _default_column),
    (IssueKind.MISSING_RECOVERY_COLUMN, _recovery_column),
    (IssueKind.NON_BEHAVIORAL_CLASSIFICATION, _classification_behavior),
    (IssueKind.MISSING_EXTENSION_POINT, _extension_points),
    (IssueKind.MALFORMED_CHECKLIST_MARKER, _checklist_markers),
    (IssueKind.SECTION_NUMBER_ORDER_VIOLATION, _section_order),
)


def lint(document: Document, rules: RuleSet | None = None) -> list[ConventionIssue]:
    active = rules if rules is not None else RuleSet()
    issues: list[ConventionIssue] = []
    for kind, check in LINT_RULES:
        if active.enabled(kind):
            issues.extend(check(document, active))
    return issues
