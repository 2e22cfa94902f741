"""Reference resolver: cross-references and dependency declarations."""

from __future__ import annotations

from typing import Callable, Iterable

from nlspec.config import RuleSet
from nlspec.issues import IssueKind, ReferenceIssue
from nlspec.model import (
    DeclarationSource,
    DependencyDeclaration,
    DependencyStrength,
    Document,
    ReferenceKind,
)
from nlspec.registry import DocumentRegistry

_UNNAMED_DOCUMENT = "<document>"


def _hard_groups(document: Document) -> dict[str, list[DependencyDeclaration]]:
    groups: dict[str, list[DependencyDeclaration]] = {}
    for declaration in document.dependencies:
        if declaration.strength is DependencyStrength.HARD:
            groups.setdefault(declaration.target_key, []).append(declaration)
    return groups


def _imported_union(declarations: Iterable[DependencyDeclaration]) -> list[str]:
    names: list[str] = []
    for declaration in declarations:
        for name in declaration.imported_type_names:
            if name not in names:
                names.append(name)
    return names


def _issue_at_line(
    document: Document,
    rules: RuleSet,
    kind: IssueKind,
    message: str,
    line: int,
) -> ReferenceIssue:
    return rules.issue(kind, message, section=document.section_containing(line), line=line)


def _check_internal_references(document: Document, rules: RuleSet) -> list[ReferenceIssue]:
    numbers = {section.number for section in document.iter_sections() if section.number}
    issues: list[ReferenceIssue] = []
    for reference in document.iter_references():
        if reference.kind is not ReferenceKind.INTERNAL:
            continue
        if reference.target_number in numbers:
            continue
        issues.append(
            _issue_at_line(
                document,
                rules,
                IssueKind.DANGLING_REFERENCE,
                f"reference to Section {reference.target_number} does not resolve",
                reference.line,
            )
        )
    return issues


def _check_appendix_references(document: Document, rules: RuleSet) -> list[ReferenceIssue]:
    issues: list[ReferenceIssue] = []
    for reference in document.iter_references():
        if reference.kind is not ReferenceKind.APPENDIX:
            continue
        if reference.target_appendix_label in document.appendices:
            continue
        issues.append(
            _issue_at_line(
                document,
                rules,
                IssueKind.DANGLING_REFERENCE,
                f"reference to Appendix {reference.target_appendix_label} does not resolve",
                reference.line,
            )
        )
    return issues


def _check_unreferenced_appendices(document: Document, rules: RuleSet) -> list[ReferenceIssue]:
    issues: list[ReferenceIssue] = []
    sections = {
        section.appendix_label: section
        for section in document.iter_sections()
        if section.appendix_label
    }
    for label, appendix in document.appendices.items():
        own = sections.get(label)
        own_lines = {section.line for section in own.iter_sections()} if own else set()
        referenced = False
        for reference in document.iter_references():
            if (
                reference.kind is not ReferenceKind.APPENDIX
                or reference.target_appendix_label != label
            ):
                continue
            # Mentions inside the appendix itself do not count.
            container = document.section_containing(reference.line)
            if container is not None and container.line in own_lines:
                continue
            referenced = True
            break
        if referenced:
            continue
        issues.append(
            rules.issue(
                IssueKind.UNREFERENCED_APPENDIX,
                f"Appendix {label} ({appendix.title or 'untitled'}) is never referenced",
                section=own,
                line=appendix.line,
            )
        )
    return issues


def _check_grounded_dependencies(document: Document, rules: RuleSet) -> list[ReferenceIssue]:
    issues: list[ReferenceIssue] = []
    for declarations in _hard_groups(document).values():
        if _imported_union(declarations):
            continue
        anchor = next(
            (item for item in declarations if item.source is DeclarationSource.RELATIONSHIP),
            declarations[0],
        )
        issues.append(
            _issue_at_line(
                document,
                rules,
                IssueKind.UNGROUNDED_HARD_DEPENDENCY,
                f"hard dependency on {anchor.target_document_name!r} lists no imported types",
                anchor.line,
            )
        )
    return issues


def _check_dependency_placement(document: Document, rules: RuleSet) -> list[ReferenceIssue]:
    issues: list[ReferenceIssue] = []
    for declarations in _hard_groups(document).values():
        if any(item.preamble_level for item in declarations):
            continue
        first = declarations[0]
        issues.append(
            _issue_at_line(
                document,
                rules,
                IssueKind.MISPLACED_DEPENDENCY_DECLARATION,
                f"hard dependency on {first.target_document_name!r} is declared only in the body, "
                "not in the preamble",
                first.line,
            )
        )
    return issues


def _check_soft_boundaries(document: Document, rules: RuleSet) -> list[ReferenceIssue]:
    issues: list[ReferenceIssue] = []
    for declaration in document.dependencies:
        if declaration.strength is not DependencyStrength.SOFT or declaration.boundary_stated:
            continue
        issues.append(
            _issue_at_line(
                document,
                rules,
                IssueKind.SOFT_DEPENDENCY_MISSING_BOUNDARY,
                f"soft dependency on {declaration.target_document_name!r} has no stated "
                "interface boundary",
                declaration.line,
            )
        )
    return issues


_DOCUMENT_CHECKS: tuple[tuple[IssueKind, Callable[[Document, RuleSet], list[ReferenceIssue]]], ...] = (
    (IssueKind.DANGLING_REFERENCE, _check_internal_references),
    (IssueKind.DANGLING_REFERENCE, _check_appendix_references),
    (IssueKind.UNREFERENCED_APPENDIX, _check_unreferenced_appendices),
    (IssueKind.UNGROUNDED_HARD_DEPENDENCY, _check_grounded_dependencies),
    (IssueKind.MISPLACED_DEPENDENCY_DECLARATION, _check_dependency_placement),
    (IssueKind.SOFT_DEPENDENCY_MISSING_BOUNDARY, _check_soft_boundaries),
)


def _check_registry(
    document: Document,
    rules: RuleSet,
    registry: DocumentRegistry,
    document_name: str,
) -> list[ReferenceIssue]:
    issues: list[ReferenceIssue] = []
    for declarations in _hard_groups(document).values():
        first = declarations[0]
        target = registry.resolve_declaration(first)
        if target is None:
            if rules.enabled(IssueKind.UNKNOWN_DEPENDENCY_TARGET):
                issues.append(
                    _issue_at_line(
                        document,
                        rules,
                        IssueKind.UNKNOWN_DEPENDENCY_TARGET,
                        f"hard dependency target {first.target_document_name!r} is not a "
                        "registered document",
                        first.line,
                    )
                )
            continue
        if not target.exports or not rules.enabled(IssueKind.UNKNOWN_IMPORTED_TYPE):
            continue
        exported = set(target.exports)
        reported: set[str] = set()
        for declaration in declarations:
            for name in declaration.imported_type_names:
                if name in exported or name in reported:
                    continue
                reported.add(name)
                issues.append(
                    _issue_at_line(
                        document,
                        rules,
                        IssueKind.UNKNOWN_IMPORTED_TYPE,
                        f"{target.name!r} does not export imported type {name!r}",
                        declaration.line,
                    )
                )

    if not rules.enabled(IssueKind.CYCLIC_DEPENDENCY):
        return issues
    graph = registry.graph(document_name=document_name, declarations=document.dependencies)
    for cycle in graph.cycles():
        members = set(cycle)
        message = "dependency cycle among: " + ", ".join(graph.label(key) for key in cycle)
        entry = None
        if graph.root in members:
            entry = next(
                (edge for edge in graph.edges_from(graph.root) if edge.target in members),
                None,
            )
        if entry is not None and entry.line:
            issues.append(
                _issue_at_line(document, rules, IssueKind.CYCLIC_DEPENDENCY, message, entry.line)
            )
        else:
            issues.append(rules.issue(IssueKind.CYCLIC_DEPENDENCY, message))
    return issues


def resolve(
    document: Document,
    rules: RuleSet | None = None,
    registry: DocumentRegistry | None = None,
    document_name: str | None = None,
) -> list[ReferenceIssue]:
    """Resolve references and dependency declarations of one document.

    Every check runs independently; the document is only read. Registry
    checks (unknown targets, unknown imported types, cycles) run only when a
    registry is supplied.
    """
    active = rules if rules is not None else RuleSet()
    issues: list[ReferenceIssue] = []
    for kind, check in _DOCUMENT_CHECKS:
        if active.enabled(kind):
            issues.extend(check(document, active))
    if registry is not None:
        name = document_name or document.title or _UNNAMED_DOCUMENT
        issues.extend(_check_registry(document, active, registry, name))
    return issues
