from __future__ import annotations

from nlspec.auditor import audit
from nlspec.builder import Predicate, build
from nlspec.config import RuleSet
from nlspec.linter import lint
from nlspec.registry import DocumentRegistry
from nlspec.report import Report, aggregate
from nlspec.resolver import resolve


def validate(
    text: str,
    *,
    rules: RuleSet | None = None,
    registry: DocumentRegistry | None = None,
    document_name: str | None = None,
    predicate: Predicate | None = None,
) -> Report:
    """Validate one document and return its report.

    Raises `MalformedStructure` when the text cannot be built into a section
    tree; no partial report is produced in that case.
    """
    active = rules if rules is not None else RuleSet()
    document = build(text, active, predicate)
    name = document_name or document.title
    return aggregate(
        resolve(document, active, registry, name),
        audit(document, active),
        lint(document, active),
        document_name=name,
    )
