from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TypeAlias


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


class IssueFamily(str, Enum):
    REFERENCE = "reference"
    MIRROR = "mirror"
    CONVENTION = "convention"


class IssueKind(str, Enum):
    # Declaration order is the report rank; append new kinds to their family.
    DANGLING_REFERENCE = "DanglingReference"
    UNREFERENCED_APPENDIX = "UnreferencedAppendix"
    UNGROUNDED_HARD_DEPENDENCY = "UngroundedHardDependency"
    MISPLACED_DEPENDENCY_DECLARATION = "MisplacedDependencyDeclaration"
    SOFT_DEPENDENCY_MISSING_BOUNDARY = "SoftDependencyMissingBoundary"
    UNKNOWN_DEPENDENCY_TARGET = "UnknownDependencyTarget"
    UNKNOWN_IMPORTED_TYPE = "UnknownImportedType"
    CYCLIC_DEPENDENCY = "CyclicDependency"
    MISSING_DEFINITION_OF_DONE = "MissingDefinitionOfDone"
    MULTIPLE_DEFINITION_OF_DONE = "MultipleDefinitionOfDone"
    MISSING_DOD_MIRROR = "MissingDoDMirror"
    UNGROUNDED_CHECKLIST_ITEM = "UngroundedChecklistItem"
    KEYWORD_CASING_VIOLATION = "KeywordCasingViolation"
    COMMENT_MARKER_VIOLATION = "CommentMarkerViolation"
    MISSING_DEFAULT_COLUMN = "MissingDefaultColumn"
    MISSING_RECOVERY_COLUMN = "MissingRecoveryColumn"
    NON_BEHAVIORAL_CLASSIFICATION = "NonBehavioralClassification"
    MISSING_EXTENSION_POINT = "MissingExtensionPoint"
    MALFORMED_CHECKLIST_MARKER = "MalformedChecklistMarker"
    SECTION_NUMBER_ORDER_VIOLATION = "SectionNumberOrderViolation"

    @property
    def rank(self) -> int:
        return _KIND_RANK[self]

    @property
    def family(self) -> IssueFamily:
        return _KIND_FAMILY[self]

    @property
    def default_severity(self) -> Severity:
        if self in _WARNING_KINDS:
            return Severity.WARNING
        return Severity.ERROR


_KIND_RANK: dict[IssueKind, int] = {kind: index for index, kind in enumerate(IssueKind)}

_KIND_FAMILY: dict[IssueKind, IssueFamily] = {
    **{
        kind: IssueFamily.REFERENCE
        for kind in (
            IssueKind.DANGLING_REFERENCE,
            IssueKind.UNREFERENCED_APPENDIX,
            IssueKind.UNGROUNDED_HARD_DEPENDENCY,
            IssueKind.MISPLACED_DEPENDENCY_DECLARATION,
            IssueKind.SOFT_DEPENDENCY_MISSING_BOUNDARY,
            IssueKind.UNKNOWN_DEPENDENCY_TARGET,
            IssueKind.UNKNOWN_IMPORTED_TYPE,
            IssueKind.CYCLIC_DEPENDENCY,
        )
    },
    **{
        kind: IssueFamily.MIRROR
        for kind in (
            IssueKind.MISSING_DEFINITION_OF_DONE,
            IssueKind.MULTIPLE_DEFINITION_OF_DONE,
            IssueKind.MISSING_DOD_MIRROR,
            IssueKind.UNGROUNDED_CHECKLIST_ITEM,
        )
    },
}
for _kind in IssueKind:
    _KIND_FAMILY.setdefault(_kind, IssueFamily.CONVENTION)

_WARNING_KINDS = frozenset(
    {
        IssueKind.UNREFERENCED_APPENDIX,
        IssueKind.NON_BEHAVIORAL_CLASSIFICATION,
        IssueKind.MISSING_EXTENSION_POINT,
        IssueKind.SECTION_NUMBER_ORDER_VIOLATION,
    }
)


def issue_kind(name: str) -> IssueKind:
    for kind in IssueKind:
        if kind.value == name or kind.name == name.upper():
            return kind
    raise ValueError(f"unknown issue kind: {name}")


@dataclass(frozen=True)
class Issue:
    kind: IssueKind
    message: str
    severity: Severity
    section: str | None = None
    section_title: str | None = None
    line: int = 0
    sort_key: tuple[object, ...] = (-1,)

    @property
    def family(self) -> IssueFamily:
        return self.kind.family

    def as_dict(self) -> dict[str, object]:
        return {
            "section": self.section,
            "kind": self.kind.value,
            "message": self.message,
            "severity": self.severity.value,
            "line": self.line,
        }


ReferenceIssue: TypeAlias = Issue
MirrorIssue: TypeAlias = Issue
ConventionIssue: TypeAlias = Issue
