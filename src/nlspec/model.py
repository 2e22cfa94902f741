"""Immutable structural model of one NLSpec document.

The model is built once per validation run by `nlspec.builder.build` and is
only read afterwards. Ownership is tree-shaped: a Section owns its children,
tables, pseudocode blocks, checklist items, list items and references. The
parent link is a back-reference by number and line, never an owning edge.
Cross-references and dependency declarations name their targets and are
resolved by `nlspec.resolver`, not dereferenced.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Iterator, Mapping


class TableKind(str, Enum):
    ATTRIBUTE = "attribute"
    MAPPING = "mapping"
    CLASSIFICATION = "classification"
    VALIDATION_MATRIX = "validationMatrix"
    OTHER = "other"


class TokenKind(str, Enum):
    KEYWORD = "keyword"
    IDENTIFIER = "identifier"
    COMMENT = "comment"
    LITERAL = "literal"
    OTHER = "other"


class ReferenceKind(str, Enum):
    INTERNAL = "internal"
    APPENDIX = "appendix"
    EXTERNAL = "external"


class DependencyStrength(str, Enum):
    HARD = "hard"
    SOFT = "soft"


class DeclarationSource(str, Enum):
    PREAMBLE = "preamble"
    RELATIONSHIP = "relationship"
    BODY = "body"


def number_parts(number: str) -> tuple[int, ...]:
    return tuple(int(part) for part in number.split(".") if part.isdigit())


@dataclass(frozen=True)
class Token:
    kind: TokenKind
    text: str
    line: int
    column: int


@dataclass(frozen=True)
class Table:
    headers: tuple[str, ...]
    rows: tuple[Mapping[str, str], ...]
    kind: TableKind
    line: int

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "rows", tuple(MappingProxyType(dict(row)) for row in self.rows)
        )

    def has_column(self, name: str) -> bool:
        wanted = name.strip().lower()
        return any(header.strip().lower() == wanted for header in self.headers)

    def column(self, name: str) -> str | None:
        wanted = name.strip().lower()
        for header in self.headers:
            if header.strip().lower() == wanted:
                return header
        return None


@dataclass(frozen=True)
class PseudocodeBlock:
    language: str
    lines: tuple[str, ...]
    line: int
    tokens: tuple[Token, ...]

    def tokens_of(self, kind: TokenKind) -> tuple[Token, ...]:
        return tuple(token for token in self.tokens if token.kind is kind)


@dataclass(frozen=True)
class ChecklistItem:
    text: str
    checked: bool
    marker: str
    marker_valid: bool
    line: int
    section_number: str
    implementation_note: str | None = None
    traces_to: str | None = None
    trace_is_explicit: bool = False


@dataclass(frozen=True)
class ListItem:
    text: str
    line: int


@dataclass(frozen=True)
class CrossReference:
    source_section: str | None
    kind: ReferenceKind
    line: int
    target_number: str | None = None
    target_appendix_label: str | None = None
    url: str | None = None


@dataclass(frozen=True)
class Appendix:
    label: str
    title: str
    line: int


@dataclass(frozen=True)
class DependencyDeclaration:
    strength: DependencyStrength
    target_document_name: str
    source: DeclarationSource
    line: int
    section_number: str | None = None
    target_path: str | None = None
    imported_type_names: tuple[str, ...] = ()
    layer_note: str | None = None
    preamble_level: bool = False
    boundary_stated: bool = False

    @property
    def target_key(self) -> str:
        return normalize_document_name(self.target_document_name)


def normalize_document_name(name: str) -> str:
    lowered = " ".join(name.strip().lower().split())
    if lowered.startswith("the "):
        lowered = lowered[4:]
    return lowered.rstrip(".:;,")


@dataclass(frozen=True)
class Section:
    number: str
    title: str
    depth: int
    line: int
    parent_line: int | None = None
    parent_number: str | None = None
    children: tuple["Section", ...] = ()
    tables: tuple[Table, ...] = ()
    pseudocode_blocks: tuple[PseudocodeBlock, ...] = ()
    checklist_items: tuple[ChecklistItem, ...] = ()
    list_items: tuple[ListItem, ...] = ()
    references: tuple[CrossReference, ...] = ()
    body: tuple[str, ...] = ()
    heading_citation: str | None = None
    appendix_label: str | None = None
    defines_testable_behavior: bool = False
    is_definition_of_done: bool = False

    @property
    def label(self) -> str:
        if self.number:
            return self.number
        return self.title

    @property
    def sort_key(self) -> tuple[object, ...]:
        # Numbered sections order by numeric path; unnumbered ones follow in line order.
        if self.number:
            return (0, number_parts(self.number), self.line)
        return (1, (), self.line)

    def iter_sections(self) -> Iterator["Section"]:
        yield self
        for child in self.children:
            yield from child.iter_sections()

    def iter_checklist_items(self) -> Iterator[ChecklistItem]:
        for section in self.iter_sections():
            yield from section.checklist_items


@dataclass(frozen=True)
class Document:
    sections: tuple[Section, ...]
    title: str | None = None
    preamble: tuple[str, ...] = ()
    preamble_references: tuple[CrossReference, ...] = ()
    preamble_checklist_items: tuple[ChecklistItem, ...] = ()
    appendices: Mapping[str, Appendix] = field(default_factory=dict)
    dependencies: tuple[DependencyDeclaration, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "appendices", MappingProxyType(dict(self.appendices)))

    def iter_sections(self) -> Iterator[Section]:
        for section in self.sections:
            yield from section.iter_sections()

    def iter_references(self) -> Iterator[CrossReference]:
        yield from self.preamble_references
        for section in self.iter_sections():
            yield from section.references

    def find_section(self, number: str) -> Section | None:
        for section in self.iter_sections():
            if section.number and section.number == number:
                return section
        return None

    def section_at(self, line: int) -> Section | None:
        for section in self.iter_sections():
            if section.line == line:
                return section
        return None

    def section_containing(self, line: int) -> Section | None:
        """Innermost section whose heading precedes `line`; None in the preamble."""
        found = None
        for section in self.iter_sections():
            if section.line > line:
                break
            found = section
        return found

    def parent_of(self, section: Section) -> Section | None:
        if section.parent_line is None:
            return None
        return self.section_at(section.parent_line)

    @property
    def definition_of_done_sections(self) -> tuple[Section, ...]:
        return tuple(section for section in self.sections if section.is_definition_of_done)

    @property
    def definition_of_done(self) -> Section | None:
        candidates = self.definition_of_done_sections
        return candidates[0] if candidates else None
