"""Structural model builder: document text to an immutable section tree."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Callable

from nlspec.behavior import HeuristicBehaviorPredicate, SectionContent
from nlspec.config import RuleSet
from nlspec.exceptions import MalformedStructure
from nlspec.model import (
    Appendix,
    ChecklistItem,
    CrossReference,
    DeclarationSource,
    DependencyDeclaration,
    DependencyStrength,
    Document,
    ListItem,
    PseudocodeBlock,
    ReferenceKind,
    Section,
    Table,
    TableKind,
)
from nlspec.pseudocode import tokenize

_HEADING_RE = re.compile(r"^ {0,3}(?P<hashes>#{1,6})[ \t]+(?P<text>.*?)(?:[ \t]+#+)?[ \t]*$")
_SECTION_NUMBER_RE = re.compile(r"^(?P<number>\d+(?:\.\d+)*)\.?(?:[ \t]+(?P<title>.*))?$")
_APPENDIX_HEADING_RE = re.compile(r"^Appendix[ \t]+(?P<label>[A-Z])\b[ \t:.\-]*(?P<title>.*)$")
_FENCE_OPEN_RE = re.compile(r"^ {0,3}(?P<fence>`{3,}|~{3,})[ \t]*(?P<info>[^`]*?)[ \t]*$")
_SEPARATOR_CELL_RE = re.compile(r"^:?-+:?$")
_CHECKLIST_RE = re.compile(
    r"^(?P<indent>[ \t]*)(?P<bullet>[-*+])(?P<gap>[ \t]*)\[(?P<mark>[^\[\]]{0,3})\](?!\()(?P<rest>.*)$"
)
_LIST_ITEM_RE = re.compile(r"^(?P<indent>[ \t]*)(?:[-*+]|\d+[.)])[ \t]+(?P<text>.*)$")
_INLINE_CODE_RE = re.compile(r"`[^`]*`")
_INTERNAL_REF_RE = re.compile(r"\(see Section (?P<number>\d+(?:\.\d+)*)\)")
_APPENDIX_REF_RE = re.compile(r"\bAppendix (?P<label>[A-Z])\b")
_EXTERNAL_LINK_RE = re.compile(r"\[[^\]]*\]\((?P<url>https?://[^)\s]+)[^)]*\)")
TRACE_RE = re.compile(r"(?:§[ \t]*|\bSection[ \t]+)(?P<number>\d+(?:\.\d+)*)")
_LEADING_CITATION_RE = re.compile(r"^(?P<number>\d+(?:\.\d+)*)\.?[ \t]+(?P<title>\S.*)$")
_NOTE_COMMENT_RE = re.compile(r"\s*<!--\s*(?P<note>.*?)\s*-->\s*$")
_NOTE_SEPARATOR_RE = re.compile(r"\s+(?:--|—)\s+(?P<note>\S.*)$")
_LINK_RE = re.compile(r"\[(?P<text>[^\]]+)\]\((?P<target>[^)\s]+)[^)]*\)")
_DOCUMENT_NAME_RE = re.compile(r"\b(?P<name>(?:[A-Z][\w-]*[ \t]+){1,6}(?:Spec|Specification))\b")
_CODE_TYPE_RE = re.compile(r"`(?P<name>[A-Z][A-Za-z0-9_]*)[^`]*`")
_SENTENCE_SPLIT_RE = re.compile(r"(?<=[.!?])\s+")
_LAYER_RE = re.compile(r"\blayer\b", re.IGNORECASE)
_SOFT_TARGET_RE = re.compile(r"^\s*(?:the\s+)?(?P<target>[^.,;:()]+)")

Predicate = Callable[[SectionContent], bool]


@dataclass
class _ItemDraft:
    line: int
    parts: list[str]
    marker: str | None = None
    valid: bool = True

    @property
    def text(self) -> str:
        return " ".join(part for part in self.parts if part)


@dataclass
class _SectionDraft:
    number: str
    title: str
    depth: int
    line: int
    root_line: int
    parent: "_SectionDraft | None" = None
    heading_citation: str | None = None
    appendix_label: str | None = None
    children: list["_SectionDraft"] = field(default_factory=list)
    child_numbers: set[str] = field(default_factory=set)
    body: list[str] = field(default_factory=list)
    body_numbers: list[int] = field(default_factory=list)
    tables: list[Table] = field(default_factory=list)
    pseudocode_blocks: list[PseudocodeBlock] = field(default_factory=list)
    checklist_items: list[_ItemDraft] = field(default_factory=list)
    list_items: list[_ItemDraft] = field(default_factory=list)
    references: list[CrossReference] = field(default_factory=list)


@dataclass
class _Fence:
    char: str
    length: int
    info: str
    line: int
    lines: list[str] = field(default_factory=list)


def _split_cells(line: str) -> list[str]:
    text = line.strip()
    if text.startswith("|"):
        text = text[1:]
    if text.endswith("|") and not text.endswith("\\|"):
        text = text[:-1]
    cells = re.split(r"(?<!\\)\|", text)
    return [cell.strip().replace("\\|", "|") for cell in cells]


def _is_table_row(line: str) -> bool:
    return "|" in line and bool(line.strip())


def _is_separator_row(line: str) -> bool:
    if "|" not in line or "-" not in line:
        return False
    cells = [cell for cell in _split_cells(line) if cell]
    return bool(cells) and all(_SEPARATOR_CELL_RE.match(cell) for cell in cells)


def classify_table(headers: tuple[str, ...], rules: RuleSet) -> TableKind:
    lowered = {header.strip().lower() for header in headers}
    for rule in rules.table_kinds:
        if all(lowered & set(group) for group in rule.column_groups):
            return TableKind(rule.kind)
    return TableKind.OTHER


def _strip_link_syntax(text: str) -> tuple[str, str | None]:
    match = _LINK_RE.search(text)
    if match is None:
        return text.replace("`", "").strip(), None
    plain = _LINK_RE.sub(lambda m: m.group("text"), text)
    return plain.replace("`", "").strip(), match.group("target")


def _imported_types(lines: list[str]) -> tuple[str, ...]:
    names: list[str] = []
    for line in lines:
        for match in _CODE_TYPE_RE.finditer(line):
            name = match.group("name")
            if name not in names:
                names.append(name)
    return tuple(names)


def _normalized_words(text: str) -> str:
    return " ".join(re.sub(r"[^\w\s]", " ", text.lower()).split())


def _paragraphs(lines: list[str]) -> list[tuple[int, list[str]]]:
    paragraphs: list[tuple[int, list[str]]] = []
    current: list[str] = []
    start = 0
    for offset, line in enumerate(lines):
        if not line.strip():
            if current:
                paragraphs.append((start, current))
                current = []
            continue
        if not current:
            start = offset
        current.append(line.strip())
    if current:
        paragraphs.append((start, current))
    return paragraphs


class _ModelBuilder:
    def __init__(self, text: str, rules: RuleSet, predicate: Predicate):
        self.lines = text.splitlines()
        self.rules = rules
        self.predicate = predicate
        self.title: str | None = None
        self.title_index: int | None = None
        self.base_level = 1
        self.stack: list[_SectionDraft] = []
        self.top_level: list[_SectionDraft] = []
        self.top_level_numbers: set[str] = set()
        self.appendices: dict[str, Appendix] = {}
        self.preamble: list[str] = []
        self.preamble_numbers: list[int] = []
        self.preamble_references: list[CrossReference] = []
        self.preamble_items: list[_ItemDraft] = []
        self.section_titles: dict[str, str] = {}
        self.list_target: _ItemDraft | None = None

    # --- pre-scan -------------------------------------------------------

    def _heading_levels(self) -> list[tuple[int, int, str]]:
        headings: list[tuple[int, int, str]] = []
        fence: _Fence | None = None
        for index, line in enumerate(self.lines):
            if fence is not None:
                if self._closes(fence, line):
                    fence = None
                continue
            opened = self._open_fence(line, index + 1)
            if opened is not None:
                fence = opened
                continue
            match = _HEADING_RE.match(line)
            if match is not None:
                headings.append((index, len(match.group("hashes")), match.group("text").strip()))
        return headings

    def _detect_title(self) -> None:
        headings = self._heading_levels()
        if not headings:
            return
        first_index, first_level, first_text = headings[0]
        level_one = [entry for entry in headings if entry[1] == 1]
        rest = headings[1:]
        if (
            first_level == 1
            and len(level_one) == 1
            and rest
            and _SECTION_NUMBER_RE.match(first_text) is None
        ):
            self.title = first_text
            self.title_index = first_index
            self.base_level = min(level for _, level, _ in rest)
        else:
            self.base_level = min(level for _, level, _ in headings)

    # --- fences ---------------------------------------------------------

    def _open_fence(self, line: str, line_number: int) -> _Fence | None:
        match = _FENCE_OPEN_RE.match(line)
        if match is None:
            return None
        fence = match.group("fence")
        info = match.group("info").strip().split()
        return _Fence(
            char=fence[0],
            length=len(fence),
            info=info[0].lower() if info else "",
            line=line_number,
        )

    def _closes(self, fence: _Fence, line: str) -> bool:
        stripped = line.strip()
        return (
            len(stripped) >= fence.length
            and set(stripped) == {fence.char}
            and len(line) - len(line.lstrip(" ")) <= 3
        )

    def _finish_fence(self, fence: _Fence) -> None:
        section = self.stack[-1] if self.stack else None
        if section is None or fence.info not in self.rules.pseudocode_languages:
            return
        section.pseudocode_blocks.append(
            PseudocodeBlock(
                language=fence.info,
                lines=tuple(fence.lines),
                line=fence.line,
                tokens=tokenize(fence.lines, first_line=fence.line + 1, rules=self.rules),
            )
        )

    # --- headings -------------------------------------------------------

    def _open_section(self, level: int, text: str, line_number: int) -> None:
        depth = level - self.base_level + 1
        while self.stack and self.stack[-1].depth >= depth:
            self.stack.pop()
        if depth != len(self.stack) + 1:
            raise MalformedStructure(
                f"heading depth jumps from {len(self.stack)} to {depth}: {text!r}",
                line=line_number,
            )
        parent = self.stack[-1] if self.stack else None
        number = ""
        title = text
        appendix_label = None
        appendix = _APPENDIX_HEADING_RE.match(text)
        numbered = _SECTION_NUMBER_RE.match(text)
        if appendix is not None:
            appendix_label = appendix.group("label")
            if appendix_label in self.appendices:
                raise MalformedStructure(
                    f"duplicate appendix label {appendix_label!r}", line=line_number
                )
            self.appendices[appendix_label] = Appendix(
                label=appendix_label,
                title=appendix.group("title").strip(),
                line=line_number,
            )
        elif numbered is not None:
            number = numbered.group("number")
            title = (numbered.group("title") or "").strip()
            siblings = parent.child_numbers if parent is not None else self.top_level_numbers
            if number in siblings:
                raise MalformedStructure(
                    f"duplicate sibling section number {number!r}", line=line_number
                )
            siblings.add(number)
            self.section_titles.setdefault(number, title)
        citation = TRACE_RE.search(title)
        draft = _SectionDraft(
            number=number,
            title=title,
            depth=depth,
            line=line_number,
            root_line=parent.root_line if parent is not None else line_number,
            parent=parent,
            heading_citation=citation.group("number") if citation else None,
            appendix_label=appendix_label,
        )
        for match in _INTERNAL_REF_RE.finditer(_INLINE_CODE_RE.sub("", title)):
            draft.references.append(
                CrossReference(
                    source_section=number or title,
                    kind=ReferenceKind.INTERNAL,
                    line=line_number,
                    target_number=match.group("number"),
                )
            )
        if parent is None:
            self.top_level.append(draft)
        else:
            parent.children.append(draft)
        self.stack.append(draft)
        self.list_target = None

    # --- body lines -----------------------------------------------------

    def _references(self, text: str, line_number: int, source: str | None) -> list[CrossReference]:
        plain = _INLINE_CODE_RE.sub("", text)
        found: list[CrossReference] = []
        for match in _INTERNAL_REF_RE.finditer(plain):
            found.append(
                CrossReference(
                    source_section=source,
                    kind=ReferenceKind.INTERNAL,
                    line=line_number,
                    target_number=match.group("number"),
                )
            )
        for match in _APPENDIX_REF_RE.finditer(plain):
            found.append(
                CrossReference(
                    source_section=source,
                    kind=ReferenceKind.APPENDIX,
                    line=line_number,
                    target_appendix_label=match.group("label"),
                )
            )
        for match in _EXTERNAL_LINK_RE.finditer(plain):
            found.append(
                CrossReference(
                    source_section=source,
                    kind=ReferenceKind.EXTERNAL,
                    line=line_number,
                    url=match.group("url"),
                )
            )
        return found

    def _body_line(self, line: str, line_number: int) -> None:
        section = self.stack[-1] if self.stack else None
        if section is None:
            self.preamble.append(line)
            self.preamble_numbers.append(line_number)
            self.preamble_references.extend(self._references(line, line_number, None))
            return
        section.body.append(line)
        section.body_numbers.append(line_number)
        section.references.extend(self._references(line, line_number, section.number or section.title))

    def _checklist_item(self, match: re.Match[str], line_number: int) -> None:
        section = self.stack[-1] if self.stack else None
        mark = match.group("mark")
        rest = match.group("rest")
        valid = (
            match.group("bullet") == "-"
            and match.group("gap") == " "
            and mark in (" ", "x")
            and (not rest or rest[0].isspace())
        )
        item = _ItemDraft(line=line_number, parts=[rest.strip()], marker=mark, valid=valid)
        if section is None:
            self.preamble_items.append(item)
        else:
            section.checklist_items.append(item)
        self.list_target = item

    def _list_item(self, text: str, line_number: int) -> None:
        section = self.stack[-1] if self.stack else None
        if section is None:
            self.list_target = None
            return
        item = _ItemDraft(line=line_number, parts=[text.strip()])
        section.list_items.append(item)
        self.list_target = item

    def _continue_list(self, line: str) -> bool:
        target = self.list_target
        if target is None or not line.strip() or len(line) - len(line.lstrip()) < 2:
            return False
        target.parts.append(line.strip())
        return True


    def _table(self, index: int) -> int:
        headers = tuple(_split_cells(self.lines[index]))
        rows: list[dict[str, str]] = []
        self._body_line(self.lines[index], index + 1)
        self._body_line(self.lines[index + 1], index + 2)
        cursor = index + 2
        while cursor < len(self.lines) and _is_table_row(self.lines[cursor]):
            if _HEADING_RE.match(self.lines[cursor]) or _FENCE_OPEN_RE.match(self.lines[cursor]):
                break
            cells = _split_cells(self.lines[cursor])
            cells += [""] * (len(headers) - len(cells))
            rows.append(dict(zip(headers, cells)))
            self._body_line(self.lines[cursor], cursor + 1)
            cursor += 1
        section = self.stack[-1] if self.stack else None
        if section is not None:
            section.tables.append(
                Table(
                    headers=headers,
                    rows=tuple(rows),
                    kind=classify_table(headers, self.rules),
                    line=index + 1,
                )
            )
        return cursor

    # --- driver ---------------------------------------------------------

    def run(self) -> Document:
        self._detect_title()
        fence: _Fence | None = None
        index = 0
        while index < len(self.lines):
            line = self.lines[index]
            line_number = index + 1
            if fence is not None:
                if self._closes(fence, line):
                    self._finish_fence(fence)
                    fence = None
                else:
                    fence.lines.append(line)
                index += 1
                continue
            if index == self.title_index:
                index += 1
                continue
            opened = self._open_fence(line, line_number)
            if opened is not None:
                fence = opened
                self.list_target = None
                index += 1
                continue
            heading = _HEADING_RE.match(line)
            if heading is not None:
                self._open_section(len(heading.group("hashes")), heading.group("text").strip(), line_number)
                index += 1
                continue
            if (
                _is_table_row(line)
                and index + 1 < len(self.lines)
                and _is_separator_row(self.lines[index + 1])
            ):
                self.list_target = None
                index = self._table(index)
                continue
            checklist = _CHECKLIST_RE.match(line)
            listed = _LIST_ITEM_RE.match(line)
            if checklist is not None:
                self._checklist_item(checklist, line_number)
            elif listed is not None:
                self._list_item(listed.group("text"), line_number)
            elif not self._continue_list(line):
                self.list_target = None
            self._body_line(line, line_number)
            index += 1
        if fence is not None:
            raise MalformedStructure("unterminated fenced block", line=fence.line)
        return self._freeze()

    # --- freezing -------------------------------------------------------

    def _leading_citation(self, text: str) -> str | None:
        # "1. Overview" cites section 1 only when the words name that section.
        match = _LEADING_CITATION_RE.match(text)
        if match is None:
            return None
        number = match.group("number")
        title = _normalized_words(self.section_titles.get(number, ""))
        words = _normalized_words(match.group("title"))
        if not title or not (words == title or words.startswith(title + " ")):
            return None
        return number

    def _freeze_item(
        self,
        item: _ItemDraft,
        *,
        section_number: str,
        heading_citation: str | None,
    ) -> ChecklistItem:
        text = item.text
        note = None
        comment = _NOTE_COMMENT_RE.search(text)
        if comment is not None:
            note = comment.group("note")
            text = text[: comment.start()].rstrip()
        else:
            separated = _NOTE_SEPARATOR_RE.search(text)
            if separated is not None:
                note = separated.group("note").strip()
                text = text[: separated.start()].rstrip()
        marker = item.marker or ""
        citation = TRACE_RE.search(text)
        explicit = citation.group("number") if citation else self._leading_citation(text)
        return ChecklistItem(
            text=text,
            checked=marker.strip().lower() == "x",
            marker=marker,
            marker_valid=item.valid,
            line=item.line,
            section_number=section_number,
            implementation_note=note,
            traces_to=explicit or heading_citation,
            trace_is_explicit=explicit is not None,
        )

    def _freeze_section(self, draft: _SectionDraft, *, dod: bool) -> Section:
        tables = tuple(draft.tables)
        blocks = tuple(draft.pseudocode_blocks)
        body = tuple(draft.body)
        testable = bool(
            self.predicate(
                SectionContent(
                    title=draft.title,
                    body=body,
                    tables=tables,
                    pseudocode_blocks=blocks,
                )
            )
        )
        parent = draft.parent
        return Section(
            number=draft.number,
            title=draft.title,
            depth=draft.depth,
            line=draft.line,
            parent_line=parent.line if parent is not None else None,
            parent_number=(parent.number or None) if parent is not None else None,
            children=tuple(self._freeze_section(child, dod=dod) for child in draft.children),
            tables=tables,
            pseudocode_blocks=blocks,
            checklist_items=tuple(
                self._freeze_item(
                    item,
                    section_number=draft.number or draft.title,
                    heading_citation=draft.heading_citation,
                )
                for item in draft.checklist_items
            ),
            list_items=tuple(ListItem(text=item.text, line=item.line) for item in draft.list_items),
            references=tuple(draft.references),
            body=body,
            heading_citation=draft.heading_citation,
            appendix_label=draft.appendix_label,
            defines_testable_behavior=testable,
            is_definition_of_done=dod,
        )

    def _is_dod_title(self, title: str) -> bool:
        return title.strip().rstrip(":").lower() in self.rules.dod_titles

    def _freeze(self) -> Document:
        sections = tuple(
            self._freeze_section(draft, dod=self._is_dod_title(draft.title))
            for draft in self.top_level
        )
        return Document(
            sections=sections,
            title=self.title,
            preamble=tuple(self.preamble),
            preamble_references=tuple(self.preamble_references),
            preamble_checklist_items=tuple(
                self._freeze_item(item, section_number="", heading_citation=None)
                for item in self.preamble_items
            ),
            appendices=self.appendices,
            dependencies=tuple(_DependencyScanner(self).scan()),
        )


@dataclass
class _DeclarationDraft:
    strength: DependencyStrength
    name: str
    source: DeclarationSource
    line: int
    section: str | None
    path: str | None = None
    types: tuple[str, ...] = ()
    layer: str | None = None
    preamble_level: bool = False
    boundary: bool = False

    def freeze(self) -> DependencyDeclaration:
        return DependencyDeclaration(
            strength=self.strength,
            target_document_name=self.name,
            source=self.source,
            line=self.line,
            section_number=self.section,
            target_path=self.path,
            imported_type_names=self.types,
            layer_note=self.layer,
            preamble_level=self.preamble_level,
            boundary_stated=self.boundary,
        )


class _DependencyScanner:
    """Extracts hard/soft dependency declarations from the drafted tree."""

    def __init__(self, builder: _ModelBuilder):
        self.rules = builder.rules
        self.preamble = builder.preamble
        self.preamble_numbers = builder.preamble_numbers
        self.top_level = builder.top_level
        self.first_root = builder.top_level[0].line if builder.top_level else None
        self.declarations: list[_DeclarationDraft] = []

    def _walk(self) -> list[_SectionDraft]:
        ordered: list[_SectionDraft] = []
        pending = list(reversed(self.top_level))
        while pending:
            draft = pending.pop()
            ordered.append(draft)
            pending.extend(reversed(draft.children))
        return ordered

    def _boundary(self, title: str, lines: list[str]) -> bool:
        haystack = " ".join([title, *lines]).lower()
        return any(marker in haystack for marker in self.rules.boundary_markers)

    def _sentences(self, lines: list[str], numbers: list[int]) -> list[tuple[str, str, int]]:
        # (sentence, whole paragraph, paragraph start line) for every body sentence.
        found: list[tuple[str, str, int]] = []
        for offset, paragraph in _paragraphs(lines):
            joined = " ".join(paragraph)
            for sentence in _SENTENCE_SPLIT_RE.split(joined):
                found.append((sentence, joined, numbers[offset]))
        return found

    def _hard_target(self, sentence: str) -> tuple[str, str | None] | None:
        link = _LINK_RE.search(sentence)
        if link is not None and not link.group("target").startswith("#"):
            return link.group("text").replace("`", "").strip(), link.group("target")
        named = _DOCUMENT_NAME_RE.search(sentence)
        if named is not None:
            return named.group("name").strip(), None
        return None

    def _soft_target(self, sentence: str, phrase_end: int) -> str | None:
        link = _LINK_RE.search(sentence)
        if link is not None:
            return link.group("text").replace("`", "").strip()
        code = _CODE_TYPE_RE.search(sentence, phrase_end)
        if code is not None:
            return code.group("name")
        match = _SOFT_TARGET_RE.match(sentence[phrase_end:])
        if match is None:
            return None
        return " ".join(match.group("target").split()[:6]) or None

    def _scan_lines(
        self,
        lines: list[str],
        numbers: list[int],
        *,
        draft: _SectionDraft | None,
        preamble_level: bool,
        direct_preamble: bool,
    ) -> None:
        title = draft.title if draft is not None else ""
        boundary = self._boundary(title, lines)
        section = (draft.number or draft.title) if draft is not None else None
        for sentence, paragraph, line_number in self._sentences(lines, numbers):
            lowered = sentence.lower()
            if any(phrase in lowered for phrase in self.rules.hard_dependency_phrases):
                target = self._hard_target(sentence)
                if target is not None:
                    self.declarations.append(
                        _DeclarationDraft(
                            strength=DependencyStrength.HARD,
                            name=target[0],
                            path=target[1],
                            source=DeclarationSource.PREAMBLE if direct_preamble else DeclarationSource.BODY,
                            line=line_number,
                            section=section,
                            types=_imported_types([paragraph]),
                            layer=sentence.strip() if _LAYER_RE.search(sentence) else None,
                            preamble_level=preamble_level,
                            boundary=boundary,
                        )
                    )
                    continue
            for phrase in self.rules.soft_dependency_phrases:
                position = lowered.find(phrase)
                if position < 0:
                    continue
                target_name = self._soft_target(sentence, position + len(phrase))
                if target_name:
                    self.declarations.append(
                        _DeclarationDraft(
                            strength=DependencyStrength.SOFT,
                            name=target_name,
                            source=DeclarationSource.BODY,
                            line=line_number,
                            section=section,
                            types=_imported_types([sentence]),
                            preamble_level=preamble_level,
                            boundary=boundary,
                        )
                    )
                break
            if any(phrase in sentence for phrase in self.rules.layer_negation_phrases):
                self._attach_layer_note(sentence.strip(), section)

    def _attach_layer_note(self, note: str, section: str | None) -> None:
        hard = [entry for entry in self.declarations if entry.strength is DependencyStrength.HARD]
        if not hard:
            return
        same_section = [entry for entry in hard if entry.section == section]
        target = (same_section or hard)[-1]
        target.layer = f"{target.layer} {note}" if target.layer else note

    def scan(self) -> list[DependencyDeclaration]:
        self._scan_lines(
            self.preamble,
            self.preamble_numbers,
            draft=None,
            preamble_level=True,
            direct_preamble=True,
        )
        prefix = self.rules.relationship_heading_prefix
        for draft in self._walk():
            in_first_root = draft.root_line == self.first_root
            if draft.title.lower().startswith(prefix):
                # A top-level Relationship heading is itself a preamble-level declaration.
                name, path = _strip_link_syntax(draft.title[len(prefix):])
                self.declarations.append(
                    _DeclarationDraft(
                        strength=DependencyStrength.HARD,
                        name=name,
                        path=path,
                        source=DeclarationSource.RELATIONSHIP,
                        line=draft.line,
                        section=draft.number or draft.title,
                        types=_imported_types(draft.body),
                        preamble_level=in_first_root or draft.depth == 1,
                        boundary=self._boundary(draft.title, draft.body),
                    )
                )
            self._scan_lines(
                draft.body,
                draft.body_numbers,
                draft=draft,
                preamble_level=in_first_root,
                direct_preamble=draft.depth == 1 and in_first_root,
            )
        return [entry.freeze() for entry in self.declarations]


def build(
    text: str,
    rules: RuleSet | None = None,
    predicate: Predicate | None = None,
) -> Document:
    """Build the immutable structural model of one document.

    Raises `MalformedStructure` for heading-depth skips, duplicate sibling
    section numbers or appendix labels, and unterminated fenced blocks.
    """
    active_rules = rules if rules is not None else RuleSet()
    active_predicate = predicate or HeuristicBehaviorPredicate.from_rules(active_rules)
    return _ModelBuilder(text, active_rules, active_predicate).run()
