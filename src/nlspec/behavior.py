"""Pluggable "defines testable behavior" predicates.

The model builder never decides on its own whether a section carries
testable behavior; it hands a `SectionContent` view to a predicate. The
default `HeuristicBehaviorPredicate` is a starting point, configured from a
`RuleSet`, and callers may pass any callable with the same signature.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Protocol

from nlspec.config import RuleSet
from nlspec.model import PseudocodeBlock, Table, TokenKind

_SENTENCE_SPLIT_RE = re.compile(r"(?<=[.!?])\s+")
_BULLET_RE = re.compile(r"^\s*(?:[-*+]|\d+[.)])\s+")
_MARKUP_RE = re.compile(r"[*_`>]+")


@dataclass(frozen=True)
class SectionContent:
    title: str
    body: tuple[str, ...]
    tables: tuple[Table, ...]
    pseudocode_blocks: tuple[PseudocodeBlock, ...]


class BehaviorPredicate(Protocol):
    def __call__(self, content: SectionContent) -> bool: ...


@dataclass(frozen=True)
class HeuristicBehaviorPredicate:
    normative_terms: tuple[str, ...]
    imperative_verbs: tuple[str, ...]
    type_definition_keywords: tuple[str, ...]
    signal_columns: tuple[str, ...]

    @classmethod
    def from_rules(cls, rules: RuleSet) -> "HeuristicBehaviorPredicate":
        return cls(
            normative_terms=rules.normative_terms,
            imperative_verbs=rules.imperative_verbs,
            type_definition_keywords=rules.type_definition_keywords,
            signal_columns=rules.behavior_signal_columns,
        )

    def __call__(self, content: SectionContent) -> bool:
        return (
            self.has_signal_table(content)
            or self.has_type_definition(content)
            or self.has_normative_statement(content)
            or self.has_imperative_statement(content)
        )

    def has_signal_table(self, content: SectionContent) -> bool:
        return any(
            table.has_column(column)
            for table in content.tables
            for column in self.signal_columns
        )

    def has_type_definition(self, content: SectionContent) -> bool:
        wanted = {keyword.upper() for keyword in self.type_definition_keywords}
        for block in content.pseudocode_blocks:
            for token in block.tokens_of(TokenKind.KEYWORD):
                if token.text in wanted:
                    return True
        pattern = _word_pattern(tuple(wanted), flags=0)
        return pattern is not None and any(
            pattern.match(line.strip()) for line in content.body
        )

    def has_normative_statement(self, content: SectionContent) -> bool:
        pattern = _word_pattern(self.normative_terms, flags=re.IGNORECASE)
        return pattern is not None and any(pattern.search(line) for line in content.body)

    def has_imperative_statement(self, content: SectionContent) -> bool:
        verbs = {verb.lower() for verb in self.imperative_verbs}
        for line in content.body:
            text = _MARKUP_RE.sub("", _BULLET_RE.sub("", line)).strip()
            for sentence in _SENTENCE_SPLIT_RE.split(text):
                words = sentence.split()
                if words and words[0].strip(",:;").lower() in verbs:
                    return True
        return False


def _word_pattern(words: tuple[str, ...], *, flags: int) -> re.Pattern[str] | None:
    cleaned = [word.strip() for word in words if word.strip()]
    if not cleaned:
        return None
    alternatives = "|".join(
        r"\s+".join(re.escape(part) for part in word.split())
        for word in sorted(cleaned, key=len, reverse=True)
    )
    return re.compile(rf"\b(?:{alternatives})\b", flags)
