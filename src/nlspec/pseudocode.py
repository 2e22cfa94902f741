from __future__ import annotations

import re
from typing import Iterable

from nlspec.config import RuleSet
from nlspec.model import Token, TokenKind

_WORD_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")
_NUMBER_RE = re.compile(r"\d+(?:\.\d+)?")
_OTHER_RE = re.compile(r"[^\sA-Za-z0-9_\"']+")


def is_keyword_word(word: str, rules: RuleSet) -> bool:
    if word.upper() in rules.keywords:
        return True
    letters = [char for char in word if char.isalpha()]
    return len(letters) >= 2 and word.isupper()


def _comment_start(line: str, position: int, leaders: tuple[str, ...]) -> bool:
    if position > 0 and not line[position - 1].isspace():
        return False
    return any(line.startswith(leader, position) for leader in leaders)


def _string_end(line: str, position: int) -> int:
    quote = line[position]
    index = position + 1
    while index < len(line):
        if line[index] == "\\":
            index += 2
            continue
        if line[index] == quote:
            return index + 1
        index += 1
    return len(line)


def tokenize_line(line: str, *, line_number: int, rules: RuleSet) -> list[Token]:
    leaders = tuple(sorted(rules.comment_leaders, key=len, reverse=True))
    tokens: list[Token] = []
    position = 0
    previous = ""
    while position < len(line):
        char = line[position]
        if char.isspace():
            position += 1
            continue
        column = position + 1
        if _comment_start(line, position, leaders):
            tokens.append(Token(TokenKind.COMMENT, line[position:].rstrip(), line_number, column))
            break
        if char in "\"'":
            end = _string_end(line, position)
            tokens.append(Token(TokenKind.LITERAL, line[position:end], line_number, column))
            position = end
            previous = "literal"
            continue
        number = _NUMBER_RE.match(line, position)
        if number is not None:
            tokens.append(Token(TokenKind.LITERAL, number.group(0), line_number, column))
            position = number.end()
            previous = "literal"
            continue
        word = _WORD_RE.match(line, position)
        if word is not None:
            text = word.group(0)
            # Attribute access (`node.type`) names a field, not a keyword.
            if previous != "." and is_keyword_word(text, rules):
                kind = TokenKind.KEYWORD
            else:
                kind = TokenKind.IDENTIFIER
            tokens.append(Token(kind, text, line_number, column))
            position = word.end()
            previous = "word"
            continue
        other = _OTHER_RE.match(line, position)
        end = other.end() if other is not None else position + 1
        text = line[position:end]
        tokens.append(Token(TokenKind.OTHER, text, line_number, column))
        position = end
        previous = text[-1]
    return tokens


def tokenize(lines: Iterable[str], *, first_line: int, rules: RuleSet) -> tuple[Token, ...]:
    tokens: list[Token] = []
    for offset, line in enumerate(lines):
        tokens.extend(tokenize_line(line, line_number=first_line + offset, rules=rules))
    return tuple(tokens)
