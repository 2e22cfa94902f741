"""Exception protocol for the nlspec validator."""

from __future__ import annotations


class NlspecError(Exception):
    """Base class for every error raised by nlspec."""


class MalformedStructure(NlspecError):
    """The document cannot be turned into a well-formed section tree.

    Raised by the model builder for heading-depth skips, duplicate sibling
    section numbers and unterminated fenced blocks. No report is produced
    for such a document.
    """

    def __init__(self, message: str, *, line: int | None = None):
        self.reason = message
        self.line = line
        if line is not None:
            message = f"line {line}: {message}"
        super().__init__(message)


class ConfigError(NlspecError):
    """Invalid rule-set configuration or registry payload."""
