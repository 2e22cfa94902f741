from __future__ import annotations

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
for _path in (ROOT, ROOT / "src"):
    if str(_path) not in sys.path:
        sys.path.insert(0, str(_path))


import pytest

from nlspec.config import RuleSet, rule_set_for_profile
from tests.documents import widget_document


@pytest.fixture
def strict_rules() -> RuleSet:
    return rule_set_for_profile("strict")


@pytest.fixture
def lenient_rules() -> RuleSet:
    return rule_set_for_profile("lenient")


@pytest.fixture
def clean_text() -> str:
    return widget_document()


@pytest.fixture
def write_document(tmp_path: Path):
    def _write(text: str, name: str = "widget.md") -> Path:
        path = tmp_path / name
        path.write_text(text, encoding="utf-8")
        return path

    return _write
