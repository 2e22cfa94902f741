from __future__ import annotations

from textwrap import dedent

from nlspec.auditor import audit
from nlspec.builder import build
from nlspec.config import RuleSet
from nlspec.issues import IssueKind
from tests.documents import kinds, widget_document

STORAGE_SECTION = "## 2. Storage\n\nThe store must persist every value.\n"


def test_audit_clean_document(clean_text: str) -> None:
    assert audit(build(clean_text)) == []


def test_missing_mirror_is_reported_once_per_section() -> None:
    text = widget_document(extra_sections=STORAGE_SECTION, dod_number="3")
    issues = audit(build(text))
    assert kinds(issues) == ["MissingDoDMirror"]
    assert issues[0].section == "2"
    assert issues[0].line == 11


def test_adding_traced_subsection_closes_the_loop() -> None:
    text = widget_document(
        extra_sections=STORAGE_SECTION,
        dod_number="3",
        dod_subsections="### 3.2 Storage\n\n- [ ] values persist across restarts\n",
    )
    assert audit(build(text)) == []


def test_subsection_title_citation_mirrors_section() -> None:
    text = widget_document(
        extra_sections=STORAGE_SECTION,
        dod_number="3",
        dod_subsections="### 3.1 Persistence checks (§2)\n\n- [ ] values persist\n",
    )
    assert audit(build(text)) == []


def test_number_suffix_inference_can_be_disabled() -> None:
    text = widget_document(
        extra_sections=STORAGE_SECTION,
        dod_number="3",
        dod_subsections="### 3.2 Durability\n\n- [ ] values persist\n",
    )
    assert audit(build(text)) == []
    rules = RuleSet(infer_trace_by_number_suffix=False)
    assert kinds(audit(build(text, rules), rules)) == [
        "MissingDoDMirror",
        "UngroundedChecklistItem",
    ]


def test_item_tracing_to_untestable_section_is_ungrounded() -> None:
    text = widget_document(
        extra_sections="## 2. Background\n\nHistory of the widget.\n",
        dod_number="3",
        dod_items="- [x] Overview returns the stored value (§1)\n- [ ] background is explained (§2)",
    )
    issues = audit(build(text))
    assert kinds(issues) == ["UngroundedChecklistItem"]
    assert "Section 2" in issues[0].message
    assert issues[0].section == "3"


def test_untraced_item_in_unrelated_group_is_ungrounded() -> None:
    text = widget_document(dod_subsections="### 2.9 Miscellany\n\n- [ ] docs are published\n")
    issues = audit(build(text))
    assert kinds(issues) == ["UngroundedChecklistItem"]
    assert issues[0].section == "2.9"


def test_malformed_item_still_counts_for_mirror_tracing() -> None:
    text = widget_document(
        dod_items="",
        dod_subsections="### 2.1 Overview\n\n- [x] stored value is returned\n- [y] done\n",
    )
    document = build(text)
    group = document.definition_of_done.children[0]
    assert [item.text for item in group.checklist_items] == ["stored value is returned", "done"]
    assert audit(document) == []


def test_missing_definition_of_done_is_document_level() -> None:
    text = "# Widget Spec\n\n## 1. Overview\n\nThe widget must return the stored value.\n"
    issues = audit(build(text))
    assert kinds(issues) == ["MissingDefinitionOfDone"]
    assert issues[0].section is None
    assert issues[0].sort_key == (-1,)


def test_document_without_testable_sections_needs_no_definition_of_done() -> None:
    assert audit(build("## 1. Background\n\nHistory of the widget.\n")) == []


def test_extra_definition_of_done_sections_are_reported() -> None:
    text = widget_document(trailer="## 3. Definition of Done\n\n- [ ] again (§1)\n")
    issues = audit(build(text))
    assert kinds(issues) == ["MultipleDefinitionOfDone"]
    assert issues[0].section == "3"


def test_appendix_sections_are_not_body_sections() -> None:
    text = widget_document(
        trailer=dedent(
            """\
            ## Appendix A: Rules

            Every entry must be unique.
            """
        )
    )
    assert audit(build(text)) == []


def test_disabled_mirror_kind_is_skipped() -> None:
    text = widget_document(extra_sections=STORAGE_SECTION, dod_number="3")
    rules = RuleSet(disabled=frozenset({IssueKind.MISSING_DOD_MIRROR}))
    assert audit(build(text, rules), rules) == []


def test_group_citation_accepts_every_item_trace_form() -> None:
    for citation in ("§2", "Section 2"):
        text = widget_document(
            extra_sections=STORAGE_SECTION,
            dod_number="3",
            dod_subsections=f"### 3.1 Persistence checks ({citation})\n\n- [ ] values persist\n",
        )
        assert audit(build(text)) == [], citation
