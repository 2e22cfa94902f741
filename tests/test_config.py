from __future__ import annotations

from pathlib import Path

import pytest

from nlspec.config import (
    DEFAULT_CONFIG_NAME,
    PROFILES,
    RuleSet,
    load_config,
    load_rule_set,
    registry_path_from_config,
    rule_set_for_profile,
    rule_set_from_config,
)
from nlspec.exceptions import ConfigError
from nlspec.issues import IssueKind, Severity


def test_strict_profile_is_default() -> None:
    assert rule_set_for_profile(None) == RuleSet()
    assert rule_set_for_profile("STRICT").profile == "strict"


def test_lenient_profile_disables_heuristic_rules(lenient_rules: RuleSet) -> None:
    assert lenient_rules.enabled(IssueKind.NON_BEHAVIORAL_CLASSIFICATION) is False
    assert lenient_rules.enabled(IssueKind.MISSING_DOD_MIRROR) is True
    assert lenient_rules.severity_for(IssueKind.MISSING_DEFAULT_COLUMN) is Severity.WARNING


def test_profiles_coexist(strict_rules: RuleSet, lenient_rules: RuleSet) -> None:
    assert strict_rules.enabled(IssueKind.NON_BEHAVIORAL_CLASSIFICATION) is True
    assert lenient_rules.enabled(IssueKind.NON_BEHAVIORAL_CLASSIFICATION) is False
    assert set(PROFILES) == {"strict", "lenient"}


def test_unknown_profile_raises_config_error() -> None:
    with pytest.raises(ConfigError):
        rule_set_for_profile("paranoid")


def test_rule_set_from_config_layers_over_profile() -> None:
    rules = rule_set_from_config(
        {
            "profile": "lenient",
            "model": {"extra_keywords": ["emit"], "dod_titles": ["Acceptance Criteria"]},
            "lint": {
                "disabled": ["MissingDefaultColumn"],
                "enabled": ["NonBehavioralClassification"],
                "behavior_min_tokens": 2,
            },
            "audit": {"infer_trace_by_number_suffix": "no"},
            "severity": {"MissingDoDMirror": "warning"},
        }
    )
    assert rules.profile == "lenient"
    assert "EMIT" in rules.keywords
    assert "RETURN" in rules.keywords
    assert rules.dod_titles == ("acceptance criteria",)
    assert rules.enabled(IssueKind.MISSING_DEFAULT_COLUMN) is False
    assert rules.enabled(IssueKind.NON_BEHAVIORAL_CLASSIFICATION) is True
    assert rules.behavior_min_tokens == 2
    assert rules.infer_trace_by_number_suffix is False
    assert rules.severity_for(IssueKind.MISSING_DOD_MIRROR) is Severity.WARNING


def test_explicit_profile_wins_over_file_profile() -> None:
    assert rule_set_from_config({"profile": "lenient"}, profile="strict").profile == "strict"


@pytest.mark.parametrize(
    "payload",
    [
        {"lint": {"disabled": ["NoSuchKind"]}},
        {"severity": {"MissingDoDMirror": "fatal"}},
        {"lint": {"behavior_min_tokens": 0}},
    ],
)
def test_invalid_config_values_raise_config_error(payload: dict[str, object]) -> None:
    with pytest.raises(ConfigError):
        rule_set_from_config(payload)


def test_load_config_reads_toml_from_root(tmp_path: Path) -> None:
    (tmp_path / DEFAULT_CONFIG_NAME).write_text(
        'profile = "lenient"\nregistry = "docs/registry.yaml"\n', encoding="utf-8"
    )
    data = load_config(root=tmp_path)
    assert data["profile"] == "lenient"
    assert load_rule_set(root=tmp_path).profile == "lenient"
    assert registry_path_from_config(data, root=tmp_path) == tmp_path / "docs" / "registry.yaml"


def test_missing_config_file_yields_defaults(tmp_path: Path) -> None:
    assert load_config(root=tmp_path) == {}
    assert load_rule_set(root=tmp_path) == RuleSet()
    assert registry_path_from_config({}, root=tmp_path) is None


def test_malformed_toml_raises_config_error(tmp_path: Path) -> None:
    path = tmp_path / "broken.toml"
    path.write_text("profile = [\n", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_config(config_path=path)


def test_as_dict_reports_effective_severities(lenient_rules: RuleSet) -> None:
    payload = lenient_rules.as_dict()
    assert payload["profile"] == "lenient"
    assert "NonBehavioralClassification" in payload["disabled"]
    assert payload["severity"]["MissingDefaultColumn"] == "warning"
    assert payload["severity"]["DanglingReference"] == "error"
