from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, datetime, time
from pathlib import Path
from typing import TYPE_CHECKING, Mapping, TypeAlias
import tomllib

from nlspec.exceptions import ConfigError
from nlspec.issues import Issue, IssueKind, Severity, issue_kind

if TYPE_CHECKING:
    from nlspec.model import Section

DEFAULT_CONFIG_NAME = "nlspec.toml"

TomlScalar: TypeAlias = str | int | float | bool | None | date | datetime | time
TomlValue: TypeAlias = TomlScalar | list["TomlValue"] | dict[str, "TomlValue"]
TomlTable: TypeAlias = dict[str, TomlValue]

DEFAULT_KEYWORDS = frozenset(
    {
        "FUNCTION",
        "PROCEDURE",
        "RETURN",
        "RETURNS",
        "IF",
        "THEN",
        "ELSE",
        "ELIF",
        "END",
        "FOR",
        "EACH",
        "IN",
        "WHILE",
        "DO",
        "LOOP",
        "BREAK",
        "CONTINUE",
        "LET",
        "SET",
        "CALL",
        "AND",
        "OR",
        "NOT",
        "RECORD",
        "ENUM",
        "INTERFACE",
        "MATCH",
        "CASE",
        "WHEN",
        "RAISE",
        "TRY",
        "CATCH",
        "YIELD",
        "AWAIT",
        "ASYNC",
    }
)


@dataclass(frozen=True)
class TableKindRule:
    kind: str
    column_groups: tuple[tuple[str, ...], ...]


DEFAULT_TABLE_KINDS: tuple[TableKindRule, ...] = (
    TableKindRule(
        "validationMatrix",
        (("input", "case", "scenario"), ("expected", "valid", "result")),
    ),
    TableKindRule(
        "attribute",
        (
            ("field", "name", "attribute", "parameter", "property", "key", "option"),
            ("type",),
        ),
    ),
    TableKindRule(
        "classification",
        (
            ("kind", "category", "class", "condition", "status", "variant", "error type"),
            ("behavior", "action", "handling", "response", "effect", "outcome"),
        ),
    ),
    TableKindRule(
        "mapping",
        (("from", "source", "input"), ("to", "target", "maps to", "output")),
    ),
)


@dataclass(frozen=True)
class RuleSet:
    """Every tunable knob of the model builder and the three analysis passes."""

    profile: str = "strict"
    keywords: frozenset[str] = DEFAULT_KEYWORDS
    pseudocode_languages: frozenset[str] = frozenset({"", "pseudocode", "pseudo"})
    comment_marker: str = "--"
    comment_leaders: tuple[str, ...] = ("--", "//", "/*", ";;", "#")
    table_kinds: tuple[TableKindRule, ...] = DEFAULT_TABLE_KINDS
    default_column: str = "default"
    error_type_column: str = "error type"
    recovery_column: str = "recovery"
    behavior_min_tokens: int = 3
    out_of_scope_titles: tuple[str, ...] = ("out of scope",)
    extension_point_phrases: tuple[str, ...] = (
        "extension point",
        "extensible",
        "extend",
        "hook",
        "plugin",
        "can be added",
        "could be added",
        "may be added",
        "future",
    )
    dod_titles: tuple[str, ...] = ("definition of done",)
    normative_terms: tuple[str, ...] = ("must", "shall", "should", "required", "must not")
    imperative_verbs: tuple[str, ...] = (
        "return",
        "reject",
        "emit",
        "raise",
        "report",
        "validate",
        "ensure",
        "parse",
        "use",
        "store",
        "send",
        "retry",
        "fail",
        "skip",
        "call",
        "compute",
    )
    type_definition_keywords: tuple[str, ...] = ("RECORD", "ENUM", "INTERFACE")
    behavior_signal_columns: tuple[str, ...] = ("default", "recovery", "meaning")
    hard_dependency_phrases: tuple[str, ...] = ("which handles", "layers on top of", "builds on")
    soft_dependency_phrases: tuple[str, ...] = (
        "soft dependency on",
        "optionally uses",
        "any implementation of",
    )
    layer_negation_phrases: tuple[str, ...] = ("does NOT use",)
    relationship_heading_prefix: str = "relationship to"
    boundary_markers: tuple[str, ...] = ("interface", "boundary")
    infer_trace_by_number_suffix: bool = True
    disabled: frozenset[IssueKind] = frozenset()
    severity_overrides: Mapping[IssueKind, Severity] = field(default_factory=dict)

    def enabled(self, kind: IssueKind) -> bool:
        return kind not in self.disabled

    def severity_for(self, kind: IssueKind) -> Severity:
        return self.severity_overrides.get(kind, kind.default_severity)

    def issue(
        self,
        kind: IssueKind,
        message: str,
        *,
        section: Section | None = None,
        line: int = 0,
    ) -> Issue:
        if section is None:
            return Issue(
                kind=kind,
                message=message,
                severity=self.severity_for(kind),
                line=line,
            )
        return Issue(
            kind=kind,
            message=message,
            severity=self.severity_for(kind),
            section=section.label,
            section_title=section.title,
            line=line or section.line,
            sort_key=section.sort_key,
        )

    def as_dict(self) -> dict[str, object]:
        return {
            "profile": self.profile,
            "keywords": sorted(self.keywords),
            "pseudocode_languages": sorted(self.pseudocode_languages),
            "comment_marker": self.comment_marker,
            "comment_leaders": list(self.comment_leaders),
            "table_kinds": {
                rule.kind: [list(group) for group in rule.column_groups]
                for rule in self.table_kinds
            },
            "behavior_min_tokens": self.behavior_min_tokens,
            "out_of_scope_titles": list(self.out_of_scope_titles),
            "extension_point_phrases": list(self.extension_point_phrases),
            "dod_titles": list(self.dod_titles),
            "infer_trace_by_number_suffix": self.infer_trace_by_number_suffix,
            "disabled": sorted(kind.value for kind in self.disabled),
            "severity": {
                kind.value: self.severity_for(kind).value for kind in IssueKind
            },
        }


_LENIENT_WARNINGS = (
    IssueKind.KEYWORD_CASING_VIOLATION,
    IssueKind.COMMENT_MARKER_VIOLATION,
    IssueKind.MISSING_DEFAULT_COLUMN,
    IssueKind.MISSING_RECOVERY_COLUMN,
    IssueKind.MALFORMED_CHECKLIST_MARKER,
    IssueKind.MISPLACED_DEPENDENCY_DECLARATION,
    IssueKind.SOFT_DEPENDENCY_MISSING_BOUNDARY,
)

PROFILES: dict[str, RuleSet] = {
    "strict": RuleSet(),
    "lenient": RuleSet(
        profile="lenient",
        disabled=frozenset(
            {
                IssueKind.NON_BEHAVIORAL_CLASSIFICATION,
                IssueKind.MISSING_EXTENSION_POINT,
                IssueKind.SECTION_NUMBER_ORDER_VIOLATION,
            }
        ),
        severity_overrides={kind: Severity.WARNING for kind in _LENIENT_WARNINGS},
    ),
}


def rule_set_for_profile(profile: str | None) -> RuleSet:
    name = (profile or "strict").strip().lower()
    try:
        return PROFILES[name]
    except KeyError:
        raise ConfigError(
            f"unknown profile {profile!r}; expected one of {', '.join(sorted(PROFILES))}"
        ) from None


def _load_toml(path: Path) -> TomlTable:
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError:
        return {}
    try:
        data = tomllib.loads(raw)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"{path}: {exc}") from exc
    return data if isinstance(data, dict) else {}


def load_config(root: Path | None = None, config_path: Path | None = None) -> TomlTable:
    if config_path is None:
        base = root if root is not None else Path.cwd()
        config_path = base / DEFAULT_CONFIG_NAME
    return _load_toml(config_path)


def _section(data: TomlTable, name: str) -> TomlTable:
    section = data.get(name, {})
    return section if isinstance(section, dict) else {}


def _normalize_name_list(value: TomlValue) -> list[str]:
    items: list[str] = []
    if value is None:
        return items
    if isinstance(value, str):
        items = [part.strip() for part in value.split(",") if part.strip()]
    elif isinstance(value, (list, tuple, set)):
        for item in value:
            if isinstance(item, str):
                items.extend([part.strip() for part in item.split(",") if part.strip()])
    return [item for item in items if item]


def _as_bool(value: TomlValue) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return False


def _kinds(names: list[str]) -> frozenset[IssueKind]:
    try:
        return frozenset(issue_kind(name) for name in names)
    except ValueError as exc:
        raise ConfigError(str(exc)) from exc


def _severity_overrides(section: TomlTable) -> dict[IssueKind, Severity]:
    overrides: dict[IssueKind, Severity] = {}
    for name, value in section.items():
        try:
            kind = issue_kind(name)
            overrides[kind] = Severity(str(value).strip().lower())
        except ValueError as exc:
            raise ConfigError(f"[severity] {name} = {value!r}: {exc}") from exc
    return overrides


def _lowered(values: list[str]) -> tuple[str, ...]:
    return tuple(value.lower() for value in values)


def rule_set_from_config(data: TomlTable, *, profile: str | None = None) -> RuleSet:
    """Layer a parsed `nlspec.toml` payload over a named profile.

    An explicit `profile` argument wins over the file's top-level `profile`.
    List options under `[model]` and `[lint]` replace the profile defaults,
    except `extra_keywords`, which extends the recognized keyword set.
    """
    base_profile = profile
    if base_profile is None:
        raw_profile = data.get("profile")
        base_profile = raw_profile if isinstance(raw_profile, str) else None
    rules = rule_set_for_profile(base_profile)
    changes: dict[str, object] = {}

    model = _section(data, "model")
    if "keywords" in model:
        changes["keywords"] = frozenset(
            name.upper() for name in _normalize_name_list(model["keywords"])
        )
    if "extra_keywords" in model:
        base = changes.get("keywords", rules.keywords)
        changes["keywords"] = frozenset(base) | frozenset(
            name.upper() for name in _normalize_name_list(model["extra_keywords"])
        )
    if "pseudocode_languages" in model:
        raw_languages = model["pseudocode_languages"]
        languages = raw_languages if isinstance(raw_languages, list) else []
        changes["pseudocode_languages"] = frozenset(
            str(item).strip().lower() for item in languages if isinstance(item, str)
        )
    for key in (
        "dod_titles",
        "normative_terms",
        "imperative_verbs",
        "behavior_signal_columns",
        "hard_dependency_phrases",
        "soft_dependency_phrases",
        "boundary_markers",
    ):
        if key in model:
            changes[key] = _lowered(_normalize_name_list(model[key]))
    if "type_definition_keywords" in model:
        changes["type_definition_keywords"] = tuple(
            name.upper() for name in _normalize_name_list(model["type_definition_keywords"])
        )

    lint = _section(data, "lint")
    disabled = set(rules.disabled)
    disabled.update(_kinds(_normalize_name_list(lint.get("disabled"))))
    disabled.difference_update(_kinds(_normalize_name_list(lint.get("enabled"))))
    changes["disabled"] = frozenset(disabled)
    if "behavior_min_tokens" in lint:
        raw_min = lint["behavior_min_tokens"]
        if not isinstance(raw_min, int) or isinstance(raw_min, bool) or raw_min < 1:
            raise ConfigError(f"[lint] behavior_min_tokens must be a positive integer, got {raw_min!r}")
        changes["behavior_min_tokens"] = raw_min
    for key in ("out_of_scope_titles", "extension_point_phrases"):
        if key in lint:
            changes[key] = _lowered(_normalize_name_list(lint[key]))

    audit = _section(data, "audit")
    if "infer_trace_by_number_suffix" in audit:
        changes["infer_trace_by_number_suffix"] = _as_bool(
            audit["infer_trace_by_number_suffix"]
        )

    overrides = dict(rules.severity_overrides)
    overrides.update(_severity_overrides(_section(data, "severity")))
    changes["severity_overrides"] = overrides
    return replace(rules, **changes)


def load_rule_set(
    root: Path | None = None,
    config_path: Path | None = None,
    *,
    profile: str | None = None,
) -> RuleSet:
    return rule_set_from_config(load_config(root=root, config_path=config_path), profile=profile)


def registry_path_from_config(data: TomlTable, *, root: Path) -> Path | None:
    raw = data.get("registry")
    if not isinstance(raw, str) or not raw.strip():
        return None
    path = Path(raw.strip())
    return path if path.is_absolute() else root / path
