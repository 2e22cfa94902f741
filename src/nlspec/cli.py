from __future__ import annotations

import json
from enum import Enum
from pathlib import Path
from typing import List, Optional

import typer

from nlspec.config import RuleSet, load_config, registry_path_from_config, rule_set_from_config
from nlspec.exceptions import ConfigError, MalformedStructure
from nlspec.registry import DocumentRegistry, load_registry
from nlspec.report import Report
from nlspec.schema import CheckResponseDTO
from nlspec.validator import validate

app = typer.Typer(add_completion=False)

_STDOUT_PATH = "-"
EXIT_CLEAN = 0
EXIT_ISSUES = 1
EXIT_FAILURE = 2


class OutputFormat(str, Enum):
    MARKDOWN = "markdown"
    JSON = "json"


def _write_text_to_target(target: str, payload: str) -> None:
    text = payload if payload.endswith("\n") else payload + "\n"
    if target == _STDOUT_PATH:
        typer.echo(text, nl=False)
        return
    Path(target).write_text(text, encoding="utf-8")


def _load_rules(
    *,
    root: Path,
    config: Optional[Path],
    profile: Optional[str],
) -> tuple[RuleSet, dict[str, object]]:
    data = load_config(root=root, config_path=config)
    return rule_set_from_config(data, profile=profile), data


def _load_registry(
    *,
    root: Path,
    registry: Optional[Path],
    data: dict[str, object],
) -> DocumentRegistry | None:
    path = registry if registry is not None else registry_path_from_config(data, root=root)
    if path is None:
        return None
    return load_registry(path)


def _document_name(path: Path, registry: DocumentRegistry | None) -> str:
    if registry is not None:
        registered = registry.lookup(path.name)
        if registered is not None:
            return registered.name
    return str(path)


def _render(reports: list[Report], errors: list[str], exit_code: int, output_format: OutputFormat) -> str:
    if output_format is OutputFormat.JSON:
        response = CheckResponseDTO(
            reports=[report.to_dto() for report in reports],
            errors=errors,
            exit_code=exit_code,
        )
        return json.dumps(response.model_dump(), indent=2, sort_keys=True)
    return "\n".join(report.render_markdown() for report in reports)


@app.command()
def check(
    paths: List[Path] = typer.Argument(..., help="NLSpec documents to validate."),
    profile: Optional[str] = typer.Option(None, "--profile", help="Rule profile: strict or lenient."),
    config: Optional[Path] = typer.Option(None, "--config", help="Path to nlspec.toml."),
    root: Path = typer.Option(Path("."), "--root", help="Directory searched for nlspec.toml."),
    registry: Optional[Path] = typer.Option(None, "--registry", help="Sibling-document registry (YAML)."),
    output_format: OutputFormat = typer.Option(OutputFormat.MARKDOWN, "--format"),
    output: str = typer.Option(_STDOUT_PATH, "--output", help="Report target; '-' for stdout."),
) -> None:
    """Validate documents; exit 0 when clean, 1 on issues, 2 on failures."""
    try:
        rules, data = _load_rules(root=root, config=config, profile=profile)
        documents = _load_registry(root=root, registry=registry, data=data)
    except ConfigError as exc:
        typer.echo(f"nlspec: {exc}", err=True)
        raise typer.Exit(code=EXIT_FAILURE)

    reports: list[Report] = []
    errors: list[str] = []
    for path in paths:
        try:
            text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            errors.append(f"{path}: cannot read document: {exc}")
            continue
        try:
            reports.append(
                validate(
                    text,
                    rules=rules,
                    registry=documents,
                    document_name=_document_name(path, documents),
                )
            )
        except MalformedStructure as exc:
            errors.append(f"{path}: malformed structure: {exc}")

    if errors:
        exit_code = EXIT_FAILURE
    elif all(report.is_clean() for report in reports):
        exit_code = EXIT_CLEAN
    else:
        exit_code = EXIT_ISSUES
    for message in errors:
        typer.echo(message, err=True)
    _write_text_to_target(output, _render(reports, errors, exit_code, output_format))
    raise typer.Exit(code=exit_code)


@app.command()
def rules(
    profile: Optional[str] = typer.Option(None, "--profile", help="Rule profile: strict or lenient."),
    config: Optional[Path] = typer.Option(None, "--config", help="Path to nlspec.toml."),
    root: Path = typer.Option(Path("."), "--root", help="Directory searched for nlspec.toml."),
) -> None:
    """Print the effective rule set as JSON."""
    try:
        active, _ = _load_rules(root=root, config=config, profile=profile)
    except ConfigError as exc:
        typer.echo(f"nlspec: {exc}", err=True)
        raise typer.Exit(code=EXIT_FAILURE)
    typer.echo(json.dumps(active.as_dict(), indent=2, sort_keys=True))


def main() -> None:
    app()


if __name__ == "__main__":
    main()
