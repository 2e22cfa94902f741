from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Iterable, Mapping

import yaml

from nlspec.exceptions import ConfigError
from nlspec.model import DependencyDeclaration, DependencyStrength, normalize_document_name


@dataclass(frozen=True)
class RegisteredDocument:
    name: str
    aliases: tuple[str, ...] = ()
    requires: tuple[str, ...] = ()
    exports: tuple[str, ...] = ()

    @property
    def key(self) -> str:
        return normalize_document_name(self.name)


@dataclass(frozen=True)
class DependencyEdge:
    source: str
    target: str
    section: str | None = None
    line: int = 0


@dataclass(frozen=True)
class DependencyGraph:
    """Directed graph of document nodes; edges carry the declaring section."""

    nodes: Mapping[str, str]
    edges: tuple[DependencyEdge, ...] = field(default=())
    root: str | None = None

    def label(self, key: str) -> str:
        return self.nodes.get(key, key)

    def edges_from(self, key: str) -> tuple[DependencyEdge, ...]:
        return tuple(edge for edge in self.edges if edge.source == key)

    def adjacency(self) -> dict[str, set[str]]:
        adjacency: dict[str, set[str]] = {key: set() for key in self.nodes}
        for edge in self.edges:
            adjacency.setdefault(edge.source, set()).add(edge.target)
            adjacency.setdefault(edge.target, set())
        return adjacency

    def cycles(self) -> list[list[str]]:
        """Node keys of every strongly connected component that forms a cycle."""
        adjacency = self.adjacency()
        cycles: list[list[str]] = []
        for component in _strongly_connected_components(adjacency):
            has_self = any(node in adjacency.get(node, set()) for node in component)
            if len(component) == 1 and not has_self:
                continue
            cycles.append(sorted(component))
        return sorted(cycles, key=lambda nodes: (len(nodes), nodes))


def _strongly_connected_components(graph: dict[str, set[str]]) -> list[set[str]]:
    index = 0
    indices: dict[str, int] = {}
    lowlinks: dict[str, int] = {}
    stack: list[str] = []
    on_stack: set[str] = set()
    components: list[set[str]] = []

    def visit(node: str) -> None:
        nonlocal index
        indices[node] = index
        lowlinks[node] = index
        index += 1
        stack.append(node)
        on_stack.add(node)
        for neighbor in sorted(graph.get(node, set())):
            if neighbor not in indices:
                visit(neighbor)
                lowlinks[node] = min(lowlinks[node], lowlinks[neighbor])
            elif neighbor in on_stack:
                lowlinks[node] = min(lowlinks[node], indices[neighbor])
        if lowlinks[node] == indices[node]:
            component: set[str] = set()
            while True:
                popped = stack.pop()
                on_stack.discard(popped)
                component.add(popped)
                if popped == node:
                    break
            components.append(component)

    for node in sorted(graph):
        if node not in indices:
            visit(node)
    return components


class DocumentRegistry:
    """Known sibling documents, looked up by name, alias or link path."""

    def __init__(self, documents: Iterable[RegisteredDocument] = ()):
        self._documents: dict[str, RegisteredDocument] = {}
        self._aliases: dict[str, str] = {}
        for document in documents:
            self.add(document)

    def add(self, document: RegisteredDocument) -> None:
        key = document.key
        if not key:
            raise ConfigError("registry document without a name")
        if key in self._documents:
            raise ConfigError(f"duplicate registry document {document.name!r}")
        self._documents[key] = document
        for alias in document.aliases:
            self._aliases[normalize_document_name(alias)] = key

    def __contains__(self, name: str) -> bool:
        return self.lookup(name) is not None

    def __len__(self) -> int:
        return len(self._documents)

    @property
    def documents(self) -> tuple[RegisteredDocument, ...]:
        return tuple(self._documents.values())

    def lookup(self, name: str | None) -> RegisteredDocument | None:
        if not name:
            return None
        key = normalize_document_name(name)
        if key in self._documents:
            return self._documents[key]
        if key in self._aliases:
            return self._documents[self._aliases[key]]
        basename = normalize_document_name(PurePosixPath(name.split("#", 1)[0]).name)
        if basename in self._aliases:
            return self._documents[self._aliases[basename]]
        return None

    def resolve_declaration(self, declaration: DependencyDeclaration) -> RegisteredDocument | None:
        return self.lookup(declaration.target_document_name) or self.lookup(declaration.target_path)

    def graph(
        self,
        *,
        document_name: str,
        declarations: Iterable[DependencyDeclaration] = (),
    ) -> DependencyGraph:
        nodes: dict[str, str] = {key: document.name for key, document in self._documents.items()}
        edges: list[DependencyEdge] = []
        for document in self._documents.values():
            for required in document.requires:
                target = self.lookup(required)
                target_key = target.key if target is not None else normalize_document_name(required)
                nodes.setdefault(target_key, required)
                edges.append(DependencyEdge(source=document.key, target=target_key))
        current = self.lookup(document_name)
        current_key = current.key if current is not None else normalize_document_name(document_name)
        nodes.setdefault(current_key, document_name)
        for declaration in declarations:
            if declaration.strength is not DependencyStrength.HARD:
                continue
            target = self.resolve_declaration(declaration)
            target_key = target.key if target is not None else declaration.target_key
            nodes.setdefault(target_key, declaration.target_document_name)
            edges.append(
                DependencyEdge(
                    source=current_key,
                    target=target_key,
                    section=declaration.section_number,
                    line=declaration.line,
                )
            )
        return DependencyGraph(nodes=nodes, edges=tuple(edges), root=current_key)


def _string_tuple(value: object, *, field_name: str, owner: str) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,)
    if isinstance(value, list) and all(isinstance(item, str) for item in value):
        return tuple(value)
    raise ConfigError(f"registry document {owner!r}: {field_name} must be a list of strings")


def registry_from_payload(payload: object) -> DocumentRegistry:
    if payload is None:
        return DocumentRegistry()
    if not isinstance(payload, dict):
        raise ConfigError("registry payload must be a mapping with a 'documents' list")
    entries = payload.get("documents", [])
    if not isinstance(entries, list):
        raise ConfigError("registry 'documents' must be a list")
    documents: list[RegisteredDocument] = []
    for entry in entries:
        if isinstance(entry, str):
            documents.append(RegisteredDocument(name=entry))
            continue
        if not isinstance(entry, dict) or not isinstance(entry.get("name"), str):
            raise ConfigError(f"invalid registry entry: {entry!r}")
        name = entry["name"]
        documents.append(
            RegisteredDocument(
                name=name,
                aliases=_string_tuple(entry.get("aliases"), field_name="aliases", owner=name),
                requires=_string_tuple(entry.get("requires"), field_name="requires", owner=name),
                exports=_string_tuple(entry.get("exports"), field_name="exports", owner=name),
            )
        )
    return DocumentRegistry(documents)


def load_registry(path: Path) -> DocumentRegistry:
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"cannot read registry {path}: {exc}") from exc
    try:
        payload = yaml.safe_load(raw)
    except yaml.YAMLError as exc:
        raise ConfigError(f"invalid registry YAML {path}: {exc}") from exc
    return registry_from_payload(payload)
