"""Project structure derivation — directories, entry points and the import graph.

Entry points are the union of two signals: files whose names match the usual
entry-point conventions, and roots of the observed import graph (files that
import other observed files but are imported by none).
"""

from __future__ import annotations

import posixpath
from typing import Sequence

import networkx as nx  # type: ignore[import-untyped]

from page_context.domain.entities import ObservedFile, ProjectStructure
from page_context.services.file_catalog import is_entry_point
from page_context.services.imports import extract_imports


def derive_directories(paths: Sequence[str]) -> tuple[str, ...]:
    """Every proper prefix directory of every path, sorted."""
    dirs: set[str] = set()
    for path in paths:
        parent = posixpath.dirname(path.strip("/"))
        while parent:
            dirs.add(parent)
            parent = posixpath.dirname(parent)
    return tuple(sorted(dirs))


def _module_keys(path: str) -> set[str]:
    """Names another file could use to import *path*."""
    stem, _ext = posixpath.splitext(path.strip("/"))
    keys = {stem, posixpath.basename(stem), stem.replace("/", ".")}
    if posixpath.basename(stem) in ("index", "__init__", "mod"):
        parent = posixpath.dirname(stem)
        if parent:
            keys.update({parent, posixpath.basename(parent), parent.replace("/", ".")})
    return {k for k in keys if k}


def _resolve(importer: str, target: str, index: dict[str, str]) -> str | None:
    if target.startswith("./") or target.startswith("../"):
        joined = posixpath.normpath(posixpath.join(posixpath.dirname(importer), target))
        return index.get(joined)
    cleaned = target.lstrip(".").lstrip("@/").strip("/")
    if not cleaned:
        return None
    for candidate in (cleaned, cleaned.replace(".", "/"), cleaned.rsplit("/", 1)[-1]):
        if candidate in index:
            return index[candidate]
    return None


def build_import_graph(files: Sequence[ObservedFile]) -> nx.DiGraph:  # type: ignore[type-arg]
    """Directed graph with an edge ``a -> b`` when *a* imports observed file *b*."""
    graph: nx.DiGraph = nx.DiGraph()  # type: ignore[type-arg]
    index: dict[str, str] = {}
    for f in files:
        graph.add_node(f.path)
        for key in _module_keys(f.path):
            index.setdefault(key, f.path)

    for f in files:
        for target in extract_imports(f.language, f.content):
            resolved = _resolve(f.path, target, index)
            if resolved and resolved != f.path:
                graph.add_edge(f.path, resolved)
    return graph


def graph_roots(graph: nx.DiGraph) -> list[str]:  # type: ignore[type-arg]
    return sorted(
        node
        for node in graph.nodes
        if graph.in_degree(node) == 0 and graph.out_degree(node) > 0
    )


def derive_entry_points(files: Sequence[ObservedFile]) -> tuple[str, ...]:
    named = {f.path for f in files if is_entry_point(f.path)}
    roots = set(graph_roots(build_import_graph(files)))
    return tuple(sorted(named | roots))


def build_structure(
    files: Sequence[ObservedFile], *, tier: int = 0, strategy: str = ""
) -> ProjectStructure:
    """Assemble a :class:`ProjectStructure` from the winning strategy's files."""
    if not files:
        return ProjectStructure.empty()
    ordered = tuple(files)
    return ProjectStructure(
        files=ordered,
        directories=derive_directories([f.path for f in ordered]),
        entry_points=derive_entry_points(ordered),
        total_files=len(ordered),
        total_lines=sum(f.line_count for f in ordered),
        source_tier=tier,
        strategy=strategy,
    )
