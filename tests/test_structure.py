"""Tests for structure derivation, file roles, imports and language tagging."""

from __future__ import annotations

import pytest

from page_context.domain.entities import FileRole, ObservedFile
from page_context.services.file_catalog import classify, should_skip
from page_context.services.imports import extract_imports
from page_context.services.languages import language_for_path, language_from_classes, normalize
from page_context.services.structure import (
    build_import_graph,
    build_structure,
    derive_directories,
    graph_roots,
)


def test_observed_file_counts() -> None:
    f = ObservedFile.from_content("a/b.py", "python", "x = 'é'\ny = 2")
    assert f.line_count == 2
    assert f.byte_size == len("x = 'é'\ny = 2".encode("utf-8"))
    assert ObservedFile.from_content("empty.py", "python").line_count == 0


def test_directories_are_every_proper_prefix() -> None:
    assert derive_directories(["src/app/main.py", "src/util.py", "README.md"]) == ("src", "src/app")


def test_import_graph_roots_become_entry_points() -> None:
    files = [
        ObservedFile.from_content("pkg/runner.py", "python", "from pkg import helpers\nimport pkg.models\n"),
        ObservedFile.from_content("pkg/helpers.py", "python", "import json\n"),
        ObservedFile.from_content("pkg/models.py", "python", "from pkg.helpers import x\n"),
    ]
    graph = build_import_graph(files)
    assert graph.has_edge("pkg/runner.py", "pkg/helpers.py")
    assert graph.has_edge("pkg/runner.py", "pkg/models.py")
    assert graph_roots(graph) == ["pkg/runner.py"]

    structure = build_structure(files, tier=1, strategy="test")
    assert structure.entry_points == ("pkg/runner.py",)
    assert structure.total_files == 3
    assert structure.total_lines == 7


def test_named_entry_points_without_imports() -> None:
    structure = build_structure([ObservedFile.from_content("src/index.js", "javascript", "run()")])
    assert structure.entry_points == ("src/index.js",)


def test_relative_js_imports_resolve() -> None:
    files = [
        ObservedFile.from_content("web/boot.ts", "typescript", "import { App } from './ui/app';\n"),
        ObservedFile.from_content("web/ui/app.ts", "typescript", "export const App = 1;\n"),
    ]
    assert graph_roots(build_import_graph(files)) == ["web/boot.ts"]


def test_primary_language_by_lines() -> None:
    structure = build_structure(
        [
            ObservedFile.from_content("a.py", "python", "1\n2\n3\n"),
            ObservedFile.from_content("b.js", "javascript", "1"),
            ObservedFile.from_content("c.txt", "unknown", "1\n2\n3\n4\n5\n"),
        ]
    )
    assert structure.primary_language == "python"
    assert structure.languages == ("python", "javascript")


def test_empty_structure() -> None:
    structure = build_structure([])
    assert structure.is_empty
    assert structure.primary_language == "unknown"


@pytest.mark.parametrize(
    ("path", "role"),
    [
        ("README.md", FileRole.README),
        ("yarn.lock", FileRole.LOCK),
        (".env.local", FileRole.ENV),
        ("package.json", FileRole.CONFIG),
        ("vite.config.ts", FileRole.CONFIG),
        ("src/main.py", FileRole.ENTRY_POINT),
        ("tests/test_app.py", FileRole.TEST),
        ("docs/guide.md", FileRole.DOCS),
        ("src/lib.rs", FileRole.SOURCE),
    ],
)
def test_file_roles(path: str, role: FileRole) -> None:
    assert classify(path) is role


@pytest.mark.parametrize(
    ("path", "size", "skipped"),
    [
        ("src/app.py", 10, False),
        ("node_modules/x/index.js", 10, True),
        ("assets/logo.png", 10, True),
        ("src/huge.py", 10_000, True),
        ("", 0, True),
    ],
)
def test_should_skip(path: str, size: int, skipped: bool) -> None:
    assert should_skip(path, size, 1_000) is skipped


def test_python_imports_survive_syntax_errors() -> None:
    assert extract_imports("python", "import os\nfrom app import (\n") == ["os", "app"]


def test_js_imports_and_requires() -> None:
    content = "import x from './x';\nconst y = require('../y');\nexport * from \"./z\";\n"
    assert extract_imports("javascript", content) == ["./x", "../y", "./z"]


@pytest.mark.parametrize(
    ("value", "expected"),
    [("JS", "javascript"), ("", "unknown"), ("plaintext", "unknown"), ("text/x-python", "python")],
)
def test_normalize(value: str, expected: str) -> None:
    assert normalize(value) == expected


def test_language_tagging() -> None:
    assert language_for_path("Dockerfile") == "dockerfile"
    assert language_for_path(".env.production") == "dotenv"
    assert language_from_classes(["hljs", "lang-rb"]) == "ruby"
