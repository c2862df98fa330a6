"""Import-target discovery — which observed files reference which others."""

from __future__ import annotations

import ast
import re

_PYTHON = "python"
_JS_FAMILY = frozenset({"javascript", "typescript", "vue", "svelte"})

_JS_IMPORT_RE = re.compile(
    r"""(?:^|\s)(?:import\s+(?:[^'"]*?\s+from\s+)?|export\s+[^'"]*?\s+from\s+|require\(\s*|import\(\s*)['"](?P<target>[^'"]+)['"]""",
    re.MULTILINE,
)
_GO_IMPORT_RE = re.compile(r"""^\s*(?:import\s+)?(?:\w+\s+)?"(?P<target>[\w./-]+)"\s*$""", re.MULTILINE)
_RUST_MOD_RE = re.compile(r"^\s*(?:pub\s+)?mod\s+(?P<target>\w+)\s*;", re.MULTILINE)


def _python_imports(source: str) -> list[str]:
    tree = ast.parse(source)
    imports: list[str] = []
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            for alias in node.names:
                imports.append(alias.name)
        elif isinstance(node, ast.ImportFrom):
            prefix = "." * node.level
            if node.module:
                imports.append(prefix + node.module)
                # "from pkg import mod" may name a submodule rather than an attribute.
                imports.extend(
                    f"{prefix}{node.module}.{alias.name}" for alias in node.names if alias.name != "*"
                )
            else:
                imports.extend(prefix + alias.name for alias in node.names)
    return imports


def _python_imports_fallback(source: str) -> list[str]:
    """Line-based scan for files that do not parse (fragments, Python 2)."""
    targets: list[str] = []
    for line in source.splitlines():
        stripped = line.strip()
        if stripped.startswith("import "):
            targets.extend(part.split(" as ")[0].strip() for part in stripped[7:].split(","))
        elif stripped.startswith("from ") and " import " in stripped:
            targets.append(stripped[5:].split(" import ", 1)[0].strip())
    return [t for t in targets if t]


def extract_imports(language: str, content: str) -> list[str]:
    """Return the raw import targets declared by a file's *content*."""
    if not content:
        return []
    if language == _PYTHON:
        try:
            return _python_imports(content)
        except (SyntaxError, ValueError):
            return _python_imports_fallback(content)
    if language in _JS_FAMILY:
        return [m["target"] for m in _JS_IMPORT_RE.finditer(content)]
    if language == "go":
        return [m["target"] for m in _GO_IMPORT_RE.finditer(content)]
    if language == "rust":
        return [m["target"] for m in _RUST_MOD_RE.finditer(content)]
    return []
