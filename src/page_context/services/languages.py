"""Language tagging — the only "understanding" of source code the system does."""

from __future__ import annotations

import posixpath
import re
from typing import Iterable

UNKNOWN = "unknown"

_EXTENSION_LANGUAGE: dict[str, str] = {
    ".py": "python",
    ".pyw": "python",
    ".js": "javascript",
    ".mjs": "javascript",
    ".cjs": "javascript",
    ".jsx": "javascript",
    ".ts": "typescript",
    ".tsx": "typescript",
    ".go": "go",
    ".rs": "rust",
    ".rb": "ruby",
    ".java": "java",
    ".kt": "kotlin",
    ".cs": "csharp",
    ".c": "c",
    ".h": "c",
    ".cpp": "cpp",
    ".hpp": "cpp",
    ".swift": "swift",
    ".php": "php",
    ".sh": "shell",
    ".bash": "shell",
    ".yaml": "yaml",
    ".yml": "yaml",
    ".toml": "toml",
    ".json": "json",
    ".md": "markdown",
    ".html": "html",
    ".vue": "vue",
    ".svelte": "svelte",
    ".css": "css",
    ".scss": "scss",
    ".sql": "sql",
}

_FILENAME_LANGUAGE: dict[str, str] = {
    "dockerfile": "dockerfile",
    "makefile": "makefile",
    ".env": "dotenv",
    "gemfile": "ruby",
}

# Aliases used by highlighters and editor modes.
_ALIASES: dict[str, str] = {
    "js": "javascript",
    "node": "javascript",
    "jsx": "javascript",
    "ts": "typescript",
    "tsx": "typescript",
    "py": "python",
    "python3": "python",
    "rb": "ruby",
    "rs": "rust",
    "golang": "go",
    "sh": "shell",
    "bash": "shell",
    "zsh": "shell",
    "console": "shell",
    "yml": "yaml",
    "c++": "cpp",
    "cs": "csharp",
    "c#": "csharp",
    "htmlmixed": "html",
    "xml": "html",
    "text/javascript": "javascript",
    "text/typescript": "typescript",
    "text/x-python": "python",
}

_DEFAULT_EXTENSION: dict[str, str] = {
    lang: ext
    for ext, lang in reversed(list(_EXTENSION_LANGUAGE.items()))
}

_CLASS_LANGUAGE_RE = re.compile(r"^(?:language|lang|highlight-source|hljs)-(?P<lang>[\w+#.-]+)$")

# Runtime families: a page showing these languages runs on the key runtime.
RUNTIME_FAMILY: dict[str, str] = {
    "javascript": "javascript",
    "typescript": "javascript",
    "vue": "javascript",
    "svelte": "javascript",
    "python": "python",
    "go": "go",
    "rust": "rust",
    "ruby": "ruby",
    "java": "java",
    "kotlin": "java",
    "php": "php",
    "csharp": "csharp",
}


def normalize(tag: str | None) -> str:
    """Lower-case *tag* and resolve common aliases; empty becomes ``unknown``."""
    if not tag:
        return UNKNOWN
    lowered = tag.strip().lower()
    if not lowered or lowered in ("plaintext", "text", "none", "null"):
        return UNKNOWN
    return _ALIASES.get(lowered, lowered)


def language_for_path(path: str) -> str:
    name = posixpath.basename(path).lower()
    if name in _FILENAME_LANGUAGE:
        return _FILENAME_LANGUAGE[name]
    if name.startswith(".env"):
        return "dotenv"
    _root, ext = posixpath.splitext(name)
    return _EXTENSION_LANGUAGE.get(ext, UNKNOWN)


def extension_for(language: str) -> str:
    """File extension used when naming synthetic files of *language*."""
    return _DEFAULT_EXTENSION.get(normalize(language), ".txt")


def language_from_classes(classes: Iterable[str]) -> str:
    """Read ``language-xxx`` / ``lang-xxx`` style highlighter classes."""
    for cls in classes:
        match = _CLASS_LANGUAGE_RE.match(cls.strip())
        if match:
            return normalize(match["lang"])
    return UNKNOWN


def runtime_for(language: str) -> str:
    return RUNTIME_FAMILY.get(normalize(language), UNKNOWN)
