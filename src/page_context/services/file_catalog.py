"""File catalog — decide which observed files to keep and what role they play."""

from __future__ import annotations

import posixpath
import re

from page_context.domain.entities import FileRole

SKIP_DIRS: frozenset[str] = frozenset(
    {
        "node_modules",
        ".git",
        "dist",
        "build",
        "venv",
        ".venv",
        "__pycache__",
        ".next",
        ".nuxt",
        "coverage",
        "vendor",
    }
)

BINARY_EXTENSIONS: frozenset[str] = frozenset(
    {
        ".pyc", ".so", ".o", ".dll", ".exe", ".bin", ".class", ".jar",
        ".png", ".jpg", ".jpeg", ".gif", ".bmp", ".ico", ".webp",
        ".mp3", ".mp4", ".mov", ".wav",
        ".woff", ".woff2", ".ttf", ".eot", ".otf",
        ".zip", ".tar", ".gz", ".rar", ".7z", ".pdf",
    }
)

README_NAMES: frozenset[str] = frozenset(
    {"readme.md", "readme.rst", "readme.txt", "readme"}
)

CONFIG_NAMES: frozenset[str] = frozenset(
    {
        "pyproject.toml", "setup.py", "setup.cfg",
        "package.json", "tsconfig.json", "jsconfig.json",
        "webpack.config.js", "vite.config.js", "vite.config.ts",
        "next.config.js", "nuxt.config.ts", "angular.json",
        "babel.config.js", ".babelrc", ".eslintrc", ".eslintrc.json",
        ".prettierrc", "tailwind.config.js",
        "requirements.txt", "requirements.in", "pipfile",
        "cargo.toml", "go.mod", "gemfile", "build.gradle", "pom.xml",
        "makefile", "dockerfile", "docker-compose.yml", "docker-compose.yaml",
        "tox.ini", "ruff.toml",
    }
)

# Lock file name -> package manager it implies.
LOCK_FILES: dict[str, str] = {
    "package-lock.json": "npm",
    "yarn.lock": "yarn",
    "pnpm-lock.yaml": "pnpm",
    "bun.lockb": "bun",
    "pipfile.lock": "pipenv",
    "poetry.lock": "poetry",
    "uv.lock": "uv",
    "cargo.lock": "cargo",
    "go.sum": "go",
    "gemfile.lock": "bundler",
    "composer.lock": "composer",
}

# Manifest name -> package manager used when no lock file is seen.
MANIFEST_MANAGERS: dict[str, str] = {
    "package.json": "npm",
    "requirements.txt": "pip",
    "pyproject.toml": "pip",
    "pipfile": "pipenv",
    "cargo.toml": "cargo",
    "go.mod": "go",
    "gemfile": "bundler",
    "composer.json": "composer",
}

ENTRY_POINT_RE: tuple[re.Pattern[str], ...] = (
    re.compile(r"^(?:index|main|app|server)\.(?:js|jsx|ts|tsx|mjs)$"),
    re.compile(r"^(?:main|app|manage|wsgi|asgi|server|cli|__main__)\.py$"),
    re.compile(r"^main\.(?:go|rs|c|cpp|java|kt)$"),
    re.compile(r"^program\.cs$"),
)

TEST_INDICATORS: tuple[str, ...] = (
    "test_", "_test.", ".test.", ".spec.", "tests/", "__tests__/",
)

DOCS_INDICATORS: tuple[str, ...] = ("docs/", "doc/")


def _filename(path: str) -> str:
    return posixpath.basename(path).lower()


def is_env_file(path: str) -> bool:
    name = _filename(path)
    return name == ".env" or name.startswith(".env.")


def is_entry_point(path: str) -> bool:
    name = _filename(path)
    return any(pattern.match(name) for pattern in ENTRY_POINT_RE)


def lock_manager(path: str) -> str | None:
    return LOCK_FILES.get(_filename(path))


def should_skip(path: str, size_bytes: int, max_file_size: int) -> bool:
    """Return *True* if an observed file should be excluded."""
    if not path:
        return True
    if size_bytes > max_file_size:
        return True
    parts = path.split("/")
    if any(part in SKIP_DIRS for part in parts[:-1]):
        return True
    _root, ext = posixpath.splitext(_filename(path))
    return ext in BINARY_EXTENSIONS


def classify(path: str) -> FileRole:
    """Assign a :class:`FileRole` based on file name / path heuristics."""
    name = _filename(path)
    path_lower = path.lower()

    if name in README_NAMES:
        return FileRole.README
    if name in LOCK_FILES:
        return FileRole.LOCK
    if is_env_file(path):
        return FileRole.ENV
    if name in CONFIG_NAMES or name.endswith((".config.js", ".config.ts")):
        return FileRole.CONFIG
    if is_entry_point(path):
        return FileRole.ENTRY_POINT
    if any(ind in path_lower for ind in TEST_INDICATORS):
        return FileRole.TEST
    if any(ind in path_lower for ind in DOCS_INDICATORS):
        return FileRole.DOCS
    return FileRole.SOURCE
