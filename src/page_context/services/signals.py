"""Dependency, environment and generic-content signal extraction.

All three extractors are best-effort: any error inside one of them yields
its "unknown"/empty snapshot and is logged, never raised.
"""

from __future__ import annotations

import json
import logging
import posixpath
import re
import tomllib
from typing import Iterable

from page_context.domain.entities import (
    ContentSignals,
    DeclaredPackage,
    DependencySnapshot,
    EnvironmentSnapshot,
    EnvironmentVariable,
    FileRole,
    ObservedFile,
    Presence,
    ProjectStructure,
)
from page_context.domain.ports.document_source import DocumentProbeSource
from page_context.services.file_catalog import (
    CONFIG_NAMES,
    LOCK_FILES,
    MANIFEST_MANAGERS,
    classify,
)
from page_context.services.languages import UNKNOWN, language_from_classes, runtime_for

logger = logging.getLogger(__name__)

# Listings that show every file of a directory; absence there is evidence.
_COMPLETE_LISTINGS = frozenset({"repository-tree", "legacy-tree"})

_MANIFEST_RUNTIME: dict[str, str] = {
    "package.json": "javascript",
    "requirements.txt": "python",
    "pyproject.toml": "python",
    "pipfile": "python",
    "cargo.toml": "rust",
    "go.mod": "go",
    "gemfile": "ruby",
    "composer.json": "php",
}


def _name(path: str) -> str:
    return posixpath.basename(path).lower()


def _linked_names(source: DocumentProbeSource) -> list[str]:
    names: list[str] = []
    for link in source.select("a[href]"):
        href = (link.attrs.get("href") or "").split("?", 1)[0].rstrip("/")
        if href:
            names.append(_name(href))
    return names


# ── Dependencies ────────────────────────────────────────────────────────────


def _package_json(content: str) -> list[DeclaredPackage]:
    data = json.loads(content)
    packages: list[DeclaredPackage] = []
    for section, is_dev in (("dependencies", False), ("devDependencies", True)):
        for name, version in (data.get(section) or {}).items():
            packages.append(DeclaredPackage(name=name, version=str(version), is_dev=is_dev))
    return packages


_REQUIREMENT_RE = re.compile(r"^(?P<name>[A-Za-z0-9][A-Za-z0-9._-]*)(?:\[[^\]]*\])?\s*(?P<spec>[<>=!~].*)?$")


def _requirement(line: str) -> DeclaredPackage | None:
    match = _REQUIREMENT_RE.match(line.split(";", 1)[0].strip())
    if not match:
        return None
    spec = (match["spec"] or "").strip()
    return DeclaredPackage(name=match["name"], version=spec or UNKNOWN)


def _requirements_txt(content: str) -> list[DeclaredPackage]:
    packages: list[DeclaredPackage] = []
    for raw in content.splitlines():
        line = raw.split("#", 1)[0].strip()
        if not line or line.startswith("-"):
            continue
        pkg = _requirement(line)
        if pkg:
            packages.append(pkg)
    return packages


def _pyproject(content: str) -> list[DeclaredPackage]:
    data = tomllib.loads(content)
    project = data.get("project") or {}
    packages = [p for p in map(_requirement, project.get("dependencies") or []) if p]
    for extra in (project.get("optional-dependencies") or {}).values():
        for dep in extra:
            pkg = _requirement(dep)
            if pkg:
                packages.append(DeclaredPackage(pkg.name, pkg.version, is_dev=True))
    return packages


_MANIFEST_PARSERS = {
    "package.json": _package_json,
    "requirements.txt": _requirements_txt,
    "pyproject.toml": _pyproject,
}


def _declared_packages(files: Iterable[ObservedFile]) -> list[DeclaredPackage]:
    packages: dict[str, DeclaredPackage] = {}
    for f in files:
        parser = _MANIFEST_PARSERS.get(_name(f.path))
        if parser is None or not f.content:
            continue
        try:
            for pkg in parser(f.content):
                packages.setdefault(pkg.name, pkg)
        except (ValueError, tomllib.TOMLDecodeError, AttributeError):
            logger.debug("Could not parse manifest %s", f.path, exc_info=True)
    return list(packages.values())


def _runtime(structure: ProjectStructure, content: ContentSignals, names: list[str]) -> str:
    for language in content.languages:
        runtime = runtime_for(language)
        if runtime != UNKNOWN:
            return runtime
    runtime = runtime_for(structure.primary_language)
    if runtime != UNKNOWN:
        return runtime
    for name in names:
        if name in _MANIFEST_RUNTIME:
            return _MANIFEST_RUNTIME[name]
    return UNKNOWN


def extract_dependencies(
    source: DocumentProbeSource,
    structure: ProjectStructure,
    content: ContentSignals | None = None,
) -> DependencySnapshot:
    try:
        observed = [_name(f.path) for f in structure.files]
        try:
            linked = _linked_names(source)
        except Exception:
            logger.debug("Document links unavailable", exc_info=True)
            linked = []
        names = observed + linked

        lock_file = next((n for n in names if n in LOCK_FILES), None)
        if lock_file is not None:
            manager = LOCK_FILES[lock_file]
            presence = Presence.PRESENT
        else:
            manager = next((MANIFEST_MANAGERS[n] for n in names if n in MANIFEST_MANAGERS), UNKNOWN)
            manifest_listed = any(n in MANIFEST_MANAGERS for n in observed)
            presence = (
                Presence.ABSENT
                if manifest_listed and structure.strategy in _COMPLETE_LISTINGS
                else Presence.UNKNOWN
            )

        return DependencySnapshot(
            runtime_language=_runtime(structure, content or ContentSignals.none(), names),
            package_manager=manager,
            packages=tuple(_declared_packages(structure.files)),
            lock_file=lock_file,
            lock_file_presence=presence,
        )
    except Exception:
        logger.warning("Dependency extraction failed — reporting unknown", exc_info=True)
        return DependencySnapshot.unknown()


# ── Environment ─────────────────────────────────────────────────────────────

_DOTENV_LINE_RE = re.compile(r"^\s*(?:export\s+)?(?P<key>[A-Za-z_][A-Za-z0-9_]*)\s*=\s*(?P<value>.*)$")

_ENV_REFERENCES: tuple[re.Pattern[str], ...] = (
    re.compile(r"process\.env\.(?P<key>[A-Z_][A-Z0-9_]*)(?P<default>\s*(?:\|\||\?\?))?"),
    re.compile(r"process\.env\[\s*['\"](?P<key>[A-Za-z_][A-Za-z0-9_]*)['\"]\s*\](?P<default>\s*(?:\|\||\?\?))?"),
    re.compile(r"import\.meta\.env\.(?P<key>[A-Z_][A-Z0-9_]*)(?P<default>\s*(?:\|\||\?\?))?"),
    re.compile(r"os\.environ\[\s*['\"](?P<key>[A-Za-z_][A-Za-z0-9_]*)['\"]\s*\](?P<default>)"),
    re.compile(r"os\.(?:environ\.get|getenv)\(\s*['\"](?P<key>[A-Za-z_][A-Za-z0-9_]*)['\"]\s*(?P<default>,)?"),
)


def _dotenv_variables(content: str) -> list[EnvironmentVariable]:
    variables: list[EnvironmentVariable] = []
    for line in content.splitlines():
        if line.lstrip().startswith("#"):
            continue
        match = _DOTENV_LINE_RE.match(line)
        if not match:
            continue
        value = match["value"].split(" #", 1)[0].strip().strip("'\"")
        variables.append(
            EnvironmentVariable(key=match["key"], is_required=not value, has_default=bool(value))
        )
    return variables


def _referenced_variables(content: str) -> list[EnvironmentVariable]:
    variables: list[EnvironmentVariable] = []
    for pattern in _ENV_REFERENCES:
        for match in pattern.finditer(content):
            has_default = bool(match["default"])
            variables.append(
                EnvironmentVariable(
                    key=match["key"], is_required=not has_default, has_default=has_default
                )
            )
    return variables


def extract_environment(
    source: DocumentProbeSource, structure: ProjectStructure
) -> EnvironmentSnapshot:
    try:
        variables: dict[str, EnvironmentVariable] = {}
        config_files: dict[str, None] = {}

        for f in structure.files:
            role = classify(f.path)
            if role in (FileRole.CONFIG, FileRole.ENV):
                config_files.setdefault(f.path, None)
            found = _dotenv_variables(f.content) if role is FileRole.ENV else _referenced_variables(f.content)
            for var in found:
                variables.setdefault(var.key, var)

        try:
            for name in _linked_names(source):
                if name in CONFIG_NAMES or name.startswith(".env"):
                    config_files.setdefault(name, None)
        except Exception:
            logger.debug("Document links unavailable", exc_info=True)

        return EnvironmentSnapshot(
            variables=tuple(sorted(variables.values(), key=lambda v: v.key)),
            config_files=tuple(config_files),
        )
    except Exception:
        logger.warning("Environment extraction failed — reporting empty", exc_info=True)
        return EnvironmentSnapshot.empty()


# ── Generic content ─────────────────────────────────────────────────────────

CODE_BLOCK_SELECTOR = "pre code, .highlight, .hljs"
LANGUAGE_CLASS_SELECTOR = '[class*="language-"], [class*="lang-"]'
HIGHLIGHT_SELECTOR = '.hljs, [class*="highlight"]'


def extract_content_signals(source: DocumentProbeSource) -> ContentSignals:
    try:
        languages: dict[str, None] = {}
        for element in source.select(LANGUAGE_CLASS_SELECTOR):
            language = language_from_classes(element.classes)
            if language != UNKNOWN:
                languages.setdefault(language, None)
        return ContentSignals(
            code_block_count=source.count(CODE_BLOCK_SELECTOR),
            languages=tuple(languages),
            highlighted_block_count=source.count(HIGHLIGHT_SELECTOR),
        )
    except Exception:
        logger.debug("Content signal scan failed", exc_info=True)
        return ContentSignals.none()
