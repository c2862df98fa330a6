"""Extraction strategy chain — per-category ordered fallbacks.

Each category has a fixed list of strategies, most structurally reliable
first and most speculative last.  The generic code-block scan closes every
chain.  The first strategy that yields at least one file wins; its 1-based
position is recorded on the resulting :class:`ProjectStructure` as
``source_tier``.
"""

from __future__ import annotations

import inspect
import logging
import re
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Mapping, Sequence, Union
from urllib.parse import unquote, urlsplit

from page_context.domain.entities import Category, ObservedFile, ProjectStructure
from page_context.domain.ports.document_source import DocumentProbeSource
from page_context.services.file_catalog import should_skip
from page_context.services.languages import (
    extension_for,
    language_for_path,
    language_from_classes,
    normalize,
)
from page_context.services.structure import build_structure

logger = logging.getLogger(__name__)

StrategyOutput = Union[Sequence[ObservedFile], Awaitable[Sequence[ObservedFile]]]
StrategyRun = Callable[[DocumentProbeSource], StrategyOutput]


@dataclass(frozen=True, slots=True)
class ExtractionStrategy:
    name: str
    run: StrategyRun


# ── Editor strategies ───────────────────────────────────────────────────────

_URI_PREFIX_RE = re.compile(r"^(?:file|inmemory|vscode-vfs|vscode-remote)://[^/]*/?")


def _model_path(uri: str, language: str, index: int) -> str:
    path = unquote(_URI_PREFIX_RE.sub("", uri or "")).lstrip("/")
    # In-memory models are numbered ("inmemory://model/1"); give them a name.
    if not path or path.replace("model/", "").isdigit():
        return f"model_{index + 1}{extension_for(language)}"
    return path


def monaco_models(source: DocumentProbeSource) -> list[ObservedFile]:
    models = source.capability("monaco.editor.models") or []
    files: list[ObservedFile] = []
    for index, model in enumerate(models):
        if not isinstance(model, Mapping):
            continue
        language = normalize(model.get("language"))
        path = _model_path(str(model.get("uri", "")), language, index)
        if language == "unknown":
            language = language_for_path(path)
        files.append(ObservedFile.from_content(path, language, str(model.get("value") or "")))
    return files


def editor_view_lines(source: DocumentProbeSource) -> list[ObservedFile]:
    files: list[ObservedFile] = []
    for index, editor in enumerate(source.select(".monaco-editor")):
        lines = [line.text() for line in editor.select(".view-line")]
        content = "\n".join(lines).replace("\u00a0", " ")
        if not content.strip():
            continue
        language = normalize(editor.attrs.get("data-mode-id"))
        uri = editor.attrs.get("data-uri") or ""
        path = _model_path(uri, language, index) if uri else (
            f"editor_{index + 1}{extension_for(language)}"
        )
        files.append(ObservedFile.from_content(path, language, content))
    return files


def codemirror_instances(source: DocumentProbeSource) -> list[ObservedFile]:
    instances = source.capability("CodeMirror.instances") or []
    files: list[ObservedFile] = []
    for index, editor in enumerate(instances):
        if not isinstance(editor, Mapping):
            continue
        mode = editor.get("mode")
        if isinstance(mode, Mapping):
            mode = mode.get("name")
        language = normalize(mode if isinstance(mode, str) else None)
        path = str(editor.get("path") or f"editor_{index + 1}{extension_for(language)}")
        files.append(ObservedFile.from_content(path, language, str(editor.get("value") or "")))
    return files


_MIN_EDITOR_TEXT = 10


def codemirror_dom(source: DocumentProbeSource) -> list[ObservedFile]:
    files: list[ObservedFile] = []
    for index, element in enumerate(source.select(".CodeMirror, .cm-editor")):
        lines = [line.text() for line in element.select(".CodeMirror-line, .cm-line")]
        content = "\n".join(lines) if lines else element.text()
        if len(content) <= _MIN_EDITOR_TEXT:
            continue
        language = language_from_classes(element.classes)
        files.append(
            ObservedFile.from_content(
                f"codemirror_{index + 1}{extension_for(language)}", language, content
            )
        )
    return files


# ── Repository host strategies ──────────────────────────────────────────────

_BLOB_RE = re.compile(r"/(?:-/)?blob/[^/]+/(?P<path>.+)$")


def _blob_path(href: str | None) -> str | None:
    if not href:
        return None
    match = _BLOB_RE.search(unquote(urlsplit(href).path))
    return match["path"] if match else None


def _tree_links(source: DocumentProbeSource, selectors: Sequence[str]) -> list[ObservedFile]:
    """First selector that matches anything wins, like the hosts' own layouts."""
    for selector in selectors:
        elements = source.select(selector)
        if not elements:
            continue
        files: list[ObservedFile] = []
        for element in elements:
            path = _blob_path(element.attrs.get("href"))
            if path is None:
                continue
            files.append(ObservedFile.from_content(path, language_for_path(path)))
        if files:
            return files
    return []


def repository_tree(source: DocumentProbeSource) -> list[ObservedFile]:
    return _tree_links(
        source,
        (
            '[role="rowheader"] a[href*="/blob/"]',
            '[role="gridcell"] a[href*="/blob/"]',
            '.react-directory-filename-column a[href*="/blob/"]',
            '[data-testid="file-tree"] a[href*="/blob/"]',
            '.tree-item-link[href*="/blob/"]',  # gitlab
        ),
    )


def legacy_tree(source: DocumentProbeSource) -> list[ObservedFile]:
    return _tree_links(
        source,
        (
            '.js-navigation-open[href*="/blob/"]',
            '.file-wrap .content a[href*="/blob/"]',
            '.repository-content a[href*="/blob/"]',
        ),
    )


_CURRENT_FILE_SELECTORS: tuple[str, ...] = (
    "#read-only-cursor-text-area",
    ".blob-wrapper .blob-code-content",
    ".file-editor-textarea",
    ".blob-viewer pre",  # gitlab
    "pre.highlight",
)


def _current_file_content(source: DocumentProbeSource) -> str:
    for selector in _CURRENT_FILE_SELECTORS:
        elements = source.select(selector)
        if elements:
            return elements[0].text()
    lines = source.select(".blob-code-inner")
    return "\n".join(line.text() for line in lines)


def blob_breadcrumbs(source: DocumentProbeSource) -> list[ObservedFile]:
    files: list[ObservedFile] = []
    seen: set[str] = set()
    current = _blob_path(source.address)
    if current:
        files.append(
            ObservedFile.from_content(
                current, language_for_path(current), _current_file_content(source)
            )
        )
        seen.update({current, current.rsplit("/", 1)[-1]})

    for crumb in source.select('nav[aria-label="Breadcrumb"] a, .breadcrumb a'):
        text = crumb.text().strip()
        if "." in text and text not in seen and "/" not in text:
            seen.add(text)
            files.append(ObservedFile.from_content(text, language_for_path(text)))
    return files


TYPICAL_FILES_BY_LANGUAGE: dict[str, tuple[str, ...]] = {
    "javascript": ("package.json", "index.js", "README.md"),
    "typescript": ("package.json", "tsconfig.json", "index.ts", "README.md"),
    "python": ("requirements.txt", "main.py", "setup.py", "README.md"),
    "java": ("pom.xml", "Main.java", "README.md"),
    "go": ("go.mod", "main.go", "README.md"),
    "rust": ("Cargo.toml", "src/main.rs", "README.md"),
}

TYPICAL_FILES_BY_TOPIC: tuple[tuple[frozenset[str], tuple[str, ...]], ...] = (
    (frozenset({"react", "vue", "angular", "frontend"}), ("package.json", "src/index.js")),
    (frozenset({"docker", "containerization"}), ("Dockerfile", "docker-compose.yml")),
    (frozenset({"kubernetes", "k8s"}), ("deployment.yaml",)),
)


def repository_metadata(source: DocumentProbeSource) -> list[ObservedFile]:
    """Infer the usual files of the repository's main language or topics."""
    names: list[str] = []
    language_nodes = source.select('[itemprop="programmingLanguage"], .BorderGrid-cell .color-fg-default')
    if language_nodes:
        language = normalize(language_nodes[0].text())
        names.extend(TYPICAL_FILES_BY_LANGUAGE.get(language, ()))
    if not names:
        topics = {t.text().strip().lower() for t in source.select(".topic-tag")}
        for keys, typical in TYPICAL_FILES_BY_TOPIC:
            if topics & keys:
                names.extend(typical)
    return [ObservedFile.from_content(n, language_for_path(n)) for n in dict.fromkeys(names)]


_FILE_MENTION_RE = re.compile(
    r"(?<![\w/.-])(?P<path>(?:[\w-]+/)*[\w.-]+\.(?:js|jsx|ts|tsx|py|go|rs|rb|java|json|ya?ml|toml|md|css|scss|html|vue))\b"
)
MAX_TEXT_MENTIONS = 20


def text_file_mentions(source: DocumentProbeSource) -> list[ObservedFile]:
    found: dict[str, None] = {}
    for match in _FILE_MENTION_RE.finditer(source.text()):
        found.setdefault(match["path"], None)
        if len(found) >= MAX_TEXT_MENTIONS:
            break
    return [ObservedFile.from_content(p, language_for_path(p)) for p in found]


# ── Generic fallback ────────────────────────────────────────────────────────

CODE_BLOCK_SELECTOR = "pre code, .highlight, .hljs"
_MIN_BLOCK_TEXT = 20


def code_blocks(source: DocumentProbeSource) -> list[ObservedFile]:
    """Treat each substantial code block on the page as a synthetic file."""
    files: list[ObservedFile] = []
    seen: set[str] = set()
    for block in source.select(CODE_BLOCK_SELECTOR):
        content = block.text()
        if len(content) <= _MIN_BLOCK_TEXT or content in seen:
            continue
        seen.add(content)
        language = language_from_classes(block.classes)
        path = f"code_block_{len(files) + 1}{extension_for(language)}"
        files.append(ObservedFile.from_content(path, language, content))
    return files


# ── Chains ──────────────────────────────────────────────────────────────────

MONACO_MODELS = ExtractionStrategy("monaco-models", monaco_models)
EDITOR_VIEW_LINES = ExtractionStrategy("editor-view-lines", editor_view_lines)
CODEMIRROR_INSTANCES = ExtractionStrategy("codemirror-instances", codemirror_instances)
CODEMIRROR_DOM = ExtractionStrategy("codemirror-dom", codemirror_dom)
REPOSITORY_TREE = ExtractionStrategy("repository-tree", repository_tree)
LEGACY_TREE = ExtractionStrategy("legacy-tree", legacy_tree)
BLOB_BREADCRUMBS = ExtractionStrategy("blob-breadcrumbs", blob_breadcrumbs)
REPOSITORY_METADATA = ExtractionStrategy("repository-metadata", repository_metadata)
TEXT_FILE_MENTIONS = ExtractionStrategy("text-file-mentions", text_file_mentions)
CODE_BLOCKS = ExtractionStrategy("code-blocks", code_blocks)


def default_chains() -> dict[Category, tuple[ExtractionStrategy, ...]]:
    editor = (MONACO_MODELS, EDITOR_VIEW_LINES, CODE_BLOCKS)
    codemirror = (CODEMIRROR_INSTANCES, CODEMIRROR_DOM, CODE_BLOCKS)
    repository = (
        REPOSITORY_TREE,
        LEGACY_TREE,
        BLOB_BREADCRUMBS,
        REPOSITORY_METADATA,
        TEXT_FILE_MENTIONS,
        CODE_BLOCKS,
    )
    return {
        Category.MONACO: editor,
        Category.STACKBLITZ: editor,
        Category.CODESANDBOX: editor,
        Category.VSCODE_WEB: editor,
        Category.CODEMIRROR: codemirror,
        Category.CODEPEN: codemirror,
        Category.GITHUB: repository,
        Category.GITLAB: repository,
        Category.LOCALHOST: (CODE_BLOCKS,),
        Category.HAS_CODE: (CODE_BLOCKS,),
        Category.UNKNOWN: (CODE_BLOCKS,),
    }


class StrategyChain:
    """Runs the strategy chain for a category against one document."""

    def __init__(
        self,
        source: DocumentProbeSource,
        chains: Mapping[Category, Sequence[ExtractionStrategy]] | None = None,
        *,
        max_files: int = 50,
        max_file_size: int = 100_000,
    ) -> None:
        self._source = source
        self._chains = dict(chains) if chains is not None else default_chains()
        self._max_files = max_files
        self._max_file_size = max_file_size

    @property
    def source(self) -> DocumentProbeSource:
        return self._source

    def chain_for(self, category: Category) -> tuple[ExtractionStrategy, ...]:
        chain = tuple(self._chains.get(category, ()))
        if not chain or chain[-1] is not CODE_BLOCKS:
            chain = tuple(s for s in chain if s is not CODE_BLOCKS) + (CODE_BLOCKS,)
        return chain

    async def extract(self, category: Category) -> ProjectStructure:
        for tier, strategy in enumerate(self.chain_for(category), start=1):
            files = await self._attempt(strategy)
            if files:
                logger.debug(
                    "Strategy %s (tier %d) found %d file(s) for %s",
                    strategy.name,
                    tier,
                    len(files),
                    category.value,
                )
                return build_structure(files, tier=tier, strategy=strategy.name)
        logger.debug("All strategies empty for %s", category.value)
        return ProjectStructure.empty()

    async def _attempt(self, strategy: ExtractionStrategy) -> list[ObservedFile]:
        try:
            output: Any = strategy.run(self._source)
            if inspect.isawaitable(output):
                output = await output
            return self._limit(output or [])
        except Exception:
            logger.debug("Strategy %s raised — advancing chain", strategy.name, exc_info=True)
            return []

    def _limit(self, files: Sequence[ObservedFile]) -> list[ObservedFile]:
        kept: dict[str, ObservedFile] = {}
        for f in files:
            if f.path in kept or should_skip(f.path, f.byte_size, self._max_file_size):
                continue
            kept[f.path] = f
            if len(kept) >= self._max_files:
                break
        return list(kept.values())
