"""Outcome stores — implement the OutcomeStore port.

:class:`JsonFileOutcomeStore` keeps the latest outcome per session as one
JSON file; :class:`InMemoryOutcomeStore` is the default when no directory
is configured.
"""

from __future__ import annotations

import json
import logging
import os
import re
from pathlib import Path

from page_context.domain.entities import ExtractionOutcome
from page_context.domain.exceptions import PageContextError, StorageError
from page_context.services.packaging import outcome_from_dict, outcome_to_dict

logger = logging.getLogger(__name__)

_SAFE_ID_RE = re.compile(r"[^A-Za-z0-9_.-]")


class InMemoryOutcomeStore:
    def __init__(self) -> None:
        self._latest: dict[str, ExtractionOutcome] = {}

    def save(self, session_id: str, outcome: ExtractionOutcome) -> None:
        self._latest[session_id] = outcome

    def load_latest(self, session_id: str) -> ExtractionOutcome | None:
        return self._latest.get(session_id)


class JsonFileOutcomeStore:
    """One ``<session>.json`` file per session, replaced atomically on save."""

    def __init__(self, directory: str | Path) -> None:
        self._dir = Path(directory)

    def _path(self, session_id: str) -> Path:
        return self._dir / f"{_SAFE_ID_RE.sub('_', session_id) or '_'}.json"

    def save(self, session_id: str, outcome: ExtractionOutcome) -> None:
        path = self._path(session_id)
        tmp = path.with_suffix(".json.tmp")
        try:
            self._dir.mkdir(parents=True, exist_ok=True)
            tmp.write_text(
                json.dumps(outcome_to_dict(outcome), sort_keys=True, indent=2, ensure_ascii=False),
                encoding="utf-8",
            )
            os.replace(tmp, path)
        except OSError as exc:
            raise StorageError(f"Could not write {path}: {exc}") from exc
        logger.debug("Saved outcome for session %s to %s", session_id, path)

    def load_latest(self, session_id: str) -> ExtractionOutcome | None:
        path = self._path(session_id)
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise StorageError(f"Could not read {path}: {exc}") from exc
        try:
            return outcome_from_dict(json.loads(text))
        except (json.JSONDecodeError, KeyError, TypeError, PageContextError) as exc:
            raise StorageError(f"Stored outcome at {path} is corrupt") from exc
