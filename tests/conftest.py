"""Pytest configuration and fixtures."""

from __future__ import annotations

from typing import Callable

import pytest

from fakes import FakeClock, RecordingSink
from page_context.domain.entities import ObservedFile

pytest_plugins = ("pytest_asyncio",)


# ── Fixtures ────────────────────────────────────────────────────────────────


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def make_file() -> Callable[..., ObservedFile]:
    def _make(path: str, language: str = "unknown", content: str = "") -> ObservedFile:
        return ObservedFile.from_content(path, language, content)

    return _make
