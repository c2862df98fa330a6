"""Tests for the selectolax snapshot adapter and the live session document."""

from __future__ import annotations

import asyncio

import pytest

from page_context.domain.entities import Category, DetectionTier
from page_context.domain.exceptions import DocumentUnavailableError, InvalidDocumentError
from page_context.domain.ports.collaborators import SnapshotPayload
from page_context.domain.value_objects import DocumentAddress
from page_context.infrastructure.html_document import DocumentSnapshot, HtmlDocument
from page_context.infrastructure.live_document import LiveDocument
from page_context.services.classifier import EnvironmentClassifier

PAGE = """
<html>
  <head><title> Demo page </title></head>
  <body>
    <h1>Hello</h1>
    <pre class="hljs"><code class="language-python">print("hi")</code></pre>
    <pre><code class="language-js">run()</code></pre>
    <a href="/octo/hello/blob/main/app.py">app.py</a>
  </body>
</html>
"""


class TestHtmlDocument:
    def test_title_and_text(self) -> None:
        doc = HtmlDocument.from_html("https://example.com/", PAGE)
        assert doc.title() == "Demo page"
        assert "Hello" in doc.text()
        assert doc.address == "https://example.com/"

    def test_select_and_count(self) -> None:
        doc = HtmlDocument.from_html("https://example.com/", PAGE)
        assert doc.count("pre code") == 2
        links = doc.select("a[href]")
        assert links[0].attrs["href"] == "/octo/hello/blob/main/app.py"
        assert links[0].tag == "a"
        assert links[0].text() == "app.py"

    def test_selector_lists_do_not_double_count(self) -> None:
        doc = HtmlDocument.from_html("https://example.com/", PAGE)
        # The first <pre> matches both halves of the list.
        assert doc.count("pre, .hljs") == 2

    def test_classes_and_nested_select(self) -> None:
        doc = HtmlDocument.from_html("https://example.com/", PAGE)
        pre = doc.select("pre.hljs")[0]
        assert pre.classes == ("hljs",)
        assert pre.select("code")[0].classes == ("language-python",)

    def test_capabilities_follow_allow_list_and_depth(self) -> None:
        doc = HtmlDocument(
            DocumentSnapshot(
                url="https://example.com/",
                html="",
                capabilities={
                    "monaco": {"editor": {"models": [1], "deep": {"a": {"b": 1}}}},
                    "secrets": {"token": "x"},
                    "acquireVsCodeApi": True,
                },
            )
        )
        assert doc.has_capability("monaco.editor")
        assert doc.capability("monaco.editor.models") == [1]
        assert doc.has_capability("acquireVsCodeApi")
        assert not doc.has_capability("secrets.token")
        assert doc.capability("monaco.editor.deep.a.b") is None
        assert not doc.has_capability("monaco.missing")
        assert not doc.has_capability("CodeMirror")

    def test_malformed_address_is_rejected(self) -> None:
        with pytest.raises(InvalidDocumentError):
            HtmlDocument.from_html("http://[::1", "")

    @pytest.mark.parametrize(
        "url",
        ["about:blank", "data:text/html,<p>hi</p>", "javascript:void(0)", "blob:https://example.com/1f2e"],
    )
    def test_scheme_only_pages_are_accepted(self, url: str) -> None:
        doc = HtmlDocument.from_html(url, "<p>x</p>")
        assert doc.address == url

    def test_host_and_port_without_scheme_read_as_https(self) -> None:
        address = DocumentAddress.from_string("localhost:3000/app")
        assert (address.hostname, address.port, address.path) == ("localhost", 3000, "/app")
        blank = DocumentAddress.from_string("about:blank")
        assert (blank.hostname, blank.port) == ("", None)

    def test_non_object_capabilities_are_rejected(self) -> None:
        with pytest.raises(InvalidDocumentError):
            HtmlDocument(DocumentSnapshot(url="https://example.com/", html="", capabilities=[]))  # type: ignore[arg-type]

    @pytest.mark.asyncio
    async def test_static_snapshot_is_always_ready(self) -> None:
        doc = HtmlDocument.from_html("https://example.com/", "", ready_state="loading")
        assert not doc.ready
        await asyncio.wait_for(doc.wait_ready(), timeout=0.1)

    @pytest.mark.parametrize(("state", "ready"), [("loading", False), ("interactive", True), ("complete", True)])
    def test_parsed_dom_counts_as_ready(self, state: str, ready: bool) -> None:
        doc = HtmlDocument.from_html("https://example.com/", "", ready_state=state)
        assert doc.ready is ready


class TestLiveDocument:
    def test_unloaded_document_is_unavailable(self) -> None:
        doc = LiveDocument()
        assert not doc.loaded
        with pytest.raises(DocumentUnavailableError):
            _ = doc.address

    def test_load_payload(self) -> None:
        doc = LiveDocument()
        doc.load(SnapshotPayload(url="https://codepen.io/pen/1", html="<p>x</p>", user_agent="UA"))
        assert doc.loaded
        assert doc.address == "https://codepen.io/pen/1"
        assert doc.user_agent == "UA"

    @pytest.mark.asyncio
    async def test_navigation_without_markup_waits_until_ready(self) -> None:
        doc = LiveDocument(DocumentSnapshot(url="https://example.com/", html="", user_agent="UA"))
        doc.navigate("https://example.com/next")
        assert doc.user_agent == "UA"

        waiter = asyncio.ensure_future(doc.wait_ready())
        await asyncio.sleep(0.01)
        assert not waiter.done()

        doc.mark_ready()
        await asyncio.wait_for(waiter, timeout=0.1)

    def test_listener_errors_are_contained(self) -> None:
        doc = LiveDocument()
        seen: list[str] = []

        def broken(_url: str) -> None:
            raise RuntimeError("listener down")

        doc.on_navigate(broken)
        doc.on_navigate(seen.append)
        doc.navigate("https://example.com/a", "<p></p>")
        assert seen == ["https://example.com/a"]

    @pytest.mark.asyncio
    async def test_navigation_invalidates_the_classifier_cache(self) -> None:
        doc = LiveDocument(DocumentSnapshot(url="https://github.com/octo/hello", html=""))
        classifier = EnvironmentClassifier(doc)
        doc.on_navigate(lambda _url: classifier.invalidate())

        assert await classifier.classify() is Category.GITHUB
        assert classifier.cached() is Category.GITHUB

        doc.navigate("https://gitlab.com/group/project", "<p></p>")
        assert classifier.cached() is None
        assert await classifier.classify() is Category.GITLAB

    @pytest.mark.asyncio
    async def test_interactive_snapshot_is_classified_structurally(self) -> None:
        doc = LiveDocument(
            DocumentSnapshot(
                url="https://example.com/",
                html='<div class="monaco-editor"></div>',
                ready_state="interactive",
            )
        )
        await asyncio.wait_for(doc.wait_ready(), timeout=0.1)

        classifier = EnvironmentClassifier(doc)
        entry = await classifier.classify_detailed()
        assert entry.category is Category.MONACO
        assert entry.tier is DetectionTier.STRUCTURAL
        assert classifier.breaker.state.failure_count == 0

    @pytest.mark.asyncio
    async def test_navigating_to_a_blank_page(self) -> None:
        doc = LiveDocument(DocumentSnapshot(url="https://github.com/octo/hello", html=""))
        doc.navigate("about:blank", "")
        assert doc.address == "about:blank"

        classifier = EnvironmentClassifier(doc)
        entry = await classifier.classify_detailed()
        assert entry.category is Category.UNKNOWN
        assert classifier.breaker.state.failure_count == 0

    @pytest.mark.asyncio
    async def test_code_on_a_blank_page_is_detected(self) -> None:
        snippets = "<pre><code>a = 1</code></pre>" * 3
        doc = LiveDocument(DocumentSnapshot(url="about:blank", html=snippets))
        assert await EnvironmentClassifier(doc).classify() is Category.HAS_CODE
