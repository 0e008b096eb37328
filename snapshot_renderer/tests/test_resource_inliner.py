"""Test cases for the best-effort resource inliner."""

import asyncio
import unittest
from unittest import mock
from unittest.mock import AsyncMock, Mock

import httpx

from snapshot_renderer.model.capture_options import CaptureOptions
from snapshot_renderer.model.node_model import VisualNode
from snapshot_renderer.parser.host_interfaces import FontFaceRule, StaticFontSource, StaticStyleProvider
from snapshot_renderer.parser.resource_inliner import (
    FONT_STYLE_SHEET_MARKER,
    HttpxResourceFetcher,
    guess_media_type,
    to_data_uri,
)
from snapshot_renderer.parser.snapshot_builder import SnapshotBuilder

PNG_URI = "data:image/png;base64,iVBORw0KGgo="
WOFF2_URI = "data:font/woff2;base64,d09GMg=="
FONT_URL = "https://fonts.test/inter.woff2"


def make_fetcher(responses):
    """Fetcher collaborator answering from ``responses`` (missing keys fail)."""
    fetcher = Mock()

    async def fetch(url, use_cors=True):
        if url not in responses:
            return None
        return responses[url]

    fetcher.fetch = AsyncMock(side_effect=fetch)
    return fetcher


def inter_face():
    return FontFaceRule(
        css_text=f'@font-face {{ font-family: "Inter"; src: url({FONT_URL}) format("woff2"); }}',
        src=f'url({FONT_URL}) format("woff2")',
    )


class GatedFetcher:
    """Session-scoped fetcher whose answers wait until every expected URL is in flight."""

    def __init__(self, expected):
        self.expected = set(expected)
        self.started = []
        self.entered = 0
        self.exited = 0
        self.all_started = asyncio.Event()

    async def __aenter__(self):
        self.entered += 1
        return self

    async def __aexit__(self, exc_type, exc, traceback):
        self.exited += 1

    async def fetch(self, url, use_cors=True):
        self.started.append(url)
        if self.expected <= set(self.started):
            self.all_started.set()
        await asyncio.wait_for(self.all_started.wait(), timeout=1)
        return WOFF2_URI if url.endswith(".woff2") else PNG_URI


class ResourceInlinerTest(unittest.IsolatedAsyncioTestCase):
    """Test inlining through the snapshot builder."""

    def setUp(self) -> None:
        self.provider = StaticStyleProvider()
        self.warnings = []
        self.options = CaptureOptions(on_warning=self.warnings.append)

    async def test_failed_fetch_leaves_reference_unresolved(self) -> None:
        """A failing fetch keeps the original reference and the capture still succeeds."""
        root = VisualNode(tag="div")
        self.provider.set(root, {"background-image": "url(a.png)"})
        fetcher = make_fetcher({})

        tree = await SnapshotBuilder(self.provider, self.options, fetcher=fetcher).build(root)

        self.assertEqual(tree.root_node.style.get("background-image"), "url(a.png)")
        fetcher.fetch.assert_awaited_once_with("a.png", True)
        self.assertEqual([warning.type for warning in self.warnings], ["RESOURCE_SKIPPED"])

    async def test_raising_fetch_does_not_cancel_siblings(self) -> None:
        """An exception in one fetch leaves the other results intact."""
        first = VisualNode(tag="img", attributes={"src": "https://cdn.test/bad.png"})
        second = VisualNode(tag="img", attributes={"src": "https://cdn.test/good.png"})
        root = VisualNode(tag="div", children=[first, second])

        async def fetch(url, use_cors=True):
            if "bad" in url:
                raise ConnectionError("reset")
            return PNG_URI

        fetcher = Mock()
        fetcher.fetch = AsyncMock(side_effect=fetch)
        tree = await SnapshotBuilder(self.provider, self.options, fetcher=fetcher).build(root)

        self.assertEqual(tree.mirror_of(first).attributes["src"], "https://cdn.test/bad.png")
        self.assertEqual(tree.mirror_of(second).attributes["src"], PNG_URI)

    async def test_images_and_backgrounds_are_inlined_once(self) -> None:
        """Duplicate references are fetched once and every occurrence is rewritten."""
        options = self.options.merged(base_url="https://site.test/page/")
        first = VisualNode(tag="img", attributes={"src": "logo.png"})
        second = VisualNode(tag="img", attributes={"src": "/page/logo.png"})
        banner = VisualNode(tag="header")
        self.provider.set(banner, {"background": "url('bg.jpg') no-repeat"})
        root = VisualNode(tag="div", children=[first, second, banner])
        fetcher = make_fetcher(
            {
                "https://site.test/page/logo.png": PNG_URI,
                "https://site.test/page/bg.jpg": "data:image/jpeg;base64,/9j/",
            }
        )

        tree = await SnapshotBuilder(self.provider, options, fetcher=fetcher).build(root)

        self.assertEqual(tree.mirror_of(first).attributes["src"], PNG_URI)
        self.assertEqual(tree.mirror_of(second).attributes["src"], PNG_URI)
        self.assertEqual(tree.mirror_of(banner).style.get("background"), 'url("data:image/jpeg;base64,/9j/") no-repeat')
        self.assertEqual(fetcher.fetch.await_count, 2)
        self.assertIn("https://site.test/page/logo.png", tree.resources)

    async def test_embedded_references_are_not_fetched(self) -> None:
        """``data:`` references are left alone."""
        root = VisualNode(tag="img", attributes={"src": PNG_URI})
        fetcher = make_fetcher({})
        await SnapshotBuilder(self.provider, self.options, fetcher=fetcher).build(root)
        fetcher.fetch.assert_not_awaited()

    async def test_skip_images(self) -> None:
        """``skip_images`` keeps image sources as they are."""
        root = VisualNode(tag="img", attributes={"src": "a.png"})
        fetcher = make_fetcher({"a.png": PNG_URI})
        options = self.options.merged(skip_images=True)
        tree = await SnapshotBuilder(self.provider, options, fetcher=fetcher).build(root)
        self.assertEqual(tree.root_node.attributes["src"], "a.png")

    async def test_font_faces_are_embedded(self) -> None:
        """Font sources are embedded in a style sheet placed first."""
        fonts = StaticFontSource(faces=[inter_face()])
        fetcher = make_fetcher({FONT_URL: WOFF2_URI})

        tree = await SnapshotBuilder(self.provider, self.options, fetcher=fetcher, font_source=fonts).build(
            VisualNode(tag="div")
        )

        self.assertTrue(tree.style_sheets[0].startswith(FONT_STYLE_SHEET_MARKER))
        self.assertIn(f'url("{WOFF2_URI}")', tree.style_sheets[0])

    async def test_skip_fonts(self) -> None:
        """``skip_fonts`` adds no font style sheet."""
        fonts = StaticFontSource(faces=[FontFaceRule(css_text="@font-face { src: url(x.woff) }")])
        options = self.options.merged(skip_fonts=True)
        tree = await SnapshotBuilder(self.provider, options, fetcher=make_fetcher({}), font_source=fonts).build(
            VisualNode(tag="div")
        )
        self.assertEqual(tree.style_sheets, [])

    async def test_images_and_fonts_share_one_fan_out(self) -> None:
        """Image and font fetches are in flight together inside one fetcher session."""
        image_url = "https://cdn.test/photo.png"
        fetcher = GatedFetcher({image_url, FONT_URL})
        progress = []
        options = self.options.merged(on_progress=lambda value, message: progress.append(value))
        root = VisualNode(tag="img", attributes={"src": image_url})

        tree = await SnapshotBuilder(
            self.provider, options, fetcher=fetcher, font_source=StaticFontSource(faces=[inter_face()])
        ).build(root)

        self.assertEqual(sorted(fetcher.started), sorted([image_url, FONT_URL]))
        self.assertEqual(tree.root_node.attributes["src"], PNG_URI)
        self.assertIn(f'url("{WOFF2_URI}")', tree.style_sheets[0])
        self.assertEqual((fetcher.entered, fetcher.exited), (1, 1))
        self.assertEqual(progress, [0.3, 0.5])
        self.assertEqual(self.warnings, [])

    async def test_session_is_not_opened_without_remote_references(self) -> None:
        """A mirror with nothing to fetch never enters the fetcher."""
        fetcher = GatedFetcher(set())
        await SnapshotBuilder(self.provider, self.options, fetcher=fetcher).build(VisualNode(tag="div"))
        self.assertEqual(fetcher.entered, 0)


class HttpxResourceFetcherTest(unittest.IsolatedAsyncioTestCase):
    """Test the httpx-backed fetch collaborator with a mock transport."""

    def make_client(self, handler):
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    async def test_success_returns_data_uri(self) -> None:
        """A 200 response becomes a data URI with the declared media type."""
        def handler(request):
            return httpx.Response(200, content=b"GIF89a", headers={"content-type": "image/gif; charset=binary"})

        async with self.make_client(handler) as client:
            result = await HttpxResourceFetcher(client).fetch("https://cdn.test/a.gif")
        self.assertEqual(result, to_data_uri(b"GIF89a", "image/gif"))

    async def test_http_error_returns_none(self) -> None:
        """HTTP errors resolve to ``None`` instead of raising."""
        async with self.make_client(lambda request: httpx.Response(404)) as client:
            self.assertIsNone(await HttpxResourceFetcher(client).fetch("https://cdn.test/missing.png"))

    async def test_cookies_only_without_cors(self) -> None:
        """Cookies are attached only when CORS mode is off."""
        seen = []

        def handler(request):
            seen.append(request.headers.get("cookie"))
            return httpx.Response(200, content=b"x")

        async with self.make_client(handler) as client:
            fetcher = HttpxResourceFetcher(client, cookies={"session": "abc"})
            await fetcher.fetch("https://cdn.test/a.png", use_cors=True)
            await fetcher.fetch("https://cdn.test/a.png", use_cors=False)
        self.assertIsNone(seen[0])
        self.assertEqual(seen[1], "session=abc")

    async def test_session_reuses_one_client(self) -> None:
        """Inside ``async with`` every fetch goes through the same client, closed on exit."""
        fetcher = HttpxResourceFetcher(transport=httpx.MockTransport(lambda request: httpx.Response(200, content=b"x")))

        with mock.patch.object(fetcher, "_new_client", wraps=fetcher._new_client) as new_client:
            async with fetcher:
                client = fetcher.client
                await asyncio.gather(
                    fetcher.fetch("https://cdn.test/a.png"),
                    fetcher.fetch("https://cdn.test/b.png"),
                )
                self.assertIs(fetcher.client, client)

        new_client.assert_called_once_with()
        self.assertTrue(client.is_closed)
        self.assertIsNone(fetcher.client)

    async def test_borrowed_client_stays_open(self) -> None:
        """A caller-supplied client is reused and left open after the session."""
        async with self.make_client(lambda request: httpx.Response(200, content=b"x")) as client:
            fetcher = HttpxResourceFetcher(client)
            async with fetcher:
                await fetcher.fetch("https://cdn.test/a.png")
            self.assertIs(fetcher.client, client)
            self.assertFalse(client.is_closed)

    async def test_inliner_uses_one_client_per_pass(self) -> None:
        """An inlining pass over images and fonts opens exactly one client."""
        requested = []

        def handler(request):
            requested.append(str(request.url))
            return httpx.Response(200, content=b"payload")

        fetcher = HttpxResourceFetcher(transport=httpx.MockTransport(handler))
        root = VisualNode(tag="div", children=[VisualNode(tag="img", attributes={"src": "https://cdn.test/a.png"})])

        with mock.patch.object(fetcher, "_new_client", wraps=fetcher._new_client) as new_client:
            tree = await SnapshotBuilder(
                StaticStyleProvider(), CaptureOptions(), fetcher=fetcher, font_source=StaticFontSource(faces=[inter_face()])
            ).build(root)

        new_client.assert_called_once_with()
        self.assertEqual(sorted(requested), sorted(["https://cdn.test/a.png", FONT_URL]))
        self.assertEqual(tree.mirror_of(root.children[0]).attributes["src"], to_data_uri(b"payload", "image/png"))
        self.assertIsNone(fetcher.client)

    def test_media_type_from_extension(self) -> None:
        """Known extensions map to their media type; unknown ones to octet-stream."""
        self.assertEqual(guess_media_type("https://x.test/font.woff2?v=1"), "font/woff2")
        self.assertEqual(guess_media_type("https://x.test/blob"), "application/octet-stream")


if __name__ == "__main__":
    unittest.main()
