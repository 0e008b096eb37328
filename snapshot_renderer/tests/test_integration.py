"""
Integration tests for the complete capture pipeline.

Tests the end-to-end flow from a live tree to exported images and PDF bytes,
with the decode and fetch collaborators replaced by in-process fakes.
"""

import json
import tempfile
import unittest
from pathlib import Path
from unittest.mock import AsyncMock, Mock

from PIL import Image

from snapshot_renderer.main import Deadline, capture, capture_pdf, main, resolve_capture_size, run_pipeline
from snapshot_renderer.model.capture_options import CaptureOptions
from snapshot_renderer.model.elements import SVG_DATA_URI_PREFIX, RasterExport, RasterSurface
from snapshot_renderer.model.errors import CaptureTimeoutError, ConfigurationError, RenderError
from snapshot_renderer.model.node_model import VisualNode
from snapshot_renderer.parser.host_interfaces import StaticStyleProvider


class SolidDecoder:
    async def decode(self, source, width, height):
        return Image.new("RGBA", (width, height), (200, 30, 30, 255))


class VectorOnlyDecoder(SolidDecoder):
    paints_foreign_object = False


class FailingDecoder:
    async def decode(self, source, width, height):
        raise OSError("no decoder")


def offline_fetcher():
    fetcher = Mock()
    fetcher.fetch = AsyncMock(return_value=None)
    return fetcher


class CapturePipelineTest(unittest.IsolatedAsyncioTestCase):
    """Test the capture entry points."""

    def setUp(self) -> None:
        self.provider = StaticStyleProvider()
        self.root = VisualNode(tag="div", children=[VisualNode(tag="span", children=[VisualNode.text_node("Hi")])])
        self.provider.set(self.root, {"width": "120px", "height": "80px", "background-image": "url(a.png)"})

    async def test_png_capture_reports_progress_and_warnings(self) -> None:
        """A PNG capture walks every progress step and reports skipped resources."""
        progress, warnings = [], []
        options = CaptureOptions(on_progress=lambda value, message: progress.append(value), on_warning=warnings.append)

        result = await capture(self.root, self.provider, options, fetcher=offline_fetcher(), decoder=SolidDecoder())

        self.assertIsInstance(result, RasterExport)
        self.assertEqual((result.width, result.height), (120, 80))
        self.assertTrue(result.payload.startswith(b"\x89PNG"))
        self.assertEqual(progress, [0.1, 0.3, 0.5, 0.7, 0.85, 0.95, 1.0])
        self.assertEqual([warning.type for warning in warnings], ["RESOURCE_SKIPPED"])

    async def test_svg_capture_skips_rasterization(self) -> None:
        """``format="svg"`` returns the vector data URI without touching the decoder."""
        progress = []
        options = CaptureOptions(
            format="SVG",
            skip_images=True,
            skip_fonts=True,
            on_progress=lambda value, message: progress.append(value),
        )

        result = await capture(self.root, self.provider, options, decoder=FailingDecoder())

        self.assertIsInstance(result, str)
        self.assertTrue(result.startswith(SVG_DATA_URI_PREFIX))
        self.assertIn("foreignObject", result)
        self.assertEqual(progress, [0.1, 0.7, 1.0])

    async def test_vector_only_decoder_is_reported(self) -> None:
        """A decoder that skips foreignObject content triggers an advisory warning."""
        warnings = []
        options = CaptureOptions(skip_images=True, skip_fonts=True, on_warning=warnings.append)

        await capture(self.root, self.provider, options, decoder=VectorOnlyDecoder())

        self.assertEqual([warning.type for warning in warnings], ["FOREIGN_OBJECT_UNSUPPORTED"])
        self.assertEqual(warnings[0].details, {"decoder": "VectorOnlyDecoder"})

    async def test_html_painting_decoder_is_not_reported(self) -> None:
        """Decoders without the capability flag are assumed to paint XHTML."""
        warnings = []
        options = CaptureOptions(skip_images=True, skip_fonts=True, on_warning=warnings.append)
        await capture(self.root, self.provider, options, decoder=SolidDecoder())
        self.assertEqual(warnings, [])

    async def test_scale_and_format(self) -> None:
        """``canvas`` returns the surface at the requested scale."""
        options = CaptureOptions(scale=2, format="canvas")
        surface = await capture(self.root, self.provider, options, fetcher=offline_fetcher(), decoder=SolidDecoder())
        self.assertIsInstance(surface, RasterSurface)
        self.assertEqual(surface.image.size, (240, 160))

    async def test_explicit_size_overrides_style(self) -> None:
        """Explicit width and height win over the root's used size."""
        artifacts = await run_pipeline(
            self.root, self.provider, CaptureOptions(), width=50, height=40, fetcher=offline_fetcher(), decoder=SolidDecoder()
        )
        self.assertEqual((artifacts.vector.width, artifacts.vector.height), (50, 40))
        self.assertEqual(artifacts.tree.root_node.style.get("background-image"), "url(a.png)")

    async def test_pipeline_can_stop_after_vector_composition(self) -> None:
        """With ``rasterize=False`` no surface is produced."""
        artifacts = await run_pipeline(
            self.root, self.provider, CaptureOptions(skip_images=True, skip_fonts=True), decoder=FailingDecoder(), rasterize=False
        )
        self.assertIsNone(artifacts.surface)
        self.assertEqual((artifacts.vector.width, artifacts.vector.height), (120, 80))

    async def test_missing_root(self) -> None:
        """A missing target is a configuration error."""
        with self.assertRaises(ConfigurationError):
            await capture(None, self.provider, decoder=SolidDecoder())

    async def test_unknown_size_is_a_configuration_error(self) -> None:
        """A root without a used size cannot be captured."""
        with self.assertRaises(ConfigurationError):
            await capture(VisualNode(tag="div"), self.provider, decoder=SolidDecoder())

    async def test_decode_failure_surfaces_single_error(self) -> None:
        """Both decode attempts failing raise one ``RenderError``."""
        with self.assertRaises(RenderError):
            await capture(self.root, self.provider, CaptureOptions(skip_images=True, skip_fonts=True), decoder=FailingDecoder())

    async def test_timeout_between_stages(self) -> None:
        """An expired deadline stops the pipeline at the next stage boundary."""
        options = CaptureOptions(timeout=0, skip_images=True, skip_fonts=True)
        with self.assertRaises(CaptureTimeoutError):
            await capture(self.root, self.provider, options, decoder=SolidDecoder())

    async def test_before_capture_and_3d_warning(self) -> None:
        """``before_capture`` is awaited and 3D transforms are reported once."""
        seen, warnings = [], []

        async def before_capture(root):
            seen.append(root)

        self.provider.set(self.root.children[0], {"transform": "translate3d(0px, 0px, 10px)"})
        options = CaptureOptions(before_capture=before_capture, on_warning=warnings.append, skip_images=True, skip_fonts=True)
        await capture(self.root, self.provider, options, decoder=SolidDecoder())

        self.assertEqual(seen, [self.root])
        self.assertEqual([warning.type for warning in warnings], ["3D_TRANSFORMS_DETECTED"])

    async def test_pdf_capture(self) -> None:
        """A one-page PDF carries the title header and the default footer."""
        options = CaptureOptions(page_size="A4", title="Quarterly", skip_images=True, skip_fonts=True, show_header=True)
        document = await capture_pdf(self.root, self.provider, options, decoder=SolidDecoder())

        self.assertTrue(document.data.startswith(b"%PDF-1.4"))
        self.assertEqual(document.page_count, 1)
        self.assertEqual(document.pages[0].header_text, "Quarterly")
        self.assertEqual(document.pages[0].footer_text, "Generated with snapshot_renderer")
        self.assertIn(b"/MediaBox [0 0 794 1123]", document.data)

    async def test_pdf_capture_without_bands(self) -> None:
        """``show_header=False`` and ``show_footer=False`` remove both PDF bands."""
        options = CaptureOptions(page_size="A4", title="Quarterly", skip_images=True, skip_fonts=True, show_header=False, show_footer=False)
        document = await capture_pdf(self.root, self.provider, options, decoder=SolidDecoder())

        self.assertEqual(document.pages[0].header_text, "")
        self.assertEqual(document.pages[0].footer_text, "")
        self.assertNotIn(b"(Quarterly) Tj", document.data)

    async def test_pdf_geometry_is_validated_first(self) -> None:
        """Impossible margins fail before any decode happens."""
        options = CaptureOptions(pdf_margin=500, skip_images=True, skip_fonts=True)
        decoder = Mock()
        decoder.decode = AsyncMock()
        with self.assertRaises(ConfigurationError):
            await capture_pdf(self.root, self.provider, options, decoder=decoder)
        decoder.decode.assert_not_awaited()


class HelpersTest(unittest.TestCase):
    """Test the deadline and capture-size helpers."""

    def test_deadline(self) -> None:
        """The deadline trips once the clock reaches the expiry."""
        now = [100.0]
        deadline = Deadline(5, clock=lambda: now[0])
        deadline.check("start")
        now[0] = 105.0
        with self.assertRaises(CaptureTimeoutError):
            deadline.check("end")

    def test_deadline_disabled(self) -> None:
        """A ``None`` timeout never trips."""
        Deadline(None).check("anything")

    def test_page_size_sets_capture_size(self) -> None:
        """A named page size becomes the capture size."""
        size = resolve_capture_size(VisualNode(tag="div"), StaticStyleProvider(), CaptureOptions(page_size="Letter"))
        self.assertEqual(size, (816, 1056))


class CommandLineTest(unittest.TestCase):
    """Test the file based entry point."""

    DUMP = {
        "title": "CLI",
        "root": {"tag": "div", "style": {"width": "30px", "height": "20px"}, "children": ["hello"]},
    }

    def write_dump(self, directory: str) -> Path:
        source = Path(directory) / "page.json"
        source.write_text(json.dumps(self.DUMP), encoding="utf-8")
        return source

    def test_main_writes_png_and_debug_dump(self) -> None:
        """The default run writes a PNG next to the dump plus the debug files."""
        with tempfile.TemporaryDirectory() as directory:
            source = self.write_dump(directory)
            output = main(str(source), decoder=SolidDecoder(), debug_dir=str(Path(directory) / "debug"))

            self.assertEqual(output.suffix, ".png")
            with Image.open(output) as image:
                self.assertEqual(image.size, (30, 20))
            self.assertTrue((Path(directory) / "debug" / "snapshot_tree.json").exists())
            self.assertTrue((Path(directory) / "debug" / "snapshot.svg").exists())

    def test_main_writes_svg_markup(self) -> None:
        """``fmt="svg"`` writes the vector markup without decoding."""
        with tempfile.TemporaryDirectory() as directory:
            source = self.write_dump(directory)
            output = main(str(source), fmt="svg", decoder=FailingDecoder())

            self.assertEqual(output.suffix, ".svg")
            self.assertTrue(output.read_text(encoding="utf-8").startswith("<svg"))


if __name__ == "__main__":
    unittest.main()
