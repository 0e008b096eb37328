"""Entry-point for the snapshot capture pipeline."""
from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Tuple, Union

from snapshot_renderer.model.capture_options import CaptureOptions
from snapshot_renderer.model.elements import PagedDocument, RasterExport, RasterSurface, SnapshotTree, VectorDocument
from snapshot_renderer.model.errors import CaptureTimeoutError, ConfigurationError
from snapshot_renderer.model.node_model import VisualNode
from snapshot_renderer.parser.host_interfaces import FontSource, ResourceFetcher, StagingHost, StyleProvider
from snapshot_renderer.parser.resource_inliner import HttpxResourceFetcher
from snapshot_renderer.parser.snapshot_builder import SnapshotBuilder, call_hook
from snapshot_renderer.parser.style_extractor import StyleExtractor
from snapshot_renderer.parser.transform_scan import detect_3d_transforms
from snapshot_renderer.parser.tree_loader import TreeDump
from snapshot_renderer.renderer.pdf_renderer import PageGeometry, PdfRenderer
from snapshot_renderer.renderer.raster_renderer import CairoSvgDecoder, RasterRenderer, VectorDecoder
from snapshot_renderer.renderer.svg_renderer import SvgRenderer
from snapshot_renderer.utils.debug import DebugDumper
from snapshot_renderer.utils.logger import debug_logging, get_logger
from snapshot_renderer.utils.units import parse_px

LOGGER = get_logger(__name__)

PDF_CAPTURE_SCALE = 2
SVG_FORMAT = "svg"
CaptureOutput = Union[RasterExport, RasterSurface, str]


class Deadline:
    """Cooperative capture-level timeout checked between stages."""

    def __init__(self, timeout: Optional[float], clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self.expires_at = None if timeout is None else clock() + timeout

    def check(self, stage: str) -> None:
        if self.expires_at is not None and self._clock() >= self.expires_at:
            raise CaptureTimeoutError(f"Capture timed out before {stage}")


@dataclass
class CaptureArtifacts:
    """Every intermediate product of one capture.

    ``surface`` is ``None`` when the pipeline stopped after vector composition.
    """

    tree: SnapshotTree
    vector: VectorDocument
    surface: Optional[RasterSurface] = None


def resolve_capture_size(
    root: VisualNode,
    style_provider: StyleProvider,
    options: CaptureOptions,
    width: Optional[float] = None,
    height: Optional[float] = None,
) -> Tuple[int, int]:
    """Pick the vector document size: explicit values, then page size, then the root's used size."""
    page_size = options.resolve_page_size()
    if width is None and page_size is not None:
        width = page_size[0]
    if height is None and page_size is not None:
        height = page_size[1]
    if width is None or height is None:
        style = StyleExtractor(style_provider).computed(root)
        width = width if width is not None else parse_px(style.get("width"))
        height = height if height is not None else parse_px(style.get("height"))
    if width <= 0 or height <= 0:
        raise ConfigurationError(f"Cannot determine a capture size for <{root.tag}> ({width}x{height})")
    return round(width), round(height)


async def run_pipeline(
    root: Optional[VisualNode],
    style_provider: StyleProvider,
    options: Optional[CaptureOptions] = None,
    *,
    width: Optional[float] = None,
    height: Optional[float] = None,
    fetcher: Optional[ResourceFetcher] = None,
    font_source: Optional[FontSource] = None,
    decoder: Optional[VectorDecoder] = None,
    staging_host: Optional[StagingHost] = None,
    rasterize: bool = True,
) -> CaptureArtifacts:
    """Run extraction, inlining, vector composition and, unless ``rasterize`` is off, rasterization."""
    options = options or CaptureOptions()
    if root is None:
        raise ConfigurationError("Capture target node not found")
    if options.scale <= 0:
        raise ConfigurationError(f"Scale must be positive, got {options.scale}")
    size = resolve_capture_size(root, style_provider, options, width, height)

    if fetcher is None and not (options.skip_images and options.skip_fonts):
        fetcher = HttpxResourceFetcher()

    deadline = Deadline(options.timeout)
    with debug_logging(options.debug):
        LOGGER.info("Capturing <%s> at %sx%s", root.tag, *size)
        await call_hook(options.before_capture, root)
        detect_3d_transforms(root, StyleExtractor(style_provider), options)

        deadline.check("cloning")
        options.progress(0.1, "Cloning DOM...")
        builder = SnapshotBuilder(
            style_provider,
            options,
            fetcher=fetcher,
            font_source=font_source,
            staging_host=staging_host,
        )
        tree = await builder.build(root, checkpoint=lambda: deadline.check("inlining"))

        deadline.check("vector composition")
        options.progress(0.7, "Rendering to SVG...")
        vector = SvgRenderer(options).render(tree, *size)
        if not rasterize:
            return CaptureArtifacts(tree=tree, vector=vector)

        deadline.check("rasterization")
        options.progress(0.85, "Converting to image...")
        renderer = RasterRenderer(decoder)
        if not renderer.paints_foreign_object:
            LOGGER.warning("%s does not paint foreignObject content", type(renderer.decoder).__name__)
            options.warn(
                "FOREIGN_OBJECT_UNSUPPORTED",
                "The decoder in use skips foreignObject content; install playwright for a faithful raster",
                decoder=type(renderer.decoder).__name__,
            )
        surface = await renderer.render(vector, options.scale, options.background_color)
        deadline.check("export")
    return CaptureArtifacts(tree=tree, vector=vector, surface=surface)


async def capture(
    root: Optional[VisualNode],
    style_provider: StyleProvider,
    options: Optional[CaptureOptions] = None,
    **collaborators,
) -> CaptureOutput:
    """Capture ``root`` and export it in ``options.format``."""
    options = options or CaptureOptions()
    if (options.format or "").lower() == SVG_FORMAT:
        artifacts = await run_pipeline(root, style_provider, options, rasterize=False, **collaborators)
        options.progress(1.0, "Complete!")
        LOGGER.info("Capture finished (svg)")
        return artifacts.vector.data_uri

    artifacts = await run_pipeline(root, style_provider, options, **collaborators)
    options.progress(0.95, "Exporting...")
    output = RasterRenderer().export(artifacts.surface, options.format, options.quality, artifacts.vector)
    options.progress(1.0, "Complete!")
    LOGGER.info("Capture finished (%s)", options.format)
    return output


async def capture_pdf(
    root: Optional[VisualNode],
    style_provider: StyleProvider,
    options: Optional[CaptureOptions] = None,
    **collaborators,
) -> PagedDocument:
    """Capture ``root`` without visual bands and paginate it into a PDF."""
    options = options or CaptureOptions()
    geometry = PageGeometry.from_options(options)
    geometry.validate()

    capture_options = options.merged(show_header=False, show_footer=False, scale=PDF_CAPTURE_SCALE, page_size="auto")
    artifacts = await run_pipeline(root, style_provider, capture_options, **collaborators)

    options.progress(0.95, "Generating PDF...")
    document = PdfRenderer(options, geometry).render(artifacts.surface)
    options.progress(1.0, "Complete!")
    LOGGER.info("PDF finished with %s page(s)", document.page_count)
    return document


def main(
    dump_file: str,
    output: Optional[str] = None,
    *,
    fmt: str = "png",
    pdf: bool = False,
    scale: float = 1.0,
    decoder: Optional[VectorDecoder] = None,
    debug_dir: Optional[str] = None,
) -> Path:
    """Run the JSON dump → snapshot → image/PDF pipeline and write the result."""
    dump_path = Path(dump_file).resolve()
    if not dump_path.exists():
        raise FileNotFoundError(f"Tree dump not found: {dump_path}")

    dump = TreeDump.load(dump_path)
    options = CaptureOptions(format=fmt, scale=scale, base_url=dump.base_url, title=dump.title)
    collaborators = dict(font_source=dump.fonts, decoder=decoder)

    suffix = ".pdf" if pdf else f".{fmt}"
    output_path = Path(output).resolve() if output else dump_path.with_suffix(suffix)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    if pdf:
        document = asyncio.run(capture_pdf(dump.root, dump.styles, options, **collaborators))
        output_path.write_bytes(document.data)
    else:
        rasterize = fmt.lower() != SVG_FORMAT
        artifacts = asyncio.run(run_pipeline(dump.root, dump.styles, options, rasterize=rasterize, **collaborators))
        if not rasterize:
            output_path.write_text(artifacts.vector.markup, encoding="utf-8")
        else:
            result = RasterRenderer().export(artifacts.surface, fmt, options.quality, artifacts.vector)
            if isinstance(result, RasterExport):
                output_path.write_bytes(result.payload)
            else:
                result.image.save(output_path, format="PNG")
        if debug_dir:
            DebugDumper(Path(debug_dir)).dump(artifacts.tree, artifacts.vector)

    LOGGER.info("Wrote %s", output_path)
    return output_path


if __name__ == "__main__":  # pragma: no cover
    import argparse

    parser = argparse.ArgumentParser(description="Render a JSON tree dump into an image or a paginated PDF")
    parser.add_argument("dump_file", help="Path to the JSON tree dump")
    parser.add_argument("--output", help="File to write")
    parser.add_argument("--format", default="png", help="png, jpeg, webp, svg or blob")
    parser.add_argument("--pdf", action="store_true", help="Paginate into a PDF instead of a single image")
    parser.add_argument("--scale", type=float, default=1.0, help="Rasterization scale factor")
    parser.add_argument("--cairo", action="store_true", help="Decode with cairosvg instead of headless Chromium")
    parser.add_argument("--debug-dir", help="Directory for the mirror tree and SVG dumps")

    args = parser.parse_args()
    main(
        args.dump_file,
        args.output,
        fmt=args.format,
        pdf=args.pdf,
        scale=args.scale,
        decoder=CairoSvgDecoder() if args.cairo else None,
        debug_dir=args.debug_dir,
    )
