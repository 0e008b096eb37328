"""
Raster Compositor

Decodes a vector document through a pluggable decoder and draws it onto a
Pillow RGBA surface, then exports the surface in the requested encoding.
"""
from __future__ import annotations

import importlib.util
import io
import math
import tempfile
from pathlib import Path
from typing import Optional, Protocol, Union
from urllib.parse import unquote

from PIL import Image, ImageColor

from snapshot_renderer.model.elements import SVG_DATA_URI_PREFIX, RasterExport, RasterSurface, VectorDocument
from snapshot_renderer.model.errors import ConfigurationError, RenderError
from snapshot_renderer.utils.logger import get_logger

LOGGER = get_logger(__name__)

EXPORT_MEDIA_TYPES = {
    "png": "image/png",
    "jpeg": "image/jpeg",
    "jpg": "image/jpeg",
    "webp": "image/webp",
    "blob": "application/octet-stream",
}
PILLOW_FORMATS = {"png": "PNG", "jpeg": "JPEG", "jpg": "JPEG", "webp": "WEBP"}


class VectorDecoder(Protocol):
    """Host image decoding path for SVG sources.

    ``paints_foreign_object`` tells whether XHTML inside ``foreignObject`` is
    painted; decoders without the attribute are assumed to paint it.
    """

    async def decode(self, source: str, width: int, height: int) -> Image.Image:
        """Decode ``source`` (a ``data:`` or ``file://`` URL) at ``width`` x ``height``."""


class CairoSvgDecoder:
    """Decode through cairosvg. ``foreignObject`` content is not painted."""

    paints_foreign_object = False

    async def decode(self, source: str, width: int, height: int) -> Image.Image:
        import cairosvg

        if source.startswith(SVG_DATA_URI_PREFIX):
            markup = unquote(source[len(SVG_DATA_URI_PREFIX):])
            png_bytes = cairosvg.svg2png(bytestring=markup.encode("utf-8"), output_width=width, output_height=height)
        else:
            png_bytes = cairosvg.svg2png(url=source, output_width=width, output_height=height)
        image = Image.open(io.BytesIO(png_bytes))
        image.load()
        return image


class PlaywrightDecoder:
    """Decode with headless Chromium, which renders ``foreignObject`` XHTML."""

    paints_foreign_object = True

    def __init__(self, browser_type: str = "chromium") -> None:
        self.browser_type = browser_type

    async def decode(self, source: str, width: int, height: int) -> Image.Image:
        from playwright.async_api import async_playwright

        async with async_playwright() as playwright:
            browser = await getattr(playwright, self.browser_type).launch(headless=True)
            try:
                page = await browser.new_page(viewport={"width": width, "height": height})
                await page.goto(source)
                screenshot = await page.screenshot(omit_background=True, clip={"x": 0, "y": 0, "width": width, "height": height})
            finally:
                await browser.close()
        image = Image.open(io.BytesIO(screenshot))
        image.load()
        return image


def default_decoder() -> VectorDecoder:
    """Prefer headless Chromium; cairosvg is used only when playwright is missing."""
    if importlib.util.find_spec("playwright") is not None:
        return PlaywrightDecoder()
    LOGGER.warning("playwright is not installed; falling back to cairosvg, which skips foreignObject content")
    return CairoSvgDecoder()


class EphemeralObject:
    """Temporary on-disk copy of a payload, addressable by a ``file://`` URL."""

    def __init__(self, payload: bytes, suffix: str = ".svg") -> None:
        self.payload = payload
        self.suffix = suffix
        self.path: Optional[Path] = None

    @property
    def url(self) -> str:
        if self.path is None:
            raise RuntimeError("EphemeralObject is not open")
        return self.path.as_uri()

    def __enter__(self) -> "EphemeralObject":
        with tempfile.NamedTemporaryFile(suffix=self.suffix, delete=False) as handle:
            handle.write(self.payload)
        self.path = Path(handle.name)
        return self

    def __exit__(self, exc_type, exc, traceback) -> bool:
        if self.path is not None:
            self.path.unlink(missing_ok=True)
            self.path = None
        return False


class RasterRenderer:
    """Rasterize vector documents and export the resulting surface."""

    def __init__(self, decoder: Optional[VectorDecoder] = None) -> None:
        self._decoder = decoder

    @property
    def decoder(self) -> VectorDecoder:
        if self._decoder is None:
            self._decoder = default_decoder()
        return self._decoder

    @property
    def paints_foreign_object(self) -> bool:
        return getattr(self.decoder, "paints_foreign_object", True)

    async def render(
        self,
        document: VectorDocument,
        scale: float = 1.0,
        background: Optional[str] = None,
    ) -> RasterSurface:
        if scale <= 0:
            raise ConfigurationError(f"Scale must be positive, got {scale}")
        width = math.ceil(document.width * scale)
        height = math.ceil(document.height * scale)
        if width <= 0 or height <= 0:
            raise ConfigurationError(f"Cannot rasterize an empty document ({document.width}x{document.height})")

        LOGGER.debug("Rasterizing %sx%s at scale %s", document.width, document.height, scale)
        decoded = await self._decode(document, width, height)

        fill = ImageColor.getcolor(background, "RGBA") if background else (0, 0, 0, 0)
        surface = Image.new("RGBA", (width, height), fill)
        decoded = decoded.convert("RGBA")
        if decoded.size != surface.size:
            decoded = decoded.resize(surface.size, Image.Resampling.LANCZOS)
        surface.alpha_composite(decoded)
        return RasterSurface(image=surface, scale=scale)

    async def _decode(self, document: VectorDocument, width: int, height: int) -> Image.Image:
        try:
            return await self.decoder.decode(document.data_uri, width, height)
        except Exception as exc:
            LOGGER.warning("Primary decode failed (%s); retrying from an ephemeral object", exc)

        with EphemeralObject(document.payload) as ephemeral:
            try:
                return await self.decoder.decode(ephemeral.url, width, height)
            except Exception as exc:
                raise RenderError(f"Failed to rasterize vector document: {exc}") from exc

    def export(
        self,
        surface: RasterSurface,
        fmt: str = "png",
        quality: float = 0.95,
        document: Optional[VectorDocument] = None,
    ) -> Union[RasterExport, RasterSurface, str]:
        """Encode ``surface``; ``canvas`` returns it as is and ``svg`` the vector data URI."""
        fmt = (fmt or "png").lower()
        if fmt == "canvas":
            return surface
        if fmt == "svg":
            if document is None:
                raise ConfigurationError("SVG export needs the vector document")
            return document.data_uri
        if fmt == "blob":
            return RasterExport(surface.image.tobytes(), EXPORT_MEDIA_TYPES["blob"], surface.width, surface.height)
        if fmt not in PILLOW_FORMATS:
            LOGGER.info("Unknown export format %s; falling back to png", fmt)
            fmt = "png"

        image = surface.image
        params = {}
        if fmt in ("jpeg", "jpg"):
            image = image.convert("RGB")
        if fmt in ("jpeg", "jpg", "webp"):
            params["quality"] = max(1, min(100, round(quality * 100)))
        buffer = io.BytesIO()
        image.save(buffer, format=PILLOW_FORMATS[fmt], **params)
        return RasterExport(buffer.getvalue(), EXPORT_MEDIA_TYPES[fmt], surface.width, surface.height)
