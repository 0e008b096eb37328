"""
Pagination & Document Assembler

Slices a raster surface into page-sized JPEG bitmaps and assembles them into
a PDF byte stream. Object ids are allocated sequentially from 1; the catalog
and the pages container are reserved first and backfilled once every page
object id is known.
"""
from __future__ import annotations

import io
import math
from dataclasses import dataclass
from typing import List, Optional, Tuple

from PIL import Image

from snapshot_renderer.model.capture_options import (
    DEFAULT_PDF_BAND_HEIGHT_PX,
    DEFAULT_PDF_FOOTER_TEXT,
    DEFAULT_PDF_HEADER_TEXT,
    CaptureOptions,
    HeaderFooterConfig,
)
from snapshot_renderer.model.elements import PagedDocument, PageObject, RasterSurface
from snapshot_renderer.model.errors import AssemblyError, ConfigurationError
from snapshot_renderer.renderer.utils import escape_pdf_text, process_template, strip_markup
from snapshot_renderer.utils.logger import get_logger
from snapshot_renderer.utils.units import PAGE_SIZES, format_number

LOGGER = get_logger(__name__)

PDF_VERSION_MARKER = b"%PDF-1.4\n"
DEFAULT_PAGE_SIZE = "A4"
PAGE_BACKGROUND = (255, 255, 255)
HEADER_FONT_SIZE = 10
STAMP_FONT_SIZE = 9
STAMP_WIDTH = 80


@dataclass(frozen=True, slots=True)
class PageGeometry:
    """Page box, margins and bands in CSS pixels plus the DPI multiplier."""

    page_width: float
    page_height: float
    margin: float = 40
    header_height: float = 0
    footer_height: float = 0
    dpi: float = 2

    @classmethod
    def from_options(cls, options: CaptureOptions) -> "PageGeometry":
        page_width, page_height = options.resolve_page_size() or PAGE_SIZES[DEFAULT_PAGE_SIZE]
        return cls(
            page_width=page_width,
            page_height=page_height,
            margin=options.pdf_margin,
            header_height=_band(options.header, DEFAULT_PDF_HEADER_TEXT, options.show_header).height,
            footer_height=_band(options.footer, DEFAULT_PDF_FOOTER_TEXT, options.show_footer).height,
            dpi=options.pdf_dpi,
        )

    def validate(self) -> None:
        """Raise ``ConfigurationError`` when the geometry cannot hold any content."""
        if self.dpi <= 0:
            raise ConfigurationError(f"DPI multiplier must be positive, got {self.dpi}")
        if self.content_width <= 0 or self.content_height <= 0:
            raise ConfigurationError(
                f"Margins and bands leave no content area ({self.content_width}x{self.content_height})"
            )

    @property
    def content_width(self) -> float:
        return self.page_width - 2 * self.margin

    @property
    def content_height(self) -> float:
        return self.page_height - 2 * self.margin - self.header_height - self.footer_height

    @property
    def render_width(self) -> int:
        return round(self.content_width * self.dpi)

    @property
    def render_height(self) -> int:
        return round(self.content_height * self.dpi)


@dataclass(frozen=True, slots=True)
class PageSlice:
    """Vertical band of the source surface that fills one page."""

    index: int
    source_y: float
    source_height: float
    render_height: float


def plan_slices(surface_width: int, surface_height: int, geometry: PageGeometry) -> List[PageSlice]:
    """Compute the page slices for a surface, clamping the last one to the source bounds.

    Raises ``ConfigurationError`` for geometry that cannot produce a page.
    """
    if surface_width <= 0 or surface_height <= 0:
        raise ConfigurationError(f"Surface has zero dimensions ({surface_width}x{surface_height})")
    geometry.validate()

    render_height = geometry.render_height
    scale = geometry.render_width / surface_width
    if scale <= 0 or render_height <= 0:
        raise ConfigurationError(f"Invalid render scale {scale} or height {render_height}")

    page_count = math.ceil(surface_height * scale / render_height)
    if page_count < 1:
        raise ConfigurationError("Geometry yields fewer than one page")

    slices = []
    source_height = render_height / scale
    for index in range(page_count):
        source_y = index * source_height
        actual = min(source_height, surface_height - source_y)
        slices.append(PageSlice(index=index, source_y=source_y, source_height=actual, render_height=actual * scale))
    return slices


class PdfObjectTable:
    """Two-phase object builder: reserve ids, add objects, fill reservations, serialize."""

    def __init__(self) -> None:
        self._objects: List[Optional[bytes]] = []

    def __len__(self) -> int:
        return len(self._objects)

    def reserve(self) -> int:
        self._objects.append(None)
        return len(self._objects)

    def add(self, content: bytes) -> int:
        self._objects.append(content)
        return len(self._objects)

    def fill(self, object_id: int, content: bytes) -> None:
        if not 1 <= object_id <= len(self._objects):
            raise AssemblyError(f"Object {object_id} was never allocated")
        if self._objects[object_id - 1] is not None:
            raise AssemblyError(f"Object {object_id} is not a pending reservation")
        self._objects[object_id - 1] = content

    def serialize(self, root_id: int = 1) -> Tuple[bytes, List[int], int]:
        """Return the document bytes, the per-object offsets and the xref offset."""
        pending = [index + 1 for index, content in enumerate(self._objects) if content is None]
        if pending:
            raise AssemblyError(f"Unfilled object reservations: {pending}")

        buffer = bytearray(PDF_VERSION_MARKER)
        offsets = []
        for object_id, content in enumerate(self._objects, start=1):
            offsets.append(len(buffer))
            buffer += f"{object_id} 0 obj\n".encode("ascii")
            buffer += content
            buffer += b"\nendobj\n"

        xref_offset = len(buffer)
        size = len(self._objects) + 1
        xref = [f"xref\n0 {size}\n", "0000000000 65535 f \n"]
        xref.extend(f"{offset:010d} 00000 n \n" for offset in offsets)
        buffer += "".join(xref).encode("ascii")
        buffer += f"trailer\n<< /Size {size} /Root {root_id} 0 R >>\nstartxref\n{xref_offset}\n%%EOF".encode("ascii")
        return bytes(buffer), offsets, xref_offset


def stream_object(dictionary: str, payload: bytes) -> bytes:
    """Build a stream object whose ``/Length`` is the exact payload size."""
    return f"<< {dictionary}/Length {len(payload)} >>\nstream\n".encode("ascii") + payload + b"\nendstream"


class PdfRenderer:
    """Paginate a raster surface into a PDF."""

    def __init__(self, options: Optional[CaptureOptions] = None, geometry: Optional[PageGeometry] = None) -> None:
        self._options = options or CaptureOptions()
        self.geometry = geometry or PageGeometry.from_options(self._options)
        self.header = _band(self._options.header, DEFAULT_PDF_HEADER_TEXT, self._options.show_header)
        self.footer = _band(self._options.footer, DEFAULT_PDF_FOOTER_TEXT, self._options.show_footer)

    def render(self, surface: RasterSurface) -> PagedDocument:
        slices = plan_slices(surface.width, surface.height, self.geometry)
        total = len(slices)
        LOGGER.debug("Paginating %sx%s surface into %s page(s)", surface.width, surface.height, total)

        table = PdfObjectTable()
        catalog_id = table.reserve()
        pages_id = table.reserve()
        font_id = table.add(b"<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica >>")

        source = surface.image.convert("RGBA")
        pages = []
        for page_slice in slices:
            jpeg = self._encode_slice(source, page_slice)
            number = page_slice.index + 1
            header_text = self._band_text(self.header, number, total)
            footer_text = self._band_text(self.footer, number, total)

            image_id = table.add(
                stream_object(
                    f"/Type /XObject /Subtype /Image /Width {self.geometry.render_width} "
                    f"/Height {self.geometry.render_height} /ColorSpace /DeviceRGB "
                    "/BitsPerComponent 8 /Filter /DCTDecode ",
                    jpeg,
                )
            )
            content = self._content_stream(number, total, header_text, footer_text)
            content_id = table.add(stream_object("", content))
            page_id = table.add(
                (
                    f"<< /Type /Page /Parent {pages_id} 0 R "
                    f"/MediaBox [0 0 {format_number(self.geometry.page_width)} {format_number(self.geometry.page_height)}] "
                    f"/Contents {content_id} 0 R "
                    f"/Resources << /Font << /F1 {font_id} 0 R >> /XObject << /Img{number} {image_id} 0 R >> >> >>"
                ).encode("ascii")
            )
            pages.append(
                PageObject(
                    index=page_slice.index,
                    image_id=image_id,
                    content_id=content_id,
                    page_id=page_id,
                    header_text=header_text,
                    footer_text=footer_text,
                    image_length=len(jpeg),
                )
            )

        kids = " ".join(f"{page.page_id} 0 R" for page in pages)
        table.fill(pages_id, f"<< /Type /Pages /Kids [{kids}] /Count {total} >>".encode("ascii"))
        table.fill(catalog_id, f"<< /Type /Catalog /Pages {pages_id} 0 R >>".encode("ascii"))

        data, offsets, xref_offset = table.serialize(root_id=catalog_id)
        LOGGER.debug("Assembled PDF with %s objects (%s bytes)", len(table), len(data))
        return PagedDocument(data=data, pages=pages, offsets=offsets, xref_offset=xref_offset, root_id=catalog_id)

    # ------------------------------------------------------------------
    # Helpers
    def _encode_slice(self, source: Image.Image, page_slice: PageSlice) -> bytes:
        geometry = self.geometry
        page = Image.new("RGB", (geometry.render_width, geometry.render_height), PAGE_BACKGROUND)

        top = math.floor(page_slice.source_y)
        bottom = min(source.height, math.ceil(page_slice.source_y + page_slice.source_height))
        target_height = max(1, min(geometry.render_height, round(page_slice.render_height)))
        if bottom > top:
            region = source.crop((0, top, source.width, bottom))
            region = region.resize((geometry.render_width, target_height), Image.Resampling.LANCZOS)
            page.paste(region, (0, 0), region)

        buffer = io.BytesIO()
        page.save(buffer, format="JPEG", quality=max(1, min(100, round(self._options.pdf_quality * 100))))
        return buffer.getvalue()

    def _band_text(self, band: HeaderFooterConfig, page: int, pages: int) -> str:
        return strip_markup(process_template(band.text, page, pages, self._options.title))

    def _content_stream(self, number: int, total: int, header_text: str, footer_text: str) -> bytes:
        geometry = self.geometry
        margin = geometry.margin
        footer_y = margin - 5 + geometry.footer_height / 2
        lines = [
            "q {w} 0 0 {h} {x} {y} cm /Img{n} Do Q".format(
                w=format_number(geometry.content_width),
                h=format_number(geometry.content_height),
                x=format_number(margin),
                y=format_number(margin + geometry.footer_height),
                n=number,
            )
        ]
        if header_text:
            lines.append(
                f"BT /F1 {HEADER_FONT_SIZE} Tf {format_number(margin)} "
                f"{format_number(geometry.page_height - margin - 12)} Td ({escape_pdf_text(header_text)}) Tj ET"
            )
        if footer_text:
            lines.append(
                f"BT /F1 {HEADER_FONT_SIZE} Tf {format_number(margin)} {format_number(footer_y)} "
                f"Td ({escape_pdf_text(footer_text)}) Tj ET"
            )
        lines.append(
            f"BT /F1 {STAMP_FONT_SIZE} Tf {format_number(geometry.page_width - margin - STAMP_WIDTH)} "
            f"{format_number(footer_y)} Td (Page {number} of {total}) Tj ET"
        )
        return "\n".join(lines).encode("latin-1", errors="replace")


def _band(value, default_text: str, shown: Optional[bool] = None) -> HeaderFooterConfig:
    """PDF bands are on unless switched off with ``False``.

    They default to 30 px; an explicit config keeps its own height.
    """
    if shown is False:
        return HeaderFooterConfig(text="", height=0)
    if value is None:
        return HeaderFooterConfig(text=default_text, height=DEFAULT_PDF_BAND_HEIGHT_PX)
    if isinstance(value, str):
        return HeaderFooterConfig(text=value, height=DEFAULT_PDF_BAND_HEIGHT_PX)
    return HeaderFooterConfig.coerce(value)

