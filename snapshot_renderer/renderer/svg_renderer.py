"""Render the snapshot tree into an SVG document with embedded XHTML content."""
from __future__ import annotations

from typing import Optional
from xml.etree import ElementTree as ET

from snapshot_renderer.model.capture_options import CaptureOptions, HeaderFooterConfig
from snapshot_renderer.model.elements import SnapshotTree, VectorDocument
from snapshot_renderer.parser.resource_inliner import image_to_data_uri
from snapshot_renderer.renderer.utils import process_template
from snapshot_renderer.utils.logger import get_logger
from snapshot_renderer.utils.xml_utils import VOID_ELEMENTS, Namespaces, ensure_xhtml_namespace, qualified_attribute, to_markup

LOGGER = get_logger(__name__)

BAND_STYLE = (
    "width: 100%; height: {height}px; display: flex; align-items: center; "
    "justify-content: space-between; padding: 0 20px; font-size: 12px; color: #666; "
    "{border}: 1px solid #eee; box-sizing: border-box; {extra}"
)


class SvgRenderer:
    """Produce a foreignObject-wrapped SVG sized to the captured content."""

    def __init__(self, options: Optional[CaptureOptions] = None) -> None:
        self._options = options or CaptureOptions()

    def render(self, tree: SnapshotTree, width: int, height: int) -> VectorDocument:
        LOGGER.debug("Rendering to SVG...")
        header = self._band(self._options.header_config if self._options.show_header else None, "header")
        footer = self._band(self._options.footer_config if self._options.show_footer else None, "footer")

        wrapper = ET.Element("div", {"style": f"width: {width}px; min-height: {height}px;"})
        if tree.style_sheets:
            style = ET.SubElement(wrapper, "style")
            style.text = "\n".join(tree.style_sheets)

        total_height = height
        if header is not None:
            wrapper.append(header[0])
            total_height += header[1]
        wrapper.append(self._serialize(tree, tree.root))
        if footer is not None:
            wrapper.append(footer[0])
            total_height += footer[1]

        html = ensure_xhtml_namespace(to_markup(wrapper))
        svg = (
            f'<svg xmlns="{Namespaces.SVG}" width="{width}" height="{total_height}" '
            f'viewBox="0 0 {width} {total_height}">'
            f'<foreignObject x="0" y="0" width="100%" height="100%">{html}</foreignObject>'
            "</svg>"
        )
        return VectorDocument(markup=svg, width=width, height=total_height)

    # ------------------------------------------------------------------
    # Helpers
    def _band(self, config: Optional[HeaderFooterConfig], placement: str):
        if config is None:
            return None
        band = ET.Element(
            "div",
            {
                f"data-snapshot-{placement}": "true",
                "style": BAND_STYLE.format(
                    height=config.height,
                    border="border-bottom" if placement == "header" else "border-top",
                    extra=config.style,
                ).strip(),
            },
        )
        text = process_template(config.text, 1, 1, self._options.title)
        try:
            fragment = ET.fromstring(f"<span>{text}</span>")
        except ET.ParseError:
            band.text = text
        else:
            band.text = fragment.text
            band.extend(list(fragment))
        return band, config.height

    def _serialize(self, tree: SnapshotTree, index: int) -> ET.Element:
        node = tree.node(index)
        tag = node.tag.lower()
        attributes = {}
        for name, value in node.attributes.items():
            if name == "style" or name.startswith("xmlns"):
                continue
            key = qualified_attribute(name)
            if key is None:
                LOGGER.debug("Dropping attribute %r on <%s>; not expressible in XML", name, tag)
                continue
            attributes[key] = value

        if tag == "canvas" and node.bitmap is not None:
            tag = "img"
            attributes = {key: value for key, value in attributes.items() if key in ("id", "class")}
            attributes["src"] = image_to_data_uri(node.bitmap)

        if tag == "svg":
            attributes["xmlns"] = Namespaces.SVG
        if node.style:
            attributes["style"] = node.style.to_css()
        # SVG element names are case-sensitive; upper-case HTML names serialize lowercase.
        element_name = tag
        if tag == node.tag.lower() and node.tag != node.tag.upper():
            element_name = node.tag
        element = ET.Element(element_name, attributes)
        if tag in VOID_ELEMENTS:
            return element

        element.text = node.text
        last: Optional[ET.Element] = None
        for child in tree.children_of(index):
            if child.is_text:
                if last is None:
                    element.text = (element.text or "") + (child.text or "")
                else:
                    last.tail = (last.tail or "") + (child.text or "")
                continue
            last = self._serialize(tree, child.index)
            element.append(last)
        return element

