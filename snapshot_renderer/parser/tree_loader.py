"""Load a live tree dump (JSON) into VisualNodes and a static style provider."""
from __future__ import annotations

import base64
import binascii
import io
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Optional, Union

from PIL import Image, UnidentifiedImageError

from snapshot_renderer.model.node_model import FormState, VisualNode
from snapshot_renderer.parser.host_interfaces import FontFaceRule, StaticFontSource, StaticStyleProvider
from snapshot_renderer.utils.logger import get_logger

LOGGER = get_logger(__name__)

NodeData = Union[str, Mapping[str, Any]]


@dataclass
class TreeDump:
    """Everything a capture needs from a serialized host document."""

    root: VisualNode
    styles: StaticStyleProvider
    fonts: StaticFontSource = field(default_factory=StaticFontSource)
    base_url: str = ""
    title: str = ""

    @classmethod
    def load(cls, path: Path) -> "TreeDump":
        """Read a JSON dump from ``path``."""
        payload = json.loads(Path(path).read_text(encoding="utf-8"))
        LOGGER.debug("Loaded tree dump %s", Path(path).name)
        return cls.from_dict(payload)

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "TreeDump":
        root_data = payload.get("root", payload)
        styles = StaticStyleProvider()
        root = _build_node(root_data, styles)
        fonts = StaticFontSource(
            faces=[FontFaceRule(css_text=face.get("css", ""), src=face.get("src", "")) for face in payload.get("fonts", [])],
            print_css=list(payload.get("print_rules", [])),
        )
        return cls(
            root=root,
            styles=styles,
            fonts=fonts,
            base_url=payload.get("url", ""),
            title=payload.get("title", ""),
        )


def _build_node(data: NodeData, styles: StaticStyleProvider) -> VisualNode:
    if isinstance(data, str):
        return VisualNode.text_node(data)
    if "tag" not in data and "text" in data:
        return VisualNode.text_node(data["text"])

    node = VisualNode(tag=data.get("tag", "div"), attributes=dict(data.get("attributes", {})))
    node.children = [_build_node(child, styles) for child in data.get("children", [])]
    if "shadow" in data:
        node.shadow_root = [_build_node(child, styles) for child in data["shadow"]]
    if "value" in data or "checked" in data:
        node.form_state = FormState(value=data.get("value"), checked=data.get("checked"))
    if data.get("bitmap"):
        node.bitmap = _decode_bitmap(data["bitmap"])

    styles.set(node, data.get("style", {}))
    for side in ("before", "after"):
        if side in data:
            styles.set(node, data[side], pseudo=side)
    return node


def _decode_bitmap(data_uri: str) -> Optional[Image.Image]:
    _, _, encoded = data_uri.partition(",")
    try:
        image = Image.open(io.BytesIO(base64.b64decode(encoded)))
        image.load()
    except (binascii.Error, UnidentifiedImageError, OSError) as exc:
        LOGGER.warning("Ignoring undecodable bitmap: %s", exc)
        return None
    return image.convert("RGBA")

