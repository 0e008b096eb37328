"""Synthesize ``::before`` / ``::after`` generated content as mirror nodes."""
from __future__ import annotations

import re
from typing import List, Mapping, Optional

from snapshot_renderer.model.elements import (
    PSEUDO_AFTER,
    PSEUDO_BEFORE,
    GeneratedContentSpec,
    SnapshotNode,
    SnapshotTree,
)
from snapshot_renderer.model.node_model import VisualNode
from snapshot_renderer.model.style_model import PSEUDO_PROPERTIES, StylePair, StyleSnapshot
from snapshot_renderer.parser.style_extractor import StyleExtractor
from snapshot_renderer.utils.css_text import URL_PATTERN, resolve_url
from snapshot_renderer.utils.logger import get_logger

LOGGER = get_logger(__name__)

PSEUDO_ATTRIBUTE = "data-snapshot-pseudo"
PSEUDO_SIDES = (PSEUDO_BEFORE, PSEUDO_AFTER)
ABSENT_CONTENT = frozenset({"", "none", "normal"})
UNSET_SIZES = frozenset({"", "auto", "0px"})
ATTR_PATTERN = re.compile(r"attr\(([^)]+)\)")
IMAGE_FILL_STYLE = (("display", "block"), ("width", "100%"), ("height", "100%"))

_ESCAPES = {"n": "\n", "t": "\t", '"': '"', "'": "'", "\\": "\\"}
_ESCAPE_PATTERN = re.compile(r"""\\([nt"'\\])""")


def decode_escapes(text: str) -> str:
    """Decode ``\\n \\t \\" \\' \\\\`` in a single left-to-right pass."""
    return _ESCAPE_PATTERN.sub(lambda match: _ESCAPES[match.group(1)], text)


def parse_content(raw: str, node: VisualNode, base_url: str = "") -> GeneratedContentSpec:
    """Parse a resolved ``content`` value.

    Only quoted strings, ``url()`` and ``attr()`` are understood; every other
    form (counters, quotes keywords, ...) produces empty content.
    """
    value = (raw or "").strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
        text = decode_escapes(value[1:-1])
        return GeneratedContentSpec(kind="text" if text else "empty", value=text)

    url_match = URL_PATTERN.search(value)
    if url_match:
        return GeneratedContentSpec(kind="resource", value=resolve_url(url_match.group(1).strip(), base_url) or "")

    attr_match = ATTR_PATTERN.search(value)
    if attr_match:
        return GeneratedContentSpec(kind="attribute", value=node.get_attribute(attr_match.group(1).strip()) or "")

    return GeneratedContentSpec(kind="empty")


class PseudoContentSynthesizer:
    """Create synthetic mirror nodes for a node's generated content."""

    def __init__(self, extractor: StyleExtractor, base_url: str = "") -> None:
        self._extractor = extractor
        self._base_url = base_url

    def synthesize(self, live: VisualNode, tree: SnapshotTree, mirror: SnapshotNode) -> List[SnapshotNode]:
        """Insert ``::before`` as first and ``::after`` as last child of ``mirror``."""
        created = []
        for side in PSEUDO_SIDES:
            node = self.synthesize_side(live, tree, mirror, side)
            if node is not None:
                created.append(node)
        return created

    def synthesize_side(
        self, live: VisualNode, tree: SnapshotTree, mirror: SnapshotNode, side: str
    ) -> Optional[SnapshotNode]:
        if live.is_text:
            return None
        computed = self._extractor.computed(live, side)
        content = (computed.get("content") or "").strip()
        display = (computed.get("display") or "").strip()
        if content in ABSENT_CONTENT or display == "none":
            return None

        LOGGER.debug("Processing ::%s of <%s> content=%s", side, live.tag, content)
        parsed = parse_content(content, live, self._base_url)

        pseudo = tree.add_node("span", synthetic=side, attributes={PSEUDO_ATTRIBUTE: side})
        pseudo.style = StyleSnapshot.from_pairs(self._pseudo_style(computed))
        if parsed.kind == "resource":
            image = tree.add_node("img", synthetic=side, attributes={"src": parsed.value})
            image.style = StyleSnapshot.from_pairs(IMAGE_FILL_STYLE)
            tree.attach(pseudo.index, image.index)
        else:
            pseudo.text = parsed.text

        self._establish_positioning_context(live, mirror)
        tree.attach(mirror.index, pseudo.index, first=side == PSEUDO_BEFORE)
        return pseudo

    # ------------------------------------------------------------------
    # Helpers
    def _pseudo_style(self, computed: Mapping[str, str]) -> List[StylePair]:
        pairs = StyleExtractor.filter_properties(computed, PSEUDO_PROPERTIES)
        position = (computed.get("position") or "").strip()
        if not position or position == "static":
            pairs = [pair for pair in pairs if pair[0] != "position"]
            pairs.append(("position", "absolute"))
        for dimension in ("width", "height"):
            value = (computed.get(dimension) or "").strip()
            if value not in UNSET_SIZES:
                pairs.append((dimension, value))
        pairs = [pair for pair in pairs if pair[0] != "pointer-events"]
        pairs.append(("pointer-events", "none"))
        return pairs

    def _establish_positioning_context(self, live: VisualNode, mirror: SnapshotNode) -> None:
        position = (self._extractor.computed(live).get("position") or "static").strip()
        if position == "static":
            mirror.style = mirror.style.with_overrides({"position": "relative"})
