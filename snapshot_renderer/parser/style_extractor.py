"""Read the effective presentation of a live node into a StyleSnapshot."""
from __future__ import annotations

import re
from typing import List, Mapping, Optional, Sequence

from snapshot_renderer.model.node_model import VisualNode
from snapshot_renderer.model.style_model import (
    STYLE_PROPERTIES,
    StylePair,
    StyleSnapshot,
    is_meaningful,
)
from snapshot_renderer.parser.host_interfaces import StyleProvider
from snapshot_renderer.utils.css_text import parse_declarations
from snapshot_renderer.utils.logger import get_logger

LOGGER = get_logger(__name__)

MAX_VARIABLE_PASSES = 10
VARIABLE_PATTERN = re.compile(r"var\(\s*(--[^,)]+?)\s*(?:,\s*([^)]+?))?\s*\)")
INLINE_DISPLAYS = frozenset({"inline", "inline-block"})
INLINE_TEXT_TAGS = frozenset({"span", "a", "strong", "em", "b", "i", "label"})


def resolve_variables(value: str, style: Mapping[str, str], max_passes: int = MAX_VARIABLE_PASSES) -> str:
    """Substitute ``var(--name[, fallback])`` references using ``style``.

    Each pass replaces every reference with the current value of the
    variable, its fallback, or nothing. Passes stop once no reference is left
    or after ``max_passes``, so cyclic chains terminate with a best-effort
    result.
    """
    if not value or "var(" not in value:
        return value

    def substitute(match: "re.Match[str]") -> str:
        resolved = (style.get(match.group(1).strip()) or "").strip()
        return resolved or (match.group(2) or "").strip()

    result = value
    passes = 0
    while "var(" in result and passes < max_passes:
        result = VARIABLE_PATTERN.sub(substitute, result)
        passes += 1
    return result


class StyleExtractor:
    """Build StyleSnapshots from a fixed property catalog."""

    def __init__(
        self,
        provider: StyleProvider,
        *,
        preserve_whitespace: bool = True,
        catalog: Sequence[str] = STYLE_PROPERTIES,
    ) -> None:
        self._provider = provider
        self._preserve_whitespace = preserve_whitespace
        self._catalog = tuple(catalog)

    def computed(self, node: VisualNode, pseudo: Optional[str] = None) -> Mapping[str, str]:
        """Return the current computed style, or an empty mapping when unavailable."""
        try:
            return self._provider.computed_style(node, pseudo)
        except LookupError:
            LOGGER.debug("No style data for <%s>%s", node.tag, f"::{pseudo}" if pseudo else "")
            return {}

    def extract(self, node: VisualNode, pseudo: Optional[str] = None) -> StyleSnapshot:
        """Return the snapshot of ``node`` (or of its ``pseudo`` element)."""
        if node.is_text:
            return StyleSnapshot()
        computed = self.computed(node, pseudo)
        if not computed:
            return StyleSnapshot()

        pairs = self.filter_properties(computed, self._catalog)
        if pseudo is None:
            pairs.extend(self._inline_custom_properties(node, computed))
        if self._needs_nowrap(node, computed, pseudo):
            pairs.append(("white-space", "nowrap"))
        return StyleSnapshot.from_pairs(pairs)

    @staticmethod
    def filter_properties(computed: Mapping[str, str], catalog: Sequence[str]) -> List[StylePair]:
        """Return resolved catalog entries whose values are not sentinels."""
        pairs: List[StylePair] = []
        for prop in catalog:
            value = computed.get(prop)
            if not is_meaningful(value):
                continue
            pairs.append((prop, resolve_variables(value.strip(), computed)))
        return pairs

    # ------------------------------------------------------------------
    # Helpers
    def _inline_custom_properties(self, node: VisualNode, computed: Mapping[str, str]) -> List[StylePair]:
        declared = parse_declarations(node.get_attribute("style"))
        pairs = []
        for name in declared:
            if name.startswith("--") and computed.get(name):
                pairs.append((name, computed[name].strip()))
        return pairs

    def _needs_nowrap(self, node: VisualNode, computed: Mapping[str, str], pseudo: Optional[str]) -> bool:
        if not self._preserve_whitespace:
            return False
        white_space = (computed.get("white-space") or "").strip()
        if white_space and white_space != "normal":
            return False
        if (computed.get("display") or "").strip() in INLINE_DISPLAYS:
            return True
        if pseudo is None and node.tag.lower() in INLINE_TEXT_TAGS:
            text = node.text_content()
            return bool(text) and "\n" not in text
        return False
