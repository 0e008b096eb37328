"""Style model captures the effective presentation of one node in a normalized form."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Iterator, Mapping, Optional, Sequence, Tuple

StylePair = Tuple[str, str]

SKIPPED_VALUES = frozenset({"", "none", "normal", "auto"})


def _unique(properties: Iterable[str]) -> Tuple[str, ...]:
    seen = set()
    ordered = []
    for name in properties:
        if name not in seen:
            seen.add(name)
            ordered.append(name)
    return tuple(ordered)


STYLE_PROPERTIES: Tuple[str, ...] = _unique(
    (
        # Positioning & layout
        "position", "top", "right", "bottom", "left", "z-index", "float", "clear",
        "display", "visibility", "opacity",
        # Box model
        "width", "height", "min-width", "min-height", "max-width", "max-height",
        "margin", "margin-top", "margin-right", "margin-bottom", "margin-left",
        "padding", "padding-top", "padding-right", "padding-bottom", "padding-left",
        "box-sizing", "overflow", "overflow-x", "overflow-y", "overflow-wrap",
        # Flexbox
        "flex-direction", "flex-wrap", "justify-content", "align-items", "align-content",
        "flex", "flex-grow", "flex-shrink", "flex-basis", "align-self", "order",
        "gap", "row-gap", "column-gap",
        # Grid
        "grid-template-columns", "grid-template-rows", "grid-template-areas",
        "grid-column", "grid-column-start", "grid-column-end",
        "grid-row", "grid-row-start", "grid-row-end",
        "grid-gap", "grid-auto-flow", "grid-auto-columns", "grid-auto-rows",
        "justify-items", "justify-self", "place-items", "place-content", "place-self",
        # Typography
        "font-family", "font-size", "font-weight", "font-style", "font-variant",
        "font-stretch", "font-feature-settings", "font-kerning",
        "line-height", "letter-spacing", "word-spacing",
        "text-align", "text-align-last", "text-decoration", "text-decoration-line",
        "text-decoration-style", "text-decoration-color", "text-decoration-thickness",
        "text-transform", "text-indent", "text-shadow", "text-overflow",
        "white-space", "word-break", "word-wrap", "overflow-wrap", "hyphens",
        "color", "caret-color", "tab-size",
        "writing-mode", "direction", "unicode-bidi", "vertical-align",
        # Background
        "background", "background-color", "background-image", "background-position",
        "background-position-x", "background-position-y",
        "background-size", "background-repeat", "background-clip", "background-origin",
        "background-attachment", "background-blend-mode",
        # Border
        "border", "border-width", "border-style", "border-color",
        "border-top", "border-top-width", "border-top-style", "border-top-color",
        "border-right", "border-right-width", "border-right-style", "border-right-color",
        "border-bottom", "border-bottom-width", "border-bottom-style", "border-bottom-color",
        "border-left", "border-left-width", "border-left-style", "border-left-color",
        "border-radius", "border-top-left-radius", "border-top-right-radius",
        "border-bottom-left-radius", "border-bottom-right-radius",
        "border-collapse", "border-spacing",
        "border-image", "border-image-source", "border-image-slice",
        # Outline
        "outline", "outline-width", "outline-style", "outline-color", "outline-offset",
        # Effects
        "box-shadow", "filter", "backdrop-filter", "mix-blend-mode", "isolation",
        # Transforms
        "transform", "transform-origin", "transform-style", "transform-box",
        "perspective", "perspective-origin", "rotate", "scale", "translate",
        # Clipping & masking
        "clip-path", "clip", "mask", "mask-image", "mask-mode", "mask-repeat",
        "mask-position", "mask-clip", "mask-origin", "mask-size", "mask-composite",
        # Table
        "table-layout", "caption-side", "empty-cells",
        # List
        "list-style", "list-style-type", "list-style-position", "list-style-image",
        # Columns
        "columns", "column-count", "column-width", "column-gap", "column-rule",
        "column-rule-width", "column-rule-style", "column-rule-color", "column-span",
        # Page breaks
        "page-break-before", "page-break-after", "page-break-inside",
        "break-before", "break-after", "break-inside",
        # Sizing
        "aspect-ratio", "object-fit", "object-position", "contain",
        # Interaction
        "cursor", "pointer-events", "user-select", "touch-action", "resize",
        # Content
        "content", "quotes", "counter-increment", "counter-reset",
        # SVG paint
        "fill", "fill-opacity", "fill-rule", "stroke", "stroke-width",
        "stroke-opacity", "stroke-linecap", "stroke-linejoin",
        "stroke-dasharray", "stroke-dashoffset",
        # Misc
        "will-change", "backface-visibility", "image-rendering",
    )
)

# Narrower catalog for generated content; size is added only when explicitly set.
PSEUDO_PROPERTIES: Tuple[str, ...] = _unique(
    (
        "position", "display", "top", "right", "bottom", "left",
        "min-width", "min-height", "max-width", "max-height",
        "margin", "margin-top", "margin-right", "margin-bottom", "margin-left",
        "padding", "padding-top", "padding-right", "padding-bottom", "padding-left",
        "background", "background-color", "background-image", "background-size",
        "background-position", "background-repeat",
        "border", "border-width", "border-style", "border-color", "border-radius",
        "border-top-left-radius", "border-top-right-radius",
        "border-bottom-left-radius", "border-bottom-right-radius",
        "box-shadow", "opacity", "transform", "transform-origin",
        "z-index", "overflow", "color", "font-size", "font-family", "font-weight",
        "text-align", "line-height", "letter-spacing", "white-space",
        "filter", "backdrop-filter", "clip-path", "pointer-events",
    )
)

VECTOR_PAINT_PROPERTIES: Tuple[str, ...] = (
    "fill",
    "stroke",
    "stroke-width",
    "opacity",
    "fill-opacity",
    "stroke-opacity",
)


def is_meaningful(value: Optional[str]) -> bool:
    """Return True when a computed value differs from the blank/default sentinels."""
    if value is None:
        return False
    return value.strip() not in SKIPPED_VALUES


@dataclass(frozen=True, slots=True)
class StyleSnapshot:
    """Ordered, immutable sequence of effective ``(property, value)`` pairs."""

    pairs: Tuple[StylePair, ...] = ()

    @classmethod
    def from_pairs(cls, pairs: Iterable[StylePair]) -> "StyleSnapshot":
        return cls(tuple(pairs))

    def __iter__(self) -> Iterator[StylePair]:
        return iter(self.pairs)

    def __len__(self) -> int:
        return len(self.pairs)

    def __bool__(self) -> bool:
        return bool(self.pairs)

    def get(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """Return the last value recorded for ``name``."""
        for prop, value in reversed(self.pairs):
            if prop == name:
                return value
        return default

    def properties(self) -> Sequence[str]:
        return [prop for prop, _ in self.pairs]

    def with_overrides(self, overrides: Mapping[str, str]) -> "StyleSnapshot":
        """Return a copy where ``overrides`` replace existing values in place or are appended."""
        merged = [(prop, overrides.get(prop, value)) for prop, value in self.pairs]
        present = {prop for prop, _ in self.pairs}
        merged.extend((prop, value) for prop, value in overrides.items() if prop not in present)
        return StyleSnapshot(tuple(merged))

    def to_css(self) -> str:
        """Serialize to an inline ``style`` attribute value."""
        return "; ".join(f"{prop}: {value}" for prop, value in self.pairs)
