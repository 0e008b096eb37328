"""Contracts for the host collaborators the capture pipeline reads from."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Protocol, Sequence, Tuple

from snapshot_renderer.model.node_model import VisualNode


class StyleProvider(Protocol):
    """Resolved presentation values for live nodes, read on demand."""

    def computed_style(self, node: VisualNode, pseudo: Optional[str] = None) -> Mapping[str, str]:
        """Return kebab-case property names mapped to resolved values.

        Implementations raise ``LookupError`` when the node is detached or
        otherwise unknown to the style subsystem.
        """


class ResourceFetcher(Protocol):
    """Asynchronously turns an absolute reference into a ``data:`` URI."""

    async def fetch(self, url: str, use_cors: bool = True) -> Optional[str]:
        """Return an embedded representation, or ``None`` on failure."""


@dataclass(frozen=True, slots=True)
class FontFaceRule:
    """One ``@font-face`` rule registered with the host."""

    css_text: str
    src: str = ""


class FontSource(Protocol):
    """Font loading subsystem and style sheet rules of the host document."""

    async def ready(self) -> None:
        """Resolve once pending font loads have settled."""

    def font_faces(self) -> Sequence[FontFaceRule]:
        """Return the registered ``@font-face`` rules."""

    def print_rules(self) -> Sequence[str]:
        """Return the rule text found inside ``@media print`` blocks."""


class StagingHost(Protocol):
    """Receives the off-screen staging container lifecycle events."""

    def attach(self, container_id: str) -> None:
        ...

    def detach(self, container_id: str) -> None:
        ...


@dataclass
class StaticStyleProvider:
    """Style provider backed by precomputed per-node mappings."""

    styles: Dict[VisualNode, Dict[str, str]] = field(default_factory=dict)
    pseudo_styles: Dict[Tuple[VisualNode, str], Dict[str, str]] = field(default_factory=dict)
    strict: bool = False

    def set(self, node: VisualNode, style: Mapping[str, str], pseudo: Optional[str] = None) -> None:
        if pseudo is None:
            self.styles[node] = dict(style)
        else:
            self.pseudo_styles[(node, pseudo)] = dict(style)

    def computed_style(self, node: VisualNode, pseudo: Optional[str] = None) -> Mapping[str, str]:
        if pseudo is not None:
            return self.pseudo_styles.get((node, pseudo), {})
        if node not in self.styles:
            if self.strict:
                raise LookupError(f"No computed style for <{node.tag}>")
            return {}
        return self.styles[node]


@dataclass
class StaticFontSource:
    """Font source with a fixed rule list, used for offline captures."""

    faces: List[FontFaceRule] = field(default_factory=list)
    print_css: List[str] = field(default_factory=list)

    async def ready(self) -> None:
        return None

    def font_faces(self) -> Sequence[FontFaceRule]:
        return list(self.faces)

    def print_rules(self) -> Sequence[str]:
        return list(self.print_css)
