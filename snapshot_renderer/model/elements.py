"""In-memory representation of the snapshot mirror and the artifacts rendered from it."""
from __future__ import annotations

import base64
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, Iterator, List, Optional, Sequence
from urllib.parse import quote

from snapshot_renderer.model.node_model import VisualNode
from snapshot_renderer.model.style_model import StyleSnapshot

if TYPE_CHECKING:
    from PIL import Image

PSEUDO_BEFORE = "before"
PSEUDO_AFTER = "after"
SHADOW_CONTAINER = "shadow"

SVG_DATA_URI_PREFIX = "data:image/svg+xml;charset=utf-8,"


@dataclass(slots=True)
class GeneratedContentSpec:
    """Parsed form of a ``content`` declaration."""

    kind: str  # "text" | "attribute" | "resource" | "empty"
    value: str = ""

    @property
    def text(self) -> str:
        return "" if self.kind == "resource" else self.value


@dataclass(slots=True)
class SnapshotNode:
    """Detached record mirroring one live node, or a synthetic node without one."""

    index: int
    tag: str
    attributes: Dict[str, str] = field(default_factory=dict)
    style: StyleSnapshot = field(default_factory=StyleSnapshot)
    text: Optional[str] = None
    children: List[int] = field(default_factory=list)
    parent: Optional[int] = None
    synthetic: Optional[str] = None
    is_text: bool = False
    bitmap: Optional["Image.Image"] = None

    @property
    def is_synthetic(self) -> bool:
        return self.synthetic is not None


@dataclass(slots=True)
class InlinedResource:
    """Self-contained replacement for one absolute reference."""

    reference: str
    data_uri: str


@dataclass
class SnapshotTree:
    """Arena of mirror nodes plus the live-to-mirror correspondence table."""

    nodes: List[SnapshotNode] = field(default_factory=list)
    root: int = 0
    correspondence: Dict[VisualNode, int] = field(default_factory=dict)
    style_sheets: List[str] = field(default_factory=list)
    resources: Dict[str, InlinedResource] = field(default_factory=dict)

    # ------------------------------------------------------------------
    # Construction
    def add_node(
        self,
        tag: str,
        *,
        parent: Optional[int] = None,
        live: Optional[VisualNode] = None,
        synthetic: Optional[str] = None,
        text: Optional[str] = None,
        is_text: bool = False,
        attributes: Optional[Dict[str, str]] = None,
    ) -> SnapshotNode:
        node = SnapshotNode(
            index=len(self.nodes),
            tag=tag,
            attributes=dict(attributes or {}),
            text=text,
            parent=parent,
            synthetic=synthetic,
            is_text=is_text,
        )
        self.nodes.append(node)
        if live is not None:
            self.correspondence[live] = node.index
        return node

    def attach(self, parent: int, child: int, *, first: bool = False) -> None:
        siblings = self.nodes[parent].children
        if first:
            siblings.insert(0, child)
        else:
            siblings.append(child)
        self.nodes[child].parent = parent

    def insert_before_trailing_pseudo(self, parent: int, child: int) -> None:
        """Append ``child`` while keeping an ``::after`` node in last position."""
        siblings = self.nodes[parent].children
        if siblings and self.nodes[siblings[-1]].synthetic == PSEUDO_AFTER:
            siblings.insert(len(siblings) - 1, child)
        else:
            siblings.append(child)
        self.nodes[child].parent = parent

    # ------------------------------------------------------------------
    # Queries
    @property
    def root_node(self) -> SnapshotNode:
        return self.nodes[self.root]

    def node(self, index: int) -> SnapshotNode:
        return self.nodes[index]

    def mirror_of(self, live: VisualNode) -> Optional[SnapshotNode]:
        index = self.correspondence.get(live)
        return None if index is None else self.nodes[index]

    def children_of(self, index: int) -> List[SnapshotNode]:
        return [self.nodes[child] for child in self.nodes[index].children]

    def live_children_of(self, index: int) -> List[SnapshotNode]:
        """Children that correspond to live nodes, in order."""
        return [child for child in self.children_of(index) if not child.is_synthetic]

    def iter_subtree(self, index: Optional[int] = None) -> Iterator[SnapshotNode]:
        stack = [self.root if index is None else index]
        while stack:
            current = self.nodes[stack.pop()]
            yield current
            stack.extend(reversed(current.children))


@dataclass(frozen=True, slots=True)
class VectorDocument:
    """Serialized SVG document and its intrinsic size in CSS pixels."""

    markup: str
    width: int
    height: int

    @property
    def payload(self) -> bytes:
        return self.markup.encode("utf-8")

    @property
    def data_uri(self) -> str:
        return SVG_DATA_URI_PREFIX + quote(self.markup, safe="")


@dataclass(slots=True)
class RasterSurface:
    """RGBA pixel buffer produced by rasterizing a vector document."""

    image: "Image.Image"
    scale: float = 1.0

    @property
    def width(self) -> int:
        return self.image.width

    @property
    def height(self) -> int:
        return self.image.height


@dataclass(frozen=True, slots=True)
class RasterExport:
    """Encoded image payload handed to the raster consumer."""

    payload: bytes
    media_type: str
    width: int
    height: int

    @property
    def data_uri(self) -> str:
        encoded = base64.b64encode(self.payload).decode("ascii")
        return f"data:{self.media_type};base64,{encoded}"


@dataclass(slots=True)
class PageObject:
    """One page of the paged document with the ids of its three objects."""

    index: int
    image_id: int
    content_id: int
    page_id: int
    header_text: str = ""
    footer_text: str = ""
    image_length: int = 0


@dataclass(slots=True)
class PagedDocument:
    """Assembled binary document plus the bookkeeping used to produce it."""

    data: bytes
    pages: Sequence[PageObject]
    offsets: Sequence[int]
    xref_offset: int
    root_id: int = 1

    @property
    def page_count(self) -> int:
        return len(self.pages)
