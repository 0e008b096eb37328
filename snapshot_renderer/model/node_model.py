"""Live tree model exposed by the host environment."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Dict, Iterator, List, Optional

if TYPE_CHECKING:
    from PIL import Image

TEXT_KIND = "text"
ELEMENT_KIND = "element"

TOGGLE_INPUT_TYPES = frozenset({"checkbox", "radio"})
VECTOR_GRAPHIC_TAGS = frozenset({"svg"})


@dataclass(slots=True)
class FormState:
    """Current value of a form control, which markup does not reflect."""

    value: Optional[str] = None
    checked: Optional[bool] = None


@dataclass(slots=True, eq=False)
class VisualNode:
    """One node of the live presentation tree.

    Nodes hash by identity so they can key the correspondence table built
    during a snapshot walk.
    """

    tag: str
    attributes: Dict[str, str] = field(default_factory=dict)
    children: List["VisualNode"] = field(default_factory=list)
    text: Optional[str] = None
    kind: str = ELEMENT_KIND
    shadow_root: Optional[List["VisualNode"]] = None
    bitmap: Optional["Image.Image"] = None
    form_state: Optional[FormState] = None

    @classmethod
    def text_node(cls, text: str) -> "VisualNode":
        return cls(tag="#text", text=text, kind=TEXT_KIND)

    @property
    def is_text(self) -> bool:
        return self.kind == TEXT_KIND

    @property
    def input_type(self) -> str:
        return self.attributes.get("type", "text").lower()

    def get_attribute(self, name: str) -> Optional[str]:
        return self.attributes.get(name)

    def text_content(self) -> str:
        """Concatenated text of the node and its light-tree descendants."""
        if self.is_text:
            return self.text or ""
        return "".join(child.text_content() for child in self.children)

    def iter_descendants(self) -> Iterator["VisualNode"]:
        for child in self.children:
            yield child
            yield from child.iter_descendants()


class NodeCategory(Enum):
    """Closed set of node kinds that need a dedicated capture strategy."""

    TEXT = "text"
    ELEMENT = "element"
    CANVAS = "canvas"
    VIDEO = "video"
    TEXT_INPUT = "text_input"
    TEXT_AREA = "text_area"
    TOGGLE_INPUT = "toggle_input"
    SELECT = "select"
    VECTOR_GRAPHIC = "vector_graphic"


def categorize(node: VisualNode) -> NodeCategory:
    """Return the single category a live node belongs to."""
    if node.is_text:
        return NodeCategory.TEXT
    tag = node.tag.lower()
    if tag == "canvas":
        return NodeCategory.CANVAS
    if tag == "video":
        return NodeCategory.VIDEO
    if tag == "textarea":
        return NodeCategory.TEXT_AREA
    if tag == "select":
        return NodeCategory.SELECT
    if tag == "input":
        if node.input_type in TOGGLE_INPUT_TYPES:
            return NodeCategory.TOGGLE_INPUT
        return NodeCategory.TEXT_INPUT
    if tag in VECTOR_GRAPHIC_TAGS:
        return NodeCategory.VECTOR_GRAPHIC
    return NodeCategory.ELEMENT
