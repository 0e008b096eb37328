"""CSS selector queries over the snapshot mirror.

The mirror is projected into a BeautifulSoup document and matched with
soupsieve, so selector lists, combinators and pseudo-classes behave the way
``querySelectorAll`` does on the cloned subtree.
"""
from __future__ import annotations

from typing import Dict, List

import soupsieve
from bs4 import BeautifulSoup, Tag

from snapshot_renderer.model.elements import SnapshotNode, SnapshotTree

SelectorError = soupsieve.SelectorSyntaxError


class MirrorSoup:
    """BeautifulSoup view of a snapshot tree, keyed back to its arena nodes."""

    def __init__(self, tree: SnapshotTree) -> None:
        self._tree = tree
        self._soup = BeautifulSoup("", "html.parser")
        self._nodes: Dict[int, SnapshotNode] = {}
        self.root = self._project(tree.root_node)
        self._soup.append(self.root)

    def select(self, selector: str) -> List[SnapshotNode]:
        """Return the descendants of the mirror root matching ``selector``.

        The root itself is never returned. Raises ``SelectorError`` when
        soupsieve cannot parse ``selector``.
        """
        compiled = soupsieve.compile(selector)
        return [self._nodes[id(tag)] for tag in compiled.select(self.root)]

    def _project(self, node: SnapshotNode) -> Tag:
        tag = self._soup.new_tag(node.tag, attrs=dict(node.attributes))
        self._nodes[id(tag)] = node
        if node.text:
            tag.append(self._soup.new_string(node.text))
        for child in self._tree.children_of(node.index):
            if child.is_text:
                if child.text:
                    tag.append(self._soup.new_string(child.text))
            else:
                tag.append(self._project(child))
        return tag
