"""Test cases for CSS selector queries over the snapshot mirror."""

import unittest

from snapshot_renderer.model.elements import SnapshotTree
from snapshot_renderer.utils.mirror_soup import MirrorSoup, SelectorError


class MirrorSoupTest(unittest.TestCase):
    """Match selectors against a ``div > section.card > p`` mirror."""

    def setUp(self) -> None:
        self.tree = SnapshotTree()
        self.root = self.tree.add_node("div", attributes={"id": "page"})
        self.section = self.tree.add_node("section", attributes={"id": "intro", "class": "card wide", "data-keep": "1"})
        self.paragraph = self.tree.add_node("p", attributes={"class": "lead"})
        self.text = self.tree.add_node("#text", text="Hello", is_text=True)
        self.aside = self.tree.add_node("aside")
        self.tree.attach(self.root.index, self.section.index)
        self.tree.attach(self.section.index, self.paragraph.index)
        self.tree.attach(self.paragraph.index, self.text.index)
        self.tree.attach(self.root.index, self.aside.index)
        self.view = MirrorSoup(self.tree)

    def indexes(self, selector: str) -> list:
        return [node.index for node in self.view.select(selector)]

    def test_descendant_and_child_combinators(self) -> None:
        """``.card p`` and ``section > p`` both reach the paragraph."""
        self.assertEqual(self.indexes(".card p"), [self.paragraph.index])
        self.assertEqual(self.indexes("section > p"), [self.paragraph.index])
        self.assertEqual(self.indexes("div > p"), [])

    def test_compound_selectors(self) -> None:
        """Type, id, class and attribute parts combine on one element."""
        for selector in ("section", "#intro", ".card.wide", "[data-keep]", '[data-keep="1"]', "section#intro.card"):
            self.assertEqual(self.indexes(selector), [self.section.index], selector)
        for selector in (".card.narrow", "[data-keep='2']", "[missing]"):
            self.assertEqual(self.indexes(selector), [], selector)

    def test_selector_list_in_document_order(self) -> None:
        """A comma list returns every match once, in document order."""
        self.assertEqual(self.indexes("aside, p, section"), [self.section.index, self.paragraph.index, self.aside.index])

    def test_root_is_excluded(self) -> None:
        """The mirror root never matches, like ``querySelectorAll`` on the clone."""
        self.assertEqual(self.indexes("div"), [])
        self.assertEqual(self.indexes("#page"), [])
        self.assertNotIn(self.root.index, self.indexes("*"))

    def test_text_nodes_never_match(self) -> None:
        """Text children are projected as strings, not elements."""
        self.assertNotIn(self.text.index, self.indexes("*"))
        self.assertEqual(self.indexes("p:has(> aside)"), [])

    def test_invalid_selector_raises(self) -> None:
        """Unparseable selectors surface as ``SelectorError``."""
        for selector in ("div,", "p >", "[unclosed"):
            with self.assertRaises(SelectorError, msg=selector):
                self.view.select(selector)


if __name__ == "__main__":
    unittest.main()
