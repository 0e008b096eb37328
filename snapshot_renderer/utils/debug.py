"""Helpers to persist intermediate representations for debugging."""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Optional

from snapshot_renderer.model.elements import SnapshotNode, SnapshotTree, VectorDocument


class DebugDumper:
    """Writes intermediate artifacts onto disk for inspection."""

    def __init__(self, directory: Path) -> None:
        self.directory = directory

    def dump(self, tree: SnapshotTree, vector: Optional[VectorDocument] = None) -> None:
        """Persist the mirror tree as JSON, and the vector document when given."""
        self.directory.mkdir(parents=True, exist_ok=True)
        payload = {
            "root": tree.root,
            "style_sheets": tree.style_sheets,
            "resources": sorted(tree.resources),
            "nodes": [self._serialize(node) for node in tree.nodes],
        }
        (self.directory / "snapshot_tree.json").write_text(json.dumps(payload, indent=2))
        if vector is not None:
            (self.directory / "snapshot.svg").write_text(vector.markup, encoding="utf-8")

    def _serialize(self, node: SnapshotNode) -> Dict[str, Any]:
        data: Dict[str, Any] = {"index": node.index, "parent": node.parent}
        if node.is_text:
            data["text"] = node.text
            return data
        data.update(
            tag=node.tag,
            attributes={key: _shorten(value) for key, value in node.attributes.items()},
            style={name: _shorten(value) for name, value in node.style},
            children=list(node.children),
        )
        if node.text:
            data["text"] = node.text
        if node.synthetic:
            data["synthetic"] = node.synthetic
        if node.bitmap is not None:
            data["bitmap"] = list(node.bitmap.size)
        return data


def _shorten(value: str, limit: int = 120) -> str:
    # data URIs would dominate the dump
    if value.startswith("data:") and len(value) > limit:
        return f"{value[:limit]}... ({len(value)} chars)"
    return value
