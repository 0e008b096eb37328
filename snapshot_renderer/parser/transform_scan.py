"""Advisory scan for 3D transforms the vector path cannot reproduce."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional

from snapshot_renderer.model.capture_options import CaptureOptions
from snapshot_renderer.model.node_model import VisualNode
from snapshot_renderer.parser.style_extractor import StyleExtractor

TRANSFORM_3D_KEYWORDS = (
    "rotateX",
    "rotateY",
    "rotateZ",
    "rotate3d",
    "translateZ",
    "translate3d",
    "scaleZ",
    "scale3d",
    "perspective",
    "matrix3d",
)


@dataclass(frozen=True, slots=True)
class TransformIssue:
    node: VisualNode
    property: str
    value: str
    keyword: Optional[str] = None


def scan_3d_transforms(root: VisualNode, extractor: StyleExtractor) -> List[TransformIssue]:
    """Return every element under ``root`` (shadow roots included) using 3D rendering."""
    issues: List[TransformIssue] = []
    _scan(root, extractor, issues)
    return issues


def detect_3d_transforms(root: VisualNode, extractor: StyleExtractor, options: CaptureOptions) -> List[TransformIssue]:
    """Scan and, when ``warn_3d`` is on, report a single advisory warning."""
    issues = scan_3d_transforms(root, extractor)
    if issues and options.warn_3d:
        options.warn(
            "3D_TRANSFORMS_DETECTED",
            f"Detected {len(issues)} element(s) with 3D CSS transforms. "
            "Vector-based capture cannot render 3D transforms accurately.",
            elements=issues,
        )
    return issues


def _scan(node: VisualNode, extractor: StyleExtractor, issues: List[TransformIssue]) -> None:
    if node.is_text:
        return
    style = extractor.computed(node)

    transform = (style.get("transform") or "").strip()
    if transform and transform != "none":
        for keyword in TRANSFORM_3D_KEYWORDS:
            if keyword in transform:
                issues.append(TransformIssue(node, "transform", transform, keyword))
                break

    transform_style = (style.get("transform-style") or "").strip()
    if transform_style == "preserve-3d":
        issues.append(TransformIssue(node, "transform-style", transform_style))

    perspective = (style.get("perspective") or "").strip()
    if perspective and perspective not in ("none", "0px"):
        issues.append(TransformIssue(node, "perspective", perspective))

    children: Iterable[VisualNode] = list(node.children) + list(node.shadow_root or [])
    for child in children:
        _scan(child, extractor, issues)
