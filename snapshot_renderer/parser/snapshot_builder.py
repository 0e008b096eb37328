"""Clone a live subtree into a detached, self-contained snapshot tree."""
from __future__ import annotations

import inspect
import uuid
from typing import Callable, Dict, Optional

from snapshot_renderer.model.capture_options import CaptureOptions
from snapshot_renderer.model.elements import SHADOW_CONTAINER, SnapshotNode, SnapshotTree
from snapshot_renderer.model.errors import ConfigurationError
from snapshot_renderer.model.node_model import NodeCategory, VisualNode, categorize
from snapshot_renderer.model.style_model import VECTOR_PAINT_PROPERTIES, StyleSnapshot
from snapshot_renderer.parser.host_interfaces import FontSource, ResourceFetcher, StagingHost, StyleProvider
from snapshot_renderer.parser.pseudo_content import PseudoContentSynthesizer
from snapshot_renderer.parser.resource_inliner import ResourceInliner, image_to_data_uri
from snapshot_renderer.parser.style_extractor import StyleExtractor
from snapshot_renderer.utils.logger import get_logger
from snapshot_renderer.utils.mirror_soup import MirrorSoup, SelectorError

LOGGER = get_logger(__name__)

SHADOW_ATTRIBUTE = "data-snapshot-shadow"
PRINT_STYLE_SHEET_MARKER = "/* snapshot-print */"
INJECTED_STYLE_SHEET_MARKER = "/* snapshot-injected */"
AVOID_BREAK_STYLE = {"break-inside": "avoid", "page-break-inside": "avoid"}


async def call_hook(hook: Optional[Callable], *args) -> None:
    """Invoke a caller hook, awaiting it when it returns an awaitable."""
    if hook is None:
        return
    result = hook(*args)
    if inspect.isawaitable(result):
        await result


class StagingArea:
    """Off-screen staging container claimed for the duration of one capture.

    Each instance carries a fresh unique identifier. The container is released
    on every exit path; a failed build discards the partial mirror.
    """

    def __init__(self, host: Optional[StagingHost] = None, prefix: str = "snapshot-container") -> None:
        self.container_id = f"{prefix}-{uuid.uuid4().hex}"
        self.tree = SnapshotTree()
        self.acquired = False
        self.released = False
        self._host = host

    def __enter__(self) -> "StagingArea":
        if self._host is not None:
            self._host.attach(self.container_id)
        self.acquired = True
        LOGGER.debug("Acquired staging area %s", self.container_id)
        return self

    def __exit__(self, exc_type, exc, traceback) -> bool:
        try:
            if self._host is not None:
                self._host.detach(self.container_id)
        finally:
            self.released = True
            if exc_type is not None:
                self.tree = SnapshotTree()
            LOGGER.debug("Released staging area %s", self.container_id)
        return False


class SnapshotBuilder:
    """Walk a live tree and produce its detached mirror.

    The walk has two passes: the structure pass clones every live node into
    the arena and records the live-to-mirror correspondence table; the
    processing pass then visits each live node in document order, applies its
    style snapshot, synthesizes generated content, flattens shadow roots and
    runs the capture strategy of its category.
    """

    _STRATEGIES: Dict[NodeCategory, str] = {
        NodeCategory.TEXT: "_capture_nothing",
        NodeCategory.ELEMENT: "_capture_nothing",
        NodeCategory.CANVAS: "_capture_canvas",
        NodeCategory.VIDEO: "_capture_video",
        NodeCategory.TEXT_INPUT: "_capture_text_input",
        NodeCategory.TEXT_AREA: "_capture_text_area",
        NodeCategory.TOGGLE_INPUT: "_capture_toggle_input",
        NodeCategory.SELECT: "_capture_select",
        NodeCategory.VECTOR_GRAPHIC: "_capture_vector_graphic",
    }

    def __init__(
        self,
        style_provider: StyleProvider,
        options: Optional[CaptureOptions] = None,
        *,
        fetcher: Optional[ResourceFetcher] = None,
        font_source: Optional[FontSource] = None,
        staging_host: Optional[StagingHost] = None,
    ) -> None:
        self._options = options or CaptureOptions()
        self._extractor = StyleExtractor(style_provider, preserve_whitespace=self._options.preserve_whitespace)
        self._pseudo = PseudoContentSynthesizer(self._extractor, self._options.base_url)
        self._inliner = ResourceInliner(fetcher, self._options, font_source) if fetcher is not None else None
        self._font_source = font_source
        self._staging_host = staging_host
        self.last_staging_area: Optional[StagingArea] = None

    # ------------------------------------------------------------------
    # Public API
    async def build(self, root: Optional[VisualNode], checkpoint: Optional[Callable[[], None]] = None) -> SnapshotTree:
        """Return the finished mirror of ``root``."""
        if root is None or root.is_text:
            raise ConfigurationError("Capture target node not found")

        staging = StagingArea(self._staging_host)
        self.last_staging_area = staging
        with staging:
            tree = staging.tree
            tree.root = self._clone_structure(root, tree, parent=None)
            self._process(root, tree)
            self._apply_style_sheets(tree)
            if checkpoint is not None:
                checkpoint()

            if self._inliner is not None:
                await self._inliner.inline(tree)
            if checkpoint is not None:
                checkpoint()

            self._apply_page_break_markers(tree)
            await call_hook(self._options.on_clone, tree)
            return tree

    # ------------------------------------------------------------------
    # Structure pass
    def _clone_structure(self, live: VisualNode, tree: SnapshotTree, parent: Optional[int]) -> int:
        mirror = tree.add_node(
            live.tag,
            parent=parent,
            live=live,
            text=live.text if live.is_text else None,
            is_text=live.is_text,
            attributes=live.attributes,
        )
        if parent is not None:
            tree.attach(parent, mirror.index)
        for child in live.children:
            self._clone_structure(child, tree, mirror.index)
        return mirror.index

    # ------------------------------------------------------------------
    # Processing pass
    def _process(self, live: VisualNode, tree: SnapshotTree) -> None:
        mirror = tree.mirror_of(live)
        if mirror is None:
            return
        if not live.is_text:
            mirror.style = self._extractor.extract(live)
            self._pseudo.synthesize(live, tree, mirror)

        for child in live.children:
            self._process(child, tree)

        if live.shadow_root:
            self._flatten_shadow_root(live, tree, mirror)

        getattr(self, self._STRATEGIES[categorize(live)])(live, mirror, tree)

    def _flatten_shadow_root(self, host: VisualNode, tree: SnapshotTree, mirror: SnapshotNode) -> None:
        LOGGER.debug("Processing shadow root of <%s>", host.tag)
        container = tree.add_node("div", synthetic=SHADOW_CONTAINER, attributes={SHADOW_ATTRIBUTE: "true"})
        container.style = StyleSnapshot.from_pairs([("display", "contents")])
        tree.insert_before_trailing_pseudo(mirror.index, container.index)
        for child in host.shadow_root or []:
            self._clone_structure(child, tree, container.index)
            self._process(child, tree)

    # ------------------------------------------------------------------
    # Category strategies
    def _capture_nothing(self, live: VisualNode, mirror: SnapshotNode, tree: SnapshotTree) -> None:
        return None

    def _capture_canvas(self, live: VisualNode, mirror: SnapshotNode, tree: SnapshotTree) -> None:
        if live.bitmap is not None:
            mirror.bitmap = live.bitmap.copy()

    def _capture_video(self, live: VisualNode, mirror: SnapshotNode, tree: SnapshotTree) -> None:
        if live.bitmap is None:
            LOGGER.debug("Video without a current frame; keeping <video> as is")
            return
        mirror.tag = "img"
        mirror.attributes = {"src": image_to_data_uri(live.bitmap)}
        mirror.attributes.update({k: v for k, v in live.attributes.items() if k in ("id", "class")})

    def _capture_text_input(self, live: VisualNode, mirror: SnapshotNode, tree: SnapshotTree) -> None:
        if live.form_state is not None and live.form_state.value is not None:
            mirror.attributes["value"] = live.form_state.value

    def _capture_text_area(self, live: VisualNode, mirror: SnapshotNode, tree: SnapshotTree) -> None:
        if live.form_state is None or live.form_state.value is None:
            return
        text_children = [child for child in tree.live_children_of(mirror.index) if child.is_text]
        if text_children:
            text_children[0].text = live.form_state.value
            for extra in text_children[1:]:
                extra.text = ""
        else:
            mirror.text = live.form_state.value

    def _capture_toggle_input(self, live: VisualNode, mirror: SnapshotNode, tree: SnapshotTree) -> None:
        self._capture_text_input(live, mirror, tree)
        if live.form_state is None or live.form_state.checked is None:
            return
        if live.form_state.checked:
            mirror.attributes["checked"] = "checked"
        else:
            mirror.attributes.pop("checked", None)

    def _capture_select(self, live: VisualNode, mirror: SnapshotNode, tree: SnapshotTree) -> None:
        if live.form_state is None or live.form_state.value is None:
            return
        value = live.form_state.value
        for node in tree.iter_subtree(mirror.index):
            if node.is_text or node.tag.lower() != "option":
                continue
            option_value = node.attributes.get("value")
            if option_value is None:
                option_value = "".join(child.text or "" for child in tree.children_of(node.index) if child.is_text)
            if option_value.strip() == value:
                node.attributes["selected"] = "selected"
            else:
                node.attributes.pop("selected", None)

    def _capture_vector_graphic(self, live: VisualNode, mirror: SnapshotNode, tree: SnapshotTree) -> None:
        for descendant in live.iter_descendants():
            if descendant.is_text:
                continue
            target = tree.mirror_of(descendant)
            if target is None:
                continue
            computed = self._extractor.computed(descendant)
            paint = {prop: computed[prop].strip() for prop in VECTOR_PAINT_PROPERTIES if computed.get(prop)}
            if paint:
                target.style = target.style.with_overrides(paint)

    # ------------------------------------------------------------------
    # Post-build passes
    def _apply_style_sheets(self, tree: SnapshotTree) -> None:
        if self._options.use_print_styles and self._font_source is not None:
            rules = [rule for rule in self._font_source.print_rules() if rule]
            if rules:
                tree.style_sheets.append("\n".join([PRINT_STYLE_SHEET_MARKER, *rules]))
        if self._options.inject_css:
            tree.style_sheets.append("\n".join([INJECTED_STYLE_SHEET_MARKER, self._options.inject_css]))

    def _apply_page_break_markers(self, tree: SnapshotTree) -> None:
        if not self._options.avoid_break_inside:
            return
        view = MirrorSoup(tree)
        for selector in self._options.avoid_break_inside:
            try:
                found = view.select(selector)
            except SelectorError:
                LOGGER.info("Invalid selector: %s", selector)
                continue
            for node in found:
                node.style = node.style.with_overrides(AVOID_BREAK_STYLE)


def _check_strategies() -> None:
    missing = set(NodeCategory) - set(SnapshotBuilder._STRATEGIES)
    if missing:
        raise RuntimeError(f"No capture strategy for: {sorted(item.name for item in missing)}")


_check_strategies()
