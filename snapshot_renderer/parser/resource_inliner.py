"""
Resource Inliner

Rewrites external resource references reachable from a snapshot tree (image
sources, background images, font-face sources) into self-contained ``data:``
URIs. Fetches run concurrently and each one is isolated: a failed fetch
leaves its reference unresolved and never aborts the capture.
"""
from __future__ import annotations

import asyncio
import base64
import io
import mimetypes
from contextlib import AbstractAsyncContextManager, AsyncExitStack
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import TYPE_CHECKING, Dict, Iterable, List, Mapping, Optional
from urllib.parse import urlparse

import httpx

if TYPE_CHECKING:
    from PIL import Image

from snapshot_renderer.model.capture_options import CaptureOptions
from snapshot_renderer.model.elements import InlinedResource, SnapshotTree
from snapshot_renderer.parser.host_interfaces import FontFaceRule, FontSource, ResourceFetcher
from snapshot_renderer.utils.css_text import extract_urls, is_embedded, replace_urls, resolve_url
from snapshot_renderer.utils.logger import get_logger

LOGGER = get_logger(__name__)

BACKGROUND_PROPERTIES = ("background-image", "background")
FONT_STYLE_SHEET_MARKER = "/* snapshot-fonts */"

FALLBACK_MEDIA_TYPES = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".bmp": "image/bmp",
    ".webp": "image/webp",
    ".avif": "image/avif",
    ".ico": "image/x-icon",
    ".svg": "image/svg+xml",
    ".woff": "font/woff",
    ".woff2": "font/woff2",
    ".ttf": "font/ttf",
    ".otf": "font/otf",
    ".eot": "application/vnd.ms-fontobject",
}


def guess_media_type(url: str) -> str:
    """Determine a MIME type from the path extension of ``url``."""
    ext = PurePosixPath(urlparse(url).path).suffix.lower()
    if ext in FALLBACK_MEDIA_TYPES:
        return FALLBACK_MEDIA_TYPES[ext]
    mime_type, _ = mimetypes.guess_type(url)
    return mime_type or "application/octet-stream"


def to_data_uri(payload: bytes, media_type: str) -> str:
    encoded = base64.b64encode(payload).decode("ascii")
    return f"data:{media_type};base64,{encoded}"


def image_to_data_uri(image: "Image.Image") -> str:
    """Encode a Pillow image as a PNG ``data:`` URI."""
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return to_data_uri(buffer.getvalue(), "image/png")


class HttpxResourceFetcher:
    """Fetch collaborator backed by ``httpx.AsyncClient``.

    With ``use_cors`` the request is sent without credentials; otherwise the
    configured cookies are attached. Used as an async context manager it keeps
    one client open for every fetch of the block; outside of one, each fetch
    opens its own client.
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        *,
        timeout: float = 15.0,
        cookies: Optional[Mapping[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.client = client
        self._owns_client = False
        self._timeout = timeout
        self._cookies = dict(cookies or {})
        self._transport = transport

    async def __aenter__(self) -> "HttpxResourceFetcher":
        if self.client is None:
            self.client = self._new_client()
            self._owns_client = True
        return self

    async def __aexit__(self, exc_type, exc, traceback) -> None:
        if self._owns_client:
            await self.client.aclose()
            self.client = None
            self._owns_client = False

    async def fetch(self, url: str, use_cors: bool = True) -> Optional[str]:
        if self.client is not None:
            return await self._fetch_with(self.client, url, use_cors)
        async with self._new_client() as client:
            return await self._fetch_with(client, url, use_cors)

    def _new_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout, follow_redirects=True, transport=self._transport)

    async def _fetch_with(self, client: httpx.AsyncClient, url: str, use_cors: bool) -> Optional[str]:
        headers = {}
        if not use_cors and self._cookies:
            headers["cookie"] = "; ".join(f"{name}={value}" for name, value in self._cookies.items())
        try:
            response = await client.get(url, headers=headers)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            LOGGER.debug("Failed to fetch %s: %s", url, exc)
            return None
        media_type = response.headers.get("content-type", "").split(";")[0].strip() or guess_media_type(url)
        return to_data_uri(response.content, media_type)


@dataclass(slots=True)
class InlineOutcome:
    """Result of one isolated fetch task."""

    reference: str
    resource: Optional[InlinedResource] = None

    @property
    def succeeded(self) -> bool:
        return self.resource is not None


class ResourceInliner:
    """Replace external references in a snapshot tree with embedded payloads."""

    def __init__(
        self,
        fetcher: ResourceFetcher,
        options: CaptureOptions,
        font_source: Optional[FontSource] = None,
    ) -> None:
        self._fetcher = fetcher
        self._options = options
        self._font_source = font_source

    async def inline(self, tree: SnapshotTree) -> Dict[str, InlinedResource]:
        """Inline images and font faces of the whole mirror with one concurrent fan-out."""
        self._options.progress(0.3, "Processing images...")
        image_references = self._image_references(tree)
        faces = await self._font_faces()
        font_references = [url for face in faces for url in self._face_urls(face) if not is_embedded(url)]

        resolved = await self._fetch_all([*image_references, *font_references], tree)
        self._apply_images(tree, resolved)
        self._options.progress(0.5, "Processing fonts...")
        self._apply_fonts(tree, faces, resolved)
        return resolved

    # ------------------------------------------------------------------
    # Collection
    def _image_references(self, tree: SnapshotTree) -> List[str]:
        if self._options.skip_images:
            return []
        LOGGER.debug("Processing images...")
        references = []
        for node in tree.iter_subtree():
            if node.is_text:
                continue
            if node.tag.lower() == "img":
                src = node.attributes.get("src")
                if src and not is_embedded(src):
                    references.append(src)
            for prop in BACKGROUND_PROPERTIES:
                references.extend(url for url in extract_urls(node.style.get(prop)) if not is_embedded(url))
        return references

    async def _font_faces(self) -> List[FontFaceRule]:
        if self._options.skip_fonts or self._font_source is None:
            return []
        LOGGER.debug("Processing fonts...")
        try:
            await self._font_source.ready()
        except Exception as exc:  # the readiness wait is advisory
            LOGGER.debug("Font readiness wait failed: %s", exc)
        return list(self._font_source.font_faces())

    # ------------------------------------------------------------------
    # Rewriting
    def _apply_images(self, tree: SnapshotTree, resolved: Mapping[str, InlinedResource]) -> None:
        if not resolved or self._options.skip_images:
            return
        for node in tree.iter_subtree():
            if node.is_text:
                continue
            if node.tag.lower() == "img":
                replacement = self._lookup(node.attributes.get("src"), resolved)
                if replacement:
                    node.attributes["src"] = replacement
            overrides = {}
            for prop in BACKGROUND_PROPERTIES:
                value = node.style.get(prop)
                mapping = {url: self._lookup(url, resolved) for url in extract_urls(value)}
                mapping = {url: data for url, data in mapping.items() if data}
                if mapping:
                    overrides[prop] = replace_urls(value, mapping)
            if overrides:
                node.style = node.style.with_overrides(overrides)

    def _apply_fonts(
        self, tree: SnapshotTree, faces: List[FontFaceRule], resolved: Mapping[str, InlinedResource]
    ) -> List[str]:
        if not faces:
            return []
        rules = []
        for face in faces:
            mapping = {url: self._lookup(url, resolved) for url in self._face_urls(face)}
            mapping = {url: data for url, data in mapping.items() if data}
            rules.append(replace_urls(face.css_text, mapping) if mapping else face.css_text)
        tree.style_sheets.insert(0, "\n".join([FONT_STYLE_SHEET_MARKER, *rules]))
        return rules

    # ------------------------------------------------------------------
    # Fetch fan-out
    async def _fetch_all(self, references: Iterable[str], tree: SnapshotTree) -> Dict[str, InlinedResource]:
        absolute = []
        for reference in references:
            url = resolve_url(reference, self._options.base_url)
            if url and url not in absolute and url not in tree.resources:
                absolute.append(url)
        if not absolute:
            return dict(tree.resources)

        async with AsyncExitStack() as stack:
            if isinstance(self._fetcher, AbstractAsyncContextManager):
                await stack.enter_async_context(self._fetcher)
            outcomes = await asyncio.gather(*(self._fetch_one(url) for url in absolute))
        for outcome in outcomes:
            if outcome.succeeded:
                tree.resources[outcome.reference] = outcome.resource
        return dict(tree.resources)

    async def _fetch_one(self, url: str) -> InlineOutcome:
        try:
            data_uri = await self._fetcher.fetch(url, self._options.use_cors)
        except Exception as exc:  # one failed fetch must not cancel its siblings
            LOGGER.warning("Failed to inline %s: %s", url, exc)
            data_uri = None
        if not data_uri:
            self._options.warn("RESOURCE_SKIPPED", f"Could not inline {url}", url=url)
            return InlineOutcome(reference=url)
        return InlineOutcome(reference=url, resource=InlinedResource(reference=url, data_uri=data_uri))

    def _lookup(self, reference: Optional[str], resolved: Mapping[str, InlinedResource]) -> Optional[str]:
        if not reference or is_embedded(reference):
            return None
        resource = resolved.get(resolve_url(reference, self._options.base_url) or "")
        return resource.data_uri if resource else None

    @staticmethod
    def _face_urls(face: FontFaceRule) -> List[str]:
        return extract_urls(face.src or face.css_text)
