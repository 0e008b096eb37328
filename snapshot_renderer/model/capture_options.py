"""Configuration surface consumed by the capture pipeline."""
from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from typing import Any, Awaitable, Callable, Dict, Optional, Sequence, Tuple, Union

from snapshot_renderer.model.errors import ConfigurationError
from snapshot_renderer.utils.units import PAGE_SIZES

DEFAULT_BAND_HEIGHT_PX = 40
DEFAULT_PDF_BAND_HEIGHT_PX = 30
DEFAULT_PDF_MARGIN_PX = 40
DEFAULT_PDF_HEADER_TEXT = "{title}"
DEFAULT_PDF_FOOTER_TEXT = "Generated with snapshot_renderer"

PageSize = Union[str, Tuple[int, int]]
Hook = Callable[..., Union[None, Awaitable[None]]]


@dataclass(slots=True)
class HeaderFooterConfig:
    """Text band drawn above or below the captured content."""

    text: str = ""
    height: int = DEFAULT_BAND_HEIGHT_PX
    style: str = ""

    @classmethod
    def coerce(cls, value: Union[None, str, "HeaderFooterConfig", Dict[str, Any]]) -> Optional["HeaderFooterConfig"]:
        if value is None:
            return None
        if isinstance(value, HeaderFooterConfig):
            return value
        if isinstance(value, str):
            return cls(text=value)
        if isinstance(value, dict):
            return cls(
                text=value.get("text", ""),
                height=int(value.get("height") or DEFAULT_BAND_HEIGHT_PX),
                style=value.get("style", ""),
            )
        raise ConfigurationError(f"Unsupported header/footer value: {value!r}")


@dataclass(slots=True)
class CaptureWarning:
    """Advisory event reported through ``on_warning``; never raised."""

    type: str
    message: str
    details: Dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class CaptureOptions:
    """All knobs of a capture; every field is optional."""

    format: str = "png"
    quality: float = 0.95
    scale: float = 1.0
    background_color: Optional[str] = None

    inject_css: str = ""
    before_capture: Optional[Hook] = None

    use_print_styles: bool = False
    page_size: PageSize = "auto"

    header: Union[None, str, HeaderFooterConfig] = None
    footer: Union[None, str, HeaderFooterConfig] = None
    show_header: Optional[bool] = None
    show_footer: Optional[bool] = None

    avoid_break_inside: Sequence[str] = ()

    pdf_margin: int = DEFAULT_PDF_MARGIN_PX
    pdf_dpi: float = 2
    pdf_quality: float = 0.95

    use_cors: bool = True
    skip_fonts: bool = False
    skip_images: bool = False
    timeout: Optional[float] = 30.0
    preserve_whitespace: bool = True
    base_url: str = ""
    title: str = ""

    warn_3d: bool = True

    on_clone: Optional[Hook] = None
    on_progress: Optional[Callable[[float, str], None]] = None
    on_warning: Optional[Callable[["CaptureWarning"], None]] = None
    debug: bool = False

    def merged(self, **overrides: Any) -> "CaptureOptions":
        """Return a copy with ``overrides`` applied; ``None`` values are ignored."""
        known = {item.name for item in fields(self)}
        unknown = sorted(set(overrides) - known)
        if unknown:
            raise ConfigurationError(f"Unknown capture option(s): {', '.join(unknown)}")
        return replace(self, **{key: value for key, value in overrides.items() if value is not None})

    @property
    def header_config(self) -> Optional[HeaderFooterConfig]:
        return HeaderFooterConfig.coerce(self.header)

    @property
    def footer_config(self) -> Optional[HeaderFooterConfig]:
        return HeaderFooterConfig.coerce(self.footer)

    def resolve_page_size(self) -> Optional[Tuple[int, int]]:
        """Return the page size in pixels, or ``None`` for ``auto``."""
        size = self.page_size
        if isinstance(size, (tuple, list)):
            if len(size) != 2 or min(size) <= 0:
                raise ConfigurationError(f"Invalid page size: {size!r}")
            return int(size[0]), int(size[1])
        if isinstance(size, dict):
            return self.merged(page_size=(size.get("width", 0), size.get("height", 0))).resolve_page_size()
        if size == "auto":
            return None
        if size in PAGE_SIZES:
            return PAGE_SIZES[size]
        raise ConfigurationError(f"Unknown page size: {size!r}")

    def warn(self, warning_type: str, message: str, **details: Any) -> None:
        """Forward an advisory event to ``on_warning`` when configured."""
        if self.on_warning is not None:
            self.on_warning(CaptureWarning(type=warning_type, message=message, details=details))

    def progress(self, value: float, message: str) -> None:
        if self.on_progress is not None:
            self.on_progress(value, message)
