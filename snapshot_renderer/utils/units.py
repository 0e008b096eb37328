"""Unit conversion helpers and page size presets."""
from __future__ import annotations

from typing import Dict, Tuple

# Page sizes in CSS pixels at 96 DPI.
PAGE_SIZES: Dict[str, Tuple[int, int]] = {
    "A4": (794, 1123),
    "A3": (1123, 1587),
    "Letter": (816, 1056),
    "Legal": (816, 1344),
    "Tabloid": (1056, 1632),
}


def get_page_sizes() -> Dict[str, Tuple[int, int]]:
    """Return a copy of the named page size presets."""
    return dict(PAGE_SIZES)


def parse_px(value: str | None, default: float = 0.0) -> float:
    """Parse a ``12px``/``12`` length into a float, returning ``default`` otherwise."""
    if not value:
        return default
    text = value.strip()
    if text.endswith("px"):
        text = text[:-2]
    try:
        return float(text)
    except ValueError:
        return default


def format_number(value: float) -> str:
    """Render a number without a trailing ``.0`` for compact textual output."""
    if float(value).is_integer():
        return str(int(value))
    return f"{value:.4f}".rstrip("0").rstrip(".")
