"""Helpers for reading and rewriting CSS value text."""
from __future__ import annotations

import re
from typing import Dict, List, Optional
from urllib.parse import urljoin

URL_PATTERN = re.compile(r"""url\(\s*['"]?([^'"()]+)['"]?\s*\)""")


def is_data_uri(reference: Optional[str]) -> bool:
    return bool(reference) and reference.startswith("data:")


def is_blob_uri(reference: Optional[str]) -> bool:
    return bool(reference) and reference.startswith("blob:")


def is_embedded(reference: Optional[str]) -> bool:
    """True for references that are already self-contained or ephemeral."""
    return is_data_uri(reference) or is_blob_uri(reference)


def resolve_url(reference: Optional[str], base_url: str = "") -> Optional[str]:
    """Resolve ``reference`` against ``base_url``; embedded references are returned as-is."""
    if not reference or is_embedded(reference):
        return reference
    try:
        return urljoin(base_url, reference) if base_url else reference
    except ValueError:
        return reference


def extract_urls(css_value: Optional[str]) -> List[str]:
    """Return every ``url(...)`` target in ``css_value`` in order of appearance."""
    if not css_value or css_value == "none":
        return []
    return [match.group(1).strip() for match in URL_PATTERN.finditer(css_value)]


def replace_urls(css_value: str, replacements: Dict[str, str]) -> str:
    """Substitute ``url(...)`` targets found in ``replacements``; others are kept."""

    def substitute(match: "re.Match[str]") -> str:
        target = match.group(1).strip()
        if target in replacements:
            return f'url("{replacements[target]}")'
        return match.group(0)

    return URL_PATTERN.sub(substitute, css_value)


def parse_declarations(css_text: Optional[str]) -> Dict[str, str]:
    """Split an inline ``style`` attribute into a property mapping."""
    declarations: Dict[str, str] = {}
    if not css_text:
        return declarations
    for chunk in css_text.split(";"):
        if ":" not in chunk:
            continue
        name, value = chunk.split(":", 1)
        name = name.strip()
        if name:
            declarations[name] = value.strip()
    return declarations
