"""Helper functions to work with XML namespaces and serialization."""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional
from xml.etree import ElementTree as ET


@dataclass(frozen=True)
class Namespaces:
    """Namespace URIs used by the vector compositor."""

    XHTML: str = None  # type: ignore[assignment]
    SVG: str = None  # type: ignore[assignment]
    XLINK: str = None  # type: ignore[assignment]
    XML: str = None  # type: ignore[assignment]

    def __post_init__(self) -> None:  # pragma: no cover
        raise RuntimeError("Namespaces should not be instantiated")


Namespaces.XHTML = "http://www.w3.org/1999/xhtml"  # type: ignore[attr-defined]
Namespaces.SVG = "http://www.w3.org/2000/svg"  # type: ignore[attr-defined]
Namespaces.XLINK = "http://www.w3.org/1999/xlink"  # type: ignore[attr-defined]
Namespaces.XML = "http://www.w3.org/XML/1998/namespace"  # type: ignore[attr-defined]

ET.register_namespace("xlink", Namespaces.XLINK)

# Attribute prefixes that survive serialization; any other prefix is dropped.
ATTRIBUTE_PREFIXES = {"xlink": Namespaces.XLINK, "xml": Namespaces.XML}
XML_NAME = re.compile(r"^[A-Za-z_][\w.\-]*$")

# Elements that must serialize without a closing tag in XHTML.
VOID_ELEMENTS = frozenset(
    {"area", "base", "br", "col", "embed", "hr", "img", "input", "link", "meta", "source", "track", "wbr"}
)


def qualified_attribute(name: str) -> Optional[str]:
    """Map an attribute name to its ElementTree key, or ``None`` if XML cannot express it.

    ``xlink:href`` becomes ``{http://www.w3.org/1999/xlink}href``; names such as
    ``@click`` or ``v-on:click`` are rejected.
    """
    prefix, separator, local = name.partition(":")
    if not separator:
        return name if XML_NAME.match(name) else None
    namespace = ATTRIBUTE_PREFIXES.get(prefix.lower())
    if namespace is None or not XML_NAME.match(local):
        return None
    return f"{{{namespace}}}{local}"


def to_markup(element: ET.Element) -> str:
    """Serialize an element tree to a unicode string without an XML declaration."""
    return ET.tostring(element, encoding="unicode", short_empty_elements=True)


def ensure_xhtml_namespace(markup: str) -> str:
    """Guarantee the XHTML namespace declaration on the root element of ``markup``."""
    declaration = f'xmlns="{Namespaces.XHTML}"'
    if declaration in markup:
        return markup
    stripped = markup.lstrip()
    if not stripped.startswith("<"):
        return markup
    end_of_name = 1
    while end_of_name < len(stripped) and stripped[end_of_name] not in " />":
        end_of_name += 1
    return f"{stripped[:end_of_name]} {declaration}{stripped[end_of_name:]}"
