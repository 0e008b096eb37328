"""Common helpers shared by renderer implementations."""
from __future__ import annotations

import re
from datetime import datetime
from typing import Dict, Optional

MARKUP_PATTERN = re.compile(r"<[^>]*>")
TEMPLATE_PATTERN = re.compile(r"\{(page|pages|date|time|datetime|year|title)\}")


def template_values(page: int, pages: int, title: str = "", now: Optional[datetime] = None) -> Dict[str, str]:
    """Values substituted into header/footer templates."""
    now = now or datetime.now()
    return {
        "page": str(page),
        "pages": str(pages),
        "date": now.strftime("%Y-%m-%d"),
        "time": now.strftime("%H:%M:%S"),
        "datetime": now.strftime("%Y-%m-%d %H:%M:%S"),
        "year": str(now.year),
        "title": title,
    }


def process_template(text: Optional[str], page: int = 1, pages: int = 1, title: str = "", now: Optional[datetime] = None) -> str:
    """Substitute ``{page} {pages} {date} {time} {datetime} {year} {title}`` in one pass."""
    if not text:
        return ""
    values = template_values(page, pages, title, now)
    return TEMPLATE_PATTERN.sub(lambda match: values[match.group(1)], text)


def strip_markup(text: str) -> str:
    return MARKUP_PATTERN.sub("", text)


def escape_pdf_text(text: str) -> str:
    """Escape backslashes and parentheses for a PDF string literal."""
    return text.replace("\\", "\\\\").replace("(", "\\(").replace(")", "\\)")
