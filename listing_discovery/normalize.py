from __future__ import annotations

"""
Text normalisation helpers shared by the scorers and the catalog loader.

Public helpers:

* coerce_text(value) -> str
    Turns any field value (None, numbers, lists) into a string without raising.

* normalize_for_match(text) -> str
    Lowercase, trim and collapse whitespace. Queries and candidates always go
    through this before being compared.

* basic_clean(text) -> str
    Heavier clean used when loading catalog snapshots (HTML, unicode).
"""

import re
import unicodedata
from typing import Any

from bs4 import BeautifulSoup

_WS_RE = re.compile(r"\s+")


def coerce_text(value: Any) -> str:
    """Best-effort string view of a field value; ``None`` becomes ``""``."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, (list, tuple, set)):
        return " ".join(coerce_text(v) for v in value)
    try:
        return str(value)
    except Exception:
        return ""


def normalize_for_match(text: Any) -> str:
    return _WS_RE.sub(" ", coerce_text(text).lower().strip())


def _strip_html(text: str) -> str:
    if "<" not in text:
        return text
    soup = BeautifulSoup(text, "html.parser")
    return soup.get_text(" ", strip=True)


def _normalise_unicode(text: str) -> str:
    text = unicodedata.normalize("NFKC", text)
    text = text.replace("‘", "'").replace("’", "'")
    text = text.replace("“", '"').replace("”", '"')
    text = text.replace("–", "-").replace("—", "-")
    return text


def basic_clean(text: Any) -> str:
    """Light-weight clean for catalog fields.

    * strips HTML
    * normalises unicode and whitespace
    """
    text = coerce_text(text)
    if not text:
        return ""
    text = _strip_html(text)
    text = _normalise_unicode(text)
    return _WS_RE.sub(" ", text).strip()


def clamp_text_length(text: str, max_chars: int) -> str:
    text = coerce_text(text)
    return text[:max_chars] if len(text) > max_chars else text
