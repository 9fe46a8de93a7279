"""
Helpers shared by the funding and tender normalizers.
"""

from typing import Any

from bs4 import BeautifulSoup

from ftportal.core.utils import clean_text, textify


STATUS_LABELS = {
    "31094501": "Open",
    "31094502": "Forthcoming",
    "31094503": "Closed",
}


def map_status_label(value: Any) -> str:
    """Translate portal status codes to labels; other values pass through."""
    s = textify(value)
    for code, label in STATUS_LABELS.items():
        if code in s:
            return label
    return s


def html_to_text(value: Any) -> str:
    """Textify a value and strip any markup it carries."""
    s = textify(value)
    if "<" in s and ">" in s:
        s = BeautifulSoup(s, "lxml").get_text(" ", strip=True)
    return clean_text(s)


def dig(obj: Any, *keys: Any) -> Any:
    """
    Safe nested lookup: dig(d, "publisher", "name"), dig(d, "actions", 0, "x").

    Returns None as soon as a step is missing.
    """
    for key in keys:
        if isinstance(key, int):
            if not isinstance(obj, (list, tuple)) or len(obj) <= key:
                return None
            obj = obj[key]
        else:
            if not isinstance(obj, dict):
                return None
            obj = obj.get(key)
        if obj is None:
            return None
    return obj
