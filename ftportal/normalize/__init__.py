"""
Normalizers turning structured payloads and rendered pages into flat records.
"""

from typing import Callable, Dict

from .funding import normalize_funding
from .tenders import normalize_tender

NORMALIZERS: Dict[str, Callable] = {
    "funding": normalize_funding,
    "tenders": normalize_tender,
}


def normalizer_for(kind: str) -> Callable:
    """Normalizer for a source kind; raises KeyError for unknown kinds."""
    return NORMALIZERS[kind]


__all__ = ["NORMALIZERS", "normalizer_for", "normalize_funding", "normalize_tender"]
