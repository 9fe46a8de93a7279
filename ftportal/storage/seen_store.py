"""
Incremental state: when each canonical url was first and last seen.

Stored as one JSON object on disk:

    {"https://.../topic-details/x": {"firstSeen": "...", "lastSeen": "..."}, ...}

A missing file is an empty store. A file that exists but does not decode to
that shape raises StateCorruptionError instead of being silently reset,
because a reset would re-enrich everything on the next incremental run.
Saves go through a temp file and os.replace so a crash never leaves a
half-written state file behind.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Dict, Iterable, Optional, Union

from ftportal.core.domain_models import SeenEntry
from ftportal.errors import StateCorruptionError

logger = logging.getLogger(__name__)


class SeenStore:
    """
    Map of canonical url -> SeenEntry.

    Usage:
        store = SeenStore.load("state/seen.json")
        if store.is_new(url): ...
        store.mark_seen(urls, run.run_ts)
        store.save()
    """

    def __init__(self, path: Union[str, Path], entries: Optional[Dict[str, SeenEntry]] = None):
        self.path = Path(path)
        self.entries: Dict[str, SeenEntry] = entries or {}

    @classmethod
    def load(cls, path: Union[str, Path]) -> "SeenStore":
        """
        Read the state file.

        Raises:
            StateCorruptionError: if the file exists but is not a valid state map
        """
        path = Path(path)
        if not path.exists():
            logger.info(f"No state file at {path}, starting empty")
            return cls(path)

        try:
            data = json.loads(path.read_text(encoding="utf-8") or "{}")
        except (ValueError, UnicodeDecodeError) as e:
            raise StateCorruptionError(f"State file {path} is not valid JSON: {e}") from e

        if not isinstance(data, dict):
            raise StateCorruptionError(f"State file {path} must hold an object, got {type(data).__name__}")

        entries = {}
        for url, value in data.items():
            if not isinstance(value, dict):
                raise StateCorruptionError(f"State entry for {url} is not an object")
            entries[url] = SeenEntry(
                url=url,
                first_seen=str(value.get("firstSeen") or ""),
                last_seen=str(value.get("lastSeen") or ""),
            )

        logger.info(f"Loaded {len(entries)} seen entries from {path}")
        return cls(path, entries)

    def __len__(self) -> int:
        return len(self.entries)

    def __contains__(self, url: str) -> bool:
        return url in self.entries

    def is_new(self, url: str) -> bool:
        return url not in self.entries

    def get(self, url: str) -> Optional[SeenEntry]:
        return self.entries.get(url)

    def mark_seen(self, urls: Iterable[str], timestamp: str) -> int:
        """
        Record urls as seen at timestamp.

        New urls get firstSeen = lastSeen = timestamp; known urls only move
        lastSeen. Returns how many urls were new.
        """
        added = 0
        for url in urls:
            entry = self.entries.get(url)
            if entry is None:
                self.entries[url] = SeenEntry(url=url, first_seen=timestamp, last_seen=timestamp)
                added += 1
            else:
                entry.last_seen = timestamp
        return added

    def to_dict(self) -> Dict[str, Dict[str, str]]:
        return {url: self.entries[url].to_dict() for url in sorted(self.entries)}

    def save(self) -> None:
        """Write the store atomically (temp file in the same dir + os.replace)."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(prefix=f".{self.path.name}.", suffix=".tmp", dir=str(self.path.parent))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(self.to_dict(), f, indent=2, ensure_ascii=False)
            os.replace(tmp, self.path)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise
        logger.info(f"Saved {len(self.entries)} seen entries to {self.path}")
