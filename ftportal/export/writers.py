"""
Output writers.

Per source:
- {name}-list.csv / {name}-list.json / {name}-list.html  harvested references
- {name}_enriched.csv / {name}_enriched.json             merged enriched rows
- {name}_raw.jsonl                                       raw payloads of this run

Plus index.html linking everything with row counts. CSVs are written with
pandas, every field quoted, so rows read back as strings reproduce the same
bytes.
"""

import csv
import html
import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Sequence, Union

import pandas as pd

from ftportal.core.domain_models import ItemReference

logger = logging.getLogger(__name__)


class OutputWriter:
    """
    Writes all run outputs under one directory.

    Usage:
        writer = OutputWriter("output", run.run_ts)
        writer.write_list("funding", items, "Funding - Calls for proposals")
        writer.write_enriched("funding", FundingRecord.header(), rows)
        writer.write_index(counts)
    """

    def __init__(self, output_dir: Union[str, Path], run_ts: str):
        self.output_dir = Path(output_dir)
        self.run_ts = run_ts
        self.output_dir.mkdir(parents=True, exist_ok=True)

    def path(self, filename: str) -> Path:
        return self.output_dir / filename

    @staticmethod
    def list_names(name: str) -> Dict[str, str]:
        return {
            "csv": f"{name}-list.csv",
            "json": f"{name}-list.json",
            "html": f"{name}-list.html",
        }

    @staticmethod
    def enriched_names(name: str) -> Dict[str, str]:
        return {
            "csv": f"{name}_enriched.csv",
            "json": f"{name}_enriched.json",
            "raw": f"{name}_raw.jsonl",
        }

    def _write_csv(self, path: Path, header: Sequence[str], rows: Sequence[Dict[str, Any]]) -> None:
        df = pd.DataFrame(list(rows), columns=list(header))
        df = df.fillna("")
        df.to_csv(path, index=False, quoting=csv.QUOTE_ALL, encoding="utf-8", lineterminator="\n")

    def _write_json(self, path: Path, data: Any) -> None:
        with open(path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
            f.write("\n")

    def write_list(self, name: str, items: Sequence[ItemReference], human_title: str = "") -> None:
        """Harvested references as CSV, JSON ({generatedAt, items}) and an HTML list."""
        names = self.list_names(name)
        rows = [{"title": it.title, "url": it.url} for it in items]

        self._write_csv(self.path(names["csv"]), ["title", "url"], rows)
        self._write_json(self.path(names["json"]), {"generatedAt": self.run_ts, "items": rows})

        lis = "\n".join(
            f'  <li><a href="{html.escape(r["url"])}" target="_blank" rel="noopener noreferrer">'
            f'{html.escape(r["title"])}</a></li>'
            for r in rows
        )
        page = (
            f"<!-- generated {self.run_ts} -->\n"
            f"<h2>{html.escape(human_title or name)}</h2>\n"
            f"<ul>\n{lis}\n</ul>\n"
        )
        self.path(names["html"]).write_text(page, encoding="utf-8")
        logger.info(f"Wrote {len(rows)} {name} list items to {self.output_dir}")

    def write_enriched(self, name: str, header: Sequence[str], rows: Sequence[Dict[str, str]]) -> None:
        """Enriched table as CSV (header even when empty) and JSON array."""
        names = self.enriched_names(name)
        self._write_csv(self.path(names["csv"]), header, rows)
        self._write_json(self.path(names["json"]), [{h: r.get(h, "") for h in header} for r in rows])
        logger.info(f"Wrote {len(rows)} {name} enriched rows")

    def write_raw(self, name: str, raws: Sequence[Dict[str, Any]]) -> None:
        """One JSON line per item enriched in this run."""
        path = self.path(self.enriched_names(name)["raw"])
        with open(path, "w", encoding="utf-8") as f:
            for raw in raws:
                f.write(json.dumps(raw, ensure_ascii=False, default=str))
                f.write("\n")

    def write_index(self, counts: Dict[str, Dict[str, int]], titles: Optional[Dict[str, str]] = None) -> None:
        """
        index.html linking each source's outputs.

        Args:
            counts: {source: {"list": n, "enriched": m}}
            titles: Optional display titles per source
        """
        titles = titles or {}
        lines = [
            f"<!-- generated {self.run_ts} -->",
            "<h1>EU Funding &amp; Tenders - Extractions</h1>",
            "<ul>",
        ]
        for name, c in counts.items():
            label = html.escape(titles.get(name) or name.capitalize())
            ln, en = self.list_names(name), self.enriched_names(name)
            lines.append(
                f'  <li>{label} list: <a href="{ln["html"]}">HTML</a> / <a href="{ln["csv"]}">CSV</a>'
                f' / <a href="{ln["json"]}">JSON</a> - <strong>{c.get("list", 0)}</strong> items</li>'
            )
            lines.append(
                f'  <li>{label} enriched: <a href="{en["csv"]}">CSV</a> / <a href="{en["json"]}">JSON</a>'
                f' - <strong>{c.get("enriched", 0)}</strong> rows</li>'
            )
        lines.append("</ul>")
        self.path("index.html").write_text("\n".join(lines) + "\n", encoding="utf-8")

    def count_lines(self, filename: str) -> int:
        """Physical line count of an output file (0 if missing)."""
        path = self.path(filename)
        if not path.exists():
            return 0
        with open(path, encoding="utf-8") as f:
            return sum(1 for _ in f)
