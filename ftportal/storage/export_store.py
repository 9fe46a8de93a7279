"""
Prior enriched exports: loading and merging.

Merge rule for a run:

    final = [prior rows whose key was not re-enriched, in prior order]
          + [rows enriched this run, in enrichment order]

so a repeat run with nothing new reproduces the previous table exactly.
"""

import logging
from pathlib import Path
from typing import Dict, List, Sequence, Union

import pandas as pd

logger = logging.getLogger(__name__)

Row = Dict[str, str]


def load_prior_rows(path: Union[str, Path], header: Sequence[str]) -> List[Row]:
    """
    Read a previously written enriched CSV.

    Every value is read back as a string ("" for blanks). Columns missing
    from the file are filled with "", unknown columns are dropped.
    Returns [] when the file does not exist or is empty.
    """
    path = Path(path)
    if not path.exists() or path.stat().st_size == 0:
        return []

    try:
        df = pd.read_csv(path, dtype=str, keep_default_na=False)
    except pd.errors.EmptyDataError:
        return []

    df = df.reindex(columns=list(header), fill_value="")
    rows = df.to_dict(orient="records")
    logger.info(f"Loaded {len(rows)} prior rows from {path}")
    return rows


def merge_rows(prior: Sequence[Row], updated: Sequence[Row], key: str) -> List[Row]:
    """
    Replace re-enriched rows and keep the rest.

    Args:
        prior: Rows from the previous export
        updated: Rows enriched in this run
        key: Column holding the canonical url

    Returns:
        Merged rows; prior order first, updated rows appended
    """
    updated_keys = {r.get(key, "") for r in updated}
    kept = [r for r in prior if r.get(key, "") not in updated_keys]
    return kept + list(updated)


def keys_of(rows: Sequence[Row], key: str) -> set:
    return {r.get(key, "") for r in rows if r.get(key)}
