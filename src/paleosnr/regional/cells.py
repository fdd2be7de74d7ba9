#!/usr/bin/env python3
"""cells.py

Per-cell SNR table: layout and realm filters.

One row per raster cell inside a realm:

    cell, x, y, realm_id, realm, <scenario 1>, <scenario 2>, ...

Scenario columns hold rescaled SNR values (NaN where a scenario has no value).
"""

from __future__ import annotations

from pathlib import Path
from typing import List, Sequence

import pandas as pd

CELL_COLUMNS = ["cell", "x", "y", "realm_id", "realm"]


def read_cell_table(path: Path, scenarios: Sequence[str] = ()) -> pd.DataFrame:
    if not path.exists():
        raise SystemExit(f"Cell table not found: {path} (run: python -m paleosnr.regional extract-cells)")
    cells = pd.read_csv(path)
    missing = [c for c in list(CELL_COLUMNS) + list(scenarios) if c not in cells.columns]
    if missing:
        raise SystemExit(f"{path} lacks columns {missing}")
    return cells


def cell_counts(cells: pd.DataFrame) -> pd.Series:
    """Number of cells per realm_id."""
    return cells.groupby("realm_id").size()


def eligible_realms(cells: pd.DataFrame, min_cells: int) -> List[int]:
    """Realm ids with at least `min_cells` cells, ascending."""
    counts = cell_counts(cells)
    return sorted(int(r) for r in counts[counts >= min_cells].index)


def realm_names(cells: pd.DataFrame) -> dict:
    return cells.drop_duplicates("realm_id").set_index("realm_id")["realm"].to_dict()
