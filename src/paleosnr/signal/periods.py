#!/usr/bin/env python3
"""periods.py

Warming-rate threshold and period selection.

The threshold is a high quantile (default 95th percentile) of a control
distribution of warming rates; the selected periods are the reference
segments whose rate meets or exceeds it. Those periods are what
paleosnr.signal.aggregate averages into the paleo SNR rasters.

Called by:
  python -m paleosnr.signal select-periods
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Sequence, Union

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)

ArrayLike = Union[Sequence[float], np.ndarray, pd.Series]


def warming_threshold(control: ArrayLike, quantile: float = 0.95) -> float:
    """Quantile of the control warming rates (NaN ignored; NaN if nothing left)."""
    if not 0.0 <= quantile <= 1.0:
        raise ValueError(f"quantile must be within [0, 1], got {quantile}")
    values = np.asarray(control, dtype=float)
    values = values[np.isfinite(values)]
    if values.size == 0:
        return float("nan")
    return float(np.quantile(values, quantile))


def select_periods(segments: pd.DataFrame, threshold: float, rate_col: str = "rate") -> pd.DataFrame:
    """Segments whose rate is >= threshold, original order and columns kept."""
    if rate_col not in segments.columns:
        raise ValueError(f"segments table has no '{rate_col}' column: {list(segments.columns)}")

    rates = pd.to_numeric(segments[rate_col], errors="coerce")
    if np.isnan(threshold):
        keep = pd.Series(False, index=segments.index)
    else:
        # NaN rates compare False, so they never pass
        keep = rates >= threshold
    selected = segments.loc[keep].copy()

    if selected.empty:
        logger.warning("[PERIODS] No segment reaches the threshold (%s)", threshold)
    else:
        logger.info("[PERIODS] %d of %d segments at or above %.4g", len(selected), len(segments), threshold)
    return selected


def _read_csv(path: Path, label_cols: Sequence[str] = ()) -> pd.DataFrame:
    """Read a table, keeping `label_cols` as text so "0020" stays "0020"."""
    if not path.exists():
        raise SystemExit(f"Table not found: {path}")
    header = pd.read_csv(path, nrows=0).columns
    return pd.read_csv(path, dtype={c: str for c in label_cols if c in header})


def select_periods_from_files(
    *,
    segments_csv: Path,
    control_csv: Path,
    out_csv: Path,
    rate_col: str = "rate",
    control_col: str = "rate",
    period_col: str = "period",
    quantile: float = 0.95,
) -> pd.DataFrame:
    """Read segment and control tables, select periods, write the selection.

    The output carries the threshold in a `threshold` column so that later
    steps (and readers of the CSV) see which cutoff produced it.
    """
    segments = _read_csv(segments_csv, label_cols=[period_col])
    control = _read_csv(control_csv)
    if control_col not in control.columns:
        raise SystemExit(f"{control_csv} has no '{control_col}' column")
    if rate_col not in segments.columns:
        raise SystemExit(f"{segments_csv} has no '{rate_col}' column")

    threshold = warming_threshold(control[control_col], quantile=quantile)
    logger.info("[PERIODS] q%.2f of %d control rates = %.4g", quantile, len(control), threshold)

    selected = select_periods(segments, threshold, rate_col=rate_col)
    selected["threshold"] = threshold

    out_csv.parent.mkdir(parents=True, exist_ok=True)
    selected.to_csv(out_csv, index=False)
    logger.info("[PERIODS] Wrote %d periods -> %s", len(selected), out_csv)
    return selected


def read_selected_periods(path: Path, period_col: str = "period") -> list:
    """Period labels from a select-periods output table."""
    table = _read_csv(path, label_cols=[period_col])
    if period_col not in table.columns:
        raise SystemExit(f"{path} has no '{period_col}' column")
    labels = table[period_col]
    if labels.isna().any():
        raise SystemExit(f"{path} has {int(labels.isna().sum())} rows without a period label")
    return [str(p).strip() for p in labels.tolist()]
