#!/usr/bin/env python3
"""extremes.py

Extreme-condition counts: how many future cells reach SNR values that were
rare in the past?

For each quantile q of a band (default 0.90, 0.91, ..., 1.00) the threshold is
the q-quantile of the reference (paleo) sample, and the count is the number
of comparison (future) values at or above it. Counts are reported relative to
the comparison sample and to the full realm cell count. Using a band rather
than one cutoff shows how sensitive the result is to the choice of quantile.
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence

import numpy as np
import pandas as pd

from paleosnr.regional.cells import cell_counts, eligible_realms, realm_names

logger = logging.getLogger(__name__)


def quantile_grid(start: float = 0.90, stop: float = 1.00, step: float = 0.01) -> np.ndarray:
    """Inclusive quantile band, rounded to 6 decimals."""
    if step <= 0:
        raise ValueError(f"step must be positive, got {step}")
    if not 0.0 <= start <= stop <= 1.0:
        raise ValueError(f"need 0 <= start <= stop <= 1, got start={start} stop={stop}")
    n = int(round((stop - start) / step)) + 1
    return np.minimum(np.round(start + step * np.arange(n), 6), stop)


def count_extremes(
    reference,
    comparison,
    quantiles: Optional[Sequence[float]] = None,
    total_cells: Optional[int] = None,
) -> pd.DataFrame:
    """Counts of comparison values at or above each reference quantile.

    Columns: quantile, threshold, n_extreme, pct_comparison, pct_region.
    `total_cells` defaults to the comparison sample size. An empty reference
    gives NaN thresholds and counts; a zero denominator gives a NaN percentage.
    """
    if quantiles is None:
        quantiles = quantile_grid()
    q = np.asarray(quantiles, dtype="float64")
    if ((q < 0) | (q > 1)).any():
        raise ValueError("quantiles must be within [0, 1]")

    ref = np.asarray(reference, dtype="float64").ravel()
    ref = ref[np.isfinite(ref)]
    cmp_ = np.asarray(comparison, dtype="float64").ravel()
    cmp_ = cmp_[np.isfinite(cmp_)]
    n_cmp = cmp_.size
    if total_cells is None:
        total_cells = n_cmp

    if ref.size == 0:
        thresholds = np.full(q.shape, np.nan)
        counts = np.full(q.shape, np.nan)
    else:
        thresholds = np.quantile(ref, q)
        counts = (cmp_[np.newaxis, :] >= thresholds[:, np.newaxis]).sum(axis=1).astype("float64")

    def _pct(denominator: int) -> np.ndarray:
        if denominator <= 0:
            return np.full(q.shape, np.nan)
        return 100.0 * counts / denominator

    table = pd.DataFrame({
        "quantile": q,
        "threshold": thresholds,
        "n_extreme": counts,
        "pct_comparison": _pct(n_cmp),
        "pct_region": _pct(int(total_cells)),
    })
    if ref.size:
        table["n_extreme"] = table["n_extreme"].astype(int)
    return table


def extremes_table(
    cells: pd.DataFrame,
    reference: str,
    scenarios: Sequence[str],
    *,
    min_cells: int = 30,
    quantiles: Optional[Sequence[float]] = None,
) -> pd.DataFrame:
    """Extreme counts for every eligible realm x comparison scenario (long form)."""
    comparisons = [s for s in scenarios if s != reference]
    counts = cell_counts(cells)
    names = realm_names(cells)
    realms = eligible_realms(cells, min_cells)

    parts = []
    for rid in realms:
        sub = cells[cells["realm_id"] == rid]
        for scenario in comparisons:
            part = count_extremes(sub[reference], sub[scenario], quantiles, total_cells=int(counts[rid]))
            part.insert(0, "n_cells", int(counts[rid]))
            part.insert(0, "scenario", scenario)
            part.insert(0, "realm", str(names.get(rid, "")))
            part.insert(0, "realm_id", int(rid))
            parts.append(part)

    if not parts:
        logger.warning("[EXTREMES] No realm has >= %d cells", min_cells)
        return pd.DataFrame(columns=[
            "realm_id", "realm", "scenario", "n_cells",
            "quantile", "threshold", "n_extreme", "pct_comparison", "pct_region",
        ])

    table = pd.concat(parts, ignore_index=True)
    logger.info("[EXTREMES] %d realms x %d scenarios x %d quantiles",
                len(realms), len(comparisons), len(table) // max(len(realms) * len(comparisons), 1))
    return table
