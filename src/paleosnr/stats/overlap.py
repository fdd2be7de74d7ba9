#!/usr/bin/env python3
"""overlap.py

How far has a future scenario's SNR distribution moved away from the paleo
one, realm by realm?

Two measures per realm x scenario pair:
- overlap coefficient: shared area of two Gaussian kernel density estimates
  (rule-of-thumb bandwidth), both evaluated on one grid spanning the pooled
  range and normalized to sum to one on it. 1 = identical, 0 = disjoint.
- two-sample Kolmogorov-Smirnov test (two-sided).

KS p-values are corrected across all realm x scenario results with
Benjamini-Yekutieli, which holds under arbitrary dependence between tests.

Degenerate samples (empty, or zero variance for the density) give NaN
rather than raising.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, replace
from typing import List, Sequence, Tuple

import numpy as np
import pandas as pd
from scipy.stats import gaussian_kde, ks_2samp
from statsmodels.stats.multitest import multipletests

from paleosnr.regional.cells import eligible_realms, realm_names

logger = logging.getLogger(__name__)

DEFAULT_NBINS = 1024


@dataclass(frozen=True)
class OverlapRecord:
    realm_id: int
    realm: str
    reference: str
    scenario: str
    n_reference: int
    n_scenario: int
    overlap: float
    ks_statistic: float
    p_value: float
    p_adjusted: float = float("nan")
    significant: bool = False
    marker: str = "NA"


def _finite(x) -> np.ndarray:
    x = np.asarray(x, dtype="float64").ravel()
    return x[np.isfinite(x)]


def bw_nrd0(x) -> float:
    """Silverman's rule-of-thumb bandwidth, 0.9 * min(sd, IQR/1.34) * n^-1/5."""
    x = _finite(x)
    if x.size < 2:
        raise ValueError("need at least 2 data points")
    hi = float(np.std(x, ddof=1))
    q75, q25 = np.percentile(x, [75, 25])
    lo = min(hi, float(q75 - q25) / 1.34)
    if not lo:
        lo = hi or abs(float(x[0])) or 1.0
    return 0.9 * lo * x.size ** -0.2


def _density(x: np.ndarray, grid: np.ndarray) -> np.ndarray:
    # gaussian_kde scales its factor by the sample sd, so pass bw / sd
    kde = gaussian_kde(x, bw_method=bw_nrd0(x) / np.std(x, ddof=1))
    d = kde(grid)
    return d / d.sum()


def density_overlap(a, b, nbins: int = DEFAULT_NBINS) -> float:
    """Overlap coefficient of the kernel densities of two samples, in [0, 1]."""
    if nbins < 2:
        raise ValueError(f"nbins must be >= 2, got {nbins}")
    a = _finite(a)
    b = _finite(b)
    if a.size < 2 or b.size < 2 or np.ptp(a) == 0 or np.ptp(b) == 0:
        return float("nan")

    grid = np.linspace(min(a.min(), b.min()), max(a.max(), b.max()), nbins)
    shared = np.minimum(_density(a, grid), _density(b, grid)).sum()
    return float(np.clip(shared, 0.0, 1.0))


def ks_test(a, b) -> Tuple[float, float]:
    """Two-sided two-sample KS statistic and p-value (NaN pair if a sample is empty)."""
    a = _finite(a)
    b = _finite(b)
    if a.size == 0 or b.size == 0:
        return float("nan"), float("nan")
    res = ks_2samp(a, b)
    return float(res.statistic), float(res.pvalue)


def adjust_pvalues(p, method: str = "fdr_by", alpha: float = 0.05) -> Tuple[np.ndarray, np.ndarray]:
    """Multiple-comparison correction over the finite entries of `p`.

    NaN entries stay NaN, are not significant, and do not count toward the
    family size. Returns (adjusted p-values, significance flags).
    """
    p = np.asarray(p, dtype="float64")
    adjusted = np.full(p.shape, np.nan)
    significant = np.zeros(p.shape, dtype=bool)
    ok = np.isfinite(p)
    if ok.any():
        reject, corrected, _, _ = multipletests(p[ok], alpha=alpha, method=method)
        adjusted[ok] = corrected
        significant[ok] = reject
    return adjusted, significant


def significance_marker(p: float) -> str:
    if not np.isfinite(p):
        return "NA"
    if p < 0.001:
        return "***"
    if p < 0.01:
        return "**"
    if p < 0.05:
        return "*"
    return "ns"


def overlap_table(
    cells: pd.DataFrame,
    reference: str,
    scenarios: Sequence[str],
    *,
    min_cells: int = 30,
    nbins: int = DEFAULT_NBINS,
    method: str = "fdr_by",
    alpha: float = 0.05,
) -> pd.DataFrame:
    """Overlap and KS results for every eligible realm x comparison scenario.

    Realms with fewer than `min_cells` cells are left out. The p-value
    correction runs over the whole table.
    """
    comparisons = [s for s in scenarios if s != reference]
    names = realm_names(cells)
    realms = eligible_realms(cells, min_cells)
    logger.info("[OVERLAP] %d realms with >= %d cells; %d comparison scenarios",
                len(realms), min_cells, len(comparisons))

    records: List[OverlapRecord] = []
    for rid in realms:
        sub = cells[cells["realm_id"] == rid]
        ref = _finite(sub[reference])
        for scenario in comparisons:
            cmp_ = _finite(sub[scenario])
            ks_stat, p = ks_test(ref, cmp_)
            records.append(OverlapRecord(
                realm_id=int(rid),
                realm=str(names.get(rid, "")),
                reference=reference,
                scenario=scenario,
                n_reference=int(ref.size),
                n_scenario=int(cmp_.size),
                overlap=density_overlap(ref, cmp_, nbins=nbins),
                ks_statistic=ks_stat,
                p_value=p,
            ))

    adjusted, significant = adjust_pvalues([r.p_value for r in records], method=method, alpha=alpha)
    records = [
        replace(r, p_adjusted=float(pa), significant=bool(sig), marker=significance_marker(pa))
        for r, pa, sig in zip(records, adjusted, significant)
    ]

    columns = list(OverlapRecord.__dataclass_fields__)
    table = pd.DataFrame([asdict(r) for r in records], columns=columns)
    logger.info("[OVERLAP] %d comparisons, %d significant after %s", len(table), int(table["significant"].sum()), method)
    return table
