#!/usr/bin/env python3
"""niche.py

Niche overlap between SNR surfaces.

Each surface is normalized to sum to one over the cells where both compared
layers have a value, then compared with

    D = 1 - 0.5 * sum(|px - py|)                  (Schoener's D)
    I = 1 - 0.5 * sum((sqrt(px) - sqrt(py))**2)   (Hellinger-based I)

as in dismo's nicheOverlap. Values must be non-negative (rescaled SNR is).
"""

from __future__ import annotations

from itertools import combinations
from typing import Mapping

import numpy as np
import pandas as pd

STATS = ("D", "I")


def niche_overlap(x, y, stat: str = "I") -> float:
    """D or I overlap of two equally shaped non-negative surfaces."""
    if stat not in STATS:
        raise ValueError(f"stat must be one of {STATS}, got {stat!r}")
    x = np.asarray(x, dtype="float64").ravel()
    y = np.asarray(y, dtype="float64").ravel()
    if x.shape != y.shape:
        raise ValueError(f"surfaces differ in size: {x.size} vs {y.size}")

    mask = np.isfinite(x) & np.isfinite(y)
    x, y = x[mask], y[mask]
    if x.size and min(x.min(), y.min()) < 0:
        raise ValueError("all values must be >= 0")

    sx, sy = x.sum(), y.sum()
    if sx == 0 or sy == 0:
        return float("nan")
    px, py = x / sx, y / sy

    if stat == "D":
        return float(1.0 - 0.5 * np.abs(px - py).sum())
    return float(1.0 - 0.5 * ((np.sqrt(px) - np.sqrt(py)) ** 2).sum())


def pairwise_niche_overlap(layers: Mapping[str, np.ndarray], stat: str = "I") -> pd.DataFrame:
    """Lower-triangular overlap matrix between named layers (NaN elsewhere)."""
    names = list(layers)
    if len(names) < 2:
        raise ValueError("need at least two layers")
    ov = pd.DataFrame(np.nan, index=names, columns=names)
    for a, b in combinations(names, 2):
        # row = later layer, column = earlier layer
        ov.loc[b, a] = niche_overlap(layers[a], layers[b], stat=stat)
    return ov
