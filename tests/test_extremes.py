#!/usr/bin/env python3

from __future__ import annotations

import sys
from pathlib import Path

import numpy as np
import pandas as pd
import pytest

# Ensure we can import from src/ without installing the package
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
sys.path.insert(0, str(SRC))

from paleosnr.stats import extremes as ex


def test_quantile_grid_default_band():
    q = ex.quantile_grid()
    assert len(q) == 11
    assert q[0] == pytest.approx(0.90)
    assert q[-1] == 1.0
    assert 0.95 in q.tolist()


def test_quantile_grid_rejects_bad_bounds():
    with pytest.raises(ValueError):
        ex.quantile_grid(0.5, 1.2, 0.1)
    with pytest.raises(ValueError):
        ex.quantile_grid(0.9, 1.0, 0.0)


def test_counts_at_or_above_reference_quantiles():
    past = np.arange(1.0, 11.0)          # 1 .. 10
    future = np.array([5.0, 9.5, 10.0, 12.0, np.nan])
    table = ex.count_extremes(past, future, quantiles=[0.5, 1.0], total_cells=8)

    # q0.5 of 1..10 is 5.5 -> 9.5, 10, 12
    assert table.loc[0, "threshold"] == pytest.approx(5.5)
    assert table.loc[0, "n_extreme"] == 3
    assert table.loc[0, "pct_comparison"] == pytest.approx(75.0)
    assert table.loc[0, "pct_region"] == pytest.approx(37.5)

    # q1.0 is the max (10) -> inclusive: 10, 12
    assert table.loc[1, "n_extreme"] == 2


def test_count_at_100th_percentile_never_exceeds_comparison_size():
    rng = np.random.default_rng(0)
    for _ in range(20):
        past = rng.normal(0, 1, 40)
        future = rng.normal(rng.uniform(-1, 3), 1, 25)
        table = ex.count_extremes(past, future, quantiles=[1.0])
        assert table.loc[0, "n_extreme"] <= 25


def test_default_total_cells_is_comparison_size():
    table = ex.count_extremes([0.0, 1.0], [2.0, 3.0], quantiles=[0.9])
    assert table.loc[0, "pct_region"] == table.loc[0, "pct_comparison"] == 100.0


def test_empty_reference_gives_nan():
    table = ex.count_extremes([], [1.0, 2.0], quantiles=[0.9, 1.0])
    assert table["threshold"].isna().all()
    assert table["n_extreme"].isna().all()


def test_extremes_table_long_form():
    n = 40
    cells = pd.DataFrame({
        "cell": np.arange(n + 3),
        "x": 0.0,
        "y": 0.0,
        "realm_id": [1] * n + [2] * 3,
        "realm": ["Realm 01"] * n + ["Realm 02"] * 3,
        "paleo": np.linspace(0, 0.5, n + 3),
        "rcp45": np.linspace(0.4, 0.9, n + 3),
        "rcp85": np.linspace(0.6, 1.0, n + 3),
    })
    table = ex.extremes_table(cells, "paleo", ["paleo", "rcp45", "rcp85"], min_cells=30)
    assert set(table["realm_id"]) == {1}
    assert len(table) == 2 * 11
    assert (table["n_cells"] == n).all()
    rcp85 = table[table["scenario"] == "rcp85"]
    # every rcp85 value is above the paleo maximum of the realm
    assert (rcp85["n_extreme"] == n).all()
