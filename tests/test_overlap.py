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

from paleosnr.stats import overlap as ov


def _sample(seed, mean, sd, n=300):
    return np.random.default_rng(seed).normal(mean, sd, n)


def test_overlap_is_symmetric():
    a = _sample(1, 0.3, 0.1)
    b = _sample(2, 0.45, 0.15)
    assert ov.density_overlap(a, b) == pytest.approx(ov.density_overlap(b, a), abs=1e-12)


def test_overlap_within_unit_interval():
    rng = np.random.default_rng(3)
    for _ in range(10):
        a = rng.uniform(0, 1, 50)
        b = rng.gamma(2.0, 0.1, 80)
        value = ov.density_overlap(a, b)
        assert 0.0 <= value <= 1.0


def test_overlap_of_sample_with_itself_is_one():
    a = _sample(4, 0.5, 0.2, n=120)
    assert ov.density_overlap(a, a) == pytest.approx(1.0, abs=1e-9)


def test_disjoint_samples_barely_overlap():
    past = _sample(5, 0.2, 0.02)
    future = _sample(6, 0.6, 0.02)
    assert ov.density_overlap(past, future) < 0.01


def test_overlap_undefined_for_empty_or_constant_samples():
    a = _sample(7, 0.5, 0.1)
    assert np.isnan(ov.density_overlap([], a))
    assert np.isnan(ov.density_overlap(a, [0.3, 0.3, 0.3]))
    assert np.isnan(ov.density_overlap([np.nan, np.nan], a))


def test_bw_nrd0_matches_rule_of_thumb():
    x = np.arange(1.0, 11.0)
    sd = np.std(x, ddof=1)
    iqr = np.percentile(x, 75) - np.percentile(x, 25)
    expected = 0.9 * min(sd, iqr / 1.34) * 10 ** -0.2
    assert ov.bw_nrd0(x) == pytest.approx(expected)


def test_bw_nrd0_falls_back_to_sd_when_iqr_is_zero():
    x = np.array([0.0, 1.0, 1.0, 1.0, 1.0, 1.0, 1.0, 2.0])
    assert ov.bw_nrd0(x) == pytest.approx(0.9 * np.std(x, ddof=1) * 8 ** -0.2)


def test_ks_test_detects_shift_and_handles_empty():
    stat, p = ov.ks_test(_sample(8, 0.0, 1.0), _sample(9, 2.0, 1.0))
    assert stat > 0.5
    assert p < 1e-6
    stat, p = ov.ks_test([], [1.0, 2.0])
    assert np.isnan(stat) and np.isnan(p)


def test_adjusted_pvalues_never_below_raw():
    p = np.array([0.001, 0.01, 0.02, 0.04, 0.2, 0.5, 0.9])
    adjusted, significant = ov.adjust_pvalues(p)
    assert (adjusted >= p).all()
    assert (adjusted <= 1.0).all()
    assert significant.dtype == bool


def test_adjust_pvalues_keeps_nan_out_of_family():
    adjusted, significant = ov.adjust_pvalues([0.01, np.nan, 0.03])
    assert np.isnan(adjusted[1])
    assert not significant[1]
    alone, _ = ov.adjust_pvalues([0.01, 0.03])
    assert adjusted[[0, 2]] == pytest.approx(alone)


def test_significance_marker():
    assert ov.significance_marker(0.0005) == "***"
    assert ov.significance_marker(0.005) == "**"
    assert ov.significance_marker(0.03) == "*"
    assert ov.significance_marker(0.2) == "ns"
    assert ov.significance_marker(float("nan")) == "NA"


def _cells():
    rng = np.random.default_rng(10)
    n_big, n_small = 60, 5
    big = pd.DataFrame({
        "cell": np.arange(n_big),
        "x": 0.0,
        "y": 0.0,
        "realm_id": 1,
        "realm": "Realm 01",
        "paleo": rng.normal(0.2, 0.03, n_big),
        "rcp26": rng.normal(0.25, 0.03, n_big),
        "rcp85": rng.normal(0.7, 0.03, n_big),
    })
    small = pd.DataFrame({
        "cell": np.arange(n_big, n_big + n_small),
        "x": 0.0,
        "y": 0.0,
        "realm_id": 2,
        "realm": "Realm 02",
        "paleo": rng.uniform(0, 1, n_small),
        "rcp26": rng.uniform(0, 1, n_small),
        "rcp85": rng.uniform(0, 1, n_small),
    })
    return pd.concat([big, small], ignore_index=True)


def test_overlap_table_excludes_small_realms_and_adjusts():
    table = ov.overlap_table(_cells(), "paleo", ["paleo", "rcp26", "rcp85"], min_cells=30)
    assert set(table["realm_id"]) == {1}
    assert list(table["scenario"]) == ["rcp26", "rcp85"]
    assert (table["p_adjusted"] >= table["p_value"]).all()
    row85 = table.set_index("scenario").loc["rcp85"]
    assert row85["overlap"] < 0.01
    assert bool(row85["significant"])
    assert row85["marker"] == "***"
    assert row85["n_reference"] == 60


def test_overlap_table_empty_when_no_realm_qualifies():
    table = ov.overlap_table(_cells(), "paleo", ["paleo", "rcp85"], min_cells=1000)
    assert table.empty
    assert "p_adjusted" in table.columns
