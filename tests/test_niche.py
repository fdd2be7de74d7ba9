#!/usr/bin/env python3

from __future__ import annotations

import sys
from pathlib import Path

import numpy as np
import pytest

# Ensure we can import from src/ without installing the package
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
sys.path.insert(0, str(SRC))

from paleosnr.stats import niche


def test_identical_surfaces_overlap_fully():
    x = np.array([[0.1, 0.4], [0.3, 0.2]])
    assert niche.niche_overlap(x, x, "D") == pytest.approx(1.0)
    assert niche.niche_overlap(x, 2 * x, "I") == pytest.approx(1.0)


def test_disjoint_surfaces_do_not_overlap():
    x = np.array([1.0, 0.0, 0.0])
    y = np.array([0.0, 1.0, 0.0])
    assert niche.niche_overlap(x, y, "D") == pytest.approx(0.0)
    assert niche.niche_overlap(x, y, "I") == pytest.approx(0.0)


def test_missing_cells_are_masked():
    x = np.array([1.0, np.nan, 2.0])
    y = np.array([1.0, 5.0, 2.0])
    assert niche.niche_overlap(x, y, "D") == pytest.approx(1.0)


def test_negative_values_rejected():
    with pytest.raises(ValueError):
        niche.niche_overlap([1.0, -0.5], [1.0, 1.0])


def test_unknown_stat_rejected():
    with pytest.raises(ValueError):
        niche.niche_overlap([1.0], [1.0], stat="H")


def test_pairwise_matrix_is_lower_triangular():
    layers = {
        "paleo": np.array([0.1, 0.2, 0.7]),
        "rcp45": np.array([0.2, 0.2, 0.6]),
        "rcp85": np.array([0.7, 0.2, 0.1]),
    }
    ov = niche.pairwise_niche_overlap(layers, stat="D")
    assert list(ov.index) == ["paleo", "rcp45", "rcp85"]
    assert np.isnan(ov.loc["paleo", "rcp45"])
    assert np.isnan(ov.loc["paleo", "paleo"])
    assert ov.loc["rcp45", "paleo"] == pytest.approx(0.9)
    assert ov.loc["rcp85", "paleo"] == pytest.approx(0.4)
