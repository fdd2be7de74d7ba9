#!/usr/bin/env python3

from __future__ import annotations

import sys
from pathlib import Path

import numpy as np
import pytest
import rasterio
from rasterio.transform import from_origin

# Ensure we can import from src/ without installing the package
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
sys.path.insert(0, str(SRC))

from paleosnr.signal import aggregate as ag

TRANSFORM = from_origin(-180.0, 90.0, 90.0, 90.0)  # 2 rows x 4 cols, global


def _write(path: Path, data: np.ndarray, transform=TRANSFORM) -> Path:
    profile = {
        "driver": "GTiff",
        "height": data.shape[0],
        "width": data.shape[1],
        "count": 1,
        "dtype": "float32",
        "crs": "EPSG:4326",
        "transform": transform,
        "nodata": -9999.0,
    }
    with rasterio.open(path, "w", **profile) as dst:
        dst.write(data.astype("float32"), 1)
    return path


def test_compute_snr_means_and_ratio():
    trend = np.array([[[1.0, -2.0]], [[3.0, -4.0]]])   # 2 periods, 1x2 grid
    var = np.array([[[1.0, 2.0]], [[3.0, 4.0]]])
    layers = ag.compute_snr(trend, var)
    assert layers.trend == pytest.approx(np.array([[2.0, -3.0]]))
    assert layers.variability == pytest.approx(np.array([[2.0, 3.0]]))
    assert layers.snr == pytest.approx(np.array([[1.0, 1.0]]))


def test_compute_snr_nan_where_variability_missing_or_zero():
    trend = np.array([[1.0, 1.0, np.nan]])
    var = np.array([[0.0, np.nan, 1.0]])
    snr = ag.compute_snr(trend, var).snr
    assert np.isnan(snr).all()


def test_compute_snr_ignores_nan_periods():
    trend = np.array([[[np.nan]], [[2.0]]])
    var = np.array([[[1.0]], [[1.0]]])
    assert ag.compute_snr(trend, var).snr[0, 0] == pytest.approx(2.0)


def test_compute_snr_shape_mismatch():
    with pytest.raises(ValueError):
        ag.compute_snr(np.zeros((2, 2, 2)), np.zeros((3, 2, 2)))


def test_resolve_layers():
    assert ag.resolve_layers("x/trend.tif", ["a"]) == [Path("x/trend.tif")]
    assert ag.resolve_layers("x/trend_{period}.tif", ["a", "b"]) == [
        Path("x/trend_a.tif"), Path("x/trend_b.tif"),
    ]
    with pytest.raises(SystemExit):
        ag.resolve_layers("x/trend_{period}.tif", [])


def test_aggregate_scenario_writes_three_rasters(tmp_path):
    ones = np.ones((2, 4))
    _write(tmp_path / "trend_p1.tif", ones * 2.0)
    _write(tmp_path / "trend_p2.tif", ones * -4.0)
    var1 = ones.copy()
    var1[0, 0] = -9999.0  # nodata
    _write(tmp_path / "var_p1.tif", var1)
    _write(tmp_path / "var_p2.tif", ones)

    out = ag.aggregate_scenario(
        scenario="paleo",
        trend_template=str(tmp_path / "trend_{period}.tif"),
        variability_template=str(tmp_path / "var_{period}.tif"),
        periods=["p1", "p2"],
        out_dir=tmp_path / "snr",
    )
    assert set(out) == {"trend", "variability", "snr"}
    snr, grid = ag.read_layer(out["snr"])
    assert grid.shape == (2, 4)
    assert grid.transform.almost_equals(TRANSFORM)
    # |mean(2, -4)| / mean(1, 1) = 1
    assert snr[1, 1] == pytest.approx(1.0)
    assert snr[0, 0] == pytest.approx(1.0)


def test_aggregate_scenario_rejects_grid_mismatch(tmp_path):
    _write(tmp_path / "trend_p1.tif", np.ones((2, 4)))
    _write(tmp_path / "trend_p2.tif", np.ones((2, 4)), transform=from_origin(-170.0, 90.0, 90.0, 90.0))
    _write(tmp_path / "var_p1.tif", np.ones((2, 4)))
    _write(tmp_path / "var_p2.tif", np.ones((2, 4)))
    with pytest.raises(SystemExit):
        ag.aggregate_scenario(
            scenario="paleo",
            trend_template=str(tmp_path / "trend_{period}.tif"),
            variability_template=str(tmp_path / "var_{period}.tif"),
            periods=["p1", "p2"],
            out_dir=tmp_path / "snr",
        )


def test_read_stack_needs_paths():
    with pytest.raises(SystemExit):
        ag.read_stack([])


def test_read_stack_stacks_layers_on_one_grid(tmp_path):
    a = _write(tmp_path / "a.tif", np.ones((2, 4)))
    b = _write(tmp_path / "b.tif", np.full((2, 4), 2.0))
    stack, grid = ag.read_stack([a, b])
    assert stack.shape == (2, 2, 4)
    assert grid.shape == (2, 4)
    assert stack[1].tolist() == [[2.0] * 4] * 2
