#!/usr/bin/env python3
"""extract.py

Clip scenario SNR rasters to realm polygons and rescale them for
cross-scenario comparison.

Steps:
1. Read every scenario SNR raster; all must share one grid
2. Rescale the combined scenario stack to [0, 1] (joint min/max)
3. Rasterize realm ids onto the grid (polygons reprojected to the raster CRS)
4. Emit one row per cell inside a realm (see paleosnr.regional.cells)

Called by:
  python -m paleosnr.regional extract-cells
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Mapping, Optional, Tuple

import geopandas as gpd
import numpy as np
import pandas as pd
from rasterio.features import rasterize
from rasterio.transform import Affine, xy

from paleosnr.regional.cells import CELL_COLUMNS
from paleosnr.signal.aggregate import GridSpec, read_layer, write_layer

logger = logging.getLogger(__name__)


def rescale_stack(stack: Mapping[str, np.ndarray]) -> Dict[str, np.ndarray]:
    """Map the joint min/max over all finite values of all layers to [0, 1].

    A stack without range (constant, or no finite value) comes back all NaN.
    """
    arrays = {name: np.asarray(a, dtype="float64") for name, a in stack.items()}
    finite = [a[np.isfinite(a)] for a in arrays.values()]
    finite = [f for f in finite if f.size]
    if not finite:
        return {name: np.full(a.shape, np.nan) for name, a in arrays.items()}

    lo = min(float(f.min()) for f in finite)
    hi = max(float(f.max()) for f in finite)
    if hi == lo:
        logger.warning("[EXTRACT] Scenario stack is constant (%s); rescaled values are NaN", lo)
        return {name: np.full(a.shape, np.nan) for name, a in arrays.items()}

    out = {}
    for name, a in arrays.items():
        scaled = (a - lo) / (hi - lo)
        scaled[~np.isfinite(a)] = np.nan
        out[name] = scaled
    return out


def realm_index_grid(
    realms: gpd.GeoDataFrame,
    shape: Tuple[int, int],
    transform: Affine,
    crs=None,
) -> np.ndarray:
    """Realm id per cell (cell-centre rule), 0 outside every realm."""
    if (realms["realm_id"] <= 0).any():
        raise ValueError("realm ids must be positive integers (0 marks cells outside realms)")
    if crs is not None and realms.crs is not None and realms.crs != crs:
        realms = realms.to_crs(crs)

    shapes = ((geom, int(rid)) for geom, rid in zip(realms.geometry, realms["realm_id"]) if geom is not None)
    return rasterize(
        shapes,
        out_shape=shape,
        transform=transform,
        fill=0,
        dtype="int32",
    )


def build_cell_table(
    layers: Mapping[str, np.ndarray],
    realm_grid: np.ndarray,
    names: Mapping[int, str],
    transform: Affine,
) -> pd.DataFrame:
    """Wide per-cell table for cells inside a realm with at least one value."""
    scenarios = list(layers)
    stack = np.stack([np.asarray(layers[s], dtype="float64") for s in scenarios])
    if stack.shape[1:] != realm_grid.shape:
        raise ValueError(f"realm grid {realm_grid.shape} does not match layers {stack.shape[1:]}")

    any_value = np.isfinite(stack).any(axis=0)
    rows, cols = np.nonzero((realm_grid > 0) & any_value)

    # Cell centres
    if rows.size:
        xs, ys = xy(transform, rows, cols, offset="center")
    else:
        xs, ys = [], []
    realm_ids = realm_grid[rows, cols].astype(int)

    table = pd.DataFrame({
        "cell": rows * realm_grid.shape[1] + cols,
        "x": np.asarray(xs, dtype="float64"),
        "y": np.asarray(ys, dtype="float64"),
        "realm_id": realm_ids,
        "realm": [names.get(int(r), "") for r in realm_ids],
    })
    for i, s in enumerate(scenarios):
        table[s] = stack[i, rows, cols]
    return table[CELL_COLUMNS + scenarios]


def extract_cells(
    *,
    snr_rasters: Mapping[str, Path],
    realms: gpd.GeoDataFrame,
    out_csv: Path,
    rescaled_dir: Optional[Path] = None,
) -> pd.DataFrame:
    """Read, rescale and clip scenario SNR rasters; write the per-cell CSV.

    If `rescaled_dir` is given the rescaled rasters are written there as
    `<scenario>_snr_rescaled.tif`.
    """
    layers: Dict[str, np.ndarray] = {}
    grid: Optional[GridSpec] = None
    first = None
    for scenario, path in snr_rasters.items():
        data, g = read_layer(path)
        if grid is None:
            grid, first = g, path
        elif not grid.matches(g):
            raise SystemExit(f"Raster grid mismatch: {path} does not match {first}")
        layers[scenario] = data
    if grid is None:
        raise SystemExit("No SNR rasters given")

    rescaled = rescale_stack(layers)

    if rescaled_dir is not None:
        for scenario, data in rescaled.items():
            write_layer(rescaled_dir / f"{scenario}_snr_rescaled.tif", data, grid)
        logger.info("[EXTRACT] Wrote %d rescaled rasters -> %s", len(rescaled), rescaled_dir)

    realm_grid = realm_index_grid(realms, grid.shape, grid.transform, grid.crs)
    names = {int(r): str(n) for r, n in zip(realms["realm_id"], realms["name"])}
    cells = build_cell_table(rescaled, realm_grid, names, grid.transform)

    out_csv.parent.mkdir(parents=True, exist_ok=True)
    cells.to_csv(out_csv, index=False)

    logger.info("[EXTRACT] Wrote %d cells in %d realms -> %s", len(cells), cells["realm_id"].nunique(), out_csv)
    for rid, n in cells.groupby("realm_id").size().items():
        logger.debug("  - realm_id=%s | %s | cells=%d", rid, names.get(int(rid), ""), n)
    return cells
