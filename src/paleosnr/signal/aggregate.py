#!/usr/bin/env python3
"""aggregate.py

Average per-period trend and variability rasters into per-cell
trend / variability / SNR layers for one scenario.

    snr = |mean trend| / mean variability

Inputs are single-band GeoTIFFs, one per period, resolved from a path
template with a `{period}` placeholder. A template without a placeholder is a
single layer (future RCP scenarios are one window each).

Outputs (float32, NaN nodata):
    <out_dir>/<scenario>_trend.tif
    <out_dir>/<scenario>_variability.tif
    <out_dir>/<scenario>_snr.tif

Called by:
  python -m paleosnr.signal aggregate --scenario paleo
"""

from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import rasterio
from rasterio.crs import CRS
from rasterio.transform import Affine

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GridSpec:
    """Shape, transform and CRS shared by every layer of a stack."""

    shape: Tuple[int, int]
    transform: Affine
    crs: Optional[CRS]

    def matches(self, other: "GridSpec") -> bool:
        return (
            self.shape == other.shape
            and self.transform.almost_equals(other.transform)
            and self.crs == other.crs
        )


@dataclass(frozen=True)
class SignalLayers:
    trend: np.ndarray
    variability: np.ndarray
    snr: np.ndarray


# -----------------------------------------------------------------------------
# Raster algebra
# -----------------------------------------------------------------------------

def _nanmean(stack: np.ndarray) -> np.ndarray:
    # All-NaN cells are expected (land, ice); keep them NaN quietly
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", category=RuntimeWarning)
        return np.nanmean(stack, axis=0)


def compute_snr(trend_stack: np.ndarray, variability_stack: np.ndarray) -> SignalLayers:
    """Mean trend, mean variability and SNR over the period axis (axis 0).

    2D inputs are treated as a single period.
    """
    trend_stack = np.asarray(trend_stack, dtype="float64")
    variability_stack = np.asarray(variability_stack, dtype="float64")
    if trend_stack.ndim == 2:
        trend_stack = trend_stack[np.newaxis]
    if variability_stack.ndim == 2:
        variability_stack = variability_stack[np.newaxis]
    if trend_stack.shape != variability_stack.shape:
        raise ValueError(
            f"trend and variability stacks differ in shape: {trend_stack.shape} vs {variability_stack.shape}"
        )
    if trend_stack.shape[0] == 0:
        raise ValueError("cannot aggregate an empty stack (no periods)")

    trend = _nanmean(trend_stack)
    variability = _nanmean(variability_stack)

    snr = np.full(trend.shape, np.nan)
    ok = np.isfinite(trend) & np.isfinite(variability) & (variability != 0)
    snr[ok] = np.abs(trend[ok]) / variability[ok]
    return SignalLayers(trend=trend, variability=variability, snr=snr)


# -----------------------------------------------------------------------------
# GeoTIFF I/O
# -----------------------------------------------------------------------------

def read_layer(path: Path) -> Tuple[np.ndarray, GridSpec]:
    """Read band 1 as float64 with nodata converted to NaN."""
    if not path.exists():
        raise SystemExit(f"Raster not found: {path}")
    with rasterio.open(path) as src:
        data = src.read(1, masked=True).astype("float64")
        grid = GridSpec(shape=(src.height, src.width), transform=src.transform, crs=src.crs)
    return data.filled(np.nan), grid


def read_stack(paths: Sequence[Path]) -> Tuple[np.ndarray, GridSpec]:
    """Read layers into a (n, rows, cols) stack; all must share one grid."""
    if not paths:
        raise SystemExit("No rasters to stack")
    first, grid = read_layer(paths[0])
    layers: List[np.ndarray] = [first]
    for p in paths[1:]:
        data, g = read_layer(p)
        if not grid.matches(g):
            raise SystemExit(f"Raster grid mismatch: {p} does not match {paths[0]}")
        layers.append(data)
    return np.stack(layers), grid


def write_layer(path: Path, data: np.ndarray, grid: GridSpec) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    profile = {
        "driver": "GTiff",
        "height": grid.shape[0],
        "width": grid.shape[1],
        "count": 1,
        "dtype": "float32",
        "crs": grid.crs,
        "transform": grid.transform,
        "nodata": np.nan,
        "compress": "deflate",
    }
    with rasterio.open(path, "w", **profile) as dst:
        dst.write(data.astype("float32"), 1)


def resolve_layers(template: str, periods: Sequence[str]) -> List[Path]:
    """Expand a `{period}` path template over the selected periods."""
    if "{period}" not in template:
        return [Path(template)]
    if not periods:
        raise SystemExit(f"Template {template} needs periods, but none were selected")
    return [Path(template.format(period=p)) for p in periods]


def aggregate_scenario(
    *,
    scenario: str,
    trend_template: str,
    variability_template: str,
    periods: Sequence[str],
    out_dir: Path,
    overwrite: bool = False,
) -> Dict[str, Path]:
    """Build and write the trend / variability / SNR rasters of one scenario.

    Returns the output paths keyed by layer name.
    """
    outputs = {name: out_dir / f"{scenario}_{name}.tif" for name in ("trend", "variability", "snr")}
    if all(p.exists() for p in outputs.values()) and not overwrite:
        logger.info("[SKIP] %s rasters exist in %s", scenario, out_dir)
        return outputs

    trend_paths = resolve_layers(trend_template, periods)
    var_paths = resolve_layers(variability_template, periods)
    if len(trend_paths) != len(var_paths):
        raise SystemExit(
            f"{scenario}: {len(trend_paths)} trend layers but {len(var_paths)} variability layers"
        )

    logger.info("[SNR] %s: averaging %d layer(s)", scenario, len(trend_paths))
    trend_stack, grid = read_stack(trend_paths)
    var_stack, var_grid = read_stack(var_paths)
    if not grid.matches(var_grid):
        raise SystemExit(f"{scenario}: trend and variability rasters are on different grids")

    layers = compute_snr(trend_stack, var_stack)
    write_layer(outputs["trend"], layers.trend, grid)
    write_layer(outputs["variability"], layers.variability, grid)
    write_layer(outputs["snr"], layers.snr, grid)

    n_valid = int(np.isfinite(layers.snr).sum())
    logger.info("[SNR] %s: %d cells with SNR -> %s", scenario, n_valid, outputs["snr"])
    return outputs
