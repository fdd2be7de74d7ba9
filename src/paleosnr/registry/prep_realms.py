#!/usr/bin/env python3
"""prep_realms.py

Turn a marine biogeographic realms shapefile into a clean, filtered GeoPackage
based on the realms listed in a YAML config (realms_v0.yaml).

Called by:
  python -m paleosnr.registry prep-realms \
    --realms-shp data/raw/boundaries/marine_realms/realms.shp

Notes:
- The id column of realm layers varies between releases (Realm, REALM_ID,
  realm_no, ...), so it is inferred unless --id-field is given.
- Ids are normalized so "07", 7, and 7.0 match.
"""

from __future__ import annotations

import logging
import math
import re
from pathlib import Path
from typing import Dict, List, Optional

import geopandas as gpd

logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Helper functions
# -----------------------------------------------------------------------------
# The public interface is prep_realms().

def _normalize_id(x) -> Optional[int]:
    """Normalize a realm identifier to an int.

    Handles ints, floats with no fractional part, and strings like '07' or ' 7 '.
    Returns None for missing or non-numeric inputs.
    """
    if x is None:
        return None
    if isinstance(x, float):
        if math.isnan(x) or not x.is_integer():
            return None
        return int(x)
    s = str(x).strip()
    m = re.fullmatch(r"0*(\d+)(?:\.0+)?", s)
    if not m:
        return None
    return int(m.group(1))


def _pick_id_field(columns: List[str], preferred: Optional[str] = None) -> str:
    """Infer which shapefile column contains the realm id.

    If preferred is provided and exists, use it.
    Otherwise, score columns by likelihood (looking for 'realm', 'id', etc.).
    """
    if preferred:
        if preferred in columns:
            return preferred
        raise ValueError(f"--id-field '{preferred}' not found. Available columns: {columns}")

    candidates = []
    for c in columns:
        if c == "geometry":
            continue
        cl = c.lower()
        score = 0
        if "realm" in cl:
            score += 4
        if cl.endswith("id") or "code" in cl or cl.endswith("_no") or cl.endswith("num"):
            score += 3
        if cl == "realm":
            score += 1
        # Penalties for clearly non-id fields
        if "name" in cl or "desc" in cl or "label" in cl or "area" in cl:
            score -= 3
        candidates.append((score, c))

    if not candidates:
        raise ValueError("Realm layer has no attribute columns.")

    candidates.sort(reverse=True)
    best_score, best_col = candidates[0]
    if best_score < 3:
        raise ValueError(
            "Couldn't confidently infer the realm id column. "
            "Pass --id-field explicitly.\n"
            f"Columns: {columns}\n"
            f"Top guesses: {candidates[:8]}"
        )
    return best_col


def _make_valid(gdf: gpd.GeoDataFrame) -> gpd.GeoDataFrame:
    """Fix invalid geometries (GeoSeries.make_valid, shapely >= 2)."""
    gdf = gdf.copy()
    gdf["geometry"] = gdf.geometry.make_valid()
    return gdf


def _compute_area_km2(gdf: gpd.GeoDataFrame, area_crs: str = "ESRI:54009") -> List[float]:
    """Compute polygon area in km² using an equal-area CRS.

    Default CRS is ESRI:54009 (World Mollweide), appropriate for global realms.
    """
    if gdf.crs is None:
        raise ValueError("Input geometries have no CRS; can't compute area safely.")
    tmp = gdf.to_crs(area_crs)
    return (tmp.geometry.area / 1_000_000.0).astype(float).tolist()


# -----------------------------------------------------------------------------
# Core function (called by the registry CLI)
# -----------------------------------------------------------------------------

def prep_realms(
    realms: List[dict],
    realms_shp: Path,
    out_gpkg: Path,
    *,
    layer: str = "realms",
    id_field: Optional[str] = None,
    target_crs: str = "EPSG:4326",
    area_crs: str = "ESRI:54009",
    dissolve: bool = True,
    qa_csv: Optional[Path] = None,
) -> gpd.GeoDataFrame:
    """Process a realms shapefile into a filtered, cleaned GeoPackage.

    It:
    1. Filters the shapefile to only requested realms (by id)
    2. Fixes invalid geometries
    3. Optionally dissolves multipart features into one row per realm
    4. Computes areas in km²
    5. Reprojects to target CRS
    6. Writes output GeoPackage (and optional QA CSV)

    Args:
        realms: List of realm dicts from realms YAML (must have 'id', may have 'name')
        realms_shp: Path to the realms shapefile (or any OGR-readable layer)
        out_gpkg: Output GeoPackage path
        layer: Layer name in output GeoPackage
        id_field: Explicit column holding the realm id (auto-detected if None)
        target_crs: CRS for output geometries (default WGS84, matching the SNR rasters)
        area_crs: Equal-area CRS for area calculations
        dissolve: If True, dissolve multipart features into one row per realm
        qa_csv: Optional path to write QA summary CSV

    Returns:
        The processed GeoDataFrame (also written to out_gpkg) with columns
        realm_id, name, area_km2, geometry.

    Raises:
        SystemExit: On missing files, no matching realms, or processing errors.
    """
    if not realms_shp.exists():
        raise SystemExit(f"Realms layer not found: {realms_shp}")

    # Build lookup by normalized id
    wanted_by_id: Dict[int, dict] = {}
    for r in realms:
        rid = _normalize_id(r.get("id"))
        if rid is None:
            raise SystemExit(f"Realm missing/invalid id: {r}")
        if rid in wanted_by_id:
            raise SystemExit(f"Duplicate realm id in realms YAML ({rid}).")
        wanted_by_id[rid] = r
    if not wanted_by_id:
        raise SystemExit("Realms YAML lists no realms")

    wanted_ids = set(wanted_by_id)

    # --- Load layer ---
    gdf = gpd.read_file(realms_shp)

    if gdf.empty:
        raise SystemExit("Loaded realms layer but it contains zero features. Wrong file?")

    if gdf.crs is None:
        raise SystemExit(
            "Realms layer has no CRS (.prj missing or unreadable). "
            "Fix that first; raster extraction depends on CRS."
        )

    # --- Identify and normalize id field ---
    detected_id_field = _pick_id_field(list(gdf.columns), preferred=id_field)
    gdf["_id_norm"] = gdf[detected_id_field].apply(_normalize_id)

    matches = gdf[gdf["_id_norm"].isin(wanted_ids)]
    if matches.empty:
        sample_ids = sorted({i for i in gdf["_id_norm"].tolist() if i is not None})[:25]
        raise SystemExit(
            "None of your requested realm ids matched the layer.\n"
            f"Using id field: {detected_id_field}\n"
            f"Requested ids: {sorted(wanted_ids)}\n"
            f"Sample ids in layer: {sample_ids}\n"
            "Try --id-field explicitly if the inferred field is wrong."
        )

    out = matches.copy()
    out["realm_id"] = out["_id_norm"].astype(int)
    out["name"] = out["realm_id"].map(lambda i: str(wanted_by_id[i].get("name", "")))

    # --- Geometry cleanup ---
    out = _make_valid(out)
    out = out[~out.geometry.is_empty & out.geometry.notna()].copy()

    if dissolve:
        out = out[["realm_id", "name", "geometry"]].dissolve(by="realm_id", as_index=False)

    out["area_km2"] = _compute_area_km2(out, area_crs=area_crs)
    out = out.to_crs(target_crs)

    out = out[["realm_id", "name", "area_km2", "geometry"]].copy()

    # --- Verify all requested ids were found ---
    missing = wanted_ids - set(out["realm_id"].tolist())
    if missing:
        raise SystemExit(
            f"Missing requested realm ids after processing: {sorted(missing)}\n"
            "This usually means the layer doesn't include them, or ids are stored differently."
        )

    # --- Write outputs ---
    out_gpkg.parent.mkdir(parents=True, exist_ok=True)
    out.to_file(out_gpkg, layer=layer, driver="GPKG")

    if qa_csv:
        qa_csv.parent.mkdir(parents=True, exist_ok=True)
        out.drop(columns="geometry").to_csv(qa_csv, index=False)

    logger.info("[REALMS] Wrote %d features -> %s (layer=%s)", len(out), out_gpkg, layer)
    for _, row in out.drop(columns="geometry").sort_values("realm_id").iterrows():
        logger.info("  - realm_id=%s | area_km2=%.1f | %s", row["realm_id"], row["area_km2"], row["name"])
    logger.info("[REALMS] Used id field: %s; output CRS: %s", detected_id_field, target_crs)

    return out


def read_realms(gpkg: Path, layer: str = "realms") -> gpd.GeoDataFrame:
    """Read registry output; downstream modules use this instead of the raw shapefile."""
    if not gpkg.exists():
        raise SystemExit(f"Realms GeoPackage not found: {gpkg} (run: python -m paleosnr.registry prep-realms)")
    gdf = gpd.read_file(gpkg, layer=layer)
    for col in ("realm_id", "name"):
        if col not in gdf.columns:
            raise SystemExit(f"{gpkg} layer '{layer}' lacks column '{col}'")
    if gdf.crs is None:
        raise SystemExit(f"{gpkg} layer '{layer}' has no CRS")
    return gdf


if __name__ == "__main__":
    raise SystemExit(
        "This module is not meant to be run directly. "
        "Use: python -m paleosnr.registry prep-realms --realms-shp ..."
    )
