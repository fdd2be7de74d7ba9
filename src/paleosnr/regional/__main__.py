#!/usr/bin/env python3
"""paleosnr.regional

Regional extraction CLI for PaleoSNR.

This is one of several PaleoSNR subsystem CLIs:
- paleosnr.registry → realm polygons
- paleosnr.signal   → warming threshold, period selection, SNR rasters
- paleosnr.regional → clip SNR rasters to realms, per-cell tables (this file)
- paleosnr.stats    → overlap, extreme-condition and niche-overlap summaries

Inputs:
- <signal.out_dir>/<scenario>_snr.tif         (from paleosnr.signal aggregate)
- data/interim/vectors/realms_v0.gpkg         (from paleosnr.registry prep-realms)

Outputs:
- data/processed/tables/cell_snr.csv          → per-cell rescaled SNR
- data/processed/rasters/<scenario>_snr_rescaled.tif

Examples:
  python -m paleosnr.regional extract-cells
  python -m paleosnr.regional summary
"""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import List, Optional

from paleosnr.config import (
    load_yaml,
    section,
    scenario_names,
    config_path,
    pick,
    DEFAULT_ANALYSIS_YAML,
)
from paleosnr.logging_config import setup_logging

logger = logging.getLogger("paleosnr.regional")


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="paleosnr.regional",
        description="Clip SNR rasters to realms and build per-cell tables",
    )
    ap.add_argument(
        "--analysis-yaml",
        type=Path,
        default=DEFAULT_ANALYSIS_YAML,
        help=f"Path to analysis YAML (default: {DEFAULT_ANALYSIS_YAML})",
    )
    ap.add_argument("--dry-run", action="store_true", help="Print planned actions without reading/writing data")
    ap.add_argument("--overwrite", action="store_true", help="Overwrite existing output files")
    ap.add_argument("-v", "--verbose", action="store_true", help="Debug logging on the console")
    ap.add_argument("--log-file", type=Path, default=None, help="Also write a full debug log here")

    sub = ap.add_subparsers(dest="command", required=True)

    ext = sub.add_parser("extract-cells", help="Rescale scenario SNR rasters and extract cells per realm")
    ext.add_argument("--snr-dir", type=Path, default=None, help="Directory with <scenario>_snr.tif (default: signal.out_dir)")
    ext.add_argument("--realms-gpkg", type=Path, default=None, help="Registry GeoPackage (default from config)")
    ext.add_argument("--layer", default=None, help="GeoPackage layer (default: realms)")
    ext.add_argument("--out-csv", type=Path, default=None, help="Output per-cell CSV (default from config)")
    ext.add_argument("--rescaled-dir", type=Path, default=None, help="Where to write rescaled rasters (default from config)")

    summ = sub.add_parser("summary", help="Cells per realm and which realms pass min_cells")
    summ.add_argument("--cells-csv", type=Path, default=None, help="Per-cell CSV (default: regional.out_csv)")
    summ.add_argument("--min-cells", type=int, default=None, help="Minimum cells per realm (default: stats.min_cells)")

    return ap


def _handle_extract_cells(args: argparse.Namespace, cfg: dict) -> int:
    block = section(cfg, "regional")
    scenarios = scenario_names(cfg)
    snr_dir = args.snr_dir or config_path(section(cfg, "signal"), "out_dir")
    realms_gpkg = config_path(block, "realms_gpkg", args.realms_gpkg)
    layer = str(pick(args.layer, block, "realms_layer", "realms"))
    out_csv = config_path(block, "out_csv", args.out_csv)
    rescaled_dir = args.rescaled_dir or (Path(block["rescaled_dir"]) if block.get("rescaled_dir") else None)

    snr_rasters = {s: snr_dir / f"{s}_snr.tif" for s in scenarios}

    if args.dry_run:
        print("[dry-run] Would extract cells:")
        for s, p in snr_rasters.items():
            print(f"  {s}: {p}")
        print(f"  Realms: {realms_gpkg} (layer={layer})")
        print(f"  Output CSV: {out_csv}")
        print(f"  Rescaled rasters: {rescaled_dir}")
        return 0

    if out_csv.exists() and not args.overwrite:
        logger.info("[SKIP] %s exists (use --overwrite)", out_csv)
        return 0

    # Lazy imports: geopandas / rasterio only when needed
    from paleosnr.registry.prep_realms import read_realms
    from paleosnr.regional.extract import extract_cells

    realms = read_realms(realms_gpkg, layer=layer)
    extract_cells(snr_rasters=snr_rasters, realms=realms, out_csv=out_csv, rescaled_dir=rescaled_dir)
    return 0


def _handle_summary(args: argparse.Namespace, cfg: dict) -> int:
    cells_csv = config_path(section(cfg, "regional"), "out_csv", args.cells_csv)
    min_cells = int(pick(args.min_cells, section(cfg, "stats"), "min_cells", 30))

    from paleosnr.regional.cells import read_cell_table, cell_counts, realm_names

    cells = read_cell_table(cells_csv)
    counts = cell_counts(cells)
    names = realm_names(cells)
    for rid, n in counts.items():
        status = "OK" if n >= min_cells else "EXCLUDED"
        print(f"[{status}] realm_id={rid} | cells={n} | {names.get(rid, '')}")
    print(f"{int((counts >= min_cells).sum())} of {len(counts)} realms have >= {min_cells} cells")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    ap = build_parser()
    args = ap.parse_args(argv)
    setup_logging(verbose=args.verbose, log_file=args.log_file)

    cfg = load_yaml(args.analysis_yaml)

    handlers = {
        "extract-cells": _handle_extract_cells,
        "summary": _handle_summary,
    }
    handler = handlers.get(args.command)
    if handler is None:
        raise SystemExit(f"Unknown command: {args.command}")
    return handler(args, cfg)


if __name__ == "__main__":
    raise SystemExit(main())
