#!/usr/bin/env python3
"""paleosnr.stats

Statistical summary CLI for PaleoSNR.

This is one of several PaleoSNR subsystem CLIs:
- paleosnr.registry → realm polygons
- paleosnr.signal   → warming threshold, period selection, SNR rasters
- paleosnr.regional → clip SNR rasters to realms, per-cell tables
- paleosnr.stats    → overlap, extreme-condition and niche-overlap summaries (this file)

All commands read the per-cell table written by `paleosnr.regional
extract-cells`; realms with fewer than `stats.min_cells` cells are skipped.

Examples:
  # KDE overlap + KS test (Benjamini-Yekutieli adjusted) per realm and scenario
  python -m paleosnr.stats overlap

  # Counts of future cells above paleo quantiles 0.90 ... 1.00
  python -m paleosnr.stats extremes

  # Schoener's D between scenario SNR surfaces
  python -m paleosnr.stats niche-overlap --stat D
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
    reference_scenario,
    config_path,
    pick,
    DEFAULT_ANALYSIS_YAML,
)
from paleosnr.logging_config import setup_logging

logger = logging.getLogger("paleosnr.stats")


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="paleosnr.stats",
        description="Overlap, extreme-condition and niche-overlap summaries",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    ap.add_argument(
        "--analysis-yaml",
        type=Path,
        default=DEFAULT_ANALYSIS_YAML,
        help=f"Path to analysis YAML (default: {DEFAULT_ANALYSIS_YAML})",
    )
    ap.add_argument("--cells-csv", type=Path, default=None, help="Per-cell CSV (default: regional.out_csv)")
    ap.add_argument("--min-cells", type=int, default=None, help="Minimum cells per realm (default from config, else 30)")
    ap.add_argument("--dry-run", action="store_true", help="Print planned actions without reading/writing data")
    ap.add_argument("--overwrite", action="store_true", help="Overwrite existing output files")
    ap.add_argument("-v", "--verbose", action="store_true", help="Debug logging on the console")
    ap.add_argument("--log-file", type=Path, default=None, help="Also write a full debug log here")

    sub = ap.add_subparsers(dest="command", required=True)

    ov = sub.add_parser("overlap", help="KDE overlap coefficient and KS test per realm x scenario")
    ov.add_argument("--out-csv", type=Path, default=None, help="Output table (default: stats.overlap_csv)")
    ov.add_argument("--nbins", type=int, default=None, help="Density grid size (default from config, else 1024)")
    ov.add_argument("--p-adjust", default=None, help="statsmodels multipletests method (default: fdr_by)")
    ov.add_argument("--alpha", type=float, default=None, help="Family-wise significance level (default: 0.05)")

    ex = sub.add_parser("extremes", help="Future cells at or above paleo quantiles")
    ex.add_argument("--out-csv", type=Path, default=None, help="Output table (default: stats.extremes_csv)")
    ex.add_argument("--quantiles", type=float, nargs="+", default=None, help="Explicit quantiles (default: config band)")

    ni = sub.add_parser("niche-overlap", help="Pairwise niche overlap (D or I) between scenario surfaces")
    ni.add_argument("--out-csv", type=Path, default=None, help="Output matrix (default: stats.niche_csv)")
    ni.add_argument("--stat", choices=["D", "I"], default=None, help="Overlap statistic (default from config, else I)")

    return ap


def _prepare(args: argparse.Namespace, cfg: dict, out_key: str):
    """Shared inputs: stats block, scenarios, reference, cells CSV and output path."""
    block = section(cfg, "stats")
    scenarios = scenario_names(cfg)
    reference = reference_scenario(cfg)
    cells_csv = args.cells_csv or config_path(section(cfg, "regional"), "out_csv")
    out_csv = config_path(block, out_key, args.out_csv)
    min_cells = int(pick(args.min_cells, block, "min_cells", 30))
    return block, scenarios, reference, cells_csv, out_csv, min_cells


def _write(table, out_csv: Path, label: str, index: bool = False) -> None:
    out_csv.parent.mkdir(parents=True, exist_ok=True)
    table.to_csv(out_csv, index=index)
    logger.info("[%s] Wrote %d rows -> %s", label, len(table), out_csv)


def _handle_overlap(args: argparse.Namespace, cfg: dict) -> int:
    block, scenarios, reference, cells_csv, out_csv, min_cells = _prepare(args, cfg, "overlap_csv")
    nbins = int(pick(args.nbins, block, "nbins", 1024))
    method = str(pick(args.p_adjust, block, "p_adjust", "fdr_by"))
    alpha = float(pick(args.alpha, block, "alpha", 0.05))

    if args.dry_run:
        print("[dry-run] Would compute overlap:")
        print(f"  Cells: {cells_csv}")
        print(f"  Reference: {reference}; scenarios: {scenarios}")
        print(f"  min_cells={min_cells} nbins={nbins} p_adjust={method} alpha={alpha}")
        print(f"  Output: {out_csv}")
        return 0
    if out_csv.exists() and not args.overwrite:
        logger.info("[SKIP] %s exists (use --overwrite)", out_csv)
        return 0

    from paleosnr.regional.cells import read_cell_table
    from paleosnr.stats.overlap import overlap_table

    cells = read_cell_table(cells_csv, scenarios)
    table = overlap_table(
        cells, reference, scenarios,
        min_cells=min_cells, nbins=nbins, method=method, alpha=alpha,
    )
    _write(table, out_csv, "OVERLAP")
    return 0


def _handle_extremes(args: argparse.Namespace, cfg: dict) -> int:
    block, scenarios, reference, cells_csv, out_csv, min_cells = _prepare(args, cfg, "extremes_csv")

    from paleosnr.stats.extremes import quantile_grid

    if args.quantiles:
        quantiles = list(args.quantiles)
    else:
        band = block.get("quantiles") or {}
        if not isinstance(band, dict):
            raise SystemExit("stats.quantiles must be a mapping with start/stop/step")
        quantiles = list(quantile_grid(
            start=float(band.get("start", 0.90)),
            stop=float(band.get("stop", 1.00)),
            step=float(band.get("step", 0.01)),
        ))

    if args.dry_run:
        print("[dry-run] Would count extremes:")
        print(f"  Cells: {cells_csv}")
        print(f"  Reference: {reference}; scenarios: {scenarios}")
        print(f"  Quantiles: {quantiles[0]} .. {quantiles[-1]} ({len(quantiles)})")
        print(f"  Output: {out_csv}")
        return 0
    if out_csv.exists() and not args.overwrite:
        logger.info("[SKIP] %s exists (use --overwrite)", out_csv)
        return 0

    from paleosnr.regional.cells import read_cell_table
    from paleosnr.stats.extremes import extremes_table

    cells = read_cell_table(cells_csv, scenarios)
    table = extremes_table(cells, reference, scenarios, min_cells=min_cells, quantiles=quantiles)
    _write(table, out_csv, "EXTREMES")
    return 0


def _handle_niche_overlap(args: argparse.Namespace, cfg: dict) -> int:
    block, scenarios, _, cells_csv, out_csv, min_cells = _prepare(args, cfg, "niche_csv")
    stat = str(pick(args.stat, block, "niche_stat", "I"))

    if args.dry_run:
        print("[dry-run] Would compute niche overlap:")
        print(f"  Cells: {cells_csv} (realms with >= {min_cells} cells)")
        print(f"  Layers: {scenarios}; stat={stat}")
        print(f"  Output: {out_csv}")
        return 0
    if out_csv.exists() and not args.overwrite:
        logger.info("[SKIP] %s exists (use --overwrite)", out_csv)
        return 0

    from paleosnr.regional.cells import read_cell_table, eligible_realms
    from paleosnr.stats.niche import pairwise_niche_overlap

    cells = read_cell_table(cells_csv, scenarios)
    cells = cells[cells["realm_id"].isin(eligible_realms(cells, min_cells))]
    layers = {s: cells[s].to_numpy() for s in scenarios}
    matrix = pairwise_niche_overlap(layers, stat=stat)
    _write(matrix, out_csv, "NICHE", index=True)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    ap = build_parser()
    args = ap.parse_args(argv)
    setup_logging(verbose=args.verbose, log_file=args.log_file)

    cfg = load_yaml(args.analysis_yaml)

    handlers = {
        "overlap": _handle_overlap,
        "extremes": _handle_extremes,
        "niche-overlap": _handle_niche_overlap,
    }
    handler = handlers.get(args.command)
    if handler is None:
        raise SystemExit(f"Unknown command: {args.command}")
    return handler(args, cfg)


if __name__ == "__main__":
    raise SystemExit(main())
