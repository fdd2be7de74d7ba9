#!/usr/bin/env python3
"""paleosnr.signal

Warming-signal CLI for PaleoSNR.

This is one of several PaleoSNR subsystem CLIs:
- paleosnr.registry → realm polygons
- paleosnr.signal   → warming threshold, period selection, SNR rasters (this file)
- paleosnr.regional → clip SNR rasters to realms, per-cell tables
- paleosnr.stats    → overlap, extreme-condition and niche-overlap summaries

Design notes:
- Config-driven defaults via config/analysis.yaml (sections `periods:` and `signal:`)
- Command-line flags override config values
- Lazy-imports rasterio-backed modules to keep CLI startup fast

Examples:
  # 95th percentile of the control rates, keep segments at or above it
  python -m paleosnr.signal select-periods

  # Trend / variability / SNR rasters for every scenario in the config
  python -m paleosnr.signal aggregate

  # Only one scenario
  python -m paleosnr.signal aggregate --scenario rcp85
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

logger = logging.getLogger("paleosnr.signal")


# -----------------------------------------------------------------------------
# CLI structure
# -----------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="paleosnr.signal",
        description="Warming threshold, period selection and SNR rasters",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    # --- Global args ---
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

    # --- select-periods ---
    sel = sub.add_parser("select-periods", help="Select segments whose warming rate exceeds the control quantile")
    sel.add_argument("--segments-csv", type=Path, default=None, help="Reference segments table (default from config)")
    sel.add_argument("--control-csv", type=Path, default=None, help="Control rate distribution (default from config)")
    sel.add_argument("--out-csv", type=Path, default=None, help="Output table of selected periods")
    sel.add_argument("--quantile", type=float, default=None, help="Control quantile (default from config, else 0.95)")
    sel.add_argument("--rate-column", default=None, help="Rate column in the segments table (default: rate)")

    # --- aggregate ---
    agg = sub.add_parser("aggregate", help="Average period rasters into trend / variability / SNR rasters")
    agg.add_argument("--scenario", action="append", default=None, help="Scenario(s) to build (default: all in config)")
    agg.add_argument("--periods-csv", type=Path, default=None, help="Selected periods table (default: periods.out_csv)")
    agg.add_argument("--out-dir", type=Path, default=None, help="Output raster directory (default from config)")

    return ap


# -----------------------------------------------------------------------------
# Command handlers
# -----------------------------------------------------------------------------

def _handle_select_periods(args: argparse.Namespace, cfg: dict) -> int:
    block = section(cfg, "periods")
    segments_csv = config_path(block, "segments_csv", args.segments_csv)
    control_csv = config_path(block, "control_csv", args.control_csv)
    out_csv = config_path(block, "out_csv", args.out_csv)
    quantile = float(pick(args.quantile, block, "quantile", 0.95))
    rate_col = str(pick(args.rate_column, block, "rate_column", "rate"))
    control_col = str(block.get("control_column", rate_col))
    period_col = str(block.get("period_column", "period"))

    if args.dry_run:
        print("[dry-run] Would select periods:")
        print(f"  Segments: {segments_csv} (column {rate_col})")
        print(f"  Control: {control_csv} (column {control_col}, q={quantile})")
        print(f"  Output: {out_csv}")
        return 0

    if out_csv.exists() and not args.overwrite:
        logger.info("[SKIP] %s exists (use --overwrite)", out_csv)
        return 0

    from paleosnr.signal.periods import select_periods_from_files

    select_periods_from_files(
        segments_csv=segments_csv,
        control_csv=control_csv,
        out_csv=out_csv,
        rate_col=rate_col,
        control_col=control_col,
        period_col=period_col,
        quantile=quantile,
    )
    return 0


def _handle_aggregate(args: argparse.Namespace, cfg: dict) -> int:
    block = section(cfg, "signal")
    layers_cfg = block.get("layers")
    if not isinstance(layers_cfg, dict) or not layers_cfg:
        raise SystemExit("analysis config missing signal: -> layers")

    scenarios = args.scenario or scenario_names(cfg)
    out_dir = config_path(block, "out_dir", args.out_dir)

    periods_block = section(cfg, "periods")
    period_col = str(periods_block.get("period_column", "period"))

    templated = []
    for scenario in scenarios:
        lcfg = layers_cfg.get(scenario)
        if not isinstance(lcfg, dict) or "trend" not in lcfg or "variability" not in lcfg:
            raise SystemExit(f"signal.layers.{scenario} needs 'trend' and 'variability' templates")
        if "{period}" in str(lcfg["trend"]) or "{period}" in str(lcfg["variability"]):
            templated.append(scenario)

    periods: List[str] = []
    if templated:
        periods_csv = config_path(periods_block, "out_csv", args.periods_csv)
        if args.dry_run:
            print(f"[dry-run] Periods for {templated} from {periods_csv}")
        else:
            from paleosnr.signal.periods import read_selected_periods

            periods = read_selected_periods(periods_csv, period_col=period_col)
            logger.info("[SNR] %d selected periods from %s", len(periods), periods_csv)

    if args.dry_run:
        print("[dry-run] Would aggregate:")
        for scenario in scenarios:
            lcfg = layers_cfg[scenario]
            print(f"  {scenario}: trend={lcfg['trend']} variability={lcfg['variability']}")
        print(f"  Output dir: {out_dir}")
        return 0

    from paleosnr.signal.aggregate import aggregate_scenario

    for scenario in scenarios:
        lcfg = layers_cfg[scenario]
        aggregate_scenario(
            scenario=scenario,
            trend_template=str(lcfg["trend"]),
            variability_template=str(lcfg["variability"]),
            periods=periods,
            out_dir=out_dir,
            overwrite=args.overwrite,
        )
    return 0


# -----------------------------------------------------------------------------
# Main entrypoint
# -----------------------------------------------------------------------------

def main(argv: Optional[List[str]] = None) -> int:
    ap = build_parser()
    args = ap.parse_args(argv)
    setup_logging(verbose=args.verbose, log_file=args.log_file)

    # Load YAML only once, inside main (so import doesn't have side effects)
    cfg = load_yaml(args.analysis_yaml)

    handlers = {
        "select-periods": _handle_select_periods,
        "aggregate": _handle_aggregate,
    }
    handler = handlers.get(args.command)
    if handler is None:
        raise SystemExit(f"Unknown command: {args.command}")
    return handler(args, cfg)


if __name__ == "__main__":
    raise SystemExit(main())
