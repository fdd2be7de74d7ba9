#!/usr/bin/env python3
"""paleosnr.registry

Realm definition CLI for PaleoSNR.

This is one of several PaleoSNR subsystem CLIs:
- paleosnr.registry → realm polygons (this file)
- paleosnr.signal   → warming threshold, period selection, SNR rasters
- paleosnr.regional → clip SNR rasters to realms, per-cell tables
- paleosnr.stats    → overlap, extreme-condition and niche-overlap summaries

paleosnr.registry is the source of truth for spatial units. All other
subsystems consume its GeoPackage.

Outputs:
- data/interim/vectors/realms_v0.gpkg  → canonical geometries (WGS84)
- data/interim/tables/realms_v0.csv    → realm ids, names and areas (QA)

Examples:
  python -m paleosnr.registry prep-realms \
    --realms-shp data/raw/boundaries/marine_realms/realms.shp
"""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import List, Optional

from paleosnr.config import load_realms_yaml, DEFAULT_REALMS_YAML
from paleosnr.logging_config import setup_logging

logger = logging.getLogger("paleosnr.registry")


# -----------------------------------------------------------------------------
# Default output paths
# -----------------------------------------------------------------------------
# Downstream modules read from these paths.

DEFAULT_REALMS_GPKG = Path("data/interim/vectors/realms_v0.gpkg")
DEFAULT_REALMS_CSV = Path("data/interim/tables/realms_v0.csv")


# -----------------------------------------------------------------------------
# CLI structure
# -----------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for paleosnr.registry."""
    ap = argparse.ArgumentParser(
        prog="paleosnr.registry",
        description="Realm definition for PaleoSNR (source of truth for spatial units)",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Subsystem CLIs:
  python -m paleosnr.registry  # Realm polygons (this)
  python -m paleosnr.signal    # Periods and SNR rasters
  python -m paleosnr.regional  # Per-cell realm extraction
  python -m paleosnr.stats     # Overlap / extremes / niche overlap
        """,
    )

    # --- Global args ---
    ap.add_argument(
        "--realms-yaml",
        type=Path,
        default=DEFAULT_REALMS_YAML,
        help=f"Path to realms YAML (default: {DEFAULT_REALMS_YAML})",
    )
    ap.add_argument(
        "--dry-run",
        action="store_true",
        help="Print planned actions without writing files",
    )
    ap.add_argument(
        "--overwrite",
        action="store_true",
        help="Overwrite existing output files",
    )
    ap.add_argument("-v", "--verbose", action="store_true", help="Debug logging on the console")
    ap.add_argument("--log-file", type=Path, default=None, help="Also write a full debug log here")

    sub = ap.add_subparsers(dest="command", required=True)

    # --- prep-realms ---
    prep = sub.add_parser(
        "prep-realms",
        help="Prepare realms from a shapefile",
        description="""
Process a marine realms layer into canonical registry outputs.

This command:
1. Reads realm definitions from realms YAML
2. Filters the layer to requested realm ids
3. Cleans and dissolves geometries
4. Computes areas (km², equal-area CRS)
5. Writes canonical outputs
        """,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    prep.add_argument("--realms-shp", required=True, type=Path, help="Path to realms shapefile / layer")
    prep.add_argument(
        "--out-gpkg",
        type=Path,
        default=DEFAULT_REALMS_GPKG,
        help=f"Output GeoPackage path (default: {DEFAULT_REALMS_GPKG})",
    )
    prep.add_argument(
        "--qa-csv",
        type=Path,
        default=DEFAULT_REALMS_CSV,
        help=f"Output QA CSV (default: {DEFAULT_REALMS_CSV})",
    )
    prep.add_argument("--layer", default="realms", help="Layer name in output GeoPackage (default: realms)")
    prep.add_argument(
        "--id-field",
        default=None,
        help="Layer column containing the realm id (auto-detected if not specified)",
    )
    prep.add_argument("--target-crs", default="EPSG:4326", help="Output CRS (default: EPSG:4326 / WGS84)")
    prep.add_argument(
        "--area-crs",
        default="ESRI:54009",
        help="CRS for area calculations (default: ESRI:54009 / World Mollweide)",
    )
    prep.add_argument(
        "--no-dissolve",
        action="store_false",
        dest="dissolve",
        help="Don't dissolve multipart features",
    )

    return ap


# -----------------------------------------------------------------------------
# Command handlers
# -----------------------------------------------------------------------------

def _handle_prep_realms(args: argparse.Namespace) -> int:
    """Handle the prep-realms subcommand."""
    if not args.realms_yaml.exists():
        raise SystemExit(f"Realms YAML not found: {args.realms_yaml}")

    if args.dry_run:
        print("[dry-run] Would prepare realms:")
        print(f"  Input layer: {args.realms_shp}")
        print(f"  Output GeoPackage: {args.out_gpkg}")
        print(f"  QA CSV: {args.qa_csv}")
        print(f"  Realms YAML: {args.realms_yaml}")
        print(f"  Dissolve: {args.dissolve}")
        return 0

    if args.out_gpkg.exists() and not args.overwrite:
        logger.info("[SKIP] %s exists (use --overwrite)", args.out_gpkg)
        return 0

    realms = load_realms_yaml(args.realms_yaml)

    # Lazy import keeps CLI startup fast (no geopandas until needed)
    from paleosnr.registry.prep_realms import prep_realms

    prep_realms(
        realms=realms,
        realms_shp=args.realms_shp,
        out_gpkg=args.out_gpkg,
        layer=args.layer,
        id_field=args.id_field,
        target_crs=args.target_crs,
        area_crs=args.area_crs,
        dissolve=args.dissolve,
        qa_csv=args.qa_csv,
    )
    return 0


# -----------------------------------------------------------------------------
# Main entrypoint
# -----------------------------------------------------------------------------

def main(argv: Optional[List[str]] = None) -> int:
    """Main entrypoint for paleosnr.registry CLI."""
    ap = build_parser()
    args = ap.parse_args(argv)
    setup_logging(verbose=args.verbose, log_file=args.log_file)

    handlers = {
        "prep-realms": _handle_prep_realms,
    }

    handler = handlers.get(args.command)
    if handler is None:
        raise SystemExit(f"Unknown command: {args.command}")

    return handler(args)


if __name__ == "__main__":
    raise SystemExit(main())
