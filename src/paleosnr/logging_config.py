"""
PaleoSNR Logging Configuration
==============================
Centralized logging setup for the subsystem CLIs.
"""

import logging
import os
import sys
from pathlib import Path
from typing import Optional


def setup_logging(verbose: bool = False, log_file: Optional[Path] = None) -> logging.Logger:
    """
    Configure the root logger for one CLI run.

    Args:
        verbose: DEBUG on the console instead of the default level
        log_file: optional file receiving the full DEBUG log

    Returns:
        Root logger configured with console (and optional file) handlers
    """
    if verbose:
        console_level = logging.DEBUG
    else:
        # Console level can be set with PALEOSNR_LOG_LEVEL (default: INFO)
        level_name = os.environ.get("PALEOSNR_LOG_LEVEL", "INFO").upper()
        console_level = getattr(logging, level_name, logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(console_level)
    console_handler.setFormatter(logging.Formatter(
        fmt="%(asctime)s | %(levelname)-5s | %(name)s | %(message)s",
        datefmt="%H:%M:%S",
    ))
    root_logger.addHandler(console_handler)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(
            fmt="%(asctime)s | %(levelname)-8s | %(name)-30s | %(funcName)-20s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        ))
        root_logger.addHandler(file_handler)

    # Reduce noise from external libraries
    for name in ("rasterio", "fiona", "pyogrio"):
        logging.getLogger(name).setLevel(logging.WARNING)

    return root_logger
