#!/usr/bin/env python3
"""paleosnr.config

Shared configuration utilities for the PaleoSNR subsystem CLIs.

This module provides common helpers used across paleosnr.signal,
paleosnr.regional, paleosnr.stats, etc.

Design notes:
- YAML loading is strict: files must exist and be valid mappings.
- Sections are looked up by name; a missing section is an empty mapping,
  a non-mapping section is an error.
- All functions are pure (no side effects on import).
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml


# -----------------------------------------------------------------------------
# YAML loading
# -----------------------------------------------------------------------------

def load_yaml(path: Path) -> Dict[str, Any]:
    """Load a YAML file and return as dict.

    Raises SystemExit on missing file or invalid format (non-mapping).
    """
    if not path.exists():
        raise SystemExit(f"Config not found: {path}")
    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if not isinstance(data, dict):
        raise SystemExit(f"Expected YAML mapping at {path}")
    return data


def load_realms_yaml(path: Path) -> List[dict]:
    """Load realms from a realms YAML file.

    Expects structure like:
        realms:
          - id: 7
            name: "Southern Ocean"

    Returns the list of realm dicts.
    Raises ValueError if structure is invalid.
    """
    data = load_yaml(path)
    if "realms" not in data or not isinstance(data["realms"], list):
        raise ValueError(f"{path} must have a top-level 'realms:' list.")
    return data["realms"]


# -----------------------------------------------------------------------------
# Analysis config accessors
# -----------------------------------------------------------------------------

def section(cfg: Dict[str, Any], name: str) -> Dict[str, Any]:
    """Return a named section of the analysis config ({} if absent)."""
    block = cfg.get(name)
    if block is None:
        return {}
    if not isinstance(block, dict):
        raise SystemExit(f"analysis config: '{name}' must be a mapping")
    return block


def scenario_names(cfg: Dict[str, Any]) -> List[str]:
    """Scenario labels in config order; the reference scenario comes first."""
    scenarios = cfg.get("scenarios")
    if not isinstance(scenarios, list) or not scenarios:
        raise SystemExit("analysis config must list 'scenarios:'")
    names = [str(s) for s in scenarios]
    ref = reference_scenario(cfg)
    if ref not in names:
        raise SystemExit(f"reference_scenario '{ref}' is not in scenarios {names}")
    return [ref] + [s for s in names if s != ref]


def reference_scenario(cfg: Dict[str, Any]) -> str:
    ref = cfg.get("reference_scenario")
    if not ref:
        raise SystemExit("analysis config missing 'reference_scenario'")
    return str(ref)


def config_path(block: Dict[str, Any], key: str, override: Optional[Path] = None) -> Path:
    """Resolve a path: explicit CLI value first, then the config entry."""
    if override is not None:
        return override
    value = block.get(key)
    if not value:
        raise SystemExit(f"analysis config missing path '{key}' (or pass it on the command line)")
    return Path(str(value))


def pick(override: Any, block: Dict[str, Any], key: str, default: Any) -> Any:
    """CLI flag if given, else config value, else default."""
    if override is not None:
        return override
    return block.get(key, default)


# -----------------------------------------------------------------------------
# Default paths
# -----------------------------------------------------------------------------
# Centralized so all CLIs use the same defaults.

DEFAULT_ANALYSIS_YAML = Path("config/analysis.yaml")
DEFAULT_REALMS_YAML = Path("config/realms_v0.yaml")
