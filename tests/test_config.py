#!/usr/bin/env python3

from __future__ import annotations

import sys
from pathlib import Path

import pytest

# Ensure we can import from src/ without installing the package
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
sys.path.insert(0, str(SRC))

from paleosnr import config


def test_load_yaml_strict(tmp_path):
    with pytest.raises(SystemExit):
        config.load_yaml(tmp_path / "missing.yaml")
    bad = tmp_path / "list.yaml"
    bad.write_text("- a\n- b\n")
    with pytest.raises(SystemExit):
        config.load_yaml(bad)


def test_repo_analysis_config_is_consistent():
    cfg = config.load_yaml(ROOT / config.DEFAULT_ANALYSIS_YAML)
    names = config.scenario_names(cfg)
    assert names[0] == config.reference_scenario(cfg)
    layers = config.section(cfg, "signal")["layers"]
    assert set(names) <= set(layers)


def test_repo_realms_yaml_loads():
    realms = config.load_realms_yaml(ROOT / config.DEFAULT_REALMS_YAML)
    ids = [r["id"] for r in realms]
    assert len(ids) == len(set(ids))


def test_scenario_names_puts_reference_first():
    cfg = {"scenarios": ["rcp85", "paleo"], "reference_scenario": "paleo"}
    assert config.scenario_names(cfg) == ["paleo", "rcp85"]
    with pytest.raises(SystemExit):
        config.scenario_names({"scenarios": ["rcp85"], "reference_scenario": "paleo"})


def test_pick_and_paths():
    block = {"quantile": 0.9, "out_csv": "a/b.csv"}
    assert config.pick(None, block, "quantile", 0.95) == 0.9
    assert config.pick(0.99, block, "quantile", 0.95) == 0.99
    assert config.pick(None, block, "missing", 1) == 1
    assert config.config_path(block, "out_csv") == Path("a/b.csv")
    assert config.config_path(block, "out_csv", Path("x.csv")) == Path("x.csv")
    with pytest.raises(SystemExit):
        config.config_path(block, "nope")
    with pytest.raises(SystemExit):
        config.section({"stats": [1, 2]}, "stats")
