import json
import os
import types

import numpy as np

import orbitlab.run_metadata as run_metadata
from orbitlab.run_metadata import save_run_metadata, snapshot_config, to_jsonable, write_json


def test_to_jsonable():
    value = {"a": np.float64(1.5), "b": (1, np.int64(2)), "c": np.arange(3), 4: float("inf")}
    assert to_jsonable(value) == {"a": 1.5, "b": [1, 2], "c": [0, 1, 2], "4": None}


def test_snapshot_config_keeps_upper_case_names():
    module = types.SimpleNamespace(SEED=None, MAX_DT=0.1, SHAPE=(2, 3), helper=lambda: None)
    assert snapshot_config(module) == {"SEED": None, "MAX_DT": 0.1, "SHAPE": [2, 3]}


def test_save_run_metadata(tmp_path, monkeypatch):
    outputs = {
        ("git", "rev-parse", "HEAD"): "abc123",
        ("git", "status", "--porcelain"): " M main.py",
    }
    monkeypatch.setattr(run_metadata, "_safe_run", lambda cmd: outputs.get(tuple(cmd), "unknown"))

    module = types.SimpleNamespace(GENERATIONS=3)
    dirty = save_run_metadata(str(tmp_path), module, {"run_type": "test", "best": {"x": np.float32(0.5)}})
    assert dirty

    with open(os.path.join(tmp_path, "run_info.json"), encoding="utf-8") as f:
        info = json.load(f)
    assert info["git"] == {"commit": "abc123", "is_dirty": True}
    assert info["best"]["x"] == 0.5
    assert (tmp_path / "git_commit.txt").read_text(encoding="utf-8") == "abc123\n"
    assert (tmp_path / "pip_freeze.txt").read_text(encoding="utf-8") == "unknown\n"
    assert json.loads((tmp_path / "config_snapshot.json").read_text(encoding="utf-8")) == {"GENERATIONS": 3}


def test_write_json_round_trip(tmp_path):
    path = tmp_path / "out.json"
    write_json(str(path), {"values": np.linspace(0.0, 1.0, 3)})
    assert json.loads(path.read_text(encoding="utf-8")) == {"values": [0.0, 0.5, 1.0]}
