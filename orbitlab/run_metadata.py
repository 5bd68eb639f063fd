import json
import os
import subprocess
import sys
from datetime import datetime
from typing import Any, Dict, Optional

import numpy as np


def _safe_run(cmd: list) -> str:
    """stdout of `cmd`, or 'unknown' when it can not be run."""
    try:
        return subprocess.check_output(cmd, stderr=subprocess.STDOUT, text=True).strip()
    except (OSError, subprocess.CalledProcessError):
        return "unknown"


def get_git_commit() -> str:
    return _safe_run(["git", "rev-parse", "HEAD"])


def get_git_status_porcelain() -> str:
    # Empty output means a clean working tree
    return _safe_run(["git", "status", "--porcelain"])


def get_pip_freeze() -> str:
    return _safe_run([sys.executable, "-m", "pip", "freeze"])


def to_jsonable(value: Any) -> Any:
    """Recursively convert numpy scalars/arrays and tuples into plain json types."""
    if isinstance(value, dict):
        return {str(k): to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    if isinstance(value, np.ndarray):
        return value.tolist()
    if isinstance(value, np.generic):
        return value.item()
    if isinstance(value, float) and not np.isfinite(value):
        return None
    return value


def snapshot_config(cfg_module) -> Dict[str, Any]:
    """ALL_CAPS module constants as a JSON-serializable dict."""
    snap: Dict[str, Any] = {}
    for name, value in vars(cfg_module).items():
        if not name.isupper():
            continue
        value = to_jsonable(value)
        try:
            json.dumps(value)
        except TypeError:
            value = str(value)
        snap[name] = value
    return snap


def make_run_dir(base_dir: str = "outputs", prefix: Optional[str] = None) -> str:
    """
    Create and return a timestamped directory, e.g. outputs/evolve_2026-01-15_06-12-03.
    """
    stamp = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")
    run_dir = os.path.join(base_dir, f"{prefix}_{stamp}" if prefix else stamp)
    os.makedirs(run_dir, exist_ok=True)
    return run_dir


def write_text(path: str, content: str) -> None:
    with open(path, "w", encoding="utf-8") as f:
        f.write(content)


def write_json(path: str, obj: Any) -> None:
    with open(path, "w", encoding="utf-8") as f:
        json.dump(to_jsonable(obj), f, indent=2, sort_keys=True)


def save_run_metadata(run_dir: str, cfg_module, run_info: Dict[str, Any]) -> bool:
    """
    Write git/pip/config provenance next to a run's outputs:
    git_commit.txt, git_status_porcelain.txt, pip_freeze.txt,
    config_snapshot.json and run_info.json (with a "git" section added).

    Returns True when the working tree had uncommitted changes.
    """
    commit = get_git_commit()
    status = get_git_status_porcelain()
    dirty = bool(status and status != "unknown")

    write_text(os.path.join(run_dir, "git_commit.txt"), commit + "\n")
    write_text(os.path.join(run_dir, "git_status_porcelain.txt"), status + "\n")
    write_text(os.path.join(run_dir, "pip_freeze.txt"), get_pip_freeze() + "\n")
    write_json(os.path.join(run_dir, "config_snapshot.json"), snapshot_config(cfg_module))

    info = dict(run_info)
    info["git"] = {"commit": commit, "is_dirty": dirty}
    write_json(os.path.join(run_dir, "run_info.json"), info)
    return dirty
