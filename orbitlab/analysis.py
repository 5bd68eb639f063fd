import math
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np
import pandas as pd

TWO_PI = 2.0 * math.pi


@dataclass(frozen=True)
class OrbitMetrics:
    rad_var: float      # var(r) / mean(r)^2, lower = more circular
    turns: float        # accumulated revolutions around the center
    tan_ratio: float    # mean |v_t| / |v|, 1 = purely tangential motion


def unwrap_delta_angle(d: float) -> float:
    """Fold an angle difference into (-pi, pi]."""
    while d > math.pi:
        d -= TWO_PI
    while d <= -math.pi:
        d += TWO_PI
    return d


def compute_orbit_metrics(positions, velocities, center) -> Optional[OrbitMetrics]:
    """
    Orbital-geometry metrics of one sampled trajectory.

    Parameters
    ----------
    positions, velocities : array-like (n, 2)
        Samples of the same body, in time order.
    center : (x, y)
        Reference point the orbit is measured around.

    Returns
    -------
    OrbitMetrics, or None when fewer than three samples are given.
    """
    positions = np.asarray(positions, dtype=np.float64).reshape(-1, 2)
    velocities = np.asarray(velocities, dtype=np.float64).reshape(-1, 2)
    n = positions.shape[0]
    if n < 3:
        return None

    rel = positions - np.asarray(center, dtype=np.float64).reshape(1, 2)
    r = np.hypot(rel[:, 0], rel[:, 1])
    theta = np.arctan2(rel[:, 1], rel[:, 0])

    v = np.hypot(velocities[:, 0], velocities[:, 1])
    valid = (r > 1e-6) & (v > 1e-6)
    if np.any(valid):
        r_hat = rel[valid] / r[valid, None]
        v_r = np.einsum("ij,ij->i", velocities[valid], r_hat)
        v_t = np.sqrt(np.maximum(0.0, v[valid] ** 2 - v_r ** 2))
        tan_ratio = float(np.mean(v_t / (v[valid] + 1e-6)))
    else:
        tan_ratio = 0.0

    r_mean = float(np.mean(r))
    rad_var = float(np.var(r)) / max(1e-6, r_mean * r_mean)

    total = 0.0
    for i in range(1, n):
        total += abs(unwrap_delta_angle(float(theta[i] - theta[i - 1])))
    turns = total / TWO_PI

    return OrbitMetrics(rad_var=rad_var, turns=turns, tan_ratio=tan_ratio)


def average_metrics(metrics: Sequence[Optional[OrbitMetrics]]) -> Optional[OrbitMetrics]:
    """Mean of the non-None entries; None when there are none."""
    metrics = [m for m in metrics if m is not None]
    if not metrics:
        return None
    return OrbitMetrics(
        rad_var=float(np.mean([m.rad_var for m in metrics])),
        turns=float(np.mean([m.turns for m in metrics])),
        tan_ratio=float(np.mean([m.tan_ratio for m in metrics])),
    )


def summarize_generations(df: pd.DataFrame) -> pd.DataFrame:
    """
    Per-generation fitness statistics of a GA run.

    Parameters
    ----------
    df : pandas.DataFrame
        One row per evaluated genome. Must contain the columns
        'generation' (int) and 'fitness' (float).

    Returns
    -------
    pandas.DataFrame indexed by generation with columns
    best, mean, std, median and count.
    """
    if "generation" not in df.columns or "fitness" not in df.columns:
        raise KeyError("Expected columns: 'generation' and 'fitness'")

    grouped = df.groupby("generation")["fitness"]
    summary = pd.DataFrame({
        "best": grouped.max(),
        "mean": grouped.mean(),
        "std": grouped.std(ddof=0),
        "median": grouped.median(),
        "count": grouped.count(),
    })
    return summary.sort_index()


def best_per_generation(df: pd.DataFrame, columns: Sequence[str]) -> pd.DataFrame:
    """Rows of the fittest genome of every generation, restricted to `columns`."""
    idx = df.groupby("generation")["fitness"].idxmax()
    return df.loc[idx, ["generation", *columns]].set_index("generation").sort_index()
