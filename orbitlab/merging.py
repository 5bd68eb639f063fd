"""
Inelastic merging of touching bodies.

Two bodies merge when the distance between their centers (boundary-aware)
is smaller than the sum of their radii. The merge conserves mass and momentum
and, by construction, loses kinetic energy. That loss is intentional and is
recorded separately by the energy ledger.

Merge decisions are collected first as index pairs; the caller then rebuilds
its body arrays once from the kept indices plus the merged products, so no
index is invalidated mid-scan.
"""
from typing import List, Tuple

import numpy as np
from numba import njit

from .body import Body
from .physics import BoundaryPolicy, min_image_delta


@njit
def find_merge_pairs(pos, radius, mass, stop_mass, wrap, width, height):
    """
    Scan all unordered pairs once and return an (k, 2) array of index pairs.

    Each body appears in at most one pair (first match wins, no chaining).
    When stop_mass > 0, bodies with mass >= stop_mass are skipped.
    """
    n = pos.shape[0]
    pairs = np.empty((n // 2 + 1, 2), dtype=np.int64)
    taken = np.zeros(n, dtype=np.bool_)
    count = 0
    for i in range(n):
        if taken[i]:
            continue
        if stop_mass > 0.0 and mass[i] >= stop_mass:
            continue
        for j in range(i + 1, n):
            if taken[j]:
                continue
            if stop_mass > 0.0 and mass[j] >= stop_mass:
                continue
            dx = pos[j, 0] - pos[i, 0]
            dy = pos[j, 1] - pos[i, 1]
            if wrap:
                dx = min_image_delta(dx, width)
                dy = min_image_delta(dy, height)
            if np.sqrt(dx * dx + dy * dy) < radius[i] + radius[j]:
                taken[i] = True
                taken[j] = True
                pairs[count, 0] = i
                pairs[count, 1] = j
                count += 1
                break
    return pairs[:count]


def merge_pair(a: Body, b: Body, boundary: BoundaryPolicy = None) -> Body:
    """
    Combine two bodies into one.

    - mass:      m1 + m2
    - velocity:  (m1*v1 + m2*v2) / (m1 + m2)  (momentum conserving)
    - position:  mass-weighted center; with a toroidal boundary the partner is
                 first moved to its minimum-image position and the result is
                 wrapped back into bounds
    - radius mapping is inherited from the heavier parent (`a` on ties)
    """
    if boundary is None:
        boundary = BoundaryPolicy()

    total_mass = a.mass + b.mass
    inv_total = 1.0 / total_mass

    other_position = a.position + boundary.delta(a.position, b.position)
    center = (a.position * a.mass + other_position * b.mass) * inv_total
    center = boundary.wrap_position(center)

    velocity = (a.velocity * a.mass + b.velocity * b.mass) * inv_total

    heavier = a if a.mass >= b.mass else b
    return Body(
        position=center,
        velocity=velocity,
        mass=total_mass,
        radius_scale=heavier.radius_scale,
        radius_power=heavier.radius_power,
    )


def resolve_merges(bodies: List[Body], pairs, boundary: BoundaryPolicy) -> Tuple[List[Body], List[Body]]:
    """
    Apply merge decisions. Returns (survivors, merged_products) where the new
    body list is survivors + merged_products, in that order.
    """
    if len(pairs) == 0:
        return list(bodies), []

    removed = set()
    merged = []
    for i, j in pairs:
        i = int(i)
        j = int(j)
        removed.add(i)
        removed.add(j)
        merged.append(merge_pair(bodies[i], bodies[j], boundary))

    kept = [body for index, body in enumerate(bodies) if index not in removed]
    return kept, merged
