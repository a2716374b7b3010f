from __future__ import annotations

import math
from typing import Sequence

import numpy as np

from common.logging_setup import get_logger


log = get_logger("simulation.heading")

TWO_PI = 2.0 * math.pi


def wrap_angle(a: float) -> float:
    """Wrap to [-pi, pi)."""
    return (a + math.pi) % TWO_PI - math.pi


def estimate_headings(
    east: Sequence[float],
    north: Sequence[float],
    *,
    min_move_m: float = 0.1,
) -> np.ndarray:
    """
    Heading (rad, ENU: 0 = east, pi/2 = north) for every fix of a track.

    A new heading is taken once the track has moved more than `min_move_m`
    since the last update; samples in between repeat it. The first heading is
    backfilled to the start. Jumps of more than pi/2 are read as a change of
    driving direction and flipped, and if the track spent more steps reversing
    than driving forward, the start direction was wrong and every heading is
    turned around.
    """
    x = np.asarray(east, dtype=float)
    y = np.asarray(north, dtype=float)
    n = len(x)
    headings = np.zeros(n, dtype=float)
    if n == 0:
        return headings

    min_sq = min_move_m * min_move_m
    acc_dx = acc_dy = 0.0
    have_heading = False
    reversing = False
    forward_steps = reverse_steps = 0

    for i in range(1, n):
        acc_dx += x[i] - x[i - 1]
        acc_dy += y[i] - y[i - 1]
        h = headings[i - 1]
        if acc_dx * acc_dx + acc_dy * acc_dy > min_sq:
            h = math.atan2(acc_dy, acc_dx)
            acc_dx = acc_dy = 0.0
            if not have_heading:
                headings[:i] = h
                have_heading = True
            else:
                if reversing:
                    h += math.pi
                    reverse_steps += 1
                else:
                    forward_steps += 1
                if abs(wrap_angle(h - headings[i - 1])) > math.pi / 2.0:
                    reversing = not reversing
                    h += math.pi
            h = wrap_angle(h)
        headings[i] = h

    if reverse_steps > forward_steps:
        log.info(
            "Track mostly reversing, flipping headings",
            extra={"extra": {"forward": forward_steps, "reverse": reverse_steps}},
        )
        headings = np.array([wrap_angle(h + math.pi) for h in headings])

    return headings


def smooth_headings(headings: Sequence[float], window: int = 5) -> np.ndarray:
    """
    Centered moving average on the circle. The first and last window//2
    samples are left as they are.
    """
    h = np.asarray(headings, dtype=float)
    out = h.copy()
    half = window // 2
    for i in range(half, len(h) - half):
        diffs = [wrap_angle(h[j] - h[i]) for j in range(i - half, i + half + 1)]
        out[i] = wrap_angle(h[i] + sum(diffs) / window)
    return out
